"""
Verifiable Credential data model and wire format.

Credentials travel as JSON objects with exactly these fields::

    @context, id, type, issuer, issuanceDate, expirationDate?,
    credentialSubject, credentialStatus?, proof

Optional fields are omitted, never null.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from veritas_vc.errors import (
    BitIndexOutOfRangeError,
    MalformedCredentialError,
    MalformedStatusURIError,
    UnsupportedStatusTypeError,
)

VC_CONTEXT = "https://www.w3.org/2018/credentials/v1"
VC_TYPE = "VerifiableCredential"

EMPLOYMENT_TYPE = "ProofOfEmploymentCredential"
EMPLOYMENT_CONTEXT = "https://veritas.id/contexts/employment/v1"
GITHUB_TYPE = "GitHubReputationCredential"
GITHUB_CONTEXT = "https://veritas.id/contexts/github/v1"

PROOF_TYPE = "JsonWebSignature2020"
PROOF_PURPOSE = "assertionMethod"

STATUS_TYPE = "StatusList2021Entry"
STATUS_PURPOSE = "revocation"
STATUS_LIST_SIZE = 256

_CREDENTIAL_MEMBERS = (
    "@context",
    "id",
    "type",
    "issuer",
    "issuanceDate",
    "expirationDate",
    "credentialSubject",
    "credentialStatus",
    "proof",
)
_STATUS_MEMBERS = ("id", "type", "statusPurpose", "statusListIndex", "statusListCredential")


def format_timestamp(value: datetime) -> str:
    """Render a datetime as RFC 3339 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp. Naive values are taken as UTC.

    Raises:
        ValueError: If value is not a timestamp.
    """
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class EmploymentClaim:
    """Proof-of-employment claim about a holder."""

    employer: str
    role: str
    start_date: str
    subject_id: str | None = None
    end_date: str | None = None

    credential_type = EMPLOYMENT_TYPE
    context = EMPLOYMENT_CONTEXT

    def to_subject(self) -> dict[str, Any]:
        subject: dict[str, Any] = {
            "id": self.subject_id,
            "employer": self.employer,
            "role": self.role,
            "startDate": self.start_date,
        }
        if self.end_date:
            subject["endDate"] = self.end_date
        return subject

    @classmethod
    def from_subject(cls, subject: dict[str, Any]) -> EmploymentClaim:
        return cls(
            subject_id=subject.get("id"),
            employer=subject["employer"],
            role=subject["role"],
            start_date=subject["startDate"],
            end_date=subject.get("endDate"),
        )


@dataclass
class GitHubReputationClaim:
    """GitHub account reputation snapshot."""

    username: str
    profile_url: str
    followers: int
    public_repos: int
    account_age_days: int
    verified_at: str
    subject_id: str | None = None

    credential_type = GITHUB_TYPE
    context = GITHUB_CONTEXT

    def to_subject(self) -> dict[str, Any]:
        return {
            "id": self.subject_id,
            "username": self.username,
            "profileUrl": self.profile_url,
            "reputation": {
                "followers": self.followers,
                "publicRepos": self.public_repos,
                "accountAge": self.account_age_days,
            },
            "verifiedAt": self.verified_at,
        }

    @classmethod
    def from_subject(cls, subject: dict[str, Any]) -> GitHubReputationClaim:
        reputation = subject.get("reputation", {})
        return cls(
            subject_id=subject.get("id"),
            username=subject["username"],
            profile_url=subject["profileUrl"],
            followers=int(reputation["followers"]),
            public_repos=int(reputation["publicRepos"]),
            account_age_days=int(reputation["accountAge"]),
            verified_at=subject["verifiedAt"],
        )


ClaimPayload = Union[EmploymentClaim, GitHubReputationClaim]

CLAIM_TYPES: dict[str, type] = {
    EMPLOYMENT_TYPE: EmploymentClaim,
    GITHUB_TYPE: GitHubReputationClaim,
}


def claim_from_subject(types: list[str], subject: dict[str, Any]) -> ClaimPayload:
    """Parse a credentialSubject into the claim variant named by the credential type.

    Raises:
        MalformedCredentialError: If no supported claim type is listed or the
            subject lacks required fields.
    """
    for credential_type in types:
        claim_cls = CLAIM_TYPES.get(credential_type)
        if claim_cls is None:
            continue
        try:
            return claim_cls.from_subject(subject)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedCredentialError(
                f"Invalid {credential_type} subject: {e}"
            ) from e
    raise MalformedCredentialError(f"No supported claim type in {types}")


@dataclass
class Proof:
    """Detached signature block attached to a credential."""

    verification_method: str
    jws: str
    created: str
    type: str = PROOF_TYPE
    proof_purpose: str = PROOF_PURPOSE

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.type,
            "created": self.created,
            "proofPurpose": self.proof_purpose,
            "verificationMethod": self.verification_method,
            "jws": self.jws,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Proof:
        return cls(
            type=data.get("type", PROOF_TYPE),
            created=data.get("created", ""),
            proof_purpose=data.get("proofPurpose", PROOF_PURPOSE),
            verification_method=data.get("verificationMethod", ""),
            jws=data.get("jws", ""),
        )


@dataclass
class CredentialStatus:
    """StatusList2021Entry pointing at one bit of an issuer's revocation list.

    A parsed entry renders back exactly as it arrived. Absent members stay
    absent and the index keeps its JSON type. Unknown members go to ``extra``.
    """

    status_list_credential: str
    status_list_index: int
    id: str | None = None
    type: str = STATUS_TYPE
    status_purpose: str | None = STATUS_PURPOSE
    index_type: Any = str
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def list_index(self) -> int:
        return parse_list_index(self.status_list_credential)

    @property
    def bit_index(self) -> int:
        return self.status_list_index

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["type"] = self.type
        if self.status_purpose is not None:
            data["statusPurpose"] = self.status_purpose
        data["statusListIndex"] = self.index_type(self.status_list_index)
        data["statusListCredential"] = self.status_list_credential
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialStatus:
        """Parse a credentialStatus object.

        Raises:
            UnsupportedStatusTypeError: If the type is not StatusList2021Entry.
            MalformedStatusURIError: If statusListCredential has no list index.
            BitIndexOutOfRangeError: If statusListIndex is not in [0, 256).
        """
        if not isinstance(data, dict):
            raise MalformedCredentialError("credentialStatus must be an object")
        status_type = data.get("type")
        if status_type != STATUS_TYPE:
            raise UnsupportedStatusTypeError(
                f"Unsupported credential status type: {status_type}"
            )
        purpose = data.get("statusPurpose")
        if purpose is not None and purpose != STATUS_PURPOSE:
            raise UnsupportedStatusTypeError(f"Unsupported status purpose: {purpose}")
        uri = data.get("statusListCredential")
        parse_list_index(uri)
        index = data.get("statusListIndex")
        return cls(
            id=data.get("id"),
            type=status_type,
            status_purpose=purpose,
            status_list_credential=uri,
            status_list_index=parse_bit_index(index),
            index_type=type(index),
            extra={k: v for k, v in data.items() if k not in _STATUS_MEMBERS},
        )


def parse_list_index(uri: Any) -> int:
    """Read the list index from the last path segment of a status list URI.

    ``https://veritas.id/credentials/status/0`` -> 0

    Raises:
        MalformedStatusURIError: If the last segment is not a non-negative integer.
    """
    if not isinstance(uri, str) or not uri:
        raise MalformedStatusURIError(f"Invalid status list credential URI: {uri!r}")
    last = uri.split("#")[0].split("?")[0].rstrip().split("/")[-1]
    # str.isdigit also accepts superscripts and other non-ASCII digits
    if not (last.isascii() and last.isdigit()):
        raise MalformedStatusURIError(f"Invalid status list credential URI: {uri}")
    return int(last)


def parse_bit_index(value: Any) -> int:
    """Parse statusListIndex, which must be an integer in [0, 256).

    Accepts an int, an integral float or a string of ASCII digits.

    Raises:
        BitIndexOutOfRangeError: If the value is not an in-range integer.
    """
    if isinstance(value, bool):
        raise BitIndexOutOfRangeError(f"Invalid status list index: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise BitIndexOutOfRangeError(f"Status list index must be an integer, got {value!r}")
        index = int(value)
    elif isinstance(value, int):
        index = value
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        index = int(value)
    else:
        raise BitIndexOutOfRangeError(f"Invalid status list index: {value!r}")
    if not 0 <= index < STATUS_LIST_SIZE:
        raise BitIndexOutOfRangeError(
            f"Status list index {index} out of range [0, {STATUS_LIST_SIZE})"
        )
    return index


def status_entry(base_url: str, list_index: int, bit_index: int) -> CredentialStatus:
    """Build a status entry for bit ``bit_index`` of list ``list_index``."""
    if list_index < 0:
        raise ValueError(f"List index must be non-negative, got {list_index}")
    uri = f"{base_url.rstrip('/')}/{list_index}"
    bit_index = parse_bit_index(bit_index)
    return CredentialStatus(
        id=f"{uri}#{bit_index}",
        status_list_credential=uri,
        status_list_index=bit_index,
    )


@dataclass
class Credential:
    """A Verifiable Credential, signed once ``proof`` is set.

    Top-level members this model does not know are kept in ``extra`` so that
    a parsed credential renders, and therefore canonicalizes, exactly as it
    was signed.
    """

    id: str
    issuer: str
    issuance_date: str
    credential_subject: dict[str, Any]
    type: list[str] = field(default_factory=lambda: [VC_TYPE])
    context: list[str] = field(default_factory=lambda: [VC_CONTEXT])
    expiration_date: str | None = None
    credential_status: CredentialStatus | None = None
    proof: Proof | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def claim(self) -> ClaimPayload:
        return claim_from_subject(self.type, self.credential_subject)

    def unsigned_dict(self) -> dict[str, Any]:
        """Wire form without the proof, i.e. the document that gets signed."""
        data: dict[str, Any] = {
            "@context": list(self.context),
            "id": self.id,
            "type": list(self.type),
            "issuer": self.issuer,
            "issuanceDate": self.issuance_date,
        }
        if self.expiration_date is not None:
            data["expirationDate"] = self.expiration_date
        data["credentialSubject"] = self.credential_subject
        if self.credential_status is not None:
            data["credentialStatus"] = self.credential_status.to_dict()
        data.update(self.extra)
        return data

    def to_dict(self) -> dict[str, Any]:
        data = self.unsigned_dict()
        if self.proof is not None:
            data["proof"] = self.proof.to_dict()
        return data

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        """Parse a wire-format credential.

        Raises:
            MalformedCredentialError: If required fields are missing.
        """
        try:
            for member in ("@context", "type"):
                if not isinstance(data[member], list):
                    raise MalformedCredentialError(f"{member} must be a list")
            status = data.get("credentialStatus")
            proof = data.get("proof")
            extra = {k: v for k, v in data.items() if k not in _CREDENTIAL_MEMBERS}
            if status is not None and not status:
                extra["credentialStatus"] = status
            return cls(
                context=list(data["@context"]),
                id=data["id"],
                type=list(data["type"]),
                issuer=data["issuer"],
                issuance_date=data["issuanceDate"],
                expiration_date=data.get("expirationDate"),
                credential_subject=data["credentialSubject"],
                credential_status=CredentialStatus.from_dict(status) if status else None,
                proof=Proof.from_dict(proof) if proof else None,
                extra=extra,
            )
        except (KeyError, TypeError) as e:
            raise MalformedCredentialError(f"Invalid credential: {e}") from e

    @classmethod
    def from_json(cls, text: str) -> Credential:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedCredentialError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedCredentialError("Credential JSON must be an object")
        return cls.from_dict(data)
