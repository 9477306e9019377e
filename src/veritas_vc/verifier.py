"""
Verifiable Credentials Verifier.

Runs a credential through four stages and stops at the first one that fails:

1. Structure (@context, type, issuer)
2. Expiration
3. Proof (signature recovered and matched to the issuer DID)
4. Revocation (only with a revocation query and a credentialStatus entry)

Problems with the credential itself are reported in the result, never raised.
If the revocation registry cannot be queried the credential is treated as not
revoked and a warning is recorded.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from veritas_vc.credential import VC_TYPE, Credential, CredentialStatus, parse_timestamp
from veritas_vc.did import KeyDID, parse_did
from veritas_vc.errors import (
    CredentialExpiredError,
    CredentialRevokedError,
    InvalidSignatureError,
    MalformedCredentialError,
    VeritasError,
)
from veritas_vc.proof import ProofEngine
from veritas_vc.statuslist import RevocationQuery

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Outcome of a verification.

    ``errors`` lists error kinds (e.g. ``"Revoked"``); ``messages`` holds the
    matching human-readable descriptions.
    """

    verified: bool
    issuer: str | None = None
    subject: Any = None
    credential_id: str | None = None
    errors: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.verified

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"verified": self.verified}
        if self.verified:
            data["issuer"] = self.issuer
            data["subject"] = self.subject
        else:
            data["errors"] = list(self.errors)
            data["messages"] = list(self.messages)
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VCVerifier:
    """Verifiable Credentials verifier.

    Supports:
    - JsonWebSignature2020 proofs carrying personal-message signatures
    - did:ethr and did:key issuers
    - StatusList2021 revocation backed by a per-issuer bitmap registry
    """

    def __init__(
        self,
        revocation_query: RevocationQuery | None = None,
        proof_engine: ProofEngine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            revocation_query: Registry to check revocation against. Revocation
                is not checked when omitted.
            proof_engine: Custom proof engine. Created if not provided.
            clock: Returns the current time; used for expiration checks.
        """
        self.revocation_query = revocation_query
        self.proof_engine = proof_engine or ProofEngine()
        self.clock = clock or _utcnow

    def verify(self, credential: Mapping[str, Any] | Credential) -> VerificationResult:
        """Verify a Verifiable Credential.

        Args:
            credential: The credential in wire form (or as a model).

        Returns:
            VerificationResult; ``verified`` is False with one error on failure.

        Raises:
            TypeError: If credential is not a credential at all.
        """
        if isinstance(credential, Credential):
            credential = credential.to_dict()
        if not isinstance(credential, Mapping):
            raise TypeError(
                f"credential must be a mapping, got {type(credential).__name__}"
            )

        warnings: list[str] = []
        credential_id = credential.get("id")
        issuer = credential.get("issuer")

        try:
            self._validate_structure(credential)
            self._check_expiration(credential)
            self._check_signature(credential)
            self._check_revocation(credential, warnings)
        except VeritasError as e:
            return VerificationResult(
                verified=False,
                issuer=issuer if isinstance(issuer, str) else None,
                credential_id=credential_id,
                errors=[e.code],
                messages=[str(e)],
                warnings=warnings,
            )

        return VerificationResult(
            verified=True,
            issuer=issuer,
            subject=credential.get("credentialSubject"),
            credential_id=credential_id,
            warnings=warnings,
        )

    def _validate_structure(self, credential: Mapping[str, Any]) -> None:
        """Validate basic VC structure.

        Raises:
            MalformedCredentialError: If a required member is missing or malformed.
        """
        context = credential.get("@context")
        if not context or not isinstance(context, list) or not all(
            isinstance(c, str) for c in context
        ):
            raise MalformedCredentialError("Invalid credential structure: @context")

        types = credential.get("type")
        if not types or not isinstance(types, list) or VC_TYPE not in types:
            raise MalformedCredentialError(
                f"Invalid credential structure: type must include '{VC_TYPE}'"
            )

        issuer = credential.get("issuer")
        if not isinstance(issuer, str) or not issuer.startswith("did:"):
            raise MalformedCredentialError("Invalid credential structure: issuer")

    def _check_expiration(self, credential: Mapping[str, Any]) -> None:
        expiration = credential.get("expirationDate")
        if expiration is None:
            return
        try:
            expires_at = parse_timestamp(expiration)
        except ValueError as e:
            raise MalformedCredentialError(f"Invalid expirationDate: {expiration!r}") from e
        if expires_at < self.clock():
            raise CredentialExpiredError(f"Credential has expired ({expiration})")

    def _check_signature(self, credential: Mapping[str, Any]) -> None:
        if not self.proof_engine.validate(credential):
            raise InvalidSignatureError("Invalid signature")

    def _revocation_identity(self, credential: Mapping[str, Any]) -> str:
        """Issuer address whose status lists cover this credential."""
        method = parse_did(credential["issuer"])
        if isinstance(method, KeyDID):
            return self.proof_engine.recover_signer(credential, credential["proof"]["jws"])
        return method.address

    def _check_revocation(self, credential: Mapping[str, Any], warnings: list[str]) -> None:
        status_data = credential.get("credentialStatus")
        if self.revocation_query is None or not status_data:
            return

        status = CredentialStatus.from_dict(status_data)
        identity = self._revocation_identity(credential)

        try:
            revoked = self.revocation_query.is_revoked(
                identity, status.list_index, status.bit_index
            )
        except Exception as e:
            # Registry unavailable: proceed as not revoked
            logger.warning(
                "Revocation check failed for %s, treating as not revoked: %s",
                credential.get("id"),
                e,
            )
            warnings.append(f"Could not verify status: {e}")
            return

        if revoked:
            raise CredentialRevokedError(
                f"Credential has been revoked (list {status.list_index}, "
                f"index {status.bit_index})"
            )


def verify_credential(
    credential: Mapping[str, Any] | Credential,
    revocation_query: RevocationQuery | None = None,
) -> VerificationResult:
    """Convenience function to verify a credential.

    Args:
        credential: The Verifiable Credential to verify.
        revocation_query: Optional registry for the revocation check.

    Returns:
        VerificationResult with the outcome.
    """
    verifier = VCVerifier(revocation_query=revocation_query)
    return verifier.verify(credential)


def generate_challenge() -> str:
    """Random 32-byte challenge for presentation requests, as 0x hex."""
    return "0x" + secrets.token_hex(32)
