"""
Credential construction and issuance.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from veritas_vc.credential import (
    VC_CONTEXT,
    VC_TYPE,
    ClaimPayload,
    Credential,
    CredentialStatus,
    EmploymentClaim,
    format_timestamp,
    status_entry,
)
from veritas_vc.crypto import generate_private_key, private_key_to_address
from veritas_vc.did import DEFAULT_NETWORK, encode_ethr
from veritas_vc.proof import ProofEngine
from veritas_vc.statuslist import STATUS_LIST_SIZE, StatusListRegistry

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DAYS = 365
DEFAULT_STATUS_BASE_URL = "https://veritas.id/credentials/status"


def new_credential_id() -> str:
    """Return a fresh ``urn:uuid:`` id carrying 128 random bits."""
    return f"urn:uuid:{secrets.token_hex(16)}"


def create_did_from_address(address: str, network: str = DEFAULT_NETWORK) -> str:
    return encode_ethr(network, address)


def get_address_from_private_key(private_key: str | bytes) -> str:
    return private_key_to_address(private_key)


def build_credential(
    claim: ClaimPayload,
    issuer_did: str,
    holder_did: str,
    expires_in_days: int | None = None,
    status: CredentialStatus | None = None,
    now: datetime | None = None,
) -> Credential:
    """Assemble an unsigned credential for a claim.

    Args:
        claim: Employment or GitHub reputation claim.
        issuer_did: DID of the issuing party.
        holder_did: DID of the subject; used when the claim has no subject id.
        expires_in_days: Validity period. No expirationDate when omitted.
        status: Optional revocation status entry.
        now: Issuance time. Defaults to the current time.

    Returns:
        A credential with no proof, ready for signing.
    """
    issued_at = now or datetime.now(timezone.utc)
    if claim.subject_id is None:
        claim = replace(claim, subject_id=holder_did)

    expiration_date = None
    if expires_in_days:
        expiration_date = format_timestamp(issued_at + timedelta(days=expires_in_days))

    return Credential(
        context=[VC_CONTEXT, claim.context],
        id=new_credential_id(),
        type=[VC_TYPE, claim.credential_type],
        issuer=issuer_did,
        issuance_date=format_timestamp(issued_at),
        expiration_date=expiration_date,
        credential_subject=claim.to_subject(),
        credential_status=status,
    )


def issue_credential(
    claim: ClaimPayload,
    private_key: str | bytes,
    issuer_did: str,
    holder_did: str,
    expires_in_days: int | None = None,
    status: CredentialStatus | None = None,
    proof_engine: ProofEngine | None = None,
) -> Credential:
    """Build and sign a credential in one step."""
    credential = build_credential(
        claim,
        issuer_did=issuer_did,
        holder_did=holder_did,
        expires_in_days=expires_in_days,
        status=status,
    )
    return (proof_engine or ProofEngine()).attach(credential, private_key)


class CredentialIssuer:
    """Issuing service bound to one issuer key.

    The issuer DID is the did:ethr of the key's address. When a status
    registry is given, every credential receives the next free bit of the
    current status list, and revocation goes through that registry.
    """

    def __init__(
        self,
        private_key: str | bytes | None = None,
        network: str = DEFAULT_NETWORK,
        registry: StatusListRegistry | None = None,
        status_base_url: str = DEFAULT_STATUS_BASE_URL,
        default_expiry_days: int | None = DEFAULT_EXPIRY_DAYS,
    ) -> None:
        if private_key is None:
            logger.warning("No issuer key configured, generating an ephemeral development key")
            private_key = generate_private_key()
        self._private_key = private_key
        self.address = get_address_from_private_key(private_key)
        self.did = create_did_from_address(self.address, network)
        self.registry = registry
        self.status_base_url = status_base_url
        self.default_expiry_days = default_expiry_days
        self.proof_engine = ProofEngine()
        self._next_slot = 0
        self._slot_lock = threading.Lock()
        logger.info("Issuer initialized with DID: %s", self.did)

    def next_status_entry(self) -> CredentialStatus:
        """Allocate the next unused (list, bit) slot."""
        with self._slot_lock:
            slot = self._next_slot
            self._next_slot += 1
        list_index, bit_index = divmod(slot, STATUS_LIST_SIZE)
        return status_entry(self.status_base_url, list_index, bit_index)

    def issue(
        self,
        claim: ClaimPayload,
        holder_did: str,
        expires_in_days: int | None = None,
    ) -> Credential:
        status = self.next_status_entry() if self.registry is not None else None
        return issue_credential(
            claim,
            private_key=self._private_key,
            issuer_did=self.did,
            holder_did=holder_did,
            expires_in_days=expires_in_days or self.default_expiry_days,
            status=status,
            proof_engine=self.proof_engine,
        )

    def issue_employment(
        self,
        holder_did: str,
        employer: str,
        role: str,
        start_date: str,
        end_date: str | None = None,
        expires_in_days: int | None = None,
    ) -> Credential:
        claim = EmploymentClaim(
            employer=employer,
            role=role,
            start_date=start_date,
            end_date=end_date,
        )
        return self.issue(claim, holder_did, expires_in_days=expires_in_days)

    def _status_of(self, credential: Credential) -> CredentialStatus:
        if self.registry is None:
            raise RuntimeError("Issuer has no status registry")
        if credential.credential_status is None:
            raise ValueError(f"Credential {credential.id} has no credentialStatus")
        return credential.credential_status

    def revoke(self, credential: Credential) -> None:
        status = self._status_of(credential)
        self.registry.set_bit(self.address, status.list_index, status.bit_index, True)

    def reinstate(self, credential: Credential) -> None:
        status = self._status_of(credential)
        self.registry.set_bit(self.address, status.list_index, status.bit_index, False)
