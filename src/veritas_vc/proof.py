"""
Proof creation and validation for credentials.

The signed message is the canonical JSON of the credential without its
``proof`` member:

1. Remove ``proof``
2. Serialize with sorted keys, no insignificant whitespace, UTF-8 (unicode
   kept, not escaped)
3. Sign with ``personal_sign`` (EIP-191) over secp256k1

Signer and verifier share ``canonicalize`` so key order never depends on how
the document was built.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from veritas_vc.credential import Credential, Proof, format_timestamp
from veritas_vc.crypto import recover_public_key, public_key_to_address, sign_message
from veritas_vc.did import (
    EthrDID,
    KeyDID,
    encode_key,
    parse_did,
    verification_method_for,
)
from veritas_vc.errors import InvalidSignatureError, MalformedCredentialError

logger = logging.getLogger(__name__)


def canonicalize(document: Credential | Mapping[str, Any]) -> bytes:
    """Return the canonical bytes that are signed for a credential.

    Args:
        document: A credential (signed or not) as a model or wire dict.

    Returns:
        UTF-8 JSON with sorted keys and compact separators, ``proof`` removed.
    """
    if isinstance(document, Credential):
        data = document.unsigned_dict()
    else:
        data = {k: v for k, v in document.items() if k != "proof"}
    try:
        text = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise MalformedCredentialError(f"Credential is not JSON serializable: {e}") from e
    return text.encode("utf-8")


class ProofEngine:
    """Signs credentials and checks their proofs against the issuer DID.

    did:ethr issuers are checked by comparing the recovered address with the
    DID's address. For did:key issuers any recoverable signature is accepted
    unless ``strict_key_dids`` is set, in which case the DID re-derived from
    the recovered public key must equal the issuer DID.
    """

    def __init__(self, strict_key_dids: bool = False) -> None:
        self.strict_key_dids = strict_key_dids

    def sign(
        self,
        unsigned: Credential | Mapping[str, Any],
        private_key: str | bytes,
        issuer_did: str,
        now: datetime | None = None,
    ) -> Proof:
        """Create a proof over a credential.

        Args:
            unsigned: The credential to sign. Any existing proof is ignored.
            private_key: Issuer secp256k1 private key (bytes or hex).
            issuer_did: Issuer DID, used for the verification method.
            now: Proof creation time. Defaults to the current time.

        Returns:
            A JsonWebSignature2020 proof carrying the personal-message signature.
        """
        signature = sign_message(canonicalize(unsigned), private_key)
        return Proof(
            created=format_timestamp(now or datetime.now(timezone.utc)),
            verification_method=verification_method_for(issuer_did),
            jws=signature,
        )

    def attach(
        self,
        credential: Credential,
        private_key: str | bytes,
        now: datetime | None = None,
    ) -> Credential:
        """Sign a credential model in place and return it."""
        credential.proof = self.sign(credential, private_key, credential.issuer, now=now)
        return credential

    def recover_signer(self, document: Credential | Mapping[str, Any], signature: str) -> str:
        """Recover the address that signed a credential.

        Raises:
            InvalidSignatureError: If the signature is malformed.
        """
        return public_key_to_address(recover_public_key(canonicalize(document), signature))

    def validate(self, credential: Credential | Mapping[str, Any]) -> bool:
        """Check a credential's proof against its issuer.

        Returns:
            True if the signature was produced by the issuer.

        Raises:
            UnsupportedDIDMethodError: If the issuer DID method is not supported.
            MalformedDIDError: If the issuer DID cannot be parsed.
        """
        if isinstance(credential, Credential):
            issuer = credential.issuer
            signature = credential.proof.jws if credential.proof else None
        else:
            issuer = credential.get("issuer")
            proof = credential.get("proof")
            signature = proof.get("jws") if isinstance(proof, Mapping) else None

        method = parse_did(issuer)
        if not signature or not isinstance(signature, str):
            return False

        try:
            public_key = recover_public_key(canonicalize(credential), signature)
        except InvalidSignatureError as e:
            logger.debug("Signature recovery failed for %s: %s", issuer, e)
            return False

        if isinstance(method, EthrDID):
            return public_key_to_address(public_key).lower() == method.address.lower()

        if isinstance(method, KeyDID):
            if self.strict_key_dids:
                return encode_key(public_key) == method.id
            return True

        return False
