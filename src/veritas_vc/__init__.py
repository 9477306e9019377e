"""
veritas-vc - Verifiable Credentials anchored to did:ethr / did:key identifiers.

Supports:
- did:ethr and did:key (secp256k1) DID encoding
- Employment and GitHub reputation credentials
- JsonWebSignature2020 proofs with EIP-191 personal-message signatures
- Per-issuer 256-bit StatusList revocation bitmaps, local or on chain
"""

from veritas_vc.chain import RegistryClient
from veritas_vc.credential import (
    Credential,
    CredentialStatus,
    EmploymentClaim,
    GitHubReputationClaim,
    Proof,
    status_entry,
)
from veritas_vc.did import (
    DID,
    RECOVER_FROM_SIGNATURE,
    EthrDID,
    KeyDID,
    decode_key,
    encode_ethr,
    encode_key,
    extract_identity,
    parse_did,
)
from veritas_vc.issuer import CredentialIssuer, build_credential, issue_credential
from veritas_vc.ledger import InMemoryAccountRepository, VerificationService
from veritas_vc.proof import ProofEngine, canonicalize
from veritas_vc.statuslist import StatusListRegistry
from veritas_vc.verifier import VCVerifier, VerificationResult, verify_credential

__version__ = "0.1.0"

__all__ = [
    "Credential",
    "CredentialIssuer",
    "CredentialStatus",
    "DID",
    "EmploymentClaim",
    "EthrDID",
    "GitHubReputationClaim",
    "InMemoryAccountRepository",
    "KeyDID",
    "Proof",
    "ProofEngine",
    "RECOVER_FROM_SIGNATURE",
    "RegistryClient",
    "StatusListRegistry",
    "VCVerifier",
    "VerificationResult",
    "VerificationService",
    "build_credential",
    "canonicalize",
    "decode_key",
    "encode_ethr",
    "encode_key",
    "extract_identity",
    "issue_credential",
    "parse_did",
    "status_entry",
    "verify_credential",
]
