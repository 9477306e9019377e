"""
Error types for credential issuance and verification.

Every error carries a ``code`` naming its kind. The verification pipeline
reports these codes in ``VerificationResult.errors`` instead of raising.
"""

from __future__ import annotations


class VeritasError(Exception):
    """Base class for all veritas-vc errors."""

    code = "VeritasError"


class MalformedDIDError(VeritasError):
    """Raised when a DID string cannot be parsed."""

    code = "MalformedDID"


class InvalidAddressError(VeritasError):
    """Raised when an account address is not 20 bytes of hex."""

    code = "InvalidAddress"


class UnsupportedDIDMethodError(VeritasError):
    """Raised for DID methods other than did:ethr and did:key."""

    code = "UnsupportedDIDMethod"


class MalformedCredentialError(VeritasError):
    """Raised when a credential is missing required fields."""

    code = "MalformedCredential"


class CredentialExpiredError(VeritasError):
    code = "Expired"


class InvalidSignatureError(VeritasError):
    """Raised when a signature is malformed or cannot be recovered."""

    code = "InvalidSignature"


class UnsupportedStatusTypeError(VeritasError):
    code = "UnsupportedStatusType"


class MalformedStatusURIError(VeritasError):
    """Raised when statusListCredential does not end in a list index."""

    code = "MalformedStatusURI"


class CredentialRevokedError(VeritasError):
    code = "Revoked"


class BitIndexOutOfRangeError(VeritasError):
    """Raised when a status bit index is outside [0, 256)."""

    code = "BitIndexOutOfRange"


class StatusQueryError(VeritasError):
    """Raised when the revocation registry cannot be reached or answers badly."""

    code = "StatusQueryError"


class AccountNotFoundError(VeritasError):
    code = "AccountNotFound"


class UnauthorizedError(VeritasError):
    """Raised when a caller may not perform an operation."""

    code = "Unauthorized"


class InsufficientBalanceError(UnauthorizedError):
    """Raised when a verifier account cannot pay the verification fee."""

    code = "InsufficientBalance"
