"""
secp256k1 key handling and Ethereum personal-message signatures.

Signatures follow EIP-191 ``personal_sign``: the message is prefixed with
``"\\x19Ethereum Signed Message:\\n" + len(message)`` and hashed with
keccak256. A signature is 65 bytes ``r || s || v`` rendered as ``0x`` hex,
with ``v`` in {27, 28}, so the signer's address can be recovered without
knowing it in advance.
"""

from __future__ import annotations

import re
import secrets

from coincurve import PrivateKey as RecoverableKey
from coincurve import PublicKey as RecoveredKey
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from Crypto.Hash import keccak

from veritas_vc.errors import InvalidAddressError, InvalidSignatureError

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"
SIGNATURE_LENGTH = 65

# Order of the secp256k1 group
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def keccak256(data: bytes) -> bytes:
    """Return the keccak256 digest (pre-standard SHA-3 padding) of data."""
    return keccak.new(digest_bits=256, data=data).digest()


def hash_personal_message(message: str | bytes) -> bytes:
    """Hash a message the way ``personal_sign`` does."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    prefix = PERSONAL_MESSAGE_PREFIX + str(len(message)).encode("ascii")
    return keccak256(prefix + message)


def _strip_hex(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def private_key_from_hex(value: str | bytes) -> bytes:
    """Normalize a private key given as raw bytes or hex (with or without 0x).

    Raises:
        ValueError: If the value is not a valid secp256k1 scalar.
    """
    if isinstance(value, str):
        try:
            value = bytes.fromhex(_strip_hex(value.strip()))
        except ValueError as e:
            raise ValueError("Private key is not valid hex") from e
    if len(value) != 32:
        raise ValueError(f"Private key must be 32 bytes, got {len(value)}")
    scalar = int.from_bytes(value, byteorder="big")
    if not 0 < scalar < SECP256K1_N:
        raise ValueError("Private key is outside the secp256k1 group order")
    return bytes(value)


def generate_private_key() -> str:
    """Generate a random private key as 0x-prefixed hex."""
    while True:
        candidate = secrets.token_bytes(32)
        if 0 < int.from_bytes(candidate, byteorder="big") < SECP256K1_N:
            return "0x" + candidate.hex()


def load_public_key(public_key: bytes) -> ec.EllipticCurvePublicKey:
    """Load an SEC1-encoded secp256k1 point (compressed or uncompressed).

    Raises:
        ValueError: If the bytes are not a point on the curve.
    """
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)


def compress_public_key(public_key: bytes) -> bytes:
    """Return the 33-byte compressed form of a secp256k1 public key."""
    return load_public_key(public_key).public_bytes(
        Encoding.X962, PublicFormat.CompressedPoint
    )


def public_key_from_private(private_key: str | bytes, compressed: bool = True) -> bytes:
    """Derive the SEC1-encoded public key for a private key."""
    secret = private_key_from_hex(private_key)
    key = ec.derive_private_key(int.from_bytes(secret, byteorder="big"), ec.SECP256K1())
    fmt = PublicFormat.CompressedPoint if compressed else PublicFormat.UncompressedPoint
    return key.public_key().public_bytes(Encoding.X962, fmt)


def is_address(value: object) -> bool:
    """Check for a 0x-prefixed 20-byte hex account address."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def to_checksum_address(address: str) -> str:
    """Render an address in EIP-55 mixed-case checksum form.

    Raises:
        InvalidAddressError: If address is not 20 bytes of hex.
    """
    if not is_address(address):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    lowered = address[2:].lower()
    digest = keccak256(lowered.encode("ascii")).hex()
    return "0x" + "".join(
        char.upper() if int(digest[i], 16) >= 8 else char
        for i, char in enumerate(lowered)
    )


def public_key_to_address(public_key: bytes) -> str:
    """Derive the checksummed account address for a secp256k1 public key."""
    point = load_public_key(public_key).public_bytes(
        Encoding.X962, PublicFormat.UncompressedPoint
    )
    return to_checksum_address("0x" + keccak256(point[1:])[-20:].hex())


def private_key_to_address(private_key: str | bytes) -> str:
    return public_key_to_address(public_key_from_private(private_key, compressed=False))


def sign_message(message: str | bytes, private_key: str | bytes) -> str:
    """Sign a message with ``personal_sign`` semantics.

    Returns:
        The 65-byte signature as 0x-prefixed hex.
    """
    signer = RecoverableKey(private_key_from_hex(private_key))
    raw = signer.sign_recoverable(hash_personal_message(message), hasher=None)
    return "0x" + (raw[:64] + bytes([raw[64] + 27])).hex()


def _decode_signature(signature: str | bytes) -> bytes:
    if isinstance(signature, str):
        try:
            signature = bytes.fromhex(_strip_hex(signature))
        except ValueError as e:
            raise InvalidSignatureError("Signature is not valid hex") from e
    if len(signature) != SIGNATURE_LENGTH:
        raise InvalidSignatureError(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}"
        )
    v = signature[64]
    if v in (27, 28):
        v -= 27
    if v not in (0, 1):
        raise InvalidSignatureError(f"Invalid signature recovery id: {signature[64]}")
    return signature[:64] + bytes([v])


def recover_public_key(message: str | bytes, signature: str | bytes) -> bytes:
    """Recover the compressed public key that produced a personal-message signature.

    Raises:
        InvalidSignatureError: If the signature is malformed or recovery fails.
    """
    raw = _decode_signature(signature)
    try:
        recovered = RecoveredKey.from_signature_and_message(
            raw, hash_personal_message(message), hasher=None
        )
    except Exception as e:
        raise InvalidSignatureError(f"Could not recover signer: {e}") from e
    return recovered.format(compressed=True)


def recover_address(message: str | bytes, signature: str | bytes) -> str:
    """Recover the checksummed address that signed a personal message."""
    return public_key_to_address(recover_public_key(message, signature))
