"""
DID codec for the did:ethr and did:key methods.

did:ethr:<network>:<address>
    The address is a 20-byte account identifier in EIP-55 checksum form.

did:key:z<base58btc(0xe7 0x01 || compressed secp256k1 point)>
    Self-certifying. The public key is recovered by decoding the string.

Parsing produces a tagged ``EthrDID`` or ``KeyDID`` value; callers branch on
the variant type rather than on string prefixes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Union

import base58

from veritas_vc.crypto import (
    compress_public_key,
    is_address,
    public_key_from_private,
    public_key_to_address,
    to_checksum_address,
)
from veritas_vc.errors import (
    InvalidAddressError,
    MalformedDIDError,
    UnsupportedDIDMethodError,
)

ETHR_PREFIX = "did:ethr:"
KEY_PREFIX = "did:key:"
MULTIBASE_BASE58BTC = "z"
SECP256K1_PUB_CODEC = b"\xe7\x01"
DEFAULT_NETWORK = "polygon"
KEY_FRAGMENT = "#key-1"


class _RecoverFromSignature:
    """Sentinel returned for DIDs with no static address."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "RECOVER_FROM_SIGNATURE"

    def __bool__(self) -> bool:
        return False


RECOVER_FROM_SIGNATURE: Final = _RecoverFromSignature()


@dataclass(frozen=True)
class EthrDID:
    """did:ethr identifier bound to an account address."""

    network: str
    address: str

    @property
    def id(self) -> str:
        return f"{ETHR_PREFIX}{self.network}:{self.address}"

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class KeyDID:
    """did:key identifier carrying a compressed secp256k1 public key."""

    public_key: bytes

    @property
    def id(self) -> str:
        return encode_key(self.public_key)

    @property
    def address(self) -> str:
        """Account address derived from the embedded public key."""
        return public_key_to_address(self.public_key)

    def __str__(self) -> str:
        return self.id


DIDMethod = Union[EthrDID, KeyDID]


@dataclass(frozen=True)
class DID:
    """A DID string together with the public key it was minted from."""

    id: str
    public_key: bytes

    @classmethod
    def from_public_key(cls, public_key: bytes) -> DID:
        """Mint a did:key DID record for a public key."""
        compressed = _compress(public_key)
        return cls(id=encode_key(compressed), public_key=compressed)

    @classmethod
    def from_private_key(cls, private_key: str | bytes) -> DID:
        return cls.from_public_key(public_key_from_private(private_key))

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "publicKey": self.public_key.hex()}


def _compress(public_key: bytes) -> bytes:
    try:
        return compress_public_key(bytes(public_key))
    except ValueError as e:
        raise MalformedDIDError(f"Not a secp256k1 public key: {e}") from e


def encode_ethr(network: str, address: str) -> str:
    """Encode an account address as a did:ethr DID.

    Args:
        network: Network name (e.g. "polygon").
        address: 0x-prefixed 20-byte hex address, any case.

    Returns:
        ``did:ethr:<network>:<checksum address>``.

    Raises:
        InvalidAddressError: If address is not well formed.
    """
    if not is_address(address):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    if not network or ":" in network:
        raise MalformedDIDError(f"Invalid network name: {network!r}")
    return f"{ETHR_PREFIX}{network}:{to_checksum_address(address)}"


def encode_key(public_key: bytes) -> str:
    """Encode a secp256k1 public key as a did:key DID.

    Only the 33-byte compressed form is accepted, so ``decode_key`` returns
    exactly the bytes that were encoded. ``DID.from_public_key`` compresses
    a 65-byte key before encoding it.

    Raises:
        MalformedDIDError: If public_key is not a compressed secp256k1 point.
    """
    public_key = bytes(public_key)
    if len(public_key) != 33:
        raise MalformedDIDError(
            f"did:key needs a 33-byte compressed key, got {len(public_key)} bytes"
        )
    tagged = SECP256K1_PUB_CODEC + _compress(public_key)
    return f"{KEY_PREFIX}{MULTIBASE_BASE58BTC}{base58.b58encode(tagged).decode('ascii')}"


def decode_key(did: str) -> bytes:
    """Decode a did:key DID to its compressed public key.

    Raises:
        MalformedDIDError: If the prefix, alphabet, multicodec tag or point is invalid.
    """
    if not isinstance(did, str) or not did.startswith(KEY_PREFIX):
        raise MalformedDIDError(f"Not a did:key identifier: {did!r}")
    encoded = did[len(KEY_PREFIX):].split("#")[0]
    if not encoded.startswith(MULTIBASE_BASE58BTC) or len(encoded) < 2:
        raise MalformedDIDError(f"did:key must use base58btc multibase: {did}")
    try:
        tagged = base58.b58decode(encoded[1:])
    except ValueError as e:
        raise MalformedDIDError(f"Invalid base58 in {did}") from e
    if not tagged.startswith(SECP256K1_PUB_CODEC):
        raise MalformedDIDError(f"Unsupported multicodec in {did}")
    public_key = tagged[len(SECP256K1_PUB_CODEC):]
    if len(public_key) != 33:
        raise MalformedDIDError(f"Expected a 33-byte compressed key in {did}")
    return _compress(public_key)


def parse_did(did: str) -> DIDMethod:
    """Parse a DID string (fragment allowed) into its method variant.

    Raises:
        MalformedDIDError: If the string is not a DID or is malformed.
        UnsupportedDIDMethodError: For methods other than ethr and key.
        InvalidAddressError: If a did:ethr address is not well formed.
    """
    if not isinstance(did, str) or not did.startswith("did:"):
        raise MalformedDIDError(f"Not a DID: {did!r}")

    base = did.split("#")[0]
    if base.startswith(ETHR_PREFIX):
        parts = base.split(":")
        if len(parts) != 4 or not parts[2]:
            raise MalformedDIDError(f"Invalid did:ethr format: {did}")
        if not is_address(parts[3]):
            raise InvalidAddressError(f"Invalid address in {did}")
        return EthrDID(network=parts[2], address=to_checksum_address(parts[3]))

    if base.startswith(KEY_PREFIX):
        return KeyDID(public_key=decode_key(base))

    method = base.split(":")[1] if base.count(":") >= 1 else ""
    raise UnsupportedDIDMethodError(f"Unsupported DID method: {method or did}")


def extract_identity(did: str) -> str | _RecoverFromSignature:
    """Map a DID to the account identity it names.

    Returns:
        The checksummed address for did:ethr, or ``RECOVER_FROM_SIGNATURE``
        for did:key, whose identity must come from signature recovery.
    """
    method = parse_did(did)
    if isinstance(method, EthrDID):
        return method.address
    return RECOVER_FROM_SIGNATURE


def verification_method_for(did: str) -> str:
    """Return the verification method reference used in proofs."""
    return f"{did}{KEY_FRAGMENT}"
