"""
StatusList revocation registry.

Each issuer owns any number of status lists. A list is one 256-bit word;
bit ``i`` is ``(word >> i) & 1``, so bit 0 is the least significant bit.
A set bit means the credential at that index is revoked. Lists that were
never written read as all zeros.

Only the issuer may change its own lists. Updates are serialized per
``(issuer, list_index)`` word so that concurrent writers targeting different
bits of one word never lose each other's changes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Protocol

from veritas_vc.crypto import is_address, recover_address
from veritas_vc.errors import (
    BitIndexOutOfRangeError,
    InvalidAddressError,
    InvalidSignatureError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

STATUS_LIST_SIZE = 256
WORD_MASK = (1 << STATUS_LIST_SIZE) - 1


class RevocationQuery(Protocol):
    """Read-only view of a revocation registry."""

    def is_revoked(self, issuer: str, list_index: int, bit_index: int) -> bool:
        ...


@dataclass(frozen=True)
class StatusUpdated:
    """Record of one bit write, in the order it was applied."""

    issuer: str
    list_index: int
    bit_index: int
    value: bool


def check_bit_index(bit_index: int) -> int:
    """Validate a bit index.

    Raises:
        BitIndexOutOfRangeError: If bit_index is not in [0, 256).
    """
    if isinstance(bit_index, bool) or not isinstance(bit_index, int):
        raise BitIndexOutOfRangeError(f"Bit index must be an integer, got {bit_index!r}")
    if not 0 <= bit_index < STATUS_LIST_SIZE:
        raise BitIndexOutOfRangeError(
            f"Bit index must be < {STATUS_LIST_SIZE}, got {bit_index}"
        )
    return bit_index


def check_list_index(list_index: int) -> int:
    if isinstance(list_index, bool) or not isinstance(list_index, int) or list_index < 0:
        raise ValueError(f"List index must be a non-negative integer, got {list_index!r}")
    if list_index > WORD_MASK:
        raise ValueError(f"List index {list_index} exceeds uint256")
    return list_index


def get_bit(word: int, bit_index: int) -> bool:
    """Read one bit of a status word."""
    return bool((word >> check_bit_index(bit_index)) & 1)


def set_bit(word: int, bit_index: int, value: bool) -> int:
    """Return ``word`` with one bit set or cleared."""
    mask = 1 << check_bit_index(bit_index)
    return (word | mask) if value else (word & ~mask & WORD_MASK)


def encode_list(word: int) -> str:
    """Render a status word as 0x-prefixed 32-byte big-endian hex."""
    return "0x" + (word & WORD_MASK).to_bytes(32, byteorder="big").hex()


def decode_list(data: str) -> int:
    """Parse a 32-byte big-endian hex status word.

    Raises:
        ValueError: If data is not at most 32 bytes of hex.
    """
    text = data[2:] if data[:2] in ("0x", "0X") else data
    raw = bytes.fromhex(text)
    if len(raw) > 32:
        raise ValueError(f"Status word must be at most 32 bytes, got {len(raw)}")
    return int.from_bytes(raw, byteorder="big")


def _issuer_key(issuer: str) -> str:
    if not is_address(issuer):
        raise InvalidAddressError(f"Invalid issuer address: {issuer!r}")
    return issuer.lower()


def update_message(
    issuer: str,
    list_index: int,
    bit_indices: Iterable[int],
    value: bool,
    nonce: int,
) -> str:
    """Text an issuer signs to authorize a status update."""
    bits = ",".join(str(b) for b in sorted(set(bit_indices)))
    return (
        "Veritas status update\n"
        f"Issuer: {issuer.lower()}\n"
        f"List: {list_index}\n"
        f"Bits: {bits}\n"
        f"Revoked: {str(bool(value)).lower()}\n"
        f"Nonce: {nonce}"
    )


class StatusListRegistry:
    """In-process revocation bitmap store.

    Also satisfies ``RevocationQuery`` so it can be handed straight to a
    verifier.
    """

    def __init__(self) -> None:
        self._lists: dict[tuple[str, int], int] = {}
        self._locks: dict[tuple[str, int], threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._events: list[StatusUpdated] = []
        self._events_lock = threading.Lock()
        self._nonces: dict[str, int] = {}
        self._issuer_locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: tuple[str, int]) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _issuer_lock_for(self, issuer_key: str) -> threading.Lock:
        """Lock ordering signed updates of one issuer; taken before any word lock."""
        with self._locks_guard:
            lock = self._issuer_locks.get(issuer_key)
            if lock is None:
                lock = self._issuer_locks[issuer_key] = threading.Lock()
            return lock

    def _write(self, issuer: str, list_index: int, bit_indices: list[int], value: bool) -> None:
        key = (_issuer_key(issuer), check_list_index(list_index))
        for bit_index in bit_indices:
            check_bit_index(bit_index)
        if not bit_indices:
            return

        with self._lock_for(key):
            word = self._lists.get(key, 0)
            for bit_index in bit_indices:
                word = set_bit(word, bit_index, value)
            self._lists[key] = word
            with self._events_lock:
                self._events.extend(
                    StatusUpdated(key[0], key[1], bit_index, value)
                    for bit_index in bit_indices
                )
        logger.debug(
            "Status list %s/%d: bits %s set to %s", key[0], key[1], bit_indices, value
        )

    def set_bit(self, issuer: str, list_index: int, bit_index: int, value: bool) -> None:
        """Set or clear one bit of the issuer's own status list.

        Args:
            issuer: Address of the calling issuer; only its lists are touched.
            list_index: Status list number.
            bit_index: Bit within the list, 0..255.
            value: True to revoke, False to reinstate.

        Raises:
            BitIndexOutOfRangeError: If bit_index >= 256.
        """
        self._write(issuer, list_index, [bit_index], value)

    def set_bits(
        self,
        issuer: str,
        list_index: int,
        bit_indices: Iterable[int],
        value: bool,
    ) -> None:
        """Batch form of ``set_bit``. All indices are validated before any write."""
        self._write(issuer, list_index, list(bit_indices), value)

    def get_bit(self, issuer: str, list_index: int, bit_index: int) -> bool:
        key = (_issuer_key(issuer), check_list_index(list_index))
        return get_bit(self._lists.get(key, 0), bit_index)

    def is_revoked(self, issuer: str, list_index: int, bit_index: int) -> bool:
        return self.get_bit(issuer, list_index, bit_index)

    def get_list(self, issuer: str, list_index: int) -> int:
        """Return the raw 256-bit status word."""
        key = (_issuer_key(issuer), check_list_index(list_index))
        return self._lists.get(key, 0)

    def events(self, issuer: str | None = None) -> list[StatusUpdated]:
        with self._events_lock:
            events = list(self._events)
        if issuer is None:
            return events
        wanted = _issuer_key(issuer)
        return [e for e in events if e.issuer == wanted]

    def nonce_of(self, issuer: str) -> int:
        """Next nonce the issuer must sign for ``apply_signed_update``."""
        return self._nonces.get(_issuer_key(issuer), 0)

    def apply_signed_update(
        self,
        issuer: str,
        list_index: int,
        bit_indices: Iterable[int],
        value: bool,
        signature: str,
    ) -> None:
        """Apply an update authorized by the issuer's personal-message signature.

        The signature must cover ``update_message(...)`` with the issuer's
        current nonce. The nonce advances on success so a signature cannot be
        replayed, and an issuer's signed updates land in nonce order. An update
        signed for a later nonce is rejected until the earlier ones are applied.

        Raises:
            UnauthorizedError: If the signer is not the issuer or the nonce is stale.
        """
        bits = list(bit_indices)
        key = _issuer_key(issuer)
        check_list_index(list_index)
        for bit_index in bits:
            check_bit_index(bit_index)

        nonce = self.nonce_of(issuer)
        message = update_message(issuer, list_index, bits, value, nonce)
        try:
            signer = recover_address(message, signature)
        except InvalidSignatureError as e:
            raise UnauthorizedError(f"Invalid update signature: {e}") from e
        if signer.lower() != key:
            raise UnauthorizedError(f"Update for {issuer} was signed by {signer}")

        with self._issuer_lock_for(key):
            if self._nonces.get(key, 0) != nonce:
                raise UnauthorizedError(f"Stale update nonce {nonce} for {issuer}")
            self._write(issuer, list_index, bits, value)
            self._nonces[key] = nonce + 1
