"""
Read-only client for the on-chain StatusList2021Registry contract.

Calls go through JSON-RPC ``eth_call`` against the registry's view functions::

    isRevoked(address issuer, uint256 listIndex, uint256 bitIndex) returns (bool)
    getStatusList(address issuer, uint256 listIndex) returns (uint256)
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from veritas_vc.crypto import is_address, keccak256
from veritas_vc.errors import InvalidAddressError, StatusQueryError
from veritas_vc.statuslist import check_bit_index, check_list_index

IS_REVOKED_SIGNATURE = "isRevoked(address,uint256,uint256)"
GET_STATUS_LIST_SIGNATURE = "getStatusList(address,uint256)"


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 of a canonical function signature."""
    return keccak256(signature.encode("ascii"))[:4]


def encode_address(address: str) -> bytes:
    if not is_address(address):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    return bytes(12) + bytes.fromhex(address[2:])


def encode_uint256(value: int) -> bytes:
    return value.to_bytes(32, byteorder="big")


def encode_call(signature: str, *args: bytes) -> str:
    """Build 0x-hex calldata from a signature and pre-encoded 32-byte words."""
    return "0x" + (function_selector(signature) + b"".join(args)).hex()


def decode_uint256(result: str) -> int:
    """Decode a single static return word.

    Raises:
        StatusQueryError: If the result is not a 32-byte hex word.
    """
    if not isinstance(result, str) or not result.startswith("0x"):
        raise StatusQueryError(f"Unexpected eth_call result: {result!r}")
    try:
        raw = bytes.fromhex(result[2:])
    except ValueError as e:
        raise StatusQueryError(f"Unexpected eth_call result: {result!r}") from e
    if len(raw) != 32:
        raise StatusQueryError(f"Expected one 32-byte word, got {len(raw)} bytes")
    return int.from_bytes(raw, byteorder="big")


class RegistryClient:
    """Queries a deployed registry contract over JSON-RPC."""

    def __init__(
        self,
        rpc_url: str,
        registry_address: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        block: str = "latest",
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint of a node.
            registry_address: Deployed registry contract address.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            block: Block tag the calls are evaluated at.
        """
        if not is_address(registry_address):
            raise InvalidAddressError(f"Invalid registry address: {registry_address!r}")
        self.rpc_url = rpc_url
        self.registry_address = registry_address
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.block = block
        self._ids = itertools.count(1)

    def _eth_call(self, data: str) -> str:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "eth_call",
            "params": [{"to": self.registry_address, "data": data}, self.block],
        }
        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                body: Any = response.json()

        except httpx.HTTPStatusError as e:
            raise StatusQueryError(
                f"HTTP error calling registry at {self.rpc_url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise StatusQueryError(f"Network error calling registry: {e}") from e
        except ValueError as e:
            raise StatusQueryError(f"Invalid JSON-RPC response from {self.rpc_url}") from e

        if not isinstance(body, dict):
            raise StatusQueryError("Invalid JSON-RPC response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise StatusQueryError(f"Registry call failed: {message}")
        return body.get("result")

    def get_status_list(self, issuer: str, list_index: int) -> int:
        """Return the raw 256-bit status word for an issuer's list."""
        data = encode_call(
            GET_STATUS_LIST_SIGNATURE,
            encode_address(issuer),
            encode_uint256(check_list_index(list_index)),
        )
        return decode_uint256(self._eth_call(data))

    def is_revoked(self, issuer: str, list_index: int, bit_index: int) -> bool:
        """Check one bit of an issuer's status list on chain.

        Raises:
            StatusQueryError: If the node cannot be reached or the call fails.
        """
        data = encode_call(
            IS_REVOKED_SIGNATURE,
            encode_address(issuer),
            encode_uint256(check_list_index(list_index)),
            encode_uint256(check_bit_index(bit_index)),
        )
        return decode_uint256(self._eth_call(data)) != 0
