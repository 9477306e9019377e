"""Tests for the on-chain registry client."""

import json

import httpx
import pytest
import respx
from httpx import Response

from veritas_vc.chain import (
    GET_STATUS_LIST_SIGNATURE,
    IS_REVOKED_SIGNATURE,
    RegistryClient,
    decode_uint256,
    encode_address,
    encode_call,
    encode_uint256,
    function_selector,
)
from veritas_vc.errors import BitIndexOutOfRangeError, InvalidAddressError, StatusQueryError

from conftest import TEST_ADDRESS

RPC_URL = "https://rpc.example.com"
REGISTRY = "0x" + "12" * 20


def rpc_result(value: int):
    return Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x" + value.to_bytes(32, "big").hex()})


class TestAbiEncoding:
    """Tests for calldata encoding."""

    def test_function_selector(self):
        """ERC-20 transfer selector is a well-known vector."""
        assert function_selector("transfer(address,uint256)").hex() == "a9059cbb"

    def test_encode_address(self):
        encoded = encode_address(TEST_ADDRESS)
        assert len(encoded) == 32
        assert encoded[:12] == bytes(12)
        assert encoded[12:].hex() == TEST_ADDRESS[2:].lower()

    def test_encode_address_invalid(self):
        with pytest.raises(InvalidAddressError):
            encode_address("0x1234")

    def test_encode_call_layout(self):
        data = encode_call(
            IS_REVOKED_SIGNATURE,
            encode_address(TEST_ADDRESS),
            encode_uint256(3),
            encode_uint256(42),
        )
        raw = bytes.fromhex(data[2:])
        assert len(raw) == 4 + 3 * 32
        assert raw[:4] == function_selector(IS_REVOKED_SIGNATURE)
        assert int.from_bytes(raw[36:68], "big") == 3
        assert int.from_bytes(raw[68:100], "big") == 42

    def test_decode_uint256(self):
        assert decode_uint256("0x" + "00" * 31 + "01") == 1

    def test_decode_uint256_wrong_length(self):
        with pytest.raises(StatusQueryError):
            decode_uint256("0x01")


class TestRegistryClient:
    """Tests for JSON-RPC queries."""

    @respx.mock
    def test_is_revoked_true(self):
        route = respx.post(RPC_URL).mock(return_value=rpc_result(1))

        client = RegistryClient(RPC_URL, REGISTRY)
        assert client.is_revoked(TEST_ADDRESS, 0, 7) is True

        body = json.loads(route.calls.last.request.content)
        assert body["method"] == "eth_call"
        call, block = body["params"]
        assert call["to"] == REGISTRY
        assert call["data"] == encode_call(
            IS_REVOKED_SIGNATURE,
            encode_address(TEST_ADDRESS),
            encode_uint256(0),
            encode_uint256(7),
        )
        assert block == "latest"

    @respx.mock
    def test_is_revoked_false(self):
        respx.post(RPC_URL).mock(return_value=rpc_result(0))
        assert RegistryClient(RPC_URL, REGISTRY).is_revoked(TEST_ADDRESS, 0, 7) is False

    @respx.mock
    def test_get_status_list(self):
        word = (1 << 255) | 1
        route = respx.post(RPC_URL).mock(return_value=rpc_result(word))

        assert RegistryClient(RPC_URL, REGISTRY).get_status_list(TEST_ADDRESS, 2) == word
        data = json.loads(route.calls.last.request.content)["params"][0]["data"]
        assert data.startswith("0x" + function_selector(GET_STATUS_LIST_SIGNATURE).hex())

    @respx.mock
    def test_network_error(self):
        respx.post(RPC_URL).mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(StatusQueryError):
            RegistryClient(RPC_URL, REGISTRY).is_revoked(TEST_ADDRESS, 0, 7)

    @respx.mock
    def test_http_error(self):
        respx.post(RPC_URL).mock(return_value=Response(503))
        with pytest.raises(StatusQueryError, match="503"):
            RegistryClient(RPC_URL, REGISTRY).is_revoked(TEST_ADDRESS, 0, 7)

    @respx.mock
    def test_rpc_error(self):
        respx.post(RPC_URL).mock(
            return_value=Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "execution reverted"}},
            )
        )
        with pytest.raises(StatusQueryError, match="execution reverted"):
            RegistryClient(RPC_URL, REGISTRY).is_revoked(TEST_ADDRESS, 0, 7)

    @respx.mock
    def test_invalid_json(self):
        respx.post(RPC_URL).mock(return_value=Response(200, content=b"not json"))
        with pytest.raises(StatusQueryError):
            RegistryClient(RPC_URL, REGISTRY).is_revoked(TEST_ADDRESS, 0, 7)

    def test_bit_index_checked_before_call(self):
        with pytest.raises(BitIndexOutOfRangeError):
            RegistryClient(RPC_URL, REGISTRY).is_revoked(TEST_ADDRESS, 0, 256)

    def test_invalid_registry_address(self):
        with pytest.raises(InvalidAddressError):
            RegistryClient(RPC_URL, "0xnope")
