"""Shared fixtures."""

from datetime import datetime, timezone

import pytest

from veritas_vc.credential import EmploymentClaim
from veritas_vc.crypto import generate_private_key, private_key_to_address
from veritas_vc.did import encode_ethr

# Well-known test key; its address is 0x2c7536E3605D9C16a7a3D7b1898e529396a65c23
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

HOLDER_DID = "did:ethr:polygon:0x" + "a" * 40
STATUS_BASE_URL = "https://veritas.id/credentials/status"


@pytest.fixture
def issuer_key():
    return TEST_PRIVATE_KEY


@pytest.fixture
def issuer_address():
    return TEST_ADDRESS


@pytest.fixture
def issuer_did():
    return encode_ethr("polygon", TEST_ADDRESS)


@pytest.fixture
def other_key():
    """A second, random issuer key."""
    key = generate_private_key()
    return key, private_key_to_address(key)


@pytest.fixture
def employment_claim():
    return EmploymentClaim(employer="Acme", role="Engineer", start_date="2023-01-01")


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
