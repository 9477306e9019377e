"""Tests for VC Verifier."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx

from veritas_vc import (
    VCVerifier,
    VerificationResult,
    StatusListRegistry,
    verify_credential,
)
from veritas_vc.chain import RegistryClient
from veritas_vc.credential import Credential, format_timestamp, status_entry
from veritas_vc.crypto import public_key_from_private
from veritas_vc.did import encode_key
from veritas_vc.errors import StatusQueryError
from veritas_vc.issuer import build_credential, issue_credential
from veritas_vc.proof import ProofEngine
from veritas_vc.verifier import generate_challenge

from conftest import HOLDER_DID, STATUS_BASE_URL, TEST_ADDRESS


class UnreachableRegistry:
    """Revocation query whose backing store is down."""

    def __init__(self, error=None):
        self.error = error or StatusQueryError("Network error calling registry: timed out")
        self.calls = 0

    def is_revoked(self, issuer, list_index, bit_index):
        self.calls += 1
        raise self.error


class RecordingRegistry(StatusListRegistry):
    def __init__(self):
        super().__init__()
        self.queries = []

    def is_revoked(self, issuer, list_index, bit_index):
        self.queries.append((issuer, list_index, bit_index))
        return super().is_revoked(issuer, list_index, bit_index)


@pytest.fixture
def signed(employment_claim, issuer_key, issuer_did):
    """Signed employment credential with status bit 7 of list 0."""
    return issue_credential(
        employment_claim,
        issuer_key,
        issuer_did,
        HOLDER_DID,
        status=status_entry(STATUS_BASE_URL, 0, 7),
    ).to_dict()


def sign_dict(data, private_key):
    """Re-sign a wire credential after editing it."""
    data = {k: v for k, v in data.items() if k != "proof"}
    proof = ProofEngine().sign(data, private_key, data["issuer"])
    return {**data, "proof": proof.to_dict()}


class TestEndToEnd:
    """Full issue and verify scenarios."""

    def test_verify_valid_credential(self, signed, issuer_did):
        result = VCVerifier().verify(signed)

        assert result.verified is True
        assert result.is_valid is True
        assert result.errors == []
        assert result.issuer == issuer_did
        assert result.subject["role"] == "Engineer"
        assert result.subject["employer"] == "Acme"
        assert result.credential_id == signed["id"]

    def test_verify_with_registry_not_revoked(self, signed):
        registry = RecordingRegistry()
        result = VCVerifier(revocation_query=registry).verify(signed)

        assert result.verified is True
        assert registry.queries == [(TEST_ADDRESS, 0, 7)]

    def test_verify_revoked(self, signed):
        registry = StatusListRegistry()
        registry.set_bit(TEST_ADDRESS, 0, 7, True)

        result = VCVerifier(revocation_query=registry).verify(signed)

        assert result.verified is False
        assert result.errors == ["Revoked"]

    def test_other_bit_revoked(self, signed):
        registry = StatusListRegistry()
        registry.set_bit(TEST_ADDRESS, 0, 8, True)
        registry.set_bit(TEST_ADDRESS, 1, 7, True)

        assert VCVerifier(revocation_query=registry).verify(signed).verified is True

    def test_reinstated(self, signed):
        registry = StatusListRegistry()
        registry.set_bit(TEST_ADDRESS, 0, 7, True)
        registry.set_bit(TEST_ADDRESS, 0, 7, False)

        assert VCVerifier(revocation_query=registry).verify(signed).verified is True

    def test_no_status_entry_skips_revocation(self, employment_claim, issuer_key, issuer_did):
        data = issue_credential(employment_claim, issuer_key, issuer_did, HOLDER_DID).to_dict()
        registry = RecordingRegistry()

        assert VCVerifier(revocation_query=registry).verify(data).verified is True
        assert registry.queries == []

    def test_no_query_skips_revocation(self, signed):
        """Without a revocation query, revoked bits are not consulted."""
        assert verify_credential(signed).verified is True

    def test_key_did_issuer_revocation_uses_recovered_address(self, employment_claim, issuer_key):
        issuer = encode_key(public_key_from_private(issuer_key))
        data = issue_credential(
            employment_claim,
            issuer_key,
            issuer,
            HOLDER_DID,
            status=status_entry(STATUS_BASE_URL, 0, 3),
        ).to_dict()
        registry = RecordingRegistry()
        registry.set_bit(TEST_ADDRESS, 0, 3, True)

        result = VCVerifier(revocation_query=registry).verify(data)

        assert result.errors == ["Revoked"]
        assert registry.queries == [(TEST_ADDRESS, 0, 3)]

    def test_result_to_dict(self, signed, issuer_did):
        assert VCVerifier().verify(signed).to_dict() == {
            "verified": True,
            "issuer": issuer_did,
            "subject": signed["credentialSubject"],
        }


class TestStructure:
    """Tests for structural validation."""

    @pytest.mark.parametrize("member", ["@context", "type", "issuer"])
    def test_missing_member(self, signed, member):
        del signed[member]
        result = VCVerifier().verify(signed)

        assert result.verified is False
        assert result.errors == ["MalformedCredential"]

    def test_type_without_verifiable_credential(self, signed):
        signed["type"] = ["ProofOfEmploymentCredential"]
        assert VCVerifier().verify(signed).errors == ["MalformedCredential"]

    def test_issuer_not_a_did(self, signed):
        signed["issuer"] = "https://example.com"
        assert VCVerifier().verify(signed).errors == ["MalformedCredential"]

    def test_none_raises(self):
        with pytest.raises(TypeError):
            VCVerifier().verify(None)

    def test_accepts_model(self, employment_claim, issuer_key, issuer_did):
        credential = issue_credential(employment_claim, issuer_key, issuer_did, HOLDER_DID)
        assert VCVerifier().verify(credential).verified is True

    def test_parsed_model_verifies_like_wire_form(self, signed, issuer_key):
        """A minimal status entry and extra members survive parsing."""
        signed["credentialStatus"] = {
            "type": "StatusList2021Entry",
            "statusListIndex": "7",
            "statusListCredential": f"{STATUS_BASE_URL}/0",
        }
        signed["evidence"] = [{"type": "DocumentVerification"}]
        data = sign_dict(signed, issuer_key)
        registry = RecordingRegistry()
        verifier = VCVerifier(revocation_query=registry)

        assert verifier.verify(data).verified is True
        result = verifier.verify(Credential.from_dict(data))

        assert result.verified is True
        assert registry.queries == [(TEST_ADDRESS, 0, 7), (TEST_ADDRESS, 0, 7)]

    def test_parsed_model_revoked(self, signed):
        registry = StatusListRegistry()
        registry.set_bit(TEST_ADDRESS, 0, 7, True)

        result = VCVerifier(revocation_query=registry).verify(Credential.from_dict(signed))
        assert result.errors == ["Revoked"]


class TestExpiration:
    """Tests for the expiration check."""

    def _with_expiry(self, signed, issuer_key, expires_at):
        data = dict(signed)
        data["expirationDate"] = format_timestamp(expires_at)
        return sign_dict(data, issuer_key)

    def test_expired_one_second_ago(self, signed, issuer_key, fixed_now):
        data = self._with_expiry(signed, issuer_key, fixed_now - timedelta(seconds=1))
        result = VCVerifier(clock=lambda: fixed_now).verify(data)

        assert result.verified is False
        assert result.errors == ["Expired"]

    def test_valid_one_second_ahead(self, signed, issuer_key, fixed_now):
        data = self._with_expiry(signed, issuer_key, fixed_now + timedelta(seconds=1))
        assert VCVerifier(clock=lambda: fixed_now).verify(data).verified is True

    def test_expiry_checked_before_signature(self, signed, fixed_now):
        """A bad signature on an expired credential reports Expired."""
        signed["expirationDate"] = format_timestamp(fixed_now - timedelta(days=1))
        result = VCVerifier(clock=lambda: fixed_now).verify(signed)
        assert result.errors == ["Expired"]

    def test_unparseable_expiration(self, signed):
        signed["expirationDate"] = "next tuesday"
        assert VCVerifier().verify(signed).errors == ["MalformedCredential"]

    def test_issued_with_expiry_days(self, employment_claim, issuer_key, issuer_did):
        data = issue_credential(
            employment_claim, issuer_key, issuer_did, HOLDER_DID, expires_in_days=1
        ).to_dict()
        now = datetime.now(timezone.utc)

        assert VCVerifier(clock=lambda: now).verify(data).verified is True
        later = now + timedelta(days=2)
        assert VCVerifier(clock=lambda: later).verify(data).errors == ["Expired"]


class TestSignature:
    """Tests for the signature stage."""

    def test_tampered_role(self, signed):
        signed["credentialSubject"]["role"] = "CEO"
        result = VCVerifier().verify(signed)

        assert result.verified is False
        assert result.errors == ["InvalidSignature"]

    def test_tampered_status(self, signed):
        signed["credentialStatus"]["statusListIndex"] = "8"
        assert VCVerifier().verify(signed).errors == ["InvalidSignature"]

    def test_missing_proof(self, signed):
        del signed["proof"]
        assert VCVerifier().verify(signed).errors == ["InvalidSignature"]

    def test_signed_by_other_key(self, signed, other_key):
        other_private, _ = other_key
        assert VCVerifier().verify(sign_dict(signed, other_private)).errors == ["InvalidSignature"]

    def test_unsupported_did_method(self, signed, issuer_key):
        signed["issuer"] = "did:web:example.com"
        result = VCVerifier().verify(sign_dict(signed, issuer_key))
        assert result.errors == ["UnsupportedDIDMethod"]

    def test_malformed_issuer_address(self, signed):
        signed["issuer"] = "did:ethr:polygon:0x1234"
        assert VCVerifier().verify(signed).errors == ["InvalidAddress"]


class TestRevocationStage:
    """Tests for status entry handling."""

    def test_unsupported_status_type(self, signed, issuer_key):
        signed["credentialStatus"]["type"] = "RevocationList2020Status"
        data = sign_dict(signed, issuer_key)

        result = VCVerifier(revocation_query=StatusListRegistry()).verify(data)
        assert result.errors == ["UnsupportedStatusType"]

    def test_malformed_status_uri(self, signed, issuer_key):
        signed["credentialStatus"]["statusListCredential"] = "https://veritas.id/status/zero"
        data = sign_dict(signed, issuer_key)

        result = VCVerifier(revocation_query=StatusListRegistry()).verify(data)
        assert result.errors == ["MalformedStatusURI"]

    def test_status_bit_out_of_range(self, signed, issuer_key):
        signed["credentialStatus"]["statusListIndex"] = "300"
        data = sign_dict(signed, issuer_key)

        result = VCVerifier(revocation_query=StatusListRegistry()).verify(data)
        assert result.errors == ["BitIndexOutOfRange"]

    def test_superscript_list_index_reported(self, signed, issuer_key):
        signed["credentialStatus"]["statusListCredential"] = f"{STATUS_BASE_URL}/²"
        data = sign_dict(signed, issuer_key)

        result = VCVerifier(revocation_query=StatusListRegistry()).verify(data)

        assert result.verified is False
        assert result.errors == ["MalformedStatusURI"]

    def test_fractional_status_index(self, signed, issuer_key):
        signed["credentialStatus"]["statusListIndex"] = 7.9
        data = sign_dict(signed, issuer_key)

        result = VCVerifier(revocation_query=StatusListRegistry()).verify(data)
        assert result.errors == ["BitIndexOutOfRange"]

    def test_semantic_errors_not_fail_open(self, signed, issuer_key):
        """A broken status entry fails even when the registry is down."""
        signed["credentialStatus"]["type"] = "Unknown"
        data = sign_dict(signed, issuer_key)
        registry = UnreachableRegistry()

        result = VCVerifier(revocation_query=registry).verify(data)

        assert result.errors == ["UnsupportedStatusType"]
        assert registry.calls == 0


class TestFailOpen:
    """Registry outages must not reject otherwise valid credentials."""

    def test_query_error_treated_as_not_revoked(self, signed):
        registry = UnreachableRegistry()
        result = VCVerifier(revocation_query=registry).verify(signed)

        assert result.verified is True
        assert registry.calls == 1
        assert len(result.warnings) == 1
        assert "Could not verify status" in result.warnings[0]

    def test_unexpected_exception_treated_as_not_revoked(self, signed):
        registry = UnreachableRegistry(ConnectionResetError("peer reset"))
        assert VCVerifier(revocation_query=registry).verify(signed).verified is True

    def test_fail_open_logged(self, signed, caplog):
        with caplog.at_level("WARNING", logger="veritas_vc.verifier"):
            VCVerifier(revocation_query=UnreachableRegistry()).verify(signed)
        assert "treating as not revoked" in caplog.text

    @respx.mock
    def test_chain_client_unreachable(self, signed):
        respx.post("https://rpc.example.com").mock(side_effect=httpx.ConnectTimeout("timed out"))
        client = RegistryClient("https://rpc.example.com", "0x" + "12" * 20)

        result = VCVerifier(revocation_query=client).verify(signed)

        assert result.verified is True
        assert result.warnings

    @respx.mock
    def test_chain_client_revoked(self, signed):
        respx.post("https://rpc.example.com").mock(
            return_value=httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "result": "0x" + "00" * 31 + "01"}
            )
        )
        client = RegistryClient("https://rpc.example.com", "0x" + "12" * 20)

        result = VCVerifier(revocation_query=client).verify(signed)

        assert result.verified is False
        assert result.errors == ["Revoked"]


class TestHelpers:
    def test_generate_challenge(self):
        first, second = generate_challenge(), generate_challenge()
        assert first != second
        assert first.startswith("0x")
        assert len(first) == 2 + 64

    def test_result_failure_dict(self):
        result = VerificationResult(verified=False, errors=["Expired"], messages=["expired"])
        assert result.to_dict() == {
            "verified": False,
            "errors": ["Expired"],
            "messages": ["expired"],
        }

    def test_unsigned_credential_fails(self, employment_claim, issuer_did):
        credential = build_credential(employment_claim, issuer_did, HOLDER_DID)
        assert VCVerifier().verify(credential).errors == ["InvalidSignature"]
