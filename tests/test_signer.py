"""Tests for the Data Integrity signer."""

import base64
import json

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from vc_trust.documents import canonicalize_json
from vc_trust.signer import EcdsaJcsSigner, PublicKeyJWK

from conftest import ISSUER_DID, build_credential


def raw_signature(credential: dict, private_key) -> str:
    """Sign with a raw r||s signature instead of DER."""
    unsigned = {k: v for k, v in credential.items() if k != "proof"}
    message = json.dumps(unsigned, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    der = private_key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der)
    raw = r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


class TestEcdsaJcsSigner:
    """Tests for signing and verifying."""

    def test_sign_and_verify(self, signer):
        """A freshly signed credential verifies."""
        signed = signer.sign(build_credential())

        assert signed["proof"]["type"] == "DataIntegrityProof"
        assert signed["proof"]["cryptosuite"] == "ecdsa-jcs-2022"
        assert signed["proof"]["verificationMethod"] == f"{ISSUER_DID}#key-1"
        assert signed["proof"]["proofPurpose"] == "assertionMethod"

        result = signer.verify(signed)
        assert result.valid is True
        assert result.error is None

    def test_tampered_credential(self, signer):
        """Changing a claim after signing breaks the proof."""
        signed = signer.sign(build_credential())
        signed["credentialSubject"]["name"] = "Tampered Name"

        result = signer.verify(signed)

        assert result.valid is False
        assert result.error == "Invalid signature"

    def test_resign_replaces_proof(self, signer):
        """Signing a signed document replaces the old proof."""
        signed = signer.sign(build_credential())
        resigned = signer.sign(signed, proof_purpose="authentication")

        assert resigned["proof"]["proofPurpose"] == "authentication"
        assert signer.verify(resigned).valid is True

    def test_missing_proof(self, signer):
        result = signer.verify(build_credential())
        assert result.valid is False
        assert result.error == "Missing proof"

    def test_unsupported_cryptosuite(self, signer):
        """Test verifying credential with unsupported cryptosuite."""
        credential = build_credential()
        credential["proof"] = {
            "type": "DataIntegrityProof",
            "cryptosuite": "unsupported-suite",
            "verificationMethod": f"{ISSUER_DID}#key-1",
            "proofValue": "test",
        }

        result = signer.verify(credential)

        assert result.valid is False
        assert "unsupported" in result.error.lower()

    def test_untrusted_verification_method(self, signer):
        """Proofs from another issuer's key are not accepted."""
        other = EcdsaJcsSigner.generate("did:web:other.example")
        signed = other.sign(build_credential())

        result = signer.verify(signed)

        assert result.valid is False
        assert "not trusted" in result.error

    def test_trusted_external_key(self, signer):
        """A registered external key is accepted."""
        other = EcdsaJcsSigner.generate("did:web:other.example")
        signer.trust_key(other.verification_method, other.public_key_jwk.to_dict())

        assert signer.verify(other.sign(build_credential())).valid is True

    def test_raw_signature_format(self, signer):
        """Raw r||s signatures verify as well as DER ones."""
        signed = signer.sign(build_credential())
        signed["proof"]["proofValue"] = raw_signature(signed, signer.private_key)

        assert signer.verify(signed).valid is True

    def test_garbage_proof_value(self, signer):
        signed = signer.sign(build_credential())
        signed["proof"]["proofValue"] = "!!!"

        result = signer.verify(signed)
        assert result.valid is False

    def test_key_file_round_trip(self, tmp_path):
        """The issuer key is created once and reloaded afterwards."""
        path = tmp_path / "keys" / "issuer_key.pem"

        first = EcdsaJcsSigner.from_key_file(path, ISSUER_DID)
        second = EcdsaJcsSigner.from_key_file(path, ISSUER_DID)

        assert path.exists()
        assert first.public_key_jwk == second.public_key_jwk
        assert second.verify(first.sign(build_credential())).valid is True

    def test_public_key_jwk(self, signer):
        jwk = signer.public_key_jwk
        assert isinstance(jwk, PublicKeyJWK)
        assert jwk.is_valid_p256()


class TestJCSCanonicalization:
    """Tests for JSON Canonicalization Scheme."""

    def test_sort_keys(self):
        """Test that keys are sorted."""
        data = {"z": 1, "a": 2, "m": 3}
        assert canonicalize_json(data) == '{"a":2,"m":3,"z":1}'

    def test_no_spaces(self):
        """Test that no extra spaces are added."""
        data = {"key": "value", "number": 123}
        assert " " not in canonicalize_json(data)

    def test_unicode_preserved(self):
        """Test that unicode is preserved (not escaped)."""
        data = {"name": "Zoë"}
        assert canonicalize_json(data) == '{"name":"Zoë"}'
