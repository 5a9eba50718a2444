"""Shared fixtures for the trust engine tests."""

import pytest

from vc_trust.config import Settings, reset_settings
from vc_trust.signer import EcdsaJcsSigner
from vc_trust.store import CredentialRecord, CredentialStore
from vc_trust.twofactor import TwoFactorAuthorizer, TwoFactorConfigStore

ISSUER_DID = "did:web:issuer.example.edu"
HOLDER_DID = "did:example:alice"
CREDENTIAL_UUID = "1b4e28ba-2fa1-11d2-883f-0016d3cca427"
CREDENTIAL_ID = f"urn:uuid:{CREDENTIAL_UUID}"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Keep the developer's environment out of the tests."""
    for name in ("VC_TRUST_DATA_DIR", "VC_TRUST_API_KEY", "VC_TRUST_IPFS_API_URL"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def signer():
    """A signer with a fresh P-256 key."""
    return EcdsaJcsSigner.generate(ISSUER_DID)


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "credentials.json")


@pytest.fixture
def two_factor_store(tmp_path):
    return TwoFactorConfigStore(tmp_path / "two_factor.json")


@pytest.fixture
def authorizer(two_factor_store):
    return TwoFactorAuthorizer(two_factor_store, issuer_name="Test Issuer")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        api_key="test-key",
        issuer_did=ISSUER_DID,
        ipfs_api_url=None,
        ipfs_retry_delay=0,
    )


def build_credential(credential_id=CREDENTIAL_ID, holder=HOLDER_DID, **claims):
    """An unsigned degree credential."""
    subject = {
        "id": holder,
        "name": "Alice Example",
        "degree": {"type": "BachelorDegree", "name": "Computer Science", "gpa": "3.8"},
        "graduationDate": "2023-06-15",
        "age": 24,
    }
    subject.update(claims)
    return {
        "@context": ["https://www.w3.org/2018/credentials/v1"],
        "id": credential_id,
        "type": ["VerifiableCredential", "UniversityDegree"],
        "issuer": {"id": ISSUER_DID},
        "issuanceDate": "2023-06-20T10:00:00Z",
        "credentialSubject": subject,
    }


def make_record(credential, holder=HOLDER_DID, **kwargs):
    return CredentialRecord(
        id=credential["id"],
        credential=credential,
        holder_id=holder,
        issuer_id=ISSUER_DID,
        credential_type="UniversityDegree",
        **kwargs,
    )


@pytest.fixture
def signed_credential(signer):
    return signer.sign(build_credential())


@pytest.fixture
def stored_record(store, signed_credential):
    return store.save(make_record(signed_credential))
