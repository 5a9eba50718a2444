"""Tests for CLI."""

import json

import pytest
from click.testing import CliRunner

from vc_trust.cli import main
from vc_trust.signer import EcdsaJcsSigner
from vc_trust.store import CredentialStore

from conftest import CREDENTIAL_ID, ISSUER_DID, build_credential, make_record


@pytest.fixture
def runner(tmp_path):
    return CliRunner(env={"VC_TRUST_DATA_DIR": str(tmp_path), "VC_TRUST_IPFS_API_URL": ""})


@pytest.fixture
def credential_file(tmp_path):
    """A signed credential stored in the data dir and written to a file."""
    signer = EcdsaJcsSigner.from_key_file(tmp_path / "issuer_key.pem", ISSUER_DID)
    credential = signer.sign(build_credential())
    CredentialStore(tmp_path / "credentials.json").save(make_record(credential))

    path = tmp_path / "credential.json"
    path.write_text(json.dumps(credential))
    return path


class TestVerifyCommand:
    """Tests for the verify command."""

    def test_valid_json_output(self, runner, credential_file):
        result = runner.invoke(main, ["verify", str(credential_file), "--json-output"])

        assert result.exit_code == 0
        assert '"valid": true' in result.output
        assert "all_checks_passed" in result.output

    def test_valid_pretty_output(self, runner, credential_file):
        result = runner.invoke(main, ["verify", str(credential_file)])

        assert result.exit_code == 0
        assert "VALID" in result.output
        assert "Verification Result" in result.output

    def test_tampered(self, runner, credential_file):
        credential = json.loads(credential_file.read_text())
        credential["credentialSubject"]["name"] = "Mallory"
        credential_file.write_text(json.dumps(credential))

        result = runner.invoke(main, ["verify", str(credential_file), "--json-output"])

        assert result.exit_code == 1
        assert "signature_invalid" in result.output

    def test_stdin(self, runner, credential_file):
        result = runner.invoke(
            main, ["verify", "-", "--json-output"], input=credential_file.read_text()
        )
        assert result.exit_code == 0

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["verify", str(tmp_path / "missing.json")])

        assert result.exit_code == 2
        assert "File not found" in result.output

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        result = runner.invoke(main, ["verify", str(path), "--json-output"])

        assert result.exit_code == 2
        assert "Invalid JSON" in result.output


class TestRevocationCommands:
    """Tests for status, revoke and list."""

    def test_revoke_then_status(self, runner, credential_file):
        result = runner.invoke(main, ["revoke", CREDENTIAL_ID, "--reason", "Issued in error"])
        assert result.exit_code == 0
        assert "Revoked" in result.output
        assert "without 2FA" in result.output

        result = runner.invoke(main, ["status", CREDENTIAL_ID, "--json-output"])
        assert result.exit_code == 0
        assert '"status": "revoked"' in result.output
        assert "Issued in error" in result.output

        result = runner.invoke(main, ["verify", str(credential_file), "--json-output"])
        assert result.exit_code == 1
        assert '"revoked"' in result.output

    def test_revoke_twice(self, runner, credential_file):
        runner.invoke(main, ["revoke", CREDENTIAL_ID])
        result = runner.invoke(main, ["revoke", CREDENTIAL_ID])

        assert result.exit_code == 2
        assert "already revoked" in result.output

    def test_status_unknown(self, runner, tmp_path):
        result = runner.invoke(main, ["status", "urn:uuid:missing", "--json-output"])

        assert result.exit_code == 2
        assert "not_found" in result.output

    def test_list(self, runner, credential_file):
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0
        assert "Credentials (1)" in result.output

        result = runner.invoke(main, ["list", "--revoked"])
        assert "Credentials (0)" in result.output

    def test_data_dir_option(self, tmp_path, credential_file):
        other = tmp_path / "elsewhere"
        runner = CliRunner(env={"VC_TRUST_IPFS_API_URL": ""})

        result = runner.invoke(main, ["--data-dir", str(other), "list"])

        assert result.exit_code == 0
        assert "Credentials (0)" in result.output
