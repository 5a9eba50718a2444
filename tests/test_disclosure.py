"""Tests for selective disclosure and predicates."""

import pytest

from vc_trust.disclosure import PredicateSpec, SelectiveDisclosureEngine, evaluate_predicate
from vc_trust.errors import Forbidden, ValidationError

from conftest import CREDENTIAL_ID, HOLDER_DID, build_credential


@pytest.fixture
def engine(signer):
    return SelectiveDisclosureEngine(signer)


def spec(operator, value):
    return PredicateSpec(operator=operator, value=value)


class TestEvaluatePredicate:
    """Tests for predicate evaluation and coercion."""

    def test_numbers(self):
        assert evaluate_predicate(24, spec("gte", 18))
        assert evaluate_predicate(24, spec("gt", 18))
        assert not evaluate_predicate(17, spec("gte", 18))
        assert evaluate_predicate(18, spec("lte", 18))
        assert evaluate_predicate(12, spec("lt", 18))

    def test_numeric_strings(self):
        """Numeric strings compare as numbers, not lexically."""
        assert evaluate_predicate("3.8", spec("gte", 3.5))
        assert evaluate_predicate("10", spec("gt", "9"))
        assert evaluate_predicate("18", spec("eq", 18))

    def test_dates(self):
        """ISO dates compare as points in time."""
        assert evaluate_predicate("2023-06-15", spec("lt", "2024-01-01"))
        assert evaluate_predicate("2023-06-15T10:00:00Z", spec("gt", "2023-06-15"))
        assert not evaluate_predicate("2023-06-15", spec("gt", "2023-12-31T23:59:59Z"))

    def test_string_equality(self):
        assert evaluate_predicate("Computer Science", spec("eq", "Computer Science"))
        assert not evaluate_predicate("Physics", spec("eq", "Computer Science"))

    def test_missing_value_never_passes(self):
        assert not evaluate_predicate(None, spec("eq", None))

    def test_incomparable_values(self):
        """Ordering a word against a number simply fails."""
        assert not evaluate_predicate("Computer Science", spec("gt", 3))
        assert not evaluate_predicate(True, spec("gt", 0))

    def test_booleans_equal_only_booleans(self):
        assert evaluate_predicate(True, spec("eq", True))
        assert not evaluate_predicate(True, spec("eq", 1))
        assert not evaluate_predicate(1, spec("eq", True))
        assert not evaluate_predicate(False, spec("eq", 0))

    def test_unknown_operator(self):
        with pytest.raises(ValidationError):
            PredicateSpec.from_dict({"operator": "between", "value": [1, 2]})
        with pytest.raises(ValidationError):
            PredicateSpec.from_dict({"operator": "gt"})

    def test_describe(self):
        assert spec("gte", 18).describe() == "≥ 18"
        assert spec("eq", "BSc").describe() == "= BSc"


class TestDerive:
    """Tests for deriving the disclosed subject."""

    def test_no_fields_passes_everything(self, engine):
        """Without fields the whole subject is disclosed under the holder id."""
        derived = engine.derive(build_credential(holder="did:example:original"), HOLDER_DID)

        assert derived["id"] == HOLDER_DID
        assert derived["name"] == "Alice Example"
        assert derived["degree"]["gpa"] == "3.8"

    def test_only_requested_fields(self, engine):
        derived = engine.derive(build_credential(), HOLDER_DID, fields=["name"])
        assert derived == {"id": HOLDER_DID, "name": "Alice Example"}

    def test_nested_fields_keep_structure(self, engine):
        derived = engine.derive(build_credential(), HOLDER_DID, fields=["degree.name"])
        assert derived == {"id": HOLDER_DID, "degree": {"name": "Computer Science"}}

    def test_missing_field_is_skipped(self, engine):
        derived = engine.derive(build_credential(), HOLDER_DID, fields=["degree.honours", "name"])
        assert derived == {"id": HOLDER_DID, "name": "Alice Example"}

    def test_passing_predicate_hides_value(self, engine):
        """A satisfied predicate yields a marker and never the raw value."""
        derived = engine.derive(
            build_credential(),
            HOLDER_DID,
            fields=["age", "degree.gpa"],
            predicates={
                "age": {"operator": "gte", "value": 18},
                "degree.gpa": {"operator": "gt", "value": 3.5},
            },
        )

        assert derived["age"] == {"predicate": "≥ 18", "verified": True}
        assert derived["degree"]["gpa"] == {"predicate": "> 3.5", "verified": True}
        assert 24 not in derived.values()
        assert "3.8" not in str(derived)

    def test_failing_predicate_drops_field(self, engine):
        derived = engine.derive(
            build_credential(),
            HOLDER_DID,
            fields=["age", "name"],
            predicates={"age": {"operator": "gt", "value": 30}},
        )

        assert "age" not in derived
        assert derived["name"] == "Alice Example"

    def test_predicate_on_unrequested_field_is_ignored(self, engine):
        """Predicates never pull in fields that were not requested."""
        derived = engine.derive(
            build_credential(),
            HOLDER_DID,
            fields=["name"],
            predicates={"age": {"operator": "gte", "value": 18}},
        )

        assert "age" not in derived
        assert set(derived) == {"id", "name"}

    def test_malformed_predicate_on_unrequested_field(self, engine):
        derived = engine.derive(
            build_credential(),
            HOLDER_DID,
            fields=["name"],
            predicates={"age": {"operator": "between", "value": [1, 99]}},
        )
        assert derived == {"id": HOLDER_DID, "name": "Alice Example"}

    def test_jwt_wrapped_credential(self, engine):
        """Decoded JWT payloads are read through the vc wrapper."""
        wrapped = {"vc": build_credential(), "iss": "did:web:issuer.example.edu"}
        derived = engine.derive(wrapped, HOLDER_DID, fields=["name"])
        assert derived == {"id": HOLDER_DID, "name": "Alice Example"}


class TestPresent:
    """Tests for building presentations of stored credentials."""

    def test_signed_presentation(self, engine, signer, stored_record):
        presentation = engine.present(
            stored_record,
            HOLDER_DID,
            fields=["degree.name", "age"],
            predicates={"age": {"operator": "gte", "value": 21}},
        )

        assert presentation["type"] == ["VerifiablePresentation"]
        assert presentation["holder"] == HOLDER_DID
        assert presentation["proof"]["proofPurpose"] == "authentication"
        assert signer.verify(presentation).valid is True

        disclosed = presentation["verifiableCredential"][0]
        assert disclosed["id"] == CREDENTIAL_ID
        assert "proof" not in disclosed
        assert disclosed["credentialSubject"] == {
            "id": HOLDER_DID,
            "degree": {"name": "Computer Science"},
            "age": {"predicate": "≥ 21", "verified": True},
        }

    def test_source_record_untouched(self, engine, stored_record):
        before = dict(stored_record.credential["credentialSubject"])
        engine.present(stored_record, HOLDER_DID, fields=["name"])
        assert stored_record.credential["credentialSubject"] == before
        assert "proof" in stored_record.credential

    def test_holder_mismatch(self, engine, stored_record):
        with pytest.raises(Forbidden):
            engine.present(stored_record, "did:example:mallory")

    def test_revoked_credential(self, engine, store, stored_record):
        revoked = store.revoke(CREDENTIAL_ID)
        with pytest.raises(ValidationError) as exc_info:
            engine.present(revoked, HOLDER_DID)
        assert exc_info.value.code == "credential_revoked"
