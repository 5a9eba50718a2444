"""
Selective disclosure by field filtering and predicate markers.

This is not a zero-knowledge scheme: the derived credential simply omits
unrequested claims, and a claim proved by a predicate is replaced by a
marker stating the predicate. The resulting presentation is signed afresh
by the signer.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from vc_trust.documents import Credential
from vc_trust.errors import Forbidden, ValidationError
from vc_trust.signer import CredentialSigner
from vc_trust.store import CredentialRecord

logger = logging.getLogger(__name__)

OPERATOR_SYMBOLS = {
    "gt": ">",
    "gte": "≥",
    "lt": "<",
    "lte": "≤",
    "eq": "=",
}

PRESENTATION_CONTEXT = "https://www.w3.org/2018/credentials/v1"

_ISO_DATE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
_NUMERIC = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

_MISSING = object()


@dataclass(frozen=True)
class PredicateSpec:
    """A comparison the holder proves about a claim without revealing it."""

    operator: str
    value: Any

    @classmethod
    def from_dict(cls, data: Any) -> PredicateSpec:
        if isinstance(data, PredicateSpec):
            return data
        if not isinstance(data, dict) or "operator" not in data or "value" not in data:
            raise ValidationError("Predicate must have an operator and a value")
        operator = data["operator"]
        if operator not in OPERATOR_SYMBOLS:
            raise ValidationError(
                f"Unsupported predicate operator: {operator}",
                details={"supported": sorted(OPERATOR_SYMBOLS)},
            )
        return cls(operator=operator, value=data["value"])

    def describe(self) -> str:
        return f"{OPERATOR_SYMBOLS[self.operator]} {self.value}"


def get_path(data: dict[str, Any], path: str) -> Any:
    """Value at a dot-notation path, or ``_MISSING``."""
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Set a value at a dot-notation path, creating intermediate objects."""
    *parents, last = path.split(".")
    target = data
    for key in parents:
        child = target.get(key)
        if not isinstance(child, dict):
            child = target[key] = {}
        target = child
    target[last] = value


def coerce(value: Any) -> Any:
    """Normalize a claim or predicate value for comparison.

    ISO dates become POSIX timestamps and numeric strings become floats.
    Other values are returned unchanged.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if _ISO_DATE.match(text):
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return value
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.timestamp()
        if _NUMERIC.match(text):
            return float(text)
    return value


def evaluate_predicate(actual: Any, predicate: PredicateSpec) -> bool:
    """Evaluate ``actual <operator> predicate.value``.

    A missing or null claim never satisfies a predicate, and values that
    cannot be ordered against each other fail the comparison.
    """
    if actual is None or actual is _MISSING:
        return False

    left = coerce(actual)
    right = coerce(predicate.value)

    if isinstance(left, bool) or isinstance(right, bool):
        # Booleans only ever equal booleans.
        return predicate.operator == "eq" and left is right

    if predicate.operator == "eq":
        return left == right or str(actual) == str(predicate.value)
    try:
        if predicate.operator == "gt":
            return left > right
        if predicate.operator == "gte":
            return left >= right
        if predicate.operator == "lt":
            return left < right
        if predicate.operator == "lte":
            return left <= right
    except TypeError:
        return False
    return False


class SelectiveDisclosureEngine:
    """Derives reduced credential views and wraps them in presentations."""

    def __init__(self, signer: CredentialSigner) -> None:
        self.signer = signer

    def derive(
        self,
        credential: Credential | dict[str, Any],
        holder_id: str,
        fields: list[str] | None = None,
        predicates: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build the disclosed credential subject.

        Without ``fields`` the full subject is passed through. With
        ``fields`` only the requested paths appear; a path with a passing
        predicate is replaced by a marker, and a path whose predicate fails
        is left out. The subject ``id`` is always ``holder_id``.
        """
        if isinstance(credential, dict):
            credential = Credential(credential)
        subject = credential.subject

        if not fields:
            return {**copy.deepcopy(subject), "id": holder_id}

        predicates = predicates or {}

        derived: dict[str, Any] = {}
        for path in fields:
            actual = get_path(subject, path)
            spec = PredicateSpec.from_dict(predicates[path]) if path in predicates else None

            if spec is not None:
                if not evaluate_predicate(actual, spec):
                    logger.info("Predicate not satisfied for %s: %s", path, spec.describe())
                    continue
                set_path(derived, path, {"predicate": spec.describe(), "verified": True})
            elif actual is not _MISSING:
                set_path(derived, path, copy.deepcopy(actual))

        derived["id"] = holder_id
        return derived

    def present(
        self,
        record: CredentialRecord,
        holder_id: str,
        fields: list[str] | None = None,
        predicates: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a signed presentation of a stored credential.

        Raises:
            ValidationError: If the holder is missing or the credential is revoked.
            Forbidden: If the credential does not belong to ``holder_id``.
        """
        if not holder_id:
            raise ValidationError("Missing required field: holderId")
        if record.holder_id != holder_id:
            raise Forbidden(
                "Credential does not belong to the specified holder", code="holder_mismatch"
            )
        if record.revoked:
            raise ValidationError(
                "Cannot present a revoked credential", code="credential_revoked"
            )

        logger.info(
            "Creating presentation for %s (fields: %s)",
            record.id,
            ", ".join(fields) if fields else "all",
        )

        source = Credential(record.credential)
        disclosed = {k: v for k, v in source.payload.items() if k != "proof"}
        if "vc" in disclosed and "credentialSubject" not in disclosed:
            # Flatten a decoded JWT wrapper into a plain credential.
            disclosed = {k: v for k, v in disclosed["vc"].items() if k != "proof"}
            disclosed.setdefault("id", record.id)
        disclosed["credentialSubject"] = self.derive(source, holder_id, fields, predicates)

        presentation = {
            "@context": [PRESENTATION_CONTEXT],
            "type": ["VerifiablePresentation"],
            "holder": holder_id,
            "verifiableCredential": [disclosed],
        }
        return self.signer.sign(presentation, proof_purpose="authentication")
