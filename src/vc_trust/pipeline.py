"""
Verification pipeline.

Verifies a credential or presentation in three stages:
1. Signature (delegated to the signer)
2. Revocation status (from the credential store)
3. Content integrity (against the content store, when an address is given)

Stages do not short-circuit each other: every applicable stage runs and
contributes its reasons, so one call reports the full failure surface.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from vc_trust.documents import (
    Credential,
    Document,
    Presentation,
    canonicalize_json,
    parse_document,
    subject_credential,
)
from vc_trust.errors import NotFound, UpstreamUnavailable
from vc_trust.ipfs import ContentStore
from vc_trust.signer import CredentialSigner
from vc_trust.store import CredentialStore

logger = logging.getLogger(__name__)

ALL_CHECKS_PASSED = "all_checks_passed"
SIGNATURE_INVALID = "signature_invalid"
VERIFICATION_ERROR = "verification_error"
REVOKED = "revoked"
IPFS_INTEGRITY_MISMATCH = "ipfs_integrity_mismatch"
IPFS_CHECK_FAILED = "ipfs_check_failed"


@dataclass
class StageOutcome:
    """Result of one pipeline stage.

    ``invalidates`` is set when the stage proves the document invalid.
    Informational outcomes carry reasons without invalidating.
    """

    stage: str
    invalidates: bool = False
    reasons: list[str] = field(default_factory=list)

    @classmethod
    def passed(cls, stage: str) -> StageOutcome:
        return cls(stage)

    @classmethod
    def failed(cls, stage: str, *reasons: str) -> StageOutcome:
        return cls(stage, invalidates=True, reasons=list(reasons))

    @classmethod
    def informational(cls, stage: str, *reasons: str) -> StageOutcome:
        return cls(stage, reasons=list(reasons))


@dataclass
class VerificationVerdict:
    """Combined result of all stages."""

    stages: list[StageOutcome]

    @property
    def valid(self) -> bool:
        return not any(s.invalidates for s in self.stages)

    @property
    def reasons(self) -> list[str]:
        reasons = [r for s in self.stages for r in s.reasons]
        if not reasons and self.valid:
            return [ALL_CHECKS_PASSED]
        return reasons

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "reasons": self.reasons}


class VerificationPipeline:
    """Runs the signature, revocation and integrity stages."""

    def __init__(
        self,
        signer: CredentialSigner,
        store: CredentialStore,
        content_store: ContentStore | None = None,
    ) -> None:
        self.signer = signer
        self.store = store
        self.content_store = content_store

    def verify(
        self,
        document: Document | dict[str, Any],
        content_address: str | None = None,
    ) -> VerificationVerdict:
        """Verify a credential or presentation.

        Args:
            document: The credential or presentation, parsed or raw.
            content_address: Optional content address of the credential.

        Returns:
            VerificationVerdict with the outcome of every stage that ran.

        Raises:
            ValidationError: If ``document`` is not a JSON object.
            StorageError: If the credential store cannot be read.
        """
        if not isinstance(document, (Credential, Presentation)):
            document = parse_document(document)

        stages = [self._check_signature(document)]

        revocation = self._check_revocation(document)
        if revocation is not None:
            stages.append(revocation)

        if content_address and not any(s.invalidates for s in stages):
            stages.append(self._check_integrity(document, content_address))

        verdict = VerificationVerdict(stages)
        logger.info("Verification result: %s", "VALID" if verdict.valid else "INVALID")
        return verdict

    def _check_signature(self, document: Document) -> StageOutcome:
        documents = [document.payload]
        if isinstance(document, Presentation):
            # Embedded credentials carrying their own proof are checked too.
            documents += [c.payload for c in document.credentials if "proof" in c.payload]

        for payload in documents:
            try:
                result = self.signer.verify(payload)
            except Exception as e:
                logger.info("Signature verification error: %s", e)
                return StageOutcome.failed("signature", f"{VERIFICATION_ERROR}: {e}")
            if not result.valid:
                logger.info("Signature verification failed: %s", result.error)
                return StageOutcome.failed("signature", SIGNATURE_INVALID)

        return StageOutcome.passed("signature")

    def _check_revocation(self, document: Document) -> StageOutcome | None:
        credential = subject_credential(document)
        credential_id = credential.id if credential else None
        if not credential_id:
            return None

        try:
            record = self.store.find_by_id(credential_id)
        except NotFound:
            logger.info("Credential %s not found in local storage (may be external)", credential_id)
            return StageOutcome.passed("revocation")

        if not record.revoked:
            return StageOutcome.passed("revocation")

        logger.info("Credential %s is revoked", credential_id)
        reasons = [REVOKED]
        if record.revoked_at:
            reasons.append(f"revoked_at: {record.revoked_at}")
        if record.revocation_reason:
            reasons.append(f"revocation_reason: {record.revocation_reason}")
        return StageOutcome.failed("revocation", *reasons)

    def _check_integrity(self, document: Document, content_address: str) -> StageOutcome:
        if self.content_store is None:
            return StageOutcome.informational(
                "integrity", f"{IPFS_CHECK_FAILED}: content store is not configured"
            )

        credential = subject_credential(document)
        if credential is None:
            return StageOutcome.informational(
                "integrity", f"{IPFS_CHECK_FAILED}: no credential to compare"
            )

        try:
            stored = self.content_store.fetch_json(content_address)
        except UpstreamUnavailable as e:
            logger.warning("IPFS verification failed: %s", e)
            return StageOutcome.informational("integrity", f"{IPFS_CHECK_FAILED}: {e}")

        if canonicalize_json(stored) != canonicalize_json(credential.payload):
            logger.info("IPFS content at %s does not match credential", content_address)
            return StageOutcome.failed("integrity", IPFS_INTEGRITY_MISMATCH)
        return StageOutcome.passed("integrity")
