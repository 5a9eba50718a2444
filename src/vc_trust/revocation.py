"""Revocation of issued credentials, gated by the issuer's second factor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from vc_trust.errors import AlreadyRevoked, ValidationError
from vc_trust.store import CredentialRecord, CredentialStore
from vc_trust.twofactor import AuthorizationResult, TwoFactorAuthorizer

logger = logging.getLogger(__name__)


@dataclass
class RevocationOutcome:
    record: CredentialRecord
    authorization: AuthorizationResult

    def to_dict(self, credential_id: str) -> dict[str, Any]:
        return {
            "success": True,
            "message": "Credential revoked",
            "credentialId": credential_id,
            "revokedAt": self.record.revoked_at,
            "reason": self.record.revocation_reason,
            "twoFAValidated": self.authorization.two_factor_validated,
        }


class RevocationService:
    def __init__(self, store: CredentialStore, authorizer: TwoFactorAuthorizer) -> None:
        self.store = store
        self.authorizer = authorizer

    def revoke(
        self,
        credential_id: str | None,
        code: str | None = None,
        reason: str | None = None,
    ) -> RevocationOutcome:
        """Revoke a credential after authorizing the caller.

        The code is verified before the credential is looked up, so an
        unauthorized caller learns nothing about it. A backup code is
        consumed only together with the revocation itself.

        Raises:
            ValidationError: If the id, or a required 2FA code, is missing.
            Unauthorized: If the 2FA code is invalid.
            Forbidden: If 2FA is required by policy but not configured.
            NotFound: If the credential is unknown.
            AlreadyRevoked: If the credential is already revoked.
        """
        if not credential_id:
            raise ValidationError("Missing required field: credentialId")

        self.authorizer.verify(code)

        record = self.store.find_by_id(credential_id)
        if record.revoked:
            raise AlreadyRevoked(record.id, record.revoked_at, record.revocation_reason)

        target = record.id
        authorization, record = self.authorizer.run_protected(
            code, lambda: self.store.revoke(target, reason)
        )
        logger.info("Revoked credential %s (2FA: %s)", record.id, authorization.method)
        return RevocationOutcome(record=record, authorization=authorization)

    def status(self, credential_id: str) -> dict[str, Any]:
        """Current status of a credential.

        Raises:
            NotFound: If the credential is unknown.
        """
        record = self.store.find_by_id(credential_id)
        status: dict[str, Any] = {"credentialId": credential_id, "status": record.status}
        if record.revoked:
            status["revokedAt"] = record.revoked_at
            status["reason"] = record.revocation_reason
        return status
