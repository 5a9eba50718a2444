"""
Error taxonomy for the trust engine.

Every error carries a machine-checkable ``code`` so HTTP callers can branch
on it without matching prose, and the HTTP status it maps to.
"""

from __future__ import annotations

from typing import Any


class TrustEngineError(Exception):
    """Base class for all trust engine errors."""

    code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON error body returned by the API."""
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(TrustEngineError):
    """Missing or malformed input."""

    code = "validation_error"
    status_code = 400


class Unauthorized(TrustEngineError):
    """Missing or invalid credentials (API key or second factor)."""

    code = "unauthorized"
    status_code = 401


class Forbidden(Unauthorized):
    """Authenticated, but not allowed to perform the action."""

    code = "forbidden"
    status_code = 403


class NotFound(TrustEngineError):
    """Unknown credential."""

    code = "not_found"
    status_code = 404


class AlreadyRevoked(TrustEngineError):
    """Revocation requested for a credential that is already revoked."""

    code = "already_revoked"
    status_code = 400

    def __init__(self, credential_id: str, revoked_at: str | None, reason: str | None) -> None:
        super().__init__(
            "Credential is already revoked",
            details={
                "credentialId": credential_id,
                "revokedAt": revoked_at,
                "reason": reason,
            },
        )
        self.credential_id = credential_id
        self.revoked_at = revoked_at
        self.reason = reason


class StorageError(TrustEngineError):
    """Persistent storage could not be read or written."""

    code = "storage_error"
    status_code = 500


class UpstreamUnavailable(TrustEngineError):
    """The signer or the content store could not be reached."""

    code = "upstream_unavailable"
    status_code = 502
