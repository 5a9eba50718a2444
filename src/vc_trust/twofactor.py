"""
Two-factor authorization for privileged actions.

Implements TOTP (RFC 6238, 30 second steps, 6 digits) compatible with
Google Authenticator, Authy and similar apps, plus single-use backup codes.
One configuration exists per issuer.
"""

from __future__ import annotations

import base64
import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, TypeVar

import pyotp
import qrcode

from vc_trust.errors import Forbidden, StorageError, Unauthorized, ValidationError
from vc_trust.store import lock_for, read_json, utc_now, write_json_atomic

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
SECRET_LENGTH = 32
BACKUP_CODE_BYTES = 4  # 8 hex characters

_SEPARATORS = re.compile(r"[\s-]")
_TOTP_FORMAT = re.compile(r"^\d{6}$")


@dataclass
class TwoFactorConfig:
    """Persisted 2FA state of the issuer."""

    secret: str | None = None
    enabled: bool = False
    backup_codes: list[str] = field(default_factory=list)
    created_at: str | None = None
    enabled_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "secret": self.secret,
            "enabled": self.enabled,
            "backupCodes": list(self.backup_codes),
            "createdAt": self.created_at,
            "enabledAt": self.enabled_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TwoFactorConfig:
        return cls(
            secret=data.get("secret"),
            enabled=data.get("enabled") is True,
            backup_codes=list(data.get("backupCodes") or []),
            created_at=data.get("createdAt"),
            enabled_at=data.get("enabledAt"),
        )


@dataclass
class TwoFactorSetup:
    """A freshly generated, not yet enabled, secret and its backup codes."""

    secret: str
    provisioning_uri: str
    qr_code: str
    backup_codes: list[str]
    created_at: str


@dataclass
class AuthorizationResult:
    """Outcome of authorizing a protected action."""

    method: str  # "totp", "backup_code" or "unprotected"
    remaining_backup_codes: int | None = None

    @property
    def two_factor_validated(self) -> bool:
        return self.method != "unprotected"


class TwoFactorConfigStore:
    """Single-record JSON persistence for ``TwoFactorConfig``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock = lock_for(self.path)

    def load(self) -> TwoFactorConfig:
        with self.lock:
            data = read_json(self.path, default={})
        if not isinstance(data, dict):
            logger.error("2FA config %s is not a JSON object", self.path)
            raise StorageError(f"2FA config {self.path.name} is not a JSON object")
        return TwoFactorConfig.from_dict(data)

    def save(self, config: TwoFactorConfig) -> TwoFactorConfig:
        with self.lock:
            write_json_atomic(self.path, config.to_dict())
        return config

    def update(self, mutate: Callable[[TwoFactorConfig], TwoFactorConfig]) -> TwoFactorConfig:
        """Read, mutate and write the config as one transaction."""
        with self.lock:
            return self.save(mutate(self.load()))


def normalize_code(code: str) -> str:
    """Strip spaces and dashes from a user-entered TOTP code."""
    return _SEPARATORS.sub("", code or "")


def normalize_backup_code(code: str) -> str:
    """Uppercase and strip spaces and dashes from a backup code."""
    return normalize_code(code).upper()


def generate_backup_codes(count: int = 10) -> list[str]:
    """Generate ``count`` 8-character alphanumeric backup codes."""
    return [secrets.token_hex(BACKUP_CODE_BYTES).upper() for _ in range(count)]


def qr_code_data_url(uri: str) -> str:
    """Render ``uri`` as a PNG QR code in a ``data:`` URL."""
    image = qrcode.make(uri, box_size=8, border=2)
    buf = BytesIO()
    image.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class TwoFactorAuthorizer:
    """Owns the issuer's 2FA lifecycle and gates protected actions."""

    def __init__(
        self,
        store: TwoFactorConfigStore,
        issuer_name: str = "Ciphers Issuer",
        allow_unprotected: bool = True,
        window: int = 1,
        backup_code_count: int = 10,
    ) -> None:
        """Initialize the authorizer.

        Args:
            store: Persistence for the issuer's 2FA config.
            issuer_name: Issuer shown in authenticator apps.
            allow_unprotected: Let protected actions proceed while 2FA is
                not configured. Insecure; for bootstrap and demo use.
            window: Accepted clock drift, in 30 second steps.
            backup_code_count: Number of backup codes per set.
        """
        self.store = store
        self.issuer_name = issuer_name
        self.allow_unprotected = allow_unprotected
        self.window = window
        self.backup_code_count = backup_code_count

    def generate_secret(self, label: str, issuer_name: str | None = None) -> TwoFactorSetup:
        """Create a new secret and backup codes. Nothing is persisted."""
        secret = pyotp.random_base32(length=SECRET_LENGTH)
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        uri = totp.provisioning_uri(name=label, issuer_name=issuer_name or self.issuer_name)
        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=uri,
            qr_code=qr_code_data_url(uri),
            backup_codes=generate_backup_codes(self.backup_code_count),
            created_at=utc_now(),
        )

    @staticmethod
    def verify_code(
        code: str | None,
        secret: str | None,
        window: int = 1,
        for_time: datetime | int | None = None,
    ) -> bool:
        """Check a TOTP code against the current step and ``window`` steps either side."""
        if not code or not secret:
            return False

        clean = normalize_code(code)
        if not _TOTP_FORMAT.match(clean):
            return False

        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        try:
            if for_time is None:
                return totp.verify(clean, valid_window=window)
            return totp.verify(clean, for_time=for_time, valid_window=window)
        except (ValueError, TypeError):
            # Secret is not valid base32.
            return False

    @staticmethod
    def verify_backup_code(code: str | None, codes: list[str] | None) -> bool:
        if not code or not codes:
            return False
        return normalize_backup_code(code) in codes

    @staticmethod
    def consume_backup_code(code: str | None, codes: list[str] | None) -> list[str]:
        """Return ``codes`` without the (normalized) ``code``."""
        if not codes:
            return []
        if not code:
            return list(codes)
        clean = normalize_backup_code(code)
        return [c for c in codes if c != clean]

    @staticmethod
    def is_configured(config: TwoFactorConfig) -> bool:
        """True only when a secret exists and 2FA has been enabled."""
        return bool(config.secret) and config.enabled is True

    def status(self) -> dict[str, Any]:
        config = self.store.load()
        return {
            "enabled": config.enabled,
            "configured": self.is_configured(config),
            "createdAt": config.created_at,
            "enabledAt": config.enabled_at,
        }

    def enable(
        self,
        secret: str,
        code: str,
        backup_codes: list[str] | None = None,
    ) -> TwoFactorConfig:
        """Commit a secret after the caller proves possession with ``code``.

        Raises:
            ValidationError: If secret or code is missing.
            Unauthorized: If the code does not match the secret.
        """
        if not secret or not code:
            raise ValidationError("Missing required fields: secret and token")
        if not self.verify_code(code, secret, self.window):
            raise Unauthorized("Invalid 2FA code", code="two_factor_invalid")

        codes = [normalize_backup_code(c) for c in backup_codes or [] if c]
        if not codes:
            codes = generate_backup_codes(self.backup_code_count)

        def _enable(config: TwoFactorConfig) -> TwoFactorConfig:
            now = utc_now()
            return TwoFactorConfig(
                secret=secret,
                enabled=True,
                backup_codes=codes,
                created_at=config.created_at or now,
                enabled_at=now,
            )

        config = self.store.update(_enable)
        logger.info("2FA enabled for issuer (%d backup codes)", len(codes))
        return config

    def disable(self, code: str | None) -> TwoFactorConfig:
        """Disable 2FA. Requires a valid TOTP code.

        Raises:
            ValidationError: If 2FA is not enabled or the code is missing.
            Unauthorized: If the code is invalid.
        """
        with self.store.lock:
            config = self._require_code(code)
            config = self.store.save(TwoFactorConfig(created_at=config.created_at))
        logger.info("2FA disabled for issuer")
        return config

    def backup_codes(self, code: str | None, regenerate: bool = False) -> list[str]:
        """Return the stored backup codes, or replace them with a new set."""
        with self.store.lock:
            config = self._require_code(code)
            if regenerate:
                config.backup_codes = generate_backup_codes(self.backup_code_count)
                self.store.save(config)
                logger.info("Backup codes regenerated")
        return list(config.backup_codes)

    def verify(self, code: str | None) -> AuthorizationResult:
        """Check ``code`` against the protected-action policy.

        Nothing is consumed: a matching backup code stays valid until a
        protected action actually runs with it.

        Raises:
            ValidationError: If a code is required but missing.
            Unauthorized: If the code is neither a valid TOTP nor backup code.
            Forbidden: If 2FA is not configured and unprotected actions are disabled.
        """
        return self._check(self.store.load(), code)

    def authorize(self, code: str | None) -> AuthorizationResult:
        """Authorize a protected action, consuming a matching backup code."""
        return self.run_protected(code, lambda: None)[0]

    def run_protected(
        self, code: str | None, action: Callable[[], T]
    ) -> tuple[AuthorizationResult, T]:
        """Authorize with ``code`` and run ``action`` in one critical section.

        If 2FA is not configured the action is allowed only when unprotected
        actions are enabled, and a warning is logged. A backup code is
        consumed only after ``action`` returned; if it raises, the code stays
        valid.

        Raises:
            ValidationError: If a code is required but missing.
            Unauthorized: If the code is neither a valid TOTP nor backup code.
            Forbidden: If 2FA is not configured and unprotected actions are disabled.
        """
        with self.store.lock:
            config = self.store.load()
            result = self._check(config, code)

            if result.method == "unprotected":
                logger.warning(
                    "Protected action authorized WITHOUT 2FA because 2FA is not configured; "
                    "set VC_TRUST_ALLOW_REVOCATION_WITHOUT_2FA=false to forbid this"
                )

            value = action()

            if result.method == "backup_code":
                config.backup_codes = self.consume_backup_code(code, config.backup_codes)
                self.store.save(config)
                result.remaining_backup_codes = len(config.backup_codes)
                logger.info(
                    "Backup code used for authorization; %d remaining", len(config.backup_codes)
                )
        return result, value

    def _check(self, config: TwoFactorConfig, code: str | None) -> AuthorizationResult:
        if not self.is_configured(config):
            if not self.allow_unprotected:
                raise Forbidden(
                    "2FA must be configured before this action is allowed",
                    code="two_factor_not_configured",
                )
            return AuthorizationResult(method="unprotected")

        if not code:
            raise ValidationError(
                "2FA code is required for this action", code="two_factor_required"
            )
        if self.verify_code(code, config.secret, self.window):
            return AuthorizationResult(method="totp")
        if self.verify_backup_code(code, config.backup_codes):
            return AuthorizationResult(
                method="backup_code", remaining_backup_codes=len(config.backup_codes)
            )
        raise Unauthorized(
            "Invalid 2FA code and no matching backup code", code="two_factor_invalid"
        )

    def _require_code(self, code: str | None) -> TwoFactorConfig:
        config = self.store.load()
        if not self.is_configured(config):
            raise ValidationError("2FA is not enabled", code="two_factor_not_enabled")
        if not code:
            raise ValidationError("2FA code is required", code="two_factor_required")
        if not self.verify_code(code, config.secret, self.window):
            raise Unauthorized("Invalid 2FA code", code="two_factor_invalid")
        return config
