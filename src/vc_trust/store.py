"""
Credential record storage.

Records are kept as a JSON array in a single file. Every read-modify-write
runs under a lock shared by all stores opened on the same path, and every
write replaces the file atomically, so a failed write leaves the previously
persisted state intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from vc_trust.errors import AlreadyRevoked, NotFound, StorageError, ValidationError

logger = logging.getLogger(__name__)

UUID_URN_PREFIX = "urn:uuid:"
DEFAULT_REVOCATION_REASON = "No reason provided"

_path_locks: dict[Path, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def lock_for(path: Path) -> threading.RLock:
    """Return the lock guarding writes to ``path`` within this process."""
    key = Path(path).resolve()
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.RLock()
        return lock


def utc_now() -> str:
    """Current time as an ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_json(path: Path, default: Any) -> Any:
    """Read a JSON document, returning ``default`` if the file does not exist.

    Raises:
        StorageError: If the file exists but cannot be read or parsed.
    """
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, ValueError) as e:
        logger.error("Failed to read %s", path, exc_info=True)
        raise StorageError(f"Failed to read {path.name}: {e}") from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Write a JSON document by replacing the target file in one step.

    Raises:
        StorageError: If the document cannot be written.
    """
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        logger.error("Failed to write %s", path, exc_info=True)
        raise StorageError(f"Failed to write {path.name}: {e}") from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass


@dataclass
class CredentialRecord:
    """A stored credential and its lifecycle state."""

    id: str
    credential: dict[str, Any]
    holder_id: str
    issuer_id: str
    credential_type: str | None = None
    issued_at: str | None = None
    updated_at: str | None = None
    revoked: bool = False
    revoked_at: str | None = None
    revocation_reason: str | None = None
    content_address: str | None = None

    # Fields fixed at issuance; Save never overwrites them.
    IMMUTABLE_FIELDS = ("credential", "holder_id", "issuer_id", "issued_at")
    # Fields owned by Revoke.
    REVOCATION_FIELDS = ("revoked", "revoked_at", "revocation_reason")

    _JSON_KEYS = {
        "id": "id",
        "credential": "credential",
        "holder_id": "holderId",
        "issuer_id": "issuerId",
        "credential_type": "type",
        "issued_at": "issuedAt",
        "updated_at": "updatedAt",
        "revoked": "revoked",
        "revoked_at": "revokedAt",
        "revocation_reason": "revocationReason",
        "content_address": "contentAddress",
    }

    @property
    def status(self) -> str:
        return "revoked" if self.revoked else "active"

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in self._JSON_KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialRecord:
        values = {attr: data[key] for attr, key in cls._JSON_KEYS.items() if key in data}
        # Records written before holder/issuer were renamed.
        values.setdefault("holder_id", data.get("holderDid", ""))
        values.setdefault("issuer_id", data.get("issuerDid", ""))
        values.setdefault("issued_at", data.get("createdAt"))
        values["revoked"] = bool(values.get("revoked", False))
        return cls(**values)

    def matches_reference(self, reference: str) -> int:
        """Rank how ``reference`` identifies this record.

        Returns 3 for an exact match, 2 for the ``urn:uuid:`` form,
        1 for a suffix match and 0 for no match.
        """
        if self.id == reference:
            return 3
        if self.id == f"{UUID_URN_PREFIX}{reference}":
            return 2
        if self.id.endswith(reference):
            return 1
        return 0


@dataclass
class CredentialFilter:
    """Criteria for listing credentials. ``None`` means "any"."""

    holder_id: str | None = None
    credential_type: str | None = None
    revoked: bool | None = None

    def matches(self, record: CredentialRecord) -> bool:
        if self.holder_id is not None and record.holder_id != self.holder_id:
            return False
        if self.credential_type is not None and record.credential_type != self.credential_type:
            return False
        if self.revoked is not None and record.revoked != self.revoked:
            return False
        return True


class CredentialStore:
    """Durable keyed storage of credential records."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = lock_for(self.path)

    def save(self, record: CredentialRecord) -> CredentialRecord:
        """Insert a record, or merge it into the record with the same id.

        On merge, non-null mutable fields of ``record`` win. Issued content
        and revocation state of the stored record are preserved.
        """
        if not record.id:
            raise ValidationError("Credential record requires an id")

        with self._lock:
            records = self._load()
            now = utc_now()
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    merged = self._merge(existing, record)
                    merged.updated_at = now
                    records[index] = merged
                    self._write(records)
                    logger.info("Updated credential %s", record.id)
                    return merged

            if record.issued_at is None:
                record.issued_at = now
            record.updated_at = now
            records.append(record)
            self._write(records)
            logger.info("Saved new credential %s", record.id)
            return record

    def find_by_id(self, reference: str) -> CredentialRecord:
        """Resolve a full id, a bare UUID or an id suffix to a record.

        Raises:
            ValidationError: If ``reference`` is empty.
            NotFound: If no record matches.
        """
        with self._lock:
            return self._locate(self._load(), reference)[1]

    def revoke(self, reference: str, reason: str | None = None) -> CredentialRecord:
        """Mark a credential as revoked.

        The check of the current state and the write happen under the store
        lock, so of two concurrent revocations exactly one succeeds.

        Raises:
            NotFound: If no record matches.
            AlreadyRevoked: If the credential is already revoked.
        """
        with self._lock:
            records = self._load()
            index, record = self._locate(records, reference)
            if record.revoked:
                raise AlreadyRevoked(record.id, record.revoked_at, record.revocation_reason)

            now = utc_now()
            record.revoked = True
            record.revoked_at = now
            record.revocation_reason = reason or DEFAULT_REVOCATION_REASON
            record.updated_at = now
            records[index] = record
            self._write(records)

        logger.info("Marked credential as revoked: %s", record.id)
        return record

    def list(self, filter: CredentialFilter | None = None) -> list[CredentialRecord]:
        """List records in storage order, optionally filtered."""
        with self._lock:
            records = self._load()
        if filter is None:
            return records
        return [r for r in records if filter.matches(r)]

    def _locate(
        self, records: list[CredentialRecord], reference: str
    ) -> tuple[int, CredentialRecord]:
        reference = (reference or "").strip()
        if not reference:
            raise ValidationError("Credential id must not be empty")

        best_rank = 0
        best: tuple[int, CredentialRecord] | None = None
        suffix_matches = 0
        for index, record in enumerate(records):
            rank = record.matches_reference(reference)
            if rank == 1:
                suffix_matches += 1
            if rank > best_rank:
                best_rank = rank
                best = (index, record)

        if best is None:
            raise NotFound(f"Credential not found: {reference}", details={"credentialId": reference})
        if best_rank == 1 and suffix_matches > 1:
            logger.warning(
                "Credential reference %r matches %d records by suffix; using %s",
                reference,
                suffix_matches,
                best[1].id,
            )
        return best

    def _merge(self, existing: CredentialRecord, update: CredentialRecord) -> CredentialRecord:
        protected = set(CredentialRecord.IMMUTABLE_FIELDS) | set(CredentialRecord.REVOCATION_FIELDS)
        values = {}
        for f in fields(CredentialRecord):
            current = getattr(existing, f.name)
            incoming = getattr(update, f.name)
            if f.name in protected or incoming is None:
                values[f.name] = current
            else:
                values[f.name] = incoming
        return CredentialRecord(**values)

    def _load(self) -> list[CredentialRecord]:
        data = read_json(self.path, default=[])
        if not isinstance(data, list):
            raise StorageError(f"Credential store {self.path.name} is not a JSON array")
        try:
            return [CredentialRecord.from_dict(item) for item in data]
        except (TypeError, KeyError) as e:
            logger.error("Malformed credential record in %s", self.path, exc_info=True)
            raise StorageError(f"Malformed credential record: {e}") from e

    def _write(self, records: list[CredentialRecord]) -> None:
        write_json_atomic(self.path, [r.to_dict() for r in records])
