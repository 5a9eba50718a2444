"""
Credential and presentation shapes.

Incoming JSON is classified once into either a ``Credential`` or a
``Presentation`` so later stages use explicit accessors instead of probing
optional keys. A credential may also arrive wrapped as a decoded JWT
payload (``{"vc": {...}}``); the accessors look through that wrapper.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from vc_trust.errors import ValidationError


@dataclass(frozen=True)
class Credential:
    """A Verifiable Credential payload."""

    payload: dict[str, Any]

    @property
    def _body(self) -> dict[str, Any]:
        wrapped = self.payload.get("vc")
        if isinstance(wrapped, dict) and "credentialSubject" not in self.payload:
            return wrapped
        return self.payload

    @property
    def id(self) -> str | None:
        credential_id = self.payload.get("id") or self._body.get("id")
        return credential_id if isinstance(credential_id, str) and credential_id else None

    @property
    def issuer(self) -> str | None:
        issuer = self._body.get("issuer", self.payload.get("iss"))
        if isinstance(issuer, str):
            return issuer
        if isinstance(issuer, dict):
            return issuer.get("id")
        return None

    @property
    def types(self) -> list[str]:
        types = self._body.get("type", [])
        return [types] if isinstance(types, str) else list(types)

    @property
    def subject(self) -> dict[str, Any]:
        subject = self._body.get("credentialSubject")
        return subject if isinstance(subject, dict) else {}


@dataclass(frozen=True)
class Presentation:
    """A Verifiable Presentation payload."""

    payload: dict[str, Any]

    @property
    def holder(self) -> str | None:
        holder = self.payload.get("holder")
        return holder if isinstance(holder, str) else None

    @property
    def credentials(self) -> list[Credential]:
        """Embedded credentials that arrived as JSON objects.

        Compact JWT strings are skipped; decoding them is the signer's job.
        """
        embedded = self.payload.get("verifiableCredential", [])
        if isinstance(embedded, dict):
            embedded = [embedded]
        return [Credential(item) for item in embedded if isinstance(item, dict)]

    @property
    def first_credential(self) -> Credential | None:
        credentials = self.credentials
        return credentials[0] if credentials else None


Document = Union[Credential, Presentation]


def parse_document(payload: Any) -> Document:
    """Classify a JSON object as a credential or a presentation."""
    if not isinstance(payload, dict):
        raise ValidationError("Credential or presentation must be a JSON object")

    types = payload.get("type", [])
    if isinstance(types, str):
        types = [types]
    if "VerifiablePresentation" in types or "verifiableCredential" in payload:
        return Presentation(payload)
    return Credential(payload)


def subject_credential(document: Document) -> Credential | None:
    """The credential whose status and content a verification checks.

    For a presentation this is its first embedded credential.
    """
    if isinstance(document, Presentation):
        return document.first_credential
    return document


def canonicalize_json(data: Any) -> str:
    """Canonicalize JSON in the manner of JCS (RFC 8785).

    Keys are sorted, separators carry no whitespace and unicode is kept.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
