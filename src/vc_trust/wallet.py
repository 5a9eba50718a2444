"""Holder-side storage of credentials received from any issuer."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from vc_trust.documents import Credential
from vc_trust.errors import ValidationError
from vc_trust.store import UUID_URN_PREFIX, CredentialRecord, CredentialStore

logger = logging.getLogger(__name__)

UNKNOWN_HOLDER = "unknown"


def receive_credential(store: CredentialStore, payload: Any) -> CredentialRecord:
    """Store a credential handed to a holder.

    The credential is kept as received; its proof is not checked here.
    A credential without an id is stored under a generated ``urn:uuid``.
    Receiving an id that is already stored never replaces the stored
    credential or its revocation state.

    Raises:
        ValidationError: If ``payload`` is not a credential object.
        StorageError: If the record cannot be saved.
    """
    if not isinstance(payload, dict) or not payload:
        raise ValidationError("Missing required field: vc (verifiable credential)")
    if "@context" not in payload and "vc" not in payload:
        raise ValidationError("Invalid credential format: missing @context or vc field")

    credential = Credential(payload)
    credential_id = credential.id
    if credential_id is None:
        credential_id = f"{UUID_URN_PREFIX}{uuid.uuid4()}"
        logger.warning("Received credential has no id, stored as %s", credential_id)

    holder_id = credential.subject.get("id")
    if not isinstance(holder_id, str) or not holder_id:
        holder_id = UNKNOWN_HOLDER

    extra_types = [
        t for t in credential.types if isinstance(t, str) and t != "VerifiableCredential"
    ]
    record = store.save(
        CredentialRecord(
            id=credential_id,
            credential=payload,
            holder_id=holder_id,
            issuer_id=credential.issuer or "",
            credential_type=extra_types[0] if extra_types else None,
        )
    )
    logger.info("Received credential %s for holder %s", record.id, holder_id)
    return record
