"""
Credential issuance.

Builds a credential for a holder, signs it, records it in the store and
pins a copy in the content store when one is configured.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from vc_trust.errors import UpstreamUnavailable, ValidationError
from vc_trust.ipfs import ContentStore
from vc_trust.signer import CredentialSigner
from vc_trust.store import UUID_URN_PREFIX, CredentialRecord, CredentialStore, utc_now

logger = logging.getLogger(__name__)

CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
STATUS_TYPE = "RevocationList2020Status"


@dataclass
class IssuedCredential:
    record: CredentialRecord
    content_address: str | None = None

    @property
    def credential(self) -> dict[str, Any]:
        return self.record.credential


class CredentialIssuer:
    def __init__(
        self,
        signer: CredentialSigner,
        store: CredentialStore,
        issuer_id: str,
        base_url: str,
        content_store: ContentStore | None = None,
    ) -> None:
        self.signer = signer
        self.store = store
        self.issuer_id = issuer_id
        self.base_url = base_url.rstrip("/")
        self.content_store = content_store

    def issue(
        self,
        holder_id: str,
        credential_type: str,
        claims: dict[str, Any],
    ) -> IssuedCredential:
        """Issue a signed credential of ``credential_type`` to ``holder_id``.

        A failed content-store upload is logged and the credential is still
        issued, without a content address.

        Raises:
            ValidationError: If a required field is missing.
            StorageError: If the record cannot be saved.
        """
        if not holder_id or not credential_type or not isinstance(claims, dict):
            raise ValidationError(
                "Missing required fields: holderId, type, and claims are required"
            )

        credential_uuid = str(uuid.uuid4())
        credential_id = f"{UUID_URN_PREFIX}{credential_uuid}"
        issued_at = utc_now()

        payload = {
            "@context": [CREDENTIALS_CONTEXT],
            "id": credential_id,
            "type": ["VerifiableCredential", credential_type],
            "issuer": {"id": self.issuer_id},
            "issuanceDate": issued_at,
            "credentialSubject": {**claims, "id": holder_id},
            "credentialStatus": {
                "id": f"{self.base_url}/status/{credential_uuid}",
                "type": STATUS_TYPE,
            },
        }
        signed = self.signer.sign(payload)
        logger.info("Issued credential %s of type %r to %s", credential_id, credential_type, holder_id)

        record = self.store.save(
            CredentialRecord(
                id=credential_id,
                credential=signed,
                holder_id=holder_id,
                issuer_id=self.issuer_id,
                credential_type=credential_type,
                issued_at=issued_at,
            )
        )

        content_address = None
        if self.content_store is not None:
            try:
                content_address = self.content_store.add_json(signed)
            except UpstreamUnavailable as e:
                logger.warning("Failed to upload credential %s to IPFS: %s", credential_id, e)
            else:
                record = self.store.save(
                    CredentialRecord(
                        id=credential_id,
                        credential=signed,
                        holder_id=holder_id,
                        issuer_id=self.issuer_id,
                        content_address=content_address,
                    )
                )

        return IssuedCredential(record=record, content_address=content_address)
