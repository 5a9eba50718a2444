"""Wiring of the trust engine components from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vc_trust.config import Settings
from vc_trust.disclosure import SelectiveDisclosureEngine
from vc_trust.ipfs import ContentStore, IPFSClient
from vc_trust.issuance import CredentialIssuer
from vc_trust.pipeline import VerificationPipeline
from vc_trust.revocation import RevocationService
from vc_trust.signer import CredentialSigner, EcdsaJcsSigner
from vc_trust.store import CredentialStore
from vc_trust.twofactor import TwoFactorAuthorizer, TwoFactorConfigStore

logger = logging.getLogger(__name__)


@dataclass
class TrustEngine:
    settings: Settings
    store: CredentialStore
    two_factor: TwoFactorAuthorizer
    signer: CredentialSigner
    content_store: ContentStore | None
    pipeline: VerificationPipeline
    disclosure: SelectiveDisclosureEngine
    issuer: CredentialIssuer
    revocation: RevocationService

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        signer: CredentialSigner | None = None,
        content_store: ContentStore | None = None,
    ) -> TrustEngine:
        """Build all components.

        Args:
            settings: Engine settings.
            signer: Signer to use instead of the issuer key in ``data_dir``.
            content_store: Content store to use instead of the configured IPFS node.
        """
        store = CredentialStore(settings.credentials_file)
        two_factor = TwoFactorAuthorizer(
            TwoFactorConfigStore(settings.two_factor_file),
            issuer_name=settings.issuer_name,
            allow_unprotected=settings.allow_revocation_without_2fa,
            window=settings.totp_window,
            backup_code_count=settings.backup_code_count,
        )
        if settings.allow_revocation_without_2fa:
            logger.warning(
                "Revocation is allowed without 2FA while 2FA is not configured "
                "(VC_TRUST_ALLOW_REVOCATION_WITHOUT_2FA=true)"
            )

        if signer is None:
            signer = EcdsaJcsSigner.from_key_file(settings.signing_key_file, settings.issuer_did)
        if content_store is None and settings.ipfs_api_url:
            content_store = IPFSClient(
                settings.ipfs_api_url,
                timeout=settings.ipfs_timeout,
                max_retries=settings.ipfs_upload_retries,
                retry_delay=settings.ipfs_retry_delay,
            )

        return cls(
            settings=settings,
            store=store,
            two_factor=two_factor,
            signer=signer,
            content_store=content_store,
            pipeline=VerificationPipeline(signer, store, content_store),
            disclosure=SelectiveDisclosureEngine(signer),
            issuer=CredentialIssuer(
                signer,
                store,
                issuer_id=settings.issuer_did,
                base_url=settings.base_url,
                content_store=content_store,
            ),
            revocation=RevocationService(store, two_factor),
        )
