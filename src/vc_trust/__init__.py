"""
VC Trust - credential trust and revocation engine.

Supports:
- Durable credential records with atomic, single-writer revocation
- TOTP and single-use backup code authorization of revocation
- Verification pipeline: signature, revocation status, IPFS integrity
- Selective disclosure with predicate markers
"""

__version__ = "0.1.0"

from vc_trust.disclosure import PredicateSpec, SelectiveDisclosureEngine, evaluate_predicate
from vc_trust.documents import Credential, Presentation, parse_document
from vc_trust.errors import (
    AlreadyRevoked,
    Forbidden,
    NotFound,
    StorageError,
    TrustEngineError,
    Unauthorized,
    UpstreamUnavailable,
    ValidationError,
)
from vc_trust.ipfs import IPFSClient
from vc_trust.pipeline import VerificationPipeline, VerificationVerdict
from vc_trust.signer import EcdsaJcsSigner
from vc_trust.store import CredentialFilter, CredentialRecord, CredentialStore
from vc_trust.twofactor import TwoFactorAuthorizer, TwoFactorConfig, TwoFactorConfigStore

__all__ = [
    "AlreadyRevoked",
    "Credential",
    "CredentialFilter",
    "CredentialRecord",
    "CredentialStore",
    "EcdsaJcsSigner",
    "Forbidden",
    "IPFSClient",
    "NotFound",
    "PredicateSpec",
    "Presentation",
    "SelectiveDisclosureEngine",
    "StorageError",
    "TrustEngineError",
    "TwoFactorAuthorizer",
    "TwoFactorConfig",
    "TwoFactorConfigStore",
    "Unauthorized",
    "UpstreamUnavailable",
    "ValidationError",
    "VerificationPipeline",
    "VerificationVerdict",
    "evaluate_predicate",
    "parse_document",
]
