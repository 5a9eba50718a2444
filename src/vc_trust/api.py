"""
HTTP API for the trust engine.

Issuer-only endpoints require the ``X-API-Key`` header (or a bearer token
carrying the same key). Errors are returned as
``{"error": <code>, "message": <text>, ...}``.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from vc_trust import __version__
from vc_trust.config import Settings, get_settings
from vc_trust.documents import Credential, Presentation
from vc_trust.engine import TrustEngine
from vc_trust.errors import (
    Forbidden,
    StorageError,
    TrustEngineError,
    Unauthorized,
    ValidationError,
)
from vc_trust.store import CredentialFilter, CredentialRecord
from vc_trust.wallet import receive_credential

logger = logging.getLogger(__name__)

router = APIRouter()
two_factor_router = APIRouter(prefix="/2fa", tags=["2fa"])


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IssueRequest(_Body):
    holder_id: str | None = Field(None, validation_alias=AliasChoices("holderId", "holderDid"))
    type: str | None = None
    claims: dict[str, Any] | None = None


class RevokeRequest(_Body):
    credential_id: str | None = Field(None, alias="credentialId")
    two_fa: str | None = Field(None, alias="twoFA")
    reason: str | None = None


class VerifyRequest(_Body):
    vc: Any = None
    vp: Any = None
    content_address: str | None = Field(
        None, validation_alias=AliasChoices("contentAddress", "ipfsCid")
    )


class ReceiveRequest(_Body):
    vc: Any = None


class PresentRequest(_Body):
    credential_id: str | None = Field(None, alias="credentialId")
    holder_id: str | None = Field(None, validation_alias=AliasChoices("holderId", "holderDid"))
    fields: list[str] | None = None
    predicates: dict[str, Any] | None = None


class SetupRequest(_Body):
    issuer_name: str | None = Field(None, alias="issuerName")
    account_name: str | None = Field(None, alias="accountName")


class CodeCheckRequest(_Body):
    token: str | None = None
    secret: str | None = None


class EnableRequest(_Body):
    secret: str | None = None
    token: str | None = None
    backup_codes: list[str] | None = Field(None, alias="backupCodes")


class TokenRequest(_Body):
    token: str | None = None
    regenerate: bool = False


def get_engine(request: Request) -> TrustEngine:
    return request.app.state.engine


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(None),
    authorization: str | None = Header(None),
) -> None:
    provided = x_api_key
    if not provided and authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]

    if not provided:
        raise Unauthorized(
            "API key required. Provide it in the X-API-Key header", code="api_key_required"
        )
    expected = request.app.state.engine.settings.api_key
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise Forbidden("The provided API key is not valid", code="api_key_invalid")


def _record_summary(record: CredentialRecord) -> dict[str, Any]:
    summary = record.to_dict()
    summary["status"] = record.status
    return summary


@router.get("/health")
def health(engine: TrustEngine = Depends(get_engine)):
    if engine.content_store is None:
        content_store = "disabled"
    elif engine.content_store.is_available():
        content_store = "available"
    else:
        content_store = "unavailable"
    return {"status": "ok", "contentStore": content_store}


@router.post("/issue", status_code=201, dependencies=[Depends(require_api_key)])
def issue_credential(body: IssueRequest, engine: TrustEngine = Depends(get_engine)):
    issued = engine.issuer.issue(body.holder_id, body.type, body.claims)
    return {
        "credential": issued.credential,
        "credentialId": issued.record.id,
        "contentAddress": issued.content_address,
        "message": "Credential issued successfully",
    }


@router.get("/credentials", dependencies=[Depends(require_api_key)])
def list_credentials(
    holder_id: str | None = Query(None, alias="holderId"),
    credential_type: str | None = Query(None, alias="type"),
    revoked: bool | None = Query(None),
    engine: TrustEngine = Depends(get_engine),
):
    records = engine.store.list(
        CredentialFilter(holder_id=holder_id, credential_type=credential_type, revoked=revoked)
    )
    return {"credentials": [_record_summary(r) for r in records], "count": len(records)}


@router.post("/revoke", dependencies=[Depends(require_api_key)])
def revoke_credential(body: RevokeRequest, engine: TrustEngine = Depends(get_engine)):
    outcome = engine.revocation.revoke(body.credential_id, body.two_fa, body.reason)
    return outcome.to_dict(body.credential_id)


@router.get("/status/{credential_id:path}")
def credential_status(credential_id: str, engine: TrustEngine = Depends(get_engine)):
    return engine.revocation.status(credential_id)


@router.post("/verify")
def verify(body: VerifyRequest, engine: TrustEngine = Depends(get_engine)):
    if body.vc is None and body.vp is None:
        raise ValidationError("Missing required field: either vc or vp must be provided")

    raw = body.vc if body.vc is not None else body.vp
    if not isinstance(raw, dict):
        raise ValidationError("vc or vp must be a JSON object")
    document = Credential(raw) if body.vc is not None else Presentation(raw)

    return engine.pipeline.verify(document, body.content_address).to_dict()


@router.post("/receive-vc")
def receive_vc(body: ReceiveRequest, engine: TrustEngine = Depends(get_engine)):
    record = receive_credential(engine.store, body.vc)
    return {
        "success": True,
        "message": "Credential received and saved",
        "credentialId": record.id,
    }


@router.post("/present")
def present(body: PresentRequest, engine: TrustEngine = Depends(get_engine)):
    if not body.credential_id or not body.holder_id:
        raise ValidationError(
            "Missing required fields: credentialId and holderId are required"
        )

    record = engine.store.find_by_id(body.credential_id)
    presentation = engine.disclosure.present(
        record, body.holder_id, body.fields, body.predicates
    )
    return {
        "verifiablePresentation": presentation,
        "message": "Presentation created successfully",
        "note": (
            "Selective disclosure uses field filtering and predicate markers, "
            "not zero-knowledge proofs."
        ),
    }


@two_factor_router.get("/status", dependencies=[Depends(require_api_key)])
def two_factor_status(engine: TrustEngine = Depends(get_engine)):
    return engine.two_factor.status()


@two_factor_router.post("/setup", dependencies=[Depends(require_api_key)])
def two_factor_setup(
    body: SetupRequest | None = None, engine: TrustEngine = Depends(get_engine)
):
    settings = engine.settings
    issuer_name = (body and body.issuer_name) or settings.issuer_name
    account_name = (body and body.account_name) or settings.issuer_account

    setup = engine.two_factor.generate_secret(account_name, issuer_name=issuer_name)
    return {
        "success": True,
        "secret": setup.secret,
        "provisioningUri": setup.provisioning_uri,
        "qrCode": setup.qr_code,
        "backupCodes": setup.backup_codes,
        "issuerName": issuer_name,
        "accountName": account_name,
        "message": "Add the secret to your authenticator app, then confirm with /2fa/enable",
    }


@two_factor_router.post("/verify", dependencies=[Depends(require_api_key)])
def two_factor_verify(body: CodeCheckRequest, engine: TrustEngine = Depends(get_engine)):
    if not body.token or not body.secret:
        raise ValidationError("Missing required fields: token and secret")
    valid = engine.two_factor.verify_code(body.token, body.secret, engine.two_factor.window)
    return {
        "success": valid,
        "message": "2FA code is valid" if valid else "2FA code is invalid",
    }


@two_factor_router.post("/enable", dependencies=[Depends(require_api_key)])
def two_factor_enable(body: EnableRequest, engine: TrustEngine = Depends(get_engine)):
    config = engine.two_factor.enable(body.secret, body.token, body.backup_codes)
    return {
        "success": True,
        "message": "2FA has been enabled successfully",
        "enabled": True,
        "enabledAt": config.enabled_at,
        "backupCodesCount": len(config.backup_codes),
        "backupCodes": config.backup_codes,
    }


@two_factor_router.post("/disable", dependencies=[Depends(require_api_key)])
def two_factor_disable(body: TokenRequest, engine: TrustEngine = Depends(get_engine)):
    engine.two_factor.disable(body.token)
    return {"success": True, "message": "2FA has been disabled successfully", "enabled": False}


@two_factor_router.post("/backup-codes", dependencies=[Depends(require_api_key)])
def two_factor_backup_codes(body: TokenRequest, engine: TrustEngine = Depends(get_engine)):
    codes = engine.two_factor.backup_codes(body.token, regenerate=body.regenerate)
    return {
        "success": True,
        "backupCodes": codes,
        "count": len(codes),
        "message": "Backup codes have been regenerated" if body.regenerate else "Backup codes retrieved",
    }


def _handle_engine_error(request: Request, exc: TrustEngineError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": "Internal storage error"},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": ValidationError.code,
            "message": "Malformed request",
            "details": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def create_app(
    settings: Settings | None = None,
    engine: TrustEngine | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to build the engine from. Defaults to ``get_settings()``.
        engine: A pre-built engine; takes precedence over ``settings``.
    """
    if engine is None:
        engine = TrustEngine.from_settings(settings or get_settings())

    app = FastAPI(title="VC Trust Engine", version=__version__)
    app.state.engine = engine

    app.add_exception_handler(TrustEngineError, _handle_engine_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)

    app.include_router(router)
    app.include_router(two_factor_router)
    return app
