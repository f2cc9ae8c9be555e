from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from keygate.database import get_db
from keygate.config import settings
from keygate.core.deps import get_ownership_oracle, get_session_issuer
from keygate.core.errors import ValidationError
from keygate.schemas.wallet_auth import (
    LegacyVerify,
    NftCheck,
    NftCheckResponse,
    NonceResponse,
    RequestNonce,
    Verify,
    VerifyResponse,
    wallet_auth_action,
)
from keygate.services.nonce_store import issue_nonce
from keygate.services.ownership import OwnershipOracle
from keygate.services.session_issuer import SessionIssuer
from keygate.services.wallet_auth import WalletAuthenticator

router = APIRouter(prefix="/api", tags=["wallet-auth"])

ACTIONS = ("request-nonce", "verify", "nft-check")


def get_authenticator(
    oracle: OwnershipOracle = Depends(get_ownership_oracle),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> WalletAuthenticator:
    return WalletAuthenticator(oracle, issuer)


def decode_request(body) -> RequestNonce | Verify | NftCheck | LegacyVerify:
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body")
    if "action" not in body:
        try:
            return LegacyVerify.model_validate(body)
        except PydanticValidationError:
            raise ValidationError("Missing required fields: message, signature, address")
    if body["action"] not in ACTIONS:
        raise ValidationError("Unknown action")
    try:
        return wallet_auth_action.validate_python(body)
    except PydanticValidationError as e:
        missing = sorted({str(err["loc"][-1]) for err in e.errors()})
        raise ValidationError(f"Missing or invalid fields: {', '.join(missing)}")


@router.post("/wallet-auth")
async def wallet_auth(
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: WalletAuthenticator = Depends(get_authenticator),
):
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    req = decode_request(body)

    if isinstance(req, RequestNonce):
        record = await issue_nonce(db, req.address, req.purpose)
        return NonceResponse(
            address=record.address,
            nonce=record.nonce,
            purpose=record.purpose.value,
            issuedAt=record.issued_at,
            expiresAt=record.expires_at,
        )

    if isinstance(req, NftCheck):
        return NftCheckResponse(**await auth.nft_diagnostics(db, req.address))

    if isinstance(req, Verify):
        session, ownership = await auth.verify_with_nonce(
            db, req.address, req.message, req.signature, req.purpose,
        )
    elif isinstance(req, LegacyVerify):
        if not settings.LEGACY_AUTH_ENABLED:
            raise ValidationError("Timestamp authentication is disabled. Please request a nonce.")
        session, ownership = await auth.verify_legacy(db, req.address, req.message, req.signature)
    else:
        raise TypeError(f"unhandled wallet-auth request: {type(req).__name__}")

    return VerifyResponse(
        email=session.email,
        token=session.token,
        hashed_token=session.hashed_token,
        is_new_user=session.is_new_user,
        is_linked_account=session.is_linked_account,
        nft_verification=ownership.method,
    )
