from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from keygate.database import get_db
from keygate.core.deps import get_current_user
from keygate.core.security import create_access_token
from keygate.models.user import User
from keygate.schemas.auth import SessionRequest, TokenResponse
from keygate.services.session_issuer import redeem_login_token

router = APIRouter(prefix="/api/auth", tags=["auth"])

@router.post("/session", response_model=TokenResponse)
async def exchange_login_token(body: SessionRequest, db: AsyncSession = Depends(get_db)):
    """Trade the one-time token from /api/wallet-auth for a bearer JWT."""
    user = await redeem_login_token(db, body.email, token=body.token, hashed_token=body.hashed_token)
    return TokenResponse(access_token=create_access_token(user.id))

@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {
        "id": user.id,
        "email": user.email,
        "wallet_address": user.wallet_address,
        "roles": sorted(r.role.value for r in user.roles),
        "user_metadata": user.user_metadata,
    }
