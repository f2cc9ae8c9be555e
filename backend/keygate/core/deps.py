from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from keygate.database import get_db
from keygate.models.user import User, UserRole, AppRole
from keygate.core.security import decode_token
from keygate.config import settings
from keygate.services.ownership import OwnershipOracle, RpcBalanceProvider
from keygate.services.session_issuer import SessionIssuer

bearer = HTTPBearer()

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    user_id = decode_token(credentials.credentials)
    if not user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User not found")
    return user

async def require_admin(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    role = await db.scalar(
        select(UserRole).where(UserRole.user_id == user.id, UserRole.role == AppRole.admin)
    )
    if not role:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin only")
    return user

def get_ownership_oracle() -> OwnershipOracle:
    providers = [
        RpcBalanceProvider(url, settings.NFT_CONTRACT_ADDRESS, timeout=settings.RPC_TIMEOUT_SECONDS)
        for url in settings.rpc_urls
    ]
    return OwnershipOracle(providers, fallback_addresses=settings.fallback_wallets)

def get_session_issuer() -> SessionIssuer:
    return SessionIssuer(
        admin_addresses=settings.admin_wallets,
        wallet_email_domain=settings.WALLET_EMAIL_DOMAIN,
        token_ttl_seconds=settings.LOGIN_TOKEN_TTL_SECONDS,
    )
