"""
session_issuer.py
Turns a verified, NFT-holding wallet into an application user plus a one-time
login token the client exchanges for a JWT at /api/auth/session.

Everything runs in one transaction: either the caller gets the user *and* a
usable token, or nothing is written.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from keygate.core.errors import AuthenticationError, InfrastructureError
from keygate.core.redact import mask_email, short_address
from keygate.core.security import hash_login_token, new_login_token
from keygate.database import insert_ignoring_conflicts, json_merged
from keygate.models.login_token import LoginToken
from keygate.models.user import AppRole, User, UserRole
from keygate.services.identity import ResolvedIdentity, wallet_email
from keygate.services.ownership import OwnershipResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    user_id: int
    email: str
    token: str
    hashed_token: str
    is_new_user: bool
    is_linked_account: bool
    is_admin: bool


def display_name(address: str, is_linked: bool) -> str:
    if is_linked:
        return "Admin"
    return f"Admin ({address[:6]}...{address[-4:]})"


class SessionIssuer:
    def __init__(
        self,
        admin_addresses: Iterable[str],
        wallet_email_domain: Optional[str] = None,
        token_ttl_seconds: int = 600,
    ):
        self.admin_addresses = frozenset(a.lower() for a in admin_addresses)
        self.wallet_email_domain = wallet_email_domain
        self.token_ttl_seconds = token_ttl_seconds

    def is_admin_eligible(self, address: str) -> bool:
        return address.lower() in self.admin_addresses

    async def issue(
        self,
        db: AsyncSession,
        address: str,
        ownership: OwnershipResult,
        identity: ResolvedIdentity,
    ) -> IssuedSession:
        addr = address.lower()
        wallet_fields = {
            "wallet_address": addr,
            "auth_method": "wallet",
            "nft_verified": True,
            "nft_verification_method": ownership.method,
        }
        try:
            user, is_new_user = await self._upsert_user(db, addr, identity, wallet_fields)
            if identity.is_linked:
                await self._note_legacy_wallet_user(db, addr, user.id)
            is_admin = await self._grant_admin_if_listed(db, user.id, addr)

            token, hashed_token = new_login_token()
            db.add(LoginToken(
                user_id=user.id,
                email=identity.email,
                token_hash=hashed_token,
                expires_at=datetime.now(timezone.utc) + timedelta(seconds=self.token_ttl_seconds),
            ))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("session issuance failed: wallet=%s", short_address(addr))
            raise InfrastructureError("Failed to generate authentication session")

        logger.info(
            "session issued: wallet=%s email=%s user_id=%s new=%s linked=%s nft_method=%s",
            short_address(addr), mask_email(identity.email), user.id,
            is_new_user, identity.is_linked, ownership.method,
        )
        return IssuedSession(
            user_id=user.id,
            email=identity.email,
            token=token,
            hashed_token=hashed_token,
            is_new_user=is_new_user,
            is_linked_account=identity.is_linked,
            is_admin=is_admin,
        )

    async def _upsert_user(self, db, addr, identity, wallet_fields):
        created = await db.execute(insert_ignoring_conflicts(
            db, User, ["email"],
            email=identity.email,
            user_metadata={**wallet_fields, "full_name": display_name(addr, identity.is_linked)},
        ))
        is_new_user = created.rowcount == 1
        if not is_new_user:
            await db.execute(
                update(User)
                .where(User.email == identity.email)
                .values(user_metadata=json_merged(db, User.user_metadata, wallet_fields))
                .execution_options(synchronize_session=False)
            )
        user = await db.scalar(
            select(User).where(User.email == identity.email).execution_options(populate_existing=True)
        )
        return user, is_new_user

    async def _note_legacy_wallet_user(self, db, addr, user_id):
        legacy_id = await db.scalar(
            select(User.id).where(User.email == wallet_email(addr, self.wallet_email_domain))
        )
        if legacy_id and legacy_id != user_id:
            # left in place; operators clean these up by hand
            logger.info(
                "legacy wallet user %s exists for wallet=%s, linked account %s used instead",
                legacy_id, short_address(addr), user_id,
            )

    async def _grant_admin_if_listed(self, db, user_id, addr) -> bool:
        if not self.is_admin_eligible(addr):
            logger.info("admin role not granted: wallet=%s not on allow-list", short_address(addr))
            return False
        granted = await db.execute(insert_ignoring_conflicts(
            db, UserRole, ["user_id", "role"], user_id=user_id, role=AppRole.admin,
        ))
        if granted.rowcount == 1:
            logger.info("admin role assigned: user_id=%s wallet=%s", user_id, short_address(addr))
        else:
            logger.info("admin role already held: user_id=%s", user_id)
        return True


async def redeem_login_token(
    db: AsyncSession,
    email: str,
    token: Optional[str] = None,
    hashed_token: Optional[str] = None,
    now: Optional[datetime] = None,
) -> User:
    """Burn a login token and return its user. Each token works exactly once."""
    token_hash = hash_login_token(token) if token else hashed_token
    if not token_hash:
        raise AuthenticationError("Invalid or expired login token")
    now = now or datetime.now(timezone.utc)

    try:
        result = await db.execute(
            update(LoginToken)
            .where(
                LoginToken.token_hash == token_hash,
                LoginToken.email == email.lower(),
                LoginToken.used_at.is_(None),
                LoginToken.expires_at > now,
            )
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        user_id = None
        if result.rowcount == 1:
            user_id = await db.scalar(select(LoginToken.user_id).where(LoginToken.token_hash == token_hash))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("login token redemption failed")
        raise InfrastructureError()

    if user_id is None:
        logger.warning("login token rejected: email=%s", mask_email(email))
        raise AuthenticationError("Invalid or expired login token")
    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationError("Invalid or expired login token")
    return user
