import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keygate.config import settings
from keygate.core.redact import mask_email, short_address
from keygate.models.wallet_mapping import WalletEmailMapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedIdentity:
    email: str
    is_linked: bool


def wallet_email(address: str, domain: Optional[str] = None) -> str:
    """Synthesized identity for a wallet with no linked account."""
    return f"{address.lower()}@{domain or settings.WALLET_EMAIL_DOMAIN}"


async def find_active_mapping(db: AsyncSession, address: str) -> Optional[WalletEmailMapping]:
    return await db.scalar(
        select(WalletEmailMapping).where(
            WalletEmailMapping.wallet_address == address.lower(),
            WalletEmailMapping.is_active.is_(True),
        )
    )


async def resolve_email(db: AsyncSession, address: str, domain: Optional[str] = None) -> ResolvedIdentity:
    mapping = await find_active_mapping(db, address)
    if mapping:
        identity = ResolvedIdentity(email=mapping.email.lower(), is_linked=True)
    else:
        identity = ResolvedIdentity(email=wallet_email(address, domain), is_linked=False)
    logger.info(
        "email resolved: wallet=%s email=%s linked=%s",
        short_address(address), mask_email(identity.email), identity.is_linked,
    )
    return identity
