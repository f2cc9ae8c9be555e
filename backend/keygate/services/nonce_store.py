"""
nonce_store.py
One-time challenge tokens keyed by (address, nonce, purpose).

Two separate clocks:
- validity (NONCE_TTL_SECONDS, 5 min): how long a nonce may be consumed
- retention (NONCE_RETENTION_SECONDS, 1 h): how long rows are kept at all
"""
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from keygate.config import settings
from keygate.core.errors import (
    InfrastructureError,
    NonceAlreadyUsed,
    NonceExpired,
    NonceNotFound,
    ValidationError,
)
from keygate.core.redact import short_address
from keygate.models.nonce import NoncePurpose, WalletAuthNonce

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def validate_address(address) -> str:
    if not isinstance(address, str) or not ADDRESS_RE.match(address):
        raise ValidationError("Invalid Ethereum address format")
    return address.lower()


def validate_purpose(purpose) -> NoncePurpose:
    try:
        return NoncePurpose(purpose)
    except ValueError:
        raise ValidationError("Invalid purpose")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def purge_stale_nonces(
    db: AsyncSession,
    retention_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Delete every nonce issued before the retention horizon, used or not."""
    retention = settings.NONCE_RETENTION_SECONDS if retention_seconds is None else retention_seconds
    cutoff = (now or _utcnow()) - timedelta(seconds=retention)
    result = await db.execute(delete(WalletAuthNonce).where(WalletAuthNonce.issued_at < cutoff))
    return result.rowcount or 0


async def issue_nonce(
    db: AsyncSession,
    address: str,
    purpose: str,
    now: Optional[datetime] = None,
) -> WalletAuthNonce:
    addr = validate_address(address)
    nonce_purpose = validate_purpose(purpose)
    now = now or _utcnow()

    record = WalletAuthNonce(
        address=addr,
        nonce=str(uuid.uuid4()),
        purpose=nonce_purpose,
        issued_at=now,
        expires_at=now + timedelta(seconds=settings.NONCE_TTL_SECONDS),
        used=False,
    )
    try:
        removed = await purge_stale_nonces(db, now=now)
        db.add(record)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("nonce insert failed wallet=%s", short_address(addr))
        raise InfrastructureError("Failed to issue nonce")

    if removed:
        logger.info("purged %d stale nonces", removed)
    logger.info(
        "nonce issued wallet=%s purpose=%s expires_at=%s",
        short_address(addr), nonce_purpose.value, record.expires_at.isoformat(),
    )
    return record


async def consume_nonce(
    db: AsyncSession,
    address: str,
    nonce: str,
    purpose: str,
    now: Optional[datetime] = None,
) -> None:
    """Mark the nonce used, or raise the reason it cannot be.

    The state change is one conditional UPDATE; of two concurrent callers only
    one can match ``used = false``. The follow-up SELECT only classifies a
    rejection and never changes state.
    """
    addr = address.lower()
    nonce_purpose = validate_purpose(purpose)
    now = now or _utcnow()
    match = (
        WalletAuthNonce.address == addr,
        WalletAuthNonce.nonce == nonce.lower(),
        WalletAuthNonce.purpose == nonce_purpose,
    )

    try:
        result = await db.execute(
            update(WalletAuthNonce)
            .where(*match, WalletAuthNonce.used.is_(False), WalletAuthNonce.expires_at >= now)
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount == 1:
            logger.info("nonce consumed wallet=%s purpose=%s", short_address(addr), nonce_purpose.value)
            return
        row = (await db.execute(select(WalletAuthNonce.used).where(*match))).first()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("nonce consume failed wallet=%s", short_address(addr))
        raise InfrastructureError("Failed to validate nonce")

    if row is None:
        reason = NonceNotFound()
    elif row.used:
        reason = NonceAlreadyUsed()
    else:
        reason = NonceExpired()
    logger.warning(
        "nonce rejected wallet=%s purpose=%s reason=%s",
        short_address(addr), nonce_purpose.value, type(reason).__name__,
    )
    raise reason
