import asyncio
import uuid
from datetime import datetime, timedelta, timezone
import pytest
from sqlalchemy import func, select
from keygate.core.errors import NonceAlreadyUsed, NonceExpired, NonceNotFound, ValidationError
from keygate.models.nonce import NoncePurpose, WalletAuthNonce
from keygate.services.nonce_store import consume_nonce, issue_nonce, purge_stale_nonces

ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"


async def _count(db) -> int:
    return await db.scalar(select(func.count()).select_from(WalletAuthNonce))


@pytest.mark.asyncio
async def test_issue_nonce_stores_unused_record(db):
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    record = await issue_nonce(db, ADDRESS, "login", now=now)
    assert record.address == ADDRESS.lower()
    assert record.purpose == NoncePurpose.login
    assert record.used is False
    assert record.expires_at - record.issued_at == timedelta(minutes=5)
    uuid.UUID(record.nonce)
    assert await _count(db) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("address,purpose", [
    ("0x742d35", "login"),
    ("742d35Cc6634C0532925a3b844Bc9e7595f2bD18", "login"),
    (ADDRESS + "00", "login"),
    (ADDRESS, "logout"),
    (ADDRESS, ""),
])
async def test_issue_nonce_rejects_bad_input_without_writing(db, address, purpose):
    with pytest.raises(ValidationError):
        await issue_nonce(db, address, purpose)
    assert await _count(db) == 0


@pytest.mark.asyncio
async def test_nonces_are_unique(db):
    a = await issue_nonce(db, ADDRESS, "login")
    b = await issue_nonce(db, ADDRESS, "login")
    assert a.nonce != b.nonce


@pytest.mark.asyncio
async def test_consume_once_then_already_used(db):
    record = await issue_nonce(db, ADDRESS, "login")
    await consume_nonce(db, ADDRESS, record.nonce, "login")

    row = await db.scalar(select(WalletAuthNonce).where(WalletAuthNonce.nonce == record.nonce))
    await db.refresh(row)
    assert row.used is True
    assert row.used_at is not None

    with pytest.raises(NonceAlreadyUsed):
        await consume_nonce(db, ADDRESS, record.nonce, "login")


@pytest.mark.asyncio
async def test_consume_unknown_nonce(db):
    with pytest.raises(NonceNotFound):
        await consume_nonce(db, ADDRESS, str(uuid.uuid4()), "login")


@pytest.mark.asyncio
async def test_consume_requires_matching_purpose_and_address(db):
    record = await issue_nonce(db, ADDRESS, "link")
    with pytest.raises(NonceNotFound):
        await consume_nonce(db, ADDRESS, record.nonce, "login")
    with pytest.raises(NonceNotFound):
        await consume_nonce(db, "0x" + "1" * 40, record.nonce, "link")
    # still usable by the right triple
    await consume_nonce(db, ADDRESS.upper().replace("0X", "0x"), record.nonce, "link")


@pytest.mark.asyncio
async def test_expired_nonce_is_rejected(db):
    issued = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    record = await issue_nonce(db, ADDRESS, "login", now=issued)
    with pytest.raises(NonceExpired):
        await consume_nonce(db, ADDRESS, record.nonce, "login", now=issued + timedelta(minutes=5, seconds=1))
    # the rejection does not burn it; it just stays expired
    with pytest.raises(NonceExpired):
        await consume_nonce(db, ADDRESS, record.nonce, "login", now=issued + timedelta(minutes=10))


@pytest.mark.asyncio
async def test_nonce_valid_just_before_expiry(db):
    issued = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    record = await issue_nonce(db, ADDRESS, "login", now=issued)
    await consume_nonce(db, ADDRESS, record.nonce, "login", now=issued + timedelta(minutes=4, seconds=59))


@pytest.mark.asyncio
async def test_nonce_valid_at_exact_expiry(db):
    issued = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    record = await issue_nonce(db, ADDRESS, "login", now=issued)
    await consume_nonce(db, ADDRESS, record.nonce, "login", now=record.expires_at)


@pytest.mark.asyncio
async def test_concurrent_consume_has_exactly_one_winner(session_factory):
    async with session_factory() as db:
        record = await issue_nonce(db, ADDRESS, "login")

    async def attempt():
        async with session_factory() as db:
            try:
                await consume_nonce(db, ADDRESS, record.nonce, "login")
                return "ok"
            except NonceAlreadyUsed:
                return "already_used"

    results = await asyncio.gather(attempt(), attempt())
    assert sorted(results) == ["already_used", "ok"]


@pytest.mark.asyncio
async def test_issue_sweeps_records_past_retention(db):
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    for age in (timedelta(hours=2), timedelta(minutes=30)):
        db.add(WalletAuthNonce(
            address=ADDRESS.lower(), nonce=str(uuid.uuid4()), purpose=NoncePurpose.login,
            issued_at=now - age, expires_at=now - age + timedelta(minutes=5), used=False,
        ))
    await db.commit()
    assert await _count(db) == 2

    await issue_nonce(db, ADDRESS, "create", now=now)
    # the 2h old one is gone, the 30 min old one (expired, but retained) stays
    assert await _count(db) == 2


@pytest.mark.asyncio
async def test_purge_stale_nonces_returns_count(db):
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    for hours in (3, 2, 0):
        db.add(WalletAuthNonce(
            address=ADDRESS.lower(), nonce=str(uuid.uuid4()), purpose=NoncePurpose.login,
            issued_at=now - timedelta(hours=hours), expires_at=now, used=False,
        ))
    await db.commit()
    assert await purge_stale_nonces(db, now=now) == 2
    await db.commit()
    assert await _count(db) == 1
