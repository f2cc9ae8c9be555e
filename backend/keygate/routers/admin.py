from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from keygate.database import get_db
from keygate.core.deps import require_admin
from keygate.models.user import User, UserRole
from keygate.models.wallet_mapping import WalletEmailMapping
from keygate.schemas.auth import WalletMappingIn, WalletMappingUpdate
from keygate.services.nonce_store import ADDRESS_RE

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _mapping_out(m: WalletEmailMapping) -> dict:
    return {
        "id": m.id,
        "wallet_address": m.wallet_address,
        "email": m.email,
        "label": m.label,
        "is_active": m.is_active,
        "created_at": m.created_at.isoformat() if m.created_at else None,
        "updated_at": m.updated_at.isoformat() if m.updated_at else None,
    }


@router.get("/wallet-mappings")
async def list_wallet_mappings(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    mappings = await db.scalars(select(WalletEmailMapping).order_by(WalletEmailMapping.created_at.desc()))
    return [_mapping_out(m) for m in mappings]


@router.post("/wallet-mappings", status_code=201)
async def create_wallet_mapping(
    body: WalletMappingIn,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Link a wallet to an existing email account. One mapping per wallet."""
    if not ADDRESS_RE.match(body.wallet_address):
        raise HTTPException(400, "Invalid Ethereum address format")
    if "@" not in body.email:
        raise HTTPException(400, "Invalid email")
    mapping = WalletEmailMapping(
        wallet_address=body.wallet_address.lower(),
        email=body.email.strip().lower(),
        label=body.label,
        is_active=True,
    )
    db.add(mapping)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(409, "This wallet address already has a mapping.")
    await db.refresh(mapping)
    return _mapping_out(mapping)


@router.patch("/wallet-mappings/{mapping_id}")
async def update_wallet_mapping(
    mapping_id: int,
    body: WalletMappingUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    mapping = await db.get(WalletEmailMapping, mapping_id)
    if not mapping:
        raise HTTPException(404, "Mapping not found")
    if body.email is not None:
        if "@" not in body.email:
            raise HTTPException(400, "Invalid email")
        mapping.email = body.email.strip().lower()
    if body.label is not None:
        mapping.label = body.label
    if body.is_active is not None:
        mapping.is_active = body.is_active
    await db.commit()
    await db.refresh(mapping)
    return _mapping_out(mapping)


@router.get("/user-roles")
async def list_user_roles(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    rows = await db.execute(
        select(UserRole, User.email).join(User, User.id == UserRole.user_id).order_by(UserRole.created_at)
    )
    return [{
        "user_id": role.user_id,
        "email": email,
        "role": role.role.value,
        "created_at": role.created_at.isoformat() if role.created_at else None,
    } for role, email in rows]
