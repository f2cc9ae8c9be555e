from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Index
import enum
from keygate.database import Base

class NoncePurpose(str, enum.Enum):
    login = "login"
    create = "create"
    link = "link"
    delete = "delete"

class WalletAuthNonce(Base):
    __tablename__ = "wallet_auth_nonces"
    __table_args__ = (
        Index("ix_wallet_auth_nonces_lookup", "address", "nonce", "purpose"),
    )

    id = Column(Integer, primary_key=True)
    address = Column(String(42), nullable=False)
    nonce = Column(String(36), nullable=False, unique=True)
    purpose = Column(Enum(NoncePurpose), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
