from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from keygate.database import Base

class WalletEmailMapping(Base):
    """Operator-managed link from a wallet to an existing email account."""
    __tablename__ = "wallet_email_mappings"

    id = Column(Integer, primary_key=True)
    wallet_address = Column(String(42), unique=True, nullable=False, index=True)
    email = Column(String(320), nullable=False)
    label = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
