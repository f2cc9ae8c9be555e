from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter

# Field-level format checks (address regex, purpose values, signature length)
# live in the services so every entry point rejects them the same way.

class RequestNonce(BaseModel):
    action: Literal["request-nonce"]
    address: str
    purpose: str = "login"

class Verify(BaseModel):
    action: Literal["verify"]
    address: str
    message: str
    signature: str
    purpose: str = "login"

class NftCheck(BaseModel):
    action: Literal["nft-check"]
    address: str

class LegacyVerify(BaseModel):
    message: str
    signature: str
    address: str

WalletAuthAction = Annotated[Union[RequestNonce, Verify, NftCheck], Field(discriminator="action")]
wallet_auth_action = TypeAdapter(WalletAuthAction)

class NonceResponse(BaseModel):
    address: str
    nonce: str
    purpose: str
    issuedAt: datetime
    expiresAt: datetime

class VerifyResponse(BaseModel):
    success: bool = True
    email: str
    token: str
    hashed_token: str
    is_new_user: bool
    is_linked_account: bool
    nft_verification: str

class NftCheckResponse(BaseModel):
    address: str
    ownsNFT: bool
    balance: Optional[int] = None
    method: str
    contract: str
    chainId: int
    isInAdminWhitelist: bool
    hasDbMapping: bool
    mappedEmail: Optional[str] = None
    checkedAt: str
