from typing import Optional
from pydantic import BaseModel, model_validator

class SessionRequest(BaseModel):
    email: str
    token: Optional[str] = None
    hashed_token: Optional[str] = None

    @model_validator(mode="after")
    def one_token_form(self):
        if not self.token and not self.hashed_token:
            raise ValueError("token or hashed_token is required")
        return self

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"

class WalletMappingIn(BaseModel):
    wallet_address: str
    email: str
    label: Optional[str] = None

class WalletMappingUpdate(BaseModel):
    email: Optional[str] = None
    label: Optional[str] = None
    is_active: Optional[bool] = None
