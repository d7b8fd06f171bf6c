from datetime import datetime

from pydantic import BaseModel


class NonceOut(BaseModel):
    nonce: str
    expires_at: datetime


class SiweIn(BaseModel):
    message: str
    signature: str


class SessionOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    wallet_address: str
    created: bool = False
