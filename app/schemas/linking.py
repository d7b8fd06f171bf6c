from datetime import datetime

from pydantic import BaseModel, Field


class FarcasterLinkIn(BaseModel):
    fid: int = Field(..., gt=0, examples=[3])


class LensStartIn(BaseModel):
    profile_id: str = Field(..., min_length=1, max_length=66, examples=["0x01"])
    owner_address: str = Field(..., examples=["0x0000000000000000000000000000000000000001"])


class LensStartOut(BaseModel):
    nonce: str
    expires_at: datetime
    message: str


class LensVerifyIn(BaseModel):
    nonce: str = Field(..., min_length=1, max_length=64)
    signature: str
