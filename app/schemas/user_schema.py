# schemas/user_schema.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.user import WaitlistStatus


class UserResponse(BaseModel):
    id: int
    wallet_address: str
    status: WaitlistStatus
    priority_score: int
    farcaster_fid: Optional[int] = None
    lens_profile_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class StatusResponse(UserResponse):
    position: Optional[int] = None
    queue_size: int


class QueueEntry(BaseModel):
    position: int
    wallet: str
    priority_score: int
    status: WaitlistStatus
