from typing import List, Optional

from pydantic import BaseModel, Field


class BatchApproveIn(BaseModel):
    user_ids: Optional[List[int]] = None
    count: Optional[int] = Field(default=None, gt=0)


class BatchRejectIn(BaseModel):
    user_ids: List[int]


class BatchItem(BaseModel):
    user_id: int
    result: str  # approved | rejected | skipped | not_found | failed
    wallet_address: Optional[str] = None
    detail: Optional[str] = None


class BatchOut(BaseModel):
    processed: int
    succeeded: int
    results: List[BatchItem]


class StatsOut(BaseModel):
    total: int
    by_status: dict[str, int]


class PurgeOut(BaseModel):
    removed: int
