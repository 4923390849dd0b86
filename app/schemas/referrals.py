from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ReferralOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    referrer_id: str
    referred_id: str | None
    status: str
    completed_at: datetime | None
    created_at: datetime


class RedeemIn(BaseModel):
    code: str = Field(min_length=4, max_length=16)


class ReferralStatsOut(BaseModel):
    total: int
    completed: int
    pending: int
    credits_earned: int
