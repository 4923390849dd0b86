from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ModerationIn(BaseModel):
    product_id: str = Field(min_length=1)
    action: Literal["approve", "reject"]
    reason: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _reject_needs_reason(self):
        if self.action == "reject" and not (self.reason or "").strip():
            raise ValueError("reason is required when rejecting")
        return self


class ModerationOut(BaseModel):
    product_id: str
    status: str


class StatsOut(BaseModel):
    listings: dict[str, int]
