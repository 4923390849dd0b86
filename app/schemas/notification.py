from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    payload: dict
    read: bool
    created_at: datetime


class MarkReadIn(BaseModel):
    # None marks everything read
    ids: list[str] | None = None
