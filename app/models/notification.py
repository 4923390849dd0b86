from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.core.ids import id_default

from app.models.base import Base, JsonDoc


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("ntf"))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)

    # e.g. "product_approved", "credits_purchased"
    type: Mapped[str] = mapped_column(String(60), nullable=False)
    # {"title": ..., "message": ..., "data": {...}}
    payload: Mapped[dict] = mapped_column(JsonDoc, nullable=False, default=dict)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # outbox event that produced it; guards against double delivery
    source_event_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
