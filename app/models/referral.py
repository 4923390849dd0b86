from datetime import datetime

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.core.ids import id_default

from app.models.base import Base


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        Index("ix_referrals_referrer_id", "referrer_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("ref"))
    code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)

    referrer_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    # set on redemption; a user can be referred once
    referred_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True, unique=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending/completed
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
