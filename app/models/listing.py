from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.core.ids import id_default

from app.models.base import Base, AuditMixin, JsonDoc


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        # sweeper scans by (status, expires_at)
        Index("ix_listings_status_expires", "status", "expires_at"),
        Index("ix_listings_seller_id", "seller_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("lst"))
    seller_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # ordered image URIs, already hosted elsewhere
    images: Mapped[list] = mapped_column(JsonDoc, nullable=False, default=list)

    # see app.services.listing_state.ListingStatus
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    renewal_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # "basic" | "premium" | "urgent"; a new boost replaces the previous one
    boost_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    boosted_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
