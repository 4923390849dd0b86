from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default

from app.models.base import Base, AuditMixin


class User(AuditMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("usr"))

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # "USER" | "VIP" | "PRO" | "MODERATOR" | "ADMIN"
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="USER")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
