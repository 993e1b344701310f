import enum
from datetime import datetime

from sqlalchemy import String, DateTime, Float, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class UserRole(str, enum.Enum):
    BUYER = "buyer"
    RETAIL = "retail"  # pharmacy selling to individuals, buying from wholesalers
    WHOLESALE = "wholesale"
    RIDER = "rider"
    ADMIN = "admin"


SELLER_ROLES = {UserRole.RETAIL.value, UserRole.WHOLESALE.value}


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(150))
    phone: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default=UserRole.BUYER.value, index=True)
    business_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # For sellers this is the pickup address
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.business_name or self.name

    @property
    def is_seller(self) -> bool:
        return self.role in SELLER_ROLES
