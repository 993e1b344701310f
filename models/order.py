import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Float, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class OrderStatus(str, enum.Enum):
    PENDING_PHARMACY_CONFIRMATION = "pending_pharmacy_confirmation"
    PREPARING_ORDER = "preparing_order"
    AWAITING_RIDER = "awaiting_rider"
    RIDER_ASSIGNED = "rider_assigned"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED_AND_PAID = "delivered_and_paid"
    DELIVERY_FAILED = "delivery_failed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    buyer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), index=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), index=True)
    rider_id: Mapped[int | None] = mapped_column(ForeignKey("riders.id", ondelete="SET NULL"), nullable=True, index=True)

    currency: Mapped[str] = mapped_column(String(3), default="TZS")
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    payment_method: Mapped[str] = mapped_column(String(20), default="cod")
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.UNPAID.value)
    status: Mapped[str] = mapped_column(
        String(40), default=OrderStatus.PENDING_PHARMACY_CONFIRMATION.value, index=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivery_address: Mapped[str] = mapped_column(Text)
    delivery_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    delivery_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    rider_assigned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    picked_up_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])
    rider = relationship("Rider")
    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order")

    @property
    def pickup_address(self) -> str:
        if self.seller is None:
            return ""
        return self.seller.address or ""

    @property
    def amount_to_collect(self) -> Decimal:
        return Decimal(str(self.total_amount or 0)) + Decimal(str(self.delivery_fee or 0))

    @property
    def buyer_phone(self) -> str | None:
        if self.delivery_phone:
            return self.delivery_phone
        return self.buyer.phone if self.buyer is not None else None
