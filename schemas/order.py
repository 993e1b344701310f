from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from schemas.rider import RiderOut


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CODOrderCreate(BaseModel):
    seller_id: int
    items: List[OrderItemIn]
    delivery_address: str = Field(min_length=1)
    delivery_phone: Optional[str] = None
    delivery_notes: Optional[str] = None
    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None


class RejectRequest(BaseModel):
    reason: str


class AssignRiderRequest(BaseModel):
    rider_id: int


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: float
    total: float

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    buyer_id: int
    seller_id: int
    rider_id: Optional[int] = None
    rider: Optional[RiderOut] = None
    status: str
    status_label: str = ""
    progress: int = 0
    payment_method: str
    payment_status: str
    currency: str
    total_amount: float
    delivery_fee: float
    amount_to_collect: float
    rider_share: int = 0
    platform_share: int = 0
    delivery_address: str
    delivery_phone: Optional[str] = None
    delivery_notes: Optional[str] = None
    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    pickup_address: str
    rejection_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    allowed_actions: List[str] = []
    items: List[OrderItemOut]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusHistoryOut(BaseModel):
    id: int
    from_status: Optional[str] = None
    to_status: str
    action: str
    changed_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
