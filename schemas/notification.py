from typing import Optional

from pydantic import BaseModel


class SmsSendRequest(BaseModel):
    to: Optional[str] = None
    message: Optional[str] = None
    event_type: str = "unknown"
    order_id: Optional[int] = None


class SmsSendResponse(BaseModel):
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
