from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class LocationIn(BaseModel):
    # Relayed as reported, no range checks
    latitude: float
    longitude: float
    timestamp: Optional[datetime] = None


class LocationPublished(BaseModel):
    channel: str
    event: str
    subscribers: int
