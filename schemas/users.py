from typing import Optional

from pydantic import BaseModel


class UserOut(BaseModel):
    id: int
    name: str
    phone: str
    role: str
    business_name: Optional[str] = None
    address: Optional[str] = None

    class Config:
        from_attributes = True
