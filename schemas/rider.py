from pydantic import BaseModel, Field


class RiderOut(BaseModel):
    id: int
    name: str
    phone: str
    is_available: bool

    class Config:
        from_attributes = True


class AvailabilityUpdate(BaseModel):
    is_available: bool


class RiderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    phone: str = Field(min_length=7, max_length=30)
    password: str = Field(min_length=8, max_length=128)
    is_available: bool = True
