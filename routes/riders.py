import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.actors import ActorContext, require_roles
from core.db import get_db
from models.rider import Rider
from models.user import User, UserRole
from schemas.rider import RiderOut, RiderCreate, AvailabilityUpdate
from security.password import hash_password
from services.sms import to_e164

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/riders", tags=["riders"])

dispatchers = require_roles(UserRole.RETAIL, UserRole.WHOLESALE, UserRole.ADMIN)
rider_only = require_roles(UserRole.RIDER)
admin_only = require_roles(UserRole.ADMIN)


@router.post("/", response_model=RiderOut, status_code=201)
def create_rider(data: RiderCreate, actor: ActorContext = Depends(admin_only), db: Session = Depends(get_db)):
    phone = to_e164(data.phone)
    if db.query(User).filter(User.phone == phone).one_or_none():
        raise HTTPException(status_code=400, detail="Phone number already registered")
    user = User(name=data.name.strip(), phone=phone, password_hash=hash_password(data.password), role=UserRole.RIDER.value)
    db.add(user)
    db.flush()
    rider = Rider(user_id=user.id, name=user.name, phone=phone, is_available=data.is_available)
    db.add(rider)
    db.commit()
    db.refresh(rider)
    logger.info("Rider %s registered by admin %s", rider.id, actor.user_id)
    return rider


@router.get("/available", response_model=List[RiderOut])
def list_available_riders(actor: ActorContext = Depends(dispatchers), db: Session = Depends(get_db)):
    return db.query(Rider).filter(Rider.is_available.is_(True)).order_by(Rider.name).all()


@router.patch("/me/availability", response_model=RiderOut)
def update_availability(
    data: AvailabilityUpdate, actor: ActorContext = Depends(rider_only), db: Session = Depends(get_db)
):
    rider = db.get(Rider, actor.rider_id) if actor.rider_id else None
    if not rider:
        raise HTTPException(status_code=404, detail="Rider profile not found")
    rider.is_available = data.is_available
    db.commit()
    db.refresh(rider)
    return rider
