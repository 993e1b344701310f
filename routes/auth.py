import jwt
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.actors import get_current_user
from core.db import get_db
from models.rider import Rider
from models.user import User, UserRole
from schemas.auth import RegisterRequest, LoginRequest, TokenPair, RefreshTokenRequest
from schemas.users import UserOut
from security.password import hash_password, verify_password, password_needs_rehash
from security import jwt as jwt_utils
from services.sms import to_e164

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_pair(user: User) -> TokenPair:
    return TokenPair(
        access_token=jwt_utils.create_access_token(str(user.id), user.role),
        refresh_token=jwt_utils.create_refresh_token(str(user.id)),
    )


@router.post("/register", response_model=UserOut, status_code=201)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    phone = to_e164(data.phone)
    existing = db.query(User).filter(User.phone == phone).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Phone number already registered")
    user = User(
        name=data.name.strip(),
        phone=phone,
        email=data.email.lower() if data.email else None,
        password_hash=hash_password(data.password),
        role=data.role,
        business_name=data.business_name,
        address=data.address,
        latitude=data.latitude,
        longitude=data.longitude,
    )
    db.add(user)
    db.flush()
    if user.role == UserRole.RIDER.value:
        # Riders start offline and go available from their app
        db.add(Rider(user_id=user.id, name=user.name, phone=user.phone, is_available=False))
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=TokenPair)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.phone == to_e164(data.phone)).one_or_none()
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(data.password)
        db.commit()
    return _token_pair(user)


@router.post("/refresh-token", response_model=TokenPair)
def refresh_token(data: RefreshTokenRequest, db: Session = Depends(get_db)):
    try:
        payload = jwt_utils.decode_refresh(data.refresh_token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = db.query(User).filter(User.id == int(payload.get("sub"))).one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _token_pair(user)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
