"""Resolve the caller of a request into an explicit actor context.

The lifecycle engine never reads ambient request state. Routes resolve an
``ActorContext`` here and pass it down explicitly.
"""
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from core.db import get_db
from models.rider import Rider
from models.user import User, UserRole, SELLER_ROLES
from security import jwt as jwt_utils


@dataclass(frozen=True)
class ActorContext:
    user_id: int
    role: str
    rider_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_seller(self) -> bool:
        return self.role in SELLER_ROLES

    @property
    def is_rider(self) -> bool:
        return self.role == UserRole.RIDER.value


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = jwt_utils.decode_access(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    user = db.query(User).filter(User.id == int(user_id)).one_or_none() if user_id else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _user_from_token(db, authorization.split(" ", 1)[1])


def build_actor(db: Session, user: User) -> ActorContext:
    rider_id = None
    if user.role == UserRole.RIDER.value:
        rider = db.query(Rider).filter(Rider.user_id == user.id).one_or_none()
        rider_id = rider.id if rider else None
    return ActorContext(user_id=user.id, role=user.role, rider_id=rider_id)


def get_actor(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> ActorContext:
    """FastAPI dependency returning the actor behind the bearer token."""
    return build_actor(db, user)


def actor_from_token(db: Session, token: Optional[str]) -> ActorContext:
    """Same as ``get_actor`` for transports without headers (WebSocket query param)."""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return build_actor(db, _user_from_token(db, token))


def require_roles(*roles: str):
    """Dependency factory restricting a route to the given roles."""
    allowed = {r.value if isinstance(r, UserRole) else r for r in roles}

    def _check(actor: ActorContext = Depends(get_actor)) -> ActorContext:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(sorted(allowed))}",
            )
        return actor

    return _check
