from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.actors import ActorContext, require_roles
from core.db import get_db
from models.user import UserRole
from schemas.notification import SmsSendRequest, SmsSendResponse
from services.sms import SmsNotConfiguredError, send_sms

router = APIRouter(prefix="/notifications", tags=["notifications"])

admin_only = require_roles(UserRole.ADMIN)


@router.post("/sms", response_model=SmsSendResponse)
def send_sms_notification(data: SmsSendRequest, actor: ActorContext = Depends(admin_only), db: Session = Depends(get_db)):
    if not data.to or not data.message:
        raise HTTPException(status_code=400, detail="Missing 'to' or 'message'")
    try:
        result = send_sms(db, data.to, data.message, data.event_type, data.order_id)
    except SmsNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not result.get("success"):
        raise HTTPException(status_code=502, detail=result.get("error") or "SMS provider error")
    return result
