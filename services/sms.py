import logging
import re
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from core.config import settings
from models.sms_log import SmsLog

logger = logging.getLogger(__name__)

TWILIO_BASE_URL = "https://api.twilio.com/2010-04-01"

_PHONE_NOISE = re.compile(r"[\s\-\.\(\)]")


class SmsNotConfiguredError(RuntimeError):
    pass


def to_e164(phone: Optional[str], country_code: Optional[str] = None) -> str:
    """Normalize a local or national number to E.164 for the configured country.

    ``0712 345 678`` and ``255712345678`` both become ``+255712345678``.
    Numbers already starting with ``+`` are kept as they are.
    """
    if not phone:
        return ""
    code = country_code or settings.SMS_COUNTRY_CODE
    cleaned = _PHONE_NOISE.sub("", phone)
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return f"+{code}{cleaned[1:]}"
    if cleaned.startswith(code):
        return f"+{cleaned}"
    return f"+{code}{cleaned}"


def _messages_url() -> str:
    return f"{TWILIO_BASE_URL}/Accounts/{settings.TWILIO_ACCOUNT_SID}/Messages.json"


def send_sms(
    db: Session,
    to: str,
    message: str,
    event_type: str = "unknown",
    order_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Send one SMS through Twilio and record the attempt in ``sms_logs``.

    Returns ``{"success": True, "provider_message_id": sid}`` or
    ``{"success": False, "error": message}``. Raises only when the gateway is
    not configured at all.
    """
    if not settings.sms_configured:
        raise SmsNotConfiguredError("Twilio not configured")

    phone = to_e164(to)
    log = SmsLog(
        recipient_phone=phone,
        message_body=message,
        event_type=event_type or "unknown",
        order_id=order_id,
        status="pending",
    )
    db.add(log)
    db.flush()

    try:
        resp = requests.post(
            _messages_url(),
            data={"To": phone, "From": settings.TWILIO_PHONE_NUMBER, "Body": message},
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
            timeout=20,
        )
    except requests.RequestException as exc:
        log.status = "failed"
        log.error_message = str(exc)
        db.commit()
        logger.error("SMS to %s failed (%s): %s", phone, event_type, exc)
        return {"success": False, "error": str(exc)}

    try:
        data = resp.json()
    except ValueError:
        data = {}

    if resp.ok:
        sid = data.get("sid")
        log.status = "sent"
        log.provider_message_id = sid
        db.commit()
        logger.info("SMS sent to %s | event=%s sid=%s", phone, event_type, sid)
        return {"success": True, "provider_message_id": sid}

    error = data.get("message") or f"Twilio responded with HTTP {resp.status_code}"
    log.status = "failed"
    log.error_message = error
    db.commit()
    logger.error("SMS to %s failed (%s): %s", phone, event_type, error)
    return {"success": False, "error": error}
