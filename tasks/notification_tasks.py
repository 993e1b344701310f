import logging
from typing import Optional

from core.celery import celery_app
from core.config import settings
from core.db import db_session
from services.sms import SmsNotConfiguredError, send_sms

logger = logging.getLogger(__name__)


@celery_app.task(name="notifications.send_sms", ignore_result=True)
def send_sms_task(to: str, message: str, event_type: str, order_id: Optional[int] = None) -> dict:
    """
    Deliver one SMS outside the request that triggered it.
    Never retried: a failed notification is logged and dropped.
    """
    if settings.TESTING:
        logger.debug("SMS skipped in testing mode: to=%s event=%s", to, event_type)
        return {"success": False, "error": "skipped in testing mode"}

    try:
        with db_session() as db:
            return send_sms(db, to, message, event_type, order_id)
    except SmsNotConfiguredError:
        logger.warning("SMS gateway not configured, dropping %s to %s", event_type, to)
        return {"success": False, "error": "Twilio not configured"}
    except Exception as exc:
        logger.exception("SMS task failed for %s to %s", event_type, to)
        return {"success": False, "error": str(exc)}
