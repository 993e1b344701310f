"""Templated order notifications, dispatched fire-and-forget.

Builders turn an order into ``Notification`` values (one per recipient);
``enqueue`` hands each to the Celery SMS task and returns immediately. A
failure anywhere on this path is logged and never reaches the caller.
"""
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from core.config import settings
from core.db import db_session
from models.order import Order
from services.sms import send_sms
from tasks.notification_tasks import send_sms_task

logger = logging.getLogger(__name__)

# event type -> recipient role
EVENT_RECIPIENTS: Dict[str, str] = {
    "order_placed": "seller",
    "order_placed_buyer": "buyer",
    "order_accepted": "buyer",
    "order_rejected": "buyer",
    "rider_assigned_buyer": "buyer",
    "rider_assigned_rider": "rider",
    "order_delivered_buyer": "buyer",
    "order_delivered_seller": "seller",
    "order_cancelled": "buyer",
}


def format_money(amount: Any, currency: Optional[str] = None) -> str:
    value = Decimal(str(amount or 0))
    return f"{currency or settings.CURRENCY} {value:,.0f}"


# Plain-text SMS bodies, so no HTML autoescaping
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=False,
    undefined=StrictUndefined,
    trim_blocks=True,
    keep_trailing_newline=False,
)
_templates_env.filters["money"] = format_money


@dataclass(frozen=True)
class Notification:
    to: str
    event_type: str
    message: str
    order_id: Optional[int] = None


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ and collapse it to one SMS line."""
    template = _templates_env.get_template(template_path)
    return " ".join(template.render(**context).split())


def _order_context(order: Order, **extra: Any) -> Dict[str, Any]:
    context = {
        "brand": settings.SMS_BRAND,
        "order_number": order.order_number,
        "currency": order.currency,
        "total_amount": order.total_amount,
        "amount_to_collect": order.amount_to_collect,
        "buyer_name": order.buyer.display_name if order.buyer else "Customer",
        "seller_name": order.seller.display_name if order.seller else "the seller",
        "rider_name": order.rider.name if order.rider else "",
        "pickup_address": order.pickup_address or "-",
        "delivery_address": order.delivery_address or "-",
        "reason": order.rejection_reason or "",
    }
    context.update(extra)
    return context


def _recipient_phone(order: Order, role: str) -> Optional[str]:
    if role == "buyer":
        return order.buyer_phone
    if role == "seller":
        return order.seller.phone if order.seller else None
    if role == "rider":
        return order.rider.phone if order.rider else None
    raise ValueError(f"Unknown recipient role: {role}")


def build_notification(event_type: str, order: Order, **extra: Any) -> Optional[Notification]:
    role = EVENT_RECIPIENTS[event_type]
    phone = _recipient_phone(order, role)
    if not phone:
        logger.warning("No %s phone for order %s, skipping %s", role, order.order_number, event_type)
        return None
    message = render_template(f"sms/{event_type}.txt", _order_context(order, **extra))
    return Notification(to=phone, event_type=event_type, message=message, order_id=order.id)


def _build_all(order: Order, event_types: Iterable[str], **extra: Any) -> List[Notification]:
    built = (build_notification(event_type, order, **extra) for event_type in event_types)
    return [n for n in built if n is not None]


def order_placed(order: Order, **extra: Any) -> List[Notification]:
    return _build_all(order, ["order_placed", "order_placed_buyer"], **extra)


def order_accepted(order: Order, **extra: Any) -> List[Notification]:
    return _build_all(order, ["order_accepted"], **extra)


def order_rejected(order: Order, **extra: Any) -> List[Notification]:
    return _build_all(order, ["order_rejected"], **extra)


def rider_assigned(order: Order, **extra: Any) -> List[Notification]:
    return _build_all(order, ["rider_assigned_buyer", "rider_assigned_rider"], **extra)


def delivered_and_paid(order: Order, **extra: Any) -> List[Notification]:
    return _build_all(order, ["order_delivered_buyer", "order_delivered_seller"], **extra)


def order_cancelled(order: Order, **extra: Any) -> List[Notification]:
    return _build_all(order, ["order_cancelled"], **extra)


def dispatch_sms(to: str, message: str, event_type: str, order_id: Optional[int] = None) -> None:
    """
    Queue an SMS on Celery and return without waiting.
    If the broker is unreachable the message is sent directly instead.
    """
    try:
        send_sms_task.delay(to, message, event_type, order_id)
        logger.debug("Queued %s SMS for order %s", event_type, order_id)
        return
    except Exception as exc:
        logger.warning("Celery unavailable, sending %s SMS directly: %s", event_type, exc)

    _send_sms_direct(to, message, event_type, order_id)


def _send_sms_direct(to: str, message: str, event_type: str, order_id: Optional[int] = None) -> None:
    try:
        with db_session() as db:
            result = send_sms(db, to, message, event_type, order_id)
        if not result.get("success"):
            logger.error("Direct SMS %s to %s failed: %s", event_type, to, result.get("error"))
    except Exception:
        logger.exception("Direct SMS %s to %s failed", event_type, to)


def enqueue(notifications: Iterable[Notification]) -> None:
    """Dispatch each notification independently; one failing never stops the rest."""
    for n in notifications:
        try:
            dispatch_sms(n.to, n.message, n.event_type, n.order_id)
        except Exception:
            logger.exception("Failed to dispatch %s for order %s", n.event_type, n.order_id)
