"""Cash-on-delivery order lifecycle.

Every transition is one compare-and-swap UPDATE on ``orders`` scoped by the
status the guards were evaluated against. If another request moved the order
first, the update touches no row and the caller gets ``PreconditionFailed``
and must refetch. Stock re-credit and the status history row are written in
the same transaction. Notifications are handed off only after commit.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from core.actors import ActorContext
from models.order import Order, OrderStatus, PaymentStatus
from models.order_status_history import OrderStatusHistory
from models.rider import Rider
from services import notifications
from services.notifications import Notification
from services.inventory import release_stock

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    MARK_READY = "mark_ready"
    ASSIGN_RIDER = "assign_rider"
    PICKUP = "pickup"
    COMPLETE_DELIVERY = "complete_delivery"
    REPORT_FAILURE = "report_failure"
    CANCEL = "cancel"


class Party(str, enum.Enum):
    SELLER = "seller"  # the seller that owns the order
    RIDER = "rider"  # the rider assigned to the order
    ADMIN = "admin"


TERMINAL_STATUSES: FrozenSet[str] = frozenset({
    OrderStatus.DELIVERED_AND_PAID.value,
    OrderStatus.DELIVERY_FAILED.value,
    OrderStatus.CANCELLED.value,
})
NON_TERMINAL_STATUSES: FrozenSet[str] = frozenset(s.value for s in OrderStatus) - TERMINAL_STATUSES

# Display only, never used to drive logic
STATUS_PROGRESS: Dict[str, int] = {
    OrderStatus.PENDING_PHARMACY_CONFIRMATION.value: 10,
    OrderStatus.PREPARING_ORDER.value: 30,
    OrderStatus.AWAITING_RIDER.value: 50,
    OrderStatus.RIDER_ASSIGNED.value: 65,
    OrderStatus.OUT_FOR_DELIVERY.value: 80,
    OrderStatus.DELIVERED_AND_PAID.value: 100,
    OrderStatus.DELIVERY_FAILED.value: 0,
    OrderStatus.CANCELLED.value: 0,
}

STATUS_LABELS: Dict[str, str] = {
    OrderStatus.PENDING_PHARMACY_CONFIRMATION.value: "Pending Confirmation",
    OrderStatus.PREPARING_ORDER.value: "Preparing Order",
    OrderStatus.AWAITING_RIDER.value: "Ready for Pickup",
    OrderStatus.RIDER_ASSIGNED.value: "Rider Assigned",
    OrderStatus.OUT_FOR_DELIVERY.value: "Out for Delivery",
    OrderStatus.DELIVERED_AND_PAID.value: "Delivered & Paid",
    OrderStatus.DELIVERY_FAILED.value: "Delivery Failed",
    OrderStatus.CANCELLED.value: "Cancelled",
}


class LifecycleError(Exception):
    status_code = 400


class OrderNotFound(LifecycleError):
    status_code = 404


class ActionNotPermitted(LifecycleError):
    status_code = 403


class InvalidActionPayload(LifecycleError):
    status_code = 422


class PreconditionFailed(LifecycleError):
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message)


class RiderUnavailable(PreconditionFailed):
    pass


class OrderIntegrityError(LifecycleError):
    status_code = 409


NotifyFn = Callable[..., List[Notification]]


@dataclass(frozen=True)
class Transition:
    action: Action
    sources: FrozenSet[str]
    target: OrderStatus
    party: Party
    releases_stock: bool = False
    notify: Optional[NotifyFn] = None


TRANSITIONS: Dict[Action, Transition] = {
    Action.ACCEPT: Transition(
        Action.ACCEPT,
        frozenset({OrderStatus.PENDING_PHARMACY_CONFIRMATION.value}),
        OrderStatus.PREPARING_ORDER,
        Party.SELLER,
        notify=notifications.order_accepted,
    ),
    Action.REJECT: Transition(
        Action.REJECT,
        frozenset({OrderStatus.PENDING_PHARMACY_CONFIRMATION.value}),
        OrderStatus.CANCELLED,
        Party.SELLER,
        releases_stock=True,
        notify=notifications.order_rejected,
    ),
    Action.MARK_READY: Transition(
        Action.MARK_READY,
        frozenset({OrderStatus.PREPARING_ORDER.value}),
        OrderStatus.AWAITING_RIDER,
        Party.SELLER,
    ),
    Action.ASSIGN_RIDER: Transition(
        Action.ASSIGN_RIDER,
        frozenset({OrderStatus.AWAITING_RIDER.value}),
        OrderStatus.RIDER_ASSIGNED,
        Party.SELLER,
        notify=notifications.rider_assigned,
    ),
    Action.PICKUP: Transition(
        Action.PICKUP,
        frozenset({OrderStatus.RIDER_ASSIGNED.value}),
        OrderStatus.OUT_FOR_DELIVERY,
        Party.RIDER,
    ),
    Action.COMPLETE_DELIVERY: Transition(
        Action.COMPLETE_DELIVERY,
        frozenset({OrderStatus.OUT_FOR_DELIVERY.value}),
        OrderStatus.DELIVERED_AND_PAID,
        Party.RIDER,
        notify=notifications.delivered_and_paid,
    ),
    Action.REPORT_FAILURE: Transition(
        Action.REPORT_FAILURE,
        frozenset({OrderStatus.OUT_FOR_DELIVERY.value}),
        OrderStatus.DELIVERY_FAILED,
        Party.RIDER,
        releases_stock=True,
    ),
    Action.CANCEL: Transition(
        Action.CANCEL,
        NON_TERMINAL_STATUSES,
        OrderStatus.CANCELLED,
        Party.ADMIN,
        releases_stock=True,
        notify=notifications.order_cancelled,
    ),
}


@dataclass
class TransitionResult:
    order: Order
    previous_status: str
    action: Action
    notifications: List[Notification] = field(default_factory=list)
    released_stock: Dict[int, int] = field(default_factory=dict)


def _status_value(status: Union[str, OrderStatus]) -> str:
    return status.value if isinstance(status, OrderStatus) else status


def get_status_progress(status: Union[str, OrderStatus]) -> int:
    """Progress bar percentage for a status (0 for terminal failures and unknown values)."""
    return STATUS_PROGRESS.get(_status_value(status), 0)


def get_status_label(status: Union[str, OrderStatus]) -> str:
    value = _status_value(status)
    return STATUS_LABELS.get(value, value)


def is_terminal(status: Union[str, OrderStatus]) -> bool:
    return _status_value(status) in TERMINAL_STATUSES


def _is_party(order: Order, actor: ActorContext, party: Party) -> bool:
    if party is Party.SELLER:
        return actor.is_seller and order.seller_id == actor.user_id
    if party is Party.RIDER:
        return actor.is_rider and actor.rider_id is not None and order.rider_id == actor.rider_id
    return actor.is_admin


def can_view(order: Order, actor: ActorContext) -> bool:
    """Admins see every order, riders their assigned ones, everyone else orders they buy or sell."""
    if actor.is_admin:
        return True
    if actor.is_rider:
        return actor.rider_id is not None and order.rider_id == actor.rider_id
    return actor.user_id in (order.buyer_id, order.seller_id)


def allowed_actions(order: Order, actor: ActorContext) -> List[Action]:
    """Actions the actor may take on the order right now."""
    return [
        action
        for action, transition in TRANSITIONS.items()
        if order.status in transition.sources and _is_party(order, actor, transition.party)
    ]


def check_totals(order: Order) -> None:
    expected = sum(
        (Decimal(str(item.unit_price)) * item.quantity for item in order.items),
        Decimal("0"),
    )
    actual = Decimal(str(order.total_amount or 0))
    if expected.quantize(Decimal("0.01")) != actual.quantize(Decimal("0.01")):
        raise OrderIntegrityError(
            f"Order {order.order_number} total {actual} does not match its items ({expected})"
        )


def _available_rider(db: Session, rider_id: Optional[int]) -> Rider:
    if rider_id is None:
        raise InvalidActionPayload("rider_id is required")
    rider = db.get(Rider, rider_id)
    # Read again inside this transaction, never trust the client's picklist
    if rider is not None:
        db.refresh(rider)
    if rider is None or not rider.is_available:
        raise RiderUnavailable(f"Rider {rider_id} is not available", current_status=OrderStatus.AWAITING_RIDER.value)
    return rider


def apply_action(
    db: Session,
    order_id: int,
    actor: ActorContext,
    action: Union[Action, str],
    *,
    reason: Optional[str] = None,
    rider_id: Optional[int] = None,
) -> TransitionResult:
    """Validate and perform one lifecycle transition.

    Checks run in order: order exists, actor is the right party, status
    matches the transition source, payload guards, totals invariant. The
    status update itself is conditional on the status read here.
    """
    try:
        action = Action(action)
    except ValueError:
        raise InvalidActionPayload(f"Unknown action: {action}")
    transition = TRANSITIONS[action]

    order = db.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    db.refresh(order)

    if not _is_party(order, actor, transition.party):
        raise ActionNotPermitted(f"Only the {transition.party.value} of this order can {action.value} it")

    expected = order.status
    if expected not in transition.sources:
        raise PreconditionFailed(
            f"Cannot {action.value} order {order.order_number} in status {expected}",
            current_status=expected,
        )

    now = datetime.utcnow()
    values: Dict[str, object] = {"status": transition.target.value, "updated_at": now}
    notes = None
    cleaned_reason = (reason or "").strip() or None

    if action is Action.REJECT:
        if not cleaned_reason:
            raise InvalidActionPayload("A rejection reason is required")
        values["rejection_reason"] = cleaned_reason
        notes = f"Rejected: {cleaned_reason}"
    elif action is Action.ASSIGN_RIDER:
        rider = _available_rider(db, rider_id)
        values["rider_id"] = rider.id
        values["rider_assigned_at"] = now
        notes = f"Rider {rider.id} assigned"
    elif action is Action.PICKUP:
        values["picked_up_at"] = now
    elif action is Action.COMPLETE_DELIVERY:
        values["payment_status"] = PaymentStatus.PAID.value
        values["delivered_at"] = now
        notes = f"Delivered and cash collected: {notifications.format_money(order.amount_to_collect, order.currency)}"
    elif action is Action.REPORT_FAILURE:
        values["failure_reason"] = cleaned_reason
        notes = f"Delivery failed: {cleaned_reason}" if cleaned_reason else "Delivery failed"
    elif action is Action.CANCEL:
        notes = f"Cancelled by admin: {cleaned_reason}" if cleaned_reason else "Cancelled by admin"

    check_totals(order)

    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(order)
        raise PreconditionFailed(
            f"Order {order.order_number} changed concurrently (now {order.status}), refetch and retry",
            current_status=order.status,
        )

    released = release_stock(db, order) if transition.releases_stock else {}
    db.add(OrderStatusHistory(
        order_id=order.id,
        from_status=expected,
        to_status=transition.target.value,
        action=action.value,
        changed_by=actor.user_id,
        notes=notes,
    ))
    db.commit()
    db.refresh(order)
    logger.info(
        "Order %s: %s -> %s (%s by user %s)",
        order.order_number, expected, order.status, action.value, actor.user_id,
    )

    outgoing: List[Notification] = []
    if transition.notify is not None:
        try:
            extra = {"reason": cleaned_reason or order.rejection_reason or ""}
            outgoing = transition.notify(order, **extra)
            notifications.enqueue(outgoing)
        except Exception:
            # The transition is committed; a notification problem must not surface
            logger.exception("Notification build failed for order %s (%s)", order.order_number, action.value)

    return TransitionResult(
        order=order,
        previous_status=expected,
        action=action,
        notifications=outgoing,
        released_stock=released,
    )


def accept_order(db: Session, order_id: int, actor: ActorContext) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.ACCEPT)


def reject_order(db: Session, order_id: int, actor: ActorContext, reason: str) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.REJECT, reason=reason)


def mark_ready(db: Session, order_id: int, actor: ActorContext) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.MARK_READY)


def assign_rider(db: Session, order_id: int, actor: ActorContext, rider_id: int) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.ASSIGN_RIDER, rider_id=rider_id)


def advance_to_out_for_delivery(db: Session, order_id: int, actor: ActorContext) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.PICKUP)


def complete_delivery(db: Session, order_id: int, actor: ActorContext) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.COMPLETE_DELIVERY)


def report_delivery_failure(
    db: Session, order_id: int, actor: ActorContext, reason: Optional[str] = None
) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.REPORT_FAILURE, reason=reason)


def cancel_order(db: Session, order_id: int, actor: ActorContext, reason: Optional[str] = None) -> TransitionResult:
    return apply_action(db, order_id, actor, Action.CANCEL, reason=reason)
