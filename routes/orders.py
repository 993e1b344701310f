import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.actors import ActorContext, get_actor, require_roles
from core.config import settings
from core.db import get_db
from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from models.order_status_history import OrderStatusHistory
from models.product import Product
from models.user import User, UserRole
from schemas.order import (
    CODOrderCreate,
    OrderOut,
    RejectRequest,
    AssignRiderRequest,
    ReasonRequest,
    StatusHistoryOut,
)
from services import cod_lifecycle, notifications
from services.cod_lifecycle import Action, LifecycleError
from services.delivery_pricing import calculate_platform_share, calculate_rider_share, fee_between
from services.inventory import InsufficientStockError, reserve_stock
from services.sms import to_e164

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

can_checkout = require_roles(UserRole.BUYER, UserRole.RETAIL)


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def generate_order_number() -> str:
    return f"COD-{datetime.utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def order_out(order: Order, actor: ActorContext) -> OrderOut:
    out = OrderOut.model_validate(order)
    out.status_label = cod_lifecycle.get_status_label(order.status)
    out.progress = cod_lifecycle.get_status_progress(order.status)
    out.allowed_actions = [a.value for a in cod_lifecycle.allowed_actions(order, actor)]
    fee = int(order.delivery_fee or 0)
    out.rider_share = calculate_rider_share(fee)
    out.platform_share = calculate_platform_share(fee)
    return out


def _get_visible_order(db: Session, order_id: int, actor: ActorContext) -> Order:
    order = db.get(Order, order_id)
    if not order or not cod_lifecycle.can_view(order, actor):
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _transition(db: Session, order_id: int, actor: ActorContext, action: Action, **payload) -> OrderOut:
    try:
        result = cod_lifecycle.apply_action(db, order_id, actor, action, **payload)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return order_out(result.order, actor)


@router.post("/cod", response_model=OrderOut, status_code=201)
def create_cod_order(data: CODOrderCreate, actor: ActorContext = Depends(can_checkout), db: Session = Depends(get_db)):
    if not data.items:
        raise HTTPException(status_code=400, detail="Order must contain items")

    seller = db.get(User, data.seller_id)
    if not seller or not seller.is_seller or seller.id == actor.user_id:
        raise HTTPException(status_code=404, detail="Seller not found")

    quantities: Dict[int, int] = {}
    for item in data.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    products_map = {
        p.id: p
        for p in db.query(Product).filter(
            Product.seller_id == seller.id,
            Product.id.in_(list(quantities)),
            Product.is_active.is_(True),
        ).all()
    }
    if len(products_map) != len(quantities):
        raise HTTPException(status_code=404, detail="One or more products not found for this seller")

    buyer = db.get(User, actor.user_id)
    order = Order(
        order_number=generate_order_number(),
        buyer_id=actor.user_id,
        seller_id=seller.id,
        currency=settings.CURRENCY,
        status=OrderStatus.PENDING_PHARMACY_CONFIRMATION.value,
        payment_method="cod",
        payment_status=PaymentStatus.UNPAID.value,
        delivery_address=data.delivery_address.strip(),
        delivery_phone=to_e164(data.delivery_phone or buyer.phone) or None,
        delivery_notes=data.delivery_notes,
        delivery_latitude=data.delivery_latitude,
        delivery_longitude=data.delivery_longitude,
    )
    db.add(order)
    db.flush()

    subtotal = Decimal("0.00")
    items: List[OrderItem] = []
    for product_id, quantity in quantities.items():
        product = products_map[product_id]
        unit_price = _to_decimal(product.price)
        total = unit_price * _to_decimal(quantity)
        subtotal += total
        items.append(
            OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                total=total,
            )
        )

    try:
        reserve_stock(db, [(products_map[pid], qty) for pid, qty in quantities.items()])
    except InsufficientStockError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    order.total_amount = subtotal
    order.delivery_fee = _to_decimal(
        fee_between(seller.latitude, seller.longitude, data.delivery_latitude, data.delivery_longitude)
    )
    db.add_all(items)
    db.add(OrderStatusHistory(
        order_id=order.id,
        from_status=None,
        to_status=order.status,
        action="checkout",
        changed_by=actor.user_id,
        notes="COD order placed",
    ))
    db.commit()
    db.refresh(order)
    logger.info("COD order %s placed by user %s with seller %s", order.order_number, actor.user_id, seller.id)

    try:
        notifications.enqueue(notifications.order_placed(order))
    except Exception:
        logger.exception("Could not build order_placed notifications for %s", order.order_number)
    return order_out(order, actor)


@router.get("/", response_model=List[OrderOut])
def list_orders(active_only: bool = False, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    qs = db.query(Order)
    if actor.is_rider:
        qs = qs.filter(Order.rider_id == actor.rider_id)
    elif actor.is_seller:
        qs = qs.filter((Order.seller_id == actor.user_id) | (Order.buyer_id == actor.user_id))
    elif not actor.is_admin:
        qs = qs.filter(Order.buyer_id == actor.user_id)
    if active_only:
        qs = qs.filter(Order.status.in_(cod_lifecycle.NON_TERMINAL_STATUSES))
    return [order_out(o, actor) for o in qs.order_by(Order.created_at.desc(), Order.id.desc()).all()]


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return order_out(_get_visible_order(db, order_id, actor), actor)


@router.get("/{order_id}/history", response_model=List[StatusHistoryOut])
def get_order_history(order_id: int, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    _get_visible_order(db, order_id, actor)
    return (
        db.query(OrderStatusHistory)
        .filter(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.id)
        .all()
    )


@router.post("/{order_id}/accept", response_model=OrderOut)
def accept_order(order_id: int, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return _transition(db, order_id, actor, Action.ACCEPT)


@router.post("/{order_id}/reject", response_model=OrderOut)
def reject_order(order_id: int, data: RejectRequest, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return _transition(db, order_id, actor, Action.REJECT, reason=data.reason)


@router.post("/{order_id}/ready", response_model=OrderOut)
def mark_ready(order_id: int, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return _transition(db, order_id, actor, Action.MARK_READY)


@router.post("/{order_id}/assign-rider", response_model=OrderOut)
def assign_rider(
    order_id: int, data: AssignRiderRequest, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)
):
    return _transition(db, order_id, actor, Action.ASSIGN_RIDER, rider_id=data.rider_id)


@router.post("/{order_id}/pickup", response_model=OrderOut)
def pickup_order(order_id: int, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return _transition(db, order_id, actor, Action.PICKUP)


@router.post("/{order_id}/deliver", response_model=OrderOut)
def complete_delivery(order_id: int, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)):
    return _transition(db, order_id, actor, Action.COMPLETE_DELIVERY)


@router.post("/{order_id}/fail", response_model=OrderOut)
def report_failure(
    order_id: int, data: ReasonRequest | None = None, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)
):
    return _transition(db, order_id, actor, Action.REPORT_FAILURE, reason=data.reason if data else None)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int, data: ReasonRequest | None = None, actor: ActorContext = Depends(get_actor), db: Session = Depends(get_db)
):
    return _transition(db, order_id, actor, Action.CANCEL, reason=data.reason if data else None)
