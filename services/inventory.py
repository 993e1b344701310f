import logging
from typing import Dict, Iterable, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from models.order import Order
from models.product import Product

logger = logging.getLogger(__name__)


class InsufficientStockError(ValueError):
    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}"
        )


def reserve_stock(db: Session, lines: Iterable[Tuple[Product, int]]) -> None:
    """Take ordered quantities out of stock at checkout.

    Each decrement is conditional on enough stock remaining. The caller owns
    the transaction and must roll back when this raises.
    """
    for product, quantity in lines:
        result = db.execute(
            update(Product)
            .where(Product.id == product.id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
        )
        if result.rowcount != 1:
            db.refresh(product)
            raise InsufficientStockError(product.id, quantity, product.stock)


def release_stock(db: Session, order: Order) -> Dict[int, int]:
    """Re-credit the full ordered quantity of every line item.

    Compensates ``reserve_stock``. Returns ``{product_id: quantity}`` credited.
    Only called from a transition that has already won its status update, so
    a given order is released at most once.
    """
    credited: Dict[int, int] = {}
    for item in order.items:
        db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(stock=Product.stock + item.quantity)
        )
        credited[item.product_id] = credited.get(item.product_id, 0) + item.quantity
    if credited:
        logger.info("Released stock for order %s: %s", order.order_number, credited)
    return credited
