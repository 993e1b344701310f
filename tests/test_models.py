from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from models.order import Order, OrderStatus, PaymentStatus
from models.rider import Rider
from models.user import User, UserRole


class TestUser:
    """Test cases for User model"""

    def test_user_defaults(self, db):
        user = User(name="Jane", phone="+255700000001", password_hash="x")
        db.add(user)
        db.commit()
        db.refresh(user)

        assert user.role == UserRole.BUYER.value
        assert user.is_seller is False
        assert user.display_name == "Jane"
        assert user.created_at is not None

    def test_seller_display_name(self, seller):
        assert seller.is_seller is True
        assert seller.display_name == "Afya Pharmacy"

    def test_phone_unique(self, db, buyer):
        db.add(User(name="Copy", phone=buyer.phone, password_hash="x"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


class TestOrder:
    """Test cases for Order model"""

    def test_order_defaults(self, make_order):
        order = make_order()
        assert order.status == OrderStatus.PENDING_PHARMACY_CONFIRMATION.value
        assert order.payment_method == "cod"
        assert order.payment_status == PaymentStatus.UNPAID.value
        assert order.currency == "TZS"
        assert order.rider_id is None

    def test_amount_to_collect(self, make_order):
        order = make_order(quantity=2, delivery_fee="2500")
        assert order.amount_to_collect == Decimal("22500.00")

    def test_pickup_address_and_buyer_phone(self, db, make_order, buyer):
        order = make_order()
        assert order.pickup_address == "Kariakoo, Dar es Salaam"
        order.delivery_phone = None
        assert order.buyer_phone == buyer.phone

    def test_items_relationship(self, make_order, product):
        order = make_order(quantity=3)
        assert len(order.items) == 1
        assert order.items[0].product_id == product.id
        assert order.items[0].total == Decimal("30000.00")


class TestRider:
    def test_one_rider_per_user(self, db, rider):
        db.add(Rider(user_id=rider.user_id, name="Dup", phone=rider.phone))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
