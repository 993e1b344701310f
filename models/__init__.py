# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User  # noqa: F401
from .product import Product  # noqa: F401
from .rider import Rider  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .order_status_history import OrderStatusHistory  # noqa: F401
from .sms_log import SmsLog  # noqa: F401
from .chat import ChatConversation, ChatMessage  # noqa: F401
