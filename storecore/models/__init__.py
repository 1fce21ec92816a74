from .base import Base
from .checkout_record import CheckoutRecord
from .customer import Customer
from .mirror_outbox import MirrorOutbox
from .order import Order

__all__ = ["Base", "CheckoutRecord", "Customer", "MirrorOutbox", "Order"]
