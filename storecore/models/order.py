from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text, func
from .base import Base


class Order(Base):
    """One purchased cart line. Lines of the same purchase share ``order_id``."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True)
    session_id = Column(String(128), nullable=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    address = Column(String(512), nullable=False)
    city = Column(String(255), nullable=False)
    state = Column(String(64), nullable=False)
    zip = Column(String(32), nullable=False)
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    selected_weight = Column(String(32), nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False)
    sales_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    shipping = Column(String(128), nullable=False)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(16), nullable=False, default="card")
    payment_intent_id = Column(String(128), nullable=True)
    payment_details = Column(Text, nullable=True)
    payment_status = Column(String(32), nullable=False, default="pending")
    discount_code = Column(String(64), nullable=True)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
