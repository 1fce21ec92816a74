from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, func
from .base import Base


class CheckoutRecord(Base):
    """Server-side checkout state. A session owns at most one non-terminal checkout."""

    __tablename__ = "checkouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    checkout_id = Column(String(64), nullable=False, unique=True)
    session_id = Column(String(128), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="started")
    personal = Column(JSON, nullable=True)
    shipping = Column(JSON, nullable=True)
    payment = Column(JSON, nullable=True)
    payment_method = Column(String(16), nullable=True)
    payment_intent_id = Column(String(128), nullable=True)
    discount_code = Column(String(64), nullable=True)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    order_id = Column(String(64), nullable=True)
    mirrored = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
