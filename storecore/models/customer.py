from sqlalchemy import Column, DateTime, Integer, String, func
from .base import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(128), nullable=False, unique=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    address = Column(String(512), nullable=False, default="")
    city = Column(String(255), nullable=False, default="")
    state = Column(String(64), nullable=False, default="")
    zip = Column(String(32), nullable=False, default="")
    shipping = Column(String(128), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email or "",
            "phone": self.phone or "",
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "shipping": self.shipping,
        }
