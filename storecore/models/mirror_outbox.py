from sqlalchemy import Column, DateTime, Integer, JSON, String, Text, func
from .base import Base


class MirrorOutbox(Base):
    """Pending writes to the Airtable mirror, drained by the sync worker."""

    __tablename__ = "mirror_outbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(16), nullable=False)  # checkout | order
    reference = Column(String(64), nullable=False, index=True)
    fields = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)  # pending | sent | failed | superseded
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
