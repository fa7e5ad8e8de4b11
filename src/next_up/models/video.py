"""Video catalog model."""

from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .base import Base

class Video(Base):
    """A purchasable video."""

    __tablename__ = "videos"

    id = Column(String(64), primary_key=True)
    title = Column(String(500), nullable=False)
    category = Column(String(50), default="GENERAL")
    price = Column(Numeric(12, 2), default=Decimal("0"))
    duration = Column(Integer, default=0)  # seconds
    creator_id = Column(String(64), ForeignKey("viewers.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    creator = relationship("Viewer", lazy="joined")

    def __repr__(self):
        return f"<Video(title='{self.title}', price={self.price})>"
