"""Viewer account model."""

from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, Text, DateTime
from sqlalchemy.sql import func
from .base import Base

class Viewer(Base):
    """A viewer with a wallet balance and an auto-purchase ceiling."""

    __tablename__ = "viewers"

    id = Column(String(64), primary_key=True)
    username = Column(String(100), nullable=False)
    role = Column(String(20), default="USER")
    balance = Column(Numeric(12, 2), default=Decimal("0"))
    auto_purchase_limit = Column(Numeric(12, 2), default=Decimal("0"))
    vip_expiry = Column(Integer, nullable=True)  # epoch seconds
    watch_later = Column(Text, default="")  # comma separated video ids
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Viewer(username='{self.username}', role={self.role})>"

    def watch_later_ids(self) -> list:
        """Return watch-later video ids in insertion order."""
        return [v for v in (self.watch_later or "").split(",") if v]

    def set_watch_later_ids(self, ids):
        self.watch_later = ",".join(ids)
