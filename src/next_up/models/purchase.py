"""Purchase ledger model."""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func
from .base import Base

class Purchase(Base):
    """Append-only record of a video bought by a viewer."""

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True)
    viewer_id = Column(String(64), ForeignKey("viewers.id"), nullable=False, index=True)
    video_id = Column(String(64), ForeignKey("videos.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    purchased_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Purchase(viewer='{self.viewer_id}', video='{self.video_id}', amount={self.amount})>"
