"""Continuation outcome logging model."""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from .base import Base

class ContinuationLog(Base):
    """Log of what happened to each continuation decision."""

    __tablename__ = "continuation_logs"

    id = Column(Integer, primary_key=True)
    viewer_id = Column(String(64), index=True)
    from_video_id = Column(String(64))
    target_video_id = Column(String(64))
    status = Column(String(50))  # SKIPPING_WATCHED, PLAYING_NEXT, AUTO_BUYING, WAITING_CONFIRMATION
    outcome = Column(String(50))  # navigated, purchased, downgraded, cancelled, confirmed, failed
    error_message = Column(String(1000))
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<ContinuationLog(target='{self.target_video_id}', outcome={self.outcome})>"
