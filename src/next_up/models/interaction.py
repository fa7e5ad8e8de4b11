"""Per viewer/video interaction model."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from .base import Base

class Interaction(Base):
    """Like/dislike and watched flags of one viewer on one video."""

    __tablename__ = "interactions"

    id = Column(Integer, primary_key=True)
    viewer_id = Column(String(64), ForeignKey("viewers.id"), nullable=False)
    video_id = Column(String(64), ForeignKey("videos.id"), nullable=False)
    liked = Column(Boolean, default=False)
    disliked = Column(Boolean, default=False)
    is_watched = Column(Boolean, default=False)
    watched_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("viewer_id", "video_id", name="uq_interaction_viewer_video"),
    )

    def __repr__(self):
        return f"<Interaction(viewer='{self.viewer_id}', video='{self.video_id}', watched={self.is_watched})>"
