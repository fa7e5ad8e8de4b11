"""Database models for next-up."""

from .base import Base, get_session, init_db
from .viewer import Viewer
from .video import Video
from .interaction import Interaction
from .purchase import Purchase
from .continuation_log import ContinuationLog

__all__ = [
    "Base", "get_session", "init_db",
    "Viewer", "Video", "Interaction", "Purchase", "ContinuationLog",
]
