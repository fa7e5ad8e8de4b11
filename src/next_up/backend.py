"""Collaborator interface consumed by the playback engine."""

from typing import List, Protocol, Sequence, runtime_checkable

from .domain import InteractionRecord, Video, Viewer


@runtime_checkable
class PlaybackBackend(Protocol):
    """Everything a playback session needs from the outside world.

    Failures are reported by raising :class:`next_up.errors.BackendError`
    subclasses; ``purchase`` raises ``InsufficientFunds`` or ``PurchaseError``.
    """

    async def get_video(self, video_id: str) -> Video:
        ...

    async def get_interaction(self, viewer_id: str, video_id: str) -> InteractionRecord:
        ...

    async def has_purchased(self, viewer_id: str, video_id: str) -> bool:
        ...

    async def get_related_videos(self, video_id: str) -> List[Video]:
        ...

    async def get_videos_by_creator(self, creator_id: str) -> Sequence[Video]:
        ...

    async def purchase(self, viewer_id: str, video_id: str) -> None:
        ...

    async def mark_watched(self, viewer_id: str, video_id: str) -> None:
        ...

    async def refresh_viewer(self, viewer_id: str) -> Viewer:
        ...

    async def toggle_watch_later(self, viewer_id: str, video_id: str) -> bool:
        ...
