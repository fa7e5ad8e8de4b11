"""Classification of what should follow a finished video."""

import enum
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from . import access
from .domain import Video, Viewer

logger = logging.getLogger(__name__)

DEFAULT_COUNTDOWN_SECONDS = 5

VideoPredicate = Callable[[Video], bool]


class ContinuationStatus(str, enum.Enum):
    SKIPPING_WATCHED = "SKIPPING_WATCHED"
    PLAYING_NEXT = "PLAYING_NEXT"
    AUTO_BUYING = "AUTO_BUYING"
    WAITING_CONFIRMATION = "WAITING_CONFIRMATION"


@dataclass(frozen=True)
class ContinuationDecision:
    """One live decision per session; ``countdown_seconds`` is None only while waiting."""

    status: ContinuationStatus
    target: Video
    countdown_seconds: Optional[int] = None

    def __post_init__(self):
        waiting = self.status is ContinuationStatus.WAITING_CONFIRMATION
        if waiting != (self.countdown_seconds is None):
            raise ValueError(f"countdown_seconds must be set iff status is not waiting (got {self.status.value})")
        if self.countdown_seconds is not None and self.countdown_seconds < 0:
            raise ValueError("countdown_seconds must be non-negative")

    @property
    def counts_down(self) -> bool:
        return self.countdown_seconds is not None

    def downgraded(self) -> "ContinuationDecision":
        """The same target, now waiting for explicit confirmation."""
        return replace(self, status=ContinuationStatus.WAITING_CONFIRMATION, countdown_seconds=None)


def can_auto_purchase(viewer: Viewer, video: Video) -> bool:
    """Both the per-viewer ceiling and the balance must cover the price."""
    return video.price <= viewer.auto_purchase_limit and viewer.balance >= video.price


class ContinuationPlanner:
    """Classifies a candidate list into a single continuation decision.

    Only the head of the list is inspected. Later candidates matter only when
    a skip is executed (see :func:`resolve_target`).
    """

    def __init__(self, countdown_seconds: int = DEFAULT_COUNTDOWN_SECONDS, clock: Callable[[], float] = None):
        if countdown_seconds < 0:
            raise ValueError("countdown_seconds must be non-negative")
        self.countdown_seconds = countdown_seconds
        self.clock = clock

    def plan(
        self,
        candidates: Sequence[Video],
        viewer: Viewer,
        is_watched: VideoPredicate,
        has_purchased: VideoPredicate,
    ) -> Optional[ContinuationDecision]:
        """Return the decision for ``candidates`` or None when there is nothing to play."""
        if not candidates:
            return None

        head = candidates[0]
        now = self.clock() if self.clock else None

        if is_watched(head):
            status = ContinuationStatus.SKIPPING_WATCHED
        elif access.resolve(viewer, head, has_purchased(head), now=now):
            status = ContinuationStatus.PLAYING_NEXT
        elif can_auto_purchase(viewer, head):
            status = ContinuationStatus.AUTO_BUYING
        else:
            logger.debug(f"Next video {head.id} needs confirmation (price {head.price})")
            return ContinuationDecision(ContinuationStatus.WAITING_CONFIRMATION, head)

        return ContinuationDecision(status, head, self.countdown_seconds)


def resolve_target(candidates: Sequence[Video], is_watched: VideoPredicate) -> Video:
    """Pick where a skip actually lands: the first unwatched candidate, else the head."""
    if not candidates:
        raise ValueError("cannot resolve a target from an empty candidate list")
    for candidate in candidates:
        if not is_watched(candidate):
            return candidate
    return candidates[0]
