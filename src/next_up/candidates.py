"""Supplier of next-video candidates."""

import logging
import re
from typing import Iterable, List, Optional

from .backend import PlaybackBackend
from .config import config
from .domain import Video
from .errors import BackendError

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def natural_key(title: str):
    """Sort key that orders "Ep 2" before "Ep 10"."""
    return [int(part) if part.isdigit() else part.casefold() for part in _DIGITS.split(title or "")]


class CandidateSource:
    """Builds the ordered candidate list for the video that just ended."""

    def __init__(self, backend: PlaybackBackend, episodic_categories: Iterable[str] = None):
        self.backend = backend
        if episodic_categories is None:
            episodic_categories = config.EPISODIC_CATEGORIES
        self.episodic_categories = {c.upper() for c in episodic_categories}

    async def candidates_for(self, video: Video) -> List[Video]:
        """Next episode first (for episodic content), then related videos."""
        ordered: List[Video] = []

        episode = await self.next_episode(video)
        if episode is not None:
            ordered.append(episode)

        try:
            related = await self.backend.get_related_videos(video.id)
        except BackendError as e:
            logger.warning(f"Could not fetch related videos for {video.id}: {e}")
            related = []

        seen = {video.id} | {v.id for v in ordered}
        for candidate in related:
            if candidate.id in seen:
                continue
            seen.add(candidate.id)
            ordered.append(candidate)

        logger.debug(f"{len(ordered)} candidates after {video.id}")
        return ordered

    async def next_episode(self, video: Video) -> Optional[Video]:
        category = (video.category or "").upper()
        if category not in self.episodic_categories:
            return None

        try:
            creator_videos = await self.backend.get_videos_by_creator(video.creator_id)
        except BackendError as e:
            logger.warning(f"Could not fetch series for creator {video.creator_id}: {e}")
            return None

        series = sorted(
            (v for v in creator_videos if (v.category or "").upper() == category),
            key=lambda v: natural_key(v.title),
        )
        ids = [v.id for v in series]
        if video.id not in ids:
            return None
        index = ids.index(video.id)
        if index < len(series) - 1:
            return series[index + 1]
        return None
