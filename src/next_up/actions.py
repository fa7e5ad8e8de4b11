"""Execution of a continuation decision."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from .backend import PlaybackBackend
from .continuation import ContinuationDecision, ContinuationStatus, resolve_target
from .domain import Video, Viewer
from .errors import BackendError

logger = logging.getLogger(__name__)

# Outcomes reported for each executed (or abandoned) decision
NAVIGATED = "navigated"
PURCHASED = "purchased"
DOWNGRADED = "downgraded"
CANCELLED = "cancelled"
CONFIRMED = "confirmed"
IDLE = "idle"
STALE = "stale"
FAILED = "failed"


@dataclass(frozen=True)
class ActionResult:
    outcome: str
    target: Optional[Video] = None
    decision: Optional[ContinuationDecision] = None  # replacement decision, if any
    error: Optional[str] = None


class ResolvedAction:
    """Carries out a decision: navigation, purchase, or nothing.

    ``is_live`` is consulted before every side effect; a decision that was
    cleared while a call was in flight is abandoned.
    """

    def __init__(
        self,
        backend: PlaybackBackend,
        navigate: Callable[[Video], Awaitable[None]],
        is_live: Callable[[ContinuationDecision], bool],
        on_viewer: Callable[[Viewer], None] = None,
    ):
        self.backend = backend
        self.navigate = navigate
        self.is_live = is_live
        self.on_viewer = on_viewer

    async def execute(self, decision: ContinuationDecision, viewer: Viewer,
                      candidates: Sequence[Video] = ()) -> ActionResult:
        if not self.is_live(decision):
            logger.debug("Decision was cleared before execution, ignoring")
            return ActionResult(STALE, decision.target)

        status = decision.status
        if status is ContinuationStatus.WAITING_CONFIRMATION:
            return ActionResult(IDLE, decision.target)

        if status is ContinuationStatus.SKIPPING_WATCHED:
            target = await self._first_unwatched(viewer, candidates or [decision.target])
            return await self._go(decision, target)

        if status is ContinuationStatus.PLAYING_NEXT:
            return await self._go(decision, decision.target)

        return await self._auto_buy(decision, viewer)

    async def _go(self, decision, target) -> ActionResult:
        if not self.is_live(decision):
            return ActionResult(STALE, target)
        logger.info(f"Continuing to {target.id} ({decision.status.value})")
        await self.navigate(target)
        return ActionResult(NAVIGATED, target)

    async def _auto_buy(self, decision, viewer) -> ActionResult:
        target = decision.target
        try:
            await self.backend.purchase(viewer.id, target.id)
        except BackendError as e:
            # Balance or price moved since the plan; hand the choice back to the viewer
            logger.warning(f"Auto-purchase of {target.id} failed, waiting for confirmation: {e}")
            return ActionResult(DOWNGRADED, target, decision=decision.downgraded(), error=str(e))

        try:
            refreshed = await self.backend.refresh_viewer(viewer.id)
        except BackendError as e:
            logger.error(f"Could not refresh viewer {viewer.id} after purchase: {e}")
        else:
            if self.on_viewer:
                self.on_viewer(refreshed)

        if not self.is_live(decision):
            logger.info(f"Bought {target.id} but the decision was cleared, staying put")
            return ActionResult(PURCHASED, target)

        logger.info(f"Auto-purchased {target.id}, continuing")
        await self.navigate(target)
        return ActionResult(PURCHASED, target)

    async def _first_unwatched(self, viewer, candidates) -> Video:
        results = await asyncio.gather(
            *(self.backend.get_interaction(viewer.id, c.id) for c in candidates),
            return_exceptions=True,
        )
        watched = set()
        for candidate, result in zip(candidates, results):
            if isinstance(result, BackendError):
                logger.warning(f"Watched state of {candidate.id} unknown: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            if result.is_watched:
                watched.add(candidate.id)
        # Classification already saw the head as watched
        watched.add(candidates[0].id)
        return resolve_target(candidates, lambda v: v.id in watched)
