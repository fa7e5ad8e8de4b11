"""Per-video playback session: access, watched state and what comes next."""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import access
from .actions import ActionResult, ResolvedAction, CANCELLED, CONFIRMED, DOWNGRADED, FAILED
from .backend import PlaybackBackend
from .candidates import CandidateSource
from .config import config
from .continuation import ContinuationDecision, ContinuationPlanner, ContinuationStatus
from .domain import InteractionRecord, Video, Viewer
from .errors import BackendError
from .timer import ContinuationTimer

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    # Ended sub-states
    NO_DECISION = "no_decision"
    COUNTING_DOWN = "counting_down"
    IDLE_WAITING = "idle_waiting"
    # Terminal until the next open()
    NAVIGATED = "navigated"
    UNAVAILABLE = "unavailable"
    CLOSED = "closed"


ENDED_STATES = (SessionState.NO_DECISION, SessionState.COUNTING_DOWN, SessionState.IDLE_WAITING)


@dataclass(frozen=True)
class OverlayState:
    """Read-only snapshot of what the player UI should show."""

    state: SessionState
    viewer_id: str
    video_id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[str] = None
    locked: Optional[bool] = None
    status: Optional[ContinuationStatus] = None
    target_id: Optional[str] = None
    target_title: Optional[str] = None
    target_price: Optional[str] = None
    countdown: Optional[int] = None
    balance: Optional[str] = None
    in_watch_later: bool = False
    purchase_error: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "viewer_id": self.viewer_id,
            "video": {
                "id": self.video_id,
                "title": self.title,
                "price": self.price,
                "locked": self.locked,
                "in_watch_later": self.in_watch_later,
            },
            "continuation": {
                "status": self.status.value if self.status else None,
                "target_id": self.target_id,
                "target_title": self.target_title,
                "target_price": self.target_price,
                "countdown": self.countdown,
            },
            "balance": self.balance,
            "purchase_error": self.purchase_error,
            "error": self.error,
        }


class PlaybackSession:
    """Orchestrates one viewer's playback of one video at a time.

    All methods must run on the same event loop. Opening another video resets
    the session to LOADING; the live decision and its countdown are discarded
    first, so nothing scheduled for the previous video can fire afterwards.
    """

    def __init__(
        self,
        viewer: Viewer,
        backend: PlaybackBackend,
        candidate_source: CandidateSource = None,
        planner: ContinuationPlanner = None,
        navigate: Callable[[str], Awaitable[None]] = None,
        tick_interval: float = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        watched_threshold: float = None,
        clock: Callable[[], float] = None,
        on_change: Callable[[OverlayState], None] = None,
        on_outcome: Callable[["PlaybackSession", str, ContinuationDecision, ActionResult], None] = None,
    ):
        self.viewer = viewer
        self.backend = backend
        self.candidate_source = candidate_source or CandidateSource(backend)
        self.clock = clock or time.time
        self.planner = planner or ContinuationPlanner(config.COUNTDOWN_SECONDS, clock=self.clock)
        self.watched_threshold = config.WATCHED_THRESHOLD if watched_threshold is None else watched_threshold
        self.on_change = on_change
        self.on_outcome = on_outcome
        self._navigate = navigate

        self.timer = ContinuationTimer(
            on_expire=self._on_expire,
            on_tick=self._on_tick,
            interval=config.TICK_INTERVAL if tick_interval is None else tick_interval,
            sleep=sleep,
        )
        self.action = ResolvedAction(backend, self._navigate_away, self._is_live, self._set_viewer)

        self.state = SessionState.LOADING
        self.video_id: Optional[str] = None
        self.video: Optional[Video] = None
        self.interaction: Optional[InteractionRecord] = None
        self.purchased = False
        self.unlocked = False
        self.decision: Optional[ContinuationDecision] = None
        self.candidates: List[Video] = []
        self.error: Optional[str] = None
        self.purchase_error: Optional[str] = None

        self._generation = 0
        self._executing = False
        self._purchasing = False

    # Lifecycle

    async def open(self, video_id: str):
        """Start (or restart) the session for ``video_id``."""
        self._discard_decision()
        self._generation += 1
        generation = self._generation

        self.state = SessionState.LOADING
        self.video_id = video_id
        self.video = None
        self.interaction = None
        self.purchased = False
        self.unlocked = False
        self.candidates = []
        self.error = None
        self.purchase_error = None
        self._notify()

        try:
            video, interaction, purchased = await asyncio.gather(
                self.backend.get_video(video_id),
                self.backend.get_interaction(self.viewer.id, video_id),
                self.backend.has_purchased(self.viewer.id, video_id),
            )
        except BackendError as e:
            if generation != self._generation:
                return
            logger.error(f"Could not load video {video_id}: {e}")
            self.state = SessionState.UNAVAILABLE
            self.error = e.message
            self._notify()
            return

        if generation != self._generation:
            logger.debug(f"Load of {video_id} superseded")
            return

        self.video = video
        self.interaction = interaction
        self.purchased = purchased
        self.unlocked = access.resolve(self.viewer, video, purchased, now=self.clock())
        self.state = SessionState.READY
        logger.info(f"Loaded {video_id} for {self.viewer.id} ({'unlocked' if self.unlocked else 'locked'})")
        self._notify()

    def close(self):
        """Tear the session down; the countdown and any in-flight load are dropped."""
        self._discard_decision()
        self._generation += 1
        self.state = SessionState.CLOSED
        self._notify()

    # Playback events

    async def report_progress(self, position: float, duration: float):
        """Mark the video watched once enough of it has been played."""
        if self.state is not SessionState.READY or not duration or duration <= 0:
            return
        if position / duration > self.watched_threshold:
            await self._mark_watched()

    async def on_media_end(self):
        """Plan the continuation for the video that just finished (once per video)."""
        if self.state is not SessionState.READY or not self.unlocked:
            logger.debug(f"Ignoring end of media in state {self.state.value}")
            return

        generation = self._generation
        self.state = SessionState.NO_DECISION
        await self._mark_watched()

        fresh = True
        try:
            self.viewer = await self.backend.refresh_viewer(self.viewer.id)
        except BackendError as e:
            logger.warning(f"Could not refresh viewer {self.viewer.id}, auto-purchase disabled: {e}")
            fresh = False

        candidates = await self.candidate_source.candidates_for(self.video)
        if generation != self._generation:
            return
        if not candidates:
            logger.info(f"No candidates after {self.video.id}")
            self._notify()
            return

        head = candidates[0]
        try:
            head_interaction, head_purchased = await asyncio.gather(
                self.backend.get_interaction(self.viewer.id, head.id),
                self.backend.has_purchased(self.viewer.id, head.id),
            )
        except BackendError as e:
            if generation == self._generation:
                logger.error(f"Could not classify next video {head.id}: {e}")
                self.error = e.message
                self._notify()
            return
        if generation != self._generation:
            return

        decision = self.planner.plan(
            candidates,
            self.viewer,
            is_watched=lambda v: v.id == head.id and head_interaction.is_watched,
            has_purchased=lambda v: v.id == head.id and head_purchased,
        )
        if decision.status is ContinuationStatus.AUTO_BUYING and not fresh:
            decision = decision.downgraded()

        self.candidates = list(candidates)
        self._set_decision(decision)

    # User intents

    def cancel(self):
        """Dismiss the overlay without executing anything."""
        decision = self.decision
        if decision is None:
            return
        self._discard_decision()
        self.state = SessionState.NO_DECISION
        self._notify()
        self._report(self.video_id, decision, ActionResult(CANCELLED, decision.target))

    async def play_now(self):
        """Skip the rest of the countdown and execute immediately."""
        decision = self.decision
        if decision is None or not decision.counts_down:
            return
        self.timer.cancel()
        await self._execute(decision)

    async def confirm_and_navigate(self, target: Video = None):
        """Go to ``target`` (default: the live decision's target) without buying it."""
        decision = self.decision
        if target is None:
            if decision is None:
                return
            target = decision.target
        if decision is not None:
            self._report(self.video_id, decision, ActionResult(CONFIRMED, target))
        await self._navigate_away(target)

    async def purchase_current(self) -> bool:
        """Buy the locked current video. Failures end up in ``purchase_error``."""
        if self.state is not SessionState.READY or self.video is None:
            return False
        if self.unlocked:
            return True
        if self._purchasing:
            return False

        video = self.video
        generation = self._generation
        self.purchase_error = None
        if self.viewer.balance < video.price:
            self.purchase_error = "Insufficient balance"
            self._notify()
            return False

        self._purchasing = True
        try:
            await self.backend.purchase(self.viewer.id, video.id)
        except BackendError as e:
            logger.warning(f"Purchase of {video.id} by {self.viewer.id} failed: {e}")
            if generation == self._generation:
                self.purchase_error = e.message
                self._notify()
            return False
        finally:
            self._purchasing = False

        try:
            self.viewer = await self.backend.refresh_viewer(self.viewer.id)
        except BackendError as e:
            logger.error(f"Could not refresh viewer {self.viewer.id} after purchase: {e}")

        if generation == self._generation:
            self.purchased = True
            self.unlocked = access.resolve(self.viewer, video, True, now=self.clock())
            self._notify()
        return True

    async def toggle_watch_later(self) -> bool:
        if self.video is None:
            return False
        present = await self.backend.toggle_watch_later(self.viewer.id, self.video.id)
        self.viewer = self.viewer.with_watch_later(self.video.id, present)
        self._notify()
        return present

    # Read-only view

    def overlay(self) -> OverlayState:
        decision = self.decision
        video = self.video
        return OverlayState(
            state=self.state,
            viewer_id=self.viewer.id,
            video_id=self.video_id,
            title=video.title if video else None,
            price=str(video.price) if video else None,
            locked=(not self.unlocked) if video else None,
            status=decision.status if decision else None,
            target_id=decision.target.id if decision else None,
            target_title=decision.target.title if decision else None,
            target_price=str(decision.target.price) if decision else None,
            countdown=self.timer.remaining if decision and decision.counts_down else None,
            balance=str(self.viewer.balance),
            in_watch_later=bool(video and video.id in self.viewer.watch_later),
            purchase_error=self.purchase_error,
            error=self.error,
        )

    # Internals

    def _set_decision(self, decision: ContinuationDecision):
        self.decision = decision
        logger.info(f"Next after {self.video_id}: {decision.status.value} -> {decision.target.id}")
        if decision.counts_down:
            self.state = SessionState.COUNTING_DOWN
            self.timer.start(decision.countdown_seconds)
        else:
            self.state = SessionState.IDLE_WAITING
        self._notify()

    def _discard_decision(self):
        self.timer.cancel()
        self.decision = None

    def _is_live(self, decision: ContinuationDecision) -> bool:
        return decision is self.decision and self.state in (SessionState.COUNTING_DOWN, SessionState.IDLE_WAITING)

    def _set_viewer(self, viewer: Viewer):
        self.viewer = viewer

    def _on_tick(self, remaining: int):
        self._notify()

    async def _on_expire(self):
        decision = self.decision
        if decision is None:
            return
        await self._execute(decision)

    async def _execute(self, decision: ContinuationDecision):
        if self._executing or not self._is_live(decision):
            return
        from_video_id = self.video_id
        self._executing = True
        try:
            result = await self.action.execute(decision, self.viewer, self.candidates)
        except Exception as e:
            logger.error(f"Failed to continue to {decision.target.id} ({decision.status.value}): {e}", exc_info=True)
            result = self._recover(decision, e)
        finally:
            self._executing = False

        if result.outcome == DOWNGRADED and self.decision is decision:
            self.decision = result.decision
            self.state = SessionState.IDLE_WAITING
            self._notify()
        self._report(from_video_id, decision, result)

    def _recover(self, decision: ContinuationDecision, error: Exception) -> ActionResult:
        """Leave the ended state usable after an unexpected execution error."""
        if self.decision is decision and decision.status is ContinuationStatus.AUTO_BUYING:
            return ActionResult(DOWNGRADED, decision.target, decision=decision.downgraded(), error=str(error))

        if self.decision is decision:
            self._discard_decision()
            self.state = SessionState.NO_DECISION
        elif self.state is SessionState.NAVIGATED:
            # Navigation itself failed; the current video is still the one that ended
            self.state = SessionState.NO_DECISION
        self.error = str(error)
        self._notify()
        return ActionResult(FAILED, decision.target, error=str(error))

    async def _navigate_away(self, target: Video):
        self._discard_decision()
        self.state = SessionState.NAVIGATED
        self._notify()
        if self._navigate is not None:
            await self._navigate(target.id)
        else:
            await self.open(target.id)

    async def _mark_watched(self):
        if self.video is None or self.interaction is None or self.interaction.is_watched:
            return
        video_id = self.video.id
        self.interaction = replace(self.interaction, is_watched=True)
        try:
            await self.backend.mark_watched(self.viewer.id, video_id)
        except BackendError as e:
            logger.warning(f"Could not mark {video_id} watched: {e}")

    def _report(self, from_video_id: str, decision: ContinuationDecision, result: ActionResult):
        if self.on_outcome is not None:
            self.on_outcome(self, from_video_id, decision, result)

    def _notify(self):
        if self.on_change is not None:
            self.on_change(self.overlay())
