"""Event loop host for playback sessions."""

import asyncio
import logging
import threading
from typing import Callable, Dict, Optional

from .actions import ActionResult, STALE, IDLE
from .backend import PlaybackBackend
from .config import config
from .continuation import ContinuationDecision
from .models import get_session, ContinuationLog
from .session import OverlayState, PlaybackSession

logger = logging.getLogger(__name__)


class SessionNotFound(KeyError):
    """No playback session is open for the viewer."""


class PlaybackRuntime:
    """Runs every playback session on one event loop thread.

    Engine state is only touched from that loop; other threads (the web
    server) hand work over with :meth:`submit` / :meth:`call`.
    """

    def __init__(self, backend: PlaybackBackend, session_factory=None,
                 on_status: Callable[[OverlayState], None] = None, **session_options):
        self.backend = backend
        self.session_factory = session_factory
        self.on_status = on_status
        self.session_options = session_options
        self.sessions: Dict[str, PlaybackSession] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None

    # Loop management

    def start(self):
        """Start the engine loop in a background thread."""
        if self.thread is not None:
            return
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run_loop, name="playback-loop", daemon=True)
        self.thread.start()
        logger.info("Playback runtime started")

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def stop(self):
        """Close every session and stop the loop."""
        if self.loop is None:
            return
        try:
            self.call(self._close_all())
        except Exception as e:
            logger.error(f"Error closing sessions: {e}")
        self.loop.call_soon_threadsafe(self.loop.stop)
        if self.thread is not None:
            self.thread.join(timeout=5)
        self.thread = None
        self.loop = None
        logger.info("Playback runtime stopped")

    def submit(self, coro):
        """Schedule a coroutine on the engine loop from another thread."""
        if self.loop is None:
            coro.close()
            raise RuntimeError("Playback runtime is not running")
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, coro, timeout: float = None):
        """Run a coroutine on the engine loop and wait for its result."""
        return self.submit(coro).result(timeout or config.REQUEST_TIMEOUT)

    # Session operations (run on the loop)

    async def open_video(self, viewer_id: str, video_id: str) -> OverlayState:
        session = self.sessions.get(viewer_id)
        if session is None:
            viewer = await self.backend.refresh_viewer(viewer_id)
            # Another open for this viewer may have finished during the refresh
            session = self.sessions.get(viewer_id)
        if session is None:
            session = PlaybackSession(
                viewer,
                self.backend,
                on_change=self._broadcast,
                on_outcome=self._record_outcome,
                **self.session_options,
            )
            self.sessions[viewer_id] = session
            logger.info(f"Opened playback session for {viewer_id}")
        await session.open(video_id)
        return session.overlay()

    def get(self, viewer_id: str) -> PlaybackSession:
        try:
            return self.sessions[viewer_id]
        except KeyError:
            raise SessionNotFound(viewer_id) from None

    async def status(self, viewer_id: str) -> OverlayState:
        return self.get(viewer_id).overlay()

    async def media_ended(self, viewer_id: str) -> OverlayState:
        session = self.get(viewer_id)
        await session.on_media_end()
        return session.overlay()

    async def progress(self, viewer_id: str, position: float, duration: float) -> OverlayState:
        session = self.get(viewer_id)
        await session.report_progress(position, duration)
        return session.overlay()

    async def cancel(self, viewer_id: str) -> OverlayState:
        session = self.get(viewer_id)
        session.cancel()
        return session.overlay()

    async def play_now(self, viewer_id: str) -> OverlayState:
        session = self.get(viewer_id)
        await session.play_now()
        return session.overlay()

    async def confirm(self, viewer_id: str) -> OverlayState:
        session = self.get(viewer_id)
        await session.confirm_and_navigate()
        return session.overlay()

    async def purchase(self, viewer_id: str) -> OverlayState:
        session = self.get(viewer_id)
        await session.purchase_current()
        return session.overlay()

    async def watch_later(self, viewer_id: str) -> OverlayState:
        session = self.get(viewer_id)
        await session.toggle_watch_later()
        return session.overlay()

    async def close(self, viewer_id: str):
        session = self.sessions.pop(viewer_id, None)
        if session is not None:
            session.close()

    async def _close_all(self):
        for viewer_id in list(self.sessions):
            await self.close(viewer_id)

    # Listeners

    def _broadcast(self, overlay: OverlayState):
        if self.on_status is None:
            return
        try:
            self.on_status(overlay)
        except Exception as e:
            logger.error(f"Error broadcasting status: {e}")

    def _record_outcome(self, session: PlaybackSession, from_video_id: str,
                        decision: ContinuationDecision, result: ActionResult):
        if result.outcome in (STALE, IDLE):
            return
        entry = dict(
            viewer_id=session.viewer.id,
            from_video_id=from_video_id,
            target_video_id=result.target.id if result.target else decision.target.id,
            status=decision.status.value,
            outcome=result.outcome,
            error_message=result.error,
        )
        asyncio.get_running_loop().run_in_executor(None, self._write_log, entry)

    def _write_log(self, entry: dict):
        try:
            with get_session(self.session_factory) as db:
                db.add(ContinuationLog(**entry))
        except Exception as e:
            logger.error(f"Failed to record continuation outcome: {e}")
