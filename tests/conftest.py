"""Shared fixtures: an in-memory backend and session helpers."""

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest

from next_up.domain import InteractionRecord, Video, Viewer, to_money
from next_up.errors import BackendError, InsufficientFunds, VideoNotFound
from next_up.session import PlaybackSession


class FakeBackend:
    """In-memory stand-in for the playback backend that records every call."""

    def __init__(self):
        self.videos = {}
        self.viewers = {}
        self.related = {}
        self.watched = set()
        self.purchases = set()
        self.watch_later = {}
        self.calls = []
        self.failing_videos = set()
        self.purchase_error = None
        self.refresh_error = None
        self.purchase_gate = None

    def add_viewer(self, viewer_id="v1", balance="10", limit="5", role="USER", vip_expiry=None):
        viewer = Viewer(viewer_id, Decimal(balance), Decimal(limit), role=role, vip_expiry=vip_expiry)
        self.viewers[viewer_id] = viewer
        return viewer

    def add_video(self, video_id, price="0", creator_id="creator", creator_role="USER",
                  title=None, category="GENERAL"):
        video = Video(video_id, title or video_id.upper(), Decimal(price), creator_id,
                      creator_role=creator_role, category=category)
        self.videos[video_id] = video
        return video

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    async def get_video(self, video_id):
        self.calls.append(("get_video", video_id))
        if video_id in self.failing_videos:
            raise BackendError("connection reset")
        if video_id not in self.videos:
            raise VideoNotFound(f"Video {video_id} not found")
        return self.videos[video_id]

    async def get_interaction(self, viewer_id, video_id):
        self.calls.append(("get_interaction", viewer_id, video_id))
        return InteractionRecord(viewer_id, video_id, is_watched=(viewer_id, video_id) in self.watched)

    async def has_purchased(self, viewer_id, video_id):
        self.calls.append(("has_purchased", viewer_id, video_id))
        return (viewer_id, video_id) in self.purchases

    async def get_related_videos(self, video_id):
        self.calls.append(("get_related_videos", video_id))
        return [self.videos[v] for v in self.related.get(video_id, [])]

    async def get_videos_by_creator(self, creator_id):
        self.calls.append(("get_videos_by_creator", creator_id))
        return [v for v in self.videos.values() if v.creator_id == creator_id]

    async def purchase(self, viewer_id, video_id):
        self.calls.append(("purchase", viewer_id, video_id))
        if self.purchase_gate is not None:
            await self.purchase_gate.wait()
        if self.purchase_error is not None:
            raise self.purchase_error
        if (viewer_id, video_id) in self.purchases:
            return
        viewer = self.viewers[viewer_id]
        price = self.videos[video_id].price
        if viewer.balance < price:
            raise InsufficientFunds(viewer.balance, price)
        self.viewers[viewer_id] = replace(viewer, balance=to_money(viewer.balance - price))
        self.purchases.add((viewer_id, video_id))

    async def mark_watched(self, viewer_id, video_id):
        self.calls.append(("mark_watched", viewer_id, video_id))
        self.watched.add((viewer_id, video_id))

    async def refresh_viewer(self, viewer_id):
        self.calls.append(("refresh_viewer", viewer_id))
        if self.refresh_error is not None:
            raise self.refresh_error
        if viewer_id not in self.viewers:
            raise BackendError(f"Viewer {viewer_id} not found")
        return self.viewers[viewer_id]

    async def toggle_watch_later(self, viewer_id, video_id):
        ids = self.watch_later.setdefault(viewer_id, set())
        if video_id in ids:
            ids.remove(video_id)
            return False
        ids.add(video_id)
        return True


async def fast_sleep(_interval):
    await asyncio.sleep(0)


@pytest.fixture
def backend():
    backend = FakeBackend()
    backend.add_viewer("v1", balance="10", limit="5")
    backend.add_video("current", price="0", creator_id="v1")
    return backend


@pytest.fixture
def navigated():
    return []


@pytest.fixture
def outcomes():
    return []


@pytest.fixture
def make_session(backend, navigated, outcomes):
    """Build a session for viewer v1 that records navigation instead of reloading."""

    def factory(viewer_id="v1", **options):
        async def navigate(video_id):
            navigated.append(video_id)

        def record(session, from_video_id, decision, result):
            outcomes.append((from_video_id, decision.status, result.outcome))

        options.setdefault("navigate", navigate)
        options.setdefault("sleep", fast_sleep)
        options.setdefault("tick_interval", 1.0)
        options.setdefault("on_outcome", record)
        return PlaybackSession(backend.viewers[viewer_id], backend, **options)

    return factory
