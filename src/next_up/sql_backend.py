"""SQLAlchemy implementation of the playback backend."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import models
from .config import config
from .domain import InteractionRecord, Video, Viewer, to_money
from .errors import BackendError, InsufficientFunds, PurchaseError, VideoNotFound
from .models import get_session

logger = logging.getLogger(__name__)


def video_to_domain(row: models.Video) -> Video:
    return Video(
        id=row.id,
        title=row.title,
        price=row.price,
        creator_id=row.creator_id,
        creator_role=row.creator.role if row.creator else "",
        duration=row.duration or 0,
        category=row.category or "GENERAL",
    )


def viewer_to_domain(row: models.Viewer) -> Viewer:
    return Viewer(
        id=row.id,
        balance=row.balance,
        auto_purchase_limit=row.auto_purchase_limit,
        role=row.role or "",
        vip_expiry=row.vip_expiry,
        watch_later=frozenset(row.watch_later_ids()),
    )


def interaction_to_domain(row: models.Interaction) -> InteractionRecord:
    return InteractionRecord(
        viewer_id=row.viewer_id,
        video_id=row.video_id,
        liked=bool(row.liked),
        disliked=bool(row.disliked),
        is_watched=bool(row.is_watched),
    )


class SqlBackend:
    """Serves the engine from the local catalog database.

    Blocking database work runs in worker threads so the engine loop stays free.
    """

    def __init__(self, session_factory: sessionmaker = None, related_limit: int = None):
        self._factory = session_factory
        self.related_limit = config.RELATED_LIMIT if related_limit is None else related_limit

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error(f"Database error in {fn.__name__}: {e}")
            raise BackendError(f"Storage error: {e}") from e

    # Reads

    async def get_video(self, video_id: str) -> Video:
        return await self._run(self._get_video, video_id)

    def _get_video(self, video_id):
        with get_session(self._factory) as session:
            row = session.get(models.Video, video_id)
            if row is None:
                raise VideoNotFound(f"Video {video_id} not found")
            return video_to_domain(row)

    async def refresh_viewer(self, viewer_id: str) -> Viewer:
        return await self._run(self._refresh_viewer, viewer_id)

    def _refresh_viewer(self, viewer_id):
        with get_session(self._factory) as session:
            row = session.get(models.Viewer, viewer_id)
            if row is None:
                raise BackendError(f"Viewer {viewer_id} not found")
            return viewer_to_domain(row)

    async def has_purchased(self, viewer_id: str, video_id: str) -> bool:
        return await self._run(self._has_purchased, viewer_id, video_id)

    def _has_purchased(self, viewer_id, video_id):
        with get_session(self._factory) as session:
            return session.query(models.Purchase).filter_by(
                viewer_id=viewer_id, video_id=video_id
            ).first() is not None

    async def get_interaction(self, viewer_id: str, video_id: str) -> InteractionRecord:
        return await self._run(self._get_interaction, viewer_id, video_id)

    def _get_interaction(self, viewer_id, video_id):
        with get_session(self._factory) as session:
            return interaction_to_domain(self._interaction_row(session, viewer_id, video_id))

    def _interaction_row(self, session, viewer_id, video_id) -> models.Interaction:
        """Fetch the interaction row, creating it on first use."""
        query = session.query(models.Interaction).filter_by(viewer_id=viewer_id, video_id=video_id)
        row = query.first()
        if row is not None:
            return row
        row = models.Interaction(viewer_id=viewer_id, video_id=video_id,
                                 liked=False, disliked=False, is_watched=False)
        session.add(row)
        try:
            session.flush()
        except IntegrityError:
            # Created concurrently by another worker
            session.rollback()
            row = query.one()
        return row

    async def get_related_videos(self, video_id: str) -> List[Video]:
        return await self._run(self._get_related_videos, video_id)

    def _get_related_videos(self, video_id):
        with get_session(self._factory) as session:
            current = session.get(models.Video, video_id)
            if current is None:
                raise VideoNotFound(f"Video {video_id} not found")
            rows = session.query(models.Video).filter(
                models.Video.id != current.id,
                or_(models.Video.category == current.category,
                    models.Video.creator_id == current.creator_id),
            ).order_by(models.Video.created_at.desc(), models.Video.id).limit(self.related_limit).all()
            return [video_to_domain(r) for r in rows]

    async def get_videos_by_creator(self, creator_id: str) -> List[Video]:
        return await self._run(self._get_videos_by_creator, creator_id)

    def _get_videos_by_creator(self, creator_id):
        with get_session(self._factory) as session:
            rows = session.query(models.Video).filter_by(creator_id=creator_id).all()
            return [video_to_domain(r) for r in rows]

    # Writes

    async def purchase(self, viewer_id: str, video_id: str) -> None:
        await self._run(self._purchase, viewer_id, video_id)

    def _purchase(self, viewer_id, video_id):
        with get_session(self._factory) as session:
            viewer = session.get(models.Viewer, viewer_id, with_for_update=True)
            video = session.get(models.Video, video_id)
            if viewer is None or video is None:
                raise PurchaseError("Viewer or video not found")

            owned = session.query(models.Purchase).filter_by(
                viewer_id=viewer_id, video_id=video_id
            ).first()
            if owned is not None:
                logger.info(f"Viewer {viewer_id} already owns {video_id}, not charging again")
                return

            balance = to_money(viewer.balance)
            price = to_money(video.price)
            if balance < price:
                raise InsufficientFunds(balance, price)

            viewer.balance = balance - price
            session.add(models.Purchase(viewer_id=viewer_id, video_id=video_id, amount=price))
            logger.info(f"Viewer {viewer_id} bought {video_id} for {price} (balance {viewer.balance})")

    async def mark_watched(self, viewer_id: str, video_id: str) -> None:
        await self._run(self._mark_watched, viewer_id, video_id)

    def _mark_watched(self, viewer_id, video_id):
        with get_session(self._factory) as session:
            row = self._interaction_row(session, viewer_id, video_id)
            if not row.is_watched:
                row.is_watched = True
                row.watched_at = datetime.now(timezone.utc)

    async def toggle_watch_later(self, viewer_id: str, video_id: str) -> bool:
        return await self._run(self._toggle_watch_later, viewer_id, video_id)

    def _toggle_watch_later(self, viewer_id, video_id):
        with get_session(self._factory) as session:
            viewer = session.get(models.Viewer, viewer_id)
            if viewer is None:
                raise BackendError(f"Viewer {viewer_id} not found")
            ids = viewer.watch_later_ids()
            if video_id in ids:
                ids.remove(video_id)
                present = False
            else:
                ids.append(video_id)
                present = True
            viewer.set_watch_later_ids(ids)
            return present
