"""Access resolution: may a viewer play a video without paying again."""

import time
from typing import Optional

from .domain import Video, Viewer

ADMIN_ROLE = "ADMIN"


def normalize_role(role) -> str:
    """Upper-case and strip a role value; upstream rows are not consistently cased."""
    if role is None:
        return ""
    return str(role).strip().upper()


def is_vip(viewer: Viewer, now: Optional[float] = None) -> bool:
    """Check whether the viewer's VIP tier is still running."""
    if viewer.vip_expiry is None:
        return False
    if now is None:
        now = time.time()
    return viewer.vip_expiry > now


def resolve(viewer: Viewer, video: Video, purchased: bool, now: Optional[float] = None) -> bool:
    """
    Resolve whether ``viewer`` is entitled to play ``video``.

    Access is granted when any of these hold:
    1) the viewer has purchased the video
    2) the viewer is an admin
    3) the viewer created the video
    4) the viewer's VIP tier has not expired and the video was authored by an admin
    """
    if purchased:
        return True
    if normalize_role(viewer.role) == ADMIN_ROLE:
        return True
    if viewer.id == video.creator_id:
        return True
    return is_vip(viewer, now) and normalize_role(video.creator_role) == ADMIN_ROLE
