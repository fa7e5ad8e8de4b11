"""Plain value types the continuation engine works with.

These are detached snapshots of the catalog and account rows. The engine never
holds a database session; it receives these from a backend and treats videos
as immutable for the lifetime of a playback session.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional, FrozenSet


def to_money(value) -> Decimal:
    """Coerce a price/balance to a two-place Decimal."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal("0.01"))


@dataclass(frozen=True)
class Video:
    id: str
    title: str
    price: Decimal
    creator_id: str
    creator_role: str = ""
    duration: int = 0
    category: str = "GENERAL"

    def __post_init__(self):
        object.__setattr__(self, "price", to_money(self.price))


@dataclass(frozen=True)
class Viewer:
    id: str
    balance: Decimal
    auto_purchase_limit: Decimal
    role: str = "USER"
    vip_expiry: Optional[int] = None  # epoch seconds
    watch_later: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "balance", to_money(self.balance))
        object.__setattr__(self, "auto_purchase_limit", to_money(self.auto_purchase_limit))
        object.__setattr__(self, "watch_later", frozenset(self.watch_later))

    def with_watch_later(self, video_id: str, present: bool) -> "Viewer":
        ids = set(self.watch_later)
        if present:
            ids.add(video_id)
        else:
            ids.discard(video_id)
        return replace(self, watch_later=frozenset(ids))


@dataclass(frozen=True)
class InteractionRecord:
    viewer_id: str
    video_id: str
    liked: bool = False
    disliked: bool = False
    is_watched: bool = False
