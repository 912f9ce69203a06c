"""Core value types shared by the tracker, scoring engine and feed composer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class MediaKind(str, Enum):
    MOVIE = "movie"
    SHOW = "tv"

    @classmethod
    def _missing_(cls, value):
        # "show" is accepted as a spelling of the tv kind
        if isinstance(value, str) and value.lower() == "show":
            return cls.SHOW
        return None


class Action(str, Enum):
    VIEW = "view"
    WATCH_START = "watch_start"
    WATCH_PROGRESS = "watch_progress"
    COMPLETE = "complete"
    ABANDON = "abandon"
    ADD_WATCHLIST = "add_watchlist"
    REMOVE_WATCHLIST = "remove_watchlist"
    DOWNLOAD = "download"
    SEARCH = "search"


ItemKey = tuple[MediaKind, int]


def parse_date(value: str | date | None) -> date | None:
    """
    Parse a TMDB-style 'YYYY-MM-DD' date.

    Empty strings (TMDB uses them for unknown air dates) and malformed values
    map to None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.debug(f"Unparseable release date '{value}'")
        return None


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO timestamp into a naive datetime."""
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


@dataclass(frozen=True)
class ContentItem:
    """A movie or show as returned by the catalog. Never mutated by the engine."""
    id: int
    kind: MediaKind
    title: str
    genre_ids: tuple[int, ...] = ()
    popularity: float = 0.0
    release_date: date | None = None
    vote_average: float = 0.0
    vote_count: int = 0
    backdrop_path: str | None = None
    poster_path: str | None = None
    overview: str = ""

    @property
    def key(self) -> ItemKey:
        return (self.kind, self.id)

    @property
    def has_backdrop(self) -> bool:
        return bool(self.backdrop_path)

    @classmethod
    def from_tmdb(cls, payload: dict[str, Any], kind: MediaKind | str) -> "ContentItem":
        """
        Build an item from a TMDB list or details payload.

        Movies carry 'title'/'release_date', shows carry 'name'/'first_air_date'.
        List endpoints return 'genre_ids', details endpoints return 'genres'
        as [{id, name}] objects.
        """
        kind = MediaKind(kind)
        if kind is MediaKind.MOVIE:
            title = payload.get("title") or payload.get("original_title") or ""
            released = payload.get("release_date")
        else:
            title = payload.get("name") or payload.get("original_name") or ""
            released = payload.get("first_air_date")

        genre_ids = payload.get("genre_ids")
        if genre_ids is None:
            genre_ids = [g["id"] for g in payload.get("genres") or [] if "id" in g]

        return cls(
            id=int(payload["id"]),
            kind=kind,
            title=title,
            genre_ids=tuple(int(g) for g in genre_ids),
            popularity=float(payload.get("popularity") or 0.0),
            release_date=parse_date(released),
            vote_average=float(payload.get("vote_average") or 0.0),
            vote_count=int(payload.get("vote_count") or 0),
            backdrop_path=payload.get("backdrop_path"),
            poster_path=payload.get("poster_path"),
            overview=payload.get("overview") or "",
        )


@dataclass(frozen=True)
class InteractionEvent:
    item_id: int
    kind: MediaKind
    action: Action
    timestamp: datetime
    genre_ids: tuple[int, ...] = ()
    progress: float | None = None
    title: str | None = None
    duration: float | None = None  # seconds spent

    @property
    def key(self) -> ItemKey:
        return (self.kind, self.item_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "kind": self.kind.value,
            "action": self.action.value,
            "timestamp": self.timestamp.isoformat(),
            "genre_ids": list(self.genre_ids),
            "progress": self.progress,
            "title": self.title,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "InteractionEvent":
        return cls(
            item_id=int(payload["item_id"]),
            kind=MediaKind(payload["kind"]),
            action=Action(payload["action"]),
            timestamp=parse_timestamp(payload["timestamp"]),
            genre_ids=tuple(payload.get("genre_ids") or ()),
            progress=payload.get("progress"),
            title=payload.get("title"),
            duration=payload.get("duration"),
        )


@dataclass(frozen=True)
class WatchHistoryEntry:
    item_id: int
    kind: MediaKind
    progress: float
    watched_at: datetime
    genre_ids: tuple[int, ...] = ()
    episode_id: int | None = None
    season_number: int | None = None
    episode_number: int | None = None
    duration: float | None = None  # total runtime in minutes

    @property
    def key(self) -> tuple[MediaKind, int, int | None]:
        return (self.kind, self.item_id, self.episode_id)

    @property
    def item_key(self) -> ItemKey:
        return (self.kind, self.item_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "kind": self.kind.value,
            "progress": self.progress,
            "watched_at": self.watched_at.isoformat(),
            "genre_ids": list(self.genre_ids),
            "episode_id": self.episode_id,
            "season_number": self.season_number,
            "episode_number": self.episode_number,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WatchHistoryEntry":
        return cls(
            item_id=int(payload["item_id"]),
            kind=MediaKind(payload["kind"]),
            progress=float(payload.get("progress") or 0),
            watched_at=parse_timestamp(payload["watched_at"]),
            genre_ids=tuple(payload.get("genre_ids") or ()),
            episode_id=payload.get("episode_id"),
            season_number=payload.get("season_number"),
            episode_number=payload.get("episode_number"),
            duration=payload.get("duration"),
        )


@dataclass(frozen=True)
class WatchlistItem:
    item_id: int
    kind: MediaKind
    added_at: datetime

    @property
    def key(self) -> ItemKey:
        return (self.kind, self.item_id)


@dataclass(frozen=True)
class CompletedItem:
    item_id: int
    kind: MediaKind
    genre_ids: tuple[int, ...] = ()


@dataclass
class UserPreferences:
    """Preference snapshot derived from interactions and watch history."""
    genre_affinities: dict[int, float] = field(default_factory=dict)
    content_type_balance: int = 50
    avg_completion_rate: int = 0
    recently_completed: list[CompletedItem] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.now)

    def affinity(self, genre_id: int, default: float = 50) -> float:
        return self.genre_affinities.get(genre_id, default)

    @property
    def has_affinity_data(self) -> bool:
        return bool(self.genre_affinities)

    def top_genres(self, count: int | None = None) -> list[int]:
        """Genre ids by descending affinity; ties broken by genre id."""
        ranked = sorted(self.genre_affinities.items(), key=lambda kv: (-kv[1], kv[0]))
        ids = [genre_id for genre_id, _ in ranked]
        return ids[:count] if count is not None else ids


@dataclass
class RecommendationScore:
    item_id: int
    kind: MediaKind
    score: int
    reasons: list[str]
    genre_match: int
    popularity_boost: int
    recency_boost: int
    similarity_score: int
    serendipity_bonus: int = 0
