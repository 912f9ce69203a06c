"""
Per-user activity state.

`ActivityTracker` owns the interaction log, watch history and watchlist of one
user and keeps a `UserPreferences` snapshot in step with them: every change
recomputes preferences before returning, so whatever composes a feed next
sees fresh affinities. Input is validated here, at ingestion, and nowhere
deeper.
"""
import logging
from collections.abc import Iterable
from datetime import datetime

from .config import (
    DEFAULT_USER,
    COMPLETED_PROGRESS_THRESHOLD,
    WATCH_START_PROGRESS_THRESHOLD,
    RECENTLY_WATCHED_EXCLUSION,
)
from .database import KeyValueStore
from .interactions import InteractionLog, WatchHistory, merge_watch_history
from .models import (
    Action,
    InteractionEvent,
    ItemKey,
    MediaKind,
    UserPreferences,
    WatchHistoryEntry,
    WatchlistItem,
    parse_timestamp,
)
from .profile import recompute_preferences
from .utils import clamp

logger = logging.getLogger(__name__)


def _validate_progress(progress: float | None) -> float | None:
    if progress is None:
        return None
    progress = float(progress)
    if not 0 <= progress <= 100:
        clamped = clamp(progress, 0, 100)
        logger.warning(f"Progress {progress} out of range, clamped to {clamped}")
        return clamped
    return progress


def _history_action(progress: float) -> Action:
    if progress >= COMPLETED_PROGRESS_THRESHOLD:
        return Action.COMPLETE
    if progress < WATCH_START_PROGRESS_THRESHOLD:
        return Action.WATCH_START
    return Action.WATCH_PROGRESS


class ActivityTracker:
    def __init__(
        self,
        user: str = DEFAULT_USER,
        interactions: InteractionLog | None = None,
        history: WatchHistory | None = None,
        watchlist: Iterable[WatchlistItem] = (),
    ):
        self.user = user
        self.interactions = interactions if interactions is not None else InteractionLog()
        self.history = history if history is not None else WatchHistory()
        self._watchlist: list[WatchlistItem] = list(watchlist)
        self.preferences: UserPreferences = recompute_preferences(self.interactions, self.history)

    def _recompute(self) -> UserPreferences:
        self.preferences = recompute_preferences(self.interactions, self.history)
        return self.preferences

    def track(
        self,
        item_id: int,
        kind: MediaKind | str,
        action: Action | str,
        genre_ids: Iterable[int] = (),
        progress: float | None = None,
        title: str | None = None,
        duration: float | None = None,
        timestamp: datetime | None = None,
    ) -> InteractionEvent:
        """
        Record one interaction and recompute preferences.

        Raises:
            ValueError: unknown action or media kind
        """
        event = InteractionEvent(
            item_id=int(item_id),
            kind=MediaKind(kind),
            action=Action(action),
            timestamp=timestamp or datetime.now(),
            genre_ids=tuple(int(g) for g in genre_ids),
            progress=_validate_progress(progress),
            title=title or None,
            duration=duration,
        )
        self.interactions.append(event)
        self._recompute()
        logger.debug(f"[{self.user}] {event.action.value} {event.kind.value}/{event.item_id} genres={list(event.genre_ids)}")
        return event

    def add_to_history(
        self,
        item_id: int,
        kind: MediaKind | str,
        progress: float,
        genre_ids: Iterable[int] = (),
        episode_id: int | None = None,
        season_number: int | None = None,
        episode_number: int | None = None,
        duration: float | None = None,
        watched_at: datetime | None = None,
        title: str | None = None,
    ) -> WatchHistoryEntry:
        """
        Upsert a watch-history entry.

        Any progress above zero is also tracked as an interaction:
        >= 90 is a completion, < 20 a start, anything between is progress.
        """
        genre_ids = tuple(int(g) for g in genre_ids)
        entry = WatchHistoryEntry(
            item_id=int(item_id),
            kind=MediaKind(kind),
            progress=_validate_progress(progress) or 0,
            watched_at=watched_at or datetime.now(),
            genre_ids=genre_ids,
            episode_id=episode_id,
            season_number=season_number,
            episode_number=episode_number,
            duration=duration,
        )
        self.history.add(entry)

        if entry.progress > 0:
            self.track(
                entry.item_id,
                entry.kind,
                _history_action(entry.progress),
                genre_ids,
                progress=entry.progress,
                title=title,
            )
        else:
            self._recompute()
        return entry

    def clear_history(self) -> None:
        removed = len(self.history)
        self.history.clear()
        self._recompute()
        logger.info(f"[{self.user}] Cleared {removed} watch-history entries")

    def merge_remote_history(self, remote: Iterable[WatchHistoryEntry]) -> None:
        merged = merge_watch_history(self.history, remote, self.history.capacity)
        self.history = WatchHistory(merged, self.history.capacity)
        self._recompute()

    def progress_for(self, item_id: int, kind: MediaKind | str, episode_id: int | None = None) -> float:
        return self.history.progress_for((MediaKind(kind), int(item_id)), episode_id)

    def recently_watched(self, count: int = RECENTLY_WATCHED_EXCLUSION) -> set[ItemKey]:
        return self.history.recent_keys(count)

    def continue_watching(self) -> list[WatchHistoryEntry]:
        return self.history.continue_watching()

    # Watchlist

    @property
    def watchlist(self) -> list[WatchlistItem]:
        return list(self._watchlist)

    def in_watchlist(self, item_id: int, kind: MediaKind | str) -> bool:
        key = (MediaKind(kind), int(item_id))
        return any(w.key == key for w in self._watchlist)

    def add_to_watchlist(self, item_id: int, kind: MediaKind | str, genre_ids: Iterable[int] = ()) -> bool:
        """Add once; returns False when the item was already listed."""
        if self.in_watchlist(item_id, kind):
            return False
        self._watchlist.append(WatchlistItem(int(item_id), MediaKind(kind), datetime.now()))
        self.track(item_id, kind, Action.ADD_WATCHLIST, genre_ids)
        return True

    def remove_from_watchlist(self, item_id: int, kind: MediaKind | str) -> bool:
        if not self.in_watchlist(item_id, kind):
            return False
        key = (MediaKind(kind), int(item_id))
        self._watchlist = [w for w in self._watchlist if w.key != key]
        self.track(item_id, kind, Action.REMOVE_WATCHLIST)
        return True

    def mark_completed(
        self,
        item_id: int,
        kind: MediaKind | str,
        genre_ids: Iterable[int] = (),
        title: str | None = None,
    ) -> InteractionEvent:
        return self.track(item_id, kind, Action.COMPLETE, genre_ids, title=title)

    def mark_abandoned(self, item_id: int, kind: MediaKind | str, genre_ids: Iterable[int] = ()) -> InteractionEvent:
        return self.track(item_id, kind, Action.ABANDON, genre_ids)

    # Persistence

    def _key(self, part: str) -> str:
        return f"activity:{self.user}:{part}"

    def save(self, store: KeyValueStore) -> None:
        """Persist raw state. Preferences are derived and never stored."""
        store.set(self._key("interactions"), [e.to_dict() for e in self.interactions])
        store.set(self._key("history"), [e.to_dict() for e in self.history])
        store.set(self._key("watchlist"), [
            {"item_id": w.item_id, "kind": w.kind.value, "added_at": w.added_at.isoformat()}
            for w in self._watchlist
        ])

    @classmethod
    def load(cls, store: KeyValueStore, user: str = DEFAULT_USER) -> "ActivityTracker":
        tracker = cls(user)
        events = [InteractionEvent.from_dict(d) for d in store.get(tracker._key("interactions"), [])]
        entries = [WatchHistoryEntry.from_dict(d) for d in store.get(tracker._key("history"), [])]
        watchlist = [
            WatchlistItem(int(d["item_id"]), MediaKind(d["kind"]), parse_timestamp(d["added_at"]))
            for d in store.get(tracker._key("watchlist"), [])
        ]
        tracker.interactions = InteractionLog(events)
        tracker.history = WatchHistory(entries)
        tracker._watchlist = watchlist
        tracker._recompute()
        logger.debug(f"[{user}] Loaded {len(events)} interactions, {len(entries)} history, {len(watchlist)} watchlist")
        return tracker
