"""
Bounded, newest-first containers for user behaviour.

Both containers keep the most recent item at index 0 and evict from the tail
once they reach capacity. Eviction is positional (insertion order), never by
timestamp.
"""
import logging
from collections.abc import Iterable, Iterator

from .config import (
    INTERACTION_LOG_CAPACITY,
    WATCH_HISTORY_CAPACITY,
    CONTINUE_WATCHING_MIN,
    CONTINUE_WATCHING_MAX,
    CONTINUE_WATCHING_LIMIT,
)
from .models import InteractionEvent, ItemKey, WatchHistoryEntry

logger = logging.getLogger(__name__)


class InteractionLog:
    """Append-at-head log of interaction events, capped at `capacity`."""

    def __init__(self, events: Iterable[InteractionEvent] = (), capacity: int = INTERACTION_LOG_CAPACITY):
        self.capacity = capacity
        self._events: list[InteractionEvent] = list(events)[:capacity]

    def append(self, event: InteractionEvent) -> None:
        self._events.insert(0, event)
        if len(self._events) > self.capacity:
            del self._events[self.capacity:]

    @property
    def events(self) -> list[InteractionEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[InteractionEvent]:
        return iter(list(self._events))


class WatchHistory:
    """
    Newest-first watch history deduplicated by (kind, item_id, episode_id).

    Adding an entry whose key is already present removes the old entry and
    puts the new one at the head.
    """

    def __init__(self, entries: Iterable[WatchHistoryEntry] = (), capacity: int = WATCH_HISTORY_CAPACITY):
        self.capacity = capacity
        self._entries: list[WatchHistoryEntry] = list(entries)[:capacity]

    def add(self, entry: WatchHistoryEntry) -> None:
        self._entries = [e for e in self._entries if e.key != entry.key]
        self._entries.insert(0, entry)
        del self._entries[self.capacity:]

    def clear(self) -> None:
        self._entries = []

    def progress_for(self, item_key: ItemKey, episode_id: int | None = None) -> float:
        kind, item_id = item_key
        for entry in self._entries:
            if entry.key == (kind, item_id, episode_id):
                return entry.progress
        return 0

    def recent_keys(self, count: int) -> set[ItemKey]:
        """(kind, id) of the `count` most recent entries."""
        return {entry.item_key for entry in self._entries[:count]}

    def continue_watching(self) -> list[WatchHistoryEntry]:
        """Partially watched entries, most recently watched first."""
        in_progress = [
            e for e in self._entries
            if CONTINUE_WATCHING_MIN < e.progress < CONTINUE_WATCHING_MAX
        ]
        in_progress.sort(key=lambda e: e.watched_at, reverse=True)
        return in_progress[:CONTINUE_WATCHING_LIMIT]

    @property
    def entries(self) -> list[WatchHistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[WatchHistoryEntry]:
        return iter(list(self._entries))


def merge_watch_history(
    local: Iterable[WatchHistoryEntry],
    remote: Iterable[WatchHistoryEntry],
    capacity: int = WATCH_HISTORY_CAPACITY,
) -> list[WatchHistoryEntry]:
    """
    Last-write-wins merge of two histories.

    Entries are matched on (kind, item_id, episode_id); the one with the later
    watched_at survives (local wins ties). Output is newest first and capped.
    """
    merged: dict[tuple, WatchHistoryEntry] = {}
    for entry in local:
        merged.setdefault(entry.key, entry)

    replaced = 0
    for entry in remote:
        existing = merged.get(entry.key)
        if existing is None or entry.watched_at > existing.watched_at:
            if existing is not None:
                replaced += 1
            merged[entry.key] = entry

    if replaced:
        logger.debug(f"History merge: {replaced} local entries superseded by newer remote writes")

    return sorted(merged.values(), key=lambda e: e.watched_at, reverse=True)[:capacity]
