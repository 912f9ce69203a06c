import logging
from collections.abc import Iterable
from datetime import datetime

from .config import (
    ACTION_WEIGHTS,
    DEFAULT_AFFINITY,
    AFFINITY_MIN,
    AFFINITY_MAX,
    RECENTLY_COMPLETED_LIMIT,
    COMPLETED_PROGRESS_THRESHOLD,
)
from .models import (
    Action,
    CompletedItem,
    InteractionEvent,
    MediaKind,
    UserPreferences,
    WatchHistoryEntry,
)
from .utils import clamp, round_half_up

logger = logging.getLogger(__name__)

# Actions that count towards the movie/show balance
_BALANCE_ACTIONS = {Action.COMPLETE, Action.WATCH_PROGRESS}


def _accumulate_genre_scores(interactions: Iterable[InteractionEvent]) -> dict[int, float]:
    """
    Fold action weights into per-genre scores.

    A genre enters at DEFAULT_AFFINITY the first time it is referenced. Every
    genre on an interaction receives the full action weight.
    """
    scores: dict[int, float] = {}
    for event in interactions:
        weight = ACTION_WEIGHTS.get(event.action.value, 0)
        for genre_id in event.genre_ids:
            scores[genre_id] = scores.get(genre_id, DEFAULT_AFFINITY) + weight
    return {g: clamp(s, AFFINITY_MIN, AFFINITY_MAX) for g, s in scores.items()}


def _content_type_balance(interactions: Iterable[InteractionEvent]) -> int:
    """0 = movie-only, 100 = show-only, 50 when nothing was watched."""
    movies = shows = 0
    for event in interactions:
        if event.action not in _BALANCE_ACTIONS:
            continue
        if event.kind is MediaKind.MOVIE:
            movies += 1
        else:
            shows += 1

    total = movies + shows
    if total == 0:
        return 50
    return round_half_up(shows / total * 100)


def _completion_rate(interactions: Iterable[InteractionEvent]) -> int:
    """
    Average completion over events that say something about completion.

    `complete` counts as 100 whatever its progress; other events contribute
    their recorded progress. Progress of 0 carries no completion signal and is
    skipped.
    """
    total = 0.0
    counted = 0
    for event in interactions:
        if event.action is Action.COMPLETE:
            total += 100
            counted += 1
        elif event.progress:
            total += event.progress
            counted += 1

    return round_half_up(total / counted) if counted else 0


def _recently_completed(watch_history: Iterable[WatchHistoryEntry]) -> list[CompletedItem]:
    completed = []
    for entry in watch_history:
        if entry.progress < COMPLETED_PROGRESS_THRESHOLD:
            continue
        completed.append(CompletedItem(entry.item_id, entry.kind, tuple(entry.genre_ids)))
        if len(completed) >= RECENTLY_COMPLETED_LIMIT:
            break
    return completed


def recompute_preferences(
    interactions: Iterable[InteractionEvent],
    watch_history: Iterable[WatchHistoryEntry],
    now: datetime | None = None,
) -> UserPreferences:
    """
    Derive a fresh UserPreferences from the full interaction log and history.

    Pure function of its inputs: nothing carried over from any previous
    snapshot. Inputs are expected newest first, as the bounded containers
    store them.

    Action weights (added to every genre on the interaction, starting at 50):
    - complete:         +10
    - download:          +6
    - watch_progress:    +5
    - add_watchlist:     +4
    - watch_start:       +3
    - search:            +2
    - view:              +1
    - remove_watchlist:  -2
    - abandon:           -3
    """
    events = list(interactions)
    history = list(watch_history)

    preferences = UserPreferences(
        genre_affinities=_accumulate_genre_scores(events),
        content_type_balance=_content_type_balance(events),
        avg_completion_rate=_completion_rate(events),
        recently_completed=_recently_completed(history),
        last_updated=now or datetime.now(),
    )
    logger.debug(
        f"Recomputed preferences from {len(events)} interactions / {len(history)} history entries: "
        f"{len(preferences.genre_affinities)} genres, balance={preferences.content_type_balance}, "
        f"completion={preferences.avg_completion_rate}"
    )
    return preferences
