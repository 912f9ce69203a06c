"""
Personalized home feed composition.

`FeedComposer` turns a preference snapshot plus candidate pools into the
named feed sections and the hero pick. Sections are built concurrently and
independently; a section that comes back empty, or whose builder fails, is
left out of the feed.
"""
import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import numpy as np

from .candidates import CandidateAggregator
from .config import (
    TOP_PICKS_LIMIT,
    BECAUSE_YOU_WATCHED_LIMIT,
    TRENDING_IN_GENRE_LIMIT,
    HIDDEN_GEMS_LIMIT,
    HIDDEN_GEMS_GENRES,
    RECENTLY_WATCHED_EXCLUSION,
    FALLBACK_GENRE_LABEL,
    HERO_PREFERENCE_WEIGHT,
    HERO_RATING_WEIGHT,
    HERO_POPULARITY_DIVISOR,
    HERO_POPULARITY_CAP,
    HERO_TIME_MATCH_BONUS,
    HERO_HIGH_RATING,
    HERO_HIGH_RATING_BONUS,
    HERO_BACKDROP_BONUS,
    HERO_OVERVIEW_BONUS,
    HERO_OVERVIEW_RANGE,
    HERO_RECENT_EXCLUSION,
    HERO_TOP_CANDIDATES,
    TIME_OF_DAY_GENRES,
    MORNING_HOURS,
    AFTERNOON_HOURS,
)
from .interactions import WatchHistory
from .models import (
    Action,
    ContentItem,
    InteractionEvent,
    MediaKind,
    UserPreferences,
    WatchHistoryEntry,
)
from .recommender import Recommendation, ScoringEngine, genre_name
from .settings import SettingsStore
from .utils import clamp

if TYPE_CHECKING:
    from .tracker import ActivityTracker

logger = logging.getLogger(__name__)


@dataclass
class FeedEntry:
    item: ContentItem
    score: int
    reasons: list[str]
    rank: int


@dataclass
class FeedSection:
    key: str
    title: str
    entries: list[FeedEntry]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class HeroPick:
    item: ContentItem
    kind: MediaKind
    pinned: bool = False


@dataclass
class Feed:
    hero: HeroPick | None = None
    sections: list[FeedSection] = field(default_factory=list)
    continue_watching: list[WatchHistoryEntry] = field(default_factory=list)

    def section(self, key: str) -> FeedSection | None:
        return next((s for s in self.sections if s.key == key), None)


def _entries(ranked: Sequence[Recommendation], limit: int) -> list[FeedEntry]:
    return [
        FeedEntry(item=rec.item, score=rec.score.score, reasons=list(rec.score.reasons), rank=i)
        for i, rec in enumerate(ranked[:limit], start=1)
    ]


def time_of_day_genres(now: datetime) -> list[int]:
    """Genres favoured at this moment: weekend first, then by hour of the day."""
    if now.weekday() >= 5:
        return TIME_OF_DAY_GENRES['weekend']
    if MORNING_HOURS[0] <= now.hour < MORNING_HOURS[1]:
        return TIME_OF_DAY_GENRES['morning']
    if AFTERNOON_HOURS[0] <= now.hour < AFTERNOON_HOURS[1]:
        return TIME_OF_DAY_GENRES['afternoon']
    return TIME_OF_DAY_GENRES['evening']


def hero_score(
    item: ContentItem,
    preferences: UserPreferences,
    time_genres: Iterable[int],
    engine: ScoringEngine,
    now: datetime | None = None,
) -> float:
    """
    Suitability of an item for the hero slot, 0-100.

    Users with genre affinities get 60% of the composite recommendation score;
    new users get a rating + popularity heuristic instead. Time-of-day genre
    matches and presentation bonuses (rating, backdrop, overview length) are
    added on top.
    """
    if preferences.has_affinity_data:
        score = engine.score(item, preferences, now).score * HERO_PREFERENCE_WEIGHT
    else:
        score = item.vote_average / 10 * HERO_RATING_WEIGHT
        score += min(item.popularity / HERO_POPULARITY_DIVISOR, HERO_POPULARITY_CAP)

    time_genres = set(time_genres)
    score += sum(HERO_TIME_MATCH_BONUS for g in item.genre_ids if g in time_genres)

    if item.vote_average >= HERO_HIGH_RATING:
        score += HERO_HIGH_RATING_BONUS
    if item.has_backdrop:
        score += HERO_BACKDROP_BONUS
    low, high = HERO_OVERVIEW_RANGE
    if low <= len(item.overview) < high:
        score += HERO_OVERVIEW_BONUS

    return clamp(score, 0, 100)


class FeedComposer:
    """Builds the personalized feed from a read-only preference snapshot."""

    def __init__(
        self,
        aggregator: CandidateAggregator,
        settings: SettingsStore | None = None,
        scoring_engine: ScoringEngine | None = None,
        rng: np.random.Generator | None = None,
    ):
        self.aggregator = aggregator
        self.settings = settings
        self.rng = rng if rng is not None else np.random.default_rng()
        self.engine = scoring_engine or ScoringEngine(rng=self.rng)

    async def top_picks(
        self,
        preferences: UserPreferences,
        watched: set,
        now: datetime | None = None,
    ) -> FeedSection:
        top = preferences.top_genres(1)
        pools = await self.aggregator.top_picks(top[0] if top else None, watched)
        pool = pools[MediaKind.MOVIE] + pools[MediaKind.SHOW]
        ranked = self.engine.score_and_sort(pool, preferences, now)
        return FeedSection("top_picks", "Top Picks For You", _entries(ranked, TOP_PICKS_LIMIT))

    async def because_you_watched(
        self,
        preferences: UserPreferences,
        interactions: Sequence[InteractionEvent],
        watched: set,
        now: datetime | None = None,
    ) -> FeedSection | None:
        """Seeded by the most recent completed title; None when there is no seed."""
        seed = next(
            (e for e in interactions if e.action is Action.COMPLETE and e.title),
            None,
        )
        if seed is None:
            logger.debug("No completed title to seed 'Because You Watched'")
            return None

        pool = await self.aggregator.because_you_watched(seed.kind, seed.item_id, watched)
        ranked = self.engine.score_and_sort(pool, preferences, now)
        return FeedSection(
            "because_you_watched",
            f"Because You Watched {seed.title}",
            _entries(ranked, BECAUSE_YOU_WATCHED_LIMIT),
        )

    async def trending_in_genre(
        self,
        preferences: UserPreferences,
        watched: set,
        now: datetime | None = None,
    ) -> FeedSection:
        top = preferences.top_genres(1)
        if not top:
            return FeedSection("trending_in_genre", f"Trending in {FALLBACK_GENRE_LABEL}", [])

        genre_id = top[0]
        pool = await self.aggregator.trending_in_genre(genre_id, MediaKind.MOVIE, watched)
        ranked = self.engine.score_and_sort(pool, preferences, now)
        return FeedSection(
            "trending_in_genre",
            f"Trending in {genre_name(genre_id, FALLBACK_GENRE_LABEL)}",
            _entries(ranked, TRENDING_IN_GENRE_LIMIT),
        )

    async def hidden_gems(
        self,
        preferences: UserPreferences,
        watched: set,
        now: datetime | None = None,
    ) -> FeedSection:
        pool = await self.aggregator.hidden_gems(preferences.top_genres(HIDDEN_GEMS_GENRES), watched)
        ranked = self.engine.score_and_sort(pool, preferences, now)
        return FeedSection("hidden_gems", "Hidden Gems For You", _entries(ranked, HIDDEN_GEMS_LIMIT))

    async def smart_hero(
        self,
        preferences: UserPreferences,
        history: WatchHistory,
        now: datetime | None = None,
    ) -> HeroPick | None:
        """
        Pick the single hero item.

        A pinned featured item always wins while it resolves. Otherwise
        trending candidates with a backdrop that were not among the last 10
        watched are scored, and one of the top 5 is picked at random.
        """
        featured = self.settings.get_featured() if self.settings else None
        if featured is not None:
            item_id, kind = featured
            item = await self.aggregator.resolve(item_id, kind)
            if item is not None:
                logger.debug(f"Hero pinned to {item.kind.value}/{item.id}")
                return HeroPick(item, item.kind, pinned=True)
            logger.warning(f"Featured item {item_id} could not be resolved; using smart selection")

        now = now or datetime.now()
        recent = history.recent_keys(HERO_RECENT_EXCLUSION)
        candidates = [
            item for item in await self.aggregator.hero_candidates(recent)
            if item.has_backdrop
        ]
        if not candidates:
            logger.debug("No hero candidates available")
            return None

        time_genres = time_of_day_genres(now)
        scored = [(item, hero_score(item, preferences, time_genres, self.engine, now)) for item in candidates]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        top = scored[:HERO_TOP_CANDIDATES]
        item, score = top[int(self.rng.integers(len(top)))]
        logger.debug(f"Hero: {item.kind.value}/{item.id} '{item.title}' (score {score:.1f} of top {len(top)})")
        return HeroPick(item, item.kind)

    async def compose(
        self,
        preferences: UserPreferences,
        interactions: Sequence[InteractionEvent],
        history: WatchHistory,
        now: datetime | None = None,
    ) -> Feed:
        """
        Build the whole feed against one preference snapshot.

        `interactions` is newest first. The 20 most recently watched titles
        are excluded from every section.
        """
        now = now or datetime.now()
        watched = history.recent_keys(RECENTLY_WATCHED_EXCLUSION)

        builders = [
            ("top_picks", self.top_picks(preferences, watched, now)),
            ("because_you_watched", self.because_you_watched(preferences, interactions, watched, now)),
            ("trending_in_genre", self.trending_in_genre(preferences, watched, now)),
            ("hidden_gems", self.hidden_gems(preferences, watched, now)),
            ("hero", self.smart_hero(preferences, history, now)),
        ]
        results = await asyncio.gather(*(coro for _, coro in builders), return_exceptions=True)

        feed = Feed(continue_watching=history.continue_watching())
        for (name, _), result in zip(builders, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Feed section {name} failed: {type(result).__name__}: {result}")
                continue
            if name == "hero":
                feed.hero = result
            elif result is not None and result.entries:
                feed.sections.append(result)
            else:
                logger.debug(f"Section {name} is empty; omitted")

        logger.debug(
            f"Composed feed: {len(feed.sections)} sections, hero={'yes' if feed.hero else 'no'}, "
            f"{len(feed.continue_watching)} in progress"
        )
        return feed


class FeedSession:
    """
    Keeps the last published feed for one tracker.

    A refresh only publishes when no newer refresh was started while it ran
    and the tracker's preferences were not recomputed in the meantime; stale
    results are dropped and the previous feed is kept.
    """

    def __init__(self, tracker: "ActivityTracker", composer: FeedComposer):
        self.tracker = tracker
        self.composer = composer
        self.feed: Feed | None = None
        self._generation = 0

    async def refresh(self, now: datetime | None = None) -> Feed | None:
        self._generation += 1
        generation = self._generation
        snapshot = self.tracker.preferences

        feed = await self.composer.compose(
            snapshot,
            self.tracker.interactions.events,
            WatchHistory(self.tracker.history.entries),
            now,
        )

        if generation != self._generation or self.tracker.preferences is not snapshot:
            logger.debug(f"Discarding stale feed (generation {generation}, current {self._generation})")
            return None

        self.feed = feed
        return feed
