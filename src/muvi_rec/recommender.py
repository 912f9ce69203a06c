from dataclasses import dataclass
from datetime import date, datetime
from collections.abc import Iterable
import logging
import math

import numpy as np

from .models import CompletedItem, ContentItem, RecommendationScore, UserPreferences
from .utils import clamp, round_half_up
from .config import (
    SCORING_WEIGHTS,
    NEUTRAL_SCORE,
    POPULARITY_LOG_SCALE,
    SERENDIPITY_EXPLORATION_FACTOR,
    SERENDIPITY_RANDOM_MAX,
    DAYS_PER_MONTH,
    RECENCY_STEPS,
    RECENCY_FLOOR,
    REASON_GENRE_MATCH,
    REASON_GENRE_AFFINITY,
    REASON_MAX_GENRES,
    REASON_RECENCY,
    REASON_POPULARITY,
    REASON_SIMILARITY,
    DEFAULT_REASON,
    GENRE_NAMES,
)

logger = logging.getLogger(__name__)


def genre_name(genre_id: int, default: str | None = None) -> str | None:
    return GENRE_NAMES.get(genre_id, default)


def genre_match_score(genre_ids: Iterable[int], preferences: UserPreferences) -> int:
    """
    Average affinity over the item's genres.

    Genres the user has never touched count as neutral (50), so a single
    strong genre on a five-genre item is diluted rather than taken at face
    value. Items without genres are neutral.
    """
    genre_ids = list(genre_ids)
    if not genre_ids:
        return NEUTRAL_SCORE
    total = sum(preferences.affinity(g, NEUTRAL_SCORE) for g in genre_ids)
    return round_half_up(total / len(genre_ids))


def popularity_score(popularity: float) -> int:
    # TMDB popularity runs from ~0 to 10000+; log10 keeps the top end from dominating
    return min(100, round_half_up(math.log10(max(popularity, 0) + 1) * POPULARITY_LOG_SCALE))


def recency_score(release_date: date | None, now: datetime | None = None) -> int:
    """Staircase over months since release; unknown dates are neutral."""
    if release_date is None:
        return NEUTRAL_SCORE

    today = (now or datetime.now()).date()
    months = (today - release_date).days / DAYS_PER_MONTH
    for upper_bound, score in RECENCY_STEPS:
        if months < upper_bound:
            return score
    return RECENCY_FLOOR


def similarity_score(genre_ids: Iterable[int], recently_completed: Iterable[CompletedItem]) -> int:
    """
    Share of the item's genres seen in recently completed titles, 0-100.

    Neutral (50) when either side is empty; the two cases are not told apart.
    """
    genre_ids = list(genre_ids)
    recent_genres = {g for completed in recently_completed for g in completed.genre_ids}
    if not genre_ids or not recent_genres:
        return NEUTRAL_SCORE

    overlap = sum(1 for g in genre_ids if g in recent_genres)
    return round_half_up(overlap / len(genre_ids) * 100)


def serendipity_bonus(genre_match: int, rng: np.random.Generator) -> int:
    """Exploration bonus: larger for genres outside the comfort zone, plus noise."""
    exploration = (100 - genre_match) * SERENDIPITY_EXPLORATION_FACTOR
    return round_half_up(exploration + rng.uniform(0, SERENDIPITY_RANDOM_MAX))


def build_reasons(
    item: ContentItem,
    preferences: UserPreferences,
    genre_match: int,
    recency: int,
    popularity: int,
    similarity: int,
) -> list[str]:
    """Human-readable justifications, in fixed priority order. Not exclusive."""
    reasons = []
    if genre_match >= REASON_GENRE_MATCH:
        liked = [
            genre_name(g) for g in item.genre_ids
            if preferences.affinity(g, 0) >= REASON_GENRE_AFFINITY and genre_name(g)
        ]
        if liked:
            reasons.append(f"Matches your taste in {' & '.join(liked[:REASON_MAX_GENRES])}")
    if recency >= REASON_RECENCY:
        reasons.append("Recently released")
    if popularity >= REASON_POPULARITY:
        reasons.append("Trending now")
    if similarity >= REASON_SIMILARITY:
        reasons.append("Similar to what you watched")
    return reasons


@dataclass
class Recommendation:
    item: ContentItem
    score: RecommendationScore

    @property
    def composite(self) -> int:
        return self.score.score

    @property
    def reasons(self) -> list[str]:
        return self.score.reasons


class ScoringEngine:
    """
    Weighted blend of five sub-scores into one 0-100 ranking value.

    The serendipity component draws from `rng`, so repeated scoring of the
    same item is not guaranteed to agree. Pass a seeded generator for
    reproducible output.
    """

    def __init__(self, rng: np.random.Generator | None = None, weights: dict[str, float] | None = None):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.weights = dict(weights or SCORING_WEIGHTS)

    def score(
        self,
        item: ContentItem,
        preferences: UserPreferences,
        now: datetime | None = None,
    ) -> RecommendationScore:
        genre_match = genre_match_score(item.genre_ids, preferences)
        popularity = popularity_score(item.popularity)
        recency = recency_score(item.release_date, now)
        similarity = similarity_score(item.genre_ids, preferences.recently_completed)
        serendipity = serendipity_bonus(genre_match, self.rng)

        weighted = (
            genre_match * self.weights['genre_match']
            + popularity * self.weights['popularity']
            + recency * self.weights['recency']
            + similarity * self.weights['similarity']
            + serendipity * self.weights['serendipity']
        )

        return RecommendationScore(
            item_id=item.id,
            kind=item.kind,
            score=int(clamp(round_half_up(weighted), 0, 100)),
            reasons=build_reasons(item, preferences, genre_match, recency, popularity, similarity),
            genre_match=genre_match,
            popularity_boost=popularity,
            recency_boost=recency,
            similarity_score=similarity,
            serendipity_bonus=serendipity,
        )

    def score_and_sort(
        self,
        items: Iterable[ContentItem],
        preferences: UserPreferences,
        now: datetime | None = None,
    ) -> list[Recommendation]:
        """Score every item, highest first. Equal scores keep input order."""
        scored = [Recommendation(item, self.score(item, preferences, now)) for item in items]
        # sorted() is stable; ties keep their relative input order
        ranked = sorted(scored, key=lambda rec: rec.score.score, reverse=True)
        if ranked:
            logger.debug(
                f"Scored {len(ranked)} items: top={ranked[0].score.score} bottom={ranked[-1].score.score}"
            )
        return ranked


def match_percentage(
    item: ContentItem,
    preferences: UserPreferences,
    engine: ScoringEngine | None = None,
) -> int:
    """Composite score for a '95% Match' style badge."""
    engine = engine or ScoringEngine()
    return engine.score(item, preferences).score


def primary_reason(
    item: ContentItem,
    preferences: UserPreferences,
    engine: ScoringEngine | None = None,
) -> str:
    engine = engine or ScoringEngine()
    reasons = engine.score(item, preferences).reasons
    return reasons[0] if reasons else DEFAULT_REASON
