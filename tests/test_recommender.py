from datetime import date, datetime, timedelta

import numpy as np
import pytest

from muvi_rec.models import CompletedItem, MediaKind, UserPreferences
from muvi_rec.recommender import (
    ScoringEngine,
    build_reasons,
    genre_match_score,
    match_percentage,
    popularity_score,
    primary_reason,
    recency_score,
    serendipity_bonus,
    similarity_score,
)

from conftest import FixedRng, make_item

NOW = datetime(2024, 6, 1, 12, 0)


def _released(days_ago: int) -> date:
    return (NOW - timedelta(days=days_ago)).date()


def test_genre_match_averages_with_neutral_default():
    prefs = UserPreferences(genre_affinities={18: 90, 28: 70})
    assert genre_match_score([18, 28], prefs) == 80
    # unmatched genre counts as 50
    assert genre_match_score([18, 99], prefs) == 70
    assert genre_match_score([], prefs) == 50


def test_popularity_is_log_compressed_and_capped():
    assert popularity_score(0) == 0
    assert popularity_score(9) == 25
    assert popularity_score(99) == 50
    assert popularity_score(999999) == 100

    values = [popularity_score(p) for p in (0, 1, 5, 10, 50, 100, 1000, 5000, 10000, 1e6)]
    assert values == sorted(values)
    assert max(values) == 100


@pytest.mark.parametrize(
    "days_ago,expected",
    [
        (15, 100),
        (60, 90),
        (120, 80),
        (240, 70),
        (540, 60),
        (900, 50),
        (2400, 40),
    ],
)
def test_recency_staircase(days_ago, expected):
    assert recency_score(_released(days_ago), NOW) == expected


def test_recency_edges():
    assert recency_score(None, NOW) == 50
    # future releases count as brand new
    assert recency_score(_released(-30), NOW) == 100
    # exactly 3 months (90 days) falls into the next step
    assert recency_score(_released(90), NOW) == 80


def test_similarity_overlap_ratio():
    recent = [CompletedItem(1, MediaKind.MOVIE, (18, 80)), CompletedItem(2, MediaKind.SHOW, (35,))]
    assert similarity_score([18, 35], recent) == 100
    assert similarity_score([18, 28, 27, 53], recent) == 25
    assert similarity_score([28], recent) == 0
    assert similarity_score([], recent) == 50
    assert similarity_score([18], []) == 50


def test_serendipity_favours_unexplored_genres():
    rng = FixedRng(uniform_value=10.0)
    assert serendipity_bonus(100, rng) == 10
    assert serendipity_bonus(50, rng) == 25
    assert serendipity_bonus(0, rng) == 40


def test_serendipity_stays_in_range_with_real_generator():
    rng = np.random.default_rng(7)
    bonuses = [serendipity_bonus(60, rng) for _ in range(200)]
    assert min(bonuses) >= 12
    assert max(bonuses) <= 32


def test_reasons_in_priority_order():
    prefs = UserPreferences(
        genre_affinities={18: 90, 80: 80, 53: 75},
        recently_completed=[CompletedItem(9, MediaKind.MOVIE, (18, 80, 53))],
    )
    item = make_item(1, genres=(18, 80, 53), popularity=5000, released=_released(10))
    reasons = build_reasons(item, prefs, genre_match=82, recency=100, popularity=92, similarity=100)
    assert reasons == [
        "Matches your taste in Drama & Crime",
        "Recently released",
        "Trending now",
        "Similar to what you watched",
    ]


def test_genre_reason_needs_named_liked_genres():
    prefs = UserPreferences(genre_affinities={18: 55, 424242: 95})
    item = make_item(1, genres=(18, 424242))
    assert build_reasons(item, prefs, genre_match=75, recency=0, popularity=0, similarity=0) == []


def test_score_combines_weighted_components():
    prefs = UserPreferences(genre_affinities={18: 80})
    item = make_item(1, genres=(18,), popularity=99, released=_released(15))
    result = ScoringEngine(rng=FixedRng(0.0)).score(item, prefs, NOW)

    assert result.genre_match == 80
    assert result.popularity_boost == 50
    assert result.recency_boost == 100
    assert result.similarity_score == 50
    assert result.serendipity_bonus == 6
    # 80*.35 + 50*.2 + 100*.15 + 50*.2 + 6*.1 = 63.6
    assert result.score == 64
    assert result.item_id == 1
    assert result.kind is MediaKind.MOVIE


def test_score_is_bounded():
    prefs = UserPreferences(
        genre_affinities={18: 100},
        recently_completed=[CompletedItem(9, MediaKind.MOVIE, (18,))],
    )
    item = make_item(1, genres=(18,), popularity=1e9, released=_released(1))
    engine = ScoringEngine(rng=np.random.default_rng(0))
    for _ in range(50):
        assert 0 <= engine.score(item, prefs, NOW).score <= 100


def test_score_and_sort_is_stable_for_ties():
    prefs = UserPreferences()
    items = [make_item(i, genres=(18,), popularity=10, released=_released(400)) for i in range(10)]
    ranked = ScoringEngine(rng=FixedRng(5.0)).score_and_sort(items, prefs, NOW)

    assert len({rec.composite for rec in ranked}) == 1
    assert [rec.item.id for rec in ranked] == list(range(10))


def test_score_and_sort_orders_by_composite():
    prefs = UserPreferences(genre_affinities={18: 100, 27: 0})
    liked = make_item(1, genres=(18,), popularity=500)
    disliked = make_item(2, genres=(27,), popularity=500)
    ranked = ScoringEngine(rng=FixedRng(0.0)).score_and_sort([disliked, liked], prefs, NOW)
    assert [rec.item.id for rec in ranked] == [1, 2]


def test_display_helpers():
    prefs = UserPreferences()
    plain = make_item(1, popularity=1, released=date(1990, 1, 1))
    engine = ScoringEngine(rng=FixedRng(0.0))
    assert primary_reason(plain, prefs, engine) == "Popular choice"
    assert 0 <= match_percentage(plain, prefs, engine) <= 100

    hot = make_item(2, popularity=10000, released=date(1990, 1, 1))
    assert primary_reason(hot, prefs, engine) == "Trending now"
