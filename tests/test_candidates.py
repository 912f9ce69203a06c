import asyncio

from muvi_rec.candidates import CandidateAggregator, exclude_watched, merge_pools
from muvi_rec.models import MediaKind

from conftest import FakeCatalog, make_item

MOVIE = MediaKind.MOVIE
SHOW = MediaKind.SHOW


def test_merge_pools_keeps_first_occurrence():
    first = make_item(42, title="first")
    dup = make_item(42, title="second")
    merged = merge_pools([first, make_item(1)], [dup, make_item(2)])

    assert [i.id for i in merged] == [42, 1, 2]
    assert [i for i in merged if i.id == 42][0].title == "first"


def test_merge_pools_separates_kinds():
    merged = merge_pools([make_item(42, MOVIE)], [make_item(42, SHOW)])
    assert len(merged) == 2


def test_exclude_watched_matches_kind_and_id():
    pool = [make_item(1, MOVIE), make_item(1, SHOW), make_item(2, MOVIE)]
    kept = exclude_watched(pool, {(MOVIE, 1)})
    assert [(i.kind, i.id) for i in kept] == [(SHOW, 1), (MOVIE, 2)]


def test_top_picks_merges_genre_and_trending_per_kind():
    provider = FakeCatalog(
        discover={(MOVIE, 18): [make_item(1), make_item(2)], (SHOW, 18): [make_item(10, SHOW)]},
        trending={MOVIE: [make_item(2), make_item(3)], SHOW: [make_item(11, SHOW)]},
    )
    pools = asyncio.run(CandidateAggregator(provider).top_picks(18, {(MOVIE, 3)}))

    assert [i.id for i in pools[MOVIE]] == [1, 2]
    assert [i.id for i in pools[SHOW]] == [10, 11]


def test_top_picks_without_genre_uses_trending_only():
    provider = FakeCatalog(trending={MOVIE: [make_item(1)], SHOW: [make_item(5, SHOW)]})
    pools = asyncio.run(CandidateAggregator(provider).top_picks(None))

    assert [i.id for i in pools[MOVIE]] == [1]
    assert [i.id for i in pools[SHOW]] == [5]
    assert not any(call[0] == "discover" for call in provider.calls)


def test_failing_call_degrades_to_empty_without_hurting_siblings():
    provider = FakeCatalog(
        discover={(MOVIE, 18): RuntimeError("upstream down"), (SHOW, 18): [make_item(10, SHOW)]},
        trending={MOVIE: [make_item(3)], SHOW: ConnectionError("reset")},
    )
    pools = asyncio.run(CandidateAggregator(provider).top_picks(18))

    assert [i.id for i in pools[MOVIE]] == [3]
    assert [i.id for i in pools[SHOW]] == [10]


def test_slow_call_times_out_to_empty():
    class SlowCatalog(FakeCatalog):
        async def trending(self, kind, window="week"):
            if kind is SHOW:
                await asyncio.sleep(5)
            return [make_item(1)]

    pools = asyncio.run(CandidateAggregator(SlowCatalog(), timeout=0.05).top_picks(None))
    assert [i.id for i in pools[MOVIE]] == [1]
    assert pools[SHOW] == []


def test_because_you_watched_prefers_recommendations():
    provider = FakeCatalog(
        recommendations={(SHOW, 7): [make_item(1, SHOW)]},
        similar={(SHOW, 7): [make_item(2, SHOW)]},
    )
    pool = asyncio.run(CandidateAggregator(provider).because_you_watched(SHOW, 7))

    assert [i.id for i in pool] == [1]
    assert ("similar", SHOW, 7) not in provider.calls


def test_because_you_watched_falls_back_to_similar():
    provider = FakeCatalog(
        recommendations={(MOVIE, 7): RuntimeError("boom")},
        similar={(MOVIE, 7): [make_item(2), make_item(3)]},
    )
    pool = asyncio.run(CandidateAggregator(provider).because_you_watched(MOVIE, 7, {(MOVIE, 3)}))
    assert [i.id for i in pool] == [2]


def test_hidden_gems_queries_both_kinds_with_bands():
    provider = FakeCatalog(gems={MOVIE: [make_item(1)], SHOW: [make_item(1, SHOW)]})
    pool = asyncio.run(CandidateAggregator(provider).hidden_gems([18, 80, 35]))

    assert {(i.kind, i.id) for i in pool} == {(MOVIE, 1), (SHOW, 1)}
    gem_calls = {call[1]: call for call in provider.calls if call[0] == "gems"}
    assert gem_calls[MOVIE][2:] == ((18, 80, 35), 7.5, (100, 1000))
    assert gem_calls[SHOW][2:] == ((18, 80, 35), 7.5, (50, 500))


def test_resolve_tries_movie_then_show():
    show = make_item(99, SHOW)
    provider = FakeCatalog(details={(SHOW, 99): show})
    aggregator = CandidateAggregator(provider)

    assert asyncio.run(aggregator.resolve(99)) == show
    assert [c for c in provider.calls if c[0] == "details"] == [("details", MOVIE, 99), ("details", SHOW, 99)]
    assert asyncio.run(aggregator.resolve(12345)) is None


def test_resolve_with_kind_only_asks_that_kind():
    provider = FakeCatalog(details={(MOVIE, 5): make_item(5)})
    assert asyncio.run(CandidateAggregator(provider).resolve(5, SHOW)) is None
    assert provider.calls == [("details", SHOW, 5)]
