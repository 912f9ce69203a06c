from datetime import datetime, timedelta

from muvi_rec.models import Action, InteractionEvent, MediaKind, WatchHistoryEntry
from muvi_rec.profile import recompute_preferences

NOW = datetime(2024, 6, 1, 12, 0)


def _event(action, genres=(), kind=MediaKind.MOVIE, progress=None, item_id=1):
    return InteractionEvent(item_id, kind, Action(action), NOW, tuple(genres), progress)


def test_empty_inputs_give_neutral_preferences():
    prefs = recompute_preferences([], [], now=NOW)
    assert prefs.genre_affinities == {}
    assert prefs.content_type_balance == 50
    assert prefs.avg_completion_rate == 0
    assert prefs.recently_completed == []
    assert prefs.last_updated == NOW


def test_single_completed_show():
    prefs = recompute_preferences([_event("complete", [18], kind=MediaKind.SHOW)], [])
    assert prefs.content_type_balance == 100
    assert prefs.avg_completion_rate == 100
    assert prefs.genre_affinities == {18: 60}


def test_complete_adds_full_weight_to_every_genre():
    before = recompute_preferences([_event("view", [28, 35])], [])
    after = recompute_preferences([_event("complete", [28, 35]), _event("view", [28, 35])], [])

    assert after.genre_affinities[28] - before.genre_affinities[28] == 10
    assert after.genre_affinities[35] - before.genre_affinities[35] == 10


def test_affinities_are_clamped():
    many_completes = [_event("complete", [18])] * 20
    many_abandons = [_event("abandon", [27])] * 30
    prefs = recompute_preferences(many_completes + many_abandons, [])
    assert prefs.genre_affinities[18] == 100
    assert prefs.genre_affinities[27] == 0


def test_negative_actions_lower_affinity():
    prefs = recompute_preferences([_event("remove_watchlist", [10749]), _event("abandon", [10749])], [])
    assert prefs.genre_affinities[10749] == 45


def test_balance_counts_only_complete_and_progress():
    events = [
        _event("complete", kind=MediaKind.SHOW),
        _event("watch_progress", kind=MediaKind.MOVIE, progress=40),
        _event("watch_progress", kind=MediaKind.MOVIE, progress=60),
        _event("view", kind=MediaKind.SHOW),
        _event("watch_start", kind=MediaKind.SHOW, progress=5),
    ]
    prefs = recompute_preferences(events, [])
    # 1 show vs 2 movies
    assert prefs.content_type_balance == 33


def test_completion_rate_averages_complete_and_progress():
    events = [
        _event("complete"),
        _event("watch_progress", progress=50),
        _event("abandon", progress=15),
        _event("view"),
    ]
    prefs = recompute_preferences(events, [])
    assert prefs.avg_completion_rate == 55  # (100 + 50 + 15) / 3


def test_recently_completed_takes_first_20_finished_entries():
    history = [
        WatchHistoryEntry(i, MediaKind.MOVIE, 95 if i % 2 == 0 else 50, NOW - timedelta(hours=i), genre_ids=(i,))
        for i in range(60)
    ]
    prefs = recompute_preferences([], history)

    assert len(prefs.recently_completed) == 20
    assert [c.item_id for c in prefs.recently_completed[:3]] == [0, 2, 4]
    assert prefs.recently_completed[1].genre_ids == (2,)


def test_recompute_is_pure():
    events = [_event("complete", [18]), _event("view", [35])]
    first = recompute_preferences(events, [], now=NOW)
    second = recompute_preferences(events, [], now=NOW)
    assert first == second
