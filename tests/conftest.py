import importlib
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from muvi_rec.models import ContentItem, MediaKind  # noqa: E402

# A Wednesday evening, far enough from any weekend edge
NOW = datetime(2024, 6, 12, 20, 0)


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("MUVI_DB", str(db_path))
    import muvi_rec.config as config

    importlib.reload(config)
    return config


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("MUVI_DB", str(db_path))

    import muvi_rec.config as config
    import muvi_rec.database as database

    importlib.reload(config)
    database.close_pool()

    yield database
    database.close_pool()


def make_item(
    item_id: int,
    kind: MediaKind = MediaKind.MOVIE,
    genres=(),
    popularity: float = 10.0,
    released: date | None = None,
    vote_average: float = 6.0,
    backdrop: str | None = "/backdrop.jpg",
    overview: str = "",
    title: str | None = None,
) -> ContentItem:
    return ContentItem(
        id=item_id,
        kind=kind,
        title=title or f"{kind.value}-{item_id}",
        genre_ids=tuple(genres),
        popularity=popularity,
        release_date=released,
        vote_average=vote_average,
        backdrop_path=backdrop,
        overview=overview,
    )


class FixedRng:
    """Stands in for numpy's Generator where a test needs exact values."""

    def __init__(self, uniform_value: float = 0.0, integer_value: int = 0):
        self.uniform_value = uniform_value
        self.integer_value = integer_value
        self.integer_calls = []

    def uniform(self, low=0.0, high=1.0):
        return self.uniform_value

    def integers(self, high):
        self.integer_calls.append(high)
        return min(self.integer_value, high - 1)


class FakeCatalog:
    """In-memory CatalogProvider; any value may be an Exception to raise instead."""

    def __init__(self, trending=None, discover=None, recommendations=None, similar=None, gems=None, details=None):
        self._trending = trending or {}
        self._discover = discover or {}
        self._recommendations = recommendations or {}
        self._similar = similar or {}
        self._gems = gems or {}
        self._details = details or {}
        self.calls = []

    @staticmethod
    def _result(value):
        if isinstance(value, Exception):
            raise value
        return list(value)

    async def trending(self, kind, window="week"):
        self.calls.append(("trending", kind))
        return self._result(self._trending.get(kind, []))

    async def discover_by_genre(self, kind, genre_id):
        self.calls.append(("discover", kind, genre_id))
        return self._result(self._discover.get((kind, genre_id), []))

    async def recommendations_for(self, kind, item_id):
        self.calls.append(("recommendations", kind, item_id))
        return self._result(self._recommendations.get((kind, item_id), []))

    async def similar_to(self, kind, item_id):
        self.calls.append(("similar", kind, item_id))
        return self._result(self._similar.get((kind, item_id), []))

    async def hidden_gem_candidates(self, kind, genre_ids, rating_floor, vote_count_band):
        self.calls.append(("gems", kind, tuple(genre_ids), rating_floor, vote_count_band))
        return self._result(self._gems.get(kind, []))

    async def details(self, kind, item_id):
        self.calls.append(("details", kind, item_id))
        value = self._details.get((kind, item_id))
        if value is None:
            raise LookupError(f"{kind.value}/{item_id} not found")
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def fake_catalog_factory():
    return FakeCatalog
