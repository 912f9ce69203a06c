import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence

from .catalog import CatalogProvider
from .config import (
    PROVIDER_TIMEOUT,
    TRENDING_WINDOW,
    HIDDEN_GEM_RATING_FLOOR,
    HIDDEN_GEM_VOTE_BANDS,
)
from .models import ContentItem, ItemKey, MediaKind

logger = logging.getLogger(__name__)


def merge_pools(*pools: Iterable[ContentItem]) -> list[ContentItem]:
    """Concatenate pools, keeping the first occurrence of each (kind, id)."""
    merged: dict[ItemKey, ContentItem] = {}
    for pool in pools:
        for item in pool:
            merged.setdefault(item.key, item)
    return list(merged.values())


def exclude_watched(pool: Iterable[ContentItem], watched: set[ItemKey]) -> list[ContentItem]:
    return [item for item in pool if item.key not in watched]


class CandidateAggregator:
    """
    Gathers unscored candidate pools for each feed section.

    Every provider call is isolated: an exception or a timeout turns that one
    call into an empty list and leaves its siblings alone. Pools come back
    deduplicated and filtered against the caller's recently watched keys, in
    no particular order of merit.
    """

    def __init__(self, provider: CatalogProvider, timeout: float = PROVIDER_TIMEOUT):
        self.provider = provider
        self.timeout = timeout

    async def _call(self, label: str, awaitable: Awaitable[list[ContentItem]]) -> list[ContentItem]:
        try:
            return list(await asyncio.wait_for(awaitable, timeout=self.timeout))
        except asyncio.TimeoutError:
            logger.warning(f"Catalog call {label} timed out after {self.timeout}s; using empty result")
        except Exception as exc:
            logger.warning(f"Catalog call {label} failed: {type(exc).__name__}: {exc}; using empty result")
        return []

    async def _gather(self, calls: Sequence[tuple[str, Awaitable[list[ContentItem]]]]) -> list[list[ContentItem]]:
        return await asyncio.gather(*(self._call(label, aw) for label, aw in calls))

    async def top_picks(
        self,
        top_genre: int | None,
        watched: set[ItemKey] = frozenset(),
    ) -> dict[MediaKind, list[ContentItem]]:
        """Top-genre discovery plus trending, one pool per media kind."""
        calls = []
        for kind in MediaKind:
            if top_genre is not None:
                calls.append((f"discover({kind.value}, {top_genre})", self.provider.discover_by_genre(kind, top_genre)))
            calls.append((f"trending({kind.value})", self.provider.trending(kind, TRENDING_WINDOW)))

        results = await self._gather(calls)

        # Calls were issued per kind, genre discovery first
        per_kind = 2 if top_genre is not None else 1
        pools = {}
        for i, kind in enumerate(MediaKind):
            chunk = results[i * per_kind:(i + 1) * per_kind]
            pools[kind] = exclude_watched(merge_pools(*chunk), watched)
            logger.debug(f"Top picks pool ({kind.value}): {len(pools[kind])} candidates")
        return pools

    async def because_you_watched(
        self,
        kind: MediaKind,
        item_id: int,
        watched: set[ItemKey] = frozenset(),
    ) -> list[ContentItem]:
        """Provider recommendations for the seed, or similar titles when there are none."""
        pool = await self._call(f"recommendations({kind.value}, {item_id})", self.provider.recommendations_for(kind, item_id))
        if not pool:
            logger.debug(f"No recommendations for {kind.value}/{item_id}, falling back to similar titles")
            pool = await self._call(f"similar({kind.value}, {item_id})", self.provider.similar_to(kind, item_id))
        return exclude_watched(merge_pools(pool), watched)

    async def trending_in_genre(
        self,
        genre_id: int,
        kind: MediaKind = MediaKind.MOVIE,
        watched: set[ItemKey] = frozenset(),
    ) -> list[ContentItem]:
        pool = await self._call(f"discover({kind.value}, {genre_id})", self.provider.discover_by_genre(kind, genre_id))
        return exclude_watched(merge_pools(pool), watched)

    async def hidden_gems(
        self,
        genre_ids: Sequence[int],
        watched: set[ItemKey] = frozenset(),
    ) -> list[ContentItem]:
        """Rating-floored, vote-banded candidates for both kinds, merged."""
        calls = [
            (
                f"hidden_gems({kind.value})",
                self.provider.hidden_gem_candidates(
                    kind,
                    list(genre_ids),
                    HIDDEN_GEM_RATING_FLOOR,
                    HIDDEN_GEM_VOTE_BANDS[kind.value],
                ),
            )
            for kind in MediaKind
        ]
        results = await self._gather(calls)
        return exclude_watched(merge_pools(*results), watched)

    async def hero_candidates(self, watched: set[ItemKey] = frozenset()) -> list[ContentItem]:
        """Trending titles of both kinds; hero-specific filtering is left to the composer."""
        results = await self._gather([
            (f"trending({kind.value})", self.provider.trending(kind, TRENDING_WINDOW))
            for kind in MediaKind
        ])
        return exclude_watched(merge_pools(*results), watched)

    async def resolve(self, item_id: int, kind: MediaKind | None = None) -> ContentItem | None:
        """
        Look up a single item by id.

        With no kind, movie is tried before tv. Returns None when nothing
        resolves.
        """
        kinds = [MediaKind(kind)] if kind is not None else list(MediaKind)
        for candidate_kind in kinds:
            try:
                return await asyncio.wait_for(self.provider.details(candidate_kind, item_id), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"details({candidate_kind.value}, {item_id}) timed out")
            except Exception as exc:
                logger.debug(f"details({candidate_kind.value}, {item_id}) failed: {type(exc).__name__}: {exc}")
        return None
