"""
Catalog access for the recommendation engine.

`CatalogProvider` is the read-only capability the candidate aggregator fans out
to. `TMDBCatalog` implements it over the TMDB v3 REST API.
"""
import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    HTTP_TIMEOUT,
    DEFAULT_MAX_CONCURRENT,
    MAX_HTTP_RETRIES,
    RETRY_INITIAL_DELAY,
)
from .models import ContentItem, MediaKind
from .utils import async_retry_with_backoff

logger = logging.getLogger(__name__)


class CatalogError(RuntimeError):
    """The catalog answered with an HTTP error."""


class _RateLimited(CatalogError):
    def __init__(self, retry_after: float):
        super().__init__(f"rate limited, retry after {retry_after}s")
        self.retry_after = retry_after


class CatalogProvider(Protocol):
    async def trending(self, kind: MediaKind, window: str = "week") -> list[ContentItem]: ...

    async def discover_by_genre(self, kind: MediaKind, genre_id: int) -> list[ContentItem]: ...

    async def recommendations_for(self, kind: MediaKind, item_id: int) -> list[ContentItem]: ...

    async def similar_to(self, kind: MediaKind, item_id: int) -> list[ContentItem]: ...

    async def hidden_gem_candidates(
        self,
        kind: MediaKind,
        genre_ids: Sequence[int],
        rating_floor: float,
        vote_count_band: tuple[int, int],
    ) -> list[ContentItem]: ...

    async def details(self, kind: MediaKind, item_id: int) -> ContentItem: ...


class TMDBCatalog:
    """
    Async TMDB client.

    Use as an async context manager, or pass an existing `httpx.AsyncClient`
    (the caller then owns its lifetime). Concurrency is bounded by a semaphore;
    transport failures and 429s are retried with exponential backoff.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = TMDB_BASE_URL,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else TMDB_API_KEY
        self.base_url = base_url.rstrip("/")
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client
        self._owns_client = client is None
        if not self.api_key:
            logger.warning("No TMDB API key configured; catalog requests will be rejected")

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json", "User-Agent": "muvi-rec/1.0"},
                timeout=HTTP_TIMEOUT,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None
        return False

    @async_retry_with_backoff(
        max_retries=MAX_HTTP_RETRIES,
        initial_delay=RETRY_INITIAL_DELAY,
        exceptions=(httpx.TransportError, _RateLimited),
    )
    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.client:
            raise RuntimeError("TMDBCatalog must be used as an async context manager or given a client")

        query = {"api_key": self.api_key, **(params or {})}
        async with self.semaphore:
            resp = await self.client.get(f"{self.base_url}{path}", params=query)

        if resp.status_code == 429:
            retry_after = float(resp.headers.get("Retry-After", 1))
            logger.warning(f"Rate limited on {path}, backing off {retry_after}s")
            await asyncio.sleep(retry_after)
            raise _RateLimited(retry_after)

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"HTTP {exc.response.status_code} on {path}")
            raise CatalogError(f"HTTP {exc.response.status_code} on {path}") from exc

        return resp.json()

    async def _list(self, path: str, kind: MediaKind, params: dict[str, Any] | None = None) -> list[ContentItem]:
        payload = await self._get(path, params)
        items = []
        for raw in payload.get("results") or []:
            try:
                items.append(ContentItem.from_tmdb(raw, kind))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug(f"Skipping malformed {kind.value} result on {path}: {exc}")
        logger.debug(f"{path}: {len(items)} results")
        return items

    async def trending(self, kind: MediaKind, window: str = "week") -> list[ContentItem]:
        kind = MediaKind(kind)
        return await self._list(f"/trending/{kind.value}/{window}", kind)

    async def discover_by_genre(self, kind: MediaKind, genre_id: int) -> list[ContentItem]:
        kind = MediaKind(kind)
        return await self._list(
            f"/discover/{kind.value}",
            kind,
            {"with_genres": genre_id, "sort_by": "popularity.desc"},
        )

    async def recommendations_for(self, kind: MediaKind, item_id: int) -> list[ContentItem]:
        kind = MediaKind(kind)
        return await self._list(f"/{kind.value}/{item_id}/recommendations", kind)

    async def similar_to(self, kind: MediaKind, item_id: int) -> list[ContentItem]:
        kind = MediaKind(kind)
        return await self._list(f"/{kind.value}/{item_id}/similar", kind)

    async def hidden_gem_candidates(
        self,
        kind: MediaKind,
        genre_ids: Sequence[int],
        rating_floor: float,
        vote_count_band: tuple[int, int],
    ) -> list[ContentItem]:
        """Highly rated titles inside a vote-count band, best rated first."""
        kind = MediaKind(kind)
        min_votes, max_votes = vote_count_band
        params = {
            "sort_by": "vote_average.desc",
            "vote_average.gte": rating_floor,
            "vote_count.gte": min_votes,
            "vote_count.lte": max_votes,
        }
        if genre_ids:
            params["with_genres"] = ",".join(str(g) for g in genre_ids)
        return await self._list(f"/discover/{kind.value}", kind, params)

    async def details(self, kind: MediaKind, item_id: int) -> ContentItem:
        kind = MediaKind(kind)
        payload = await self._get(f"/{kind.value}/{item_id}")
        return ContentItem.from_tmdb(payload, kind)
