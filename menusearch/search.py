"""Search logic built on top of the engine adapter."""
from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict, List, Optional

from .cache import ResponseCache
from .config import Settings
from .engine import SearchEngine
from .errors import InvalidRequest
from .models import EntityKind, Pagination, ProductFilters, SearchFilters, SearchHit, SearchResult, VenueFilters
from .query_builder import build_search_body
from .schema import SchemaManager

logger = logging.getLogger(__name__)


def default_filters(kind: EntityKind) -> SearchFilters:
    return ProductFilters() if kind == EntityKind.PRODUCT else VenueFilters()


def _first_fragment(highlight: Optional[Dict[str, List[str]]]) -> Optional[str]:
    if not highlight:
        return None
    for field_name in ("name", "description"):
        fragments = highlight.get(field_name)
        if fragments:
            return fragments[0]
    return None


def _total_hits(hits: Dict[str, Any]) -> int:
    total = hits.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


def normalize_hits(response: Dict[str, Any]) -> List[SearchHit]:
    results = []
    for hit in response.get("hits", {}).get("hits", []):
        source = hit.get("_source", {})
        results.append(
            SearchHit(
                id=str(hit.get("_id") or source.get("id")),
                score=hit.get("_score"),
                source=source,
                highlight=_first_fragment(hit.get("highlight")),
            )
        )
    return results


class SearchService:
    def __init__(self, engine: SearchEngine, schema: SchemaManager, cache: ResponseCache, settings: Settings) -> None:
        self.engine = engine
        self.schema = schema
        self.cache = cache
        self.settings = settings

    def search(
        self,
        kind: EntityKind,
        query: str | None = None,
        filters: SearchFilters | None = None,
        pagination: Pagination | None = None,
    ) -> SearchResult:
        query = (query or "").strip()
        filters = filters or default_filters(kind)
        page = (pagination or Pagination(size=self.settings.default_page_size)).clamped(self.settings.max_page_size)
        if page.page * page.size > self.settings.max_result_window:
            raise InvalidRequest(
                f"page {page.page} of size {page.size} is past the last reachable result ({self.settings.max_result_window})"
            )

        cache_key = self.cache.make_key(kind, query, filters, page)
        cache_start = perf_counter()
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(
                "search kind=%s q=%r total=%.2fms cache_hit=1",
                kind.value,
                query,
                (perf_counter() - cache_start) * 1000,
            )
            return SearchResult.model_validate(cached)

        t0 = perf_counter()
        body = build_search_body(kind, query, filters, page, self.settings)
        response = self.engine.search(self.schema.index_name(kind), body)
        t1 = perf_counter()

        hits_block = response.get("hits", {})
        result = SearchResult(
            kind=kind,
            query=query,
            hits=normalize_hits(response),
            total=_total_hits(hits_block),
            page=page.page,
            size=page.size,
        )
        logger.info(
            "search kind=%s q=%r total=%.2fms es=%sms hits=%s matched=%s cache_hit=0",
            kind.value,
            query,
            (perf_counter() - t0) * 1000,
            response.get("took", round((t1 - t0) * 1000)),
            len(result.hits),
            result.total,
        )
        self.cache.set(cache_key, result.model_dump(mode="json"))
        return result
