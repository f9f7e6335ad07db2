"""Translate search requests into Elasticsearch request bodies."""
from __future__ import annotations

from typing import Any, Dict, List

from .config import Settings
from .models import EntityKind, Pagination, ProductFilters, SearchFilters, VenueFilters

SUGGESTION_NAME = "name-suggest"
HIGHLIGHT_TAGS = {"pre_tags": ["<em>"], "post_tags": ["</em>"]}


def text_fields(kind: EntityKind, settings: Settings) -> List[str]:
    """Boosted fields for free-text matching, heaviest first."""

    if kind == EntityKind.PRODUCT:
        return [
            f"name^{settings.name_boost:g}",
            f"name.autocomplete^{settings.autocomplete_boost:g}",
            f"category.text^{settings.category_boost:g}",
            f"venue.name^{settings.venue_name_boost:g}",
            f"description^{settings.description_boost:g}",
        ]
    return [
        f"name^{settings.name_boost:g}",
        f"name.autocomplete^{settings.autocomplete_boost:g}",
        f"cuisine.text^{settings.cuisine_boost:g}",
        f"address^{settings.address_boost:g}",
        f"description^{settings.description_boost:g}",
    ]


def _text_query(kind: EntityKind, query: str, settings: Settings) -> Dict[str, Any]:
    text = query.strip()
    if not text:
        return {"match_all": {}}
    clause: Dict[str, Any] = {
        "query": text,
        "fields": text_fields(kind, settings),
        "type": "best_fields",
        "fuzziness": settings.fuzziness,
    }
    if kind == EntityKind.PRODUCT and settings.minimum_should_match:
        clause["minimum_should_match"] = settings.minimum_should_match
    return {"multi_match": clause}


def product_filter_clauses(filters: ProductFilters) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []
    if filters.venueId:
        clauses.append({"term": {"venueId": filters.venueId}})
    if filters.category:
        clauses.append({"term": {"category": filters.category}})
    # Unavailable items only show up when explicitly asked for.
    available = True if filters.available is None else filters.available
    clauses.append({"term": {"available": available}})
    if filters.minPrice is not None or filters.maxPrice is not None:
        price_range: Dict[str, float] = {}
        if filters.minPrice is not None:
            price_range["gte"] = filters.minPrice
        if filters.maxPrice is not None:
            price_range["lte"] = filters.maxPrice
        clauses.append({"range": {"price": price_range}})
    return clauses


def venue_filter_clauses(filters: VenueFilters) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []
    if filters.cuisine:
        clauses.append({"term": {"cuisine": filters.cuisine}})
    if filters.priceRange is not None:
        clauses.append({"term": {"priceRange": filters.priceRange}})
    if filters.minRating is not None:
        clauses.append({"range": {"rating": {"gte": filters.minRating}}})
    return clauses


def sort_clauses(kind: EntityKind) -> List[Dict[str, Any]]:
    secondary = {"price": {"order": "asc"}} if kind == EntityKind.PRODUCT else {"rating": {"order": "desc"}}
    return [
        {"_score": {"order": "desc"}},
        {"featured": {"order": "desc", "unmapped_type": "boolean"}},
        secondary,
        {"id": {"order": "asc"}},
    ]


def build_search_body(
    kind: EntityKind,
    query: str,
    filters: SearchFilters,
    pagination: Pagination,
    settings: Settings,
) -> Dict[str, Any]:
    """Build a ranked query whose filters narrow the hit set without scoring."""

    if isinstance(filters, ProductFilters) != (kind == EntityKind.PRODUCT):
        raise TypeError(f"{type(filters).__name__} cannot filter {kind.value}")
    page = pagination.clamped(settings.max_page_size)

    if isinstance(filters, ProductFilters):
        clauses = product_filter_clauses(filters)
    else:
        clauses = venue_filter_clauses(filters)

    body: Dict[str, Any] = {
        "track_total_hits": True,
        "from": page.offset,
        "size": page.size,
        "_source": {"excludes": ["suggest"]},
        "query": _text_query(kind, query, settings),
        "sort": sort_clauses(kind),
        "highlight": {
            "fields": {
                "name": dict(HIGHLIGHT_TAGS),
                "description": dict(HIGHLIGHT_TAGS),
            }
        },
    }
    if clauses:
        body["post_filter"] = {"bool": {"filter": clauses}}
    return body


def build_suggest_body(prefix: str, limit: int) -> Dict[str, Any]:
    return {
        "size": 0,
        "_source": ["id", "name"],
        "suggest": {
            SUGGESTION_NAME: {
                "prefix": prefix,
                "completion": {
                    "field": "suggest",
                    "size": limit,
                    "skip_duplicates": True,
                },
            }
        },
    }
