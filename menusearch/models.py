"""Pydantic models for indexed entities, search requests and responses."""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class EntityKind(str, Enum):
    PRODUCT = "products"
    VENUE = "restaurants"


class VenueSummary(BaseModel):
    """Venue fields copied onto product documents."""

    name: str
    cuisine: str | None = None


class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    venueId: str = Field(validation_alias=AliasChoices("venueId", "restaurantId"))
    name: str
    description: str | None = None
    price: float = Field(ge=0)
    category: str | None = None
    imageUrl: str | None = None
    featured: bool = False
    available: bool = True
    venue: VenueSummary | None = Field(default=None, validation_alias=AliasChoices("venue", "restaurant"))

    @field_validator("id", "venueId", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # The system of record may hand out integer keys.
        return str(value) if isinstance(value, int) else value


class Venue(BaseModel):
    id: str
    name: str
    description: str | None = None
    address: str | None = None
    cuisine: str | None = None
    rating: float = Field(default=0.0, ge=0, le=5)
    priceRange: int = Field(default=1, ge=1, le=3)
    imageUrl: str | None = None
    featured: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class ProductFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["products"] = "products"
    venueId: str | None = Field(default=None, serialization_alias="restaurantId")
    category: str | None = None
    available: bool | None = None
    minPrice: float | None = Field(default=None, ge=0)
    maxPrice: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_price_range(self) -> "ProductFilters":
        if self.minPrice is not None and self.maxPrice is not None and self.minPrice > self.maxPrice:
            raise ValueError("minPrice must not exceed maxPrice")
        return self


class VenueFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["restaurants"] = "restaurants"
    cuisine: str | None = None
    priceRange: int | None = Field(default=None, ge=1, le=3)
    minRating: float | None = Field(default=None, ge=0, le=5)


SearchFilters = Union[ProductFilters, VenueFilters]


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    size: int = Field(default=20, ge=1)

    def clamped(self, max_size: int) -> "Pagination":
        return Pagination(page=self.page, size=min(self.size, max_size))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


class SearchHit(BaseModel):
    id: str
    score: float | None = None
    source: dict[str, Any]
    highlight: str | None = None


class SearchResult(BaseModel):
    kind: EntityKind
    query: str
    hits: list[SearchHit]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.size) if self.size else 0


class Suggestion(BaseModel):
    text: str
    score: float | None = None
    id: str | None = None


class PartialIndexFailure(BaseModel):
    """Documents of one entity kind rejected by a bulk write."""

    kind: EntityKind
    failed: int
    ids: list[str]
    reasons: dict[str, str] = Field(default_factory=dict)


class ReindexReport(BaseModel):
    venuesIndexed: int
    productsIndexed: int
    failures: list[PartialIndexFailure] = Field(default_factory=list)


class PageInfo(BaseModel):
    page: int
    size: int
    total: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


class ResultItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    score: float | None = None
    highlight: str | None = None


class SearchResponse(BaseModel):
    query: str
    filters: dict[str, Any]
    results: list[ResultItem]
    pagination: PageInfo

    @classmethod
    def from_result(cls, result: SearchResult, filters: SearchFilters, query: str | None = None) -> "SearchResponse":
        """Envelope for ``result`` echoing the request's own query text and parameter names."""

        total_pages = result.total_pages
        return cls(
            query=result.query if query is None else query,
            filters=filters.model_dump(exclude_none=True, exclude={"kind"}, by_alias=True),
            results=[
                ResultItem(**{**hit.source, "id": hit.id, "score": hit.score, "highlight": hit.highlight})
                for hit in result.hits
            ],
            pagination=PageInfo(
                page=result.page,
                size=result.size,
                total=result.total,
                totalPages=total_pages,
                hasNext=result.page < total_pages,
                hasPrev=result.page > 1,
            ),
        )


class SuggestionResponse(BaseModel):
    query: str
    type: EntityKind
    suggestions: list[Suggestion]


class CacheClearRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pattern: str | None = None
