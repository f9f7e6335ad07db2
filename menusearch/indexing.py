"""Single-document indexing and full reindex from the system of record."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ValidationError

from .cache import ResponseCache
from .config import Settings
from .engine import BulkOutcome, SearchEngine
from .errors import ReindexInProgress, SearchServiceError
from .models import EntityKind, PartialIndexFailure, Product, ReindexReport, Venue, VenueSummary
from .records import RecordsClient
from .schema import SchemaManager

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _suggest_input(name: str, featured: bool) -> Dict[str, Any]:
    return {"input": [name], "weight": 2 if featured else 1}


def prepare_product_document(
    product: Product,
    placeholder: str,
    venue: Optional[VenueSummary] = None,
) -> Dict[str, Any]:
    """Full replacement document for a product; nothing is merged with the stored copy."""

    document = product.model_dump(exclude={"venue"})
    document["description"] = product.description or placeholder
    summary = venue or product.venue
    if summary is not None:
        document["venue"] = summary.model_dump()
    document["suggest"] = _suggest_input(product.name, product.featured)
    document["updated_at"] = _now()
    return document


def prepare_venue_document(venue: Venue) -> Dict[str, Any]:
    document = venue.model_dump()
    document["suggest"] = _suggest_input(venue.name, venue.featured)
    document["updated_at"] = _now()
    return document


def _parse_records(model: type[ModelT], records: Iterable[Dict[str, Any]]) -> Tuple[List[ModelT], Dict[str, str]]:
    parsed: List[ModelT] = []
    rejected: Dict[str, str] = {}
    for position, record in enumerate(records):
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as exc:
            record_id = record.get("id") if isinstance(record, dict) else None
            rejected[str(record_id if record_id is not None else f"#{position}")] = str(exc.errors()[0].get("msg"))
    return parsed, rejected


class IndexingPipeline:
    def __init__(
        self,
        engine: SearchEngine,
        schema: SchemaManager,
        cache: ResponseCache,
        records: RecordsClient,
        settings: Settings,
    ) -> None:
        self.engine = engine
        self.schema = schema
        self.cache = cache
        self.records = records
        self.settings = settings
        self._reindex_lock = threading.Lock()
        # Single-document writes wait while a reindex holds the indices.
        self._writes = threading.Condition()
        self._active_writes = 0
        self._rebuilding = False

    @property
    def reindex_running(self) -> bool:
        return self._reindex_lock.locked()

    # Single-document operations

    def index_product(self, product: Product) -> None:
        with self._single_write():
            venue = product.venue or self._lookup_venue(product.venueId)
            document = prepare_product_document(product, self.settings.description_placeholder, venue)
            self._upsert(EntityKind.PRODUCT, product.id, document)
            self.cache.invalidate_kind(EntityKind.PRODUCT)

    def index_venue(self, venue: Venue) -> None:
        with self._single_write():
            self._upsert(EntityKind.VENUE, venue.id, prepare_venue_document(venue))
            # Product documents carry venue name and cuisine.
            self.cache.invalidate_kind(EntityKind.VENUE)
            self.cache.invalidate_kind(EntityKind.PRODUCT)

    def delete_product(self, product_id: str) -> bool:
        with self._single_write():
            removed = self._delete(EntityKind.PRODUCT, product_id)
            self.cache.invalidate_kind(EntityKind.PRODUCT)
        return removed

    def delete_venue(self, venue_id: str) -> bool:
        with self._single_write():
            removed = self._delete(EntityKind.VENUE, venue_id)
            self.cache.invalidate_kind(EntityKind.VENUE)
            self.cache.invalidate_kind(EntityKind.PRODUCT)
        return removed

    def notify_upsert(self, entity: Product | Venue) -> bool:
        """Fire-and-forget variant for mutation handlers; never raises."""

        try:
            if isinstance(entity, Product):
                self.index_product(entity)
            else:
                self.index_venue(entity)
        except SearchServiceError:
            return False
        return True

    def notify_delete(self, kind: EntityKind, doc_id: str) -> bool:
        try:
            if kind == EntityKind.PRODUCT:
                self.delete_product(doc_id)
            else:
                self.delete_venue(doc_id)
        except SearchServiceError:
            return False
        return True

    @contextmanager
    def _single_write(self) -> Iterator[None]:
        with self._writes:
            if self._rebuilding:
                logger.info("Reindex running, holding single-document write until it finishes")
            while self._rebuilding:
                self._writes.wait()
            self._active_writes += 1
        try:
            yield
        finally:
            with self._writes:
                self._active_writes -= 1
                self._writes.notify_all()

    @contextmanager
    def _hold_writes(self) -> Iterator[None]:
        """Block new single-document writes and wait for in-flight ones to land."""

        with self._writes:
            self._rebuilding = True
            while self._active_writes:
                self._writes.wait()
        try:
            yield
        finally:
            with self._writes:
                self._rebuilding = False
                self._writes.notify_all()

    def _lookup_venue(self, venue_id: str) -> Optional[VenueSummary]:
        try:
            source = self.engine.get(self.schema.index_name(EntityKind.VENUE), venue_id)
        except SearchServiceError as exc:
            logger.warning("Venue %s lookup failed, indexing product without venue: %s", venue_id, exc)
            return None
        if not source:
            return None
        return VenueSummary(name=source.get("name", ""), cuisine=source.get("cuisine"))

    def _upsert(self, kind: EntityKind, doc_id: str, document: Dict[str, Any]) -> None:
        try:
            self.engine.upsert(self.schema.index_name(kind), doc_id, document)
        except SearchServiceError as exc:
            logger.error("Search index drift: failed to index %s %s: %s", kind.value, doc_id, exc)
            raise
        logger.info("Indexed %s %s", kind.value, doc_id)

    def _delete(self, kind: EntityKind, doc_id: str) -> bool:
        try:
            removed = self.engine.delete(self.schema.index_name(kind), doc_id)
        except SearchServiceError as exc:
            logger.error("Search index drift: failed to delete %s %s: %s", kind.value, doc_id, exc)
            raise
        logger.info("Deleted %s %s (present=%s)", kind.value, doc_id, removed)
        return removed

    # Full reindex

    def reindex_all(self) -> ReindexReport:
        if not self._reindex_lock.acquire(blocking=False):
            raise ReindexInProgress()
        try:
            with self._hold_writes():
                return self._reindex()
        finally:
            self._reindex_lock.release()

    def _reindex(self) -> ReindexReport:
        started = perf_counter()
        logger.info("Starting full reindex")
        raw_venues = self.records.fetch_venues()
        raw_products = self.records.fetch_products()
        venues, rejected_venues = _parse_records(Venue, raw_venues)
        products, rejected_products = _parse_records(Product, raw_products)

        # Venues are rebuilt and populated before the product index is torn down.
        self.schema.recreate(EntityKind.VENUE)
        venue_outcome = self.engine.bulk_replace(
            self.schema.index_name(EntityKind.VENUE),
            (prepare_venue_document(venue) for venue in venues),
        )

        venues_by_id = {venue.id: VenueSummary(name=venue.name, cuisine=venue.cuisine) for venue in venues}
        orphans = [product.id for product in products if product.venueId not in venues_by_id]
        if orphans:
            logger.warning("%s products reference unknown venues: %s", len(orphans), orphans[:20])

        self.schema.recreate(EntityKind.PRODUCT)
        product_outcome = self.engine.bulk_replace(
            self.schema.index_name(EntityKind.PRODUCT),
            (
                prepare_product_document(
                    product.model_copy(update={"venue": None}),
                    self.settings.description_placeholder,
                    venues_by_id.get(product.venueId),
                )
                for product in products
            ),
        )

        self.cache.clear()

        failures = [
            failure
            for failure in (
                self._failure_report(EntityKind.VENUE, venue_outcome, rejected_venues),
                self._failure_report(EntityKind.PRODUCT, product_outcome, rejected_products),
            )
            if failure is not None
        ]
        logger.info(
            "Full reindex finished in %.2fs: venues=%s products=%s failures=%s",
            perf_counter() - started,
            venue_outcome.indexed,
            product_outcome.indexed,
            sum(failure.failed for failure in failures),
        )
        return ReindexReport(
            venuesIndexed=venue_outcome.indexed,
            productsIndexed=product_outcome.indexed,
            failures=failures,
        )

    @staticmethod
    def _failure_report(
        kind: EntityKind,
        outcome: BulkOutcome,
        rejected: Dict[str, str],
    ) -> Optional[PartialIndexFailure]:
        reasons = {**rejected, **outcome.failures}
        if not reasons:
            return None
        logger.warning(
            "Bulk indexing of %s rejected %s documents: %s",
            kind.value,
            len(reasons),
            sorted(reasons),
        )
        return PartialIndexFailure(kind=kind, failed=len(reasons), ids=sorted(reasons), reasons=reasons)
