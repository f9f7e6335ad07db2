"""Explicit wiring of the engine, cache and services."""
from __future__ import annotations

import logging

from .cache import CacheBackend, ResponseCache, build_backend
from .config import Settings
from .engine import ElasticsearchEngine, SearchEngine
from .indexing import IndexingPipeline
from .records import RecordsClient
from .schema import SchemaManager
from .search import SearchService
from .suggest import SuggestionService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Owns every long-lived component; one instance per application."""

    def __init__(
        self,
        settings: Settings,
        engine: SearchEngine,
        cache_backend: CacheBackend,
        records: RecordsClient,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.records = records
        self.cache = ResponseCache(cache_backend, prefix=settings.cache_prefix, ttl=settings.cache_ttl_seconds)
        self.schema = SchemaManager(engine, settings)
        self.search = SearchService(engine, self.schema, self.cache, settings)
        self.suggestions = SuggestionService(engine, self.schema, settings)
        self.indexing = IndexingPipeline(engine, self.schema, self.cache, records, settings)

    @classmethod
    def build(cls, settings: Settings) -> "ServiceContainer":
        return cls(
            settings=settings,
            engine=ElasticsearchEngine.connect(settings.es_host, settings.es_request_timeout),
            cache_backend=build_backend(settings),
            records=RecordsClient(settings.records_api_url, timeout=settings.records_timeout),
        )

    def startup(self) -> None:
        """Provision indices; raises SchemaProvisionFailure when that is impossible."""

        self.schema.provision_all()
        logger.info("Search indices ready: %s", ", ".join(self.schema.index_names().values()))

    def close(self) -> None:
        self.records.close()
        self.engine.close()
