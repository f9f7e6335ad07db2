"""Index creation and maintenance helpers."""
from __future__ import annotations

import copy
import json
import logging
import time
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict

from .config import Settings
from .engine import IndexAlreadyExists, SearchEngine
from .errors import SchemaProvisionFailure, SearchServiceError
from .models import EntityKind

logger = logging.getLogger(__name__)

MAPPINGS_DIR = Path(__file__).parent / "mappings"
# Elasticsearch ships "light_*" stemmers only for some languages.
LIGHT_STEMMERS = {"english", "finnish", "french", "german", "hungarian", "italian", "portuguese", "russian", "spanish", "swedish"}


@lru_cache(maxsize=None)
def _load_mapping(kind: EntityKind) -> dict:
    with (MAPPINGS_DIR / f"{kind.value}.json").open("r", encoding="utf-8") as fh:
        return json.load(fh)


def index_body(kind: EntityKind, language: str) -> dict:
    """Mapping body for ``kind`` with the analyzer language patched in."""

    body = copy.deepcopy(_load_mapping(kind))
    filters = body["settings"]["analysis"]["filter"]
    language = language.lower()
    filters["language_stop"]["stopwords"] = f"_{language}_"
    filters["language_stemmer"]["language"] = f"light_{language}" if language in LIGHT_STEMMERS else language
    return body


class SchemaManager:
    """Provision the product and venue indices."""

    def __init__(
        self,
        engine: SearchEngine,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self._sleep = sleep

    def index_name(self, kind: EntityKind) -> str:
        return self.settings.product_index if kind == EntityKind.PRODUCT else self.settings.venue_index

    def index_names(self) -> Dict[EntityKind, str]:
        return {kind: self.index_name(kind) for kind in EntityKind}

    def ensure_schema(self, kind: EntityKind) -> bool:
        """Create the index for ``kind`` if it is missing. Returns True when created."""

        index = self.index_name(kind)
        if self.engine.index_exists(index):
            return False
        logger.info("Creating index %s for %s", index, kind.value)
        try:
            self.engine.create_index(index, index_body(kind, self.settings.analyzer_language))
        except IndexAlreadyExists:
            logger.info("Index %s already exists", index)
            return False
        return True

    def recreate(self, kind: EntityKind) -> None:
        """Drop and create the index for ``kind`` with the current mapping.

        Raises IndexAlreadyExists if a write auto-created the index between
        the drop and the create.
        """

        index = self.index_name(kind)
        if self.engine.drop_index(index):
            logger.info("Deleted existing index %s", index)
        try:
            self.engine.create_index(index, index_body(kind, self.settings.analyzer_language))
        except IndexAlreadyExists:
            logger.error("Index %s reappeared before it could be recreated", index)
            raise
        logger.info("Recreated index %s for %s", index, kind.value)

    def provision_all(self) -> None:
        """Ensure both indices exist, retrying with exponential backoff."""

        attempts = max(1, self.settings.schema_retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                for kind in EntityKind:
                    self.ensure_schema(kind)
                return
            except SearchServiceError as exc:
                if attempt == attempts:
                    logger.error("Schema provisioning failed after %s attempts: %s", attempts, exc)
                    raise SchemaProvisionFailure(f"Could not provision search indices: {exc}") from exc
                delay = self.settings.schema_retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "Schema provisioning attempt %s/%s failed: %s; retrying in %.1fs",
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)
