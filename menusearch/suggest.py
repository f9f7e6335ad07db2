"""Prefix autocomplete over product and venue names."""
from __future__ import annotations

import logging
from typing import List

from .config import Settings
from .engine import SearchEngine
from .errors import InvalidRequest
from .models import EntityKind, Suggestion
from .schema import SchemaManager

logger = logging.getLogger(__name__)

MIN_PREFIX_LENGTH = 2


class SuggestionService:
    def __init__(self, engine: SearchEngine, schema: SchemaManager, settings: Settings) -> None:
        self.engine = engine
        self.schema = schema
        self.settings = settings

    def suggest(self, kind: EntityKind, prefix: str, limit: int | None = None) -> List[Suggestion]:
        prefix = (prefix or "").strip()
        if len(prefix) < MIN_PREFIX_LENGTH:
            raise InvalidRequest(f"Suggestion prefix must be at least {MIN_PREFIX_LENGTH} characters")
        size = limit if limit is not None else self.settings.suggestion_limit
        size = max(1, min(size, self.settings.max_suggestion_limit))

        options = self.engine.suggest(self.schema.index_name(kind), prefix, size)
        suggestions = [
            Suggestion(
                text=option.get("_source", {}).get("name") or option.get("text", ""),
                score=option.get("_score"),
                id=option.get("_id"),
            )
            for option in options
        ]
        logger.debug("suggest kind=%s prefix=%r results=%s", kind.value, prefix, len(suggestions))
        return suggestions
