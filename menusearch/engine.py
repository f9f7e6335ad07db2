"""Elasticsearch adapter behind the narrow engine interface.

Everything above this module talks to :class:`SearchEngine` and never imports
``elasticsearch``. The adapter uses the official synchronous client; blocking
calls are wrapped via ``asyncio.to_thread`` by the HTTP layer.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from elasticsearch import (
    ApiError,
    BadRequestError,
    ConnectionError,
    ConnectionTimeout,
    Elasticsearch,
    NotFoundError,
    helpers,
)

from .errors import InvalidRequest, SearchServiceError, SearchTimeout, SearchUnavailable
from .query_builder import SUGGESTION_NAME, build_suggest_body

logger = logging.getLogger(__name__)


@dataclass
class BulkOutcome:
    indexed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)


class SearchEngine(Protocol):
    def health(self) -> Optional[str]: ...

    def index_exists(self, index: str) -> bool: ...

    def create_index(self, index: str, body: Dict[str, Any]) -> None: ...

    def drop_index(self, index: str) -> bool: ...

    def count(self, index: str) -> int: ...

    def upsert(self, index: str, doc_id: str, document: Dict[str, Any]) -> None: ...

    def get(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]: ...

    def delete(self, index: str, doc_id: str) -> bool: ...

    def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]: ...

    def suggest(self, index: str, prefix: str, limit: int) -> List[Dict[str, Any]]: ...

    def bulk_replace(self, index: str, documents: Iterable[Dict[str, Any]]) -> BulkOutcome: ...

    def close(self) -> None: ...


class IndexAlreadyExists(SearchServiceError):
    """Raised by ``create_index`` when another caller created the index first."""


def _engine_error(action: str, index: str, exc: Exception) -> SearchServiceError:
    if isinstance(exc, ConnectionTimeout):
        return SearchTimeout(f"{action} on {index} timed out")
    if isinstance(exc, ConnectionError):
        return SearchUnavailable(f"Search engine unreachable during {action} on {index}")
    if isinstance(exc, NotFoundError):
        return SearchUnavailable(f"Index {index} is not available")
    if isinstance(exc, ApiError) and exc.meta.status == 400:
        return InvalidRequest(f"{action} on {index} rejected: {exc.message}")
    if isinstance(exc, ApiError) and exc.meta.status >= 500:
        return SearchUnavailable(f"{action} on {index} failed: {exc.message}")
    return SearchServiceError(f"{action} on {index} rejected: {exc}")


@contextmanager
def _translate_errors(action: str, index: str) -> Iterator[None]:
    try:
        yield
    except (ConnectionError, ConnectionTimeout, ApiError) as exc:
        raise _engine_error(action, index, exc) from exc


class ElasticsearchEngine:
    """Engine implementation over an explicitly constructed client."""

    def __init__(self, client: Elasticsearch) -> None:
        self._client = client

    @classmethod
    def connect(cls, host: str, request_timeout: float) -> "ElasticsearchEngine":
        logger.info("Connecting to Elasticsearch at %s", host)
        return cls(Elasticsearch(host, request_timeout=request_timeout, max_retries=2, retry_on_timeout=False))

    def health(self) -> Optional[str]:
        try:
            return self._client.cluster.health().get("status")
        except (ConnectionError, ConnectionTimeout, ApiError) as exc:
            logger.warning("Cluster health unavailable: %s", exc)
            return None

    def index_exists(self, index: str) -> bool:
        with _translate_errors("exists", index):
            return bool(self._client.indices.exists(index=index))

    def create_index(self, index: str, body: Dict[str, Any]) -> None:
        try:
            self._client.indices.create(index=index, settings=body.get("settings"), mappings=body.get("mappings"))
        except BadRequestError as exc:
            if exc.message == "resource_already_exists_exception":
                raise IndexAlreadyExists(f"Index {index} already exists") from exc
            raise _engine_error("create", index, exc) from exc
        except (ConnectionError, ConnectionTimeout, ApiError) as exc:
            raise _engine_error("create", index, exc) from exc

    def drop_index(self, index: str) -> bool:
        try:
            self._client.indices.delete(index=index)
        except NotFoundError:
            return False
        except (ConnectionError, ConnectionTimeout, ApiError) as exc:
            raise _engine_error("drop", index, exc) from exc
        return True

    def count(self, index: str) -> int:
        with _translate_errors("count", index):
            return int(self._client.count(index=index).get("count", 0))

    def upsert(self, index: str, doc_id: str, document: Dict[str, Any]) -> None:
        with _translate_errors("index", index):
            response = self._client.index(index=index, id=doc_id, document=document, refresh="wait_for")
        logger.debug("Indexed %s/%s result=%s", index, doc_id, response.get("result"))

    def get(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._client.get(index=index, id=doc_id)
        except NotFoundError:
            return None
        except (ConnectionError, ConnectionTimeout, ApiError) as exc:
            raise _engine_error("get", index, exc) from exc
        return response.get("_source")

    def delete(self, index: str, doc_id: str) -> bool:
        try:
            self._client.delete(index=index, id=doc_id, refresh="wait_for")
        except NotFoundError:
            logger.debug("Delete of %s/%s skipped: not present", index, doc_id)
            return False
        except (ConnectionError, ConnectionTimeout, ApiError) as exc:
            raise _engine_error("delete", index, exc) from exc
        return True

    def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("ES query index=%s payload=%s", index, body)
        with _translate_errors("search", index):
            return dict(self._client.search(index=index, body=body))

    def suggest(self, index: str, prefix: str, limit: int) -> List[Dict[str, Any]]:
        with _translate_errors("suggest", index):
            response = self._client.search(index=index, body=build_suggest_body(prefix, limit))
        entries = response.get("suggest", {}).get(SUGGESTION_NAME, [])
        return entries[0].get("options", []) if entries else []

    def bulk_replace(self, index: str, documents: Iterable[Dict[str, Any]]) -> BulkOutcome:
        actions = (
            {"_op_type": "index", "_index": index, "_id": document["id"], "_source": document}
            for document in documents
        )
        with _translate_errors("bulk", index):
            indexed, errors = helpers.bulk(
                self._client,
                actions,
                raise_on_error=False,
                refresh=True,
            )
        outcome = BulkOutcome(indexed=indexed)
        for item in errors:
            detail = item.get("index", {})
            error = detail.get("error", {})
            reason = error.get("reason") if isinstance(error, dict) else str(error)
            outcome.failures[str(detail.get("_id"))] = reason or "unknown"
        return outcome

    def close(self) -> None:
        self._client.close()
