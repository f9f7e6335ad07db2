"""Error taxonomy shared by the engine adapter, services and HTTP layer."""
from __future__ import annotations


class SearchServiceError(Exception):
    """Base class for every condition the service reports to its callers."""

    status_code = 500


class SchemaProvisionFailure(SearchServiceError):
    """Index schema could not be created; the service cannot start."""


class SearchUnavailable(SearchServiceError):
    status_code = 503


class SearchTimeout(SearchServiceError):
    status_code = 504


class InvalidRequest(SearchServiceError):
    status_code = 400


class ReindexInProgress(SearchServiceError):
    status_code = 409

    def __init__(self, message: str = "A reindex is already running") -> None:
        super().__init__(message)


class RecordsUnavailable(SearchServiceError):
    """The system of record could not be read during a reindex."""

    status_code = 502
