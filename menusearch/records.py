"""Client for the system of record the reindex pulls venues and products from."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from .errors import RecordsUnavailable

logger = logging.getLogger(__name__)

VENUES_PATH = "/api/restaurants"
PRODUCTS_PATH = "/api/menu-items"


class RecordsClient:
    """Synchronous client for the resource API."""

    def __init__(self, base_url: str, timeout: float = 30, client: Optional[httpx.Client] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def fetch_venues(self) -> List[Dict[str, Any]]:
        return self._fetch_all(VENUES_PATH)

    def fetch_products(self) -> List[Dict[str, Any]]:
        return self._fetch_all(PRODUCTS_PATH)

    def _fetch_all(self, path: str) -> List[Dict[str, Any]]:
        start = time.monotonic()
        try:
            resp = self._client.get(path)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise RecordsUnavailable(f"Timed out fetching {path} from {self.base_url}") from exc
        except httpx.HTTPStatusError as exc:
            raise RecordsUnavailable(f"{path} returned {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise RecordsUnavailable(f"Failed to fetch {path} from {self.base_url}: {exc}") from exc

        # The resource API wraps paginated listings in {"results": [...]}.
        if isinstance(data, dict) and isinstance(data.get("results"), list):
            data = data["results"]
        if not isinstance(data, list):
            raise RecordsUnavailable(f"{path} returned an unexpected payload")
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Fetched %s records from %s in %dms", len(data), path, elapsed_ms)
        return data

    def close(self) -> None:
        self._client.close()
