"""Search Query Client — Google Custom Search JSON API.

Issues one templated query with bounded retries. Rules:
  - HTTP 429 → exponential backoff via the injected ``RetryPolicy``
  - other failures → flat-delay retry, then ``[]`` on the final attempt
  - 400/401/403/404/422 → ``[]`` immediately
  - malformed body or no ``items`` → ``[]`` (no retry)

``query()`` never raises: a single bad query must not abort a strategy.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..schemas.search_schema import SearchQuery, SearchResult
from ..timing import clamp_timeout, deadline_exceeded
from .http_client import Timeouts, get_timeout
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"


def _parse_items(data: Any) -> List[SearchResult]:
    """Map the CSE ``items`` array to SearchResults; tolerate missing fields."""
    if not isinstance(data, dict):
        return []
    items = data.get("items")
    if not isinstance(items, list):
        return []

    results: List[SearchResult] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        results.append(
            SearchResult(
                title=str(item.get("title") or ""),
                link=str(item.get("link") or ""),
                snippet=str(item.get("snippet") or ""),
            )
        )
    return results


class SearchClient:
    """Rate-limited client for the external search API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        engine_id: str,
        retry: Optional[RetryPolicy] = None,
        timeout: float = Timeouts.SEARCH,
        url: str = _GOOGLE_CSE_URL,
    ):
        self._client = client
        self._api_key = api_key
        self._engine_id = engine_id
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._url = url

    async def _fetch(self, query: SearchQuery) -> List[SearchResult]:
        params: Dict[str, str] = {
            "q": query.text,
            "key": self._api_key,
            "cx": self._engine_id,
        }
        response = await self._client.get(
            self._url,
            params=params,
            timeout=get_timeout("search", clamp_timeout(self._timeout)),
        )
        logger.debug("[SEARCH] HTTP %d for query=%r", response.status_code, query.text)
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError:
            logger.warning("[SEARCH] Malformed body for query=%r", query.text)
            return []
        return _parse_items(data)

    async def query(self, query: SearchQuery) -> List[SearchResult]:
        """Run one search. Returns ``[]`` on any failure."""
        if deadline_exceeded():
            logger.warning("[SEARCH] Deadline exceeded — skipping query=%r", query.text)
            return []

        try:
            results = await self._retry.run(
                lambda: self._fetch(query),
                label=f"[SEARCH] {query.text!r}",
            )
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "[SEARCH] HTTP %d — returning no results for query=%r",
                exc.response.status_code,
                query.text,
            )
            return []
        except Exception as exc:
            logger.warning("[SEARCH] Error for query=%r: %s", query.text, exc)
            return []

        if not results:
            logger.info("[SEARCH] No results for query=%r", query.text)
        else:
            logger.info("[SEARCH] %d results for query=%r", len(results), query.text)
        return results
