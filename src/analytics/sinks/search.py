"""Elasticsearch search index client over the REST API (aiohttp)."""

import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from analytics.schemas.paging import Page, validate_paging
from analytics.sinks.deadline import call_with_deadline
from config.config import ElasticsearchSettings
from core.errors.exceptions import SearchIndexError, classify_http_status
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

SINK_NAME = "search"

INDEX_MAPPING = {
    "mappings": {
        "properties": {
            "eventId": {"type": "keyword"},
            "eventType": {"type": "keyword"},
            "userId": {"type": "keyword"},
            "sessionId": {"type": "keyword"},
            "source": {"type": "keyword"},
            "region": {"type": "keyword"},
            "timestamp": {"type": "date"},
            "payload": {"type": "object"},
        }
    }
}

# Fields the read API may search on
SEARCHABLE_FIELDS = frozenset({"eventType", "userId", "region", "source", "sessionId"})


class SearchIndex:
    """Async client for the analytics-events index.

    Documents are keyed by eventId so re-indexing a redelivered event
    overwrites the earlier copy.
    """

    def __init__(
        self,
        base_url: str,
        index: str = "analytics-events",
        request_timeout_seconds: float = 5.0,
        timeout_seconds: float | None = 5.0,
        username: str = "",
        password: str = "",
        session: aiohttp.ClientSession | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else ""
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"SearchIndex base_url must start with http:// or https://, got: {base_url!r}"
            )

        self.index = index
        self.request_timeout_seconds = request_timeout_seconds
        self.timeout_seconds = timeout_seconds
        self._auth = aiohttp.BasicAuth(username, password) if username else None
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(
        cls, settings: ElasticsearchSettings, timeout_seconds: float | None = 5.0
    ) -> "SearchIndex":
        return cls(
            settings.url,
            index=settings.index,
            request_timeout_seconds=settings.request_timeout_seconds,
            timeout_seconds=timeout_seconds,
            username=settings.username,
            password=settings.password,
        )

    async def __aenter__(self) -> "SearchIndex":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                auth=self._auth,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json_body: dict[str, Any] | None = None,
        allowed_statuses: tuple[int, ...] = (),
    ) -> tuple[int, dict[str, Any]]:
        """Issue one request; returns (status, body) for 2xx or allowed statuses."""
        session = self._ensure_session()
        url = f"{self.base_url}/{path.lstrip('/')}"

        async def _send() -> tuple[int, dict[str, Any]]:
            async with session.request(
                method,
                url,
                json=json_body,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout_seconds),
            ) as response:
                if response.status < 300 or response.status in allowed_statuses:
                    if method == "HEAD" or response.content_length == 0:
                        return response.status, {}
                    try:
                        return response.status, await response.json(content_type=None)
                    except ValueError as e:
                        raise SearchIndexError(
                            f"Search {operation} returned a non-JSON body ({response.status})",
                            status_code=response.status,
                            category=ErrorCategory.TRANSIENT,
                            cause=e,
                            context={"http_url": url, "http_method": method},
                        ) from e

                body = await response.text()
                raise SearchIndexError(
                    f"Search {operation} failed ({response.status}): {body[:500]}",
                    status_code=response.status,
                    category=classify_http_status(response.status),
                    context={"http_url": url, "http_method": method},
                )

        try:
            return await call_with_deadline(_send(), SINK_NAME, operation, self.timeout_seconds)
        except aiohttp.ClientError as e:
            raise SearchIndexError(
                f"Search {operation} connection error: {e}",
                category=ErrorCategory.TRANSIENT,
                cause=e,
            ) from e

    async def ensure_index(self) -> bool:
        """Create the index with its mapping if absent. Returns True when created."""
        status, _ = await self._request(
            "HEAD", quote(self.index), "index_exists", allowed_statuses=(404,)
        )
        if status != 404:
            return False

        status, body = await self._request(
            "PUT", quote(self.index), "create_index", INDEX_MAPPING, allowed_statuses=(400,)
        )
        if status == 400:
            error_type = (body.get("error") or {}).get("type") if isinstance(body, dict) else None
            if error_type != "resource_already_exists_exception":
                raise SearchIndexError(
                    f"Search create_index rejected: {body}",
                    status_code=400,
                    category=ErrorCategory.PERMANENT,
                )
            return False

        logger.info("Created search index %s", self.index)
        return True

    async def upsert(self, document: dict[str, Any]) -> None:
        """Index a document under its eventId (last writer wins)."""
        doc_id = document.get("eventId")
        if doc_id:
            path = f"{quote(self.index)}/_doc/{quote(str(doc_id), safe='')}"
            await self._request("PUT", path, "upsert", document)
        else:
            await self._request("POST", f"{quote(self.index)}/_doc", "upsert", document)

    async def search_by_field(
        self, field: str, value: str, page: int = 0, size: int = 20
    ) -> Page:
        """Exact-match term query, newest first."""
        if field not in SEARCHABLE_FIELDS:
            raise ValueError(f"Unsupported search field: {field}")
        validate_paging(page, size)

        query = {
            "query": {"term": {field: value}},
            "from": page * size,
            "size": size,
            "sort": [{"timestamp": {"order": "desc"}}],
            "track_total_hits": True,
        }
        _, body = await self._request(
            "POST", f"{quote(self.index)}/_search", "search", query
        )

        hits = body.get("hits", {})
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)

        return Page(
            content=[hit.get("_source", {}) for hit in hits.get("hits", [])],
            page=page,
            size=size,
            total_elements=int(total),
        )


__all__ = ["INDEX_MAPPING", "SEARCHABLE_FIELDS", "SearchIndex"]
