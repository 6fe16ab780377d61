"""HTTP client for the remote hadith API with bounded retries and polite rate limiting."""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

import requests
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_random_exponential

from .models import DEFAULT_GRADE, Book, Collection, ItemPage, TextItem
from .normalization import coerce_int, positive_int
from .reconcilers import api_book, api_collection, api_item, envelope_records

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
ITEM_LOOKUP_LIMIT = 100


class RemoteError(RuntimeError):
    """Base class for failures of the remote source; callers fall back locally."""


class RemoteUnavailable(RemoteError):
    """Raised on connection errors, timeouts and non-2xx responses."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500 or self.status_code == 429


class RemoteMalformed(RemoteError):
    """Raised when a response body does not have a recognisable shape."""


@dataclass
class RateLimiter:
    """Simple per-process rate limiter."""

    min_interval: float = 0.0
    jitter: float = 0.0
    _last_call: Optional[float] = None

    def wait(self) -> None:
        now = time.monotonic()
        if self._last_call is not None:
            elapsed = now - self._last_call
            target = self.min_interval + random.uniform(0, self.jitter)
            if elapsed < target:
                time.sleep(target - elapsed)
        self._last_call = time.monotonic()


class Envelope(NamedTuple):
    records: List[Mapping]
    total: int
    page: int
    total_pages: int


def unwrap_envelope(payload: Any) -> Envelope:
    """Accept a bare array or an ``{items|data|hadiths: [...], total, page, totalPages}`` mapping."""
    records = envelope_records(payload)
    if records is None:
        raise RemoteMalformed(f"Unexpected response shape: {type(payload).__name__}")
    meta = payload if isinstance(payload, Mapping) else {}
    total = coerce_int(meta.get("total"))
    if total is None or total < len(records):
        total = len(records)
    page = positive_int(meta.get("page")) or 1
    total_pages = coerce_int(meta.get("totalPages"))
    if total_pages is None:
        limit = positive_int(meta.get("limit")) or len(records)
        total_pages = math.ceil(total / limit) if limit else 0
    return Envelope(records=records, total=total, page=page, total_pages=max(total_pages, 0))


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, RemoteUnavailable) and exc.transient


class RemoteClient:
    """Minimal JSON client for a sunnah.com-style API."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        retry_attempts: int = 2,
        rate_limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": "HadithPortal/0.1",
            "Accept": "application/json",
        })
        if api_key:
            self._session.headers["x-api-key"] = api_key
        self._rate_limiter = rate_limiter or RateLimiter()
        self._retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(max(1, retry_attempts)),
            wait=wait_random_exponential(multiplier=0.25, max=2),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        )

    # transport ------------------------------------------------------
    def _get_once(self, path: str, params: Dict[str, Any], timeout: float) -> Any:
        self._rate_limiter.wait()
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self._session.get(url, params=params, timeout=timeout)
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"Request to {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise RemoteUnavailable(f"HTTP {response.status_code} for {url}", response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteMalformed(f"Response from {url} is not JSON") from exc

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, *, timeout: Optional[float] = None) -> Any:
        return self._retrying.copy()(self._get_once, path, params or {}, timeout or self.timeout)

    def ping(self, timeout: Optional[float] = None) -> None:
        """Single cheap request; raises ``RemoteError`` when the API is not usable."""
        self._get_once("collections", {"limit": 1}, timeout or self.timeout)

    # operations -------------------------------------------------------
    def list_collections(self) -> List[Collection]:
        envelope = unwrap_envelope(self.get_json("collections", {"limit": 100}))
        collections = [c for c in (api_collection(record) for record in envelope.records) if c is not None]
        if envelope.records and not collections:
            raise RemoteMalformed("No usable collection records in response")
        return collections

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        payload = self.get_json(f"collections/{collection_id}")
        collection = api_collection(_single_record(payload))
        if collection is None:
            raise RemoteMalformed(f"Unusable collection record for {collection_id}")
        return collection

    def list_books(self, collection_id: str) -> List[Book]:
        envelope = unwrap_envelope(self.get_json(f"collections/{collection_id}/books", {"limit": 500}))
        return [b for b in (api_book(record, collection_id) for record in envelope.records) if b is not None]

    def get_book(self, collection_id: str, book_number: int) -> Optional[Book]:
        payload = self.get_json(f"collections/{collection_id}/books/{book_number}")
        return api_book(_single_record(payload), collection_id)

    def list_items(
        self,
        collection_id: str,
        book_number: int,
        page: int = 1,
        limit: int = 20,
        *,
        default_grade: str = DEFAULT_GRADE,
    ) -> ItemPage:
        payload = self.get_json(
            f"collections/{collection_id}/books/{book_number}/hadiths",
            {"page": page, "limit": limit},
        )
        envelope = unwrap_envelope(payload)
        items = [
            item
            for item in (api_item(record, collection_id, book_number, default_grade) for record in envelope.records)
            if item is not None and item.collection_id == collection_id
        ]
        return _page(items, envelope, page)

    def get_item(self, collection_id: str, book_number: int, item_number: int) -> Optional[TextItem]:
        page = self.list_items(collection_id, book_number, 1, ITEM_LOOKUP_LIMIT)
        for item in page.items:
            if item.identity == (collection_id, book_number, item_number):
                return item
        return None

    def search(self, query: str, page: int = 1, limit: int = 20) -> ItemPage:
        envelope = unwrap_envelope(self.get_json("search", {"query": query, "page": page, "limit": limit}))
        items = [
            item
            for item in (api_item(record, "") for record in envelope.records)
            if item is not None and item.collection_id
        ]
        return _page(items, envelope, page)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "RemoteClient":  # pragma: no cover - convenience
        return self

    def __exit__(self, *exc_info: object) -> None:  # pragma: no cover - convenience
        self.close()


def _single_record(payload: Any) -> Any:
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        return payload["data"]
    records = envelope_records(payload)
    if records:
        return records[0]
    return payload


def _page(items: List[TextItem], envelope: Envelope, requested_page: int) -> ItemPage:
    return ItemPage(
        items=items,
        total=max(envelope.total, len(items)),
        page=envelope.page if envelope.page else requested_page,
        total_pages=envelope.total_pages,
    )


__all__ = [
    "RemoteError",
    "RemoteUnavailable",
    "RemoteMalformed",
    "RateLimiter",
    "RemoteClient",
    "Envelope",
    "unwrap_envelope",
]
