"""Remote-first, local-fallback routing of every content operation."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from .config import Settings, get_settings
from .corpus import DEFAULT_PAGE_SIZE, LocalCorpus, check_paging, get_corpus
from .models import Book, Collection, ItemPage, RandomPick, TextItem
from .normalization import normalize_slug, positive_int
from .probe import AvailabilityProber
from .random_pick import RandomComposer
from .remote import RateLimiter, RemoteClient, RemoteError, RemoteUnavailable

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

REMOTE = "remote"
LOCAL = "local"
REMOTE_SEARCH_PAGE_SIZE = 100


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    call: Callable[[], T]
    requires_remote: bool = False


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """Value returned by a pipeline and the strategy that produced it."""

    value: T
    source: Optional[str]
    remote_available: bool
    errors: Tuple[str, ...] = field(default_factory=tuple)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, ItemPage):
        return not value.items
    if isinstance(value, (list, tuple)):
        return not value
    return False


def run_pipeline(
    operation: str,
    strategies: Sequence[Strategy[T]],
    *,
    remote_available: bool,
    on_remote_error: Optional[Callable[[RemoteError], None]] = None,
) -> Resolution[T]:
    """Try strategies in order; the first non-empty value wins.

    Strategies that need the remote are skipped when it is unavailable. A
    ``RemoteError`` moves on to the next strategy; any other exception
    propagates. The last strategy's value is returned even when empty.
    """
    value: Any = None
    source: Optional[str] = None
    errors: List[str] = []
    last = len(strategies) - 1
    for index, strategy in enumerate(strategies):
        if strategy.requires_remote and not remote_available:
            continue
        try:
            value = strategy.call()
        except RemoteError as exc:
            LOGGER.warning("%s via %s failed, falling back: %s", operation, strategy.name, exc)
            errors.append(f"{strategy.name}: {exc}")
            if on_remote_error is not None:
                on_remote_error(exc)
            continue
        source = strategy.name
        if index == last or not is_empty(value):
            break
        LOGGER.debug("%s via %s returned nothing", operation, strategy.name)
    return Resolution(value=value, source=source, remote_available=remote_available, errors=tuple(errors))


def _search_all(client: RemoteClient, query: str) -> List[TextItem]:
    """Every remote hit for ``query``, following the page count the API reports."""
    hits: List[TextItem] = []
    page = 1
    while True:
        result = client.search(query, page, REMOTE_SEARCH_PAGE_SIZE)
        hits.extend(result.items)
        if not result.items or page >= result.total_pages:
            return hits
        page += 1


class SourceRouter:
    """Single entry point used by the HTTP API and the CLI.

    Each operation probes the remote once, asks it first when available and
    falls back to the bundled corpus on failure or an empty answer. Contract
    violations (bad paging, bad limits) raise ``ValueError`` before any source
    is consulted.
    """

    def __init__(
        self,
        corpus: LocalCorpus,
        client: Optional[RemoteClient] = None,
        prober: Optional[AvailabilityProber] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.corpus = corpus
        self.client = client
        self.prober = prober or AvailabilityProber(client)
        self.rng = rng or random.Random()

    def remote_available(self) -> bool:
        return self.client is not None and self.prober.probe()

    def _on_remote_error(self, exc: RemoteError) -> None:
        if isinstance(exc, RemoteUnavailable) and exc.transient:
            self.prober.mark_unavailable()

    def resolve(
        self,
        operation: str,
        remote_call: Optional[Callable[[], T]],
        local_call: Callable[[], T],
    ) -> Resolution[T]:
        strategies: List[Strategy[T]] = []
        if remote_call is not None:
            strategies.append(Strategy(REMOTE, remote_call, requires_remote=True))
        strategies.append(Strategy(LOCAL, local_call))
        available = remote_call is not None and self.remote_available()
        return run_pipeline(operation, strategies, remote_available=available, on_remote_error=self._on_remote_error)

    # operations -------------------------------------------------------
    def get_collections(self) -> List[Collection]:
        client = self.client
        remote = (lambda: client.list_collections()) if client else None
        return self.resolve("get_collections", remote, self.corpus.list_collections).value

    def get_collection(self, collection_id: Any) -> Optional[Collection]:
        cid = normalize_slug(collection_id)
        if not cid:
            return None
        client = self.client
        remote = (lambda: client.get_collection(cid)) if client else None
        return self.resolve("get_collection", remote, lambda: self.corpus.get_collection(cid)).value

    def get_books(self, collection_id: Any) -> List[Book]:
        cid = normalize_slug(collection_id)
        client = self.client
        remote = (lambda: client.list_books(cid)) if client and cid else None
        return self.resolve("get_books", remote, lambda: self.corpus.list_books(cid)).value

    def get_book(self, collection_id: Any, book_number: Any) -> Optional[Book]:
        cid = normalize_slug(collection_id)
        number = positive_int(book_number)
        if not cid or number is None:
            return None
        client = self.client
        remote = (lambda: client.get_book(cid, number)) if client else None
        return self.resolve("get_book", remote, lambda: self.corpus.get_book(cid, number)).value

    def get_items(
        self,
        collection_id: Any,
        book_number: Any = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ItemPage:
        check_paging(page, page_size)
        cid = normalize_slug(collection_id)
        number = positive_int(book_number)
        client = self.client
        # The remote API only lists hadith per book.
        remote = (lambda: client.list_items(cid, number, page, page_size)) if client and cid and number else None
        return self.resolve(
            "get_items", remote, lambda: self.corpus.list_items(cid, book_number, page, page_size)
        ).value

    def get_item(self, collection_id: Any, book_number: Any, item_number: Any) -> Optional[TextItem]:
        cid = normalize_slug(collection_id)
        book = positive_int(book_number)
        number = positive_int(item_number)
        if not cid or book is None or number is None:
            return None
        client = self.client
        remote = (lambda: client.get_item(cid, book, number)) if client else None
        return self.resolve("get_item", remote, lambda: self.corpus.find_item(cid, book, number)).value

    def search(self, query: str, limit: Optional[int] = None) -> List[TextItem]:
        if limit is not None and (not isinstance(limit, int) or limit < 1):
            raise ValueError(f"limit must be an integer >= 1, got {limit!r}")
        text = (query or "").strip()
        if not text:
            return []
        client = self.client
        if client is None:
            remote = None
        elif limit is None:
            remote = lambda: _search_all(client, text)
        else:
            remote = lambda: client.search(text, 1, limit).items
        return self.resolve("search", remote, lambda: self.corpus.search(text, limit)).value

    def search_page(self, query: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> ItemPage:
        check_paging(page, page_size)
        text = (query or "").strip()
        if not text:
            return ItemPage.empty(page)
        client = self.client
        remote = (lambda: client.search(text, page, page_size)) if client else None
        return self.resolve("search", remote, lambda: self.corpus.search_page(text, page, page_size)).value

    def get_random_item(self) -> Optional[RandomPick]:
        return RandomComposer(self, rng=self.rng).compose()

    def status(self) -> dict:
        return {
            "remote_enabled": self.client is not None,
            "remote_available": self.remote_available(),
            "corpus": self.corpus.status(),
        }


def create_router(settings: Optional[Settings] = None, *, offline: bool = False) -> SourceRouter:
    """Wire corpus, client and prober from settings."""
    settings = settings or get_settings()
    if offline:
        settings = settings.offline()
    corpus = get_corpus(settings.data_dir)
    client = None
    if settings.remote_enabled:
        client = RemoteClient(
            settings.api_url,
            api_key=settings.api_key,
            timeout=settings.api_timeout,
            retry_attempts=settings.retry_attempts,
            rate_limiter=RateLimiter(min_interval=settings.min_interval),
        )
    prober = AvailabilityProber(client, timeout=settings.probe_timeout, ttl=settings.probe_ttl)
    return SourceRouter(corpus, client, prober)


__all__ = ["Strategy", "Resolution", "run_pipeline", "is_empty", "SourceRouter", "create_router"]
