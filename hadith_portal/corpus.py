"""In-memory store over the bundled hadith corpora."""

from __future__ import annotations

import json
import logging
import math
import random
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import DEFAULT_GRADE, Book, Collection, ItemPage, RandomPick, TextItem
from .normalization import normalize_slug, positive_int
from .reconcilers import Reconciliation, reconcile

LOGGER = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"
MANIFEST_NAME = "manifest.json"
DEFAULT_PAGE_SIZE = 20


class CorpusError(RuntimeError):
    """Raised when the corpus manifest itself cannot be read."""


def check_paging(page: int, page_size: int) -> None:
    if not isinstance(page, int) or page < 1:
        raise ValueError(f"page must be an integer >= 1, got {page!r}")
    if not isinstance(page_size, int) or page_size < 1:
        raise ValueError(f"page_size must be an integer >= 1, got {page_size!r}")


def paginate(items: Sequence[TextItem], page: int, page_size: int, *, fallback: bool = False) -> ItemPage:
    check_paging(page, page_size)
    total = len(items)
    start = (page - 1) * page_size
    return ItemPage(
        items=list(items[start : start + page_size]),
        total=total,
        page=page,
        total_pages=math.ceil(total / page_size),
        fallback=fallback,
    )


def _read_document(path: Path) -> Any:
    if path.suffix == ".jsonl":
        records = []
        with path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as exc:
                    raise ValueError(f"Invalid JSON at {path}:{line_number}: {exc}") from exc
        return records
    return json.loads(path.read_text(encoding="utf-8"))


def load_manifest(data_dir: Path) -> Dict[str, Any]:
    manifest_path = data_dir / MANIFEST_NAME
    try:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CorpusError(f"Cannot read corpus manifest {manifest_path}: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("sources"), list):
        raise CorpusError(f"Corpus manifest {manifest_path} has no 'sources' list")
    return payload


def load_fragments(data_dir: Path, manifest: Dict[str, Any]) -> List[Reconciliation]:
    """Run one reconciler per manifest source, in declaration order."""
    fragments: List[Reconciliation] = []
    for source in manifest["sources"]:
        if not isinstance(source, dict) or not source.get("file"):
            LOGGER.warning("Ignoring malformed manifest entry %r", source)
            continue
        path = data_dir / source["file"]
        try:
            document = _read_document(path)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Skipping corpus file %s: %s", path, exc)
            continue
        documents = document if source.get("many") and isinstance(document, list) else [document]
        for entry in documents:
            try:
                fragment = reconcile(
                    entry,
                    source.get("schema"),
                    collection_id=source.get("collection"),
                    default_grade=source.get("default_grade") or DEFAULT_GRADE,
                )
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping corpus source %s: %s", path.name, exc)
                continue
            if fragment.is_empty():
                LOGGER.warning("Source %s produced no collection", path.name)
                continue
            fragments.append(fragment)
    return fragments


@dataclass
class _Merged:
    collection: Collection
    books: Dict[int, Book] = field(default_factory=dict)
    items: List[TextItem] = field(default_factory=list)


def _merge_collection(existing: Collection, incoming: Collection) -> Collection:
    return existing.model_copy(
        update={
            "author_name": existing.author_name or incoming.author_name,
            "total_books": existing.total_books or incoming.total_books,
            "total_items": existing.total_items or incoming.total_items,
        }
    )


class LocalCorpus:
    """Read-only index over reconciled collections, books and items.

    Fragments describing the same collection id are merged in declaration
    order: the first fragment's metadata wins, books merge by number and items
    are concatenated (first occurrence of an identity wins).
    """

    def __init__(
        self,
        fragments: Iterable[Reconciliation],
        *,
        default_collection: Optional[str] = None,
        sources: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self._collections: List[Collection] = []
        self._by_id: Dict[str, Collection] = {}
        self._books: Dict[str, List[Book]] = {}
        self._items: Dict[str, List[TextItem]] = {}
        self._all_items: List[TextItem] = []
        self._sources = sources or []
        self._index(fragments)
        default = normalize_slug(default_collection)
        if default not in self._by_id:
            default = self._collections[0].id if self._collections else ""
        self.default_collection = default

    @classmethod
    def from_directory(cls, data_dir: Path | str | None = None) -> "LocalCorpus":
        directory = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        if not directory.exists():
            raise FileNotFoundError(f"Corpus data directory not found: {directory}")
        manifest = load_manifest(directory)
        fragments = load_fragments(directory, manifest)
        corpus = cls(
            fragments,
            default_collection=manifest.get("default_collection"),
            sources=[source for source in manifest["sources"] if isinstance(source, dict)],
        )
        LOGGER.info(
            "Loaded %d collections and %d hadiths from %s",
            len(corpus._collections),
            len(corpus._all_items),
            directory,
        )
        return corpus

    def _index(self, fragments: Iterable[Reconciliation]) -> None:
        merged: Dict[str, _Merged] = {}
        for fragment in fragments:
            if fragment.collection is None:
                continue
            cid = fragment.collection.id
            state = merged.get(cid)
            if state is None:
                state = merged[cid] = _Merged(collection=fragment.collection)
            else:
                state.collection = _merge_collection(state.collection, fragment.collection)
            for book in fragment.books:
                state.books.setdefault(book.number, book)
            state.items.extend(fragment.items)

        for cid, state in merged.items():
            items: List[TextItem] = []
            seen = set()
            for item in state.items:
                if item.identity in seen:
                    continue
                seen.add(item.identity)
                items.append(item)

            counts = Counter(item.book_number for item in items)
            for number in counts:
                if number not in state.books:
                    state.books[number] = Book(collection_id=cid, number=number, title=f"Book {number}")
            books = [
                book.model_copy(update={"item_count": counts.get(book.number, 0)}) if items else book
                for book in sorted(state.books.values(), key=lambda b: b.number)
            ]
            collection = state.collection
            if items:
                collection = collection.model_copy(update={"total_books": len(books), "total_items": len(items)})
            elif not collection.total_books:
                collection = collection.model_copy(update={"total_books": len(books)})

            self._collections.append(collection)
            self._by_id[cid] = collection
            self._books[cid] = books
            self._items[cid] = items
            self._all_items.extend(items)

    # public API -------------------------------------------------
    def list_collections(self) -> List[Collection]:
        return list(self._collections)

    def get_collection(self, collection_id: Any) -> Optional[Collection]:
        return self._by_id.get(normalize_slug(collection_id))

    def list_books(self, collection_id: Any) -> List[Book]:
        """Books of a collection; an unknown id yields the default collection's books."""
        cid = normalize_slug(collection_id)
        if cid not in self._books:
            LOGGER.debug("Unknown collection %r; listing books of %s", collection_id, self.default_collection)
            cid = self.default_collection
        return list(self._books.get(cid, []))

    def get_book(self, collection_id: Any, book_number: Any) -> Optional[Book]:
        number = positive_int(book_number)
        if number is None:
            return None
        for book in self._books.get(normalize_slug(collection_id), []):
            if book.number == number:
                return book
        return None

    def list_items(
        self,
        collection_id: Any,
        book_number: Any = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ItemPage:
        """Page through a collection, optionally restricted to one book.

        When the book filter matches nothing, the whole collection is paged
        instead and the page is marked with ``fallback=True``.
        """
        check_paging(page, page_size)
        items = self._items.get(normalize_slug(collection_id), [])
        if not items:
            return ItemPage.empty(page)
        if book_number is None:
            return paginate(items, page, page_size)
        number = positive_int(book_number)
        matched = [item for item in items if item.book_number == number]
        if matched:
            return paginate(matched, page, page_size)
        LOGGER.debug("Book %r of %s has no hadith; paging the whole collection", book_number, collection_id)
        return paginate(items, page, page_size, fallback=True)

    def find_item(self, collection_id: Any, book_number: Any, item_number: Any) -> Optional[TextItem]:
        cid = normalize_slug(collection_id)
        book = positive_int(book_number)
        number = positive_int(item_number)
        if book is None or number is None:
            return None
        for item in self._items.get(cid, []):
            if item.book_number == book and item.item_number == number:
                return item
        return None

    def search(self, query: str, limit: Optional[int] = None) -> List[TextItem]:
        """Substring search across every collection, in declaration order.

        English text is matched case-insensitively; Arabic text by raw
        containment.
        """
        if limit is not None and (not isinstance(limit, int) or limit < 1):
            raise ValueError(f"limit must be an integer >= 1, got {limit!r}")
        query = (query or "").strip()
        if not query:
            return []
        lowered = query.lower()
        hits: List[TextItem] = []
        for item in self._all_items:
            if lowered in item.primary_text.lower() or query in item.secondary_text:
                hits.append(item)
                if limit is not None and len(hits) >= limit:
                    break
        return hits

    def search_page(self, query: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> ItemPage:
        check_paging(page, page_size)
        return paginate(self.search(query), page, page_size)

    def random_item(self, rng: Optional[random.Random] = None) -> Optional[RandomPick]:
        """Uniform pick over every bundled hadith, with its own parents."""
        if not self._all_items:
            return None
        item = (rng or random).choice(self._all_items)
        collection = self._by_id[item.collection_id]
        book = self.get_book(item.collection_id, item.book_number)
        if book is None:  # pragma: no cover - books are synthesised for every item
            book = Book(collection_id=item.collection_id, number=item.book_number, title=f"Book {item.book_number}")
        return RandomPick(item=item, collection=collection, book=book)

    def status(self) -> Dict[str, object]:
        return {
            "collections": len(self._collections),
            "items": len(self._all_items),
            "default_collection": self.default_collection,
            "sources": [source.get("file") for source in self._sources],
        }


@lru_cache(maxsize=None)
def _cached_corpus(data_dir: str) -> LocalCorpus:
    return LocalCorpus.from_directory(data_dir)


def get_corpus(data_dir: Path | str | None = None) -> LocalCorpus:
    """Return a cached corpus instance."""

    return _cached_corpus(str(Path(data_dir) if data_dir else DEFAULT_DATA_DIR))


__all__ = [
    "CorpusError",
    "DEFAULT_DATA_DIR",
    "DEFAULT_PAGE_SIZE",
    "LocalCorpus",
    "check_paging",
    "get_corpus",
    "load_fragments",
    "load_manifest",
    "paginate",
]
