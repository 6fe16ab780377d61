"""Schema reconcilers mapping each upstream document shape onto the canonical model.

Every reconciler takes one source document and returns a ``Reconciliation``.
They never raise: a document that does not look like its schema produces an
empty reconciliation and a log line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import (
    COLLECTION_NAMES,
    DEFAULT_GRADE,
    Book,
    Collection,
    TextItem,
    attribution,
    grade,
    item_number,
    primary_text,
    secondary_text,
)
from .normalization import (
    coerce_int,
    normalize_slug,
    normalize_text,
    positive_int,
    strip_html,
    trailing_int,
)

LOGGER = logging.getLogger(__name__)

ENVELOPE_KEYS = ("items", "data", "hadiths", "collections", "books", "results")


@dataclass(frozen=True)
class Reconciliation:
    collection: Optional[Collection]
    books: List[Book] = field(default_factory=list)
    items: List[TextItem] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "Reconciliation":
        return cls(collection=None, books=[], items=[])

    def is_empty(self) -> bool:
        return self.collection is None


# -- shared helpers -------------------------------------------------------


def _mappings(value: Any) -> List[Mapping]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [entry for entry in value if isinstance(entry, Mapping)]
    return []


def _get(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, Mapping) else None


def _lang_entry(entries: Any, lang: str) -> Mapping:
    for entry in _mappings(entries):
        if normalize_slug(entry.get("lang")) == lang:
            return entry
    return {}


def _first_text(*candidates: Any) -> str:
    for candidate in candidates:
        text = normalize_text(candidate)
        if text:
            return text
    return ""


def envelope_records(payload: Any) -> Optional[List[Mapping]]:
    """Return the record list of a bare-array or enveloped payload, else ``None``."""
    if isinstance(payload, list):
        return _mappings(payload)
    if isinstance(payload, Mapping):
        for key in ENVELOPE_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return _mappings(value)
    return None


def build_item(
    raw: Mapping,
    *,
    collection_id: str,
    book_number: Optional[int],
    number: Optional[int],
    default_grade: str,
    chapter_id: Optional[int] = None,
    primary: Optional[str] = None,
    secondary: Optional[str] = None,
    graded: Optional[str] = None,
) -> Optional[TextItem]:
    """Create a ``TextItem`` or ``None`` when the entry has no identity or no text."""
    if number is None:
        LOGGER.debug("Dropping %s entry without an item number", collection_id)
        return None
    primary_value = primary if primary is not None else primary_text(raw)
    secondary_value = secondary if secondary is not None else secondary_text(raw)
    if not primary_value and not secondary_value:
        LOGGER.debug("Dropping %s #%s: no text in either language", collection_id, number)
        return None
    return TextItem(
        collection_id=collection_id,
        book_number=book_number or 1,
        item_number=number,
        primary_text=primary_value,
        secondary_text=secondary_value,
        grade=graded or grade(raw, default_grade),
        attribution=attribution(raw),
        chapter_id=chapter_id,
    )


def _collection(
    collection_id: str,
    *,
    title: str = "",
    author: str = "",
    total_books: int = 0,
    total_items: int = 0,
) -> Collection:
    return Collection(
        id=collection_id,
        display_name=title or COLLECTION_NAMES.get(collection_id, collection_id),
        author_name=author or None,
        total_books=max(total_books, 0),
        total_items=max(total_items, 0),
    )


def _dedupe_books(books: Iterable[Book]) -> List[Book]:
    seen: Dict[int, Book] = {}
    for book in books:
        seen.setdefault(book.number, book)
    return list(seen.values())


# -- hadith-json corpora (metadata / chapters / hadiths) ------------------


def _reconcile_envelope(
    document: Any,
    *,
    collection_id: Optional[str],
    default_grade: str,
    number_fields: Sequence[str],
    book_fields: Sequence[str],
    chapter_field: Optional[str],
) -> Reconciliation:
    if not isinstance(document, Mapping):
        LOGGER.warning("Expected a mapping document for %s, got %s", collection_id, type(document).__name__)
        return Reconciliation.empty()
    metadata = document.get("metadata") if isinstance(document.get("metadata"), Mapping) else {}
    cid = normalize_slug(collection_id) or normalize_slug(document.get("name")) or normalize_slug(metadata.get("name"))
    if not cid:
        LOGGER.warning("Cannot reconcile document without a collection id")
        return Reconciliation.empty()

    english_meta = _get(metadata, "english")
    arabic_meta = _get(metadata, "arabic")
    title = _first_text(_get(english_meta, "title"), _get(arabic_meta, "title"), metadata.get("title"))
    author = _first_text(_get(english_meta, "author"), _get(arabic_meta, "author"), metadata.get("author"))

    books: List[Book] = []
    for chapter in _mappings(document.get("chapters")):
        number = positive_int(chapter.get("id"))
        if number is None:
            continue
        books.append(
            Book(
                collection_id=cid,
                number=number,
                title=_first_text(chapter.get("english"), chapter.get("arabic")) or f"Book {number}",
                item_count=0,
            )
        )

    items: List[TextItem] = []
    for raw in _mappings(document.get("hadiths")):
        chapter = positive_int(raw.get(chapter_field)) if chapter_field else None
        book_number = chapter
        for book_field in book_fields:
            if book_number is not None:
                break
            book_number = positive_int(raw.get(book_field))
        item = build_item(
            raw,
            collection_id=cid,
            book_number=book_number,
            number=item_number(raw, number_fields),
            default_grade=default_grade,
            chapter_id=chapter,
        )
        if item is not None:
            items.append(item)

    books = _dedupe_books(books)
    collection = _collection(cid, title=title, author=author, total_books=len(books), total_items=len(items))
    return Reconciliation(collection=collection, books=books, items=items)


def reconcile_hadith_json(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Nested-English corpora: ``idInBook`` numbering, ``chapterId`` books."""
    return _reconcile_envelope(
        document,
        collection_id=collection_id,
        default_grade=default_grade,
        number_fields=("idInBook", "id"),
        book_fields=("bookId",),
        chapter_field="chapterId",
    )


def reconcile_hadith_json_flat(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Flat-English corpora: global ``id`` numbering, ``bookId`` books."""
    return _reconcile_envelope(
        document,
        collection_id=collection_id,
        default_grade=default_grade,
        number_fields=("id", "hadithNumber"),
        book_fields=("bookId", "bookNumber"),
        chapter_field=None,
    )


# -- curated sample lists ---------------------------------------------------


def reconcile_curated(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Hand-curated ``[{hadithNumber, bookNumber, grade, arabic, english}]`` lists.

    The ``{hadiths, total, page, totalPages}`` page shape is accepted too.
    """
    cid = normalize_slug(collection_id) or normalize_slug(_get(document, "name"))
    records = envelope_records(document)
    if not cid or records is None:
        LOGGER.warning("Curated document for %r is not a record list", collection_id)
        return Reconciliation.empty()
    items: List[TextItem] = []
    for raw in records:
        item = build_item(
            raw,
            collection_id=cid,
            book_number=positive_int(raw.get("bookNumber")),
            number=item_number(raw, ("hadithNumber", "id")),
            default_grade=default_grade,
        )
        if item is not None:
            items.append(item)
    return Reconciliation(collection=_collection(cid, total_items=len(items)), books=[], items=items)


# -- catalog summaries --------------------------------------------------------


def reconcile_catalog(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Metadata-only collection summary with an optional ``bookList``."""
    if not isinstance(document, Mapping):
        return Reconciliation.empty()
    cid = normalize_slug(collection_id) or normalize_slug(document.get("name"))
    if not cid:
        return Reconciliation.empty()
    books = _dedupe_books(
        Book(
            collection_id=cid,
            number=number,
            title=_first_text(entry.get("title"), entry.get("name")) or f"Book {number}",
            item_count=0,
        )
        for entry in _mappings(document.get("bookList"))
        for number in [positive_int(entry.get("bookNumber"))]
        if number is not None
    )
    collection = _collection(
        cid,
        title=_first_text(document.get("title"), document.get("arabicTitle")),
        author=_first_text(document.get("author")),
        total_books=coerce_int(document.get("books")) or len(books),
        total_items=coerce_int(document.get("hadiths")) or 0,
    )
    return Reconciliation(collection=collection, books=books, items=[])


# -- sunnah.com scrape output (JSON Lines) ------------------------------------


def _scraped_text(raw: Mapping, language: str) -> str:
    for entry in _mappings(raw.get("texts")):
        if entry.get("language") == language:
            return normalize_text(entry.get("content"))
    return ""


def reconcile_scraped(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Records written by the sunnah.com scraper, one JSON object per line."""
    records = envelope_records(document)
    if records is None and isinstance(document, Mapping):
        records = _mappings(document.get("records"))
    if not records:
        return Reconciliation.empty()
    first = records[0]
    cid = normalize_slug(collection_id) or normalize_slug(first.get("collection_slug"))
    if not cid:
        return Reconciliation.empty()

    books: List[Book] = []
    items: List[TextItem] = []
    for raw in records:
        book_number = positive_int(raw.get("book_id"))
        if book_number is None:
            LOGGER.debug("Skipping scraped record in non-numeric book %r", raw.get("book_id"))
            continue
        books.append(
            Book(
                collection_id=cid,
                number=book_number,
                title=_first_text(raw.get("book_title_en"), raw.get("book_title_ar")) or f"Book {book_number}",
                item_count=0,
            )
        )
        graded = next(
            (normalize_text(entry.get("grade")) for entry in _mappings(raw.get("grading")) if entry.get("grade")),
            "",
        )
        item = build_item(
            raw,
            collection_id=cid,
            book_number=book_number,
            number=trailing_int(raw.get("hadith_num_in_book")) or trailing_int(raw.get("hadith_num_global")),
            default_grade=default_grade,
            primary=_scraped_text(raw, "en"),
            secondary=_scraped_text(raw, "ar"),
            graded=graded or None,
        )
        if item is not None:
            items.append(item)

    books = _dedupe_books(books)
    collection = _collection(
        cid,
        title=_first_text(first.get("collection_name")),
        total_books=len(books),
        total_items=len(items),
    )
    return Reconciliation(collection=collection, books=books, items=items)


# -- graded translation exports ---------------------------------------------


def reconcile_graded(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Exports keyed by ``translation``/``hadith`` with ``grades`` and ``gradings`` lists."""
    if not isinstance(document, Mapping):
        return Reconciliation.empty()
    cid = normalize_slug(collection_id) or normalize_slug(document.get("name"))
    if not cid:
        return Reconciliation.empty()
    books = _dedupe_books(
        Book(
            collection_id=cid,
            number=number,
            title=_first_text(entry.get("name"), entry.get("arabicName")) or f"Book {number}",
            item_count=0,
        )
        for entry in _mappings(document.get("books"))
        for number in [positive_int(entry.get("number"))]
        if number is not None
    )
    items = [
        item
        for raw in _mappings(document.get("records"))
        for item in [
            build_item(
                raw,
                collection_id=cid,
                book_number=positive_int(raw.get("book")),
                number=item_number(raw, ("number", "hadithNumber")),
                default_grade=default_grade,
            )
        ]
        if item is not None
    ]
    collection = _collection(
        cid,
        title=_first_text(document.get("title"), document.get("arabicTitle")),
        author=_first_text(document.get("author")),
        total_books=len(books),
        total_items=len(items),
    )
    return Reconciliation(collection=collection, books=books, items=items)


# -- sunnah.com API records -------------------------------------------------


def api_collection(record: Any) -> Optional[Collection]:
    if not isinstance(record, Mapping):
        return None
    cid = normalize_slug(record.get("name")) or normalize_slug(record.get("id"))
    if not cid:
        return None
    english = _lang_entry(record.get("collection"), "en")
    arabic = _lang_entry(record.get("collection"), "ar")
    total_items = next(
        (
            number
            for key in ("totalItems", "totalAvailableHadith", "totalHadith", "hadiths")
            for number in [coerce_int(record.get(key))]
            if number is not None
        ),
        0,
    )
    return _collection(
        cid,
        title=_first_text(english.get("title"), record.get("displayName"), record.get("title"), arabic.get("title")),
        author=_first_text(record.get("authorName"), record.get("author")),
        total_books=coerce_int(record.get("totalBooks")) or coerce_int(record.get("books")) or 0,
        total_items=total_items,
    )


def api_book(record: Any, collection_id: str) -> Optional[Book]:
    if not isinstance(record, Mapping):
        return None
    number = positive_int(record.get("bookNumber")) or positive_int(record.get("number"))
    if number is None:
        return None
    english = _lang_entry(record.get("book"), "en")
    arabic = _lang_entry(record.get("book"), "ar")
    owner = record.get("collectionId") or record.get("collection")
    return Book(
        collection_id=normalize_slug(owner) or normalize_slug(collection_id),
        number=number,
        title=_first_text(english.get("name"), record.get("title"), record.get("name"), arabic.get("name"))
        or f"Book {number}",
        item_count=coerce_int(record.get("numberOfHadith")) or coerce_int(record.get("itemCount")) or 0,
    )


def api_item(
    record: Any,
    collection_id: str,
    book_number: Optional[int] = None,
    default_grade: str = DEFAULT_GRADE,
) -> Optional[TextItem]:
    if not isinstance(record, Mapping):
        return None
    english = _lang_entry(record.get("hadith"), "en")
    arabic = _lang_entry(record.get("hadith"), "ar")
    graded = next(
        (
            normalize_text(entry.get("grade"))
            for source in (english, arabic)
            for entry in _mappings(source.get("grades"))
            if normalize_text(entry.get("grade"))
        ),
        "",
    )
    owner = record.get("collectionId") or record.get("collection")
    return build_item(
        record,
        collection_id=normalize_slug(owner) or normalize_slug(collection_id),
        book_number=positive_int(record.get("bookNumber")) or book_number,
        number=item_number(record),
        default_grade=default_grade,
        chapter_id=positive_int(record.get("chapterId")),
        primary=strip_html(english.get("body")) or primary_text(record),
        secondary=strip_html(arabic.get("body")) or secondary_text(record),
        graded=graded or None,
    )


def reconcile_sunnah_api(
    document: Any, *, collection_id: Optional[str] = None, default_grade: str = DEFAULT_GRADE
) -> Reconciliation:
    """Snapshot of API responses: ``{collection, books, hadiths}``, each possibly enveloped."""
    if not isinstance(document, Mapping):
        return Reconciliation.empty()
    collection = api_collection(document.get("collection"))
    cid = normalize_slug(collection_id) or (collection.id if collection else "")
    if not cid:
        return Reconciliation.empty()
    books = _dedupe_books(
        book
        for record in envelope_records(document.get("books")) or []
        for book in [api_book(record, cid)]
        if book is not None and book.collection_id == cid
    )
    items = [
        item
        for record in envelope_records(document.get("hadiths")) or []
        for item in [api_item(record, cid, default_grade=default_grade)]
        if item is not None and item.collection_id == cid
    ]
    if collection is None or collection.id != cid:
        collection = _collection(cid)
    collection = collection.model_copy(
        update={
            "total_books": collection.total_books or len(books),
            "total_items": collection.total_items or len(items),
        }
    )
    return Reconciliation(collection=collection, books=books, items=items)


Reconciler = Callable[..., Reconciliation]

RECONCILERS: Dict[str, Reconciler] = {
    "hadith_json": reconcile_hadith_json,
    "hadith_json_flat": reconcile_hadith_json_flat,
    "curated": reconcile_curated,
    "catalog": reconcile_catalog,
    "scraped": reconcile_scraped,
    "graded": reconcile_graded,
    "sunnah_api": reconcile_sunnah_api,
}


def detect_schema(document: Any) -> Optional[str]:
    """Best-effort guess of the schema tag for an untagged document."""
    if isinstance(document, list):
        first = next(iter(_mappings(document)), {})
        if "texts" in first or "hadith_num_in_book" in first:
            return "scraped"
        if isinstance(first.get("hadith"), list):
            return "sunnah_api"
        return "curated" if first else None
    if not isinstance(document, Mapping):
        return None
    if "metadata" in document and "hadiths" in document:
        first = next(iter(_mappings(document.get("hadiths"))), {})
        return "hadith_json" if isinstance(first.get("english"), Mapping) else "hadith_json_flat"
    if "records" in document:
        first = next(iter(_mappings(document.get("records"))), {})
        return "scraped" if "texts" in first else "graded"
    if "collection" in document and ("books" in document or "hadiths" in document):
        return "sunnah_api"
    if "bookList" in document or isinstance(document.get("books"), int):
        return "catalog"
    if isinstance(document.get("hadiths"), list):
        return "curated"
    return None


def reconcile(
    document: Any,
    schema: Optional[str] = None,
    *,
    collection_id: Optional[str] = None,
    default_grade: str = DEFAULT_GRADE,
) -> Reconciliation:
    tag = schema or detect_schema(document)
    reconciler = RECONCILERS.get(tag or "")
    if reconciler is None:
        LOGGER.warning("No reconciler for schema %r (collection %r)", tag, collection_id)
        return Reconciliation.empty()
    return reconciler(document, collection_id=collection_id, default_grade=default_grade)


__all__ = [
    "Reconciliation",
    "RECONCILERS",
    "envelope_records",
    "build_item",
    "reconcile",
    "detect_schema",
    "reconcile_hadith_json",
    "reconcile_hadith_json_flat",
    "reconcile_curated",
    "reconcile_catalog",
    "reconcile_scraped",
    "reconcile_graded",
    "reconcile_sunnah_api",
    "api_collection",
    "api_book",
    "api_item",
]
