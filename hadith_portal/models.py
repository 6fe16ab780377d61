"""Canonical record model shared by every source and consumer."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from .normalization import extract_narrator_name, normalize_slug, normalize_text, positive_int

DEFAULT_GRADE = "Sahih"

MAJOR_COLLECTIONS: Tuple[str, ...] = (
    "bukhari",
    "muslim",
    "abudawud",
    "tirmidhi",
    "nasai",
    "ibnmajah",
)

COLLECTION_NAMES = {
    "bukhari": "Sahih al-Bukhari",
    "muslim": "Sahih Muslim",
    "abudawud": "Sunan Abu Dawood",
    "tirmidhi": "Jami` at-Tirmidhi",
    "nasai": "Sunan an-Nasa'i",
    "ibnmajah": "Sunan Ibn Majah",
    "muwatta": "Muwatta Imam Malik",
    "riyadussalihin": "Riyad as-Salihin",
    "adab": "Al-Adab al-Mufrad",
    "shamaa-il": "Shamaa'il Tirmidhi",
    "mishkat": "Mishkat al-Masabih",
}

PRIMARY_TEXT_FIELDS: Tuple[str, ...] = ("primaryText", "english", "translation", "text")
SECONDARY_TEXT_FIELDS: Tuple[str, ...] = ("secondaryText", "arabic", "text", "hadith")
ITEM_NUMBER_FIELDS: Tuple[str, ...] = ("itemNumber", "hadithNumber", "idInBook", "id", "hadith")


class CanonicalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Collection(CanonicalModel):
    """A named compilation of hadith grouped into books."""

    id: str
    display_name: str
    author_name: Optional[str] = None
    total_books: int = 0
    total_items: int = 0

    @field_validator("id")
    @classmethod
    def lowercase_slug(cls, value: str) -> str:
        return normalize_slug(value)


class Book(CanonicalModel):
    collection_id: str
    number: int = Field(..., ge=1)
    title: str
    item_count: int = 0


class TextItem(CanonicalModel):
    """One hadith, identified by ``(collection_id, book_number, item_number)``."""

    collection_id: str
    book_number: int
    item_number: int
    primary_text: str = ""
    secondary_text: str = ""
    grade: str = DEFAULT_GRADE
    attribution: Optional[str] = None
    chapter_id: Optional[int] = None

    @field_validator("grade", mode="before")
    @classmethod
    def grade_never_empty(cls, value: Any) -> str:
        text = normalize_text(value)
        return text or DEFAULT_GRADE

    @computed_field(alias="referenceId")  # type: ignore[prop-decorator]
    @property
    def reference_id(self) -> str:
        return f"{self.collection_id}-{self.book_number}-{self.item_number}"

    @property
    def identity(self) -> Tuple[str, int, int]:
        return (self.collection_id, self.book_number, self.item_number)

    def has_text(self) -> bool:
        return bool(self.primary_text or self.secondary_text)


class ItemPage(CanonicalModel):
    items: List[TextItem] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 0
    # True when a book filter matched nothing and the whole collection was paged instead.
    fallback: bool = False

    @classmethod
    def empty(cls, page: int = 1) -> "ItemPage":
        return cls(items=[], total=0, page=page, total_pages=0)

    def __bool__(self) -> bool:
        return bool(self.items)


class RandomPick(CanonicalModel):
    item: TextItem
    collection: Collection
    book: Book


# -- field coalescing accessors -------------------------------------------


def _text_value(value: Any) -> str:
    if isinstance(value, str):
        return normalize_text(value)
    if isinstance(value, Mapping):
        nested = value.get("text")
        return normalize_text(nested) if isinstance(nested, str) else ""
    return ""


def _first_mapping(value: Any) -> Mapping:
    if isinstance(value, Sequence) and not isinstance(value, str) and value:
        first = value[0]
        if isinstance(first, Mapping):
            return first
    return {}


def coalesce_text(raw: Any, fields: Sequence[str]) -> str:
    if not isinstance(raw, Mapping):
        return ""
    for field in fields:
        text = _text_value(raw.get(field))
        if text:
            return text
    return ""


def primary_text(raw: Any) -> str:
    return coalesce_text(raw, PRIMARY_TEXT_FIELDS)


def secondary_text(raw: Any) -> str:
    return coalesce_text(raw, SECONDARY_TEXT_FIELDS)


def grade(raw: Any, default: str = DEFAULT_GRADE) -> str:
    fallback = normalize_text(default) or DEFAULT_GRADE
    if not isinstance(raw, Mapping):
        return fallback
    graded = normalize_text(_first_mapping(raw.get("grades")).get("grade"))
    if graded:
        return graded
    return normalize_text(raw.get("grade")) or fallback


def attribution(raw: Any) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    english = raw.get("english")
    candidates = [
        raw.get("attribution"),
        _first_mapping(raw.get("gradings")).get("narrator"),
        english.get("narrator") if isinstance(english, Mapping) else None,
        raw.get("narrator"),
    ]
    for candidate in candidates:
        name = extract_narrator_name(normalize_text(candidate))
        if name:
            return name
    return None


def item_number(raw: Any, fields: Sequence[str] = ITEM_NUMBER_FIELDS) -> Optional[int]:
    if not isinstance(raw, Mapping):
        return None
    for field in fields:
        number = positive_int(raw.get(field))
        if number is not None:
            return number
    return None


# -- display helpers --------------------------------------------------------


def display_name(collection: Union[str, Collection, Mapping, None]) -> str:
    if collection is None:
        return ""
    if isinstance(collection, Collection):
        return collection.display_name or COLLECTION_NAMES.get(collection.id, collection.id)
    if isinstance(collection, str):
        return COLLECTION_NAMES.get(normalize_slug(collection), collection)
    if isinstance(collection, Mapping):
        name = normalize_slug(collection.get("name"))
        if name in COLLECTION_NAMES:
            return COLLECTION_NAMES[name]
        return normalize_text(collection.get("name")) or normalize_text(collection.get("title"))
    return ""


def format_reference(collection: Union[str, Collection], book_number: int, item_number: int) -> str:
    return f"{display_name(collection)}, Book {book_number}, Hadith {item_number}"


def parse_reference(reference: Any) -> Optional[Tuple[str, int, int]]:
    """Parse ``"bukhari-1-7"`` back into its identity triple.

    Collection slugs may themselves contain hyphens (``shamaa-il``), so the
    two numbers are split off the right-hand side.
    """
    if not isinstance(reference, str):
        return None
    parts = reference.strip().rsplit("-", 2)
    if len(parts) != 3:
        return None
    collection_id = normalize_slug(parts[0])
    book_number = positive_int(parts[1])
    number = positive_int(parts[2])
    if not collection_id or book_number is None or number is None:
        return None
    return collection_id, book_number, number


def truncate_text(text: Optional[str], max_length: int = 150) -> Optional[str]:
    if not text or len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."


__all__ = [
    "DEFAULT_GRADE",
    "MAJOR_COLLECTIONS",
    "COLLECTION_NAMES",
    "Collection",
    "Book",
    "TextItem",
    "ItemPage",
    "RandomPick",
    "primary_text",
    "secondary_text",
    "grade",
    "attribution",
    "item_number",
    "display_name",
    "format_reference",
    "parse_reference",
    "truncate_text",
]
