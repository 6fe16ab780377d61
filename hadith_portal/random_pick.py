"""Random hadith selection through the source router."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Optional, Sequence

from .models import MAJOR_COLLECTIONS, RandomPick

if TYPE_CHECKING:  # pragma: no cover
    from .router import SourceRouter

LOGGER = logging.getLogger(__name__)

RANDOM_PAGE_SIZE = 50


class RandomComposer:
    """Pick collection, then book, then hadith, each uniformly.

    The six major collections are preferred when the router lists any of
    them. Every choice is restricted to children of the previous choice, so
    the returned item always belongs to the returned book and collection. If
    any step comes back empty the pick is delegated to the bundled corpus.
    """

    def __init__(
        self,
        router: "SourceRouter",
        *,
        rng: Optional[random.Random] = None,
        preferred: Sequence[str] = MAJOR_COLLECTIONS,
        page_size: int = RANDOM_PAGE_SIZE,
    ) -> None:
        self.router = router
        self.rng = rng or random.Random()
        self.preferred = tuple(preferred)
        self.page_size = page_size

    def compose(self) -> Optional[RandomPick]:
        collections = self.router.get_collections()
        if not collections:
            return None
        preferred = [c for c in collections if c.id in self.preferred]
        collection = self.rng.choice(preferred or collections)

        books = [b for b in self.router.get_books(collection.id) if b.collection_id == collection.id]
        if not books:
            return self._fallback(f"no books for {collection.id}")
        book = self.rng.choice(books)

        page = self.router.get_items(collection.id, book.number, 1, self.page_size)
        items = [i for i in page.items if i.collection_id == collection.id and i.book_number == book.number]
        if not items:
            return self._fallback(f"no hadith in {collection.id} book {book.number}")
        item = self.rng.choice(items)
        return RandomPick(item=item, collection=collection, book=book)

    def _fallback(self, reason: str) -> Optional[RandomPick]:
        LOGGER.debug("Random pick falling back to the local corpus: %s", reason)
        return self.router.corpus.random_item(self.rng)


__all__ = ["RandomComposer", "RANDOM_PAGE_SIZE"]
