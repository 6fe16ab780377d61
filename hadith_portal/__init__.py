"""Hadith content access: remote API first, bundled corpus as fallback."""

from .corpus import LocalCorpus, get_corpus
from .models import Book, Collection, ItemPage, RandomPick, TextItem
from .router import SourceRouter, create_router

__all__ = [
    "Book",
    "Collection",
    "ItemPage",
    "LocalCorpus",
    "RandomPick",
    "SourceRouter",
    "TextItem",
    "create_router",
    "get_corpus",
]
