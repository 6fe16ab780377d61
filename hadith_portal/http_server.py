"""Flask JSON API over the source router.

Endpoints:
- GET /health
- GET /api/collections
- GET /api/collections/<collection>
- GET /api/collections/<collection>/books
- GET /api/collections/<collection>/books/<book>
- GET /api/collections/<collection>/books/<book>/hadiths?page&limit  (alias: .../items)
- GET /api/collections/<collection>/books/<book>/hadiths/<number>
- GET /api/collections/<collection>/hadiths?page&limit
- GET /api/search?query&page&limit
- GET /api/random

List responses use the ``{items, total, page, totalPages}`` envelope so one
portal can serve as another's remote source.

Run:
  hadith-portal serve --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from flask import Flask, jsonify, request

from .corpus import DEFAULT_PAGE_SIZE
from .models import CanonicalModel, ItemPage
from .router import SourceRouter, create_router

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"'{name}' must be an integer, got {raw!r}") from exc


def _paging() -> tuple[int, int]:
    page = _int_arg("page", 1)
    limit = _int_arg("limit", DEFAULT_PAGE_SIZE)
    if limit > MAX_PAGE_SIZE:
        raise ValueError(f"'limit' must be <= {MAX_PAGE_SIZE}")
    return page, limit


def _listing(records: Iterable[CanonicalModel]) -> dict:
    items = [record.to_json_dict() for record in records]
    return {"items": items, "total": len(items), "page": 1, "totalPages": 1 if items else 0}


def _page(page: ItemPage) -> dict:
    return page.to_json_dict()


def _found(record: Optional[CanonicalModel], what: str) -> Any:
    if record is None:
        return jsonify({"error": f"{what} not found"}), 404
    return jsonify(record.to_json_dict())


def create_app(router: SourceRouter | None = None) -> Flask:
    app = Flask(__name__)
    app.json.ensure_ascii = False  # type: ignore[attr-defined]
    source = router or create_router()
    app.config["ROUTER"] = source

    @app.errorhandler(ValueError)
    def bad_request(exc: ValueError) -> Any:
        return jsonify({"error": str(exc)}), 400

    @app.get("/health")
    def health() -> Any:
        return jsonify({"ok": True, **source.status()})

    @app.get("/api/collections")
    def api_collections() -> Any:
        return jsonify(_listing(source.get_collections()))

    @app.get("/api/collections/<collection>")
    def api_collection(collection: str) -> Any:
        return _found(source.get_collection(collection), "Collection")

    @app.get("/api/collections/<collection>/books")
    def api_books(collection: str) -> Any:
        return jsonify(_listing(source.get_books(collection)))

    @app.get("/api/collections/<collection>/books/<book>")
    def api_book(collection: str, book: str) -> Any:
        return _found(source.get_book(collection, book), "Book")

    @app.get("/api/collections/<collection>/hadiths")
    def api_collection_items(collection: str) -> Any:
        page, limit = _paging()
        return jsonify(_page(source.get_items(collection, None, page, limit)))

    @app.get("/api/collections/<collection>/books/<book>/hadiths")
    @app.get("/api/collections/<collection>/books/<book>/items")
    def api_items(collection: str, book: str) -> Any:
        page, limit = _paging()
        return jsonify(_page(source.get_items(collection, book, page, limit)))

    @app.get("/api/collections/<collection>/books/<book>/hadiths/<number>")
    @app.get("/api/collections/<collection>/books/<book>/items/<number>")
    def api_item(collection: str, book: str, number: str) -> Any:
        return _found(source.get_item(collection, book, number), "Hadith")

    @app.get("/api/search")
    def api_search() -> Any:
        query = (request.args.get("query") or request.args.get("q") or "").strip()
        if not query:
            return jsonify({"error": "Missing 'query'"}), 400
        page, limit = _paging()
        return jsonify(_page(source.search_page(query, page, limit)))

    @app.get("/api/random")
    def api_random() -> Any:
        return _found(source.get_random_item(), "Hadith")

    return app


__all__ = ["create_app", "MAX_PAGE_SIZE"]
