"""Command-line entry point for browsing hadith through the source router."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from .config import LOG_FORMAT, Settings, get_settings
from .corpus import DEFAULT_PAGE_SIZE
from .models import CanonicalModel, format_reference, parse_reference
from .router import SourceRouter, create_router

LOGGER = logging.getLogger(__name__)


def _emit(payload: Any) -> None:
    if isinstance(payload, CanonicalModel):
        payload = payload.to_json_dict()
    elif isinstance(payload, list):
        payload = [entry.to_json_dict() if isinstance(entry, CanonicalModel) else entry for entry in payload]
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _not_found(what: str) -> int:
    print(f"{what} not found", file=sys.stderr)
    return 1


def cmd_collections(router: SourceRouter, args: argparse.Namespace) -> int:
    _emit(router.get_collections())
    return 0


def cmd_books(router: SourceRouter, args: argparse.Namespace) -> int:
    _emit(router.get_books(args.collection))
    return 0


def cmd_items(router: SourceRouter, args: argparse.Namespace) -> int:
    _emit(router.get_items(args.collection, args.book, args.page, args.limit))
    return 0


def cmd_get(router: SourceRouter, args: argparse.Namespace) -> int:
    if args.book is None and args.number is None:
        triple = parse_reference(args.collection)
        if triple is None:
            return _not_found(f"Reference {args.collection!r}")
        collection, book, number = triple
    else:
        collection, book, number = args.collection, args.book, args.number
    item = router.get_item(collection, book, number)
    if item is None:
        return _not_found(f"Hadith {collection} {book}:{number}")
    LOGGER.debug("Resolved %s", format_reference(item.collection_id, item.book_number, item.item_number))
    _emit(item)
    return 0


def cmd_search(router: SourceRouter, args: argparse.Namespace) -> int:
    _emit(router.search_page(args.query, args.page, args.limit))
    return 0


def cmd_random(router: SourceRouter, args: argparse.Namespace) -> int:
    pick = router.get_random_item()
    if pick is None:
        return _not_found("Hadith")
    _emit(pick)
    return 0


def cmd_serve(router: SourceRouter, args: argparse.Namespace) -> int:  # pragma: no cover - dev runner
    from .http_server import create_app

    settings: Settings = args.settings
    app = create_app(router)
    app.run(host=args.host or settings.host, port=args.port or settings.port)
    return 0


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser_obj = argparse.ArgumentParser(prog="hadith-portal", description="Browse hadith collections")
    parser_obj.add_argument("--offline", action="store_true", help="Use only the bundled corpus.")
    parser_obj.add_argument("--log-level", default=None, help="Override HADITH_PORTAL_LOG_LEVEL.")
    commands = parser_obj.add_subparsers(dest="command", required=True)

    commands.add_parser("collections", help="List collections.").set_defaults(handler=cmd_collections)

    books = commands.add_parser("books", help="List the books of a collection.")
    books.add_argument("collection")
    books.set_defaults(handler=cmd_books)

    items = commands.add_parser("items", help="Page through the hadith of a collection or book.")
    items.add_argument("collection")
    items.add_argument("book", nargs="?", default=None)
    items.add_argument("--page", type=int, default=1)
    items.add_argument("--limit", type=int, default=DEFAULT_PAGE_SIZE)
    items.set_defaults(handler=cmd_items)

    get = commands.add_parser("get", help="Show one hadith, e.g. 'bukhari 1 7' or 'bukhari-1-7'.")
    get.add_argument("collection")
    get.add_argument("book", nargs="?", default=None)
    get.add_argument("number", nargs="?", default=None)
    get.set_defaults(handler=cmd_get)

    search = commands.add_parser("search", help="Substring search across collections.")
    search.add_argument("query")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--limit", type=int, default=DEFAULT_PAGE_SIZE)
    search.set_defaults(handler=cmd_search)

    commands.add_parser("random", help="Show a random hadith.").set_defaults(handler=cmd_random)

    serve = commands.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(handler=cmd_serve)
    return parser_obj.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, router: SourceRouter | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=(args.log_level or settings.log_level).upper(), format=LOG_FORMAT)
    args.settings = settings
    active = router or create_router(settings, offline=args.offline)
    try:
        return args.handler(active, args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
