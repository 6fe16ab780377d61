from __future__ import annotations

import unittest
from unittest.mock import patch

from hadith_portal.config import Settings
from hadith_portal.corpus import get_corpus
from hadith_portal.models import Book, Collection, ItemPage, TextItem
from hadith_portal.remote import RemoteClient, RemoteMalformed, RemoteUnavailable
from hadith_portal.router import SourceRouter, Strategy, create_router, run_pipeline


class FakeProber:
    def __init__(self, available: bool) -> None:
        self.available = available
        self.probes = 0
        self.marked = 0

    def probe(self, timeout=None) -> bool:
        self.probes += 1
        return self.available

    def mark_unavailable(self) -> None:
        self.marked += 1
        self.available = False


REMOTE_ITEM = TextItem(collection_id="bukhari", book_number=1, item_number=1, primary_text="from the API")


class FakeClient:
    """Remote double; ``error`` is raised by every call when set."""

    def __init__(self, error: Exception | None = None, empty: bool = False) -> None:
        self.error = error
        self.empty = empty
        self.calls = []

    def _answer(self, name, value):
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        if self.empty:
            return type(value)() if not isinstance(value, ItemPage) else ItemPage.empty()
        return value

    def list_collections(self):
        return self._answer("list_collections", [Collection(id="bukhari", display_name="Remote Bukhari")])

    def get_collection(self, cid):
        if self.empty:
            self.calls.append("get_collection")
            return None
        return self._answer("get_collection", Collection(id=cid, display_name="Remote"))

    def list_books(self, cid):
        return self._answer("list_books", [Book(collection_id=cid, number=1, title="Remote book")])

    def get_book(self, cid, number):
        return self._answer("get_book", Book(collection_id=cid, number=number, title="Remote book"))

    def list_items(self, cid, book, page, limit):
        return self._answer("list_items", ItemPage(items=[REMOTE_ITEM], total=1, page=page, total_pages=1))

    def get_item(self, cid, book, number):
        if self.empty:
            self.calls.append("get_item")
            return None
        return self._answer("get_item", REMOTE_ITEM)

    def search(self, query, page, limit):
        return self._answer("search", ItemPage(items=[REMOTE_ITEM], total=1, page=page, total_pages=1))


class PagedSearchClient(FakeClient):
    """Serves ``hits`` search results across as many pages as ``limit`` needs."""

    def __init__(self, hits: int) -> None:
        super().__init__()
        self.hits = hits
        self.pages = []

    def search(self, query, page, limit):
        self.pages.append((page, limit))
        start = (page - 1) * limit
        items = [
            TextItem(collection_id="bukhari", book_number=1, item_number=n, primary_text="hit")
            for n in range(start + 1, min(start + limit, self.hits) + 1)
        ]
        return ItemPage(items=items, total=self.hits, page=page, total_pages=-(-self.hits // limit))


class UnusedClient:
    def __getattr__(self, name):
        raise AssertionError(f"remote {name} called while unavailable")


def _router(client, available: bool) -> tuple[SourceRouter, FakeProber]:
    prober = FakeProber(available)
    return SourceRouter(get_corpus(), client, prober), prober


class PipelineTests(unittest.TestCase):
    def test_first_non_empty_wins(self) -> None:
        result = run_pipeline(
            "op",
            [Strategy("remote", lambda: [1], requires_remote=True), Strategy("local", lambda: [2])],
            remote_available=True,
        )
        self.assertEqual((result.value, result.source), ([1], "remote"))

    def test_empty_falls_through_and_last_is_returned_as_is(self) -> None:
        result = run_pipeline(
            "op",
            [Strategy("remote", lambda: [], requires_remote=True), Strategy("local", lambda: [])],
            remote_available=True,
        )
        self.assertEqual((result.value, result.source), ([], "local"))

    def test_remote_skipped_when_unavailable(self) -> None:
        def boom():
            raise AssertionError("should not run")

        result = run_pipeline(
            "op", [Strategy("remote", boom, requires_remote=True), Strategy("local", lambda: "x")], remote_available=False
        )
        self.assertEqual(result.source, "local")
        self.assertFalse(result.remote_available)

    def test_remote_error_is_recorded(self) -> None:
        def fail():
            raise RemoteMalformed("bad shape")

        seen = []
        with self.assertLogs("hadith_portal.router", level="WARNING"):
            result = run_pipeline(
                "op",
                [Strategy("remote", fail, requires_remote=True), Strategy("local", lambda: "x")],
                remote_available=True,
                on_remote_error=seen.append,
            )
        self.assertEqual(result.value, "x")
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(seen[0], RemoteMalformed)

    def test_other_errors_propagate(self) -> None:
        def fail():
            raise KeyError("bug")

        with self.assertRaises(KeyError):
            run_pipeline("op", [Strategy("local", fail)], remote_available=False)


class OfflineRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.corpus = get_corpus()
        self.router, self.prober = _router(UnusedClient(), available=False)

    def test_outputs_equal_local_corpus(self) -> None:
        corpus = self.corpus
        self.assertEqual(self.router.get_collections(), corpus.list_collections())
        self.assertEqual(self.router.get_collection("MUSLIM"), corpus.get_collection("muslim"))
        self.assertEqual(self.router.get_books("tirmidhi"), corpus.list_books("tirmidhi"))
        self.assertEqual(self.router.get_books("nope"), corpus.list_books("nope"))
        self.assertEqual(self.router.get_book("bukhari", "2"), corpus.get_book("bukhari", 2))
        self.assertEqual(self.router.get_items("bukhari", 1, 2, 3), corpus.list_items("bukhari", 1, 2, 3))
        self.assertEqual(self.router.get_items("bukhari"), corpus.list_items("bukhari"))
        self.assertEqual(self.router.get_item("bukhari", 1, 7), corpus.find_item("bukhari", 1, 7))
        self.assertEqual(self.router.search("intentions"), corpus.search("intentions"))
        self.assertEqual(self.router.search("faith", 2), corpus.search("faith", 2))
        self.assertEqual(self.router.search_page("faith", 1, 2), corpus.search_page("faith", 1, 2))
        self.assertEqual(self.router.search("intentions "), corpus.search("intentions "))
        self.assertEqual(corpus.search(" intentions "), corpus.search("intentions"))

    def test_probe_once_per_call(self) -> None:
        self.router.get_collections()
        self.router.get_item("bukhari", 1, 1)
        self.assertEqual(self.prober.probes, 2)

    def test_reference_scenarios(self) -> None:
        page = self.router.get_items("bukhari", 1, 1, 5)
        self.assertEqual(len(page.items), 5)
        self.assertGreaterEqual(page.total, 5)
        self.assertIsNone(self.router.get_item("bukhari", 999999, 1))
        self.assertIn(("bukhari", 1, 1), [item.identity for item in self.router.search("intentions")])

    def test_invalid_identifiers_are_not_found(self) -> None:
        self.assertIsNone(self.router.get_item("bukhari", "abc", 1))
        self.assertIsNone(self.router.get_item("bukhari", 1, None))
        self.assertIsNone(self.router.get_book("bukhari", []))
        self.assertIsNone(self.router.get_collection(None))
        self.assertEqual(self.router.search("   "), [])

    def test_contract_violations_raise(self) -> None:
        with self.assertRaises(ValueError):
            self.router.get_items("bukhari", 1, 0, 5)
        with self.assertRaises(ValueError):
            self.router.search_page("faith", 1, 0)
        with self.assertRaises(ValueError):
            self.router.search("faith", limit=0)

    def test_without_client_never_probes(self) -> None:
        prober = FakeProber(True)
        router = SourceRouter(self.corpus, None, prober)
        self.assertEqual(router.get_collections(), self.corpus.list_collections())
        self.assertEqual(prober.probes, 0)


class OnlineRouterTests(unittest.TestCase):
    def test_remote_answer_wins(self) -> None:
        client = FakeClient()
        router, _ = _router(client, available=True)
        self.assertEqual(router.get_collections()[0].display_name, "Remote Bukhari")
        self.assertEqual(router.get_item("bukhari", 1, 1).primary_text, "from the API")
        self.assertEqual(router.search("anything"), [REMOTE_ITEM])
        resolution = router.resolve("get_book", lambda: client.get_book("bukhari", 1), lambda: None)
        self.assertEqual(resolution.source, "remote")

    def test_remote_failure_falls_back_and_marks_prober(self) -> None:
        client = FakeClient(error=RemoteUnavailable("down"))
        router, prober = _router(client, available=True)
        with self.assertLogs("hadith_portal.router", level="WARNING"):
            item = router.get_item("bukhari", 1, 1)
        self.assertEqual(item, get_corpus().find_item("bukhari", 1, 1))
        self.assertEqual(prober.marked, 1)
        router.get_collections()
        self.assertEqual(client.calls, ["get_item"])

    def test_malformed_remote_keeps_prober_state(self) -> None:
        client = FakeClient(error=RemoteMalformed("garbage"))
        router, prober = _router(client, available=True)
        with self.assertLogs("hadith_portal.router", level="WARNING"):
            books = router.get_books("bukhari")
        self.assertEqual(books, get_corpus().list_books("bukhari"))
        self.assertEqual(prober.marked, 0)

    def test_empty_remote_falls_through(self) -> None:
        client = FakeClient(empty=True)
        router, _ = _router(client, available=True)
        self.assertEqual(router.get_collections(), get_corpus().list_collections())
        self.assertEqual(router.get_item("muslim", 2, 223), get_corpus().find_item("muslim", 2, 223))
        self.assertEqual(router.get_items("bukhari", 1, 1, 5), get_corpus().list_items("bukhari", 1, 1, 5))

    def test_unlimited_search_reads_every_remote_page(self) -> None:
        client = PagedSearchClient(hits=230)
        router, _ = _router(client, available=True)
        hits = router.search("anything")
        self.assertEqual(len(hits), 230)
        self.assertEqual(client.pages, [(1, 100), (2, 100), (3, 100)])

        client.pages.clear()
        self.assertEqual(len(router.search("anything", 5)), 5)
        self.assertEqual(client.pages, [(1, 5)])

    def test_collection_listing_skips_remote(self) -> None:
        client = FakeClient()
        router, _ = _router(client, available=True)
        router.get_items("bukhari", None, 1, 5)
        self.assertNotIn("list_items", client.calls)

    def test_contract_violation_before_remote(self) -> None:
        client = FakeClient()
        router, prober = _router(client, available=True)
        with self.assertRaises(ValueError):
            router.get_items("bukhari", 1, 1, 0)
        self.assertEqual(client.calls, [])
        self.assertEqual(prober.probes, 0)


class CreateRouterTests(unittest.TestCase):
    def test_offline_settings_have_no_client(self) -> None:
        router = create_router(Settings(api_url=""))
        self.assertIsNone(router.client)
        self.assertFalse(router.remote_available())

    def test_offline_flag(self) -> None:
        self.assertIsNone(create_router(Settings(), offline=True).client)

    def test_online_settings_build_client(self) -> None:
        settings = Settings(api_url="https://api.example.test/v1", api_key="k", probe_ttl=12.0)
        with patch("hadith_portal.router.get_corpus", return_value=get_corpus()) as loader:
            router = create_router(settings)
        loader.assert_called_once_with(None)
        self.assertIsInstance(router.client, RemoteClient)
        self.assertEqual(router.client.base_url, "https://api.example.test/v1")
        self.assertEqual(router.prober.ttl, 12.0)


if __name__ == "__main__":
    unittest.main()
