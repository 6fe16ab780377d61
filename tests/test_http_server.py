from __future__ import annotations

import unittest

from hadith_portal.corpus import get_corpus
from hadith_portal.http_server import create_app
from hadith_portal.router import SourceRouter


class HttpServerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(SourceRouter(get_corpus(), None))
        self.client = self.app.test_client()

    def test_health(self) -> None:
        payload = self.client.get("/health").get_json()
        self.assertTrue(payload["ok"])
        self.assertFalse(payload["remote_available"])

    def test_collections_envelope(self) -> None:
        payload = self.client.get("/api/collections").get_json()
        self.assertEqual(payload["total"], len(payload["items"]))
        self.assertEqual(payload["items"][0]["id"], "bukhari")
        self.assertIn("displayName", payload["items"][0])

    def test_collection_and_book(self) -> None:
        self.assertEqual(self.client.get("/api/collections/muslim").get_json()["displayName"], "Sahih Muslim")
        self.assertEqual(self.client.get("/api/collections/nope").status_code, 404)
        book = self.client.get("/api/collections/bukhari/books/1").get_json()
        self.assertEqual((book["title"], book["itemCount"]), ("Revelation", 7))
        self.assertEqual(self.client.get("/api/collections/bukhari/books/x").status_code, 404)

    def test_book_list(self) -> None:
        payload = self.client.get("/api/collections/tirmidhi/books").get_json()
        self.assertEqual([book["number"] for book in payload["items"]], [1, 10])

    def test_items_page(self) -> None:
        response = self.client.get("/api/collections/bukhari/books/1/hadiths?page=1&limit=5")
        payload = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(payload["items"]), 5)
        self.assertEqual((payload["total"], payload["totalPages"]), (7, 2))
        self.assertEqual(payload["items"][0]["referenceId"], "bukhari-1-1")
        alias = self.client.get("/api/collections/bukhari/books/1/items?page=1&limit=5").get_json()
        self.assertEqual(alias, payload)

    def test_collection_items(self) -> None:
        payload = self.client.get("/api/collections/muslim/hadiths?limit=2&page=3").get_json()
        self.assertEqual([item["itemNumber"] for item in payload["items"]], [1907])

    def test_bad_paging_is_400(self) -> None:
        for query in ("page=0", "limit=0", "page=abc", "limit=1000"):
            with self.subTest(query=query):
                response = self.client.get(f"/api/collections/bukhari/books/1/hadiths?{query}")
                self.assertEqual(response.status_code, 400)
                self.assertIn("error", response.get_json())

    def test_single_item(self) -> None:
        payload = self.client.get("/api/collections/bukhari/books/1/hadiths/1").get_json()
        self.assertIn("intentions", payload["primaryText"])
        self.assertEqual(self.client.get("/api/collections/bukhari/books/999999/hadiths/1").status_code, 404)

    def test_search(self) -> None:
        payload = self.client.get("/api/search?query=intentions&limit=50").get_json()
        self.assertIn("bukhari-1-1", [item["referenceId"] for item in payload["items"]])
        self.assertEqual(self.client.get("/api/search").status_code, 400)

    def test_arabic_is_not_escaped(self) -> None:
        body = self.client.get("/api/collections/bukhari/books/1/hadiths/1").get_data(as_text=True)
        self.assertIn("بِالنِّيَّاتِ", body)

    def test_random(self) -> None:
        payload = self.client.get("/api/random").get_json()
        self.assertEqual(payload["item"]["collectionId"], payload["collection"]["id"])
        self.assertEqual(payload["item"]["bookNumber"], payload["book"]["number"])


if __name__ == "__main__":
    unittest.main()
