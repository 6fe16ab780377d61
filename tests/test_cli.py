from __future__ import annotations

import io
import json
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest.mock import patch

from hadith_portal import cli
from hadith_portal.corpus import get_corpus
from hadith_portal.router import SourceRouter


def _run(*argv: str):
    router = SourceRouter(get_corpus(), None)
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = cli.main(list(argv), router=router)
    return code, out.getvalue(), err.getvalue()


class CliTests(unittest.TestCase):
    def test_collections(self) -> None:
        code, out, _ = _run("collections")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)[0]["id"], "bukhari")

    def test_books(self) -> None:
        _, out, _ = _run("books", "muslim")
        self.assertEqual([book["number"] for book in json.loads(out)], [1, 2, 33])

    def test_items(self) -> None:
        _, out, _ = _run("items", "bukhari", "2", "--limit", "2", "--page", "2")
        payload = json.loads(out)
        self.assertEqual([item["itemNumber"] for item in payload["items"]], [3, 6])
        self.assertEqual(payload["totalPages"], 2)

    def test_get_by_triple_and_reference(self) -> None:
        _, by_triple, _ = _run("get", "bukhari", "1", "1")
        _, by_reference, _ = _run("get", "bukhari-1-1")
        self.assertEqual(json.loads(by_triple), json.loads(by_reference))
        self.assertIn("بِالنِّيَّاتِ", by_triple)

    def test_get_missing(self) -> None:
        code, out, err = _run("get", "bukhari", "999999", "1")
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("not found", err)

    def test_search(self) -> None:
        _, out, _ = _run("search", "intentions")
        self.assertIn("bukhari-1-1", [item["referenceId"] for item in json.loads(out)["items"]])

    def test_bad_paging_exit_code(self) -> None:
        code, _, err = _run("search", "faith", "--page", "0")
        self.assertEqual(code, 2)
        self.assertIn("page", err)

    def test_random(self) -> None:
        code, out, _ = _run("random")
        pick = json.loads(out)
        self.assertEqual(code, 0)
        self.assertEqual(pick["item"]["collectionId"], pick["collection"]["id"])

    def test_offline_flag_builds_offline_router(self) -> None:
        with patch("hadith_portal.cli.create_router", return_value=SourceRouter(get_corpus(), None)) as factory:
            with redirect_stdout(io.StringIO()):
                cli.main(["--offline", "collections"])
        self.assertTrue(factory.call_args.kwargs["offline"])


if __name__ == "__main__":
    unittest.main()
