import unittest
from unittest.mock import patch

from context_store import CommandDispatcher
from context_store.storage import Deadline
from tests.storage.base import StoreTestCase


class CommandDispatcherTests(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._dispatcher = CommandDispatcher(self._store)

    def _ok(self, method: str, params: dict | None = None) -> dict:
        envelope = self._dispatcher.dispatch(method, params)
        self.assertTrue(envelope["success"], envelope)
        return envelope["data"]

    def _error_kind(self, method: str, params: dict | None = None) -> str:
        envelope = self._dispatcher.dispatch(method, params)
        self.assertFalse(envelope["success"], envelope)
        self.assertIn("message", envelope["error"])
        return envelope["error"]["kind"]

    def test_ping(self) -> None:
        self.assertIn("message", self._ok("ping"))

    def test_store_then_get_content(self) -> None:
        stored = self._ok(
            "store_content",
            {
                "content": "a" * 80,
                "session_id": "S",
                "url": "https://example.com/page",
                "title": "Page",
                "content_type": "markdown",
                "metadata": {"lang": "en", "links": 3},
            },
        )
        self.assertEqual(20, stored["token_count"])

        record = self._ok("get_content", {"id": stored["id"]})
        self.assertEqual("S", record["session_id"])
        self.assertEqual("markdown", record["content_type"])
        self.assertEqual({"lang": "en", "links": 3}, record["metadata"])
        self.assertIn("created_at", record)

    def test_store_content_requires_content(self) -> None:
        self.assertEqual("validation_error", self._error_kind("store_content", {"title": "no body"}))
        self.assertEqual("validation_error", self._error_kind("store_content", {"content": 42}))
        self.assertEqual("validation_error", self._error_kind("store_content", {"content": "x", "metadata": [1]}))

    def test_get_content_errors(self) -> None:
        self.assertEqual("validation_error", self._error_kind("get_content", {}))
        self.assertEqual("not_found", self._error_kind("get_content", {"id": "missing"}))

    def test_search_content_returns_matches_and_count(self) -> None:
        self._ok("store_content", {"content": "body", "title": "foo bar"})
        self._ok("store_content", {"content": "something else", "title": "unrelated"})

        data = self._ok("search_content", {"query": "foo", "limit": 5})
        self.assertEqual(1, data["count"])
        self.assertEqual("foo bar", data["results"][0]["title"])
        self.assertEqual("validation_error", self._error_kind("search_content", {"query": ""}))
        self.assertEqual("validation_error", self._error_kind("search_content", {"query": "foo", "limit": "5"}))

    def test_session_commands(self) -> None:
        created = self._ok("create_session", {"name": "Scraping run"})
        self.assertEqual("Scraping run", created["name"])
        self.assertEqual(created, self._ok("get_session", {"id": created["id"]}))

        default_named = self._ok("create_session")
        self.assertTrue(default_named["name"].startswith("Session "))

        listed = self._ok("list_sessions", {"limit": 1})
        self.assertEqual(1, listed["count"])
        self.assertEqual(default_named["id"], listed["sessions"][0]["id"])
        self.assertEqual("not_found", self._error_kind("get_session", {"id": "nope"}))

    def test_context_window_command(self) -> None:
        for tokens in (100, 300, 50):
            self._ok("store_content", {"content": "z" * (tokens * 4), "session_id": "S"})

        data = self._ok("get_context_window", {"session_id": "S", "max_tokens": 120.0})
        self.assertEqual(1, data["count"])
        self.assertEqual(50, data["total_tokens"])

        everything = self._ok("get_context_window", {"session_id": "S"})
        self.assertEqual(450, everything["total_tokens"])
        self.assertEqual([50, 300, 100], [c["token_count"] for c in everything["contents"]])

        self.assertEqual("validation_error", self._error_kind("get_context_window", {"session_id": "S", "max_tokens": 0}))
        self.assertEqual("validation_error", self._error_kind("get_context_window", {"session_id": "S", "max_tokens": 1.5}))
        self.assertEqual("validation_error", self._error_kind("get_context_window", {"max_tokens": 10}))

    def test_cleanup_commands(self) -> None:
        for _ in range(3):
            self._ok("store_content", {"content": "abc", "session_id": "S"})

        capped = self._ok("cleanup_session", {"session_id": "S", "keep_last": 1})
        self.assertEqual(2, capped["deleted"])
        self.assertEqual(0, self._ok("cleanup_session", {"session_id": "S", "keep_last": 1})["deleted"])
        self.assertEqual("validation_error", self._error_kind("cleanup_session", {}))

        purged = self._ok("cleanup")
        self.assertEqual(0, purged["deleted"])
        self.assertIn("7 days", purged["message"])

        cleared = self._ok("clear_all")
        self.assertEqual(1, cleared["deleted"])
        self.assertEqual(0, self._store.contents.count())

    def test_unknown_method_and_bad_params(self) -> None:
        self.assertEqual("validation_error", self._error_kind("drop_tables"))
        self.assertEqual("validation_error", self._error_kind("ping", ["not", "a", "dict"]))  # type: ignore[arg-type]
        self.assertEqual("validation_error", self._error_kind("list_sessions", {"limit": True}))

    def test_out_of_range_numbers_stay_within_the_error_kinds(self) -> None:
        self._ok("store_content", {"content": "abc"})
        purged = self._ok("cleanup", {"days_old": 1_000_000})
        self.assertEqual(0, purged["deleted"])
        self._ok("create_session")
        self.assertEqual(1, self._ok("list_sessions", {"limit": 2**70})["count"])

    def test_unencodable_text_is_a_validation_error(self) -> None:
        self.assertEqual("validation_error", self._error_kind("store_content", {"content": "a\ud800b"}))
        self.assertEqual("validation_error", self._error_kind("create_session", {"name": "\ud800"}))
        self.assertEqual("validation_error", self._error_kind("search_content", {"query": "\ud800"}))
        self.assertEqual("validation_error", self._error_kind("get_context_window", {"session_id": "\ud800"}))

    def test_storage_failure_is_reported(self) -> None:
        self._store.close()
        self.assertEqual("storage_error", self._error_kind("list_sessions"))

    def test_cancelled_deadline_is_reported(self) -> None:
        deadline = Deadline()
        deadline.cancel()
        envelope = self._dispatcher.dispatch("store_content", {"content": "x"}, deadline=deadline)
        self.assertFalse(envelope["success"])
        self.assertEqual("cancelled", envelope["error"]["kind"])
        self.assertEqual(0, self._store.contents.count())

    def test_unexpected_errors_never_escape(self) -> None:
        with patch.object(self._store.contents, "get", side_effect=RuntimeError("boom")):
            envelope = self._dispatcher.dispatch("get_content", {"id": "x"})
        self.assertEqual({"kind": "internal_error", "message": "boom"}, envelope["error"])

    def test_methods_lists_every_command(self) -> None:
        self.assertEqual(
            [
                "cleanup",
                "cleanup_session",
                "clear_all",
                "create_session",
                "get_content",
                "get_context_window",
                "get_session",
                "list_sessions",
                "ping",
                "search_content",
                "store_content",
            ],
            self._dispatcher.methods,
        )


if __name__ == "__main__":
    unittest.main()
