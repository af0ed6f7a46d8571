import unittest
from datetime import UTC, datetime, timedelta, timezone

from context_store.errors import ValidationError
from context_store.storage.models import (
    Content,
    Session,
    ensure_json_value,
    ensure_metadata,
    from_timestamp,
    to_timestamp,
)


class ModelTests(unittest.TestCase):
    def test_json_values_are_copied(self) -> None:
        source = {"tags": ["a"], "nested": {"k": 1}}
        copied = ensure_metadata(source)
        source["tags"].append("b")
        self.assertEqual({"tags": ["a"], "nested": {"k": 1}}, copied)

    def test_tuples_become_lists(self) -> None:
        self.assertEqual([1, "two", None], ensure_json_value((1, "two", None)))

    def test_invalid_values_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ensure_metadata({1: "int key"})
        with self.assertRaises(ValidationError):
            ensure_metadata({"when": datetime.now(UTC)})
        with self.assertRaises(ValidationError):
            ensure_metadata({"inf": float("inf")})
        with self.assertRaises(ValidationError):
            ensure_metadata(["not", "a", "mapping"])

    def test_missing_metadata_is_empty(self) -> None:
        self.assertEqual({}, ensure_metadata(None))

    def test_timestamps_normalize_to_utc_and_sort_lexically(self) -> None:
        local = datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        earlier = datetime(2026, 3, 1, 9, 59, 59, 999999, tzinfo=UTC)
        self.assertEqual("2026-03-01T10:00:00.000000+00:00", to_timestamp(local))
        self.assertLess(to_timestamp(earlier), to_timestamp(local))
        self.assertEqual(local, from_timestamp(to_timestamp(local)))

    def test_records_serialize_to_plain_dicts(self) -> None:
        created = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        content = Content(id="c1", content="body", token_count=1, created_at=created, metadata={"k": [1]})
        session = Session(id="s1", name="Session", created_at=created)
        self.assertEqual("2026-01-02T03:04:05.000000+00:00", content.to_dict()["created_at"])
        self.assertIsNone(content.to_dict()["session_id"])
        self.assertEqual({"id": "s1", "name": "Session", "created_at": "2026-01-02T03:04:05.000000+00:00"}, session.to_dict())


if __name__ == "__main__":
    unittest.main()
