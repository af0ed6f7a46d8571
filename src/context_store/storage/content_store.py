from __future__ import annotations

import json
import sqlite3
from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import uuid4

from loguru import logger

from context_store.errors import NotFoundError, StorageError, ValidationError
from context_store.storage.database import Database
from context_store.storage.deadline import Deadline
from context_store.storage.models import (
    Content,
    NewContent,
    ensure_metadata,
    ensure_text,
    from_timestamp,
    to_timestamp,
    utc_now,
)
from context_store.tokens import count_tokens

DEFAULT_SEARCH_LIMIT = 10

# Terms per prefilter statement; each binds two parameters and SQLite caps them per statement.
_SEARCH_TERM_BATCH = 200
_SQLITE_MAX_INTEGER = 2**63 - 1
_DELETE_BATCH = 500

_COLUMNS = "rowid AS seq, id, session_id, url, title, content, content_type, metadata_json, token_count, created_at"
_RECENCY = "ORDER BY created_at DESC, rowid DESC"


def resolve_limit(value: int | None, default: int, name: str = "limit") -> int:
    """Apply the ``None``/0 means default convention shared by every listing call."""
    if value is None or value == 0:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value < 0:
        raise ValidationError(f"{name} must not be negative")
    # SQLite integers are signed 64-bit; anything larger already means "no limit".
    return min(value, _SQLITE_MAX_INTEGER)


class ContentStore:
    def __init__(
        self,
        db: Database,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_search_limit: int = DEFAULT_SEARCH_LIMIT,
    ):
        self._db = db
        self._clock = clock
        self._default_search_limit = default_search_limit

    def store(self, new: NewContent, *, deadline: Deadline | None = None) -> Content:
        """Persist a new content record and return it with its id and token count."""
        record = self._build_record(new)
        with self._db.transaction(deadline) as conn:
            existing = conn.execute("SELECT 1 FROM contents WHERE id = ? LIMIT 1", (record.id,)).fetchone()
            if existing is not None:
                raise ValidationError(f"Content already exists: {record.id}")
            conn.execute(
                """
                INSERT INTO contents
                    (id, session_id, url, title, content, content_type, metadata_json, token_count, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.session_id,
                    record.url,
                    record.title,
                    record.content,
                    record.content_type,
                    json.dumps(record.metadata, ensure_ascii=True),
                    record.token_count,
                    to_timestamp(record.created_at),
                ),
            )
        logger.debug(
            f"Stored content {record.id} (session={record.session_id or '-'}, tokens={record.token_count})"
        )
        return record

    def get(self, content_id: str, *, deadline: Deadline | None = None) -> Content:
        if not isinstance(content_id, str) or not content_id:
            raise ValidationError("id is required")
        ensure_text(content_id, "id")
        with self._db.read(deadline) as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM contents WHERE id = ? LIMIT 1", (content_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Content not found: {content_id}")
        return _row_to_content(row)

    def search(self, query: str, limit: int | None = None, *, deadline: Deadline | None = None) -> list[Content]:
        """Keyword search over title and content.

        The query is split on whitespace; a record matches when any term occurs
        in its title or body, case-insensitively. Results are ranked by the total
        number of term occurrences, then by recency.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query is required")
        ensure_text(query, "query")
        limit = resolve_limit(limit, self._default_search_limit)
        terms = list(dict.fromkeys(query.casefold().split()))

        # Long queries are prefiltered in batches; a row matching several batches is kept once.
        matches: dict[int, sqlite3.Row] = {}
        with self._db.read(deadline) as conn:
            for start in range(0, len(terms), _SEARCH_TERM_BATCH):
                batch = terms[start : start + _SEARCH_TERM_BATCH]
                clauses = " OR ".join(
                    "instr(casefold(title), ?) > 0 OR instr(casefold(content), ?) > 0" for _ in batch
                )
                params = tuple(term for term in batch for _ in range(2))
                for row in conn.execute(f"SELECT {_COLUMNS} FROM contents WHERE {clauses}", params):
                    matches[int(row["seq"])] = row

        ranked: list[tuple[int, str, int, sqlite3.Row]] = []
        for row in matches.values():
            title = row["title"].casefold()
            body = row["content"].casefold()
            score = sum(title.count(term) + body.count(term) for term in terms)
            ranked.append((score, row["created_at"], int(row["seq"]), row))
        ranked.sort(key=lambda item: item[:3], reverse=True)
        return [_row_to_content(item[3]) for item in ranked[:limit]]

    def list_by_session(self, session_id: str, *, deadline: Deadline | None = None) -> list[Content]:
        """All records of a session, newest first."""
        if isinstance(session_id, str):
            ensure_text(session_id, "session_id")
        with self._db.read(deadline) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM contents WHERE session_id = ? {_RECENCY}",
                (session_id,),
            ).fetchall()
        return [_row_to_content(row) for row in rows]

    def count(self, session_id: str | None = None, *, deadline: Deadline | None = None) -> int:
        if isinstance(session_id, str):
            ensure_text(session_id, "session_id")
        with self._db.read(deadline) as conn:
            if session_id is None:
                row = conn.execute("SELECT COUNT(*) AS c FROM contents").fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) AS c FROM contents WHERE session_id = ?", (session_id,)).fetchone()
        return int(row["c"])

    def delete_before(self, cutoff: datetime, *, deadline: Deadline | None = None) -> int:
        with self._db.transaction(deadline) as conn:
            cursor = conn.execute("DELETE FROM contents WHERE created_at < ?", (to_timestamp(cutoff),))
        return max(0, cursor.rowcount)

    def delete_ids(self, content_ids: Iterable[str], *, deadline: Deadline | None = None) -> int:
        ids = list(content_ids)
        deleted = 0
        with self._db.transaction(deadline) as conn:
            for start in range(0, len(ids), _DELETE_BATCH):
                batch = ids[start : start + _DELETE_BATCH]
                placeholders = ", ".join("?" for _ in batch)
                cursor = conn.execute(f"DELETE FROM contents WHERE id IN ({placeholders})", tuple(batch))
                deleted += max(0, cursor.rowcount)
        return deleted

    def delete_all(self, *, deadline: Deadline | None = None) -> int:
        with self._db.transaction(deadline) as conn:
            cursor = conn.execute("DELETE FROM contents")
        return max(0, cursor.rowcount)

    def _build_record(self, new: NewContent) -> Content:
        if not isinstance(new.content, str):
            raise ValidationError("content is required")
        if new.id is not None and (not isinstance(new.id, str) or not new.id.strip()):
            raise ValidationError("id must be a non-empty string")
        if new.session_id is not None and not isinstance(new.session_id, str):
            raise ValidationError("session_id must be a string")
        for name in ("url", "title", "content_type"):
            if not isinstance(getattr(new, name), str):
                raise ValidationError(f"{name} must be a string")
        for name in ("content", "id", "session_id", "url", "title", "content_type"):
            value = getattr(new, name)
            if value is not None:
                ensure_text(value, name)

        return Content(
            id=new.id or str(uuid4()),
            session_id=new.session_id or None,
            url=new.url,
            title=new.title,
            content=new.content,
            content_type=new.content_type or "text",
            metadata=ensure_metadata(new.metadata),
            token_count=count_tokens(new.content),
            created_at=self._clock(),
        )


def _row_to_content(row: sqlite3.Row) -> Content:
    try:
        metadata = json.loads(row["metadata_json"])
    except json.JSONDecodeError as ex:
        raise StorageError(f"Corrupt metadata for content {row['id']}: {ex}") from ex
    return Content(
        id=row["id"],
        session_id=row["session_id"],
        url=row["url"],
        title=row["title"],
        content=row["content"],
        content_type=row["content_type"],
        metadata=metadata if isinstance(metadata, dict) else {},
        token_count=int(row["token_count"]),
        created_at=from_timestamp(row["created_at"]),
    )
