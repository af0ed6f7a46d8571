from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

from loguru import logger

from context_store.errors import NotFoundError, ValidationError
from context_store.storage.content_store import resolve_limit
from context_store.storage.database import Database
from context_store.storage.deadline import Deadline
from context_store.storage.models import Session, ensure_text, from_timestamp, to_timestamp, utc_now

DEFAULT_LIST_LIMIT = 20


def default_session_name(created_at: datetime) -> str:
    return f"Session {created_at.strftime('%Y-%m-%d %H:%M')}"


class SessionRegistry:
    def __init__(
        self,
        db: Database,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_list_limit: int = DEFAULT_LIST_LIMIT,
    ):
        self._db = db
        self._clock = clock
        self._default_list_limit = default_list_limit

    def create(
        self,
        name: str | None = None,
        *,
        session_id: str | None = None,
        deadline: Deadline | None = None,
    ) -> Session:
        if name is not None and not isinstance(name, str):
            raise ValidationError("name must be a string")
        if session_id is not None and (not isinstance(session_id, str) or not session_id.strip()):
            raise ValidationError("id must be a non-empty string")
        for field_name, value in (("name", name), ("id", session_id)):
            if value is not None:
                ensure_text(value, field_name)

        now = self._clock()
        session = Session(
            id=session_id or str(uuid4()),
            name=(name or "").strip() or default_session_name(now),
            created_at=now,
        )
        with self._db.transaction(deadline) as conn:
            existing = conn.execute("SELECT 1 FROM sessions WHERE id = ? LIMIT 1", (session.id,)).fetchone()
            if existing is not None:
                raise ValidationError(f"Session already exists: {session.id}")
            conn.execute(
                "INSERT INTO sessions (id, name, created_at) VALUES (?, ?, ?)",
                (session.id, session.name, to_timestamp(session.created_at)),
            )
        logger.debug(f"Created session {session.id} ({session.name})")
        return session

    def get(self, session_id: str, *, deadline: Deadline | None = None) -> Session:
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("id is required")
        ensure_text(session_id, "id")
        with self._db.read(deadline) as conn:
            row = conn.execute(
                "SELECT id, name, created_at FROM sessions WHERE id = ? LIMIT 1",
                (session_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return _row_to_session(row)

    def list(self, limit: int | None = None, *, deadline: Deadline | None = None) -> list[Session]:
        limit = resolve_limit(limit, self._default_list_limit)
        with self._db.read(deadline) as conn:
            rows = conn.execute(
                """
                SELECT id, name, created_at
                FROM sessions
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_row_to_session(row) for row in rows]


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(id=row["id"], name=row["name"], created_at=from_timestamp(row["created_at"]))
