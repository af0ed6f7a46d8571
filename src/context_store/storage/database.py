from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

from context_store.errors import OperationCancelledError, StorageError
from context_store.logging_config import sql_logger
from context_store.storage.deadline import Deadline

MEMORY_PATH = ":memory:"

# Number of SQLite VM instructions between deadline checks.
_PROGRESS_INTERVAL = 1000


def _casefold(value: object) -> object:
    if isinstance(value, str):
        return value.casefold()
    return value


class Database:
    """Owns the SQLite connection shared by every store component.

    All access goes through ``transaction()`` (writes) or ``read()`` which hold
    a re-entrant lock, so mutations are serialized and each read call sees one
    consistent snapshot.
    """

    def __init__(self, db_path: str, *, busy_timeout_ms: int = 5000, debug: bool = False):
        self._db_path = db_path
        self._lock = threading.RLock()
        self._depth = 0
        try:
            if db_path != MEMORY_PATH:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                db_path,
                check_same_thread=False,
                timeout=max(0, busy_timeout_ms) / 1000,
                isolation_level=None,
            )
        except (sqlite3.Error, OSError) as ex:
            raise StorageError(f"Failed to open database {db_path}: {ex}") from ex

        self._conn.row_factory = sqlite3.Row
        self._conn.create_function("casefold", 1, _casefold, deterministic=True)
        if debug:
            self._conn.set_trace_callback(lambda statement: sql_logger.debug(f"SQL: {statement}"))

        try:
            self._configure(busy_timeout_ms)
            self._initialize_schema()
        except sqlite3.Error as ex:
            self._conn.close()
            raise StorageError(f"Failed to initialize schema: {ex}") from ex
        logger.info(f"Opened context store at {db_path}")

    @property
    def path(self) -> str:
        return self._db_path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def execute(self, query: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Run a single autocommitted statement outside the engine's transactions."""
        with self._lock:
            try:
                return self._conn.execute(query, params)
            except sqlite3.Error as ex:
                raise StorageError(str(ex)) from ex

    @contextmanager
    def transaction(self, deadline: Deadline | None = None) -> Iterator[sqlite3.Connection]:
        """Run the body in a write transaction committed only if the deadline holds."""
        with self._scope(deadline, "BEGIN IMMEDIATE") as conn:
            yield conn
            if deadline is not None:
                deadline.check()

    @contextmanager
    def read(self, deadline: Deadline | None = None) -> Iterator[sqlite3.Connection]:
        with self._scope(deadline, "BEGIN") as conn:
            yield conn

    @contextmanager
    def _scope(self, deadline: Deadline | None, begin: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._depth:
                # Nested inside this thread's open transaction: join it.
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return

            if deadline is not None:
                deadline.check()
                self._conn.set_progress_handler(lambda: 1 if deadline.expired else 0, _PROGRESS_INTERVAL)
            try:
                self._conn.execute(begin)
                self._depth = 1
                try:
                    yield self._conn
                    # Once the body finished in time the commit must not be interrupted.
                    self._clear_progress_handler(deadline)
                    self._conn.execute("COMMIT")
                except BaseException:
                    self._clear_progress_handler(deadline)
                    if self._conn.in_transaction:
                        self._conn.execute("ROLLBACK")
                    raise
                finally:
                    self._depth = 0
            except sqlite3.Error as ex:
                if deadline is not None and deadline.expired:
                    raise OperationCancelledError("Operation interrupted by deadline") from ex
                raise StorageError(str(ex)) from ex
            finally:
                self._clear_progress_handler(deadline)

    def _clear_progress_handler(self, deadline: Deadline | None) -> None:
        if deadline is not None:
            self._conn.set_progress_handler(None, 0)

    def _configure(self, busy_timeout_ms: int) -> None:
        self._conn.execute(f"PRAGMA busy_timeout = {max(0, int(busy_timeout_ms))}")
        if self._db_path != MEMORY_PATH:
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = FULL")

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS contents (
                id TEXT PRIMARY KEY,
                session_id TEXT NULL,
                url TEXT NOT NULL DEFAULT '',
                title TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL,
                content_type TEXT NOT NULL DEFAULT 'text',
                metadata_json TEXT NOT NULL DEFAULT '{}',
                token_count INTEGER NOT NULL CHECK (token_count >= 0),
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_contents_session_created
                ON contents(session_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_contents_created
                ON contents(created_at);
            CREATE INDEX IF NOT EXISTS idx_sessions_created
                ON sessions(created_at);
            """
        )
