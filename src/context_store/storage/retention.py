from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from context_store.errors import ValidationError
from context_store.storage.content_store import ContentStore, resolve_limit
from context_store.storage.database import Database
from context_store.storage.deadline import Deadline
from context_store.storage.models import ensure_text, utc_now

DEFAULT_RETENTION_DAYS = 7
DEFAULT_KEEP_LAST = 10


@dataclass(frozen=True)
class PurgeResult:
    days: int
    cutoff: datetime
    deleted: int


class RetentionManager:
    def __init__(
        self,
        db: Database,
        contents: ContentStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_days: int = DEFAULT_RETENTION_DAYS,
        default_keep_last: int = DEFAULT_KEEP_LAST,
    ):
        self._db = db
        self._contents = contents
        self._clock = clock
        self._default_days = default_days
        self._default_keep_last = default_keep_last

    def purge_older_than(self, days: int | None = None, *, deadline: Deadline | None = None) -> PurgeResult:
        days = resolve_limit(days, self._default_days, "days")
        try:
            cutoff = self._clock() - timedelta(days=days)
        except OverflowError:
            # Nothing predates the earliest representable instant.
            cutoff = datetime.min.replace(tzinfo=UTC)
        deleted = self._contents.delete_before(cutoff, deadline=deadline)
        logger.info(f"Retention: deleted {deleted} item(s) older than {days} day(s)")
        return PurgeResult(days=days, cutoff=cutoff, deleted=deleted)

    def cap_session(self, session_id: str, keep_last: int | None = None, *, deadline: Deadline | None = None) -> int:
        """Keep only the ``keep_last`` newest items of a session; returns how many were deleted."""
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("session_id is required")
        ensure_text(session_id, "session_id")
        keep_last = resolve_limit(keep_last, self._default_keep_last, "keep_last")

        # Listing and deleting share one transaction so a concurrent insert
        # cannot land between them.
        with self._db.transaction(deadline):
            items = self._contents.list_by_session(session_id)
            overflow = items[keep_last:]
            deleted = self._contents.delete_ids(item.id for item in overflow) if overflow else 0

        if deleted:
            logger.info(f"Retention: deleted {deleted} item(s) from session {session_id}, kept {keep_last}")
        return deleted

    def reset_all(self, *, deadline: Deadline | None = None) -> int:
        deleted = self._contents.delete_all(deadline=deadline)
        logger.warning(f"Retention: cleared all content ({deleted} item(s))")
        return deleted
