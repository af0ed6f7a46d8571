from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from context_store.app_config import StoreConfig
from context_store.storage import (
    ContentStore,
    ContextWindowAssembler,
    Database,
    RetentionManager,
    SessionRegistry,
)
from context_store.storage.models import utc_now


class ContextStore:
    """Explicitly owned handle over one database and the components built on it.

    Several instances may coexist (one per database path); nothing here is
    process-global.
    """

    def __init__(self, config: StoreConfig | None = None, *, clock: Callable[[], datetime] = utc_now):
        self.config = config or StoreConfig()
        self.db = Database(
            self.config.database_path,
            busy_timeout_ms=self.config.busy_timeout_ms,
            debug=self.config.debug,
        )
        self.contents = ContentStore(
            self.db,
            clock=clock,
            default_search_limit=self.config.default_search_limit,
        )
        self.sessions = SessionRegistry(
            self.db,
            clock=clock,
            default_list_limit=self.config.default_session_list_limit,
        )
        self.windows = ContextWindowAssembler(
            self.contents,
            default_max_tokens=self.config.default_max_tokens,
        )
        self.retention = RetentionManager(
            self.db,
            self.contents,
            clock=clock,
            default_days=self.config.default_retention_days,
            default_keep_last=self.config.default_keep_last,
        )

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> ContextStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
