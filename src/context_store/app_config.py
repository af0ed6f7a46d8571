from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from context_store.storage.content_store import DEFAULT_SEARCH_LIMIT
from context_store.storage.context_window import DEFAULT_MAX_TOKENS
from context_store.storage.retention import DEFAULT_KEEP_LAST, DEFAULT_RETENTION_DAYS
from context_store.storage.session_registry import DEFAULT_LIST_LIMIT

DEFAULT_DB_PATH = ".context_store/storage.db"


@dataclass
class StoreConfig:
    database_path: str = DEFAULT_DB_PATH
    debug: bool = False
    busy_timeout_ms: int = 5000
    default_max_tokens: int = DEFAULT_MAX_TOKENS
    default_search_limit: int = DEFAULT_SEARCH_LIMIT
    default_session_list_limit: int = DEFAULT_LIST_LIMIT
    default_retention_days: int = DEFAULT_RETENTION_DAYS
    default_keep_last: int = DEFAULT_KEEP_LAST
    log_level: str = "INFO"
    log_consumers: list | None = None


def load_json_config(directory: Path | None = None) -> dict:
    config_path = (directory or Path.cwd()) / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_store_config(config: dict, environ: dict[str, str] | None = None) -> StoreConfig:
    """Build a ``StoreConfig`` from config.json values; environment variables win."""
    env = os.environ if environ is None else environ
    database_path = env.get("CONTEXT_STORE_DB") or str(config.get("DatabasePath", DEFAULT_DB_PATH))
    return StoreConfig(
        database_path=database_path,
        debug=_to_bool(env.get("CONTEXT_STORE_DEBUG", config.get("Debug", False)), default=False),
        busy_timeout_ms=int(config.get("BusyTimeoutMs", 5000)),
        default_max_tokens=int(config.get("DefaultMaxTokens", DEFAULT_MAX_TOKENS)),
        default_search_limit=int(config.get("DefaultSearchLimit", DEFAULT_SEARCH_LIMIT)),
        default_session_list_limit=int(config.get("DefaultSessionListLimit", DEFAULT_LIST_LIMIT)),
        default_retention_days=int(config.get("DefaultRetentionDays", DEFAULT_RETENTION_DAYS)),
        default_keep_last=int(config.get("DefaultKeepLast", DEFAULT_KEEP_LAST)),
        log_level=env.get("CONTEXT_STORE_LOG_LEVEL") or config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )
