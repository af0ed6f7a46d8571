import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

# Records bound to this channel carry the SQL trace emitted in debug mode.
SQL_CHANNEL = "sql"

sql_logger = logger.bind(channel=SQL_CHANNEL)


def _is_sql(record: dict[str, Any]) -> bool:
    return record["extra"].get("channel") == SQL_CHANNEL


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    """Human-readable logs on stderr; stdout is reserved for command results.

    The SQL trace is noisy, so the console drops it unless ``show_sql`` is set.
    """

    def __init__(self, show_sql: bool = False):
        self._show_sql = show_sql

    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            filter=None if self._show_sql else (lambda record: not _is_sql(record)),
        )

    def describe(self, level: str) -> str:
        suffix = ", sql" if self._show_sql else ""
        return f"console (stderr, {level}{suffix})"


class FileLogConsumer:
    """Rotating log file. With ``serialize`` every record is one JSON line."""

    def __init__(
        self,
        path: str = ".context_store/store.log",
        rotation: str = "10 MB",
        retention: int = 3,
        serialize: bool = False,
        show_sql: bool = True,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize
        self._show_sql = show_sql

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {thread.name} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
            filter=None if self._show_sql else (lambda record: not _is_sql(record)),
        )

    def describe(self, level: str) -> str:
        mode = "json" if self._serialize else "text"
        return f"file ({self._path}, {level}, {mode})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

# Console stays quiet by default so CLI output is just the JSON envelope.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def _build_consumer(config: dict[str, Any]) -> LogConsumer | None:
    cls = _CONSUMER_TYPES.get(config.get("type", ""))
    if cls is None:
        return None
    options = {k: v for k, v in config.items() if k not in ("type", "level")}
    try:
        return cls(**options)
    except TypeError as ex:
        logger.warning(f"Invalid options for {config.get('type')} log consumer: {ex}")
        return None


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace every loguru sink with the configured consumers.

    Each consumer entry is ``{"type": "console" | "file", "level": ..., **options}``;
    returns a description of each one registered. Entries with an unknown type
    or unsupported options are skipped.
    """
    logger.remove()

    descriptions: list[str] = []
    for config in _DEFAULT_CONSUMERS if consumers is None else consumers:
        consumer = _build_consumer(config)
        if consumer is None:
            logger.warning(f"Skipping log consumer: {config!r}")
            continue
        sink_level = config.get("level", level)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
