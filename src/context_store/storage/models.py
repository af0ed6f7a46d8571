from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Union

from context_store.errors import ValidationError

JsonValue = Union[str, int, float, bool, None, list["JsonValue"], dict[str, "JsonValue"]]
JsonObject = dict[str, JsonValue]


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_timestamp(value: datetime) -> str:
    # Fixed-width ISO strings so SQLite can compare them lexically.
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def ensure_text(value: str, name: str) -> str:
    """Reject strings SQLite cannot bind, such as lone surrogates decoded from JSON escapes."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as ex:
        raise ValidationError(f"{name} is not valid UTF-8 text") from ex
    return value


def ensure_json_value(value: Any, *, path: str = "metadata") -> JsonValue:
    """Check that ``value`` is made only of JSON-compatible pieces.

    Returns a detached copy so later mutation of the caller's object cannot
    change what gets stored.
    """
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{path} contains a non-finite number")
        return value
    if isinstance(value, (list, tuple)):
        return [ensure_json_value(item, path=f"{path}[{i}]") for i, item in enumerate(value)]
    if isinstance(value, dict):
        result: JsonObject = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"{path} keys must be strings, got {type(key).__name__}")
            result[key] = ensure_json_value(item, path=f"{path}.{key}")
        return result
    raise ValidationError(f"{path} holds a value that is not JSON-compatible: {type(value).__name__}")


def ensure_metadata(value: Any) -> JsonObject:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("metadata must be an object")
    return ensure_json_value(value)  # type: ignore[return-value]


@dataclass(frozen=True)
class Content:
    id: str
    content: str
    token_count: int
    created_at: datetime
    session_id: str | None = None
    url: str = ""
    title: str = ""
    content_type: str = "text"
    metadata: JsonObject = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "content_type": self.content_type,
            "metadata": self.metadata,
            "token_count": self.token_count,
            "created_at": to_timestamp(self.created_at),
        }


@dataclass(frozen=True)
class NewContent:
    """Caller input for ``ContentStore.store``; id is optional."""

    content: str
    session_id: str | None = None
    url: str = ""
    title: str = ""
    content_type: str = "text"
    metadata: JsonObject = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class Session:
    id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_timestamp(self.created_at),
        }
