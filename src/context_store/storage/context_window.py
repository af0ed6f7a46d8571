from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from context_store.errors import ValidationError
from context_store.storage.content_store import ContentStore
from context_store.storage.deadline import Deadline
from context_store.storage.models import Content, ensure_text

DEFAULT_MAX_TOKENS = 100_000


@dataclass(frozen=True)
class ContextWindow:
    session_id: str
    max_tokens: int
    contents: list[Content] = field(default_factory=list)
    total_tokens: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "contents": [c.to_dict() for c in self.contents],
            "count": len(self.contents),
            "total_tokens": self.total_tokens,
        }


class ContextWindowAssembler:
    """Selects the newest run of a session's content that fits a token budget.

    The window is always a contiguous prefix of the newest-first order: the walk
    stops at the first item that would overflow, so raising the budget can only
    append older items.
    """

    def __init__(self, contents: ContentStore, *, default_max_tokens: int = DEFAULT_MAX_TOKENS):
        self._contents = contents
        self._default_max_tokens = default_max_tokens

    def assemble(
        self,
        session_id: str,
        max_tokens: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> ContextWindow:
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("session_id is required")
        ensure_text(session_id, "session_id")
        if max_tokens is None:
            max_tokens = self._default_max_tokens
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
            raise ValidationError("max_tokens must be an integer")
        if max_tokens <= 0:
            raise ValidationError("max_tokens must be positive")

        candidates = self._contents.list_by_session(session_id, deadline=deadline)

        included: list[Content] = []
        total = 0
        for item in candidates:
            if total + item.token_count > max_tokens:
                break
            included.append(item)
            total += item.token_count

        return ContextWindow(session_id=session_id, max_tokens=max_tokens, contents=included, total_tokens=total)
