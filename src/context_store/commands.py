from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from context_store.engine import ContextStore
from context_store.errors import ContextStoreError, StorageError, ValidationError
from context_store.storage.deadline import Deadline
from context_store.storage.models import NewContent, to_timestamp

Handler = Callable[[dict[str, Any], Deadline | None], dict[str, Any]]


class CommandDispatcher:
    """Maps named commands onto the store and wraps every outcome in an envelope.

    Success: ``{"success": True, "data": {...}}``.
    Failure: ``{"success": False, "error": {"kind": ..., "message": ...}}``.
    """

    def __init__(self, store: ContextStore) -> None:
        self._store = store
        self._handlers: dict[str, Handler] = {
            "ping": self._ping,
            "store_content": self._store_content,
            "get_content": self._get_content,
            "search_content": self._search_content,
            "create_session": self._create_session,
            "get_session": self._get_session,
            "list_sessions": self._list_sessions,
            "get_context_window": self._get_context_window,
            "cleanup": self._cleanup,
            "cleanup_session": self._cleanup_session,
            "clear_all": self._clear_all,
        }

    @property
    def methods(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> dict[str, Any]:
        try:
            handler = self._handlers.get(method)
            if handler is None:
                raise ValidationError(f"Unknown method: {method}")
            if params is None:
                params = {}
            if not isinstance(params, dict):
                raise ValidationError("params must be an object")
            data = handler(params, deadline)
        except StorageError as ex:
            logger.error(f"{method} failed ({ex.kind}): {ex}")
            return _failure(ex)
        except ContextStoreError as ex:
            logger.warning(f"{method} rejected ({ex.kind}): {ex}")
            return _failure(ex)
        except Exception as ex:
            logger.exception(f"{method} raised an unexpected error")
            return {"success": False, "error": {"kind": "internal_error", "message": str(ex)}}

        logger.debug(f"{method} succeeded")
        return {"success": True, "data": data}

    def _ping(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        return {"message": "Storage server is working!"}

    def _store_content(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        metadata = params.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")
        record = self._store.contents.store(
            NewContent(
                content=_string(params, "content", required=True),
                id=_string(params, "id") or None,
                session_id=_string(params, "session_id") or None,
                url=_string(params, "url"),
                title=_string(params, "title"),
                content_type=_string(params, "content_type") or "text",
                metadata=metadata or {},
            ),
            deadline=deadline,
        )
        return {"id": record.id, "token_count": record.token_count}

    def _get_content(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        content_id = _string(params, "id", required=True, non_empty=True)
        return self._store.contents.get(content_id, deadline=deadline).to_dict()

    def _search_content(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        query = _string(params, "query", required=True, non_empty=True)
        results = self._store.contents.search(query, _integer(params, "limit"), deadline=deadline)
        return {"results": [c.to_dict() for c in results], "count": len(results)}

    def _create_session(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        session = self._store.sessions.create(
            _string(params, "name"),
            session_id=_string(params, "id") or None,
            deadline=deadline,
        )
        return session.to_dict()

    def _get_session(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        session_id = _string(params, "id", required=True, non_empty=True)
        return self._store.sessions.get(session_id, deadline=deadline).to_dict()

    def _list_sessions(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        sessions = self._store.sessions.list(_integer(params, "limit"), deadline=deadline)
        return {"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}

    def _get_context_window(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        session_id = _string(params, "session_id", required=True, non_empty=True)
        window = self._store.windows.assemble(session_id, _integer(params, "max_tokens"), deadline=deadline)
        return window.to_dict()

    def _cleanup(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        result = self._store.retention.purge_older_than(_integer(params, "days_old"), deadline=deadline)
        return {
            "message": f"Deleted content older than {result.days} days",
            "deleted": result.deleted,
            "cutoff": to_timestamp(result.cutoff),
        }

    def _cleanup_session(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        session_id = _string(params, "session_id", required=True, non_empty=True)
        deleted = self._store.retention.cap_session(session_id, _integer(params, "keep_last"), deadline=deadline)
        return {
            "message": f"Deleted {deleted} old items from session {session_id}",
            "deleted": deleted,
        }

    def _clear_all(self, params: dict[str, Any], deadline: Deadline | None) -> dict[str, Any]:
        deleted = self._store.retention.reset_all(deadline=deadline)
        return {"message": "All storage content has been cleared", "deleted": deleted}


def _failure(ex: ContextStoreError) -> dict[str, Any]:
    return {"success": False, "error": ex.to_dict()}


def _string(params: dict[str, Any], key: str, *, required: bool = False, non_empty: bool = False) -> str:
    value = params.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    if non_empty and not value.strip():
        raise ValidationError(f"{key} is required")
    return value


def _integer(params: dict[str, Any], key: str) -> int | None:
    # JSON numbers may arrive as floats; only integral values are accepted.
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValidationError(f"{key} must be an integer")
