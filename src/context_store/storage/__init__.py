from context_store.storage.content_store import ContentStore
from context_store.storage.context_window import ContextWindow, ContextWindowAssembler
from context_store.storage.database import Database
from context_store.storage.deadline import Deadline
from context_store.storage.models import Content, NewContent, Session
from context_store.storage.retention import PurgeResult, RetentionManager
from context_store.storage.session_registry import SessionRegistry

__all__ = [
    "Content",
    "ContentStore",
    "ContextWindow",
    "ContextWindowAssembler",
    "Database",
    "Deadline",
    "NewContent",
    "PurgeResult",
    "RetentionManager",
    "Session",
    "SessionRegistry",
]
