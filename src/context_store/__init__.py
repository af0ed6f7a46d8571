from context_store.app_config import StoreConfig
from context_store.commands import CommandDispatcher
from context_store.engine import ContextStore
from context_store.errors import (
    ContextStoreError,
    NotFoundError,
    OperationCancelledError,
    StorageError,
    ValidationError,
)
from context_store.tokens import count_tokens

__all__ = [
    "CommandDispatcher",
    "ContextStore",
    "ContextStoreError",
    "NotFoundError",
    "OperationCancelledError",
    "StorageError",
    "StoreConfig",
    "ValidationError",
    "count_tokens",
]
