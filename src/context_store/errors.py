from __future__ import annotations


class ContextStoreError(Exception):
    """Base class for every error the store reports to its callers."""

    kind = "error"

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": str(self)}


class ValidationError(ContextStoreError):
    kind = "validation_error"


class NotFoundError(ContextStoreError):
    kind = "not_found"


class StorageError(ContextStoreError):
    kind = "storage_error"


class OperationCancelledError(StorageError):
    kind = "cancelled"
