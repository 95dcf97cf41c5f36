"""Structured error types for renodes."""

from __future__ import annotations


class RenodesError(Exception):
    """Base error for all renodes errors."""


class StorageBackendError(RenodesError):
    """Raised when backend storage operations fail."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")


class ConditionFailedError(RenodesError):
    """Raised by a record store when a conditional write is rejected."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Condition check failed for record '{key}'")


class MetadataMissingError(RenodesError):
    """Raised when a nested metadata write targets a record without a metadata map."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Record '{key}' has no metadata map to update")


class NotFoundError(RenodesError):
    """Raised when a record that must exist is absent."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Record '{key}' not found")


class DuplicateKeyError(RenodesError):
    """Raised when inserting a key that is already stored."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Record '{key}' already exists")


class OrphanRecordError(RenodesError):
    """Raised when no record points at a key that should be part of a chain."""

    def __init__(self, key: str, collection: str) -> None:
        self.key = key
        self.collection = collection
        super().__init__(
            f"Record '{key}' has no predecessor in collection '{collection}'; "
            "the chain is already inconsistent"
        )


class CollectionMismatchError(RenodesError):
    """Raised when a record used as a position anchor belongs to another collection."""

    def __init__(self, key: str, expected: str, actual: str) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Record '{key}' belongs to collection '{actual}', not '{expected}'"
        )


class BrokenChainError(RenodesError):
    """Raised when following successor pointers cannot reconstruct a collection."""

    def __init__(self, collection: str, detail: str) -> None:
        self.collection = collection
        self.detail = detail
        super().__init__(f"Broken chain in collection '{collection}': {detail}")


class WriteConflictError(RenodesError):
    """Raised when the conditional writes of an operation lost a race."""

    def __init__(self, operation: str, key: str, message: str | None = None) -> None:
        self.operation = operation
        self.key = key
        super().__init__(message or f"Write conflict during {operation} of '{key}'")


class InsertConflictError(WriteConflictError):
    """Raised when an insert could not link the new record into its collection."""

    def __init__(self, key: str) -> None:
        super().__init__("insert", key)


class PartialFailureError(WriteConflictError):
    """Raised when only some writes of a multi-write operation were applied.

    The collection is left in a state matching neither the pre- nor the
    post-operation invariant. ``intent_key`` names the intent record describing
    the planned writes, when intents are recorded.
    """

    def __init__(
        self,
        operation: str,
        key: str,
        applied: list[str],
        failed: list[str],
        intent_key: str | None = None,
    ) -> None:
        self.applied = applied
        self.failed = failed
        self.intent_key = intent_key
        super().__init__(
            operation,
            key,
            f"Partial failure during {operation} of '{key}': "
            f"applied {applied}, failed {failed}",
        )


class ModelError(RenodesError):
    """Base error for entity adapter failures surfaced to the presentation layer."""


class ModelNotFoundError(ModelError):
    """Raised when a model cannot be found."""

    def __init__(self, message: str = "model not found") -> None:
        super().__init__(message)


class ModelConflictError(ModelError):
    """Raised when a model mutation lost a race and applied nothing."""


class ModelStateUnknownError(ModelError):
    """Raised when a model mutation left its collection in an unknown state.

    Callers should re-list the collection before retrying.
    """
