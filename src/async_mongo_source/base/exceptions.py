from enum import Enum
from typing import Any, List, Optional, Sequence


class UnsupportedOperatorError(ValueError):
    """Raised when a condition or junction operator has no native translation."""

    def __init__(self, operator: Any):
        self.operator = operator
        super().__init__(f"Unsupported operator {operator!r}")


class InconsistentUpdateParamsError(ValueError):
    """Raised when the parallel update arrays differ in length."""

    def __init__(self, updates: int, where: int, methods: int):
        self.updates = updates
        self.where = where
        self.methods = methods
        super().__init__(
            f"The number of parameters does not match. Number of updates: {updates}, "
            f"where clauses: {where}, method types: {methods}"
        )


class UnknownUpdateMethodError(ValueError):
    """Raised when an update method tag is neither 'update one' nor 'update many'."""

    def __init__(self, index: int, method: Any = None):
        self.index = index
        self.method = method
        super().__init__(f"Unknown update method {method!r} with index \"{index}\".")


class BulkUpdateOperationsError(TypeError):
    def __init__(self):
        super().__init__(
            "Some of the BulkUpdate operations are different than UpdateOne and UpdateMany."
        )


class PendingSessionError(RuntimeError):
    def __init__(self, message: str = "The current session has an active transaction. Cannot start a new one."):
        super().__init__(message)


class SessionErrorType(str, Enum):
    UNKNOWN_TRANSACTION_COMMIT_RESULT = "UnknownTransactionCommitResult"
    TRANSIENT_TRANSACTION_ERROR = "TransientTransactionError"
    OTHER = "Other"


class SessionError(Exception):
    """Wraps a driver failure raised while committing or aborting a transaction."""

    def __init__(self, error: Exception):
        super().__init__(str(error))
        self.error = error
        has_label = getattr(error, "has_error_label", None)
        if callable(has_label) and has_label("UnknownTransactionCommitResult"):
            self.type = SessionErrorType.UNKNOWN_TRANSACTION_COMMIT_RESULT
        elif callable(has_label) and has_label("TransientTransactionError"):
            self.type = SessionErrorType.TRANSIENT_TRANSACTION_ERROR
        else:
            self.type = SessionErrorType.OTHER


class CollectionError(Exception):
    """
    Operational failure reported by the store.

    Carries the original driver error and, for inserts, the documents that
    made it into the collection and the ones that did not.
    """

    def __init__(
        self,
        message: str,
        error: Optional[Exception] = None,
        duplicated_ids: Optional[Sequence[Any]] = None,
        inserted_documents: Optional[Sequence[Any]] = None,
        failed_documents: Optional[Sequence[Any]] = None,
    ):
        super().__init__(message)
        self.error = error
        self.duplicated_ids: List[Any] = list(duplicated_ids or [])
        self.inserted_documents: List[Any] = list(inserted_documents or [])
        self.failed_documents: List[Any] = list(failed_documents or [])


class DuplicateError(CollectionError):
    """Raised when a write violates a unique index."""


class InvalidDataError(CollectionError):
    """Raised when the store rejects a document during schema validation."""


class MigrationError(Exception):
    """Raised when a migration cannot be registered."""
