"""
Custom Exceptions for the Knowledge Core.

Exception Hierarchy:
    KnowledgeCoreError (base)
    ├── VectorStoreError
    │   └── CollectionUnavailableError
    ├── RecordValidationError
    │   ├── MissingFieldsError
    │   ├── DimensionMismatchError
    │   └── EmptyDocumentError
    └── EmbeddingError

Propagation policy:
    - Mutations (add / upsert / delete) raise VectorStoreError to the caller.
    - Queries never raise: the client logs and returns an empty result.
    - Validation errors are raised before any network call is made.

Usage:
    from vector_store.exceptions import VectorStoreError, MissingFieldsError

    try:
        report = pipeline.ingest(records, SourceType.YOUTRACK)
    except MissingFieldsError as e:
        print(f"Missing fields: {e.missing}")
    except VectorStoreError as e:
        print(f"{e.operation} failed for {e.ids}")
"""

from __future__ import annotations

from typing import Optional, Sequence


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class KnowledgeCoreError(Exception):
    """
    Base exception for all knowledge core errors.

    Attributes:
        message: Human-readable error description
        details: Additional technical details (optional)
    """

    def __init__(
        self,
        message: str = "A knowledge core error occurred",
        details: Optional[str] = None,
    ):
        self.message = message
        self.details = details

        full_message = message
        if details:
            full_message = f"{message} | Details: {details}"

        super().__init__(full_message)


# =============================================================================
# VECTOR STORE ERRORS
# =============================================================================


class VectorStoreError(KnowledgeCoreError):
    """
    Raised when a call to the vector store backend fails.

    Attributes:
        operation: The attempted operation ("add", "upsert", "query", ...)
        ids: Record ids involved in the operation, where known
        original_error: The underlying backend/transport exception
    """

    def __init__(
        self,
        operation: str,
        message: Optional[str] = None,
        ids: Optional[Sequence[str]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        self.ids = list(ids or [])
        self.original_error = original_error

        msg = message or f"Vector store operation '{operation}' failed"
        if self.ids:
            preview = ", ".join(self.ids[:5])
            if len(self.ids) > 5:
                preview += f", ... ({len(self.ids)} total)"
            msg = f"{msg} [ids: {preview}]"

        details = str(original_error) if original_error else None
        super().__init__(msg, details)


class CollectionUnavailableError(VectorStoreError):
    """
    Raised when the collection handle cannot be resolved.

    The handle is re-resolved on the next call, so this error is transient
    from the client's point of view.
    """

    def __init__(
        self,
        collection_name: str,
        operation: str = "ensure_collection",
        original_error: Optional[Exception] = None,
    ):
        self.collection_name = collection_name
        super().__init__(
            operation=operation,
            message=f"Collection '{collection_name}' is unavailable",
            original_error=original_error,
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class RecordValidationError(KnowledgeCoreError):
    """Base class for records rejected before any network call."""

    pass


class MissingFieldsError(RecordValidationError):
    """
    Raised when mandatory identity fields are absent from source records.

    Attributes:
        missing: Names of the missing fields
        record_ids: Positions or ids of the offending records
    """

    def __init__(
        self,
        missing: Sequence[str],
        record_ids: Optional[Sequence[str]] = None,
        source: Optional[str] = None,
    ):
        self.missing = sorted(set(missing))
        self.record_ids = list(record_ids or [])
        self.source = source

        msg = f"Required fields are missing: {self.missing}"
        if source:
            msg = f"{msg} (source: {source})"
        details = None
        if self.record_ids:
            details = f"records: {self.record_ids[:10]}"
        super().__init__(msg, details)


class DimensionMismatchError(RecordValidationError):
    """
    Raised when an embedding does not match the collection dimension.

    Attributes:
        expected: Dimension of the collection
        actual: Dimension of the offending embedding
        record_id: Id of the offending record, if known
    """

    def __init__(
        self,
        expected: int,
        actual: int,
        record_id: Optional[str] = None,
    ):
        self.expected = expected
        self.actual = actual
        self.record_id = record_id

        msg = f"Embedding dimension {actual} does not match collection dimension {expected}"
        if record_id:
            msg = f"{msg} (record {record_id})"
        super().__init__(msg)


class EmptyDocumentError(RecordValidationError):
    """Raised when a record normalizes to an empty document."""

    def __init__(self, record_id: Optional[str] = None):
        self.record_id = record_id
        msg = "Document is empty"
        if record_id:
            msg = f"{msg}: {record_id}"
        super().__init__(msg)


# =============================================================================
# EMBEDDING ERRORS
# =============================================================================


class EmbeddingError(KnowledgeCoreError):
    """
    Raised when the embedder cannot produce a vector.

    Attributes:
        model: Embedding model name
        original_error: The underlying client exception
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.model = model
        self.original_error = original_error
        details = str(original_error) if original_error else None
        super().__init__(message, details)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def format_error_chain(error: Exception) -> str:
    """
    Format an exception and its chain for logging.

    Returns a multi-line string showing the error hierarchy.
    """
    lines = []
    current = error
    depth = 0

    while current is not None:
        prefix = "  " * depth + ("└─ " if depth > 0 else "")
        lines.append(f"{prefix}{type(current).__name__}: {current}")

        if getattr(current, "original_error", None):
            current = current.original_error
            depth += 1
        elif current.__cause__:
            current = current.__cause__
            depth += 1
        else:
            break

    return "\n".join(lines)
