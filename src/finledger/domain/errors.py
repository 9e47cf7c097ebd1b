"""Shared domain error messages and error types."""

from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ParseError(DomainError):
    """Input could not be recognized or read as any supported format."""


class NormalizationError(DomainError):
    """A single raw row could not be turned into a line item."""

    def __init__(
        self, message: str, value: Optional[str] = None, row_num: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.value = value
        self.row_num = row_num

    def with_row(self, row_num: int) -> "NormalizationError":
        """Return a copy of this error attributed to a source row."""
        return NormalizationError(self.message, value=self.value, row_num=row_num)

    def __str__(self) -> str:
        if self.row_num is None:
            return self.message
        return f"Row {self.row_num}: {self.message}"


class LinkConflict(ConflictError):
    """Linking two line items would break the parent/child invariants."""


class ChunkWriteError(DomainError):
    """Writing one chunk of a batch import failed."""

    def __init__(self, chunk_index: int, cause: str):
        super().__init__(f"Failed to import chunk {chunk_index + 1}: {cause}")
        self.chunk_index = chunk_index
        self.cause = cause


class ImportStateError(DomainError):
    """Batch import operation is not valid in the current state."""


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def line_item_not_found(item_id: int) -> str:
    """Return message for missing line item."""
    return f"Line item {item_id} not found"


def unparseable_date(value: str) -> str:
    """Return message for a date no recognizer accepts."""
    return f"Could not parse date '{value}'"
