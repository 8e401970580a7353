"""
library_errors.py
"""

from __future__ import annotations
from typing import Optional


class LibraryError(Exception):
    """Base exception for library catalog errors."""


class DuplicateKeyError(LibraryError):
    """A record with the same key already exists."""


class DuplicateBookError(DuplicateKeyError):
    """A book with the same ISBN already exists."""


class DuplicateMemberError(DuplicateKeyError):
    """A member with the same ID already exists."""


class NotFoundError(LibraryError):
    """Requested record does not exist."""


class BookNotFoundError(NotFoundError):
    """Requested ISBN does not exist in the catalog."""


class MemberNotFoundError(NotFoundError):
    """Requested member ID does not exist in the catalog."""


class BookLimitExceededError(LibraryError):
    """Member already holds the maximum number of books."""


class BookNotAvailableError(LibraryError):
    """Book is currently borrowed by a member."""


class BookNotBorrowedError(LibraryError):
    """Member does not hold the book being returned."""


class CatalogInconsistencyError(LibraryError):
    """A member refused a transition the catalog had already validated."""


class StorageError(LibraryError):
    """Reading or writing a persisted record failed."""


class ParseError(LibraryError, ValueError):
    """
    A persisted record could not be decoded.

    Attributes:
        line_no: 1-based line number in the source file, when known.
    """

    def __init__(self, message: str, line_no: Optional[int] = None):
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)


class InvalidRecordError(LibraryError, ValueError):
    """A book or member is missing a required value such as its key."""
