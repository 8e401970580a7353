"""
library_models.py

Domain records for the catalog: the closed set of genres, books and members.
"""

from __future__ import annotations
import datetime
import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

from library_errors import ParseError

# Loan rules
MAX_BOOKS = 5
BORROW_DAYS = 14


class Genre(enum.Enum):
    FICTION = "FICTION"
    SCIENCE = "SCIENCE"
    HISTORY = "HISTORY"
    MYSTERY = "MYSTERY"
    BIOGRAPHY = "BIOGRAPHY"

    @classmethod
    def parse(cls, text: str) -> "Genre":
        """
        Convert user or file input into a Genre.

        Matching is case-insensitive and ignores surrounding whitespace.
        Raises ParseError for anything outside the known genres.
        """
        key = (text or "").strip().upper()
        try:
            return cls[key]
        except KeyError:
            choices = ", ".join(g.name for g in cls)
            raise ParseError(f"Unknown genre {text!r} (expected one of: {choices})") from None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Book:
    """
    A catalogued book. Identity is the ISBN.

    Attributes:
        title: Book title.
        author: Author name.
        isbn: Unique identifier for the book.
        publication_year: Year of publication.
        genre: One of the Genre members.
    """
    title: str
    author: str
    isbn: str
    publication_year: int
    genre: Genre


@dataclass
class Member:
    """
    A library member and the books they currently hold.

    The borrowed map (ISBN -> due date) is only changed through borrow() and
    return_book(); callers get a read-only view via `borrowed_books`.
    """
    member_id: str
    name: str
    _borrowed: Dict[str, datetime.date] = field(default_factory=dict, init=False, repr=False)

    @property
    def borrowed_books(self) -> Mapping[str, datetime.date]:
        return MappingProxyType(self._borrowed)

    def can_borrow(self) -> bool:
        return len(self._borrowed) < MAX_BOOKS

    def borrow(self, isbn: str, today: Optional[datetime.date] = None) -> bool:
        """
        Record a loan of `isbn` due BORROW_DAYS from `today`.

        Borrowing an ISBN already held resets its due date. Returns False
        (without raising) when the ISBN is blank or the member is at the limit.
        """
        if not isbn or not isbn.strip() or not self.can_borrow():
            return False
        today = today or datetime.date.today()
        self._borrowed[isbn] = today + datetime.timedelta(days=BORROW_DAYS)
        return True

    def return_book(self, isbn: Optional[str]) -> bool:
        """Drop the loan for `isbn`. Returns False if it was not held."""
        if isbn is None:
            return False
        return self._borrowed.pop(isbn, None) is not None

    def restore_loan(self, isbn: str, due_date: datetime.date) -> bool:
        """
        Reinstate a persisted loan with its stored due date.

        Used when loading from disk. Refuses blank ISBNs and loans beyond
        MAX_BOOKS.
        """
        if not isbn or not isbn.strip():
            return False
        if isbn not in self._borrowed and not self.can_borrow():
            return False
        self._borrowed[isbn] = due_date
        return True

    def due_date(self, isbn: str) -> Optional[datetime.date]:
        return self._borrowed.get(isbn)

    def is_overdue(self, isbn: str, today: Optional[datetime.date] = None) -> bool:
        due = self._borrowed.get(isbn)
        if due is None:
            return False
        return (today or datetime.date.today()) > due

    def has_overdue_books(self, today: Optional[datetime.date] = None) -> bool:
        today = today or datetime.date.today()
        return any(today > due for due in self._borrowed.values())

    def overdue_report(self, today: Optional[datetime.date] = None) -> Iterator[str]:
        """Yield "ISBN: <isbn>, Days overdue: <n>" for every loan past its due date."""
        today = today or datetime.date.today()
        for isbn, due in self._borrowed.items():
            if today > due:
                yield f"ISBN: {isbn}, Days overdue: {(today - due).days}"

    def __str__(self) -> str:
        return (f"Member{{id={self.member_id}, name='{self.name}', "
                f"borrowedBooks={len(self._borrowed)}, canBorrow={self.can_borrow()}, "
                f"hasOverdue={self.has_overdue_books()}}}")
