#!/usr/bin/env python3
"""
library_system.py
"""

from __future__ import annotations
import dataclasses
import datetime
import logging
import threading
from collections import Counter
from typing import Dict, Iterable, List, Optional, Set, Tuple

from library_errors import (
    BookLimitExceededError,
    BookNotAvailableError,
    BookNotBorrowedError,
    BookNotFoundError,
    CatalogInconsistencyError,
    DuplicateBookError,
    DuplicateKeyError,
    DuplicateMemberError,
    InvalidRecordError,
    MemberNotFoundError,
)
from library_models import Book, Genre, Member

logger = logging.getLogger("library.catalog")

# (member, isbn, due date, days overdue)
OverdueLoan = Tuple[Member, str, datetime.date, int]


class LibraryCatalog:
    """
    LibraryCatalog owns the book and member registries and enforces the rules
    that span both of them.

    Books are keyed by ISBN and members by member ID. Availability is never
    stored on a book: a book is available when no member's borrowed map holds
    its ISBN, so every availability question is answered by scanning members.
    All operations run under a single re-entrant lock; the availability scan
    in borrow_book() and the member's commit happen inside one critical
    section.
    """

    def __init__(self, cascade_removals: bool = False):
        """
        Initialize an empty catalog.

        Args:
            cascade_removals: when True, removing a book also drops any loan
                of that ISBN. When False (the default) loans are left as-is
                and may reference a book that no longer exists.
        """
        self.cascade_removals = bool(cascade_removals)
        self._books: Dict[str, Book] = {}
        self._members: Dict[str, Member] = {}
        self._lock = threading.RLock()

    # ---------------- Book registry ----------------
    def add_book(self, book: Book) -> None:
        """
        Add a new book.

        Surrounding whitespace is dropped from the ISBN. Raises
        InvalidRecordError for a blank ISBN and DuplicateBookError if a book
        with the same ISBN exists.
        """
        isbn = (book.isbn or "").strip()
        if not isbn:
            raise InvalidRecordError("ISBN cannot be empty")
        if isbn != book.isbn:
            book = dataclasses.replace(book, isbn=isbn)
        with self._lock:
            if book.isbn in self._books:
                logger.debug("Attempt to add existing book: %s", book.isbn)
                raise DuplicateBookError(f"ISBN already exists: {book.isbn}")
            self._books[book.isbn] = book
        logger.info("Added book %s (%s)", book.isbn, book.title)

    def remove_book(self, isbn: str) -> Book:
        """
        Remove a book and return it.

        Raises BookNotFoundError if the ISBN is unknown. Loans of the ISBN are
        only dropped when the catalog was built with cascade_removals=True.
        """
        with self._lock:
            book = self._books.pop(isbn, None)
            if book is None:
                raise BookNotFoundError(f"Book not found: {isbn}")
            if self.cascade_removals:
                for member in self._members.values():
                    if member.return_book(isbn):
                        logger.warning("Dropped loan of removed book %s held by %s", isbn, member.member_id)
        logger.info("Removed book %s", isbn)
        return book

    def get_book(self, isbn: str) -> Book:
        with self._lock:
            book = self._books.get(isbn)
        if book is None:
            raise BookNotFoundError(f"Book not found with ISBN: {isbn}")
        return book

    def search_by_author(self, author: str) -> List[Book]:
        """Case-insensitive exact match on the author field."""
        wanted = (author or "").casefold()
        with self._lock:
            return [b for b in self._books.values() if b.author.casefold() == wanted]

    def search_by_genre(self, genre: Genre) -> List[Book]:
        with self._lock:
            return [b for b in self._books.values() if b.genre is genre]

    def oldest_book(self) -> Optional[Book]:
        with self._lock:
            if not self._books:
                return None
            return min(self._books.values(), key=lambda b: b.publication_year)

    def newest_book(self) -> Optional[Book]:
        with self._lock:
            if not self._books:
                return None
            return max(self._books.values(), key=lambda b: b.publication_year)

    def count_by_genre(self) -> Dict[Genre, int]:
        """Number of books per genre; genres with no books are absent."""
        with self._lock:
            return dict(Counter(b.genre for b in self._books.values()))

    def all_books(self) -> List[Book]:
        with self._lock:
            return list(self._books.values())

    def books_sorted_by_year(self) -> List[Book]:
        with self._lock:
            return sorted(self._books.values(), key=lambda b: b.publication_year)

    def available_books(self) -> List[Book]:
        """Books whose ISBN is not held by any member."""
        with self._lock:
            borrowed = self._borrowed_isbns()
            return [b for b in self._books.values() if b.isbn not in borrowed]

    # ---------------- Member registry ----------------
    def add_member(self, member: Member) -> None:
        """
        Register a new member.

        Raises InvalidRecordError for a blank member ID or name and
        DuplicateMemberError if the member ID is already registered.
        """
        if not (member.member_id or "").strip():
            raise InvalidRecordError("Member ID cannot be empty")
        if not (member.name or "").strip():
            raise InvalidRecordError("Member name cannot be empty")
        with self._lock:
            if member.member_id in self._members:
                logger.debug("Attempt to register existing member: %s", member.member_id)
                raise DuplicateMemberError(f"Member ID already exists: {member.member_id}")
            self._members[member.member_id] = member
        logger.info("Registered member %s", member.member_id)

    def get_member(self, member_id: str) -> Member:
        with self._lock:
            member = self._members.get(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member not found with ID: {member_id}")
        return member

    def all_members(self) -> List[Member]:
        with self._lock:
            return list(self._members.values())

    # ---------------- Borrow / return ----------------
    def borrow_book(self, member_id: str, isbn: str,
                    today: Optional[datetime.date] = None) -> datetime.date:
        """
        Lend a book to a member and return the due date.

        Raises:
            MemberNotFoundError / BookNotFoundError: unknown member or ISBN.
            BookLimitExceededError: the member already holds MAX_BOOKS books.
            BookNotAvailableError: some member (including this one) holds the ISBN.
            CatalogInconsistencyError: the member refused the loan anyway.
        """
        with self._lock:
            member = self.get_member(member_id)
            self.get_book(isbn)

            if not member.can_borrow():
                logger.debug("Borrow refused, limit reached: %s", member_id)
                raise BookLimitExceededError(
                    f"Member {member_id} has reached the maximum number of borrowed books.")

            holder = self.borrower_of(isbn)
            if holder is not None:
                logger.debug("Borrow refused, %s already held by %s", isbn, holder.member_id)
                raise BookNotAvailableError(f"Book {isbn} is already borrowed by another member.")

            if not member.borrow(isbn, today=today):
                raise CatalogInconsistencyError(
                    f"Member {member_id} refused to borrow {isbn} after checks passed.")
            due_date = member.due_date(isbn)

        logger.info("Borrowed %s to %s until %s", isbn, member_id, due_date)
        return due_date

    def return_book(self, member_id: str, isbn: str) -> None:
        """
        Process a book return.

        Raises MemberNotFoundError for an unknown member and BookNotBorrowedError
        if the member does not hold the ISBN.
        """
        with self._lock:
            member = self.get_member(member_id)
            if isbn not in member.borrowed_books:
                raise BookNotBorrowedError(f"Book {isbn} is not borrowed by member {member_id}.")
            if not member.return_book(isbn):
                raise CatalogInconsistencyError(
                    f"Member {member_id} refused to return {isbn} after checks passed.")
        logger.info("Book %s returned by %s", isbn, member_id)

    def borrower_of(self, isbn: str) -> Optional[Member]:
        """The member currently holding `isbn`, found by a linear scan."""
        with self._lock:
            for member in self._members.values():
                if isbn in member.borrowed_books:
                    return member
        return None

    # ---------------- Reports / Queries ----------------
    def overdue_loans(self, today: Optional[datetime.date] = None) -> List[OverdueLoan]:
        """Every loan past its due date, as (member, isbn, due date, days overdue)."""
        today = today or datetime.date.today()
        loans: List[OverdueLoan] = []
        with self._lock:
            for member in self._members.values():
                for isbn, due in member.borrowed_books.items():
                    if today > due:
                        loans.append((member, isbn, due, (today - due).days))
        return loans

    # ---------------- Loading ----------------
    def load(self, books: Iterable[Book], members: Iterable[Member]) -> Tuple[int, int]:
        """
        Bulk insert records read from storage.

        Duplicate keys are logged and skipped; so is a member whose loans
        collide with ISBNs already held by an earlier member.
        Returns (books accepted, members accepted).
        """
        n_books = n_members = 0
        with self._lock:
            for book in books:
                try:
                    self.add_book(book)
                    n_books += 1
                except (DuplicateKeyError, InvalidRecordError) as exc:
                    logger.warning("Skipping book while loading: %s", exc)
            for member in members:
                clash = self._borrowed_isbns() & set(member.borrowed_books)
                if clash:
                    logger.warning("Skipping member %s: loans already held elsewhere: %s",
                                   member.member_id, ", ".join(sorted(clash)))
                    continue
                try:
                    self.add_member(member)
                    n_members += 1
                except (DuplicateKeyError, InvalidRecordError) as exc:
                    logger.warning("Skipping member while loading: %s", exc)
        logger.info("Loaded %d books and %d members", n_books, n_members)
        return n_books, n_members

    # -------------- Internal helpers ----------------
    def _borrowed_isbns(self) -> Set[str]:
        return {isbn for m in self._members.values() for isbn in m.borrowed_books}
