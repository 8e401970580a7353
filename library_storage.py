"""
library_storage.py

CSV persistence for the catalog.

Two flat files live in the data directory:

    books.csv    title,author,isbn,year,genre
    members.csv  memberId,name,borrowedBooks

Title, author, member ID and name are written quoted with embedded quotes
doubled. The member's borrowed books are packed into a single quoted field,
either as `isbn:YYYY-MM-DD` entries joined by `;` (ISBN colons, semicolons
and backslashes escaped with a backslash) or as a JSON array of
[isbn, date] pairs. The reader accepts both.

Loading is best effort: a bad line is logged and skipped, a missing file is
an empty collection. Saving writes a temporary file next to the target and
renames it into place.
"""

from __future__ import annotations
import datetime
import json
import logging
import os
import pathlib
import re
from typing import Iterable, List, Optional, Tuple, Union

from library_errors import ParseError, StorageError
from library_models import Book, Genre, Member
from library_system import LibraryCatalog

# Configuration
DEFAULT_DATA_DIR = "data"
BOOKS_FILE = "books.csv"
MEMBERS_FILE = "members.csv"
BOOKS_HEADER = "title,author,isbn,year,genre"
MEMBERS_HEADER = "memberId,name,borrowedBooks"
BOOKS_HEADER_PREFIX = "title,author"
MEMBERS_HEADER_PREFIX = "memberId,name"

FORMAT_DELIMITED = "delimited"
FORMAT_JSON = "json"
BORROWED_FORMATS = (FORMAT_DELIMITED, FORMAT_JSON)

logger = logging.getLogger("library.storage")

PathLike = Union[str, "os.PathLike[str]"]

_BACKSLASH_ESCAPE = re.compile(r"\\(.)", re.DOTALL)


# ---------------- Field helpers ----------------
def split_csv_line(line: str) -> List[str]:
    """
    Split one line into fields on commas that are outside double quotes.

    A doubled quote inside a quoted section yields a literal quote; any other
    quote toggles the quoted state and is dropped. Backslash escapes are left
    for the per-field decoders.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        c = line[i]
        if c == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif c == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(c)
        i += 1
    fields.append("".join(current))
    return fields


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _single_line(text: str) -> str:
    return text.replace("\n", " ").replace("\r", "")


def _unescape(text: str) -> str:
    return _BACKSLASH_ESCAPE.sub(r"\1", text)


def _escape_member_id(member_id: str) -> str:
    return member_id.replace("\\", "\\\\").replace(",", "\\,")


def _escape_isbn(isbn: str) -> str:
    return isbn.replace("\\", "\\\\").replace(":", "\\:").replace(";", "\\;")


# ---------------- Book codec ----------------
def encode_book(book: Book) -> str:
    if not (book.isbn or "").strip():
        raise ValueError("Book ISBN must be set")
    return "{},{},{},{},{}".format(
        _quote(_single_line(book.title)),
        _quote(_single_line(book.author)),
        book.isbn,
        book.publication_year,
        book.genre.name,
    )


def decode_book(line: str, line_no: Optional[int] = None) -> Book:
    """
    Decode one books.csv data row.

    Raises ParseError unless the row has exactly five fields, an integer
    year and a known genre.
    """
    parts = split_csv_line(line.strip())
    if len(parts) != 5:
        raise ParseError(f"expected 5 fields, found {len(parts)}", line_no)
    title, author, isbn, year_text, genre_text = parts
    isbn = isbn.strip()
    if not isbn:
        raise ParseError("empty ISBN", line_no)
    try:
        year = int(year_text.strip())
    except ValueError:
        raise ParseError(f"invalid year {year_text!r}", line_no) from None
    try:
        genre = Genre.parse(genre_text)
    except ParseError as exc:
        raise ParseError(str(exc), line_no) from None
    return Book(title=title, author=author, isbn=isbn, publication_year=year, genre=genre)


# ---------------- Member codec ----------------
def encode_borrowed(member: Member, borrowed_format: str = FORMAT_DELIMITED) -> str:
    """Pack a member's loans, sorted by ISBN, into the borrowedBooks field text."""
    loans = sorted(member.borrowed_books.items())
    if borrowed_format == FORMAT_JSON:
        if not loans:
            return ""
        return json.dumps([[isbn, due.isoformat()] for isbn, due in loans],
                          ensure_ascii=False, separators=(",", ":"))
    text = ";".join(f"{_escape_isbn(isbn)}:{due.isoformat()}" for isbn, due in loans)
    # a leading bracket would be read back as JSON
    return "\\" + text if text.startswith("[") else text


def encode_member(member: Member, borrowed_format: str = FORMAT_DELIMITED) -> str:
    if not (member.member_id or "").strip() or not (member.name or "").strip():
        raise ValueError("Member ID and name must be set")
    return "{},{},{}".format(
        _quote(_escape_member_id(member.member_id)),
        _quote(_single_line(member.name)),
        _quote(encode_borrowed(member, borrowed_format)),
    )


def _split_delimited_loans(text: str) -> List[Tuple[str, Optional[str]]]:
    """
    Break `isbn:date;isbn:date` into (isbn, date text) pairs.

    Escaped characters are kept out of the separator search. Entries without
    an unescaped colon come back with a None date.
    """
    entries: List[Tuple[str, Optional[str]]] = []
    isbn: List[str] = []
    date_text: Optional[List[str]] = None
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c == "\\" and i + 1 < n:
            (isbn if date_text is None else date_text).append(text[i + 1])
            i += 2
            continue
        if c == ";":
            entries.append(("".join(isbn), None if date_text is None else "".join(date_text)))
            isbn, date_text = [], None
        elif c == ":" and date_text is None:
            date_text = []
        else:
            (isbn if date_text is None else date_text).append(c)
        i += 1
    entries.append(("".join(isbn), None if date_text is None else "".join(date_text)))
    return [e for e in entries if e[0].strip() or (e[1] or "").strip()]


def _json_loans(text: str) -> List[Tuple[str, Optional[str]]]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        logger.warning("Skipping borrowed books, invalid JSON: %s", exc)
        return []
    if not isinstance(data, list):
        logger.warning("Skipping borrowed books, JSON is not an array: %r", text)
        return []
    loans: List[Tuple[str, Optional[str]]] = []
    for item in data:
        if isinstance(item, list) and len(item) == 2 and all(isinstance(x, str) for x in item):
            loans.append((item[0], item[1]))
        else:
            loans.append((str(item), None))
    return loans


def decode_borrowed(text: str) -> List[Tuple[str, datetime.date]]:
    """
    Unpack the borrowedBooks field.

    Malformed entries (no date, empty ISBN, unparseable date) are logged
    and dropped; the remaining loans are returned.
    """
    text = text.strip()
    if not text:
        return []
    raw = _json_loans(text) if text.startswith("[") else _split_delimited_loans(text)
    loans: List[Tuple[str, datetime.date]] = []
    for isbn, date_text in raw:
        isbn = isbn.strip()
        if not isbn or date_text is None:
            logger.warning("Skipping invalid book entry: isbn=%r due=%r", isbn, date_text)
            continue
        try:
            due = datetime.date.fromisoformat(date_text.strip())
        except ValueError:
            logger.warning("Skipping invalid book entry: %r (bad date %r)", isbn, date_text)
            continue
        loans.append((isbn, due))
    return loans


def decode_member(line: str, line_no: Optional[int] = None) -> Member:
    """
    Decode one members.csv data row.

    Raises ParseError for a line with fewer than two fields or an empty ID
    or name. Bad individual loans only drop that loan.
    """
    if not line or not line.strip():
        raise ParseError("empty line", line_no)
    parts = split_csv_line(line.strip())
    if len(parts) < 2:
        raise ParseError(f"invalid member record: {line.strip()!r}", line_no)
    member_id = _unescape(parts[0])
    name = parts[1]
    if not member_id.strip() or not name.strip():
        raise ParseError("member ID and name cannot be empty", line_no)

    member = Member(member_id, name)
    if len(parts) > 2:
        for isbn, due in decode_borrowed(parts[2]):
            if not member.restore_loan(isbn, due):
                logger.warning("Skipping loan %s for member %s: limit reached", isbn, member_id)
    return member


# ---------------- Files ----------------
def _atomic_write(path: pathlib.Path, lines: Iterable[str]) -> None:
    """Write `lines` to a sibling temp file, then rename it over `path`."""
    tmp = path.with_name(path.name + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8", newline="\n") as fh:
            for line in lines:
                fh.write(line)
                fh.write("\n")
        os.replace(tmp, path)
    except OSError:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


class CsvLibraryStore:
    """
    Reads and writes the catalog's books.csv and members.csv.

    Load methods never raise for bad data: unreadable files and bad lines are
    logged and the good records are returned. Save methods return False on
    an I/O failure, leaving the previous file untouched.
    """

    def __init__(self,
                 data_dir: PathLike = DEFAULT_DATA_DIR,
                 books_file: str = BOOKS_FILE,
                 members_file: str = MEMBERS_FILE,
                 borrowed_format: str = FORMAT_DELIMITED):
        """
        Args:
            data_dir: directory holding the CSV files, created on first use.
            books_file: file name of the books CSV inside data_dir.
            members_file: file name of the members CSV inside data_dir.
            borrowed_format: "delimited" or "json" for the borrowedBooks field.
        """
        if borrowed_format not in BORROWED_FORMATS:
            raise ValueError(f"borrowed_format must be one of {BORROWED_FORMATS}, got {borrowed_format!r}")
        self.data_dir = pathlib.Path(data_dir)
        self.books_csv = self.data_dir / books_file
        self.members_csv = self.data_dir / members_file
        self.borrowed_format = borrowed_format

    def ensure_files(self) -> None:
        """Create the data directory and header-only CSV files if missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path, header in ((self.books_csv, BOOKS_HEADER), (self.members_csv, MEMBERS_HEADER)):
            if not path.exists():
                path.write_text(header + "\n", encoding="utf-8")
                logger.info("Created %s", path)

    # ---------------- Loading ----------------
    def _read_rows(self, path: pathlib.Path, header_prefix: str) -> List[Tuple[int, str]]:
        if not path.exists() or path.stat().st_size == 0:
            logger.warning("CSV not found or empty: %s (starting empty)", path)
            return []
        with open(path, "r", encoding="utf-8") as fh:
            lines = fh.read().split("\n")
        if not lines or not lines[0].startswith(header_prefix):
            logger.error("Invalid or empty file: %s", path)
            return []
        return [(no, line) for no, line in enumerate(lines[1:], start=2) if line.strip()]

    def load_books(self) -> List[Book]:
        books: List[Book] = []
        try:
            rows = self._read_rows(self.books_csv, BOOKS_HEADER_PREFIX)
        except OSError as exc:
            logger.error("Error reading books file %s: %s", self.books_csv, exc)
            return books
        for line_no, line in rows:
            try:
                books.append(decode_book(line, line_no))
            except ParseError as exc:
                logger.warning("Skipping book record in %s: %s", self.books_csv, exc)
        logger.info("Loaded %d books from %s", len(books), self.books_csv)
        return books

    def load_members(self) -> List[Member]:
        members: List[Member] = []
        try:
            rows = self._read_rows(self.members_csv, MEMBERS_HEADER_PREFIX)
        except OSError as exc:
            logger.error("Error reading members file %s: %s", self.members_csv, exc)
            return members
        for line_no, line in rows:
            try:
                members.append(decode_member(line, line_no))
            except ParseError as exc:
                logger.warning("Skipping member record in %s: %s", self.members_csv, exc)
        logger.info("Loaded %d members from %s", len(members), self.members_csv)
        return members

    def load_into(self, catalog: LibraryCatalog) -> Tuple[int, int]:
        """Load both files into `catalog`, skipping duplicate keys."""
        return catalog.load(self.load_books(), self.load_members())

    # ---------------- Persisting ----------------
    def save_books(self, books: Iterable[Book]) -> bool:
        ordered = sorted(books, key=lambda b: b.isbn)
        try:
            lines = [BOOKS_HEADER] + [encode_book(b) for b in ordered]
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(self.books_csv, lines)
        except (OSError, ValueError) as exc:
            logger.error("Error saving books to %s: %s", self.books_csv, exc)
            return False
        logger.info("Saved %d books to %s", len(ordered), self.books_csv)
        return True

    def save_members(self, members: Iterable[Member]) -> bool:
        ordered = sorted(members, key=lambda m: m.member_id)
        try:
            lines = [MEMBERS_HEADER] + [encode_member(m, self.borrowed_format) for m in ordered]
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(self.members_csv, lines)
        except (OSError, ValueError) as exc:
            logger.error("Error saving members to %s: %s", self.members_csv, exc)
            return False
        logger.info("Saved %d members to %s", len(ordered), self.members_csv)
        return True

    def save(self, catalog: LibraryCatalog) -> bool:
        """Persist the whole catalog. True only if both files were written."""
        books_ok = self.save_books(catalog.all_books())
        members_ok = self.save_members(catalog.all_members())
        return books_ok and members_ok

    # ---------------- Single member files ----------------
    def save_member(self, member: Member, path: PathLike) -> None:
        """
        Write one member record (no header) to `path` atomically.

        Raises StorageError if the file cannot be written.
        """
        path = pathlib.Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(path, [encode_member(member, self.borrowed_format)])
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to save member to {path}: {exc}") from exc
        logger.info("Saved member %s to %s", member.member_id, path)

    @staticmethod
    def load_member(path: PathLike) -> Member:
        """
        Read a file written by save_member().

        Raises StorageError if the file is missing, empty or unparseable.
        """
        path = pathlib.Path(path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                line = fh.readline()
        except OSError as exc:
            raise StorageError(f"Cannot read member file {path}: {exc}") from exc
        if not line.strip():
            raise StorageError(f"File is empty: {path}")
        try:
            return decode_member(line.strip(), 1)
        except ParseError as exc:
            raise StorageError(f"Error loading member from {path}: {exc}") from exc
