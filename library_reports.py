"""
library_reports.py

Tabular reports over a catalog snapshot, returned as pandas DataFrames.
"""

from __future__ import annotations
import datetime
from typing import Optional

import pandas as pd

from library_system import LibraryCatalog

BOOK_COLUMNS = ["ISBN", "Title", "Author", "Year", "Genre", "Availability"]
MEMBER_COLUMNS = ["Member ID", "Name", "BorrowedCount", "BorrowedBooks", "CanBorrow", "Overdue"]
OVERDUE_COLUMNS = ["Member ID", "Name", "ISBN", "Due Date", "Days Overdue"]
GENRE_COLUMNS = ["Genre", "count"]


def export_report_books(catalog: LibraryCatalog) -> pd.DataFrame:
    """
    Produce a DataFrame suitable for reporting the books inventory.

    Availability is "Available" or "Issued", derived from current loans.
    Rows are ordered by ISBN.
    """
    available = {b.isbn for b in catalog.available_books()}
    rows = [{
        "ISBN": b.isbn,
        "Title": b.title,
        "Author": b.author,
        "Year": b.publication_year,
        "Genre": b.genre.name,
        "Availability": "Available" if b.isbn in available else "Issued",
    } for b in catalog.all_books()]
    df = pd.DataFrame(rows, columns=BOOK_COLUMNS)
    return df.sort_values("ISBN", ignore_index=True)


def export_report_members(catalog: LibraryCatalog,
                          today: Optional[datetime.date] = None) -> pd.DataFrame:
    """
    Build a DataFrame summarizing members and their current borrowed books.

    Returns columns: Member ID, Name, BorrowedCount, BorrowedBooks (comma
    separated, sorted), CanBorrow, Overdue.
    """
    rows = []
    for m in catalog.all_members():
        borrowed = sorted(m.borrowed_books)
        rows.append({
            "Member ID": m.member_id,
            "Name": m.name,
            "BorrowedCount": len(borrowed),
            "BorrowedBooks": ",".join(borrowed),
            "CanBorrow": m.can_borrow(),
            "Overdue": m.has_overdue_books(today),
        })
    df = pd.DataFrame(rows, columns=MEMBER_COLUMNS)
    return df.sort_values("Member ID", ignore_index=True)


def overdue_report(catalog: LibraryCatalog,
                   today: Optional[datetime.date] = None) -> pd.DataFrame:
    """Every overdue loan, most overdue first."""
    rows = [{
        "Member ID": member.member_id,
        "Name": member.name,
        "ISBN": isbn,
        "Due Date": due,
        "Days Overdue": days,
    } for member, isbn, due, days in catalog.overdue_loans(today)]
    df = pd.DataFrame(rows, columns=OVERDUE_COLUMNS)
    return df.sort_values(["Days Overdue", "ISBN"], ascending=[False, True], ignore_index=True)


def genre_report(catalog: LibraryCatalog) -> pd.DataFrame:
    """Book counts per genre, largest first; only genres with books appear."""
    counts = catalog.count_by_genre()
    df = pd.DataFrame([{"Genre": g.name, "count": n} for g, n in counts.items()],
                      columns=GENRE_COLUMNS)
    return df.sort_values(["count", "Genre"], ascending=[False, True], ignore_index=True)
