#!/usr/bin/env python3
"""
library_cli.py

Interactive menu over a LibraryCatalog backed by CSV files.
"""

from __future__ import annotations
import argparse
import logging
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd

from library_errors import LibraryError
from library_models import Book, Genre, Member
from library_reports import (
    export_report_books,
    export_report_members,
    genre_report,
    overdue_report,
)
from library_storage import DEFAULT_DATA_DIR, FORMAT_DELIMITED, FORMAT_JSON, CsvLibraryStore
from library_system import LibraryCatalog

logger = logging.getLogger("library.cli")


def input_prompt(prompt: str) -> str:
    """
    Wrapper around built-in input() that returns a stripped string and handles interrupts.

    Returns an empty string on EOF/KeyboardInterrupt.
    """
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return ""


def print_menu(title: str, options: Iterable[str]) -> None:
    print(f"\n--- {title} ---")
    for i, label in enumerate(options, start=1):
        print(f"{i}. {label}")


def print_books(books: List[Book]) -> None:
    if not books:
        print("No books found.")
        return
    for b in books:
        print(f"{b.isbn}: {b.title} | {b.author} | {b.publication_year} | {b.genre}")


def print_frame(df: pd.DataFrame, empty_message: str) -> None:
    if df.empty:
        print(empty_message)
    else:
        print(df.to_string(index=False))


# ---------------- Actions ----------------
def add_book(lib: LibraryCatalog) -> None:
    title = input_prompt("Title: ")
    author = input_prompt("Author: ")
    isbn = input_prompt("ISBN: ")
    year_raw = input_prompt("Publication year: ")
    genre_raw = input_prompt(f"Genre ({', '.join(g.name for g in Genre)}): ")
    if not isbn:
        print("ISBN is required.")
        return
    if not year_raw.lstrip("-").isdigit():
        print("Please enter a valid year.")
        return
    lib.add_book(Book(title, author, isbn, int(year_raw), Genre.parse(genre_raw)))
    print("Book added successfully!")


def remove_book(lib: LibraryCatalog) -> None:
    lib.remove_book(input_prompt("ISBN: "))
    print("Book removed successfully!")


def search_by_author(lib: LibraryCatalog) -> None:
    print_books(lib.search_by_author(input_prompt("Author: ")))


def search_by_genre(lib: LibraryCatalog) -> None:
    print_books(lib.search_by_genre(Genre.parse(input_prompt("Genre: "))))


def add_member(lib: LibraryCatalog) -> None:
    member_id = input_prompt("Member ID: ")
    name = input_prompt("Name: ")
    if not member_id or not name:
        print("Member ID and name are required.")
        return
    lib.add_member(Member(member_id, name))
    print("Member added successfully!")


def view_all_members(lib: LibraryCatalog) -> None:
    print_frame(export_report_members(lib), "No members found.")


def borrow_book(lib: LibraryCatalog) -> None:
    member_id = input_prompt("Member ID: ")
    print("\nAvailable Books:")
    print_books(lib.available_books())
    isbn = input_prompt("ISBN: ")
    due = lib.borrow_book(member_id, isbn)
    print("Book borrowed successfully!")
    print(f"Due date: {due}")


def return_book(lib: LibraryCatalog) -> None:
    member = lib.get_member(input_prompt("Member ID: "))
    if not member.borrowed_books:
        print("This member has no borrowed books.")
        return
    print("\nBorrowed Books:")
    for isbn, due in sorted(member.borrowed_books.items()):
        print(f"ISBN: {isbn}, Due: {due}" + (" (OVERDUE)" if member.is_overdue(isbn) else ""))
    lib.return_book(member.member_id, input_prompt("ISBN: "))
    print("Book returned successfully!")


def oldest_newest(lib: LibraryCatalog) -> None:
    oldest, newest = lib.oldest_book(), lib.newest_book()
    print(f"\nOldest Book: {f'{oldest.title} ({oldest.publication_year})' if oldest else 'N/A'}")
    print(f"Newest Book: {f'{newest.title} ({newest.publication_year})' if newest else 'N/A'}")


def show_overdue(lib: LibraryCatalog) -> None:
    print("\nOverdue Books:")
    print_frame(overdue_report(lib), "No overdue books.")


def show_genres(lib: LibraryCatalog) -> None:
    print("\nBooks by Genre:")
    print_frame(genre_report(lib), "No books.")


MENUS: Dict[str, Dict[str, Callable[[LibraryCatalog], None]]] = {
    "Book Management": {
        "Add Book": add_book,
        "Remove Book": remove_book,
        "Search by Author": search_by_author,
        "Search by Genre": search_by_genre,
        "View All Books": lambda lib: print_books(lib.all_books()),
    },
    "Member Management": {
        "Add Member": add_member,
        "View All Members": view_all_members,
    },
    "Borrow/Return Books": {
        "Borrow a Book": borrow_book,
        "Return a Book": return_book,
        "View Available Books": lambda lib: print_books(lib.available_books()),
    },
    "View Reports": {
        "Books by Genre": show_genres,
        "Oldest/Newest Books": oldest_newest,
        "Overdue Books": show_overdue,
        "Books Sorted by Year": lambda lib: print_books(lib.books_sorted_by_year()),
    },
}


def submenu_loop(lib: LibraryCatalog, title: str) -> None:
    actions = MENUS[title]
    labels = list(actions) + ["Back to Main Menu"]
    while True:
        print_menu(title, labels)
        choice = input_prompt(f"Choose (1-{len(labels)}): ")
        if not choice.isdigit() or not 1 <= int(choice) <= len(labels):
            print("Invalid choice.")
            continue
        if int(choice) == len(labels):
            return
        try:
            actions[labels[int(choice) - 1]](lib)
        except LibraryError as e:
            print(f"Error: {e}")


def cli_loop(lib: LibraryCatalog, store: CsvLibraryStore) -> None:
    """
    Interactive command-loop for the library catalog.

    Presents the main menu and dispatches into the sub-menus until the
    user chooses to save and exit.
    """
    titles = list(MENUS)
    labels = titles + ["Save and Exit"]
    while True:
        print_menu("Library Management System", labels)
        choice = input_prompt(f"Choose (1-{len(labels)}): ")
        if not choice.isdigit() or not 1 <= int(choice) <= len(labels):
            print("Please enter a valid number.")
            continue
        if int(choice) == len(labels):
            if store.save(lib):
                print("Data saved. Exiting...")
            else:
                print("Some data could not be saved; see the log. Exiting...")
            return
        submenu_loop(lib, titles[int(choice) - 1])


def print_reports(lib: LibraryCatalog) -> None:
    print("\nBooks:")
    print_frame(export_report_books(lib), "No books.")
    print("\nMembers:")
    print_frame(export_report_members(lib), "No members found.")
    show_genres(lib)
    oldest_newest(lib)
    show_overdue(lib)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Library catalog manager with CSV persistence")
    parser.add_argument("--data-dir", default=DEFAULT_DATA_DIR,
                        help="Directory holding books.csv and members.csv (default: %(default)s)")
    parser.add_argument("--cascade-removals", action="store_true",
                        help="Drop members' loans of a book when the book is removed")
    parser.add_argument("--json-borrowed", action="store_true",
                        help="Write the borrowedBooks field as a JSON array")
    parser.add_argument("--report", action="store_true",
                        help="Print reports and exit instead of starting the menu")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s: %(message)s")

    store = CsvLibraryStore(args.data_dir,
                            borrowed_format=FORMAT_JSON if args.json_borrowed else FORMAT_DELIMITED)
    lib = LibraryCatalog(cascade_removals=args.cascade_removals)
    try:
        store.ensure_files()
    except OSError as exc:
        logger.error("Could not prepare data directory %s: %s", args.data_dir, exc)
    store.load_into(lib)

    if args.report:
        print_reports(lib)
    else:
        cli_loop(lib, store)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
