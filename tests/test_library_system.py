import datetime

import pytest

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
    NotFoundError,
)
from library_models import Book, Genre, Member
from library_system import LibraryCatalog

D0 = datetime.date(2025, 1, 1)


def _book(isbn, year=2000, genre=Genre.FICTION, author="Anon"):
    return Book(f"Title {isbn}", author, isbn, year, genre)


def test_add_books_distinct_isbns():
    l = LibraryCatalog()
    isbns = ["a", "b", "c"]
    for isbn in isbns:
        l.add_book(_book(isbn))
    assert {b.isbn for b in l.all_books()} == set(isbns)


def test_add_duplicate_book_leaves_registry_unchanged(lib):
    before = lib.all_books()
    with pytest.raises(DuplicateBookError):
        lib.add_book(_book("111"))
    assert lib.all_books() == before
    assert lib.get_book("111").title == "Dune"


def test_duplicate_errors_share_base():
    assert issubclass(DuplicateBookError, DuplicateKeyError)
    assert issubclass(DuplicateMemberError, DuplicateKeyError)
    assert issubclass(BookNotFoundError, NotFoundError)
    assert issubclass(MemberNotFoundError, NotFoundError)


def test_remove_book(lib):
    removed = lib.remove_book("111")
    assert removed.isbn == "111"
    with pytest.raises(BookNotFoundError):
        lib.get_book("111")
    with pytest.raises(BookNotFoundError):
        lib.remove_book("111")


def test_remove_borrowed_book_keeps_loan_by_default(lib):
    lib.borrow_book("M1", "111", today=D0)
    lib.remove_book("111")
    assert "111" in lib.get_member("M1").borrowed_books


def test_remove_borrowed_book_cascades_when_enabled():
    l = LibraryCatalog(cascade_removals=True)
    l.add_book(_book("111"))
    l.add_member(Member("M1", "Ada"))
    l.borrow_book("M1", "111", today=D0)
    l.remove_book("111")
    assert "111" not in l.get_member("M1").borrowed_books


def test_search_by_author_case_insensitive(lib):
    found = lib.search_by_author("FRANK HERBERT")
    assert [b.isbn for b in found] == ["111", "666"]
    assert lib.search_by_author("Frank") == []


def test_search_by_genre(lib):
    assert [b.isbn for b in lib.search_by_genre(Genre.FICTION)] == ["111", "666"]
    assert [b.isbn for b in lib.search_by_genre(Genre.SCIENCE)] == ["222"]


def test_oldest_and_newest(lib):
    assert lib.oldest_book().isbn == "111"
    assert lib.newest_book().isbn == "333"


def test_oldest_newest_empty():
    l = LibraryCatalog()
    assert l.oldest_book() is None
    assert l.newest_book() is None


def test_oldest_tie_goes_to_first_inserted():
    l = LibraryCatalog()
    l.add_book(_book("x", year=1990))
    l.add_book(_book("y", year=1990))
    assert l.oldest_book().isbn == "x"
    assert l.newest_book().isbn == "x"


def test_count_by_genre_only_present_genres():
    l = LibraryCatalog()
    l.add_book(_book("a", genre=Genre.FICTION))
    l.add_book(_book("b", genre=Genre.FICTION))
    l.add_book(_book("c", genre=Genre.HISTORY))
    assert l.count_by_genre() == {Genre.FICTION: 2, Genre.HISTORY: 1}


def test_books_sorted_by_year(lib):
    assert [b.publication_year for b in lib.books_sorted_by_year()] == [1965, 1976, 1988, 2011, 2012, 2015]


def test_all_books_is_a_copy(lib):
    books = lib.all_books()
    books.clear()
    assert len(lib.all_books()) == 6


def test_member_registry(lib):
    assert lib.get_member("M1").name == "Ada"
    with pytest.raises(MemberNotFoundError):
        lib.get_member("M9")
    with pytest.raises(DuplicateMemberError):
        lib.add_member(Member("M1", "Other"))
    assert {m.member_id for m in lib.all_members()} == {"M1", "M2"}


def test_borrow_returns_due_date(lib):
    due = lib.borrow_book("M1", "111", today=D0)
    assert due == datetime.date(2025, 1, 15)
    assert dict(lib.get_member("M1").borrowed_books) == {"111": due}


def test_borrow_unknown_member_or_book(lib):
    with pytest.raises(MemberNotFoundError):
        lib.borrow_book("M9", "111", today=D0)
    with pytest.raises(BookNotFoundError):
        lib.borrow_book("M1", "999", today=D0)


def test_borrow_return_scenario(lib):
    lib.borrow_book("M1", "111", today=D0)
    with pytest.raises(BookNotAvailableError):
        lib.borrow_book("M2", "111", today=D0)
    lib.return_book("M1", "111")
    lib.borrow_book("M2", "111", today=D0)
    assert lib.borrower_of("111").member_id == "M2"


def test_same_member_cannot_borrow_twice(lib):
    lib.borrow_book("M1", "111", today=D0)
    with pytest.raises(BookNotAvailableError):
        lib.borrow_book("M1", "111", today=D0)


def test_borrow_limit_scenario(lib):
    for i in range(5):
        lib.add_book(_book(f"X{i}"))
        lib.borrow_book("M1", f"X{i}", today=D0)
    with pytest.raises(BookLimitExceededError):
        lib.borrow_book("M1", "111", today=D0)
    lib.return_book("M1", "X0")
    lib.borrow_book("M1", "111", today=D0)
    assert len(lib.get_member("M1").borrowed_books) == 5


def test_limit_checked_before_availability(lib):
    for i in range(5):
        lib.add_book(_book(f"X{i}"))
        lib.borrow_book("M1", f"X{i}", today=D0)
    lib.borrow_book("M2", "111", today=D0)
    with pytest.raises(BookLimitExceededError):
        lib.borrow_book("M1", "111", today=D0)


def test_return_errors(lib):
    with pytest.raises(MemberNotFoundError):
        lib.return_book("M9", "111")
    with pytest.raises(BookNotBorrowedError):
        lib.return_book("M1", "111")


def test_available_books(lib):
    lib.borrow_book("M1", "111", today=D0)
    lib.borrow_book("M2", "222", today=D0)
    assert [b.isbn for b in lib.available_books()] == ["333", "444", "555", "666"]
    lib.return_book("M2", "222")
    assert "222" in {b.isbn for b in lib.available_books()}


class _RefusingMember(Member):
    def borrow(self, isbn, today=None):
        return False


def test_member_refusal_is_reported(lib):
    lib.add_member(_RefusingMember("M3", "Stubborn"))
    with pytest.raises(CatalogInconsistencyError):
        lib.borrow_book("M3", "111", today=D0)


def test_overdue_loans(lib):
    lib.borrow_book("M1", "111", today=D0 - datetime.timedelta(days=15))
    lib.borrow_book("M2", "222", today=D0)
    loans = lib.overdue_loans(today=D0)
    assert len(loans) == 1
    member, isbn, due, days = loans[0]
    assert (member.member_id, isbn, days) == ("M1", "111", 1)
    assert due == datetime.date(2024, 12, 31)


def test_load_skips_duplicates():
    l = LibraryCatalog()
    books = [_book("a"), _book("a"), _book("b")]
    m1 = Member("M1", "Ada")
    m1.borrow("a", today=D0)
    m_dup = Member("M1", "Again")
    m2 = Member("M2", "Grace")
    m2.borrow("a", today=D0)
    assert l.load(books, [m1, m_dup, m2]) == (2, 1)
    assert l.get_member("M1").name == "Ada"
    with pytest.raises(MemberNotFoundError):
        l.get_member("M2")


def test_concurrent_borrows_lend_a_book_once():
    import threading

    l = LibraryCatalog()
    l.add_book(_book("111"))
    for i in range(20):
        l.add_member(Member(f"M{i}", f"Member {i}"))
    wins, losses = [], []

    def attempt(member_id):
        try:
            l.borrow_book(member_id, "111", today=D0)
            wins.append(member_id)
        except BookNotAvailableError:
            losses.append(member_id)

    threads = [threading.Thread(target=attempt, args=(f"M{i}",)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(wins) == 1
    assert len(losses) == 19
    assert l.borrower_of("111").member_id == wins[0]


def test_add_book_rejects_blank_isbn(lib):
    for isbn in ("", "   "):
        with pytest.raises(InvalidRecordError):
            lib.add_book(_book(isbn))
    assert len(lib.all_books()) == 6


def test_add_book_strips_isbn():
    l = LibraryCatalog()
    l.add_book(_book(" 777 "))
    assert l.get_book("777").isbn == "777"
    with pytest.raises(DuplicateBookError):
        l.add_book(_book("777"))


def test_add_member_rejects_blank_id_or_name(lib):
    with pytest.raises(InvalidRecordError):
        lib.add_member(Member("", "Ada"))
    with pytest.raises(InvalidRecordError):
        lib.add_member(Member("M3", "  "))
    assert {m.member_id for m in lib.all_members()} == {"M1", "M2"}


def test_load_skips_invalid_records():
    l = LibraryCatalog()
    assert l.load([_book(""), _book("a")], [Member("M1", ""), Member("M2", "Grace")]) == (1, 1)
