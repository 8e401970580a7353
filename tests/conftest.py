import sys
import pathlib

# Add project root to sys.path so imports from repo root work when running the tests
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))

import pytest

from library_models import Book, Genre, Member
from library_storage import CsvLibraryStore
from library_system import LibraryCatalog


@pytest.fixture
def lib():
    """Catalog with a handful of books and two members."""
    l = LibraryCatalog()
    l.add_book(Book("Dune", "Frank Herbert", "111", 1965, Genre.FICTION))
    l.add_book(Book("A Brief History of Time", "Stephen Hawking", "222", 1988, Genre.SCIENCE))
    l.add_book(Book("SPQR", "Mary Beard", "333", 2015, Genre.HISTORY))
    l.add_book(Book("Gone Girl", "Gillian Flynn", "444", 2012, Genre.MYSTERY))
    l.add_book(Book("Steve Jobs", "Walter Isaacson", "555", 2011, Genre.BIOGRAPHY))
    l.add_book(Book("Children of Dune", "frank herbert", "666", 1976, Genre.FICTION))
    l.add_member(Member("M1", "Ada"))
    l.add_member(Member("M2", "Grace"))
    return l


@pytest.fixture
def store(tmp_path):
    return CsvLibraryStore(tmp_path / "data")
