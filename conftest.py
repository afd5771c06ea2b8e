from datetime import datetime, timedelta
from itertools import count

import pytest

import library_app.database as database
from library_app.config import settings
from library_app.models import BookType
from library_app.services import build_services
from library_app.services.librarian_verifier import LibrarianVerifier


class FakeClock:
    """Testlerde zamanı elle ilerletmek için çağrılabilir saat."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    # Varsayılan 12 tur testleri gereksiz yavaşlatır
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def db_file(tmp_path, monkeypatch, request):
    # Her test için benzersiz bir veritabanı dosyası oluştur
    path = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setattr(database, "DATABASE_FILE", path)
    database.initialize_database(path)
    return path


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 9, 30, 0))


@pytest.fixture
def services(db_file, clock):
    # Yerel önek kuralı; ortamdaki doğrulama URL'si testleri etkilemez
    verifier = LibrarianVerifier(url="", authorization="", prefix="L")
    return build_services(db_file, clock=clock, verifier=verifier)


@pytest.fixture
def library(services):
    return services.libraries.create_library("Main Library", "1 Main Street", "555-0100")


@pytest.fixture
def make_copy(services, library):
    """Verilen türde tek kopyalı yeni bir kitap oluşturur ve kopyayı döndürür."""
    numbers = count(1)

    def _make(book_type=BookType.TRADITIONAL, title=None):
        n = next(numbers)
        result = services.books.create_book_with_copies(
            title or f"Book {n}", f"Author {n}", "Fiction", {library.id: 1}, book_type=book_type
        )
        return services.books.get_book_copies(result.book.id)[0]

    return _make


@pytest.fixture
def member(services):
    return services.users.register("Alice Reader", "alice@example.com", "secret1")


@pytest.fixture
def other_member(services):
    return services.users.register("Bob Reader", "bob@example.com", "secret2")
