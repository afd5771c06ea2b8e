import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from library_app.config import settings
from library_app.exceptions import ConflictError, NotFoundError, ValidationError
from library_app.models import Book, BookCopy, BookType, BookWithCopies, CopyStatus, Page
from library_app.repositories import UnitOfWork
from library_app.validators import TextValidator, YearValidator

logger = logging.getLogger(__name__)

# Katalog servisinin elle ayarlayabileceği kopya durumları.
# BORROWED yalnızca ödünç alma/iade akışı tarafından yazılır.
EDITABLE_COPY_STATUSES = (CopyStatus.AVAILABLE, CopyStatus.LOST, CopyStatus.DAMAGED)


def _parse_book_type(value) -> BookType:
    try:
        return BookType.parse(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


class BookService:
    """Kitap kataloğu ve fiziksel kopya envanteri."""

    def __init__(
        self,
        unit_of_work: Callable[..., UnitOfWork] = UnitOfWork,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.unit_of_work = unit_of_work
        self.clock = clock

    # ------------------------- Yardımcılar ------------------------- #
    @staticmethod
    def _page_params(page: int, size: Optional[int]) -> tuple[int, int]:
        page = max(page or 0, 0)
        if not size or size <= 0:
            size = settings.default_page_size
        return page, min(size, settings.max_page_size)

    @staticmethod
    def _validated_book(
        title: str,
        author: str,
        category: str,
        published_year: Optional[int],
        book_type,
    ) -> Book:
        return Book(
            title=TextValidator.require(title, "Book title is required"),
            author=TextValidator.require(author, "Book author is required"),
            category=TextValidator.require(category, "Book category is required"),
            published_year=YearValidator.validate(published_year),
            book_type=_parse_book_type(book_type),
        )

    @staticmethod
    def _validated_copies(library_copies: Mapping[int, int]) -> Dict[int, int]:
        if not library_copies:
            raise ValidationError("At least one library with copies is required")
        for library_id, count in library_copies.items():
            if count is None or count <= 0:
                raise ValidationError(f"Copy count for library {library_id} must be positive")
        return dict(library_copies)

    def _add_copies(self, uow: UnitOfWork, book_id: int, library_copies: Dict[int, int]) -> List[BookCopy]:
        now = self.clock()
        created: List[BookCopy] = []
        for library_id, count in library_copies.items():
            if uow.libraries.find_by_id(library_id) is None:
                raise NotFoundError("Library not found")
            # Numaralandırma, bu (kitap, kütüphane) için mevcut en büyük numaradan devam eder
            start = uow.copies.max_copy_number(book_id, library_id) + 1
            for number in range(start, start + count):
                created.append(
                    uow.copies.save(BookCopy(book_id=book_id, library_id=library_id, copy_number=number), now)
                )
        return created

    # ------------------------- Kitaplar ------------------------- #
    def create_book(
        self,
        title: str,
        author: str,
        category: str,
        published_year: Optional[int] = None,
        book_type=None,
    ) -> Book:
        book = self._validated_book(title, author, category, published_year, book_type)
        with self.unit_of_work() as uow:
            uow.books.save(book, self.clock())
        logger.info(f"Book created: {book.id} ({book.title})")
        return book

    def find_by_id(self, book_id: int) -> Book:
        with self.unit_of_work(read_only=True) as uow:
            book = uow.books.find_by_id(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    def search_books(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        category: Optional[str] = None,
        published_year: Optional[int] = None,
    ) -> List[Book]:
        """Büyük/küçük harf duyarsız alt dize araması; boş filtreler her şeyle eşleşir."""
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.search(title, author, category, published_year)

    def list_books(self, page: int = 0, size: Optional[int] = None) -> Page:
        page, size = self._page_params(page, size)
        with self.unit_of_work(read_only=True) as uow:
            items = uow.books.search(limit=size, offset=page * size)
            total = uow.books.count()
        return Page(items=items, total=total, page=page, size=size)

    def find_by_category(self, category: str) -> List[Book]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.find_by_category(category or "")

    def find_by_author(self, author: str) -> List[Book]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.find_by_author(author or "")

    def find_by_published_year(self, year: int) -> List[Book]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.find_by_published_year(year)

    def count_by_category(self, category: str) -> int:
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.count_by_category(category or "")

    def count_by_author(self, author: str) -> int:
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.count_by_author(author or "")

    def count_by_published_year(self, year: int) -> int:
        with self.unit_of_work(read_only=True) as uow:
            return uow.books.count_by_published_year(year)

    def update_book(
        self,
        book_id: int,
        title: Optional[str] = None,
        author: Optional[str] = None,
        published_year: Optional[int] = None,
        category: Optional[str] = None,
        book_type=None,
    ) -> Book:
        """Kısmi güncelleme; boş değerler yok sayılır."""
        with self.unit_of_work() as uow:
            book = uow.books.find_by_id(book_id)
            if book is None:
                raise NotFoundError("Book not found")
            book.title = TextValidator.optional(title) or book.title
            book.author = TextValidator.optional(author) or book.author
            book.category = TextValidator.optional(category) or book.category
            if published_year is not None:
                book.published_year = YearValidator.validate(published_year)
            if not TextValidator.is_blank(book_type):
                book.book_type = _parse_book_type(book_type)
            uow.books.save(book, self.clock())
        logger.info(f"Book updated: {book.id}")
        return book

    # ------------------------- Kopyalar ------------------------- #
    def create_book_with_copies(
        self,
        title: str,
        author: str,
        category: str,
        library_copies: Mapping[int, int],
        published_year: Optional[int] = None,
        book_type=None,
    ) -> BookWithCopies:
        """Kitabı ve her kütüphane için 1'den numaralanan N kopyayı tek işlemde oluşturur."""
        book = self._validated_book(title, author, category, published_year, book_type)
        copies = self._validated_copies(library_copies)
        with self.unit_of_work() as uow:
            uow.books.save(book, self.clock())
            created = self._add_copies(uow, book.id, copies)
            summary = uow.copies.summary_by_book(book.id)
        logger.info(f"Book {book.id} created with {len(created)} copies")
        return BookWithCopies(book=book, libraries=summary)

    def add_book_copies(self, book_id: int, library_copies: Mapping[int, int]) -> List[BookCopy]:
        copies = self._validated_copies(library_copies)
        with self.unit_of_work() as uow:
            if uow.books.find_by_id(book_id) is None:
                raise NotFoundError("Book not found")
            created = self._add_copies(uow, book_id, copies)
        logger.info(f"Added {len(created)} copies to book {book_id}")
        return created

    def get_book_copies(self, book_id: int) -> List[BookCopy]:
        with self.unit_of_work(read_only=True) as uow:
            if uow.books.find_by_id(book_id) is None:
                raise NotFoundError("Book not found")
            return uow.copies.find_by_book(book_id)

    def get_available_book_copies(self, book_id: int) -> List[BookCopy]:
        with self.unit_of_work(read_only=True) as uow:
            if uow.books.find_by_id(book_id) is None:
                raise NotFoundError("Book not found")
            return uow.copies.find_by_book_and_status(book_id, CopyStatus.AVAILABLE)

    def get_total_copy_count(self, book_id: int) -> int:
        with self.unit_of_work(read_only=True) as uow:
            if uow.books.find_by_id(book_id) is None:
                raise NotFoundError("Book not found")
            return uow.copies.count_by_book(book_id)

    def get_book_copy(self, copy_id: int) -> BookCopy:
        with self.unit_of_work(read_only=True) as uow:
            copy = uow.copies.find_by_id(copy_id)
        if copy is None:
            raise NotFoundError("Book copy not found")
        return copy

    def get_available_copy_count(self, book_id: int, library_id: int) -> int:
        with self.unit_of_work(read_only=True) as uow:
            if uow.libraries.find_by_id(library_id) is None:
                raise NotFoundError("Library not found")
            if uow.books.find_by_id(book_id) is None:
                raise NotFoundError("Book not found")
            return uow.copies.count_available(book_id, library_id)

    def is_book_available(self, book_id: int, library_id: int) -> bool:
        return self.get_available_copy_count(book_id, library_id) > 0

    def search_books_with_copy_summary(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        published_year: Optional[int] = None,
        library_id: Optional[int] = None,
        page: int = 0,
        size: Optional[int] = None,
    ) -> Page:
        page, size = self._page_params(page, size)
        with self.unit_of_work(read_only=True) as uow:
            if library_id is not None and uow.libraries.find_by_id(library_id) is None:
                raise NotFoundError("Library not found")
            books = uow.books.search(title=title, author=author, published_year=published_year,
                                     limit=size, offset=page * size)
            total = uow.books.count_search(title=title, author=author, published_year=published_year)
            items = [
                BookWithCopies(book=book, libraries=uow.copies.summary_by_book(book.id, library_id))
                for book in books
            ]
        return Page(items=items, total=total, page=page, size=size)

    def update_book_copy(
        self,
        copy_id: int,
        copy_number: Optional[int] = None,
        status: Optional[str] = None,
    ) -> BookCopy:
        with self.unit_of_work() as uow:
            copy = uow.copies.find_by_id(copy_id)
            if copy is None:
                raise NotFoundError("Book copy not found")

            if copy_number is not None and copy_number != copy.copy_number:
                if copy_number <= 0:
                    raise ValidationError("Copy number must be positive")
                if uow.copies.exists_copy_number(copy.book_id, copy.library_id, copy_number, exclude_id=copy.id):
                    raise ConflictError("Copy number already exists for this book in this library")
                copy.copy_number = copy_number

            if status is not None:
                try:
                    new_status = CopyStatus(str(status).strip().upper())
                except ValueError as e:
                    raise ValidationError(f"Invalid copy status: {status}") from e
                if new_status not in EDITABLE_COPY_STATUSES:
                    raise ValidationError("Copy status BORROWED can only be set by borrowing")
                if copy.status == CopyStatus.BORROWED:
                    raise ConflictError("Copy is currently borrowed; return it first")
                copy.status = new_status

            uow.copies.save(copy, self.clock())
        logger.info(f"Book copy updated: {copy.id} (#{copy.copy_number}, {copy.status.value})")
        return copy
