import pytest

from library_app.exceptions import ConflictError, NotFoundError, ValidationError
from library_app.models import BookType, CopyStatus


def test_create_book_defaults_to_traditional(services):
    book = services.books.create_book("  Hamlet ", "Shakespeare", "Drama", 1603)
    assert book.id is not None
    assert book.title == "Hamlet"
    assert book.book_type == BookType.TRADITIONAL
    assert book.to_dict()["book_type_label"] == "圖書"


@pytest.mark.parametrize("value", ["MODERN", "modern", "書籍", BookType.MODERN])
def test_create_book_accepts_type_name_or_label(services, value):
    assert services.books.create_book("SICP", "Abelson", "CS", book_type=value).book_type == BookType.MODERN


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"title": " ", "author": "A", "category": "C"}, "Book title is required"),
        ({"title": "T", "author": "", "category": "C"}, "Book author is required"),
        ({"title": "T", "author": "A", "category": None}, "Book category is required"),
        ({"title": "T", "author": "A", "category": "C", "book_type": "EBOOK"}, "Invalid book type"),
        ({"title": "T", "author": "A", "category": "C", "published_year": 0}, "positive"),
    ],
)
def test_create_book_validation(services, kwargs, message):
    with pytest.raises(ValidationError, match=message):
        services.books.create_book(**kwargs)


def test_search_is_case_insensitive_and_unset_filters_match_all(services):
    services.books.create_book("The Hobbit", "J.R.R. Tolkien", "Fantasy", 1937)
    services.books.create_book("Dune", "Frank Herbert", "Science Fiction", 1965)
    services.books.create_book("The Silmarillion", "J.R.R. Tolkien", "Fantasy", 1977)

    assert len(services.books.search_books()) == 3
    assert [b.title for b in services.books.search_books(title="the")] == ["The Hobbit", "The Silmarillion"]
    assert [b.title for b in services.books.search_books(author="tolkien", category="FANT")] == [
        "The Hobbit",
        "The Silmarillion",
    ]
    assert [b.title for b in services.books.search_books(published_year=1965)] == ["Dune"]
    assert services.books.search_books(title="missing") == []


def test_list_books_pagination(services):
    for i in range(5):
        services.books.create_book(f"Book {i}", "Author", "Category")

    page = services.books.list_books(page=1, size=2)
    assert [b.title for b in page.items] == ["Book 2", "Book 3"]
    assert page.total == 5
    assert page.total_pages == 3

    fallback = services.books.list_books(page=-3, size=0)
    assert fallback.page == 0
    assert fallback.size == 10


def test_find_and_count_by_category_author_year(services):
    services.books.create_book("A", "Ann", "Poetry", 2001)
    services.books.create_book("B", "Ann", "Essays", 2001)
    services.books.create_book("C", "Ben", "Poetry", 1999)

    assert [b.title for b in services.books.find_by_category("Poetry")] == ["A", "C"]
    assert services.books.count_by_category("Poetry") == 2
    assert [b.title for b in services.books.find_by_author("Ann")] == ["A", "B"]
    assert services.books.count_by_author("Ben") == 1
    assert [b.title for b in services.books.find_by_published_year(2001)] == ["A", "B"]
    assert services.books.count_by_published_year(1999) == 1


def test_find_by_id_not_found(services):
    with pytest.raises(NotFoundError, match="Book not found"):
        services.books.find_by_id(42)


def test_update_book_ignores_blank_values(services):
    book = services.books.create_book("Old", "Writer", "Misc", 2000)

    updated = services.books.update_book(book.id, title="New", author=" ", book_type="書籍")

    assert updated.title == "New"
    assert updated.author == "Writer"
    assert updated.book_type == BookType.MODERN
    assert services.books.find_by_id(book.id).title == "New"

    with pytest.raises(ValidationError):
        services.books.update_book(book.id, book_type="AUDIO")


def test_create_book_with_copies_numbers_from_one(services, library):
    branch = services.libraries.create_library("Branch", "2 Side Road")

    result = services.books.create_book_with_copies(
        "Ulysses", "Joyce", "Novel", {library.id: 3, branch.id: 2}
    )

    assert result.total_copies == 5
    assert result.available_copies == 5
    copies = services.books.get_book_copies(result.book.id)
    numbers = {(c.library_id, c.copy_number) for c in copies}
    assert numbers == {(library.id, 1), (library.id, 2), (library.id, 3), (branch.id, 1), (branch.id, 2)}


def test_create_book_with_copies_is_atomic(services, library):
    with pytest.raises(NotFoundError, match="Library not found"):
        services.books.create_book_with_copies("Ghost", "Nobody", "Misc", {library.id: 2, 999: 1})
    assert services.books.search_books(title="Ghost") == []


@pytest.mark.parametrize("copies", [{}, {1: 0}, {1: -2}])
def test_create_book_with_copies_requires_positive_counts(services, library, copies):
    with pytest.raises(ValidationError):
        services.books.create_book_with_copies("T", "A", "C", copies)


def test_add_book_copies_continues_numbering(services, library):
    result = services.books.create_book_with_copies("Emma", "Austen", "Novel", {library.id: 2})

    added = services.books.add_book_copies(result.book.id, {library.id: 2})

    assert [c.copy_number for c in added] == [3, 4]
    assert services.books.get_total_copy_count(result.book.id) == 4


def test_add_book_copies_unknown_book(services, library):
    with pytest.raises(NotFoundError, match="Book not found"):
        services.books.add_book_copies(999, {library.id: 1})


def test_availability_is_scoped_to_book_and_library(services, library, member):
    branch = services.libraries.create_library("Branch", "2 Side Road")
    first = services.books.create_book_with_copies("Ulysses", "Joyce", "Novel", {library.id: 1, branch.id: 1})
    services.books.create_book_with_copies("Dubliners", "Joyce", "Novel", {library.id: 2})

    copy = [c for c in services.books.get_book_copies(first.book.id) if c.library_id == library.id][0]
    services.borrows.borrow_book(member.id, copy.id)

    assert services.books.get_available_copy_count(first.book.id, library.id) == 0
    assert services.books.is_book_available(first.book.id, library.id) is False
    assert services.books.is_book_available(first.book.id, branch.id) is True
    assert [c.library_id for c in services.books.get_available_book_copies(first.book.id)] == [branch.id]


def test_availability_unknown_library_or_book(services, library):
    book = services.books.create_book("T", "A", "C")
    with pytest.raises(NotFoundError, match="Library not found"):
        services.books.is_book_available(book.id, 999)
    with pytest.raises(NotFoundError, match="Book not found"):
        services.books.get_available_copy_count(999, library.id)


def test_search_with_copy_summary(services, library, member):
    branch = services.libraries.create_library("Branch", "2 Side Road")
    result = services.books.create_book_with_copies("Ulysses", "Joyce", "Novel", {library.id: 2, branch.id: 1})
    services.books.create_book("Dune", "Herbert", "SF")
    copy = services.books.get_book_copies(result.book.id)[0]
    services.borrows.borrow_book(member.id, copy.id)

    page = services.books.search_books_with_copy_summary(author="joyce")

    assert page.total == 1
    hit = page.items[0]
    assert hit.total_copies == 3
    assert hit.available_copies == 2
    per_library = {s.library_name: (s.total_copies, s.available_copies) for s in hit.libraries}
    assert per_library == {"Main Library": (2, 1), "Branch": (1, 1)}

    scoped = services.books.search_books_with_copy_summary(author="joyce", library_id=branch.id)
    assert [s.library_id for s in scoped.items[0].libraries] == [branch.id]


def test_update_book_copy_number_must_stay_unique(services, library):
    result = services.books.create_book_with_copies("Emma", "Austen", "Novel", {library.id: 2})
    first, second = services.books.get_book_copies(result.book.id)

    with pytest.raises(ConflictError):
        services.books.update_book_copy(second.id, copy_number=first.copy_number)

    assert services.books.update_book_copy(second.id, copy_number=7).copy_number == 7


def test_update_book_copy_status_rules(services, member, make_copy):
    copy = make_copy()

    assert services.books.update_book_copy(copy.id, status="damaged").status == CopyStatus.DAMAGED
    assert services.books.update_book_copy(copy.id, status="AVAILABLE").status == CopyStatus.AVAILABLE

    with pytest.raises(ValidationError):
        services.books.update_book_copy(copy.id, status="BORROWED")
    with pytest.raises(ValidationError):
        services.books.update_book_copy(copy.id, status="MISSING")

    services.borrows.borrow_book(member.id, copy.id)
    with pytest.raises(ConflictError):
        services.books.update_book_copy(copy.id, status="LOST")
    assert services.books.get_book_copy(copy.id).status == CopyStatus.BORROWED


def test_update_unknown_copy(services):
    with pytest.raises(NotFoundError, match="Book copy not found"):
        services.books.update_book_copy(1, status="LOST")
