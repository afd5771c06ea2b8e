from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from library_app.database import from_db_timestamp


class BookType(str, Enum):
    """Kitap türü; her tür kendi eşzamanlı ödünç alma sınırına sahiptir."""

    TRADITIONAL = "TRADITIONAL"
    MODERN = "MODERN"

    @property
    def label(self) -> str:
        return _BOOK_TYPE_LABELS[self]

    @property
    def default_borrow_limit(self) -> int:
        return _BOOK_TYPE_LIMITS[self]

    @classmethod
    def parse(cls, value: "str | BookType | None") -> "BookType":
        """Enum adını ("MODERN") veya etiketini ("書籍") kabul eder."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.TRADITIONAL
        if isinstance(value, cls):
            return value
        text = value.strip()
        for member in cls:
            if text.upper() == member.value or text == member.label:
                return member
        raise ValueError(f"Invalid book type: {value}")


_BOOK_TYPE_LABELS = {BookType.TRADITIONAL: "圖書", BookType.MODERN: "書籍"}
_BOOK_TYPE_LIMITS = {BookType.TRADITIONAL: 5, BookType.MODERN: 10}


class CopyStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"
    LOST = "LOST"
    DAMAGED = "DAMAGED"


class BorrowStatus(str, Enum):
    BORROWED = "BORROWED"
    RETURNED = "RETURNED"


class RoleName(str, Enum):
    MEMBER = "MEMBER"
    LIBRARIAN = "LIBRARIAN"
    ADMIN = "ADMIN"


class NotificationType(str, Enum):
    DUE_REMINDER = "DUE_REMINDER"
    BORROW_CONFIRMATION = "BORROW_CONFIRMATION"
    RETURN_CONFIRMATION = "RETURN_CONFIRMATION"
    OVERDUE_NOTICE = "OVERDUE_NOTICE"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Role:
    name: RoleName
    description: str | None = None
    id: int | None = None

    @staticmethod
    def from_row(row) -> "Role":
        return Role(id=row["id"], name=RoleName(row["name"]), description=row["description"])


@dataclass
class User:
    """Sistemdeki bir kullanıcı (üye, kütüphaneci veya yönetici).

    Parola özeti `to_dict()` çıktısına hiçbir zaman dahil edilmez.
    """

    name: str
    email: str
    password_hash: str
    role: RoleName = RoleName.MEMBER
    librarian_id: str | None = None
    is_verified: bool = False
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_librarian(self) -> bool:
        return self.role in (RoleName.LIBRARIAN, RoleName.ADMIN)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "librarian_id": self.librarian_id,
            "is_verified": self.is_verified,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @staticmethod
    def from_row(row) -> "User":
        # Satır, roles tablosuyla birleştirilmiş "role_name" sütununu içermelidir
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            role=RoleName(row["role_name"]),
            librarian_id=row["librarian_id"],
            is_verified=bool(row["is_verified"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


@dataclass
class Library:
    name: str
    address: str
    phone: str | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @staticmethod
    def from_row(row) -> "Library":
        return Library(
            id=row["id"],
            name=row["name"],
            address=row["address"],
            phone=row["phone"],
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


@dataclass
class Book:
    """Katalogdaki tek bir kitap kaydını temsil eder."""

    title: str
    author: str
    category: str
    published_year: int | None = None
    book_type: BookType = BookType.TRADITIONAL
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.title = self.title.strip()
        self.author = self.author.strip()
        self.category = self.category.strip()

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.category})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "published_year": self.published_year,
            "category": self.category,
            "book_type": self.book_type.value,
            "book_type_label": self.book_type.label,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @staticmethod
    def from_row(row) -> "Book":
        return Book(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            published_year=row["published_year"],
            category=row["category"],
            book_type=BookType(row["book_type"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


@dataclass
class BookCopy:
    book_id: int
    library_id: int
    copy_number: int
    status: CopyStatus = CopyStatus.AVAILABLE
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "library_id": self.library_id,
            "copy_number": self.copy_number,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @staticmethod
    def from_row(row) -> "BookCopy":
        return BookCopy(
            id=row["id"],
            book_id=row["book_id"],
            library_id=row["library_id"],
            copy_number=row["copy_number"],
            status=CopyStatus(row["status"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


@dataclass
class BorrowRecord:
    """Bir kullanıcıyı tek bir kopyaya sınırlı bir süre için bağlayan ödünç kaydı.

    BORROWED -> RETURNED dışında geçiş yoktur.
    """

    user_id: int
    book_copy_id: int
    borrowed_at: datetime
    due_at: datetime
    returned_at: datetime | None = None
    status: BorrowStatus = BorrowStatus.BORROWED
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_overdue(self, now: datetime) -> bool:
        return self.status == BorrowStatus.BORROWED and self.due_at < now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_copy_id": self.book_copy_id,
            "borrowed_at": _iso(self.borrowed_at),
            "due_at": _iso(self.due_at),
            "returned_at": _iso(self.returned_at),
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @staticmethod
    def from_row(row) -> "BorrowRecord":
        return BorrowRecord(
            id=row["id"],
            user_id=row["user_id"],
            book_copy_id=row["book_copy_id"],
            borrowed_at=from_db_timestamp(row["borrowed_at"]),
            due_at=from_db_timestamp(row["due_at"]),
            returned_at=from_db_timestamp(row["returned_at"]),
            status=BorrowStatus(row["status"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


@dataclass
class Notification:
    user_id: int
    message: str
    notification_type: NotificationType
    borrow_record_id: int | None = None
    sent_at: datetime | None = None
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "borrow_record_id": self.borrow_record_id,
            "notification_type": self.notification_type.value,
            "message": self.message,
            "sent_at": _iso(self.sent_at),
        }

    @staticmethod
    def from_row(row) -> "Notification":
        return Notification(
            id=row["id"],
            user_id=row["user_id"],
            borrow_record_id=row["borrow_record_id"],
            notification_type=NotificationType(row["notification_type"]),
            message=row["message"],
            sent_at=from_db_timestamp(row["sent_at"]),
        )


@dataclass
class ReminderDetails:
    """Hatırlatma mesajı için ödünç kaydının birleştirilmiş görünümü."""

    record_id: int
    user_id: int
    user_name: str
    user_email: str
    book_title: str
    copy_number: int
    library_name: str
    borrowed_at: datetime
    due_at: datetime

    @staticmethod
    def from_row(row) -> "ReminderDetails":
        return ReminderDetails(
            record_id=row["record_id"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            user_email=row["user_email"],
            book_title=row["book_title"],
            copy_number=row["copy_number"],
            library_name=row["library_name"],
            borrowed_at=from_db_timestamp(row["borrowed_at"]),
            due_at=from_db_timestamp(row["due_at"]),
        )


@dataclass
class CopySummary:
    """Bir kitabın kütüphane bazında kopya sayıları."""

    library_id: int
    library_name: str
    total_copies: int = 0
    available_copies: int = 0

    def to_dict(self) -> dict:
        return {
            "library_id": self.library_id,
            "library_name": self.library_name,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
        }


@dataclass
class BookWithCopies:
    book: Book
    libraries: list[CopySummary] = field(default_factory=list)

    @property
    def total_copies(self) -> int:
        return sum(item.total_copies for item in self.libraries)

    @property
    def available_copies(self) -> int:
        return sum(item.available_copies for item in self.libraries)

    def to_dict(self) -> dict:
        data = self.book.to_dict()
        data["total_copies"] = self.total_copies
        data["available_copies"] = self.available_copies
        data["libraries"] = [item.to_dict() for item in self.libraries]
        return data


@dataclass
class Page:
    """Sayfalanmış sonuç; `items` öğeleri to_dict() desteklemelidir."""

    items: list
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.size - 1) // self.size if self.size else 0

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "page": self.page,
            "size": self.size,
            "total_pages": self.total_pages,
        }
