from typing import Dict, List

from pydantic import BaseModel, Field


# --- Kimlik ---
class RegisterModel(BaseModel):
    name: str
    email: str
    password: str


class LibrarianRegisterModel(RegisterModel):
    librarian_id: str = Field(description="Harici sistemde doğrulanan kütüphaneci kimliği")


class LoginModel(BaseModel):
    email: str
    password: str


class UserModel(BaseModel):
    id: int
    name: str
    email: str
    role: str
    librarian_id: str | None = None
    is_verified: bool
    created_at: str | None = None
    updated_at: str | None = None


class TokenModel(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserModel


class UserUpdateModel(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None


class VerificationUpdateModel(BaseModel):
    is_verified: bool


class ExistsModel(BaseModel):
    exists: bool


# --- Kütüphaneler ---
class LibraryCreateModel(BaseModel):
    name: str
    address: str
    phone: str | None = None


class LibraryUpdateModel(BaseModel):
    name: str | None = None
    address: str | None = None
    phone: str | None = None


class LibraryModel(BaseModel):
    id: int
    name: str
    address: str
    phone: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


# --- Kitaplar ---
class BookCreateModel(BaseModel):
    title: str
    author: str
    category: str
    published_year: int | None = None
    book_type: str | None = Field(default=None, description="TRADITIONAL / MODERN ya da 圖書 / 書籍")


class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    category: str | None = None
    published_year: int | None = None
    book_type: str | None = None


class LibraryCopiesModel(BaseModel):
    library_id: int
    copies: int = Field(gt=0)


class BookWithCopiesCreateModel(BookCreateModel):
    libraries: List[LibraryCopiesModel]


class AddCopiesModel(BaseModel):
    book_id: int
    libraries: List[LibraryCopiesModel]


class BookModel(BaseModel):
    id: int
    title: str
    author: str
    category: str
    published_year: int | None = None
    book_type: str
    book_type_label: str
    created_at: str | None = None
    updated_at: str | None = None


class CopySummaryModel(BaseModel):
    library_id: int
    library_name: str
    total_copies: int
    available_copies: int


class BookWithCopiesModel(BookModel):
    total_copies: int
    available_copies: int
    libraries: List[CopySummaryModel]


class BookCopyModel(BaseModel):
    id: int
    book_id: int
    library_id: int
    copy_number: int
    status: str
    created_at: str | None = None
    updated_at: str | None = None


class BookCopyUpdateModel(BaseModel):
    copy_number: int | None = None
    status: str | None = None


class AvailabilityModel(BaseModel):
    book_id: int
    library_id: int
    available: bool
    available_copies: int


class PaginatedBooksModel(BaseModel):
    items: List[BookModel]
    total: int
    page: int
    size: int
    total_pages: int


class PaginatedBookSummaryModel(BaseModel):
    items: List[BookWithCopiesModel]
    total: int
    page: int
    size: int
    total_pages: int


class CountModel(BaseModel):
    count: int


# --- Ödünç alma ---
class BorrowRequestModel(BaseModel):
    user_id: int | None = Field(default=None, description="Boşsa oturumdaki kullanıcı")


class BorrowRecordModel(BaseModel):
    id: int
    user_id: int
    book_copy_id: int
    borrowed_at: str
    due_at: str
    returned_at: str | None = None
    status: str
    created_at: str | None = None
    updated_at: str | None = None


class QuotaEntryModel(BaseModel):
    label: str
    limit: int
    active: int
    remaining: int


class HasOverdueModel(BaseModel):
    has_overdue: bool


# --- Bildirimler ---
class NotificationModel(BaseModel):
    id: int
    user_id: int
    borrow_record_id: int | None = None
    notification_type: str
    message: str
    sent_at: str | None = None


class NotificationCheckModel(BaseModel):
    sent: int
    notifications: List[NotificationModel]


QuotaModel = Dict[str, QuotaEntryModel]
