import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from library_app import schemas
from library_app.config import settings
from library_app.database import get_db_connection, initialize_database
from library_app.exceptions import AuthenticationError, ForbiddenError, LibraryError
from library_app.models import RoleName, User
from library_app.services import build_services

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Testler, modülü yeniden yüklemeden önce LIBRARY_DB_FILE ayarlayarak
# uygulamanın ayrı bir veritabanı kullanmasını sağlar.
DB_FILE = os.getenv("LIBRARY_DB_FILE") or settings.data_file
initialize_database(DB_FILE)
services = build_services(DB_FILE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Başlangıçta bildirim zamanlayıcısını başlat
    if settings.enable_notification_scheduler:
        services.scheduler.start()
    try:
        yield
    finally:
        # Kapanışta zamanlayıcıyı durdur ve doğrulama istemcisini kapat
        await services.scheduler.stop()
        services.users.verifier.close()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    """Servis hatalarını durum koduyla birlikte {"detail": mesaj} olarak döndür."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- Güvenlik ---
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """Bearer belirtecinden istek kapsamlı geçerli kullanıcıyı çözer."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    return services.users.get_user_from_token(credentials.credentials)


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_librarian:
        raise ForbiddenError("Librarian privileges required")
    return current_user


def _ensure_self_or_staff(current_user: User, user_id: int) -> None:
    if current_user.id != user_id and not current_user.is_librarian:
        raise ForbiddenError("You can only access your own records")


def _notify_safely(send, borrow_record_id: int) -> None:
    # Onay bildirimi ayrı bir işlemdir; başarısız olması ödünç/iade işlemini geri almaz
    try:
        send(borrow_record_id)
    except Exception:
        logger.exception(f"Failed to send confirmation for borrow record {borrow_record_id}")


# --- Sağlık Kontrolü ---
@app.get("/health")
def health():
    db_ok = True
    try:
        conn = get_db_connection(DB_FILE)
        conn.execute("SELECT 1")
        conn.close()
    except Exception:
        logger.exception("Health check database probe failed")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "scheduler_running": services.scheduler.running,
    }


# --- Kimlik Doğrulama ---
@app.post("/auth/register", response_model=schemas.UserModel, status_code=201)
def register(payload: schemas.RegisterModel):
    user = services.users.register(payload.name, payload.email, payload.password)
    return schemas.UserModel(**user.to_dict())


@app.post("/auth/register/librarian", response_model=schemas.UserModel, status_code=201)
def register_librarian(payload: schemas.LibrarianRegisterModel):
    user = services.users.register_librarian(
        payload.name, payload.email, payload.password, payload.librarian_id
    )
    return schemas.UserModel(**user.to_dict())


@app.post("/auth/login", response_model=schemas.TokenModel)
def login(payload: schemas.LoginModel):
    token, user = services.users.login(payload.email, payload.password)
    return schemas.TokenModel(access_token=token, user=schemas.UserModel(**user.to_dict()))


@app.get("/auth/check-email", response_model=schemas.ExistsModel)
def check_email(email: str = Query(...)):
    return schemas.ExistsModel(exists=services.users.exists_by_email(email))


# --- Kullanıcılar ---
@app.get("/users/me", response_model=schemas.UserModel)
def get_me(current_user: User = Depends(get_current_user)):
    return schemas.UserModel(**current_user.to_dict())


@app.get("/users/email/{email}", response_model=schemas.UserModel)
def get_user_by_email(email: str, current_user: User = Depends(require_staff)):
    return schemas.UserModel(**services.users.find_by_email(email).to_dict())


@app.get("/users/{user_id}", response_model=schemas.UserModel)
def get_user(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return schemas.UserModel(**services.users.find_by_id(user_id).to_dict())


@app.put("/users/{user_id}", response_model=schemas.UserModel)
def update_user(user_id: int, update: schemas.UserUpdateModel, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    user = services.users.update_user(user_id, update.name, update.email, update.password)
    return schemas.UserModel(**user.to_dict())


@app.put("/users/{user_id}/verification", response_model=schemas.UserModel)
def update_verification(
    user_id: int,
    payload: schemas.VerificationUpdateModel,
    current_user: User = Depends(require_staff),
):
    user = services.users.update_verification_status(user_id, payload.is_verified)
    return schemas.UserModel(**user.to_dict())


# --- Kitaplar ---
@app.get("/books", response_model=schemas.PaginatedBooksModel)
def list_books(
    page: int = Query(0, ge=0),
    size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
):
    return services.books.list_books(page, size).to_dict()


@app.get("/books/search", response_model=List[schemas.BookModel])
def search_books(
    title: Optional[str] = None,
    author: Optional[str] = None,
    category: Optional[str] = None,
    published_year: Optional[int] = None,
):
    books = services.books.search_books(title, author, category, published_year)
    return [schemas.BookModel(**book.to_dict()) for book in books]


@app.get("/books/search/copies", response_model=schemas.PaginatedBookSummaryModel)
def search_books_with_copies(
    title: Optional[str] = None,
    author: Optional[str] = None,
    published_year: Optional[int] = None,
    library_id: Optional[int] = None,
    page: int = Query(0, ge=0),
    size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
):
    result = services.books.search_books_with_copy_summary(
        title, author, published_year, library_id, page, size
    )
    return result.to_dict()


@app.get("/books/count", response_model=schemas.CountModel)
def count_books(
    category: Optional[str] = None,
    author: Optional[str] = None,
    published_year: Optional[int] = None,
):
    """Kategori, yazar veya yıla göre sayım (ilk verilen filtre kullanılır)."""
    if category:
        return schemas.CountModel(count=services.books.count_by_category(category))
    if author:
        return schemas.CountModel(count=services.books.count_by_author(author))
    if published_year is not None:
        return schemas.CountModel(count=services.books.count_by_published_year(published_year))
    return schemas.CountModel(count=services.books.list_books(0, 1).total)


@app.post("/books", response_model=schemas.BookModel, status_code=201)
def create_book(payload: schemas.BookCreateModel, current_user: User = Depends(require_staff)):
    book = services.books.create_book(
        payload.title, payload.author, payload.category, payload.published_year, payload.book_type
    )
    return schemas.BookModel(**book.to_dict())


@app.post("/books/with-copies", response_model=schemas.BookWithCopiesModel, status_code=201)
def create_book_with_copies(
    payload: schemas.BookWithCopiesCreateModel, current_user: User = Depends(require_staff)
):
    result = services.books.create_book_with_copies(
        payload.title,
        payload.author,
        payload.category,
        {item.library_id: item.copies for item in payload.libraries},
        payload.published_year,
        payload.book_type,
    )
    return result.to_dict()


@app.post("/books/add-copies", response_model=List[schemas.BookCopyModel], status_code=201)
def add_book_copies(payload: schemas.AddCopiesModel, current_user: User = Depends(require_staff)):
    copies = services.books.add_book_copies(
        payload.book_id, {item.library_id: item.copies for item in payload.libraries}
    )
    return [schemas.BookCopyModel(**copy.to_dict()) for copy in copies]


@app.put("/books/copies/{copy_id}", response_model=schemas.BookCopyModel)
def update_book_copy(
    copy_id: int, update: schemas.BookCopyUpdateModel, current_user: User = Depends(require_staff)
):
    copy = services.books.update_book_copy(copy_id, update.copy_number, update.status)
    return schemas.BookCopyModel(**copy.to_dict())


@app.get("/books/{book_id}", response_model=schemas.BookModel)
def get_book(book_id: int):
    return schemas.BookModel(**services.books.find_by_id(book_id).to_dict())


@app.put("/books/{book_id}", response_model=schemas.BookModel)
def update_book(book_id: int, update: schemas.BookUpdateModel, current_user: User = Depends(require_staff)):
    book = services.books.update_book(
        book_id, update.title, update.author, update.published_year, update.category, update.book_type
    )
    return schemas.BookModel(**book.to_dict())


@app.get("/books/{book_id}/copies", response_model=List[schemas.BookCopyModel])
def get_book_copies(book_id: int):
    return [schemas.BookCopyModel(**copy.to_dict()) for copy in services.books.get_book_copies(book_id)]


@app.get("/books/{book_id}/copies/available", response_model=List[schemas.BookCopyModel])
def get_available_book_copies(book_id: int):
    copies = services.books.get_available_book_copies(book_id)
    return [schemas.BookCopyModel(**copy.to_dict()) for copy in copies]


@app.get("/books/{book_id}/availability", response_model=schemas.AvailabilityModel)
def get_book_availability(book_id: int, library_id: int = Query(...)):
    count = services.books.get_available_copy_count(book_id, library_id)
    return schemas.AvailabilityModel(
        book_id=book_id, library_id=library_id, available=count > 0, available_copies=count
    )


# --- Kütüphaneler ---
@app.get("/api/libraries", response_model=List[schemas.LibraryModel])
def list_libraries():
    return [schemas.LibraryModel(**library.to_dict()) for library in services.libraries.find_all()]


@app.get("/api/libraries/exists", response_model=schemas.ExistsModel)
def library_exists(name: str = Query(...)):
    return schemas.ExistsModel(exists=services.libraries.exists_by_name(name))


@app.get("/api/libraries/name/{name}", response_model=schemas.LibraryModel)
def get_library_by_name(name: str):
    return schemas.LibraryModel(**services.libraries.find_by_name(name).to_dict())


@app.get("/api/libraries/{library_id}", response_model=schemas.LibraryModel)
def get_library(library_id: int):
    return schemas.LibraryModel(**services.libraries.find_by_id(library_id).to_dict())


@app.post("/api/libraries", response_model=schemas.LibraryModel, status_code=201)
def create_library(payload: schemas.LibraryCreateModel, current_user: User = Depends(require_staff)):
    library = services.libraries.create_library(payload.name, payload.address, payload.phone)
    return schemas.LibraryModel(**library.to_dict())


@app.put("/api/libraries/{library_id}", response_model=schemas.LibraryModel)
def update_library(
    library_id: int, update: schemas.LibraryUpdateModel, current_user: User = Depends(require_staff)
):
    library = services.libraries.update_library(library_id, update.name, update.address, update.phone)
    return schemas.LibraryModel(**library.to_dict())


@app.delete("/api/libraries/{library_id}", status_code=204)
def delete_library(library_id: int, current_user: User = Depends(require_staff)):
    services.libraries.delete_library(library_id)


# --- Ödünç Alma ---
@app.post("/api/borrows/{copy_id}/borrow", response_model=schemas.BorrowRecordModel, status_code=201)
def borrow_book(
    copy_id: int,
    payload: Optional[schemas.BorrowRequestModel] = Body(default=None),
    current_user: User = Depends(get_current_user),
):
    user_id = payload.user_id if payload and payload.user_id is not None else current_user.id
    _ensure_self_or_staff(current_user, user_id)
    record = services.borrows.borrow_book(user_id, copy_id)
    _notify_safely(services.notifications.send_borrow_confirmation, record.id)
    return schemas.BorrowRecordModel(**record.to_dict())


@app.post("/api/borrows/{record_id}/return", response_model=schemas.BorrowRecordModel)
def return_book(record_id: int, current_user: User = Depends(get_current_user)):
    existing = services.borrows.find_by_id(record_id)
    _ensure_self_or_staff(current_user, existing.user_id)
    record = services.borrows.return_book(record_id)
    _notify_safely(services.notifications.send_return_confirmation, record.id)
    return schemas.BorrowRecordModel(**record.to_dict())


@app.get("/api/borrows/user/{user_id}", response_model=List[schemas.BorrowRecordModel])
def get_borrow_history(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return [schemas.BorrowRecordModel(**r.to_dict()) for r in services.borrows.get_borrow_history(user_id)]


@app.get("/api/borrows/user/{user_id}/active", response_model=List[schemas.BorrowRecordModel])
def get_active_borrows(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return [schemas.BorrowRecordModel(**r.to_dict()) for r in services.borrows.get_active_borrows(user_id)]


@app.get("/api/borrows/user/{user_id}/overdue", response_model=List[schemas.BorrowRecordModel])
def get_overdue_records(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return [schemas.BorrowRecordModel(**r.to_dict()) for r in services.borrows.get_overdue_records(user_id)]


@app.get("/api/borrows/user/{user_id}/has-overdue", response_model=schemas.HasOverdueModel)
def has_overdue_books(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return schemas.HasOverdueModel(has_overdue=services.borrows.has_overdue_books(user_id))


@app.get("/api/borrows/user/{user_id}/active-count", response_model=schemas.CountModel)
def count_active_borrows(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return schemas.CountModel(count=services.borrows.count_active_borrows(user_id))


@app.get("/api/borrows/user/{user_id}/quota", response_model=schemas.QuotaModel)
def get_borrow_quota(user_id: int, current_user: User = Depends(get_current_user)):
    _ensure_self_or_staff(current_user, user_id)
    return services.borrows.get_borrow_quota(user_id)


@app.get("/api/borrows/{record_id}", response_model=schemas.BorrowRecordModel)
def get_borrow_record(record_id: int, current_user: User = Depends(get_current_user)):
    record = services.borrows.find_by_id(record_id)
    _ensure_self_or_staff(current_user, record.user_id)
    return schemas.BorrowRecordModel(**record.to_dict())


# --- Bildirimler ---
@app.post("/api/v1/notifications/trigger-overdue-check", response_model=schemas.NotificationCheckModel)
def trigger_overdue_check(current_user: User = Depends(require_staff)):
    """Zamanlayıcının çalıştırdığı kontrolü elle tetikler."""
    logger.info(f"Manual notification check triggered by user {current_user.id}")
    sent = services.scheduler.run_once()
    return schemas.NotificationCheckModel(
        sent=len(sent), notifications=[schemas.NotificationModel(**n.to_dict()) for n in sent]
    )


@app.get("/api/v1/notifications/me", response_model=List[schemas.NotificationModel])
def get_my_notifications(current_user: User = Depends(get_current_user)):
    return [schemas.NotificationModel(**n.to_dict()) for n in services.notifications.find_by_user(current_user.id)]


@app.delete("/api/v1/notifications/{notification_id}", status_code=204)
def delete_notification(notification_id: int, current_user: User = Depends(get_current_user)):
    notification = services.notifications.find_by_id(notification_id)
    _ensure_self_or_staff(current_user, notification.user_id)
    services.notifications.delete_notification(notification_id)


@app.get("/")
def read_root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "roles": [role.value for role in RoleName],
    }
