"""Servis katmanı ve açık bağımlılık bağlantısı."""

from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Callable, Optional

from library_app.config import settings
from library_app.repositories import UnitOfWork
from library_app.services.book_service import BookService
from library_app.services.borrow_service import BorrowService
from library_app.services.librarian_verifier import LibrarianVerifier
from library_app.services.library_service import LibraryService
from library_app.services.notification_service import NotificationService
from library_app.services.scheduler import NotificationScheduler
from library_app.services.user_service import UserService


@dataclass
class Services:
    books: BookService
    libraries: LibraryService
    users: UserService
    borrows: BorrowService
    notifications: NotificationService
    scheduler: NotificationScheduler


def build_services(
    db_file: Optional[str] = None,
    clock: Callable[[], datetime] = datetime.now,
    verifier: Optional[LibrarianVerifier] = None,
) -> Services:
    """Tüm servisleri aynı veritabanı ve saat ile oluşturur."""
    unit_of_work = partial(UnitOfWork, db_file) if db_file else UnitOfWork
    notifications = NotificationService(unit_of_work, clock)
    return Services(
        books=BookService(unit_of_work, clock),
        libraries=LibraryService(unit_of_work, clock),
        users=UserService(unit_of_work, clock, verifier=verifier),
        borrows=BorrowService(unit_of_work, clock),
        notifications=notifications,
        scheduler=NotificationScheduler(
            notifications.check_overdue_notifications,
            interval_seconds=settings.notification_check_interval_seconds,
        ),
    )
