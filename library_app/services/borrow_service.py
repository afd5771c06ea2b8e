"""Ödünç alma / iade durum makinesi.

Bir BorrowRecord yalnızca BORROWED -> RETURNED geçişini yapabilir. Kopyanın
durum değişikliği ile kaydın yazılması her zaman tek bir UnitOfWork içinde,
birlikte commit veya rollback edilir.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional

from library_app.config import settings
from library_app.exceptions import ConflictError, NotFoundError
from library_app.models import BookType, BorrowRecord, BorrowStatus, CopyStatus
from library_app.repositories import UnitOfWork

logger = logging.getLogger(__name__)


def default_borrow_limits() -> Dict[BookType, int]:
    return {
        BookType.TRADITIONAL: settings.traditional_borrow_limit,
        BookType.MODERN: settings.modern_borrow_limit,
    }


class BorrowService:
    def __init__(
        self,
        unit_of_work: Callable[..., UnitOfWork] = UnitOfWork,
        clock: Callable[[], datetime] = datetime.now,
        loan_period_days: Optional[int] = None,
        borrow_limits: Optional[Mapping[BookType, int]] = None,
    ) -> None:
        self.unit_of_work = unit_of_work
        self.clock = clock
        self.loan_period = timedelta(
            days=loan_period_days if loan_period_days is not None else settings.loan_period_days
        )
        self.borrow_limits = dict(borrow_limits) if borrow_limits is not None else default_borrow_limits()

    def limit_for(self, book_type: BookType) -> int:
        return self.borrow_limits.get(book_type, book_type.default_borrow_limit)

    def borrow_book(self, user_id: int, book_copy_id: int) -> BorrowRecord:
        """Kopyayı kullanıcıya ödünç verir.

        Kontrol sırası: kullanıcı, kopya, müsaitlik, tür sınırı, gecikmiş kayıt.
        Herhangi bir adımda hata olursa hiçbir durum değişmez.
        """
        now = self.clock()
        with self.unit_of_work() as uow:
            if uow.users.find_by_id(user_id) is None:
                raise NotFoundError("User not found")

            copy = uow.copies.find_by_id(book_copy_id)
            if copy is None:
                raise NotFoundError("Book copy not found")

            if copy.status != CopyStatus.AVAILABLE:
                logger.info(f"Borrow rejected: copy {book_copy_id} is {copy.status.value}")
                raise ConflictError("Book is not available")

            book = uow.books.find_by_id(copy.book_id)
            if book is None:
                raise NotFoundError("Book not found")
            limit = self.limit_for(book.book_type)
            active = uow.borrows.count_active_by_user_and_type(user_id, book.book_type)
            if active >= limit:
                logger.info(f"Borrow rejected: user {user_id} reached {book.book_type.value} limit {limit}")
                raise ConflictError(
                    f"Borrow limit exceeded. Maximum {limit} {book.book_type.value.lower()} books allowed."
                )

            if uow.borrows.exists_overdue_by_user(user_id, now):
                logger.info(f"Borrow rejected: user {user_id} has overdue books")
                raise ConflictError("User has overdue books; return them first")

            # Koşullu güncelleme: kopya bu arada başka biri tarafından alındıysa 0 satır döner
            if not uow.copies.mark_borrowed(copy.id, now):
                raise ConflictError("Book is not available")

            record = uow.borrows.save(
                BorrowRecord(
                    user_id=user_id,
                    book_copy_id=copy.id,
                    borrowed_at=now,
                    due_at=now + self.loan_period,
                ),
                now,
            )

        logger.info(f"Book copy {book_copy_id} borrowed by user {user_id} (record {record.id})")
        return record

    def return_book(self, borrow_record_id: int) -> BorrowRecord:
        now = self.clock()
        with self.unit_of_work() as uow:
            record = uow.borrows.find_by_id(borrow_record_id)
            if record is None:
                raise NotFoundError("Borrow record not found")
            if record.status == BorrowStatus.RETURNED:
                raise ConflictError("Book already returned")

            # Saat geriye gitse bile returned_at >= borrowed_at kalır
            returned_at = max(now, record.borrowed_at)
            if not uow.borrows.mark_returned(record.id, returned_at, now):
                raise ConflictError("Book already returned")
            uow.copies.mark_available(record.book_copy_id, now)

            record.status = BorrowStatus.RETURNED
            record.returned_at = returned_at
            record.updated_at = now

        logger.info(f"Borrow record {record.id} returned (copy {record.book_copy_id})")
        return record

    # ------------------------- Sorgular ------------------------- #
    def _require_user(self, uow: UnitOfWork, user_id: int) -> None:
        if uow.users.find_by_id(user_id) is None:
            raise NotFoundError("User not found")

    def get_active_borrows(self, user_id: int) -> List[BorrowRecord]:
        with self.unit_of_work(read_only=True) as uow:
            self._require_user(uow, user_id)
            return uow.borrows.find_active_by_user(user_id)

    def get_overdue_records(self, user_id: int) -> List[BorrowRecord]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.borrows.find_overdue_by_user(user_id, self.clock())

    def has_overdue_books(self, user_id: int) -> bool:
        with self.unit_of_work(read_only=True) as uow:
            return uow.borrows.exists_overdue_by_user(user_id, self.clock())

    def count_active_borrows(self, user_id: int) -> int:
        with self.unit_of_work(read_only=True) as uow:
            self._require_user(uow, user_id)
            return uow.borrows.count_active_by_user(user_id)

    def find_by_id(self, borrow_record_id: int) -> BorrowRecord:
        with self.unit_of_work(read_only=True) as uow:
            record = uow.borrows.find_by_id(borrow_record_id)
        if record is None:
            raise NotFoundError("Borrow record not found")
        return record

    def get_active_counts_by_type(self, user_id: int) -> Dict[BookType, int]:
        with self.unit_of_work(read_only=True) as uow:
            self._require_user(uow, user_id)
            return uow.borrows.active_counts_by_type(user_id)

    def get_borrow_quota(self, user_id: int) -> Dict[str, dict]:
        """Tür başına sınır, aktif ödünç sayısı ve kalan hak."""
        counts = self.get_active_counts_by_type(user_id)
        quota = {}
        for book_type in BookType:
            limit = self.limit_for(book_type)
            active = counts.get(book_type, 0)
            quota[book_type.value] = {
                "label": book_type.label,
                "limit": limit,
                "active": active,
                "remaining": max(limit - active, 0),
            }
        return quota

    def get_borrow_history(self, user_id: int) -> List[BorrowRecord]:
        with self.unit_of_work(read_only=True) as uow:
            self._require_user(uow, user_id)
            return uow.borrows.find_by_user(user_id)
