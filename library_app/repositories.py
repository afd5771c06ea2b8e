"""SQLite depo sınıfları ve işlem sınırını yöneten UnitOfWork.

Her depo, UnitOfWork tarafından açılan tek bir bağlantıya bağlıdır; böylece bir
servis çağrısındaki tüm okuma ve yazmalar aynı işlemde yapılır.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

from library_app.database import get_db_connection, to_db_timestamp
from library_app.models import (
    Book,
    BookCopy,
    BookType,
    BorrowRecord,
    BorrowStatus,
    CopyStatus,
    CopySummary,
    Library,
    Notification,
    NotificationType,
    ReminderDetails,
    Role,
    RoleName,
    User,
)

logger = logging.getLogger(__name__)


def _like(value: str) -> str:
    return f"%{value.strip().lower()}%"


class _Repository:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    def _scalar(self, sql: str, params: tuple = ()) -> int:
        row = self.conn.execute(sql, params).fetchone()
        return row[0] if row and row[0] is not None else 0


class RoleRepository(_Repository):
    def find_by_name(self, name: RoleName) -> Optional[Role]:
        row = self._fetchone("SELECT * FROM roles WHERE name = ?", (name.value,))
        return Role.from_row(row) if row else None

    def find_all(self) -> List[Role]:
        return [Role.from_row(row) for row in self._fetchall("SELECT * FROM roles ORDER BY id")]


_USER_SELECT = """
    SELECT u.*, r.name AS role_name
    FROM users u JOIN roles r ON r.id = u.role_id
"""


class UserRepository(_Repository):
    def find_by_id(self, user_id: int) -> Optional[User]:
        row = self._fetchone(_USER_SELECT + " WHERE u.id = ?", (user_id,))
        return User.from_row(row) if row else None

    def find_by_email(self, email: str) -> Optional[User]:
        row = self._fetchone(_USER_SELECT + " WHERE LOWER(u.email) = LOWER(?)", (email.strip(),))
        return User.from_row(row) if row else None

    def exists_by_email(self, email: str) -> bool:
        return self._scalar(
            "SELECT COUNT(*) FROM users WHERE LOWER(email) = LOWER(?)", (email.strip(),)
        ) > 0

    def find_by_role(self, role: RoleName) -> List[User]:
        rows = self._fetchall(_USER_SELECT + " WHERE r.name = ? ORDER BY u.id", (role.value,))
        return [User.from_row(row) for row in rows]

    def count_by_role(self, role: RoleName) -> int:
        return self._scalar(
            "SELECT COUNT(*) FROM users u JOIN roles r ON r.id = u.role_id WHERE r.name = ?",
            (role.value,),
        )

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM users")

    def save(self, user: User, now: datetime) -> User:
        user.updated_at = now
        if user.id is None:
            user.created_at = user.created_at or now
            cursor = self.conn.execute(
                """
                INSERT INTO users (name, email, password_hash, role_id, librarian_id,
                                   is_verified, created_at, updated_at)
                VALUES (?, ?, ?, (SELECT id FROM roles WHERE name = ?), ?, ?, ?, ?)
                """,
                (
                    user.name, user.email, user.password_hash, user.role.value,
                    user.librarian_id, int(user.is_verified),
                    to_db_timestamp(user.created_at), to_db_timestamp(user.updated_at),
                ),
            )
            user.id = cursor.lastrowid
        else:
            self.conn.execute(
                """
                UPDATE users
                SET name = ?, email = ?, password_hash = ?,
                    role_id = (SELECT id FROM roles WHERE name = ?),
                    librarian_id = ?, is_verified = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    user.name, user.email, user.password_hash, user.role.value,
                    user.librarian_id, int(user.is_verified),
                    to_db_timestamp(user.updated_at), user.id,
                ),
            )
        return user

    def delete(self, user_id: int) -> bool:
        return self.conn.execute("DELETE FROM users WHERE id = ?", (user_id,)).rowcount > 0


class LibraryRepository(_Repository):
    def find_by_id(self, library_id: int) -> Optional[Library]:
        row = self._fetchone("SELECT * FROM libraries WHERE id = ?", (library_id,))
        return Library.from_row(row) if row else None

    def find_by_name(self, name: str) -> Optional[Library]:
        row = self._fetchone("SELECT * FROM libraries WHERE name = ?", (name.strip(),))
        return Library.from_row(row) if row else None

    def find_all(self) -> List[Library]:
        return [Library.from_row(row) for row in self._fetchall("SELECT * FROM libraries ORDER BY name")]

    def exists_by_name(self, name: str) -> bool:
        return self._scalar("SELECT COUNT(*) FROM libraries WHERE name = ?", (name.strip(),)) > 0

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM libraries")

    def save(self, library: Library, now: datetime) -> Library:
        library.updated_at = now
        if library.id is None:
            library.created_at = library.created_at or now
            cursor = self.conn.execute(
                "INSERT INTO libraries (name, address, phone, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (
                    library.name, library.address, library.phone,
                    to_db_timestamp(library.created_at), to_db_timestamp(library.updated_at),
                ),
            )
            library.id = cursor.lastrowid
        else:
            self.conn.execute(
                "UPDATE libraries SET name = ?, address = ?, phone = ?, updated_at = ? WHERE id = ?",
                (library.name, library.address, library.phone, to_db_timestamp(library.updated_at), library.id),
            )
        return library

    def delete(self, library_id: int) -> bool:
        return self.conn.execute("DELETE FROM libraries WHERE id = ?", (library_id,)).rowcount > 0


class BookRepository(_Repository):
    @staticmethod
    def _filters(
        title: Optional[str] = None,
        author: Optional[str] = None,
        category: Optional[str] = None,
        published_year: Optional[int] = None,
    ) -> tuple[str, list]:
        # Boş filtreler her şeyle eşleşir
        clauses: List[str] = []
        params: list = []
        if title and title.strip():
            clauses.append("LOWER(title) LIKE ?")
            params.append(_like(title))
        if author and author.strip():
            clauses.append("LOWER(author) LIKE ?")
            params.append(_like(author))
        if category and category.strip():
            clauses.append("LOWER(category) LIKE ?")
            params.append(_like(category))
        if published_year is not None:
            clauses.append("published_year = ?")
            params.append(published_year)
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return where, params

    def find_by_id(self, book_id: int) -> Optional[Book]:
        row = self._fetchone("SELECT * FROM books WHERE id = ?", (book_id,))
        return Book.from_row(row) if row else None

    def search(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        category: Optional[str] = None,
        published_year: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Book]:
        where, params = self._filters(title, author, category, published_year)
        sql = "SELECT * FROM books" + where + " ORDER BY title, id"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [limit, offset]
        return [Book.from_row(row) for row in self._fetchall(sql, tuple(params))]

    def count_search(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        category: Optional[str] = None,
        published_year: Optional[int] = None,
    ) -> int:
        where, params = self._filters(title, author, category, published_year)
        return self._scalar("SELECT COUNT(*) FROM books" + where, tuple(params))

    def find_by_category(self, category: str) -> List[Book]:
        rows = self._fetchall("SELECT * FROM books WHERE category = ? ORDER BY title, id", (category.strip(),))
        return [Book.from_row(row) for row in rows]

    def find_by_author(self, author: str) -> List[Book]:
        rows = self._fetchall("SELECT * FROM books WHERE author = ? ORDER BY title, id", (author.strip(),))
        return [Book.from_row(row) for row in rows]

    def find_by_published_year(self, year: int) -> List[Book]:
        rows = self._fetchall("SELECT * FROM books WHERE published_year = ? ORDER BY title, id", (year,))
        return [Book.from_row(row) for row in rows]

    def count_by_category(self, category: str) -> int:
        return self._scalar("SELECT COUNT(*) FROM books WHERE category = ?", (category.strip(),))

    def count_by_author(self, author: str) -> int:
        return self._scalar("SELECT COUNT(*) FROM books WHERE author = ?", (author.strip(),))

    def count_by_published_year(self, year: int) -> int:
        return self._scalar("SELECT COUNT(*) FROM books WHERE published_year = ?", (year,))

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM books")

    def save(self, book: Book, now: datetime) -> Book:
        book.updated_at = now
        if book.id is None:
            book.created_at = book.created_at or now
            cursor = self.conn.execute(
                """
                INSERT INTO books (title, author, published_year, category, book_type, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    book.title, book.author, book.published_year, book.category, book.book_type.value,
                    to_db_timestamp(book.created_at), to_db_timestamp(book.updated_at),
                ),
            )
            book.id = cursor.lastrowid
        else:
            self.conn.execute(
                """
                UPDATE books
                SET title = ?, author = ?, published_year = ?, category = ?, book_type = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    book.title, book.author, book.published_year, book.category, book.book_type.value,
                    to_db_timestamp(book.updated_at), book.id,
                ),
            )
        return book

    def delete(self, book_id: int) -> bool:
        return self.conn.execute("DELETE FROM books WHERE id = ?", (book_id,)).rowcount > 0


class BookCopyRepository(_Repository):
    def find_by_id(self, copy_id: int) -> Optional[BookCopy]:
        row = self._fetchone("SELECT * FROM book_copies WHERE id = ?", (copy_id,))
        return BookCopy.from_row(row) if row else None

    def find_by_book(self, book_id: int) -> List[BookCopy]:
        rows = self._fetchall(
            "SELECT * FROM book_copies WHERE book_id = ? ORDER BY library_id, copy_number", (book_id,)
        )
        return [BookCopy.from_row(row) for row in rows]

    def find_by_book_and_status(self, book_id: int, status: CopyStatus) -> List[BookCopy]:
        rows = self._fetchall(
            "SELECT * FROM book_copies WHERE book_id = ? AND status = ? ORDER BY library_id, copy_number",
            (book_id, status.value),
        )
        return [BookCopy.from_row(row) for row in rows]

    def count_by_book(self, book_id: int) -> int:
        return self._scalar("SELECT COUNT(*) FROM book_copies WHERE book_id = ?", (book_id,))

    def count_by_library(self, library_id: int) -> int:
        return self._scalar("SELECT COUNT(*) FROM book_copies WHERE library_id = ?", (library_id,))

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM book_copies")

    def count_by_status(self, status: CopyStatus) -> int:
        return self._scalar("SELECT COUNT(*) FROM book_copies WHERE status = ?", (status.value,))

    def count_available(self, book_id: int, library_id: int) -> int:
        return self._scalar(
            "SELECT COUNT(*) FROM book_copies WHERE book_id = ? AND library_id = ? AND status = ?",
            (book_id, library_id, CopyStatus.AVAILABLE.value),
        )

    def max_copy_number(self, book_id: int, library_id: int) -> int:
        return self._scalar(
            "SELECT MAX(copy_number) FROM book_copies WHERE book_id = ? AND library_id = ?",
            (book_id, library_id),
        )

    def exists_copy_number(
        self, book_id: int, library_id: int, copy_number: int, exclude_id: Optional[int] = None
    ) -> bool:
        return self._scalar(
            """
            SELECT COUNT(*) FROM book_copies
            WHERE book_id = ? AND library_id = ? AND copy_number = ? AND id != ?
            """,
            (book_id, library_id, copy_number, exclude_id or -1),
        ) > 0

    def summary_by_book(self, book_id: int, library_id: Optional[int] = None) -> List[CopySummary]:
        sql = """
            SELECT l.id AS library_id, l.name AS library_name,
                   COUNT(c.id) AS total_copies,
                   SUM(CASE WHEN c.status = 'AVAILABLE' THEN 1 ELSE 0 END) AS available_copies
            FROM book_copies c JOIN libraries l ON l.id = c.library_id
            WHERE c.book_id = ?
        """
        params: list = [book_id]
        if library_id is not None:
            sql += " AND c.library_id = ?"
            params.append(library_id)
        sql += " GROUP BY l.id, l.name ORDER BY l.name"
        return [
            CopySummary(
                library_id=row["library_id"],
                library_name=row["library_name"],
                total_copies=row["total_copies"],
                available_copies=row["available_copies"] or 0,
            )
            for row in self._fetchall(sql, tuple(params))
        ]

    def save(self, copy: BookCopy, now: datetime) -> BookCopy:
        copy.updated_at = now
        if copy.id is None:
            copy.created_at = copy.created_at or now
            cursor = self.conn.execute(
                """
                INSERT INTO book_copies (book_id, library_id, copy_number, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    copy.book_id, copy.library_id, copy.copy_number, copy.status.value,
                    to_db_timestamp(copy.created_at), to_db_timestamp(copy.updated_at),
                ),
            )
            copy.id = cursor.lastrowid
        else:
            self.conn.execute(
                "UPDATE book_copies SET copy_number = ?, status = ?, updated_at = ? WHERE id = ?",
                (copy.copy_number, copy.status.value, to_db_timestamp(copy.updated_at), copy.id),
            )
        return copy

    def mark_borrowed(self, copy_id: int, now: datetime) -> bool:
        """Kopyayı yalnızca hâlâ AVAILABLE ise BORROWED yapar.

        Durum SQL içinde yeniden kontrol edilir; eşzamanlı iki çağrıdan yalnızca
        biri satırı güncelleyebilir. Güncelleme olmadıysa False döner.
        """
        cursor = self.conn.execute(
            "UPDATE book_copies SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (CopyStatus.BORROWED.value, to_db_timestamp(now), copy_id, CopyStatus.AVAILABLE.value),
        )
        return cursor.rowcount == 1

    def mark_available(self, copy_id: int, now: datetime) -> bool:
        cursor = self.conn.execute(
            "UPDATE book_copies SET status = ?, updated_at = ? WHERE id = ?",
            (CopyStatus.AVAILABLE.value, to_db_timestamp(now), copy_id),
        )
        return cursor.rowcount == 1


class BorrowRecordRepository(_Repository):
    def find_by_id(self, record_id: int) -> Optional[BorrowRecord]:
        row = self._fetchone("SELECT * FROM borrow_records WHERE id = ?", (record_id,))
        return BorrowRecord.from_row(row) if row else None

    def find_by_user(self, user_id: int) -> List[BorrowRecord]:
        rows = self._fetchall(
            "SELECT * FROM borrow_records WHERE user_id = ? ORDER BY borrowed_at DESC, id DESC", (user_id,)
        )
        return [BorrowRecord.from_row(row) for row in rows]

    def find_active_by_user(self, user_id: int) -> List[BorrowRecord]:
        rows = self._fetchall(
            "SELECT * FROM borrow_records WHERE user_id = ? AND status = ? ORDER BY due_at, id",
            (user_id, BorrowStatus.BORROWED.value),
        )
        return [BorrowRecord.from_row(row) for row in rows]

    def count_active_by_user(self, user_id: int) -> int:
        return self._scalar(
            "SELECT COUNT(*) FROM borrow_records WHERE user_id = ? AND status = ?",
            (user_id, BorrowStatus.BORROWED.value),
        )

    def count_active_by_user_and_type(self, user_id: int, book_type: BookType) -> int:
        return self._scalar(
            """
            SELECT COUNT(*)
            FROM borrow_records r
            JOIN book_copies c ON c.id = r.book_copy_id
            JOIN books b ON b.id = c.book_id
            WHERE r.user_id = ? AND r.status = ? AND b.book_type = ?
            """,
            (user_id, BorrowStatus.BORROWED.value, book_type.value),
        )

    def active_counts_by_type(self, user_id: int) -> Dict[BookType, int]:
        rows = self._fetchall(
            """
            SELECT b.book_type AS book_type, COUNT(*) AS total
            FROM borrow_records r
            JOIN book_copies c ON c.id = r.book_copy_id
            JOIN books b ON b.id = c.book_id
            WHERE r.user_id = ? AND r.status = ?
            GROUP BY b.book_type
            """,
            (user_id, BorrowStatus.BORROWED.value),
        )
        counts = {book_type: 0 for book_type in BookType}
        for row in rows:
            counts[BookType(row["book_type"])] = row["total"]
        return counts

    def find_overdue_by_user(self, user_id: int, now: datetime) -> List[BorrowRecord]:
        rows = self._fetchall(
            "SELECT * FROM borrow_records WHERE user_id = ? AND status = ? AND due_at < ? ORDER BY due_at, id",
            (user_id, BorrowStatus.BORROWED.value, to_db_timestamp(now)),
        )
        return [BorrowRecord.from_row(row) for row in rows]

    def exists_overdue_by_user(self, user_id: int, now: datetime) -> bool:
        return self._scalar(
            "SELECT COUNT(*) FROM borrow_records WHERE user_id = ? AND status = ? AND due_at < ?",
            (user_id, BorrowStatus.BORROWED.value, to_db_timestamp(now)),
        ) > 0

    def find_due_between(self, start: datetime, end: datetime) -> List[BorrowRecord]:
        """Vade tarihi [start, end) yarı açık aralığındaki aktif kayıtlar."""
        rows = self._fetchall(
            """
            SELECT * FROM borrow_records
            WHERE status = ? AND due_at >= ? AND due_at < ?
            ORDER BY due_at, id
            """,
            (BorrowStatus.BORROWED.value, to_db_timestamp(start), to_db_timestamp(end)),
        )
        return [BorrowRecord.from_row(row) for row in rows]

    def find_details(self, record_id: int) -> Optional[ReminderDetails]:
        row = self._fetchone(
            """
            SELECT r.id AS record_id, r.user_id AS user_id, u.name AS user_name, u.email AS user_email,
                   b.title AS book_title, c.copy_number AS copy_number, l.name AS library_name,
                   r.borrowed_at AS borrowed_at, r.due_at AS due_at
            FROM borrow_records r
            JOIN users u ON u.id = r.user_id
            JOIN book_copies c ON c.id = r.book_copy_id
            JOIN books b ON b.id = c.book_id
            JOIN libraries l ON l.id = c.library_id
            WHERE r.id = ?
            """,
            (record_id,),
        )
        return ReminderDetails.from_row(row) if row else None

    def count_by_status(self, status: BorrowStatus) -> int:
        return self._scalar("SELECT COUNT(*) FROM borrow_records WHERE status = ?", (status.value,))

    def save(self, record: BorrowRecord, now: datetime) -> BorrowRecord:
        """Yeni kaydı ekler; durum geçişleri yalnızca mark_returned ile yapılır."""
        record.created_at = record.created_at or now
        record.updated_at = now
        cursor = self.conn.execute(
            """
            INSERT INTO borrow_records (user_id, book_copy_id, borrowed_at, due_at, returned_at,
                                        status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.user_id, record.book_copy_id,
                to_db_timestamp(record.borrowed_at), to_db_timestamp(record.due_at),
                to_db_timestamp(record.returned_at), record.status.value,
                to_db_timestamp(record.created_at), to_db_timestamp(record.updated_at),
            ),
        )
        record.id = cursor.lastrowid
        return record

    def mark_returned(self, record_id: int, returned_at: datetime, now: datetime) -> bool:
        """Kaydı yalnızca hâlâ BORROWED ise RETURNED yapar."""
        cursor = self.conn.execute(
            """
            UPDATE borrow_records SET status = ?, returned_at = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (
                BorrowStatus.RETURNED.value, to_db_timestamp(returned_at), to_db_timestamp(now),
                record_id, BorrowStatus.BORROWED.value,
            ),
        )
        return cursor.rowcount == 1


class NotificationRepository(_Repository):
    def find_by_id(self, notification_id: int) -> Optional[Notification]:
        row = self._fetchone("SELECT * FROM notifications WHERE id = ?", (notification_id,))
        return Notification.from_row(row) if row else None

    def find_by_user(self, user_id: int) -> List[Notification]:
        rows = self._fetchall(
            "SELECT * FROM notifications WHERE user_id = ? ORDER BY sent_at DESC, id DESC", (user_id,)
        )
        return [Notification.from_row(row) for row in rows]

    def exists_for_record(self, record_id: int, notification_type: NotificationType) -> bool:
        return self._scalar(
            "SELECT COUNT(*) FROM notifications WHERE borrow_record_id = ? AND notification_type = ?",
            (record_id, notification_type.value),
        ) > 0

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM notifications")

    def save(self, notification: Notification, now: datetime) -> Notification:
        notification.sent_at = notification.sent_at or now
        cursor = self.conn.execute(
            """
            INSERT INTO notifications (user_id, borrow_record_id, notification_type, message, sent_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                notification.user_id, notification.borrow_record_id, notification.notification_type.value,
                notification.message, to_db_timestamp(notification.sent_at),
            ),
        )
        notification.id = cursor.lastrowid
        return notification

    def delete(self, notification_id: int) -> bool:
        return self.conn.execute("DELETE FROM notifications WHERE id = ?", (notification_id,)).rowcount > 0


class UnitOfWork:
    """Tek bir bağlantı ve tek bir işlem üzerinde depo kümesi.

    Yazma işlemleri `BEGIN IMMEDIATE` ile başlar: yazma kilidi en başta alınır,
    böylece aynı kopya için eşzamanlı iki ödünç alma sıralanır. Blok hatasız
    biterse commit, herhangi bir istisnada rollback yapılır.

        with UnitOfWork() as uow:
            user = uow.users.find_by_id(1)
    """

    def __init__(self, db_file: Optional[str] = None, read_only: bool = False) -> None:
        self.db_file = db_file
        self.read_only = read_only
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "UnitOfWork":
        self.conn = get_db_connection(self.db_file)
        try:
            self.conn.execute("BEGIN" if self.read_only else "BEGIN IMMEDIATE")
        except sqlite3.Error:
            self.conn.close()
            raise
        self.roles = RoleRepository(self.conn)
        self.users = UserRepository(self.conn)
        self.libraries = LibraryRepository(self.conn)
        self.books = BookRepository(self.conn)
        self.copies = BookCopyRepository(self.conn)
        self.borrows = BorrowRecordRepository(self.conn)
        self.notifications = NotificationRepository(self.conn)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
                logger.debug(f"Transaction rolled back: {exc_type.__name__}")
        finally:
            self.conn.close()
            self.conn = None
