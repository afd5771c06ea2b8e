import sqlite3
from datetime import datetime
from typing import Optional

from library_app.config import settings

# Varsayılan veritabanı dosyası.
# Testler ve çağıranlar, bağlantı açılmadan önce bu değeri geçersiz kılabilir.
DATABASE_FILE = settings.data_file

# Zaman damgaları sabit genişlikli metin olarak saklanır; böylece SQL'deki dize
# karşılaştırması kronolojik karşılaştırmayla aynı sonucu verir.
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

DEFAULT_ROLES = [
    ("MEMBER", "Library member who can borrow books"),
    ("LIBRARIAN", "Verified librarian who manages the catalog"),
    ("ADMIN", "System administrator"),
]


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """SQLite veritabanına yeni bir bağlantı kurar.

    Bağlantı otomatik işlem modunda açılır (isolation_level=None); işlem
    sınırları repositories.UnitOfWork tarafından açıkça yönetilir.
    """
    conn = sqlite3.connect(
        db_file or DATABASE_FILE,
        timeout=settings.database_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    # Zamanlayıcı ile istek iş parçacıklarının eşzamanlı erişimi için WAL
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Veritabanında mevcut değilse gerekli tabloları oluşturur."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                description TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                role_id INTEGER NOT NULL,
                librarian_id TEXT,
                is_verified INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (role_id) REFERENCES roles(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS libraries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                address TEXT NOT NULL,
                phone TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                published_year INTEGER,
                category TEXT NOT NULL,
                book_type TEXT NOT NULL DEFAULT 'TRADITIONAL',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # Fiziksel kopyalar: (kitap, kütüphane) içinde kopya numarası benzersiz
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS book_copies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL,
                library_id INTEGER NOT NULL,
                copy_number INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'AVAILABLE'
                    CHECK(status IN ('AVAILABLE', 'BORROWED', 'LOST', 'DAMAGED')),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (book_id, library_id, copy_number),
                FOREIGN KEY (book_id) REFERENCES books(id),
                FOREIGN KEY (library_id) REFERENCES libraries(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS borrow_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                book_copy_id INTEGER NOT NULL,
                borrowed_at TEXT NOT NULL,
                due_at TEXT NOT NULL,
                returned_at TEXT,
                status TEXT NOT NULL DEFAULT 'BORROWED'
                    CHECK(status IN ('BORROWED', 'RETURNED')),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (book_copy_id) REFERENCES book_copies(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                borrow_record_id INTEGER,
                notification_type TEXT NOT NULL,
                message TEXT NOT NULL,
                sent_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (borrow_record_id) REFERENCES borrow_records(id) ON DELETE SET NULL
            )
        """)

        # Daha iyi performans için dizinler oluştur
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_category ON books(category)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_copies_book_library ON book_copies(book_id, library_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_user_status ON borrow_records(user_id, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_status_due ON borrow_records(status, due_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_notifications_record_type "
            "ON notifications(borrow_record_id, notification_type)"
        )

        # Varsayılan roller yoksa ekle
        for name, description in DEFAULT_ROLES:
            cursor.execute(
                "INSERT OR IGNORE INTO roles (name, description) VALUES (?, ?)",
                (name, description),
            )
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Veritabanını başlatır, gerekirse tabloları ve varsayılan rolleri oluşturur."""
    create_tables(db_file)
