import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Uygulama Ayarları
    app_name: str = os.getenv("APP_NAME", "Library Management API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = _env_bool("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # API Ayarları
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Veritabanı Ayarları
    # LIBRARY_DB_FILE açık geçersiz kılmadır, LIBRARY_DATA_FILE eski isimdir
    data_file: str = os.getenv("LIBRARY_DB_FILE") or os.getenv("LIBRARY_DATA_FILE", "library.db")
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "5"))

    # Güvenlik Ayarları
    jwt_secret_key: str = os.getenv(
        "JWT_SECRET_KEY", "change-this-jwt-secret-key-before-going-to-production"
    )
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expiration_minutes: int = int(os.getenv("JWT_EXPIRATION_MINUTES", "1440"))  # 24 saat
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Ödünç Alma Kuralları
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "30"))
    traditional_borrow_limit: int = int(os.getenv("TRADITIONAL_BORROW_LIMIT", "5"))
    modern_borrow_limit: int = int(os.getenv("MODERN_BORROW_LIMIT", "10"))

    # Bildirim Ayarları
    reminder_days_ahead: int = int(os.getenv("REMINDER_DAYS_AHEAD", "5"))
    reminder_window_days: int = int(os.getenv("REMINDER_WINDOW_DAYS", "1"))
    notification_check_interval_seconds: float = float(
        os.getenv("NOTIFICATION_CHECK_INTERVAL_SECONDS", "60")
    )
    enable_notification_scheduler: bool = _env_bool("ENABLE_NOTIFICATION_SCHEDULER", "True")
    deduplicate_reminders: bool = _env_bool("DEDUPLICATE_REMINDERS", "True")

    # Kütüphaneci Doğrulama (harici sistem)
    librarian_id_prefix: str = os.getenv("LIBRARIAN_ID_PREFIX", "L")
    librarian_verification_url: Optional[str] = os.getenv("LIBRARIAN_VERIFICATION_URL")
    librarian_verification_authorization: Optional[str] = os.getenv(
        "LIBRARIAN_VERIFICATION_AUTHORIZATION"
    )
    librarian_verification_timeout: float = float(os.getenv("LIBRARIAN_VERIFICATION_TIMEOUT", "10"))

    # Sayfalama Ayarları
    default_page_size: int = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    max_page_size: int = int(os.getenv("MAX_PAGE_SIZE", "100"))


settings = Settings()
