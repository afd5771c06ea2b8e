import re
from typing import Optional

from library_app.exceptions import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_PASSWORD_LENGTH = 6
# bcrypt yalnızca ilk 72 baytı kullanır
MAX_PASSWORD_BYTES = 72


class TextValidator:
    """Simple text checks shared by the catalog and identity services."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not str(text).strip()

    @staticmethod
    def require(text: Optional[str], message: str) -> str:
        if TextValidator.is_blank(text):
            raise ValidationError(message)
        return text.strip()

    @staticmethod
    def optional(text: Optional[str]) -> Optional[str]:
        # Boş dizeler "değer verilmedi" olarak ele alınır
        if TextValidator.is_blank(text):
            return None
        return text.strip()

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        return re.sub(r"<[^>]*>", "", text).strip()


class EmailValidator:
    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return bool(_EMAIL_RE.match(email.strip()))

    @staticmethod
    def normalize(email: str) -> str:
        return email.strip().lower()


class PasswordValidator:
    @staticmethod
    def validate(password: Optional[str]) -> str:
        if password is None or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return password


class YearValidator:
    @staticmethod
    def validate(year: Optional[int]) -> Optional[int]:
        if year is None:
            return None
        if year <= 0:
            raise ValidationError("Published year must be a positive number")
        return year
