"""Servis katmanının fırlattığı tipli hata koşulları.

Her hata, HTTP katmanının doğrudan kullandığı bir durum koduna sahiptir.
Mesajlar insan tarafından okunabilir olmalıdır; testler bu metinleri doğrular.
"""


class LibraryError(Exception):
    """Tüm alan hatalarının temel sınıfı."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    """Başvurulan varlık yok."""

    status_code = 404


class ConflictError(LibraryError):
    """İstek geçerli, ancak mevcut durum işleme izin vermiyor."""

    status_code = 409


class ValidationError(LibraryError):
    """Hatalı girdi."""

    status_code = 400


class AuthenticationError(LibraryError):
    status_code = 401


class ForbiddenError(LibraryError):
    status_code = 403


class ExternalServiceError(LibraryError):
    status_code = 502
