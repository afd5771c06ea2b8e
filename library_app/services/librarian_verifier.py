import logging
from typing import Optional

from library_app.config import settings
from library_app.services.http_client import HTTPClient

logger = logging.getLogger(__name__)


class LibrarianVerifier:
    """Kütüphaneci kimliğini harici sisteme (veya yerel kurala) karşı doğrular.

    URL yapılandırılmamışsa kimlik boş olmamalı ve önekle başlamalıdır.
    URL varsa, Authorization başlığıyla bir GET yapılır; 2xx yanıtı doğrulanmış
    sayılır. Ağ hataları "doğrulanmadı" olarak döner, istisna fırlatılmaz.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        authorization: Optional[str] = None,
        prefix: Optional[str] = None,
        http_client: Optional[HTTPClient] = None,
    ) -> None:
        self.url = url if url is not None else settings.librarian_verification_url
        self.authorization = (
            authorization if authorization is not None else settings.librarian_verification_authorization
        )
        self.prefix = prefix if prefix is not None else settings.librarian_id_prefix
        self._http_client = http_client

    def _client(self) -> HTTPClient:
        if self._http_client is None:
            self._http_client = HTTPClient(timeout=settings.librarian_verification_timeout)
        return self._http_client

    def close(self) -> None:
        """Açık HTTP istemcisini kapatır; sonraki bir doğrulama yenisini açar."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def verify(self, librarian_id: Optional[str]) -> bool:
        if not librarian_id or not librarian_id.strip():
            return False
        librarian_id = librarian_id.strip()

        if not self.url:
            verified = librarian_id.startswith(self.prefix)
            logger.info(f"Librarian id {librarian_id} verified locally: {verified}")
            return verified

        headers = {}
        if self.authorization:
            headers["Authorization"] = self.authorization
        response = self._client().get_with_retry(
            self.url, params={"librarian_id": librarian_id}, headers=headers
        )
        if response is None:
            logger.warning(f"Librarian verification service unreachable for id {librarian_id}")
            return False
        verified = response.is_success
        logger.info(f"Librarian id {librarian_id} verified remotely: {verified} (HTTP {response.status_code})")
        return verified
