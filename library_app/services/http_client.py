import logging
import time
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class HTTPClient:
    """Bağlantı havuzu ve yeniden deneme mantığı ile senkron HTTP istemcisi.

    Doğrulama çağrıları servis katmanında (iş parçacığında) yapıldığından yalnızca
    senkron istemci kullanılır. Testler `transport` ile httpx.MockTransport verir.
    """

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None) -> None:
        limits = httpx.Limits(
            max_keepalive_connections=5,
            max_connections=20,
            keepalive_expiry=30.0,
        )
        self._client = httpx.Client(
            limits=limits,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            follow_redirects=True,
            transport=transport,
        )

    def get(self, url: str, **kwargs) -> httpx.Response:
        return self._client.get(url, **kwargs)

    def get_with_retry(
        self, url: str, retries: int = 2, backoff: float = 0.5, **kwargs
    ) -> Optional[httpx.Response]:
        """Üstel geri çekilme ile GET; tüm denemeler başarısızsa None döner."""
        for attempt in range(retries):
            try:
                return self.get(url, **kwargs)
            except httpx.RequestError as e:
                logger.warning(f"GET {url} failed (attempt {attempt + 1}/{retries}): {e}")
                if attempt < retries - 1:
                    time.sleep(backoff * (2 ** attempt))
        return None

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
