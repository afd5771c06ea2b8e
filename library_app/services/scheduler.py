import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Bildirim kontrolünü sabit aralıklarla çalıştıran asyncio döngüsü.

    Her tur, olay döngüsünü bloklamamak için `asyncio.to_thread` ile bir işçi
    iş parçacığında çalışır. Başarısız bir tur günlüğe yazılır, döngü devam eder.
    """

    def __init__(self, check: Callable[[], Any], interval_seconds: float = 60.0) -> None:
        self.check = check
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> Any:
        """Elle tetikleme: aynı kontrolü senkron olarak çalıştırır."""
        return self.check()

    async def _tick(self) -> None:
        try:
            await asyncio.to_thread(self.check)
        except Exception:
            logger.exception("Scheduled notification check failed")
        finally:
            self.ticks += 1

    async def _run(self) -> None:
        while True:
            await self._tick()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="notification-scheduler")
        logger.info(f"Notification scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Notification scheduler stopped")
