import asyncio
import logging
from typing import Callable, Iterable, List, Optional

import config
from lifecycle import BookingLifecycle
from schemas import Booking

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodically cancels a session's bookings whose window has closed.

    The sweep only sees the working set returned by ``working_set``; bookings
    no client has loaded are never expired. ``start`` hands back the asyncio
    task so the owning session can tear it down with ``stop``. A cycle waits
    for the previous sweep to finish before sleeping again, so sweeps never
    overlap.
    """

    def __init__(
        self,
        lifecycle: BookingLifecycle,
        working_set: Callable[[], Iterable[Booking]],
        interval: float = config.SWEEP_INTERVAL_SECONDS,
        on_expired: Optional[Callable[[List[str]], None]] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.working_set = working_set
        self.interval = interval
        self.on_expired = on_expired
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> List[str]:
        expired = self.lifecycle.expire_stale(list(self.working_set()))
        self._notify(expired)
        return expired

    def _notify(self, expired: List[str]) -> None:
        if expired and self.on_expired is not None:
            self.on_expired(expired)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                bookings = list(self.working_set())
                # pymongo blocks; keep it off the event loop
                expired = await asyncio.to_thread(self.lifecycle.expire_stale, bookings)
                self._notify(expired)
            except Exception as e:  # pragma: no cover
                logger.error("Expiry sweep error: %s", e, exc_info=True)

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="booking-expiry-sweep")
            logger.info("Expiry sweep started (every %ss)", self.interval)
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Expiry sweep stopped")
