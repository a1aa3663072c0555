import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from app.infra.realtime.registry import ConnectionRegistry

logger = structlog.get_logger(__name__)

DEFAULT_REAP_INTERVAL_SECONDS = 5 * 60
DEFAULT_INACTIVITY_THRESHOLD_SECONDS = 30 * 60


class InactivityReaper:
    """Periodically evicts connections that have gone quiet.

    The sweep runs as a task on the hub's event loop, never on a worker
    thread, so it cannot interleave with a message dispatch.
    """

    def __init__(
        self,
        connections: ConnectionRegistry,
        evict: Callable[[str], None],
        interval_seconds: float = DEFAULT_REAP_INTERVAL_SECONDS,
        threshold_seconds: float = DEFAULT_INACTIVITY_THRESHOLD_SECONDS,
    ) -> None:
        self.connections = connections
        self._evict = evict
        self.interval_seconds = interval_seconds
        self.threshold = timedelta(seconds=threshold_seconds)
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="realtime-inactivity-reaper"
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def sweep(self, now: datetime | None = None) -> list[str]:
        now = now or datetime.now(UTC)
        stale = [
            connection.id
            for connection in self.connections.all()
            if now - connection.last_activity > self.threshold
        ]
        for connection_id in stale:
            logger.info("realtime.reaper.evicting", connection_id=connection_id)
            self._evict(connection_id)
        return stale

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                evicted = self.sweep()
            except Exception:
                logger.exception("realtime.reaper.sweep_failed")
                continue
            if evicted:
                logger.info("realtime.reaper.swept", evicted=len(evicted))
