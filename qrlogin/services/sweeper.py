import asyncio
import logging

from qrlogin.services.broker import LoginBroker

logger = logging.getLogger(__name__)


class Sweeper:
    """Background task that periodically evicts finished tickets from the store."""

    def __init__(self, broker: LoginBroker, interval_seconds: float = 30):
        self.broker = broker
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.broker.sweep()
            except Exception:
                # One bad pass must not stop future sweeps
                logger.exception("Ticket sweep failed")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())
            logger.info(f"Ticket sweeper started, interval={self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Ticket sweeper stopped")
