import asyncio
import logging
from typing import Awaitable, Callable

from fastapi.concurrency import run_in_threadpool

from qrlogin.services.broker import LoginBroker, PollResult
from qrlogin.services.lifecycle import Ticket, TicketState

logger = logging.getLogger(__name__)


class PollChannel:
    """
    Long-poll side of the status channel. Holds a status request open until
    the ticket changes, the timeout passes or the client goes away. It only
    reads tickets while waiting; the answer comes from ``poll_status``.
    """

    def __init__(self, broker: LoginBroker, timeout_seconds: float = 25, interval_seconds: float = 0.25):
        self.broker = broker
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds

    @staticmethod
    def _ready(ticket: Ticket, baseline: int) -> bool:
        return ticket.version != baseline or ticket.terminal or ticket.state == TicketState.CONFIRMED

    async def wait(
        self,
        ticket_id: str,
        creator_secret: str | None = None,
        since_version: int | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> PollResult | None:
        """
        Returns the status once something happened, or the unchanged status
        on timeout. Returns None if the client disconnected, in which case
        the credential is left for the next poll.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        # Broker calls may block on audit log writes
        ticket = await run_in_threadpool(self.broker.peek, ticket_id, creator_secret)
        baseline = ticket.version if since_version is None else since_version

        while not self._ready(ticket, baseline):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.interval_seconds, remaining))
            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Long-poll abandoned by client: ticket_id={ticket_id[:8]}")
                return None
            ticket = await run_in_threadpool(self.broker.peek, ticket_id, creator_secret)

        return await run_in_threadpool(self.broker.poll_status, ticket_id, creator_secret)
