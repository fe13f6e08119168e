# In-memory ticket store. compare_and_swap is the only way a stored
# ticket changes; each swap is atomic per ticket id.

import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, List

from qrlogin.core.errors import TicketNotFound, VersionConflict
from qrlogin.services.lifecycle import Ticket

logger = logging.getLogger(__name__)


class TicketStore:
    def __init__(self):
        # ticket_id -> Ticket (frozen, replaced wholesale on every swap)
        self._tickets: Dict[str, Ticket] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._tickets)

    def create(self, ticket: Ticket) -> str:
        with self._lock:
            if ticket.id in self._tickets:
                raise ValueError("Ticket id already in use")
            self._tickets[ticket.id] = ticket
        return ticket.id

    def get(self, ticket_id: str) -> Ticket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFound()
        return ticket

    def compare_and_swap(self, ticket_id: str, expected_version: int,
                         mutate: Callable[[Ticket], Ticket]) -> Ticket:
        """
        Apply ``mutate`` to the stored ticket if its version still equals
        ``expected_version``. The stored version is bumped by one; whatever
        version ``mutate`` returns is ignored. Errors raised by ``mutate``
        propagate and leave the record untouched.
        """
        with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None:
                raise TicketNotFound()
            if current.version != expected_version:
                raise VersionConflict(ticket_id, expected_version, current.version)
            updated = replace(mutate(current), id=current.id, version=current.version + 1)
            self._tickets[ticket_id] = updated
            return updated

    def evict(self, ticket_id: str, expected_version: int | None = None) -> bool:
        """Remove a ticket. With ``expected_version`` the removal only happens if nothing swapped it since."""
        with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None:
                return False
            if expected_version is not None and current.version != expected_version:
                return False
            del self._tickets[ticket_id]
        logger.debug(f"Ticket evicted: ticket_id={ticket_id[:8]}")
        return True

    def snapshot(self) -> List[Ticket]:
        with self._lock:
            return list(self._tickets.values())
