import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from qrlogin.core.errors import (
    AlreadyConsumed, Busy, Conflict, Forbidden, TicketError, TicketNotFound, VersionConflict,
)
from qrlogin.db import TicketStore
from qrlogin.services import lifecycle
from qrlogin.services.lifecycle import Ticket, TicketState
from qrlogin.services.logger import AuditLog

"""LoginBroker: Handles the QR login handshake between the web session and the mobile app"""


logger = logging.getLogger(__name__)


def _short(ticket_id: str) -> str:
    return ticket_id[:8]


@dataclass(frozen=True)
class PollResult:
    state: TicketState
    version: int
    expires_at: float
    session_credential: str | None = field(default=None, repr=False)
    subject: str | None = None


class LoginBroker:
    def __init__(
        self,
        store: TicketStore,
        mint_credential: Callable[[str], str],
        ttl_seconds: int = 120,
        max_retries: int = 5,
        clock: Callable[[], float] = time.time,
        require_creator_binding: bool = False,
        observed_grace: float = 5,
        eviction_grace: float = 60,
        audit: AuditLog | None = None,
    ):
        self.store = store
        self.mint_credential = mint_credential
        self.ttl_seconds = ttl_seconds
        self.max_retries = max_retries
        self.clock = clock
        self.require_creator_binding = require_creator_binding
        self.observed_grace = observed_grace
        self.eviction_grace = eviction_grace
        self.audit = audit

    def _record(self, event: str, ticket_id: str, outcome: str, started: float) -> None:
        if self.audit is not None:
            self.audit.log_event(event, ticket_id, outcome, int((time.monotonic() - started) * 1000))

    def _peek(self, ticket_id: str, now: float) -> Ticket:
        """Read a ticket, first moving it to expired if its deadline has passed."""
        for _ in range(self.max_retries):
            ticket = self.store.get(ticket_id)
            if not ticket.overdue(now):
                return ticket
            try:
                ticket = self.store.compare_and_swap(ticket_id, ticket.version, lambda t: lifecycle.expire(t, now))
            except VersionConflict:
                continue
            logger.info(f"Ticket expired: ticket_id={_short(ticket_id)}")
            self._record("expire", ticket_id, "ok", time.monotonic())
            return ticket
        raise Busy()

    def _apply(self, event: str, ticket_id: str, step: Callable[[Ticket, float], Ticket]) -> Ticket:
        """
        Run ``step`` against the current ticket through compare-and-swap,
        re-reading and retrying when another caller got there first.
        """
        started = time.monotonic()
        try:
            for attempt in range(self.max_retries):
                now = self.clock()
                ticket = self._peek(ticket_id, now)
                try:
                    updated = self.store.compare_and_swap(ticket_id, ticket.version, lambda t: step(t, now))
                except VersionConflict:
                    logger.debug(f"{event} lost a race: ticket_id={_short(ticket_id)}, attempt={attempt + 1}")
                    continue
                self._record(event, ticket_id, "ok", started)
                return updated
            logger.warning(f"{event} gave up after {self.max_retries} attempts: ticket_id={_short(ticket_id)}")
            raise Busy()
        except TicketError as e:
            self._rejected(event, ticket_id, e, started)
            raise

    def _rejected(self, event: str, ticket_id: str, error: TicketError, started: float) -> None:
        logger.warning(f"{event} rejected: ticket_id={_short(ticket_id)}, reason={type(error).__name__}")
        self._record(event, ticket_id, type(error).__name__, started)

    def _check_creator(self, ticket: Ticket, creator_secret: str | None) -> None:
        if self.require_creator_binding and not lifecycle.is_creator(ticket, creator_secret):
            logger.warning(f"Creator check failed: ticket_id={_short(ticket.id)}")
            raise Forbidden()

    def create_ticket(self) -> Ticket:
        """
        Mints a new pending ticket. The returned record carries the
        creator secret, which only the web session should ever see.
        """
        started = time.monotonic()
        ticket = lifecycle.new_ticket(self.clock(), self.ttl_seconds)
        self.store.create(ticket)
        logger.info(f"Ticket created: ticket_id={_short(ticket.id)}, ttl={self.ttl_seconds}s")
        self._record("create", ticket.id, "ok", started)
        return ticket

    def scan_ticket(self, ticket_id: str, identity: str) -> Ticket:
        ticket = self._apply("scan", ticket_id, lambda t, now: lifecycle.scan(t, identity, now))
        logger.info(f"Ticket scanned: ticket_id={_short(ticket_id)}, user={identity}")
        return ticket

    def confirm_ticket(self, ticket_id: str, identity: str) -> Ticket:
        # Validate before minting so a rejected confirm never creates a credential
        started = time.monotonic()
        try:
            lifecycle.can_confirm(self._peek(ticket_id, self.clock()), identity)
        except TicketError as e:
            self._rejected("confirm", ticket_id, e, started)
            raise
        credential = self.mint_credential(identity)
        ticket = self._apply("confirm", ticket_id, lambda t, now: lifecycle.confirm(t, identity, credential))
        logger.info(f"Ticket confirmed: ticket_id={_short(ticket_id)}, user={identity}")
        return ticket

    def cancel_ticket(self, ticket_id: str, identity: str | None = None,
                      creator_secret: str | None = None) -> Ticket:
        ticket = self._apply("cancel", ticket_id,
                             lambda t, now: lifecycle.cancel(t, identity, creator_secret))
        logger.info(f"Ticket cancelled: ticket_id={_short(ticket_id)}, by={identity or 'creator'}")
        return ticket

    def consume(self, ticket_id: str) -> str:
        """Claims the session credential. Works once; afterwards raises AlreadyConsumed."""
        ticket = self._apply("consume", ticket_id, lambda t, now: lifecycle.consume(t))
        logger.info(f"Credential handed off: ticket_id={_short(ticket_id)}")
        return ticket.session_credential

    def peek(self, ticket_id: str, creator_secret: str | None = None) -> Ticket:
        """Current ticket after the passive expiry check. Never hands off the credential."""
        ticket = self._peek(ticket_id, self.clock())
        self._check_creator(ticket, creator_secret)
        return ticket

    def poll_status(self, ticket_id: str, creator_secret: str | None = None) -> PollResult:
        ticket = self.peek(ticket_id, creator_secret)

        if ticket.state == TicketState.CONFIRMED:
            subject = ticket.scanned_by
            try:
                credential = self.consume(ticket_id)
            except AlreadyConsumed:
                # A concurrent poll won the hand-off
                ticket = self.store.get(ticket_id)
            else:
                ticket = self._observe(self.store.get(ticket_id))
                return PollResult(
                    state=ticket.state,
                    version=ticket.version,
                    expires_at=ticket.expires_at,
                    session_credential=credential,
                    subject=subject,
                )

        ticket = self._observe(ticket)
        return PollResult(state=ticket.state, version=ticket.version, expires_at=ticket.expires_at)

    def _observe(self, ticket: Ticket) -> Ticket:
        """Stamp the first poll that sees a terminal state so the sweeper can drop the ticket."""
        if not ticket.terminal or ticket.observed_at is not None:
            return ticket
        now = self.clock()
        try:
            return self.store.compare_and_swap(ticket.id, ticket.version, lambda t: lifecycle.mark_observed(t, now))
        except (VersionConflict, Conflict):
            # Someone else stamped or swapped it first; their record wins
            return self.store.get(ticket.id)

    def sweep(self) -> int:
        """Evict observed terminal tickets and anything settled past the eviction grace."""
        now = self.clock()
        evicted = 0
        for ticket in self.store.snapshot():
            if ticket.overdue(now):
                try:
                    ticket = self._peek(ticket.id, now)
                except (TicketNotFound, Busy):
                    continue
            if not lifecycle.evictable(ticket, now, self.observed_grace, self.eviction_grace):
                continue
            if self.store.evict(ticket.id, expected_version=ticket.version):
                evicted += 1
        if evicted:
            logger.info(f"Sweep evicted {evicted} tickets, {len(self.store)} remain")
        return evicted
