# Login ticket record and the state machine governing its transitions
# (scan, confirm, cancel, consume, passive expiry).

import enum
import hmac
import secrets
from dataclasses import dataclass, replace

from qrlogin.core.errors import AlreadyConsumed, Conflict, Forbidden, TicketExpired


class TicketState(str, enum.Enum):
    PENDING = "pending"
    SCANNED = "scanned"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    CONSUMED = "consumed"


TERMINAL_STATES = frozenset({TicketState.CANCELLED, TicketState.EXPIRED, TicketState.CONSUMED})
LIVE_STATES = frozenset({TicketState.PENDING, TicketState.SCANNED})

# Legal edges of the state machine
TRANSITIONS = {
    TicketState.PENDING: {TicketState.SCANNED, TicketState.CANCELLED, TicketState.EXPIRED},
    TicketState.SCANNED: {TicketState.CONFIRMED, TicketState.CANCELLED, TicketState.EXPIRED},
    TicketState.CONFIRMED: {TicketState.CONSUMED},
    TicketState.CANCELLED: set(),
    TicketState.EXPIRED: set(),
    TicketState.CONSUMED: set(),
}


@dataclass(frozen=True)
class Ticket:
    id: str
    created_at: float
    expires_at: float
    creator_secret: str
    state: TicketState = TicketState.PENDING
    scanned_by: str | None = None
    session_credential: str | None = None
    version: int = 0
    observed_at: float | None = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def overdue(self, now: float) -> bool:
        """True when the deadline has passed but the ticket has not been moved to expired yet."""
        return self.state in LIVE_STATES and now >= self.expires_at

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks
        return (f"Ticket(id={self.id[:8]}..., state={self.state.value}, "
                f"version={self.version}, expires_at={self.expires_at})")


def new_ticket(now: float, ttl_seconds: int) -> Ticket:
    return Ticket(
        id=secrets.token_urlsafe(32),
        created_at=now,
        expires_at=now + ttl_seconds,
        creator_secret=secrets.token_urlsafe(24),
    )


def _move(ticket: Ticket, target: TicketState, **changes) -> Ticket:
    if target not in TRANSITIONS[ticket.state]:
        raise Conflict()
    return replace(ticket, state=target, **changes)


def _reject_closed(ticket: Ticket) -> None:
    if ticket.state == TicketState.EXPIRED:
        raise TicketExpired()


def is_creator(ticket: Ticket, creator_secret: str | None) -> bool:
    if not creator_secret:
        return False
    return hmac.compare_digest(ticket.creator_secret, creator_secret)


def expire(ticket: Ticket, now: float) -> Ticket:
    if not ticket.overdue(now):
        raise Conflict()
    return _move(ticket, TicketState.EXPIRED, scanned_by=None)


def scan(ticket: Ticket, identity: str, now: float) -> Ticket:
    """
    Pending -> Scanned. Only one scanner may ever attach, so a repeated scan
    is a Conflict even when it comes from the same identity.
    """
    _reject_closed(ticket)
    if ticket.state != TicketState.PENDING:
        raise Conflict()
    if now >= ticket.expires_at:
        raise TicketExpired()
    return _move(ticket, TicketState.SCANNED, scanned_by=identity)


def can_confirm(ticket: Ticket, identity: str) -> None:
    """Raises the error ``confirm`` would raise, without needing a credential."""
    _reject_closed(ticket)
    if ticket.state != TicketState.SCANNED:
        raise Conflict()
    if not hmac.compare_digest(ticket.scanned_by or "", identity):
        raise Forbidden()


def confirm(ticket: Ticket, identity: str, credential: str) -> Ticket:
    can_confirm(ticket, identity)
    return _move(ticket, TicketState.CONFIRMED, session_credential=credential)


def cancel(ticket: Ticket, identity: str | None = None, creator_secret: str | None = None) -> Ticket:
    """
    Pending tickets may be abandoned by anyone holding the id (the web side
    giving up). Once scanned, only the scanner or the creator may cancel.
    """
    _reject_closed(ticket)
    if ticket.state == TicketState.SCANNED:
        by_scanner = identity is not None and hmac.compare_digest(ticket.scanned_by or "", identity)
        if not (by_scanner or is_creator(ticket, creator_secret)):
            raise Forbidden()
    elif ticket.state != TicketState.PENDING:
        raise Conflict()
    return _move(ticket, TicketState.CANCELLED, scanned_by=None)


def consume(ticket: Ticket) -> Ticket:
    if ticket.state == TicketState.CONSUMED:
        raise AlreadyConsumed()
    _reject_closed(ticket)
    if ticket.state != TicketState.CONFIRMED:
        raise Conflict()
    return _move(ticket, TicketState.CONSUMED, scanned_by=None)


def mark_observed(ticket: Ticket, now: float) -> Ticket:
    """Record the first time a poll saw the terminal state. Not a state transition."""
    if not ticket.terminal or ticket.observed_at is not None:
        raise Conflict()
    return replace(ticket, observed_at=now)


def evictable(ticket: Ticket, now: float, observed_grace: float, eviction_grace: float) -> bool:
    """
    Terminal tickets go once a poll has seen them, or after the eviction grace.
    A confirmed ticket whose credential was never collected goes after the grace too.
    """
    if ticket.state == TicketState.CONFIRMED:
        return now >= ticket.expires_at + eviction_grace
    if not ticket.terminal:
        return False
    if ticket.observed_at is not None and now >= ticket.observed_at + observed_grace:
        return True
    return now >= ticket.expires_at + eviction_grace
