# Error taxonomy for the QR login broker. Each error carries the HTTP
# status the routes translate it to and a public detail message.


class TicketError(Exception):
    status_code = 400
    detail = "Login ticket error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class TicketNotFound(TicketError):
    status_code = 404
    detail = "Login ticket not found"


class AlreadyConsumed(TicketNotFound):
    """The session credential was already claimed. Looks like NotFound to the caller."""


class TicketExpired(TicketError):
    status_code = 410
    detail = "QR code expired, generate a new one"


class Forbidden(TicketError):
    # Deliberately generic: never say which field mismatched
    status_code = 403
    detail = "Operation not permitted"


class Conflict(TicketError):
    status_code = 409
    detail = "Login ticket is no longer in a valid state for this operation"


class Busy(TicketError):
    status_code = 503
    detail = "Login ticket is busy, try again"


class VersionConflict(Exception):
    """Raised by the store when the expected version is stale. Retried by the broker."""

    def __init__(self, ticket_id: str, expected: int, actual: int):
        super().__init__(f"version conflict on {ticket_id[:8]}: expected {expected}, found {actual}")
        self.expected = expected
        self.actual = actual
