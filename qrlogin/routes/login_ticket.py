# Login ticket routes: ticket creation, scan/confirm/cancel from the
# mobile app, and status polling (short or long) from the web session.

from datetime import datetime, timezone

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from qrlogin.core.errors import TicketError
from qrlogin.services.broker import LoginBroker, PollResult
from qrlogin.services.lifecycle import Ticket

router = APIRouter(prefix="/login-ticket", tags=["login-ticket"])


class CreateTicketResp(BaseModel):
    ticket_id: str
    expires_at: datetime
    creator_secret: str
    qr_payload: str
    qr_image: str | None = None


class TicketResp(BaseModel):
    ok: bool = True
    state: str


class StatusResp(BaseModel):
    state: str
    version: int
    expires_at: datetime
    session_credential: str | None = None
    subject: str | None = None


def _ts(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


def _http_error(e: TicketError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail)


def get_broker(request: Request) -> LoginBroker:
    return request.app.state.broker


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_optional_identity(request: Request, authorization: str | None = Header(default=None)) -> str | None:
    # Maps the mobile app's bearer credential to the scanner identity
    if authorization is None:
        return None
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Invalid authorization header",
                            headers={"WWW-Authenticate": "Bearer"})
    try:
        return request.app.state.identity_verifier(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired token",
                            headers={"WWW-Authenticate": "Bearer"})


def get_scanner_identity(identity: str | None = Depends(get_optional_identity)) -> str:
    if identity is None:
        raise HTTPException(status_code=401, detail="Missing bearer token",
                            headers={"WWW-Authenticate": "Bearer"})
    return identity


def _status_resp(result: PollResult) -> StatusResp:
    return StatusResp(
        state=result.state.value,
        version=result.version,
        expires_at=_ts(result.expires_at),
        session_credential=result.session_credential,
        subject=result.subject,
    )


def _ticket_resp(ticket: Ticket) -> TicketResp:
    return TicketResp(state=ticket.state.value)


@router.post("", response_model=CreateTicketResp)
def create_ticket(request: Request, image: bool = False, broker: LoginBroker = Depends(get_broker)):
    # Web session asks for a fresh ticket to show as a QR code
    request.app.state.limiter.check(request)
    qr = request.app.state.qr
    ticket = broker.create_ticket()
    payload = qr.build_payload(ticket.id)

    return CreateTicketResp(
        ticket_id=ticket.id,
        expires_at=_ts(ticket.expires_at),
        creator_secret=ticket.creator_secret,
        qr_payload=payload,
        qr_image=qr.create_qr_image(payload) if image else None,
    )


@router.post("/{ticket_id}/scan", response_model=TicketResp)
def scan_ticket(ticket_id: str, identity: str = Depends(get_scanner_identity),
                broker: LoginBroker = Depends(get_broker)):
    try:
        return _ticket_resp(broker.scan_ticket(ticket_id, identity))
    except TicketError as e:
        raise _http_error(e)


@router.post("/{ticket_id}/confirm", response_model=TicketResp)
def confirm_ticket(ticket_id: str, identity: str = Depends(get_scanner_identity),
                   broker: LoginBroker = Depends(get_broker)):
    try:
        return _ticket_resp(broker.confirm_ticket(ticket_id, identity))
    except TicketError as e:
        raise _http_error(e)


@router.post("/{ticket_id}/cancel", response_model=TicketResp)
def cancel_ticket(ticket_id: str, identity: str | None = Depends(get_optional_identity),
                  x_creator_secret: str | None = Header(default=None),
                  broker: LoginBroker = Depends(get_broker)):
    # Either the scanner (bearer) or the web side (creator secret, or nothing while pending)
    try:
        return _ticket_resp(broker.cancel_ticket(ticket_id, identity, x_creator_secret))
    except TicketError as e:
        raise _http_error(e)


@router.get("/{ticket_id}/status", response_model=StatusResp)
async def ticket_status(ticket_id: str, request: Request, wait: bool = False, since: int | None = None,
                        x_creator_secret: str | None = Header(default=None),
                        broker: LoginBroker = Depends(get_broker)):
    # Web session polls; with wait=1 the request is held until the ticket changes
    try:
        if not wait:
            return _status_resp(await run_in_threadpool(broker.poll_status, ticket_id, x_creator_secret))

        result = await request.app.state.poll_channel.wait(
            ticket_id,
            creator_secret=x_creator_secret,
            since_version=since,
            is_disconnected=request.is_disconnected,
        )
    except TicketError as e:
        raise _http_error(e)

    if result is None:
        return Response(status_code=204)
    return _status_resp(result)
