# HTTP client for the login ticket API. The web side uses it to create a
# ticket and wait for the hand-off; the mobile side to scan, confirm or
# cancel with its own bearer token.

import logging
import time
from datetime import datetime
from typing import Callable

import requests

from qrlogin.services.qr_service import QRService

logger = logging.getLogger(__name__)

TERMINAL = ("cancelled", "expired", "consumed")


class LoginTicketError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class LoginFailed(Exception):
    """The ticket ended without handing a credential to this client."""

    def __init__(self, state: str):
        super().__init__(f"QR login ended in state {state}")
        self.state = state


def _epoch(value: str) -> float:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


class LoginTicketClient:
    def __init__(self, base_url: str = "", http=None, poll_interval: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep, clock: Callable[[], float] = time.time):
        # http: anything with requests-style get/post, e.g. requests.Session
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.clock = clock

    def _url(self, path: str) -> str:
        return f"{self.base_url}/login-ticket{path}"

    @staticmethod
    def _check(resp) -> dict:
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", "")
            except ValueError:
                detail = resp.text
            raise LoginTicketError(resp.status_code, str(detail))
        return resp.json()

    @staticmethod
    def _auth(bearer: str | None = None, creator_secret: str | None = None) -> dict:
        headers = {}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        if creator_secret:
            headers["X-Creator-Secret"] = creator_secret
        return headers

    # Web side

    def create_ticket(self, image: bool = False) -> dict:
        params = {"image": "true"} if image else None
        return self._check(self.http.post(self._url(""), params=params))

    def status(self, ticket_id: str, creator_secret: str | None = None,
               wait: bool = False, since: int | None = None) -> dict:
        params = {}
        if wait:
            params["wait"] = "true"
        if since is not None:
            params["since"] = since
        resp = self.http.get(self._url(f"/{ticket_id}/status"), params=params,
                             headers=self._auth(creator_secret=creator_secret))
        if resp.status_code == 204:
            return {}
        return self._check(resp)

    def wait_for_login(self, ticket: dict, long_poll: bool = False) -> dict:
        """
        Polls until the credential arrives. Raises LoginFailed when the ticket
        is cancelled, expires, was consumed by someone else, or disappears.
        """
        ticket_id = ticket["ticket_id"]
        secret = ticket.get("creator_secret")
        deadline = _epoch(ticket["expires_at"])
        version = None

        while True:
            try:
                data = self.status(ticket_id, secret, wait=long_poll, since=version)
            except LoginTicketError as e:
                if e.status_code == 404:
                    raise LoginFailed("not_found")
                raise

            if data.get("session_credential"):
                logger.info(f"QR login completed for {data.get('subject')}")
                return data
            if data.get("state") in TERMINAL:
                raise LoginFailed(data["state"])
            if self.clock() >= deadline:
                raise LoginFailed("expired")

            version = data.get("version", version)
            if not long_poll:
                self.sleep(self.poll_interval)

    # Mobile side

    def scan(self, qr_payload: str, bearer: str) -> dict:
        ticket_id = QRService.parse_payload(qr_payload)
        return self._check(self.http.post(self._url(f"/{ticket_id}/scan"), headers=self._auth(bearer)))

    def confirm(self, ticket_id: str, bearer: str) -> dict:
        return self._check(self.http.post(self._url(f"/{ticket_id}/confirm"), headers=self._auth(bearer)))

    def cancel(self, ticket_id: str, bearer: str | None = None, creator_secret: str | None = None) -> dict:
        return self._check(self.http.post(self._url(f"/{ticket_id}/cancel"),
                                          headers=self._auth(bearer, creator_secret)))
