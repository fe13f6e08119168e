# FastAPI application entry point that wires the ticket store, broker
# and poll channel together and registers the API routes.

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from qrlogin.core.config import Settings, settings
from qrlogin.core.security import BearerIdentityVerifier, SessionCredentialMinter
from qrlogin.db import TicketStore
from qrlogin.routes.login_ticket import router as login_ticket_router
from qrlogin.services.broker import LoginBroker
from qrlogin.services.limiter import RateLimiter
from qrlogin.services.logger import AuditLog
from qrlogin.services.poll_channel import PollChannel
from qrlogin.services.qr_service import QRService
from qrlogin.services.sweeper import Sweeper

logger = logging.getLogger(__name__)


def create_app(conf: Settings = settings, clock: Callable[[], float] = time.time) -> FastAPI:
    logging.basicConfig(level=conf.LOG_LEVEL)

    store = TicketStore()
    broker = LoginBroker(
        store,
        mint_credential=SessionCredentialMinter(conf),
        ttl_seconds=conf.TICKET_TTL_SECONDS,
        max_retries=conf.CAS_MAX_RETRIES,
        clock=clock,
        require_creator_binding=conf.REQUIRE_CREATOR_BINDING,
        observed_grace=conf.OBSERVED_GRACE_SECONDS,
        eviction_grace=conf.EVICTION_GRACE_SECONDS,
        audit=AuditLog(conf.AUDIT_LOG_FILE) if conf.AUDIT_LOG_FILE else None,
    )
    sweeper = Sweeper(broker, interval_seconds=conf.SWEEP_INTERVAL_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(title=conf.APP_NAME, lifespan=lifespan)
    app.state.store = store
    app.state.broker = broker
    app.state.sweeper = sweeper
    app.state.poll_channel = PollChannel(
        broker,
        timeout_seconds=conf.LONG_POLL_TIMEOUT_SECONDS,
        interval_seconds=conf.LONG_POLL_INTERVAL_MS / 1000,
    )
    app.state.qr = QRService(conf.QR_LINK_BASE)
    app.state.limiter = RateLimiter(conf.MAX_REQUESTS_PER_MINUTE, enabled=conf.RATE_LIMIT_ENABLED, clock=clock)
    app.state.identity_verifier = BearerIdentityVerifier(conf)
    app.include_router(login_ticket_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    logger.info(f"{conf.APP_NAME} ready: ticket_ttl={conf.TICKET_TTL_SECONDS}s, "
                f"creator_binding={conf.REQUIRE_CREATOR_BINDING}")
    return app


app = create_app()
