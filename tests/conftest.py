import pytest
from fastapi.testclient import TestClient

from qrlogin.core.config import Settings
from qrlogin.core.security import SessionCredentialMinter, create_access_token
from qrlogin.db import TicketStore
from qrlogin.main import create_app
from qrlogin.services.broker import LoginBroker


class FakeClock:
    """Manually advanced clock so expiry can be tested without sleeping."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_settings(**overrides) -> Settings:
    conf = Settings()
    conf.RATE_LIMIT_ENABLED = False
    conf.LONG_POLL_TIMEOUT_SECONDS = 1
    conf.LONG_POLL_INTERVAL_MS = 20
    for name, value in overrides.items():
        setattr(conf, name, value)
    return conf


def mobile_token(user: str, conf: Settings) -> str:
    return create_access_token(user, audience=conf.JWT_MOBILE_AUDIENCE, conf=conf)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return TicketStore()


@pytest.fixture
def broker(store, clock):
    return LoginBroker(store, mint_credential=SessionCredentialMinter(Settings()), ttl_seconds=120, clock=clock)


@pytest.fixture
def conf():
    return make_settings()


@pytest.fixture
def app(conf, clock):
    return create_app(conf, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def alice(conf):
    return {"Authorization": f"Bearer {mobile_token('alice', conf)}"}


@pytest.fixture
def bob(conf):
    return {"Authorization": f"Bearer {mobile_token('bob', conf)}"}
