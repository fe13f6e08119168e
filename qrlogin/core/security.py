# Security-related helpers: minting the web session credential and
# verifying the mobile app's bearer token.
import secrets
import time
import jwt
from qrlogin.core.config import Settings, settings


def create_access_token(sub: str, audience: str | None = None, extra: dict | None = None,
                        exp_seconds: int | None = None, conf: Settings = settings) -> str:
    now = int(time.time())
    payload = {
        "iss": conf.JWT_ISSUER,
        "aud": audience or conf.JWT_AUDIENCE,
        "iat": now,
        "nbf": now,
        "exp": now + (exp_seconds if exp_seconds is not None else conf.SESSION_TOKEN_TTL_SECONDS),
        "sub": sub,
    }

    if extra:
        payload.update(extra)
    return jwt.encode(payload, conf.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str, audience: str, conf: Settings = settings) -> dict:
    """Raises jwt.InvalidTokenError on a bad signature, audience, issuer or expiry."""
    return jwt.decode(
        token,
        conf.JWT_SECRET,
        algorithms=["HS256"],
        audience=audience,
        issuer=conf.JWT_ISSUER,
        options={"require": ["exp", "sub"]},
    )


class BearerIdentityVerifier:
    """Maps a mobile bearer JWT to the scanner identity (its ``sub`` claim)."""

    def __init__(self, conf: Settings = settings):
        self.conf = conf

    def __call__(self, token: str) -> str:
        claims = decode_access_token(token, audience=self.conf.JWT_MOBILE_AUDIENCE, conf=self.conf)
        return str(claims["sub"])


class SessionCredentialMinter:
    """Issues the browser session credential handed over on confirm."""

    def __init__(self, conf: Settings = settings):
        self.conf = conf

    def __call__(self, identity: str) -> str:
        return create_access_token(identity, audience=self.conf.JWT_AUDIENCE,
                                   extra={"amr": ["qr"], "jti": secrets.token_hex(16)}, conf=self.conf)
