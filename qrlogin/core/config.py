# Centralised application configuration
# (environment variables, constants, timeouts).

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in ("0", "false", "no")


class Settings:
    APP_NAME = "QR Login Broker"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    JWT_SECRET = os.getenv("JWT_SECRET", "dev-change-me")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "qr-login-local")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "qr-login-browser")
    JWT_MOBILE_AUDIENCE = os.getenv("JWT_MOBILE_AUDIENCE", "qr-login-mobile")
    SESSION_TOKEN_TTL_SECONDS = int(os.getenv("SESSION_TOKEN_TTL_SECONDS", "900"))

    TICKET_TTL_SECONDS = int(os.getenv("TICKET_TTL_SECONDS", "120"))  # 2 Minutes
    CAS_MAX_RETRIES = int(os.getenv("CAS_MAX_RETRIES", "5"))
    EVICTION_GRACE_SECONDS = int(os.getenv("EVICTION_GRACE_SECONDS", "60"))
    OBSERVED_GRACE_SECONDS = int(os.getenv("OBSERVED_GRACE_SECONDS", "5"))
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "30"))

    POLL_MIN_INTERVAL_MS = int(os.getenv("POLL_MIN_INTERVAL_MS", "1000"))
    LONG_POLL_TIMEOUT_SECONDS = int(os.getenv("LONG_POLL_TIMEOUT_SECONDS", "25"))
    LONG_POLL_INTERVAL_MS = int(os.getenv("LONG_POLL_INTERVAL_MS", "250"))

    # Poll and creator-cancel must present the secret handed out at creation
    REQUIRE_CREATOR_BINDING = _flag("REQUIRE_CREATOR_BINDING", "true")

    QR_LINK_BASE = os.getenv("QR_LINK_BASE", "qrlogin://qr-login")

    RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
    MAX_REQUESTS_PER_MINUTE = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "30"))

    AUDIT_LOG_FILE = os.getenv("AUDIT_LOG_FILE", "")


settings = Settings()
