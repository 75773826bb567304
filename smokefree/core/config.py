"""
Configuration helpers for the SmokeFree identity core.

Settings are read once from environment variables so that services and
repositories never touch os.environ directly. Tests build a Settings instance
by hand (or via dataclasses.replace) and pass it in.
"""

from dataclasses import dataclass
from functools import lru_cache
import os
import secrets


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    storage_timeout_seconds: int
    public_base_url: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    jwt_secret: str
    access_token_ttl_seconds: int
    access_token_remember_ttl_seconds: int
    refresh_token_ttl_days: int
    refresh_token_remember_ttl_days: int
    refresh_rotate_on_use: bool
    require_activation: bool
    activation_ttl_seconds: int
    login_lockout_threshold: int
    login_lockout_window_seconds: int
    password_hash_time_cost: int
    password_hash_memory_cost: int
    reconciler_enabled: bool
    reconciler_interval_seconds: int
    reconciler_startup_delay_seconds: int
    trusted_proxies: frozenset = frozenset()


def _int(value: str | None, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _csv(value: str | None) -> frozenset:
    return frozenset(item.strip() for item in (value or "").split(",") if item.strip())


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    app_env = (os.getenv("APP_ENV") or "dev").lower()
    jwt_secret = os.getenv("JWT_SECRET", "")
    if not jwt_secret:
        if app_env == "prod":
            raise RuntimeError("JWT_SECRET must be configured in production.")
        # dev/test only: tokens do not survive a restart
        jwt_secret = secrets.token_urlsafe(48)

    return Settings(
        app_env=app_env,
        database_url=os.getenv("DATABASE_URL", "sqlite:///./smokefree.db"),
        storage_timeout_seconds=_int(os.getenv("STORAGE_TIMEOUT_SECONDS"), 10),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        jwt_secret=jwt_secret,
        access_token_ttl_seconds=_int(os.getenv("ACCESS_TOKEN_TTL_SECONDS"), 3600),
        access_token_remember_ttl_seconds=_int(os.getenv("ACCESS_TOKEN_REMEMBER_TTL_SECONDS"), 86400),
        refresh_token_ttl_days=_int(os.getenv("REFRESH_TOKEN_TTL_DAYS"), 7),
        refresh_token_remember_ttl_days=_int(os.getenv("REFRESH_TOKEN_REMEMBER_TTL_DAYS"), 30),
        refresh_rotate_on_use=_bool(os.getenv("REFRESH_ROTATE_ON_USE"), True),
        require_activation=_bool(os.getenv("REQUIRE_ACTIVATION"), True),
        activation_ttl_seconds=_int(os.getenv("ACTIVATION_TTL_SECONDS"), 86400),
        login_lockout_threshold=_int(os.getenv("LOGIN_LOCKOUT_THRESHOLD"), 5),
        login_lockout_window_seconds=_int(os.getenv("LOGIN_LOCKOUT_WINDOW_SECONDS"), 1800),
        password_hash_time_cost=_int(os.getenv("PASSWORD_HASH_TIME_COST"), 3),
        password_hash_memory_cost=_int(os.getenv("PASSWORD_HASH_MEMORY_COST"), 65536),
        reconciler_enabled=_bool(os.getenv("RECONCILER_ENABLED"), True),
        reconciler_interval_seconds=_int(os.getenv("RECONCILER_INTERVAL_SECONDS"), 86400),
        reconciler_startup_delay_seconds=_int(os.getenv("RECONCILER_STARTUP_DELAY_SECONDS"), 5),
        trusted_proxies=_csv(os.getenv("TRUSTED_PROXIES")),
    )
