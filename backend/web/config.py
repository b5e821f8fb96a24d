"""
Configuration and startup security checks for CourseHub.

Why: A course platform holds student work and grades; we must prevent
accidental insecure deployments without burdening local development.

`load_app_config()` reads and validates the environment once at startup.
`ensure_secure_config_on_startup()` raises `SystemExit` on fatal
misconfiguration in production-like environments.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Optional

from backend.identity_access.config import AuthConfig, AuthProvider, load_auth_config

logger = logging.getLogger("coursehub.web")

_ENVS = {"dev", "test", "prod"}
_STORES = {"memory", "postgres"}


@dataclass(frozen=True)
class AppConfig:
    env: str = "dev"
    store: str = "memory"
    database_url: Optional[str] = None
    db_pool_min: int = 1
    db_pool_max: int = 10
    db_timeout_seconds: int = 10

    @property
    def is_prod_like(self) -> bool:
        return _is_prod_like(self.env)


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _int_env(name: str, default: int, low: int, high: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < low or value > high:
        raise ValueError(f"{name} out of range ({low}..{high}), got: {value}")
    return value


def load_app_config() -> AppConfig:
    """Parse `COURSEHUB_*` and `DATABASE_URL` into an `AppConfig`.

    Behavior:
        - `COURSEHUB_ENV`: dev | test | prod (also accepts production/staging).
        - `COURSEHUB_STORE`: memory | postgres. Defaults to postgres when a
          `DATABASE_URL` is present, memory otherwise.
        - Pool sizes 1..50 (min <= max), timeout 1..60 seconds.
    """
    env = (os.getenv("COURSEHUB_ENV") or "dev").strip().lower()
    if env not in _ENVS and not _is_prod_like(env):
        raise ValueError("COURSEHUB_ENV must be one of dev, test, prod")
    dsn = (os.getenv("DATABASE_URL") or "").strip() or None
    raw_store = (os.getenv("COURSEHUB_STORE") or "").strip().lower()
    if not raw_store and not dsn and env != "test":
        logger.warning("COURSEHUB_STORE unset and no DATABASE_URL: using the in-memory course store")
    store = raw_store or ("postgres" if dsn else "memory")
    if store not in _STORES:
        raise ValueError("COURSEHUB_STORE must be 'memory' or 'postgres'")
    if store == "postgres" and not dsn:
        raise ValueError("COURSEHUB_STORE=postgres requires DATABASE_URL")
    pool_min = _int_env("COURSEHUB_DB_POOL_MIN", 1, 1, 50)
    pool_max = _int_env("COURSEHUB_DB_POOL_MAX", 10, 1, 50)
    if pool_min > pool_max:
        raise ValueError("COURSEHUB_DB_POOL_MIN must not exceed COURSEHUB_DB_POOL_MAX")
    timeout = _int_env("COURSEHUB_DB_TIMEOUT_SECONDS", 10, 1, 60)
    return AppConfig(
        env=env,
        store=store,
        database_url=dsn,
        db_pool_min=pool_min,
        db_pool_max=pool_max,
        db_timeout_seconds=timeout,
    )


def ensure_secure_config_on_startup(
    config: Optional[AppConfig] = None, auth: Optional[AuthConfig] = None
) -> None:
    """Fail fast on insecure production configuration.

    Checks (prod-like envs only):
    - The in-memory store is not allowed (data would vanish on restart).
    - DATABASE_URL must be set and must not explicitly disable TLS.
    - The in-process session provider is not allowed; the header provider
      requires a shared secret.
    """
    config = config or load_app_config()
    if not config.is_prod_like:
        return  # dev/test remain permissive
    auth = auth or load_auth_config()

    if config.store != "postgres":
        raise SystemExit("Refusing to start: COURSEHUB_STORE=memory is not allowed in production.")

    dsn = config.database_url or ""
    if not dsn:
        raise SystemExit("Refusing to start: DATABASE_URL is unset in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # Sessions live in process memory and nothing in the app issues them.
    if auth.provider is AuthProvider.SESSION:
        raise SystemExit(
            "Refusing to start: COURSEHUB_AUTH_PROVIDER=session is for development only. "
            "Use COURSEHUB_AUTH_PROVIDER=header behind a trusted gateway in production."
        )
    if auth.provider is AuthProvider.HEADER and not auth.header_secret:
        raise SystemExit(
            "Refusing to start: COURSEHUB_AUTH_PROVIDER=header requires COURSEHUB_AUTH_HEADER_SECRET in production."
        )
