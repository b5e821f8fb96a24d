"""
Typed authentication configuration.

Why:
    The web layer needs to know how a request's principal is established.
    Instead of an untyped settings blob, the provider is an explicit enum and
    each capability is a named check.

Providers:
    - session: opaque session cookie resolved through the in-process store;
      development and tests only (refused in production at startup).
    - header: a trusted gateway forwards `X-User-Id` / `X-User-Role`, proven
      by the shared secret in `X-Auth-Secret`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import os
from typing import Optional


class AuthProvider(str, Enum):
    SESSION = "session"
    HEADER = "header"


SESSION_COOKIE_NAME = "coursehub_session"


@dataclass(frozen=True)
class AuthConfig:
    provider: AuthProvider = AuthProvider.SESSION
    header_secret: Optional[str] = None
    session_cookie_name: str = SESSION_COOKIE_NAME
    session_ttl_seconds: int = 3600

    @property
    def uses_session_cookie(self) -> bool:
        return self.provider is AuthProvider.SESSION

    @property
    def accepts_header_identity(self) -> bool:
        return self.provider is AuthProvider.HEADER


def load_auth_config() -> AuthConfig:
    """Parse `COURSEHUB_AUTH_*` variables.

    Behavior:
        - `COURSEHUB_AUTH_PROVIDER`: "session" (default) or "header".
        - `COURSEHUB_AUTH_HEADER_SECRET`: shared secret for the header provider.
        - `COURSEHUB_SESSION_TTL_SECONDS`: 60..86400 (default 3600).
    """
    raw = (os.getenv("COURSEHUB_AUTH_PROVIDER") or "session").strip().lower()
    try:
        provider = AuthProvider(raw)
    except ValueError:
        raise ValueError("COURSEHUB_AUTH_PROVIDER must be 'session' or 'header'")
    secret = (os.getenv("COURSEHUB_AUTH_HEADER_SECRET") or "").strip() or None
    raw_ttl = os.getenv("COURSEHUB_SESSION_TTL_SECONDS")
    ttl = 3600
    if raw_ttl is not None:
        try:
            ttl = int(raw_ttl)
        except ValueError:
            raise ValueError(f"COURSEHUB_SESSION_TTL_SECONDS must be an integer, got: {raw_ttl!r}")
        if ttl < 60 or ttl > 86400:
            raise ValueError(f"COURSEHUB_SESSION_TTL_SECONDS out of range (60..86400), got: {ttl}")
    return AuthConfig(provider=provider, header_secret=secret, session_ttl_seconds=ttl)


__all__ = ["AuthProvider", "AuthConfig", "SESSION_COOKIE_NAME", "load_auth_config"]
