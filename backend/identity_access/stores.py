"""
In-memory session store for development and tests.

Why: Cookies carry only an opaque session id; the principal behind it stays
server-side. For production, replace with a shared store (Redis/DB).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
import secrets
import threading
import time

from backend.identity_access.domain import Principal, primary_role


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    name: str
    roles: list[str]
    expires_at: Optional[int] = None

    def principal(self) -> Optional[Principal]:
        role = primary_role(self.roles)
        if role is None:
            return None
        return Principal(id=self.sub, role=role)


class SessionStore:
    def __init__(self, ttl_seconds: int = 3600):
        self._data: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds

    def create(
        self, *, sub: str, name: str = "", roles: list[str], ttl_seconds: Optional[int] = None
    ) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        ttl = ttl_seconds or self._ttl
        rec = SessionRecord(session_id=sid, sub=sub, name=name, roles=list(roles), expires_at=_now() + ttl)
        with self._lock:
            self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            rec = self._data.get(session_id)
            if not rec:
                return None
            if rec.expires_at and rec.expires_at < _now():
                self._data.pop(session_id, None)
                return None
            return rec

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)
