"CourseHub web application"
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
import hmac
import logging
import os
import sys
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
import psycopg

from backend.courses.errors import CourseError
from backend.courses.model import utc_now
from backend.courses.store import CourseStoreProtocol
from backend.identity_access.config import AuthConfig, load_auth_config
from backend.identity_access.domain import Principal
from backend.identity_access.stores import SessionStore
from backend.web.config import AppConfig, ensure_secure_config_on_startup, load_app_config
from backend.web.responses import _json_private, bad_request, error_response
from backend.web.routes.learning import learning_router
from backend.web.routes.teaching import teaching_router
from backend.web.wiring import CourseHub, build_store


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via COURSEHUB_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("COURSEHUB_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

logger = logging.getLogger("coursehub.web")
auth_logger = logging.getLogger("coursehub.identity_access")


def _principal_from_session(request: Request, auth: AuthConfig, sessions: SessionStore) -> Optional[Principal]:
    sid = request.cookies.get(auth.session_cookie_name)
    if not sid:
        return None
    try:
        rec = sessions.get(sid)
    except Exception as exc:
        auth_logger.warning("Session store get failed: %s", exc.__class__.__name__)
        return None
    return rec.principal() if rec else None


def _principal_from_headers(request: Request, auth: AuthConfig) -> Optional[Principal]:
    if auth.header_secret:
        supplied = request.headers.get("X-Auth-Secret", "")
        if not hmac.compare_digest(supplied.encode("utf-8"), auth.header_secret.encode("utf-8")):
            return None
    user_id = (request.headers.get("X-User-Id") or "").strip()
    role = (request.headers.get("X-User-Role") or "").strip().lower()
    if not user_id:
        return None
    try:
        return Principal(id=user_id, role=role)
    except ValueError:
        auth_logger.warning("Rejected forwarded identity with unknown role")
        return None


def create_app(
    config: Optional[AppConfig] = None,
    *,
    store: Optional[CourseStoreProtocol] = None,
    clock: Optional[Callable[[], datetime]] = None,
    auth: Optional[AuthConfig] = None,
    sessions: Optional[SessionStore] = None,
) -> FastAPI:
    """Build the CourseHub application.

    Behavior:
        - With an injected `store` (tests), services are wired immediately.
        - Otherwise the lifespan builds the configured store at startup and
          closes it (and its connection pool) at shutdown.
        - `clock` defaults to the server's UTC clock.
    """
    config = config or load_app_config()
    auth = auth or load_auth_config()
    ensure_secure_config_on_startup(config, auth)
    clock = clock or utc_now
    sessions = sessions or SessionStore(ttl_seconds=auth.session_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.hub is None
        if owned:
            app.state.hub = CourseHub.build(build_store(config), clock)
        try:
            yield
        finally:
            if owned:
                app.state.hub.store.close()
                app.state.hub = None

    app = FastAPI(title="CourseHub", description="Courses, submissions and grading", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.auth = auth
    app.state.sessions = sessions
    app.state.hub = CourseHub.build(store, clock) if store is not None else None

    @app.middleware("http")
    async def resolve_principal(request: Request, call_next):
        # Establish who is calling; authorization happens in the course policy.
        if auth.accepts_header_identity:
            principal = _principal_from_headers(request, auth)
        else:
            principal = _principal_from_session(request, auth, sessions)
        request.state.principal = principal
        return await call_next(request)

    @app.exception_handler(CourseError)
    async def course_error_handler(request: Request, exc: CourseError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return bad_request("invalid_request", "The request is missing required fields or contains invalid values.")

    @app.exception_handler(psycopg.OperationalError)
    async def store_unavailable_handler(request: Request, exc: psycopg.OperationalError):
        logger.warning("store unavailable on %s %s", request.method, request.url.path)
        return _json_private(
            {"error": "store_unavailable", "detail": "store_unavailable", "message": "Please retry shortly."},
            status_code=503,
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _json_private(
            {"error": "internal_error", "detail": "internal_error", "message": "Unexpected server error."},
            status_code=500,
        )

    app.include_router(teaching_router)
    app.include_router(learning_router)

    @app.get("/health")
    async def health_check():
        # Security: include no-store to avoid caching any runtime status.
        return _json_private({"status": "healthy"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.web.main:app", host="0.0.0.0", port=8000)
