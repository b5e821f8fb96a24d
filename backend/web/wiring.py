"""
Composition root: builds the course store and the services on top of it.

Why:
    The store (and, for Postgres, its connection pool) is created exactly once
    per application at startup and closed at shutdown. Routes reach services
    through `request.app.state.hub`; nothing is cached in module globals.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Callable

from fastapi import Request

from backend.courses.model import utc_now
from backend.courses.repo_db import PostgresCourseStore, open_pool
from backend.courses.services.courses import CoursesService
from backend.courses.services.grading import GradingEngine
from backend.courses.services.submissions import SubmissionsService
from backend.courses.store import CourseStoreProtocol, InMemoryCourseStore
from backend.web.config import AppConfig

logger = logging.getLogger("coursehub.web")


@dataclass
class CourseHub:
    store: CourseStoreProtocol
    courses: CoursesService
    submissions: SubmissionsService
    grading: GradingEngine
    clock: Callable[[], datetime]

    @classmethod
    def build(cls, store: CourseStoreProtocol, clock: Callable[[], datetime] = utc_now) -> "CourseHub":
        return cls(
            store=store,
            courses=CoursesService(store=store, clock=clock),
            submissions=SubmissionsService(store=store, clock=clock),
            grading=GradingEngine(store=store, clock=clock),
            clock=clock,
        )


def build_store(config: AppConfig) -> CourseStoreProtocol:
    """Construct the configured store; the Postgres pool is opened here."""
    if config.store == "postgres":
        if not config.database_url:
            raise ValueError("COURSEHUB_STORE=postgres requires DATABASE_URL")
        pool = open_pool(
            config.database_url,
            min_size=config.db_pool_min,
            max_size=config.db_pool_max,
            timeout=float(config.db_timeout_seconds),
        )
        logger.info("course store: postgres (pool %d..%d)", config.db_pool_min, config.db_pool_max)
        return PostgresCourseStore(pool)
    logger.info("course store: in-memory")
    return InMemoryCourseStore()


def get_hub(request: Request) -> CourseHub:
    hub = getattr(request.app.state, "hub", None)
    if hub is None:
        raise RuntimeError("course services are not initialised (application lifespan not started)")
    return hub
