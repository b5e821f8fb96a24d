"""
Postgres-backed course document store.

Design:
- One row per course; the whole course tree lives in a `jsonb` document.
  `teacher_id` and timestamps are mirrored into columns for listing.
- Connections come from one `psycopg_pool.ConnectionPool` created at process
  start and closed at shutdown; the store never opens ad hoc connections.
- Atomic updates lock the course row (`select ... for update`) inside one
  transaction, apply the mutation in Python, and write the document back.
  Concurrent writers on the same course serialize on the row lock, so two
  simultaneous submissions by one student cannot both see "no submission".
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, TypeVar

import psycopg
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from backend.courses.errors import NotFoundError
from backend.courses.model import Course, ItemRef, Submission
from backend.courses.store import clamp_page, submission_in_course

T = TypeVar("T")

logger = logging.getLogger("coursehub.store")

SCHEMA_SQL = """
create table if not exists public.courses (
    id text primary key,
    teacher_id text not null,
    doc jsonb not null,
    created_at timestamptz not null,
    updated_at timestamptz not null
);
create index if not exists courses_teacher_id_idx on public.courses (teacher_id);
create index if not exists courses_enrolled_students_idx
    on public.courses using gin ((doc -> 'enrolled_students'));
"""


def open_pool(dsn: str, *, min_size: int = 1, max_size: int = 10, timeout: float = 10.0) -> ConnectionPool:
    """Create and open the process-wide connection pool."""
    pool = ConnectionPool(conninfo=dsn, min_size=min_size, max_size=max_size, timeout=timeout, open=False)
    pool.open()
    return pool


def init_schema(pool: ConnectionPool) -> None:
    """Create the course table and indexes if they do not exist yet."""
    with pool.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)


class PostgresCourseStore:
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.OperationalError:
            logger.warning("course store unavailable", exc_info=True)
            raise

    def find_course_by_id(self, course_id: str) -> Optional[Course]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute("select doc from public.courses where id = %s", (course_id,))
                row = cur.fetchone()
        return Course.from_doc(row[0]) if row else None

    def insert_course(self, course: Course) -> Course:
        try:
            with self._connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(
                            """
                            insert into public.courses (id, teacher_id, doc, created_at, updated_at)
                            values (%s, %s, %s, %s, %s)
                            """,
                            (course.id, course.teacher_id, Jsonb(course.to_doc()), course.created_at, course.updated_at),
                        )
        except psycopg.errors.UniqueViolation as exc:
            raise ValueError("duplicate_course_id") from exc
        return course

    def delete_course(self, course_id: str) -> bool:
        with self._connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute("delete from public.courses where id = %s returning id", (course_id,))
                    row = cur.fetchone()
        return row is not None

    def update_course_atomic(self, course_id: str, mutate: Callable[[Course], T]) -> T:
        with self._connection() as conn:
            # Any exception below rolls the transaction back, lock included.
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute("select doc from public.courses where id = %s for update", (course_id,))
                    row = cur.fetchone()
                    if row is None:
                        raise NotFoundError("course_not_found")
                    course = Course.from_doc(row[0])
                    result = mutate(course)
                    cur.execute(
                        "update public.courses set doc = %s, updated_at = %s where id = %s",
                        (Jsonb(course.to_doc()), course.updated_at, course_id),
                    )
        return result

    def list_courses(
        self,
        *,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Course]:
        limit, offset = clamp_page(limit, offset)
        clauses: List[str] = []
        params: list = []
        if teacher_id is not None:
            clauses.append("teacher_id = %s")
            params.append(teacher_id)
        if student_id is not None:
            clauses.append("doc -> 'enrolled_students' ? %s")
            params.append(student_id)
        where = f"where {' and '.join(clauses)}" if clauses else ""
        sql = f"select doc from public.courses {where} order by created_at desc, id desc limit %s offset %s"
        params.extend([limit, offset])
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                rows = cur.fetchall()
        return [Course.from_doc(r[0]) for r in rows]

    def find_submission(self, course_id: str, ref: ItemRef, student_id: str) -> Optional[Submission]:
        course = self.find_course_by_id(course_id)
        if course is None:
            raise NotFoundError("course_not_found")
        return submission_in_course(course, ref, student_id)

    def close(self) -> None:
        self._pool.close()


__all__ = ["PostgresCourseStore", "open_pool", "init_schema", "SCHEMA_SQL"]
