"""
Lightweight psycopg_pool stand-in for unit tests.

Provides ``FakePool`` whose connections understand the small SQL subset used
by ``PostgresCourseStore``: select/insert/update/delete on ``public.courses``
plus the schema DDL. Transactions snapshot the table and restore it when the
block raises, mirroring a rollback. No network or external DB required.
"""
from __future__ import annotations

from contextlib import contextmanager
import copy
import json
from typing import Any, Dict, List

import psycopg


def _unwrap(value: Any) -> Any:
    # psycopg.types.json.Jsonb keeps the wrapped object on `.obj`
    return getattr(value, "obj", value)


def _jsonify(doc: Any) -> Any:
    # Emulate a JSONB round trip: only JSON types survive.
    return json.loads(json.dumps(doc))


class _FakeCursor:
    def __init__(self, pool: "FakePool") -> None:
        self._pool = pool
        self._row = None
        self._rows: List[tuple] = []

    def execute(self, sql: str, params: tuple | list = ()) -> None:
        sql_low = " ".join((sql or "").lower().split())
        self._pool.statements.append(sql_low)
        rows = self._pool.rows
        if sql_low.startswith("create table"):
            self._pool.schema_created = True
            self._row, self._rows = None, []
        elif sql_low.startswith("select doc from public.courses where id = %s"):
            rec = rows.get(params[0])
            self._row = (copy.deepcopy(rec["doc"]),) if rec else None
            self._rows = []
        elif sql_low.startswith("select doc from public.courses"):
            values = list(params)
            offset = values.pop()
            limit = values.pop()
            selected = list(rows.values())
            if "teacher_id = %s" in sql_low:
                teacher_id = values.pop(0)
                selected = [r for r in selected if r["teacher_id"] == teacher_id]
            if "'enrolled_students' ? %s" in sql_low:
                student_id = values.pop(0)
                selected = [r for r in selected if student_id in r["doc"].get("enrolled_students", [])]
            selected.sort(key=lambda r: (r["created_at"], r["id"]), reverse=True)
            self._rows = [(copy.deepcopy(r["doc"]),) for r in selected[offset : offset + limit]]
            self._row = None
        elif sql_low.startswith("insert into public.courses"):
            course_id, teacher_id, doc, created_at, updated_at = params
            if course_id in rows:
                raise psycopg.errors.UniqueViolation("duplicate key value violates unique constraint")
            rows[course_id] = {
                "id": course_id,
                "teacher_id": teacher_id,
                "doc": _jsonify(_unwrap(doc)),
                "created_at": created_at,
                "updated_at": updated_at,
            }
            self._row, self._rows = None, []
        elif sql_low.startswith("update public.courses set doc"):
            doc, updated_at, course_id = params
            rows[course_id]["doc"] = _jsonify(_unwrap(doc))
            rows[course_id]["updated_at"] = updated_at
            self._row, self._rows = None, []
        elif sql_low.startswith("delete from public.courses"):
            rec = rows.pop(params[0], None)
            self._row = (rec["id"],) if rec else None
            self._rows = []
        else:
            raise AssertionError(f"Unexpected SQL in fake pool: {sql}")

    def fetchone(self):
        return self._row

    def fetchall(self):
        return list(self._rows)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _FakeConn:
    def __init__(self, pool: "FakePool") -> None:
        self._pool = pool

    def cursor(self):
        return _FakeCursor(self._pool)

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(self._pool.rows)
        self._pool.transactions += 1
        try:
            yield self
        except BaseException:
            self._pool.rows = snapshot
            self._pool.rollbacks += 1
            raise


class FakePool:
    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.statements: List[str] = []
        self.transactions = 0
        self.rollbacks = 0
        self.schema_created = False
        self.closed = False

    @contextmanager
    def connection(self):
        if self.closed:
            raise psycopg.OperationalError("pool closed")
        yield _FakeConn(self)

    def close(self) -> None:
        self.closed = True
