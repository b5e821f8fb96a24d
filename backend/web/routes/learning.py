"""
Learning API routes: catalog, course detail, enrollment, submissions, grades.

Why:
    Students discover courses, enroll (with the course key when one is set),
    read the course in their role-shaped view, and submit work inside the
    item's time window. Errors propagate as typed course errors.
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.courses.model import ItemRef
from backend.courses.policy import require_principal
from backend.courses.views import grade_view, submission_view
from backend.identity_access.domain import Principal
from backend.web.responses import _json_private, _no_content
from backend.web.routes.teaching import FilePayload
from backend.web.wiring import get_hub

learning_router = APIRouter(tags=["Learning"])


class EnrollPayload(BaseModel):
    enrollment_key: Optional[str] = None


class SubmissionPayload(BaseModel):
    content: Optional[str] = None
    files: Optional[List[FilePayload]] = None


def _principal(request: Request) -> Optional[Principal]:
    return getattr(request.state, "principal", None)


@learning_router.get("/api/catalog")
async def list_catalog(request: Request, limit: int = 50, offset: int = 0):
    """Public course catalog; no secrets, no roster, no principal required."""
    return _json_private(get_hub(request).courses.list_catalog(limit=limit, offset=offset))


@learning_router.get("/api/courses/{course_id}")
async def get_course(request: Request, course_id: str):
    """Course detail shaped by role.

    Behavior:
        - 200 full document for the owner
        - 200 trimmed view with per-item status for an enrolled student
        - 401 without principal, 403 when neither owner nor enrolled, 404 unknown id
    """
    return _json_private(get_hub(request).courses.get_course_view(_principal(request), course_id))


@learning_router.get("/api/courses/{course_id}/files/stats")
async def file_stats(request: Request, course_id: str):
    return _json_private(get_hub(request).courses.file_stats(_principal(request), course_id))


@learning_router.post("/api/courses/{course_id}/enrollment")
async def enroll(request: Request, course_id: str, payload: Optional[EnrollPayload] = None):
    """Enroll the caller.

    Behavior:
        - 201 with `{course_id, student_id, enrolled: true}`
        - 403 `invalid_enrollment_key` on a wrong or missing key
        - 409 `already_enrolled` when the caller is already on the roster
    """
    principal = require_principal(_principal(request))
    key = payload.enrollment_key if payload is not None else None
    get_hub(request).courses.enroll(principal, course_id, key)
    return _json_private({"course_id": course_id, "student_id": principal.id, "enrolled": True}, status_code=201)


@learning_router.delete("/api/courses/{course_id}/enrollment")
async def unenroll(request: Request, course_id: str):
    """Leave a course; leaving a course one is not enrolled in is a no-op."""
    get_hub(request).courses.unenroll(_principal(request), course_id)
    return _no_content()


def _submit(request: Request, course_id: str, ref: ItemRef, payload: SubmissionPayload):
    files = [f.model_dump() for f in payload.files] if payload.files is not None else None
    sub = get_hub(request).submissions.submit(
        _principal(request), course_id, ref, content=payload.content, files=files
    )
    return _json_private(submission_view(sub), status_code=201)


def _status(request: Request, course_id: str, ref: ItemRef, student_id: Optional[str]):
    view = get_hub(request).submissions.status_view(_principal(request), course_id, ref, student_id)
    return _json_private(view)


@learning_router.post("/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}/submissions")
async def submit(
    request: Request, course_id: str, chapter_index: int, kind: str, item_index: int, payload: SubmissionPayload
):
    """Submit work for an assignment or quiz (enrolled students only).

    Behavior:
        - 201 with the stored submission
        - 409 `duplicate_submission` on a second attempt
        - 409 `window_not_open` / `window_closed` outside the inclusive window
        - 400 when neither content nor files are given
    """
    return _submit(request, course_id, ItemRef.at(kind, chapter_index, item_index), payload)


@learning_router.get("/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}/status")
async def item_status(
    request: Request,
    course_id: str,
    chapter_index: int,
    kind: str,
    item_index: int,
    student_id: Optional[str] = None,
):
    return _status(request, course_id, ItemRef.at(kind, chapter_index, item_index), student_id)


@learning_router.post("/api/courses/{course_id}/items/{item_id}/submissions")
async def submit_by_id(request: Request, course_id: str, item_id: str, payload: SubmissionPayload):
    return _submit(request, course_id, ItemRef.by_id(item_id), payload)


@learning_router.get("/api/courses/{course_id}/items/{item_id}/status")
async def item_status_by_id(request: Request, course_id: str, item_id: str, student_id: Optional[str] = None):
    return _status(request, course_id, ItemRef.by_id(item_id), student_id)


@learning_router.get("/api/courses/{course_id}/grades")
async def list_grades(request: Request, course_id: str):
    """Course-level grades: the whole ledger for the owner, the own entry for a student."""
    entries = get_hub(request).grading.list_grades(_principal(request), course_id)
    return _json_private([grade_view(e) for e in entries])
