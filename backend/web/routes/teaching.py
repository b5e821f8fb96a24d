"""
Teaching API routes: course authoring, roster, submission review and grading.

Why:
    Keep the HTTP adapter thin. Handlers translate path/body into service
    calls; the services authorize against the stored course and apply every
    change atomically. Typed course errors propagate to the app-level handler
    which maps them to `{"error", "detail", "message"}` with a status code.

Notes:
    - Payload models accept raw values (including empty strings) so the
      domain validation decides and answers 400 with a precise `detail`.
    - Every response is `Cache-Control: private, no-store`.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from backend.courses.model import ItemKind, ItemRef
from backend.courses.views import course_view, grade_view, submission_view
from backend.identity_access.domain import Principal
from backend.web.responses import _json_private, _no_content
from backend.web.wiring import get_hub

teaching_router = APIRouter(tags=["Teaching"])  # explicit paths below


# --- Request models ------------------------------------------------------------


class FilePayload(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None


class CourseCreatePayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    enrollment_key: Optional[str] = None
    chapters: Optional[List[Any]] = None


class CourseUpdatePayload(BaseModel):
    # Accept raw strings (including empty) and validate in the domain to return 400
    title: Optional[str] = None
    description: Optional[str] = None
    enrollment_key: Optional[str] = None
    teacher_id: Optional[str] = None


class ChapterPayload(BaseModel):
    title: Optional[str] = None


class LessonCreatePayload(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    file: Optional[FilePayload] = None


class LessonUpdatePayload(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None


class AssignmentCreatePayload(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    start_date_time: Optional[str] = None
    end_date_time: Optional[str] = None
    total_points: Optional[Union[int, float]] = None
    file: Optional[FilePayload] = None


class AssignmentUpdatePayload(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    start_date_time: Optional[str] = None
    end_date_time: Optional[str] = None
    total_points: Optional[Union[int, float]] = None


class QuestionPayload(BaseModel):
    text: Optional[str] = None
    type: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[Union[bool, int, str]] = None
    points: Optional[Union[int, float]] = None


class QuizCreatePayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[int] = None
    total_points: Optional[Union[int, float]] = None
    start_date_time: Optional[str] = None
    end_date_time: Optional[str] = None
    questions: List[QuestionPayload] = Field(default_factory=list)
    file: Optional[FilePayload] = None


class GradePayload(BaseModel):
    score: Optional[Union[int, float]] = None
    feedback: Optional[str] = None

    @field_validator("feedback")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class CourseGradePayload(BaseModel):
    student_id: Optional[str] = None
    grade: Optional[Union[int, float, str]] = None
    feedback: Optional[str] = None


# --- helpers -------------------------------------------------------------------


def _principal(request: Request) -> Optional[Principal]:
    return getattr(request.state, "principal", None)


def _changes(payload: BaseModel) -> Dict[str, Any]:
    """Only the fields the client actually sent (partial update semantics)."""
    return {name: getattr(payload, name) for name in payload.model_fields_set}


def _owner_view(request: Request, course) -> Dict[str, Any]:
    hub = get_hub(request)
    return course_view(course, _principal(request), hub.clock())  # type: ignore[arg-type]


def _item_doc(item, ref: ItemRef) -> Dict[str, Any]:
    doc = item.to_doc()
    doc["kind"] = ref.kind.value if ref.kind else None
    return doc


# --- courses -------------------------------------------------------------------


@teaching_router.get("/api/courses")
async def list_my_courses(request: Request, limit: int = 50, offset: int = 0):
    """List the caller's courses: owned ones for teachers, enrolled ones for students.

    Behavior:
        - 200 with a list of course summaries (newest first)
        - 401 without a principal
    """
    hub = get_hub(request)
    principal = _principal(request)
    if principal is not None and principal.role == "student":
        rows = hub.courses.list_courses_for_student(principal, limit=limit, offset=offset)
    else:
        rows = hub.courses.list_courses_for_teacher(principal, limit=limit, offset=offset)
    return _json_private(rows)


@teaching_router.post("/api/courses")
async def create_course(request: Request, payload: CourseCreatePayload):
    """Create a new course (teacher or admin).

    Behavior:
        - 201 with the full course document
        - 400 when title, description or chapters are missing or invalid
        - 403 when the caller lacks the teacher role

    Permissions:
        Owner becomes the caller; `teacher_id` is never taken from the body.
    """
    hub = get_hub(request)
    course = hub.courses.create_course(
        _principal(request),
        title=payload.title,
        description=payload.description,
        chapters=payload.chapters,
        enrollment_key=payload.enrollment_key,
    )
    return _json_private(_owner_view(request, course), status_code=201)


@teaching_router.patch("/api/courses/{course_id}")
async def update_course(request: Request, course_id: str, payload: CourseUpdatePayload):
    hub = get_hub(request)
    course = hub.courses.update_course(_principal(request), course_id, **_changes(payload))
    return _json_private(_owner_view(request, course))


@teaching_router.delete("/api/courses/{course_id}")
async def delete_course(request: Request, course_id: str):
    """Delete a course and everything beneath it (owner only)."""
    get_hub(request).courses.delete_course(_principal(request), course_id)
    return _no_content()


# --- chapters --------------------------------------------------------------------


@teaching_router.post("/api/courses/{course_id}/chapters")
async def add_chapter(request: Request, course_id: str, payload: ChapterPayload):
    course = get_hub(request).courses.add_chapter(_principal(request), course_id, payload.title)
    return _json_private(_owner_view(request, course), status_code=201)


@teaching_router.patch("/api/courses/{course_id}/chapters/{chapter_index}")
async def rename_chapter(request: Request, course_id: str, chapter_index: int, payload: ChapterPayload):
    course = get_hub(request).courses.rename_chapter(_principal(request), course_id, chapter_index, payload.title)
    return _json_private(_owner_view(request, course))


@teaching_router.delete("/api/courses/{course_id}/chapters/{chapter_index}")
async def delete_chapter(request: Request, course_id: str, chapter_index: int):
    """Remove a chapter; later chapters shift down by one position."""
    course = get_hub(request).courses.delete_chapter(_principal(request), course_id, chapter_index)
    return _json_private(_owner_view(request, course))


@teaching_router.post("/api/courses/{course_id}/chapters/{chapter_index}/files")
async def add_chapter_file(request: Request, course_id: str, chapter_index: int, payload: FilePayload):
    ref = get_hub(request).courses.add_chapter_file(
        _principal(request), course_id, chapter_index, payload.model_dump()
    )
    return _json_private(ref.to_doc(), status_code=201)


# --- chapter items -------------------------------------------------------------


def _add_item(request: Request, course_id: str, chapter_index: int, kind: ItemKind, payload: BaseModel):
    item = get_hub(request).courses.add_item(
        _principal(request), course_id, chapter_index, kind, payload.model_dump(exclude_none=True)
    )
    doc = item.to_doc()
    doc["kind"] = kind.value
    return _json_private(doc, status_code=201)


@teaching_router.post("/api/courses/{course_id}/chapters/{chapter_index}/lessons")
async def add_lesson(request: Request, course_id: str, chapter_index: int, payload: LessonCreatePayload):
    return _add_item(request, course_id, chapter_index, ItemKind.LESSON, payload)


@teaching_router.post("/api/courses/{course_id}/chapters/{chapter_index}/assignments")
async def add_assignment(request: Request, course_id: str, chapter_index: int, payload: AssignmentCreatePayload):
    return _add_item(request, course_id, chapter_index, ItemKind.ASSIGNMENT, payload)


@teaching_router.post("/api/courses/{course_id}/chapters/{chapter_index}/quizzes")
async def add_quiz(request: Request, course_id: str, chapter_index: int, payload: QuizCreatePayload):
    """Add a quiz. `total_points` defaults to the sum of question points."""
    return _add_item(request, course_id, chapter_index, ItemKind.QUIZ, payload)


@teaching_router.patch("/api/courses/{course_id}/chapters/{chapter_index}/lessons/{item_index}")
async def update_lesson(
    request: Request, course_id: str, chapter_index: int, item_index: int, payload: LessonUpdatePayload
):
    ref = ItemRef.at(ItemKind.LESSON, chapter_index, item_index)
    item = get_hub(request).courses.update_lesson(_principal(request), course_id, ref, **_changes(payload))
    return _json_private(_item_doc(item, ref))


@teaching_router.patch("/api/courses/{course_id}/chapters/{chapter_index}/assignments/{item_index}")
async def update_assignment(
    request: Request, course_id: str, chapter_index: int, item_index: int, payload: AssignmentUpdatePayload
):
    """Edit an assignment; the window and points are validated again.

    Behavior:
        - 400 when start is not before end
        - 400 when total points would drop below a score already given
    """
    ref = ItemRef.at(ItemKind.ASSIGNMENT, chapter_index, item_index)
    item = get_hub(request).courses.update_assignment(_principal(request), course_id, ref, **_changes(payload))
    return _json_private(_item_doc(item, ref))


@teaching_router.delete("/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}")
async def delete_item(request: Request, course_id: str, chapter_index: int, kind: str, item_index: int):
    ref = ItemRef.at(kind, chapter_index, item_index)
    course = get_hub(request).courses.delete_item(_principal(request), course_id, ref)
    return _json_private(_owner_view(request, course))


@teaching_router.put("/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}/file")
async def attach_item_file(
    request: Request, course_id: str, chapter_index: int, kind: str, item_index: int, payload: FilePayload
):
    ref = ItemRef.at(kind, chapter_index, item_index)
    item = get_hub(request).courses.attach_item_file(_principal(request), course_id, ref, payload.model_dump())
    return _json_private(_item_doc(item, ref))


# --- course files ----------------------------------------------------------------


@teaching_router.post("/api/courses/{course_id}/files")
async def add_course_file(request: Request, course_id: str, payload: FilePayload):
    ref = get_hub(request).courses.add_course_file(_principal(request), course_id, payload.model_dump())
    return _json_private(ref.to_doc(), status_code=201)


@teaching_router.delete("/api/courses/{course_id}/files/{file_index}")
async def remove_course_file(request: Request, course_id: str, file_index: int):
    ref = get_hub(request).courses.remove_course_file(_principal(request), course_id, file_index)
    return _json_private(ref.to_doc())


# --- roster & projections ----------------------------------------------------------


@teaching_router.get("/api/courses/{course_id}/students")
async def list_students(request: Request, course_id: str):
    """Roster of enrolled students (owner only)."""
    return _json_private(get_hub(request).courses.list_students(_principal(request), course_id))


@teaching_router.delete("/api/courses/{course_id}/students/{student_id}")
async def remove_student(request: Request, course_id: str, student_id: str):
    """Owner removes a student; removing an absent student is a no-op."""
    get_hub(request).courses.unenroll(_principal(request), course_id, student_id)
    return _no_content()


@teaching_router.get("/api/courses/{course_id}/assignments")
async def list_assignments(request: Request, course_id: str):
    """Flat assignment list keyed by (chapter_index, item_index) plus stable id."""
    return _json_private(get_hub(request).courses.list_assignments(_principal(request), course_id))


# --- submissions review & grading -----------------------------------------------------


def _list_submissions(request: Request, course_id: str, ref: ItemRef):
    subs = get_hub(request).submissions.list_submissions(_principal(request), course_id, ref)
    return _json_private([submission_view(s) for s in subs])


def _get_submission(request: Request, course_id: str, ref: ItemRef, student_id: str):
    sub = get_hub(request).submissions.get_submission(_principal(request), course_id, ref, student_id)
    return _json_private(submission_view(sub))


def _grade(request: Request, course_id: str, ref: ItemRef, student_id: str, payload: GradePayload):
    sub = get_hub(request).grading.grade(
        _principal(request), course_id, ref, student_id, score=payload.score, feedback=payload.feedback
    )
    return _json_private(submission_view(sub))


@teaching_router.get("/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}/submissions")
async def list_submissions(request: Request, course_id: str, chapter_index: int, kind: str, item_index: int):
    return _list_submissions(request, course_id, ItemRef.at(kind, chapter_index, item_index))


@teaching_router.get(
    "/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}/submissions/{student_id}"
)
async def get_submission(
    request: Request, course_id: str, chapter_index: int, kind: str, item_index: int, student_id: str
):
    """Owner reads any student's submission; a student only their own."""
    return _get_submission(request, course_id, ItemRef.at(kind, chapter_index, item_index), student_id)


@teaching_router.put(
    "/api/courses/{course_id}/chapters/{chapter_index}/{kind}/{item_index}/submissions/{student_id}/grade"
)
async def grade_submission(
    request: Request,
    course_id: str,
    chapter_index: int,
    kind: str,
    item_index: int,
    student_id: str,
    payload: GradePayload,
):
    """Grade a submission (owning teacher only).

    Behavior:
        - 200 with the graded submission; grading again overwrites
        - 400 `out_of_range` when the score is outside [0, total_points]
        - 404 when the student has not submitted
    """
    return _grade(request, course_id, ItemRef.at(kind, chapter_index, item_index), student_id, payload)


@teaching_router.get("/api/courses/{course_id}/items/{item_id}/submissions")
async def list_submissions_by_id(request: Request, course_id: str, item_id: str):
    return _list_submissions(request, course_id, ItemRef.by_id(item_id))


@teaching_router.get("/api/courses/{course_id}/items/{item_id}/submissions/{student_id}")
async def get_submission_by_id(request: Request, course_id: str, item_id: str, student_id: str):
    return _get_submission(request, course_id, ItemRef.by_id(item_id), student_id)


@teaching_router.put("/api/courses/{course_id}/items/{item_id}/submissions/{student_id}/grade")
async def grade_submission_by_id(
    request: Request, course_id: str, item_id: str, student_id: str, payload: GradePayload
):
    return _grade(request, course_id, ItemRef.by_id(item_id), student_id, payload)


# --- course-level grade ledger ---------------------------------------------------------


@teaching_router.put("/api/courses/{course_id}/grades")
async def upsert_course_grade(request: Request, course_id: str, payload: CourseGradePayload):
    """Insert or update one student's course-level grade (owner only).

    Independent from submission scores; neither updates the other.
    """
    entry = get_hub(request).grading.upsert_grade(
        _principal(request),
        course_id,
        payload.student_id or "",
        grade=payload.grade,
        feedback=payload.feedback,
    )
    return _json_private(grade_view(entry))
