"""
Course aggregate: structural rules and in-place mutations.

Why:
    Every change to a course document goes through one of these functions
    while the store holds the document for an atomic update. The functions
    validate first and mutate last, so a raised error leaves the document
    untouched and the store discards the write.

Permissions are not checked here; see `backend.courses.policy`.
"""
from __future__ import annotations

import hmac
import math
from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import Any, Dict, List, Optional, Sequence

from backend.courses.errors import (
    AlreadyEnrolledError,
    InvalidKeyError,
    NotFoundError,
    ValidationError,
)
from backend.courses.model import (
    Assignment,
    Chapter,
    Course,
    FileRef,
    Item,
    ItemKind,
    ItemRef,
    Lesson,
    Question,
    Quiz,
    SubmittableItem,
    parse_datetime,
)

_UNSET = object()

MAX_TITLE_LENGTH = 200
MAX_KEY_LENGTH = 128
QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer")


# --- normalisers ------------------------------------------------------------


def _normalize_title(value: object, field_name: str = "title") -> str:
    if value is None or not isinstance(value, str):
        raise ValidationError(f"invalid_{field_name}")
    trimmed = value.strip()
    if not trimmed or len(trimmed) > MAX_TITLE_LENGTH:
        raise ValidationError(f"invalid_{field_name}")
    return trimmed


def _normalize_required_text(value: object, field_name: str) -> str:
    if value is None or not isinstance(value, str):
        raise ValidationError(f"invalid_{field_name}")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"invalid_{field_name}")
    return trimmed


def _normalize_optional_text(value: object, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"invalid_{field_name}")
    return value.strip()


def _normalize_enrollment_key(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("invalid_enrollment_key")
    trimmed = value.strip()
    if len(trimmed) > MAX_KEY_LENGTH:
        raise ValidationError("invalid_enrollment_key")
    # An empty key means "no key".
    return trimmed or None


def _normalize_points(value: object, field_name: str = "total_points") -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"invalid_{field_name}")
    # NaN and infinities cannot be stored as JSON.
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"invalid_{field_name}")
    return value  # type: ignore[return-value]


def _normalize_duration(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError("invalid_duration")
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError("invalid_duration") from exc
    if minutes < 1:
        raise ValidationError("invalid_duration")
    return minutes


def _normalize_window(start: object, end: object) -> tuple[datetime, datetime]:
    start_dt = parse_datetime(start, "start_date_time")
    end_dt = parse_datetime(end, "end_date_time")
    if not start_dt < end_dt:
        raise ValidationError("invalid_window", "The start must lie before the end.")
    return start_dt, end_dt


def normalize_file(value: object) -> FileRef:
    """Validate `{name, url, type}` metadata of an already-uploaded file."""
    if isinstance(value, FileRef):
        raw: Dict[str, Any] = value.to_doc()
    elif isinstance(value, dict):
        raw = value
    else:
        raise ValidationError("invalid_file")
    name = raw.get("name")
    url = raw.get("url")
    ftype = raw.get("type")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("invalid_file_name")
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("invalid_file_url")
    if ftype is not None and not isinstance(ftype, str):
        raise ValidationError("invalid_file_type")
    return FileRef(name=name.strip(), url=url.strip(), type=(ftype or "").strip() or None)


def normalize_files(value: object) -> List[FileRef]:
    if value is None:
        return []
    if isinstance(value, (str, dict)) or not isinstance(value, Sequence):
        raise ValidationError("invalid_files")
    return [normalize_file(item) for item in value]


def _optional_file(value: object) -> Optional[FileRef]:
    return normalize_file(value) if value is not None else None


def _require_mapping(payload: object, field_name: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError(f"invalid_{field_name}")
    return payload


# --- builders ----------------------------------------------------------------


def build_lesson(payload: object) -> Lesson:
    data = _require_mapping(payload, "lesson")
    return Lesson(
        title=_normalize_title(data.get("title")),
        content=_normalize_required_text(data.get("content"), "content"),
        file=_optional_file(data.get("file")),
    )


def build_assignment(payload: object) -> Assignment:
    data = _require_mapping(payload, "assignment")
    start, end = _normalize_window(data.get("start_date_time"), data.get("end_date_time"))
    points = data.get("total_points")
    return Assignment(
        title=_normalize_title(data.get("title")),
        content=_normalize_optional_text(data.get("content"), "content"),
        start_date_time=start,
        end_date_time=end,
        total_points=100 if points is None else _normalize_points(points),
        file=_optional_file(data.get("file")),
    )


def build_question(payload: object) -> Question:
    data = _require_mapping(payload, "question")
    text = _normalize_required_text(data.get("text"), "question_text")
    qtype = data.get("type") or "multiple_choice"
    if qtype not in QUESTION_TYPES:
        raise ValidationError("invalid_question_type")
    raw_points = data.get("points")
    points = 1 if raw_points is None else _normalize_points(raw_points, "question_points")
    raw_options = data.get("options") or []
    if isinstance(raw_options, str) or not isinstance(raw_options, Sequence):
        raise ValidationError("invalid_question_options")
    options = [_normalize_required_text(o, "question_options") for o in raw_options]
    answer = data.get("correct_answer")
    if qtype == "multiple_choice":
        if len(options) < 2:
            raise ValidationError("invalid_question_options")
        if isinstance(answer, bool) or not isinstance(answer, int) or not 0 <= answer < len(options):
            raise ValidationError("invalid_correct_answer")
    elif qtype == "true_false":
        if not isinstance(answer, bool):
            raise ValidationError("invalid_correct_answer")
        options = []
    else:
        answer = _normalize_required_text(answer, "correct_answer")
        options = []
    return Question(text=text, type=qtype, options=options, correct_answer=answer, points=points)


def build_quiz(payload: object) -> Quiz:
    data = _require_mapping(payload, "quiz")
    start, end = _normalize_window(data.get("start_date_time"), data.get("end_date_time"))
    raw_questions = data.get("questions") or []
    if isinstance(raw_questions, (str, dict)) or not isinstance(raw_questions, Sequence):
        raise ValidationError("invalid_questions")
    questions = [build_question(q) for q in raw_questions]
    points = data.get("total_points")
    total = _normalize_points(sum(q.points for q in questions) if points is None else points)
    return Quiz(
        title=_normalize_title(data.get("title")),
        description=_normalize_optional_text(data.get("description"), "description"),
        duration=_normalize_duration(data.get("duration")),
        total_points=total,
        start_date_time=start,
        end_date_time=end,
        questions=questions,
        file=_optional_file(data.get("file")),
    )


_BUILDERS = {
    ItemKind.LESSON: build_lesson,
    ItemKind.ASSIGNMENT: build_assignment,
    ItemKind.QUIZ: build_quiz,
}


def build_chapter(payload: object) -> Chapter:
    """Build a chapter from a title string or a mapping with nested items."""
    if isinstance(payload, str):
        return Chapter(title=_normalize_title(payload))
    data = _require_mapping(payload, "chapter")
    chapter = Chapter(title=_normalize_title(data.get("title")))
    for kind in ItemKind:
        raw = data.get(kind.collection) or []
        if isinstance(raw, (str, dict)) or not isinstance(raw, Sequence):
            raise ValidationError(f"invalid_{kind.collection}")
        chapter.items(kind).extend(_BUILDERS[kind](item) for item in raw)
    chapter.files.extend(normalize_files(data.get("files")))
    return chapter


# --- course ------------------------------------------------------------------


def create_course(
    *,
    course_id: str,
    teacher_id: str,
    title: object,
    description: object,
    chapters: object,
    enrollment_key: object = None,
    now: datetime,
) -> Course:
    """Build a new course with an empty roster.

    `chapters` must be present; an empty list is a valid course outline.
    """
    if not teacher_id:
        raise ValidationError("invalid_teacher_id")
    if chapters is None or isinstance(chapters, (str, dict)) or not isinstance(chapters, Sequence):
        raise ValidationError("invalid_chapters")
    return Course(
        id=course_id,
        title=_normalize_title(title),
        description=_normalize_required_text(description, "description"),
        teacher_id=teacher_id,
        enrollment_key=_normalize_enrollment_key(enrollment_key),
        chapters=[build_chapter(c) for c in chapters],
        created_at=now,
        updated_at=now,
    )


def update_course(
    course: Course,
    *,
    title: object = _UNSET,
    description: object = _UNSET,
    enrollment_key: object = _UNSET,
    teacher_id: object = _UNSET,
) -> Course:
    if teacher_id is not _UNSET and teacher_id != course.teacher_id:
        raise ValidationError("teacher_id_immutable", "The course owner cannot be changed.")
    changes: Dict[str, Any] = {}
    if title is not _UNSET:
        changes["title"] = _normalize_title(title)
    if description is not _UNSET:
        changes["description"] = _normalize_required_text(description, "description")
    if enrollment_key is not _UNSET:
        changes["enrollment_key"] = _normalize_enrollment_key(enrollment_key)
    for name, value in changes.items():
        setattr(course, name, value)
    return course


# --- chapters ----------------------------------------------------------------


def get_chapter(course: Course, chapter_index: int) -> Chapter:
    if isinstance(chapter_index, bool) or not isinstance(chapter_index, int):
        raise NotFoundError("chapter_not_found")
    if not 0 <= chapter_index < len(course.chapters):
        raise NotFoundError("chapter_not_found")
    return course.chapters[chapter_index]


def add_chapter(course: Course, title: object) -> Chapter:
    chapter = Chapter(title=_normalize_title(title))
    course.chapters.append(chapter)
    return chapter


def rename_chapter(course: Course, chapter_index: int, title: object) -> Chapter:
    chapter = get_chapter(course, chapter_index)
    chapter.title = _normalize_title(title)
    return chapter


def delete_chapter(course: Course, chapter_index: int) -> Chapter:
    """Remove a chapter; every later chapter moves down one position.

    Positional references to later chapters now address different content.
    Stable item ids are unaffected.
    """
    get_chapter(course, chapter_index)
    return course.chapters.pop(chapter_index)


# --- items -------------------------------------------------------------------


@dataclass
class ResolvedItem:
    kind: ItemKind
    chapter_index: int
    item_index: int
    item: Item


def _get_item(course: Course, kind: ItemKind, chapter_index: int, item_index: int) -> Item:
    items = get_chapter(course, chapter_index).items(kind)
    if isinstance(item_index, bool) or not isinstance(item_index, int):
        raise NotFoundError(f"{kind.value}_not_found")
    if not 0 <= item_index < len(items):
        raise NotFoundError(f"{kind.value}_not_found")
    return items[item_index]


def resolve_item(course: Course, ref: ItemRef) -> ResolvedItem:
    if ref.positional:
        if ref.kind is None:
            raise ValidationError("invalid_item_kind")
        item = _get_item(course, ref.kind, ref.chapter_index, ref.item_index)  # type: ignore[arg-type]
        return ResolvedItem(ref.kind, ref.chapter_index, ref.item_index, item)  # type: ignore[arg-type]
    kinds = [ref.kind] if ref.kind is not None else list(ItemKind)
    for ci, chapter in enumerate(course.chapters):
        for kind in kinds:
            for ii, item in enumerate(chapter.items(kind)):
                if item.id == ref.item_id:
                    return ResolvedItem(kind, ci, ii, item)
    raise NotFoundError("item_not_found")


def resolve_submittable(course: Course, ref: ItemRef) -> ResolvedItem:
    resolved = resolve_item(course, ref)
    if not resolved.kind.submittable:
        raise ValidationError("item_not_submittable", "Lessons do not accept submissions.")
    return resolved


def add_item(course: Course, chapter_index: int, kind: ItemKind, payload: object) -> Item:
    chapter = get_chapter(course, chapter_index)
    item = _BUILDERS[kind](payload)
    chapter.items(kind).append(item)
    return item


def add_lesson(course: Course, chapter_index: int, payload: object) -> Lesson:
    return add_item(course, chapter_index, ItemKind.LESSON, payload)  # type: ignore[return-value]


def add_assignment(course: Course, chapter_index: int, payload: object) -> Assignment:
    return add_item(course, chapter_index, ItemKind.ASSIGNMENT, payload)  # type: ignore[return-value]


def add_quiz(course: Course, chapter_index: int, payload: object) -> Quiz:
    return add_item(course, chapter_index, ItemKind.QUIZ, payload)  # type: ignore[return-value]


def update_lesson(
    course: Course,
    ref: ItemRef,
    *,
    title: object = _UNSET,
    content: object = _UNSET,
) -> Lesson:
    resolved = resolve_item(course, ref)
    if resolved.kind is not ItemKind.LESSON:
        raise NotFoundError("lesson_not_found")
    lesson: Lesson = resolved.item  # type: ignore[assignment]
    new_title = _normalize_title(title) if title is not _UNSET else lesson.title
    new_content = _normalize_required_text(content, "content") if content is not _UNSET else lesson.content
    lesson.title = new_title
    lesson.content = new_content
    return lesson


def _highest_score(item: SubmittableItem) -> Optional[float]:
    scores = [s.score for s in item.submissions if s.score is not None]
    return max(scores) if scores else None


def update_assignment(
    course: Course,
    ref: ItemRef,
    *,
    title: object = _UNSET,
    content: object = _UNSET,
    start_date_time: object = _UNSET,
    end_date_time: object = _UNSET,
    total_points: object = _UNSET,
) -> Assignment:
    resolved = resolve_item(course, ref)
    if resolved.kind is not ItemKind.ASSIGNMENT:
        raise NotFoundError("assignment_not_found")
    assignment: Assignment = resolved.item  # type: ignore[assignment]
    new_title = _normalize_title(title) if title is not _UNSET else assignment.title
    new_content = (
        _normalize_optional_text(content, "content") if content is not _UNSET else assignment.content
    )
    start, end = _normalize_window(
        assignment.start_date_time if start_date_time is _UNSET else start_date_time,
        assignment.end_date_time if end_date_time is _UNSET else end_date_time,
    )
    points = assignment.total_points
    if total_points is not _UNSET:
        points = _normalize_points(total_points)
        highest = _highest_score(assignment)
        if highest is not None and points < highest:
            raise ValidationError(
                "total_points_below_existing_score",
                "Total points cannot drop below a score that was already given.",
            )
    assignment.title = new_title
    assignment.content = new_content
    assignment.start_date_time = start
    assignment.end_date_time = end
    assignment.total_points = points
    return assignment


def delete_item(course: Course, ref: ItemRef) -> Item:
    """Remove a lesson, assignment or quiz together with its submissions."""
    resolved = resolve_item(course, ref)
    items = course.chapters[resolved.chapter_index].items(resolved.kind)
    return items.pop(resolved.item_index)


# --- enrollment --------------------------------------------------------------


def _keys_match(expected: str, supplied: object) -> bool:
    if not isinstance(supplied, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.strip().encode("utf-8"))


def enroll(course: Course, student_id: str, supplied_key: object = None) -> Course:
    if not student_id:
        raise ValidationError("invalid_student_id")
    if student_id in course.enrolled_students:
        raise AlreadyEnrolledError()
    if course.enrollment_key is not None and not _keys_match(course.enrollment_key, supplied_key):
        raise InvalidKeyError()
    course.enrolled_students.append(student_id)
    return course


def unenroll(course: Course, student_id: str) -> bool:
    """Remove a student from the roster. Returns False when nothing changed."""
    if student_id not in course.enrolled_students:
        return False
    course.enrolled_students = [s for s in course.enrolled_students if s != student_id]
    return True


# --- files -------------------------------------------------------------------


def add_course_file(course: Course, file: object) -> FileRef:
    ref = normalize_file(file)
    course.files.append(ref)
    return ref


def remove_course_file(course: Course, file_index: int) -> FileRef:
    if isinstance(file_index, bool) or not isinstance(file_index, int):
        raise NotFoundError("file_not_found")
    if not 0 <= file_index < len(course.files):
        raise NotFoundError("file_not_found")
    return course.files.pop(file_index)


def add_chapter_file(course: Course, chapter_index: int, file: object) -> FileRef:
    chapter = get_chapter(course, chapter_index)
    ref = normalize_file(file)
    chapter.files.append(ref)
    return ref


def attach_item_file(course: Course, ref: ItemRef, file: object) -> Item:
    resolved = resolve_item(course, ref)
    resolved.item.file = normalize_file(file)
    return resolved.item


def file_stats(course: Course) -> Dict[str, Any]:
    """Count attached files by where they hang; computed, never stored."""
    by_type = {"course": len(course.files), "chapter": 0, "lesson": 0, "assignment": 0, "quiz": 0}
    for chapter in course.chapters:
        by_type["chapter"] += len(chapter.files)
        for kind in ItemKind:
            by_type[kind.value] += sum(1 for item in chapter.items(kind) if item.file is not None)
    return {"total_files": sum(by_type.values()), "by_type": by_type}


# --- projections -------------------------------------------------------------


def list_assignments(course: Course) -> List[Dict[str, Any]]:
    """Flat, read-only view of every assignment keyed by its position."""
    rows: List[Dict[str, Any]] = []
    for ci, chapter in enumerate(course.chapters):
        for ii, assignment in enumerate(chapter.assignments):
            rows.append(
                {
                    "course_id": course.id,
                    "chapter_index": ci,
                    "item_index": ii,
                    "id": assignment.id,
                    "title": assignment.title,
                    "description": assignment.content,
                    "start_date_time": assignment.start_date_time.isoformat(),
                    "end_date_time": assignment.end_date_time.isoformat(),
                    "total_points": assignment.total_points,
                    "submission_count": len(assignment.submissions),
                }
            )
    return rows
