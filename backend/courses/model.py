"""
Course document model.

A Course is one self-contained document: chapters, their lessons,
assignments and quizzes, the submissions on those items, the roster and
the course-level grade ledger all live inside it. Nothing nested has an
identity outside its course.

Documents are plain JSON-compatible dicts (`to_doc` / `from_doc`) so the
same shape can live in memory or in a Postgres JSONB column. Timestamps are
timezone-aware UTC datetimes in memory and ISO-8601 strings in documents.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from backend.courses.errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def parse_datetime(value: object, field_name: str) -> datetime:
    """Parse an aware datetime or ISO string and normalise it to UTC.

    Naive values are rejected: window checks compare against the server's
    UTC clock and a naive timestamp has no defined offset.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(f"invalid_{field_name}") from exc
    else:
        raise ValidationError(f"invalid_{field_name}")
    if parsed.tzinfo is None:
        raise ValidationError(f"invalid_{field_name}")
    return parsed.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value).astimezone(timezone.utc)


class ItemKind(str, Enum):
    LESSON = "lesson"
    ASSIGNMENT = "assignment"
    QUIZ = "quiz"

    @property
    def collection(self) -> str:
        return {"lesson": "lessons", "assignment": "assignments", "quiz": "quizzes"}[self.value]

    @property
    def submittable(self) -> bool:
        return self is not ItemKind.LESSON

    @classmethod
    def parse(cls, value: object) -> "ItemKind":
        raw = str(value or "").strip().lower()
        # Accept the plural path segment form as well ("quizzes").
        for kind in cls:
            if raw in (kind.value, kind.collection):
                return kind
        raise ValidationError("invalid_item_kind")


@dataclass
class FileRef:
    name: str
    url: str
    type: Optional[str] = None

    def to_doc(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url, "type": self.type}

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "FileRef":
        return cls(name=doc.get("name") or "", url=doc.get("url") or "", type=doc.get("type"))


def _file_or_none(doc: Optional[Dict[str, Any]]) -> Optional[FileRef]:
    return FileRef.from_doc(doc) if doc else None


@dataclass
class Submission:
    student_id: str
    submitted_at: datetime
    content: Optional[str] = None
    files: List[FileRef] = field(default_factory=list)
    score: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    def to_doc(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "submitted_at": _iso(self.submitted_at),
            "content": self.content,
            "files": [f.to_doc() for f in self.files],
            "score": self.score,
            "feedback": self.feedback,
            "graded_at": _iso(self.graded_at),
            "graded_by": self.graded_by,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Submission":
        return cls(
            student_id=doc["student_id"],
            submitted_at=_dt(doc["submitted_at"]),  # type: ignore[arg-type]
            content=doc.get("content"),
            files=[FileRef.from_doc(f) for f in doc.get("files") or []],
            score=doc.get("score"),
            feedback=doc.get("feedback"),
            graded_at=_dt(doc.get("graded_at")),
            graded_by=doc.get("graded_by"),
        )


@dataclass
class Lesson:
    title: str
    content: str
    file: Optional[FileRef] = None
    id: str = field(default_factory=new_id)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "file": self.file.to_doc() if self.file else None,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Lesson":
        return cls(
            id=doc.get("id") or new_id(),
            title=doc.get("title") or "",
            content=doc.get("content") or "",
            file=_file_or_none(doc.get("file")),
        )


@dataclass
class Assignment:
    title: str
    content: str
    start_date_time: datetime
    end_date_time: datetime
    total_points: float = 100
    file: Optional[FileRef] = None
    submissions: List[Submission] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "start_date_time": _iso(self.start_date_time),
            "end_date_time": _iso(self.end_date_time),
            "total_points": self.total_points,
            "file": self.file.to_doc() if self.file else None,
            "submissions": [s.to_doc() for s in self.submissions],
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Assignment":
        return cls(
            id=doc.get("id") or new_id(),
            title=doc.get("title") or "",
            content=doc.get("content") or "",
            start_date_time=_dt(doc["start_date_time"]),  # type: ignore[arg-type]
            end_date_time=_dt(doc["end_date_time"]),  # type: ignore[arg-type]
            total_points=doc.get("total_points", 100),
            file=_file_or_none(doc.get("file")),
            submissions=[Submission.from_doc(s) for s in doc.get("submissions") or []],
        )


@dataclass
class Question:
    text: str
    type: str = "multiple_choice"
    options: List[str] = field(default_factory=list)
    correct_answer: Any = None
    points: float = 1
    id: str = field(default_factory=new_id)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "points": self.points,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Question":
        return cls(
            id=doc.get("id") or new_id(),
            text=doc.get("text") or "",
            type=doc.get("type") or "multiple_choice",
            options=list(doc.get("options") or []),
            correct_answer=doc.get("correct_answer"),
            points=doc.get("points", 1),
        )


@dataclass
class Quiz:
    title: str
    description: str
    duration: int
    total_points: float
    start_date_time: datetime
    end_date_time: datetime
    questions: List[Question] = field(default_factory=list)
    file: Optional[FileRef] = None
    submissions: List[Submission] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "total_points": self.total_points,
            "start_date_time": _iso(self.start_date_time),
            "end_date_time": _iso(self.end_date_time),
            "questions": [q.to_doc() for q in self.questions],
            "file": self.file.to_doc() if self.file else None,
            "submissions": [s.to_doc() for s in self.submissions],
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Quiz":
        return cls(
            id=doc.get("id") or new_id(),
            title=doc.get("title") or "",
            description=doc.get("description") or "",
            duration=int(doc.get("duration") or 0),
            total_points=doc.get("total_points", 0),
            start_date_time=_dt(doc["start_date_time"]),  # type: ignore[arg-type]
            end_date_time=_dt(doc["end_date_time"]),  # type: ignore[arg-type]
            questions=[Question.from_doc(q) for q in doc.get("questions") or []],
            file=_file_or_none(doc.get("file")),
            submissions=[Submission.from_doc(s) for s in doc.get("submissions") or []],
        )


Item = Union[Lesson, Assignment, Quiz]
SubmittableItem = Union[Assignment, Quiz]


@dataclass
class Chapter:
    title: str
    lessons: List[Lesson] = field(default_factory=list)
    assignments: List[Assignment] = field(default_factory=list)
    quizzes: List[Quiz] = field(default_factory=list)
    files: List[FileRef] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def items(self, kind: ItemKind) -> list:
        return getattr(self, kind.collection)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "lessons": [x.to_doc() for x in self.lessons],
            "assignments": [x.to_doc() for x in self.assignments],
            "quizzes": [x.to_doc() for x in self.quizzes],
            "files": [f.to_doc() for f in self.files],
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Chapter":
        return cls(
            id=doc.get("id") or new_id(),
            title=doc.get("title") or "",
            lessons=[Lesson.from_doc(x) for x in doc.get("lessons") or []],
            assignments=[Assignment.from_doc(x) for x in doc.get("assignments") or []],
            quizzes=[Quiz.from_doc(x) for x in doc.get("quizzes") or []],
            files=[FileRef.from_doc(f) for f in doc.get("files") or []],
        )


@dataclass
class GradeEntry:
    student_id: str
    grade: Union[float, str]
    feedback: Optional[str]
    updated_at: datetime

    def to_doc(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "grade": self.grade,
            "feedback": self.feedback,
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "GradeEntry":
        return cls(
            student_id=doc["student_id"],
            grade=doc.get("grade"),  # type: ignore[arg-type]
            feedback=doc.get("feedback"),
            updated_at=_dt(doc["updated_at"]),  # type: ignore[arg-type]
        )


@dataclass
class Course:
    id: str
    title: str
    description: str
    teacher_id: str
    created_at: datetime
    updated_at: datetime
    enrollment_key: Optional[str] = None
    chapters: List[Chapter] = field(default_factory=list)
    enrolled_students: List[str] = field(default_factory=list)
    files: List[FileRef] = field(default_factory=list)
    grades: List[GradeEntry] = field(default_factory=list)

    def is_owner(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id == self.teacher_id

    def is_enrolled(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self.enrolled_students

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "teacher_id": self.teacher_id,
            "enrollment_key": self.enrollment_key,
            "chapters": [c.to_doc() for c in self.chapters],
            "enrolled_students": list(self.enrolled_students),
            "files": [f.to_doc() for f in self.files],
            "grades": [g.to_doc() for g in self.grades],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Course":
        # Collapse duplicate roster entries on read while keeping join order.
        roster = list(dict.fromkeys(doc.get("enrolled_students") or []))
        return cls(
            id=doc["id"],
            title=doc.get("title") or "",
            description=doc.get("description") or "",
            teacher_id=doc["teacher_id"],
            enrollment_key=doc.get("enrollment_key"),
            chapters=[Chapter.from_doc(c) for c in doc.get("chapters") or []],
            enrolled_students=roster,
            files=[FileRef.from_doc(f) for f in doc.get("files") or []],
            grades=[GradeEntry.from_doc(g) for g in doc.get("grades") or []],
            created_at=_dt(doc["created_at"]),  # type: ignore[arg-type]
            updated_at=_dt(doc["updated_at"]),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class ItemRef:
    """Address of a lesson, assignment or quiz inside a course.

    Either positional (`chapter_index`, `item_index`) or by stable `item_id`.
    Positions shift when earlier chapters or items are deleted; ids do not.
    """

    kind: Optional[ItemKind] = None
    chapter_index: Optional[int] = None
    item_index: Optional[int] = None
    item_id: Optional[str] = None

    @classmethod
    def at(cls, kind: Union[ItemKind, str], chapter_index: int, item_index: int) -> "ItemRef":
        return cls(kind=ItemKind.parse(kind), chapter_index=chapter_index, item_index=item_index)

    @classmethod
    def by_id(cls, item_id: str, kind: Union[ItemKind, str, None] = None) -> "ItemRef":
        return cls(kind=ItemKind.parse(kind) if kind is not None else None, item_id=item_id)

    @property
    def positional(self) -> bool:
        return self.item_id is None


__all__ = [
    "utc_now",
    "new_id",
    "parse_datetime",
    "ItemKind",
    "FileRef",
    "Submission",
    "Lesson",
    "Assignment",
    "Question",
    "Quiz",
    "Item",
    "SubmittableItem",
    "Chapter",
    "GradeEntry",
    "Course",
    "ItemRef",
]
