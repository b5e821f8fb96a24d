"""
Content store port and the in-memory implementation.

Why:
    Services only talk to `CourseStoreProtocol`. Every mutation goes through
    `update_course_atomic`, which loads the current document, applies a
    callback, and writes the result back as one step. If the callback raises,
    nothing is written. This is what keeps enrollment, submission-append and
    grading free of lost updates without locks spanning requests.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, TypeVar

from backend.courses.aggregate import resolve_submittable
from backend.courses.errors import NotFoundError
from backend.courses.lifecycle import find_submission
from backend.courses.model import Course, ItemRef, Submission

T = TypeVar("T")

logger = logging.getLogger("coursehub.store")


class CourseStoreProtocol(Protocol):
    def find_course_by_id(self, course_id: str) -> Optional[Course]:
        ...

    def insert_course(self, course: Course) -> Course:
        ...

    def delete_course(self, course_id: str) -> bool:
        ...

    def update_course_atomic(self, course_id: str, mutate: Callable[[Course], T]) -> T:
        ...

    def list_courses(
        self,
        *,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Course]:
        ...

    def find_submission(self, course_id: str, ref: ItemRef, student_id: str) -> Optional[Submission]:
        ...

    def close(self) -> None:
        ...


def submission_in_course(course: Course, ref: ItemRef, student_id: str) -> Optional[Submission]:
    return find_submission(resolve_submittable(course, ref).item, student_id)  # type: ignore[arg-type]


def clamp_page(limit: int, offset: int) -> tuple[int, int]:
    return max(1, min(int(limit), 100)), max(0, int(offset))


class InMemoryCourseStore:
    """Dictionary of course documents guarded by one lock.

    Documents are stored serialized (`Course.to_doc()`), so callers never hold
    a reference into stored state and a failed mutation cannot leak into it.
    """

    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def find_course_by_id(self, course_id: str) -> Optional[Course]:
        with self._lock:
            doc = self._docs.get(course_id)
            return Course.from_doc(doc) if doc is not None else None

    def insert_course(self, course: Course) -> Course:
        with self._lock:
            if course.id in self._docs:
                raise ValueError("duplicate_course_id")
            self._docs[course.id] = course.to_doc()
        return course

    def delete_course(self, course_id: str) -> bool:
        with self._lock:
            return self._docs.pop(course_id, None) is not None

    def update_course_atomic(self, course_id: str, mutate: Callable[[Course], T]) -> T:
        with self._lock:
            doc = self._docs.get(course_id)
            if doc is None:
                raise NotFoundError("course_not_found")
            course = Course.from_doc(doc)
            result = mutate(course)
            self._docs[course_id] = course.to_doc()
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
        with self._lock:
            courses = [Course.from_doc(doc) for doc in self._docs.values()]
        if teacher_id is not None:
            courses = [c for c in courses if c.teacher_id == teacher_id]
        if student_id is not None:
            courses = [c for c in courses if student_id in c.enrolled_students]
        courses.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return courses[offset : offset + limit]

    def find_submission(self, course_id: str, ref: ItemRef, student_id: str) -> Optional[Submission]:
        course = self.find_course_by_id(course_id)
        if course is None:
            raise NotFoundError("course_not_found")
        return submission_in_course(course, ref, student_id)

    def close(self) -> None:
        logger.debug("in-memory course store closed (%d courses)", len(self._docs))


__all__ = ["CourseStoreProtocol", "InMemoryCourseStore", "submission_in_course", "clamp_page"]
