"""Course authoring, reading and enrollment use cases.

Why:
    Keeps the web adapter framework-thin: every operation authorizes against
    the current stored document and applies its change inside one atomic
    store update, so checks and writes can never interleave with another
    request on the same course.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar
from uuid import uuid4

from backend.courses import aggregate
from backend.courses.errors import NotFoundError, Unauthenticated
from backend.courses.model import Course, FileRef, Item, ItemKind, ItemRef, utc_now
from backend.courses.policy import Operation, authorize, require_principal
from backend.courses.store import CourseStoreProtocol
from backend.courses.views import course_summary, course_view, roster_view
from backend.identity_access.domain import Principal

T = TypeVar("T")

logger = logging.getLogger("coursehub.courses")

_UNSET = aggregate._UNSET  # shared sentinel for partial updates


def _new_course_id() -> str:
    return str(uuid4())


@dataclass
class CoursesService:
    """Use cases for courses (framework-independent)."""

    store: CourseStoreProtocol
    clock: Callable[[], datetime] = utc_now
    id_factory: Callable[[], str] = field(default=_new_course_id)

    # --- helpers --------------------------------------------------------------

    def _load(self, principal: Optional[Principal], course_id: str, op: Operation) -> Course:
        if principal is None:
            raise Unauthenticated()
        course = self.store.find_course_by_id(course_id)
        if course is None:
            raise NotFoundError("course_not_found")
        authorize(principal, course, op)
        return course

    def _mutate(
        self,
        principal: Optional[Principal],
        course_id: str,
        op: Operation,
        change: Callable[[Course], T],
        *,
        target_student_id: Optional[str] = None,
    ) -> T:
        if principal is None:
            raise Unauthenticated()
        now = self.clock()

        def apply(course: Course) -> T:
            authorize(principal, course, op, target_student_id=target_student_id)
            result = change(course)
            course.updated_at = now
            return result

        return self.store.update_course_atomic(course_id, apply)

    # --- create / read ----------------------------------------------------------

    def create_course(
        self,
        principal: Optional[Principal],
        *,
        title: object,
        description: object,
        chapters: object,
        enrollment_key: object = None,
    ) -> Course:
        """Create a course owned by the calling teacher.

        Permissions:
            Caller must hold the teacher or admin role; the caller becomes the
            immutable owner.
        """
        owner = authorize(principal, None, Operation.CREATE_COURSE)
        course = aggregate.create_course(
            course_id=self.id_factory(),
            teacher_id=owner.id,
            title=title,
            description=description,
            chapters=chapters,
            enrollment_key=enrollment_key,
            now=self.clock(),
        )
        self.store.insert_course(course)
        logger.info("course created id=%s teacher=%s chapters=%d", course.id, course.teacher_id, len(course.chapters))
        return course

    def get_course(self, principal: Optional[Principal], course_id: str) -> Course:
        return self._load(principal, course_id, Operation.READ_COURSE)

    def get_course_view(self, principal: Optional[Principal], course_id: str) -> Dict[str, Any]:
        caller = require_principal(principal)
        course = self._load(caller, course_id, Operation.READ_COURSE)
        return course_view(course, caller, self.clock())

    def list_catalog(self, *, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return [course_summary(c) for c in self.store.list_courses(limit=limit, offset=offset)]

    def list_courses_for_teacher(
        self, principal: Optional[Principal], *, limit: int = 50, offset: int = 0
    ) -> List[Dict[str, Any]]:
        if principal is None:
            raise Unauthenticated()
        courses = self.store.list_courses(teacher_id=principal.id, limit=limit, offset=offset)
        return [course_summary(c) for c in courses]

    def list_courses_for_student(
        self, principal: Optional[Principal], *, limit: int = 50, offset: int = 0
    ) -> List[Dict[str, Any]]:
        if principal is None:
            raise Unauthenticated()
        courses = self.store.list_courses(student_id=principal.id, limit=limit, offset=offset)
        return [course_summary(c) for c in courses]

    def list_students(self, principal: Optional[Principal], course_id: str) -> List[Dict[str, Any]]:
        course = self._load(principal, course_id, Operation.LIST_STUDENTS)
        return roster_view(course)

    def list_assignments(self, principal: Optional[Principal], course_id: str) -> List[Dict[str, Any]]:
        course = self._load(principal, course_id, Operation.READ_COURSE)
        return aggregate.list_assignments(course)

    def file_stats(self, principal: Optional[Principal], course_id: str) -> Dict[str, Any]:
        course = self._load(principal, course_id, Operation.READ_COURSE)
        return aggregate.file_stats(course)

    # --- course metadata --------------------------------------------------------

    def update_course(
        self,
        principal: Optional[Principal],
        course_id: str,
        *,
        title: object = _UNSET,
        description: object = _UNSET,
        enrollment_key: object = _UNSET,
        teacher_id: object = _UNSET,
    ) -> Course:
        def change(course: Course) -> Course:
            return aggregate.update_course(
                course,
                title=title,
                description=description,
                enrollment_key=enrollment_key,
                teacher_id=teacher_id,
            )

        return self._mutate(principal, course_id, Operation.MUTATE_COURSE, change)

    def delete_course(self, principal: Optional[Principal], course_id: str) -> None:
        """Delete a course and, with it, every chapter, item and submission.

        Permissions:
            Owning teacher only.
        """
        self._load(principal, course_id, Operation.DELETE_COURSE)
        if not self.store.delete_course(course_id):
            raise NotFoundError("course_not_found")
        logger.info("course deleted id=%s", course_id)

    # --- chapters ----------------------------------------------------------------

    def add_chapter(self, principal: Optional[Principal], course_id: str, title: object) -> Course:
        def change(course: Course) -> Course:
            aggregate.add_chapter(course, title)
            return course

        return self._mutate(principal, course_id, Operation.MUTATE_COURSE, change)

    def rename_chapter(
        self, principal: Optional[Principal], course_id: str, chapter_index: int, title: object
    ) -> Course:
        def change(course: Course) -> Course:
            aggregate.rename_chapter(course, chapter_index, title)
            return course

        return self._mutate(principal, course_id, Operation.MUTATE_COURSE, change)

    def delete_chapter(self, principal: Optional[Principal], course_id: str, chapter_index: int) -> Course:
        def change(course: Course) -> Course:
            aggregate.delete_chapter(course, chapter_index)
            return course

        course = self._mutate(principal, course_id, Operation.MUTATE_COURSE, change)
        logger.info(
            "chapter deleted course=%s index=%d reindexed=%d",
            course_id,
            chapter_index,
            len(course.chapters) - chapter_index,
        )
        return course

    # --- items ---------------------------------------------------------------------

    def add_item(
        self,
        principal: Optional[Principal],
        course_id: str,
        chapter_index: int,
        kind: ItemKind,
        payload: object,
    ) -> Item:
        return self._mutate(
            principal,
            course_id,
            Operation.MUTATE_COURSE,
            lambda course: aggregate.add_item(course, chapter_index, kind, payload),
        )

    def update_lesson(self, principal: Optional[Principal], course_id: str, ref: ItemRef, **changes: Any) -> Item:
        return self._mutate(
            principal,
            course_id,
            Operation.MUTATE_COURSE,
            lambda course: aggregate.update_lesson(course, ref, **changes),
        )

    def update_assignment(
        self, principal: Optional[Principal], course_id: str, ref: ItemRef, **changes: Any
    ) -> Item:
        return self._mutate(
            principal,
            course_id,
            Operation.MUTATE_COURSE,
            lambda course: aggregate.update_assignment(course, ref, **changes),
        )

    def delete_item(self, principal: Optional[Principal], course_id: str, ref: ItemRef) -> Course:
        def change(course: Course) -> Course:
            aggregate.delete_item(course, ref)
            return course

        return self._mutate(principal, course_id, Operation.MUTATE_COURSE, change)

    def attach_item_file(self, principal: Optional[Principal], course_id: str, ref: ItemRef, file: object) -> Item:
        return self._mutate(
            principal,
            course_id,
            Operation.MUTATE_COURSE,
            lambda course: aggregate.attach_item_file(course, ref, file),
        )

    # --- files -------------------------------------------------------------------

    def add_course_file(self, principal: Optional[Principal], course_id: str, file: object) -> FileRef:
        return self._mutate(
            principal, course_id, Operation.MUTATE_COURSE, lambda course: aggregate.add_course_file(course, file)
        )

    def remove_course_file(self, principal: Optional[Principal], course_id: str, file_index: int) -> FileRef:
        return self._mutate(
            principal,
            course_id,
            Operation.MUTATE_COURSE,
            lambda course: aggregate.remove_course_file(course, file_index),
        )

    def add_chapter_file(
        self, principal: Optional[Principal], course_id: str, chapter_index: int, file: object
    ) -> FileRef:
        return self._mutate(
            principal,
            course_id,
            Operation.MUTATE_COURSE,
            lambda course: aggregate.add_chapter_file(course, chapter_index, file),
        )

    # --- enrollment ----------------------------------------------------------------

    def enroll(self, principal: Optional[Principal], course_id: str, enrollment_key: object = None) -> Course:
        """Enroll the calling principal, checking the key when the course has one.

        Behavior:
            - Already enrolled: AlreadyEnrolledError, roster unchanged.
            - Wrong or missing key: InvalidKeyError.
            - The owner cannot enroll in their own course (Forbidden).
        """
        student = require_principal(principal)

        def change(course: Course) -> Course:
            return aggregate.enroll(course, student.id, enrollment_key)

        course = self._mutate(student, course_id, Operation.ENROLL, change)
        logger.info("student enrolled course=%s student=%s", course_id, student.id)
        return course

    def unenroll(
        self, principal: Optional[Principal], course_id: str, student_id: Optional[str] = None
    ) -> Course:
        """Remove a student from the roster; a no-op when they are not on it.

        Permissions:
            The student themself, or the owning teacher for any student.
        """
        target = student_id or require_principal(principal).id
        removed: Dict[str, bool] = {}

        def change(course: Course) -> Course:
            removed["value"] = aggregate.unenroll(course, target)
            return course

        course = self._mutate(principal, course_id, Operation.UNENROLL, change, target_student_id=target)
        if removed.get("value"):
            logger.info("student unenrolled course=%s student=%s", course_id, target)
        return course
