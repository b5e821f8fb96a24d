"""
Access control for course operations.

`decide()` is a pure function of (principal, course, operation): it never
touches storage and never raises. `authorize()` raises the denial.

Ownership (`principal.id == course.teacher_id`) is the authorization
boundary for authoring and grading; the teacher/admin role is required as
well but never sufficient on its own.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from backend.courses.errors import AlreadyEnrolledError, CourseError, Forbidden, Unauthenticated
from backend.courses.model import Course
from backend.identity_access.domain import Principal


class Operation(str, Enum):
    CREATE_COURSE = "create_course"
    READ_COURSE = "read_course"
    MUTATE_COURSE = "mutate_course"
    DELETE_COURSE = "delete_course"
    LIST_STUDENTS = "list_students"
    ENROLL = "enroll"
    UNENROLL = "unenroll"
    SUBMIT = "submit"
    READ_SUBMISSION = "read_submission"
    LIST_SUBMISSIONS = "list_submissions"
    GRADE = "grade"
    UPSERT_GRADE = "upsert_grade"
    READ_GRADES = "read_grades"


_OWNER_ONLY = frozenset(
    {
        Operation.MUTATE_COURSE,
        Operation.DELETE_COURSE,
        Operation.LIST_STUDENTS,
        Operation.LIST_SUBMISSIONS,
        Operation.GRADE,
        Operation.UPSERT_GRADE,
    }
)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    error: Optional[CourseError] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, error: CourseError) -> "Decision":
        return cls(False, error)


def _is_author_owner(principal: Principal, course: Course) -> bool:
    return course.is_owner(principal.id) and principal.can_author


def decide(
    principal: Optional[Principal],
    course: Optional[Course],
    op: Operation,
    *,
    target_student_id: Optional[str] = None,
) -> Decision:
    """Return whether `principal` may perform `op` on `course`.

    Rules, first match wins:
        1. No principal: Unauthenticated.
        2. Read course detail: owner or enrolled student.
        3. Structural mutation, roster and submission listings: owning teacher.
        4. Enroll: any principal that is neither enrolled nor the owner.
        5. Submit: enrolled students only.
        6. Grading: owning teacher.

    `target_student_id` names the student an unenroll or submission read is
    about; it defaults to the principal.
    """
    if principal is None:
        return Decision.deny(Unauthenticated())
    if op is Operation.CREATE_COURSE:
        if principal.can_author:
            return Decision.allow()
        return Decision.deny(Forbidden("teacher_role_required"))
    if course is None:
        return Decision.deny(Forbidden())

    target = target_student_id or principal.id
    if op in (Operation.READ_COURSE, Operation.READ_GRADES):
        if course.is_owner(principal.id) or course.is_enrolled(principal.id):
            return Decision.allow()
        return Decision.deny(Forbidden("not_enrolled"))
    if op in _OWNER_ONLY:
        if _is_author_owner(principal, course):
            return Decision.allow()
        return Decision.deny(Forbidden("not_course_owner"))
    if op is Operation.ENROLL:
        if course.is_owner(principal.id):
            return Decision.deny(Forbidden("owner_cannot_enroll"))
        if course.is_enrolled(principal.id):
            return Decision.deny(AlreadyEnrolledError())
        return Decision.allow()
    if op is Operation.UNENROLL:
        if target == principal.id or _is_author_owner(principal, course):
            return Decision.allow()
        return Decision.deny(Forbidden("not_course_owner"))
    if op is Operation.SUBMIT:
        if course.is_enrolled(principal.id) and not course.is_owner(principal.id):
            return Decision.allow()
        return Decision.deny(Forbidden("not_enrolled"))
    if op is Operation.READ_SUBMISSION:
        if _is_author_owner(principal, course):
            return Decision.allow()
        if target == principal.id and course.is_enrolled(principal.id):
            return Decision.allow()
        return Decision.deny(Forbidden())
    return Decision.deny(Forbidden())


def authorize(
    principal: Optional[Principal],
    course: Optional[Course],
    op: Operation,
    *,
    target_student_id: Optional[str] = None,
) -> Principal:
    """Raise the denial from `decide()`; return the principal when allowed."""
    decision = decide(principal, course, op, target_student_id=target_student_id)
    if not decision.allowed:
        raise decision.error or Forbidden()
    return require_principal(principal)


def require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal


__all__ = ["Operation", "Decision", "decide", "authorize", "require_principal"]
