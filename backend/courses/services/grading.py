"""
Grading engine: per-submission scores and the course-level grade ledger.

The two are independent views. Writing a submission score never touches the
ledger and upserting a ledger entry never touches submission scores.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import Callable, List, Optional, Union

from backend.courses.aggregate import resolve_submittable
from backend.courses.errors import NotFoundError, OutOfRangeError, Unauthenticated, ValidationError
from backend.courses.lifecycle import find_submission
from backend.courses.model import Course, GradeEntry, ItemRef, Submission, SubmittableItem, utc_now
from backend.courses.policy import Operation, authorize
from backend.courses.store import CourseStoreProtocol
from backend.identity_access.domain import Principal

logger = logging.getLogger("coursehub.courses")

MAX_FEEDBACK_LENGTH = 10_000
MAX_LETTER_GRADE_LENGTH = 16


def _normalize_feedback(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or len(value) > MAX_FEEDBACK_LENGTH:
        raise ValidationError("invalid_feedback")
    return value.strip() or None


def _normalize_score(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise ValidationError("invalid_score")
    return value  # type: ignore[return-value]


def _normalize_grade(value: object) -> Union[float, str]:
    """Course grades are either a non-negative number or a short label like "B+"."""
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed or len(trimmed) > MAX_LETTER_GRADE_LENGTH:
            raise ValidationError("invalid_grade")
        return trimmed
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError("invalid_grade")
    if not math.isfinite(value) or value < 0:
        raise ValidationError("invalid_grade")
    return value  # type: ignore[return-value]


def apply_grade(
    item: SubmittableItem,
    student_id: str,
    *,
    score: object,
    feedback: object,
    grader_id: str,
    now: datetime,
) -> Submission:
    """Write score, feedback, graded_at and graded_by onto the student's submission.

    Grading nothing is an error (NotFoundError); grading twice overwrites.
    """
    sub = find_submission(item, student_id)
    if sub is None:
        raise NotFoundError("submission_not_found")
    value = _normalize_score(score)
    if not 0 <= value <= item.total_points:
        raise OutOfRangeError()
    text = _normalize_feedback(feedback)
    sub.score = value
    sub.feedback = text
    sub.graded_at = now
    sub.graded_by = grader_id
    return sub


def upsert_grade_entry(
    course: Course,
    student_id: str,
    *,
    grade: object,
    feedback: object,
    now: datetime,
) -> GradeEntry:
    value = _normalize_grade(grade)
    text = _normalize_feedback(feedback)
    for entry in course.grades:
        if entry.student_id == student_id:
            entry.grade = value
            entry.feedback = text
            entry.updated_at = now
            return entry
    entry = GradeEntry(student_id=student_id, grade=value, feedback=text, updated_at=now)
    course.grades.append(entry)
    return entry


@dataclass
class GradingEngine:
    store: CourseStoreProtocol
    clock: Callable[[], datetime] = utc_now

    def grade(
        self,
        principal: Optional[Principal],
        course_id: str,
        ref: ItemRef,
        student_id: str,
        *,
        score: object,
        feedback: object = None,
    ) -> Submission:
        """Grade one student's submission on an assignment or quiz.

        Permissions:
            Owning teacher of this course; the role alone is not enough.

        Behavior:
            - Last write wins; no concurrency token.
            - Score must lie in [0, item.total_points] (OutOfRangeError).
        """
        if principal is None:
            raise Unauthenticated()
        now = self.clock()

        def apply(course: Course) -> Submission:
            authorize(principal, course, Operation.GRADE)
            item = resolve_submittable(course, ref).item
            sub = apply_grade(
                item,  # type: ignore[arg-type]
                student_id,
                score=score,
                feedback=feedback,
                grader_id=principal.id,
                now=now,
            )
            course.updated_at = now
            return sub

        sub = self.store.update_course_atomic(course_id, apply)
        logger.info("submission graded course=%s student=%s grader=%s", course_id, student_id, principal.id)
        return sub

    def upsert_grade(
        self,
        principal: Optional[Principal],
        course_id: str,
        student_id: str,
        *,
        grade: object,
        feedback: object = None,
    ) -> GradeEntry:
        """Set the course-level grade for an enrolled student (update or insert)."""
        if principal is None:
            raise Unauthenticated()
        if not student_id or not isinstance(student_id, str):
            raise ValidationError("invalid_student_id")
        now = self.clock()

        def apply(course: Course) -> GradeEntry:
            authorize(principal, course, Operation.UPSERT_GRADE)
            if not course.is_enrolled(student_id):
                raise NotFoundError("student_not_enrolled")
            entry = upsert_grade_entry(course, student_id, grade=grade, feedback=feedback, now=now)
            course.updated_at = now
            return entry

        entry = self.store.update_course_atomic(course_id, apply)
        logger.info("course grade upserted course=%s student=%s", course_id, student_id)
        return entry

    def list_grades(self, principal: Optional[Principal], course_id: str) -> List[GradeEntry]:
        """Owner sees the whole ledger; an enrolled student only their own entry."""
        if principal is None:
            raise Unauthenticated()
        course = self.store.find_course_by_id(course_id)
        if course is None:
            raise NotFoundError("course_not_found")
        authorize(principal, course, Operation.READ_GRADES)
        if course.is_owner(principal.id):
            return list(course.grades)
        return [g for g in course.grades if g.student_id == principal.id]
