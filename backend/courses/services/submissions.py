"""Submission use cases: submit, read back, list, status."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from backend.courses.aggregate import resolve_submittable
from backend.courses.errors import NotFoundError, Unauthenticated
from backend.courses.lifecycle import SubmissionStatus, find_submission, status, submit
from backend.courses.model import Course, ItemRef, Submission, utc_now
from backend.courses.policy import Operation, authorize, require_principal
from backend.courses.store import CourseStoreProtocol
from backend.identity_access.domain import Principal

logger = logging.getLogger("coursehub.courses")


@dataclass
class SubmissionsService:
    store: CourseStoreProtocol
    clock: Callable[[], datetime] = utc_now

    def _course(self, principal: Optional[Principal], course_id: str) -> Course:
        require_principal(principal)
        course = self.store.find_course_by_id(course_id)
        if course is None:
            raise NotFoundError("course_not_found")
        return course

    def submit(
        self,
        principal: Optional[Principal],
        course_id: str,
        ref: ItemRef,
        *,
        content: object = None,
        files: object = None,
    ) -> Submission:
        """Record the caller's one submission for an assignment or quiz.

        Behavior:
            - Runs as one atomic update on the course document: the duplicate
              check and the append happen under the same store lock/row lock.
            - Order of checks: enrollment, item, duplicate, window, payload.
            - `submitted_at` is the server's UTC clock at acceptance.

        Permissions:
            Caller must be enrolled in the course.
        """
        if principal is None:
            raise Unauthenticated()
        now = self.clock()

        def apply(course: Course) -> Submission:
            authorize(principal, course, Operation.SUBMIT)
            item = resolve_submittable(course, ref).item
            sub = submit(item, principal.id, content=content, files=files, now=now)  # type: ignore[arg-type]
            course.updated_at = now
            return sub

        sub = self.store.update_course_atomic(course_id, apply)
        logger.info("submission accepted course=%s item=%s student=%s", course_id, _ref_label(ref), principal.id)
        return sub

    def get_submission(
        self,
        principal: Optional[Principal],
        course_id: str,
        ref: ItemRef,
        student_id: Optional[str] = None,
    ) -> Submission:
        """Owner reads any student's submission; a student reads only their own."""
        caller = require_principal(principal)
        course = self._course(caller, course_id)
        target = student_id or caller.id
        authorize(caller, course, Operation.READ_SUBMISSION, target_student_id=target)
        sub = find_submission(resolve_submittable(course, ref).item, target)  # type: ignore[arg-type]
        if sub is None:
            raise NotFoundError("submission_not_found")
        return sub

    def list_submissions(self, principal: Optional[Principal], course_id: str, ref: ItemRef) -> List[Submission]:
        course = self._course(principal, course_id)
        authorize(principal, course, Operation.LIST_SUBMISSIONS)
        return list(resolve_submittable(course, ref).item.submissions)  # type: ignore[union-attr]

    def item_status(
        self,
        principal: Optional[Principal],
        course_id: str,
        ref: ItemRef,
        student_id: Optional[str] = None,
    ) -> SubmissionStatus:
        caller = require_principal(principal)
        course = self._course(caller, course_id)
        target = student_id or caller.id
        authorize(caller, course, Operation.READ_SUBMISSION, target_student_id=target)
        item = resolve_submittable(course, ref).item
        return status(item, target, self.clock())  # type: ignore[arg-type]

    def status_view(
        self,
        principal: Optional[Principal],
        course_id: str,
        ref: ItemRef,
        student_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        caller = require_principal(principal)
        state = self.item_status(caller, course_id, ref, student_id)
        return {"student_id": student_id or caller.id, "status": state.value}


def _ref_label(ref: ItemRef) -> str:
    if ref.item_id is not None:
        return ref.item_id
    kind = ref.kind.value if ref.kind else "item"
    return f"{kind}[{ref.chapter_index}][{ref.item_index}]"
