"""
Submission lifecycle for assignments and quizzes.

States per (item, student):

    NOT_OPEN -> OPEN -> SUBMITTED -> GRADED
                  \\-> CLOSED  (window elapsed without a submission)

An existing submission always wins over the time window, so a student who
submitted stays SUBMITTED (or GRADED) after the window closes. The window is
inclusive on both ends and every comparison uses the server's UTC clock.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from backend.courses.aggregate import normalize_files
from backend.courses.errors import (
    DuplicateSubmissionError,
    ValidationError,
    WindowClosedError,
    WindowNotOpenError,
)
from backend.courses.model import Submission, SubmittableItem

MAX_CONTENT_LENGTH = 100_000


class SubmissionStatus(str, Enum):
    NOT_OPEN = "not_open"
    OPEN = "open"
    SUBMITTED = "submitted"
    GRADED = "graded"
    CLOSED = "closed"


def find_submission(item: SubmittableItem, student_id: str) -> Optional[Submission]:
    for sub in item.submissions:
        if sub.student_id == student_id:
            return sub
    return None


def window_state(item: SubmittableItem, now: datetime) -> SubmissionStatus:
    if now < item.start_date_time:
        return SubmissionStatus.NOT_OPEN
    if now > item.end_date_time:
        return SubmissionStatus.CLOSED
    return SubmissionStatus.OPEN


def status(item: SubmittableItem, student_id: str, now: datetime) -> SubmissionStatus:
    existing = find_submission(item, student_id)
    if existing is not None:
        return SubmissionStatus.GRADED if existing.is_graded else SubmissionStatus.SUBMITTED
    return window_state(item, now)


def _normalize_content(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("invalid_content")
    if len(value) > MAX_CONTENT_LENGTH:
        raise ValidationError("invalid_content")
    return value if value.strip() else None


def submit(
    item: SubmittableItem,
    student_id: str,
    *,
    content: object = None,
    files: object = None,
    now: datetime,
) -> Submission:
    """Append the student's one submission to `item`.

    Checks run in a fixed order: duplicate, window, then payload. Callers
    must run this inside an atomic document update so two concurrent calls
    cannot both observe "no submission yet".
    """
    if find_submission(item, student_id) is not None:
        raise DuplicateSubmissionError()
    state = window_state(item, now)
    if state is SubmissionStatus.NOT_OPEN:
        raise WindowNotOpenError()
    if state is SubmissionStatus.CLOSED:
        raise WindowClosedError()
    text = _normalize_content(content)
    attached: List = normalize_files(files)
    if text is None and not attached:
        raise ValidationError("empty_submission", "A submission needs text content or at least one file.")
    submission = Submission(student_id=student_id, submitted_at=now, content=text, files=attached)
    item.submissions.append(submission)
    return submission


__all__ = ["SubmissionStatus", "find_submission", "window_state", "status", "submit"]
