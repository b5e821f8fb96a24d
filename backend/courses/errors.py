"""
Error taxonomy for the course core.

Why:
    Every rejected operation surfaces as one typed error that the web
    boundary maps to a structured response. Nothing here is fatal; callers
    may retry after correcting input.

Each kind also derives from the matching builtin (PermissionError,
LookupError, ValueError) so code written against builtins keeps working.
`str(exc)` is the short machine token (e.g. "invalid_title").
"""
from __future__ import annotations

from typing import Optional

UNAUTHENTICATED = "unauthenticated"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
VALIDATION = "validation"
CONFLICT = "conflict"


class CourseError(Exception):
    code = "course_error"
    status_class = VALIDATION
    default_message = "The operation was rejected."

    def __init__(self, detail: Optional[str] = None, message: Optional[str] = None) -> None:
        self.detail = detail or self.code
        self.message = message or self.default_message
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, "message": self.message}


class Unauthenticated(CourseError, PermissionError):
    code = "unauthenticated"
    status_class = UNAUTHENTICATED
    default_message = "Authentication is required."


class Forbidden(CourseError, PermissionError):
    code = "forbidden"
    status_class = FORBIDDEN
    default_message = "You do not have access to this course."


class NotFoundError(CourseError, LookupError):
    code = "not_found"
    status_class = NOT_FOUND
    default_message = "The requested resource does not exist."


class ValidationError(CourseError, ValueError):
    code = "validation_error"
    status_class = VALIDATION
    default_message = "The request is missing required fields or contains invalid values."


class AlreadyEnrolledError(CourseError):
    code = "already_enrolled"
    status_class = CONFLICT
    default_message = "You are already enrolled in this course."


class InvalidKeyError(CourseError, PermissionError):
    code = "invalid_enrollment_key"
    status_class = FORBIDDEN
    default_message = "The enrollment key is not correct."


class DuplicateSubmissionError(CourseError):
    code = "duplicate_submission"
    status_class = CONFLICT
    default_message = "You have already submitted this item."


class SubmissionWindowError(CourseError):
    status_class = CONFLICT


class WindowNotOpenError(SubmissionWindowError):
    code = "window_not_open"
    default_message = "Submissions for this item are not open yet."


class WindowClosedError(SubmissionWindowError):
    code = "window_closed"
    default_message = "The submission window for this item has closed."


class OutOfRangeError(ValidationError):
    code = "out_of_range"
    default_message = "The score must lie between 0 and the item's total points."


__all__ = [
    "CourseError",
    "Unauthenticated",
    "Forbidden",
    "NotFoundError",
    "ValidationError",
    "AlreadyEnrolledError",
    "InvalidKeyError",
    "DuplicateSubmissionError",
    "SubmissionWindowError",
    "WindowNotOpenError",
    "WindowClosedError",
    "OutOfRangeError",
]
