"""
Read models returned to callers.

The owner sees the whole course document. An enrolled student sees a trimmed
copy: no enrollment key, no roster, no other students' submissions, no quiz
answers, plus their own status per submittable item.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from backend.courses.aggregate import file_stats
from backend.courses.lifecycle import find_submission, status
from backend.courses.model import Course, GradeEntry, ItemKind, Submission
from backend.identity_access.domain import Principal


def course_summary(course: Course) -> Dict[str, Any]:
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "teacher_id": course.teacher_id,
        "enrolled_count": len(course.enrolled_students),
        "requires_enrollment_key": course.enrollment_key is not None,
        "created_at": course.created_at.isoformat(),
    }


def submission_view(sub: Submission) -> Dict[str, Any]:
    return sub.to_doc()


def grade_view(entry: GradeEntry) -> Dict[str, Any]:
    return entry.to_doc()


def _student_item(item_doc: Dict[str, Any], item, kind: ItemKind, student_id: str, now: datetime) -> Dict[str, Any]:
    if not kind.submittable:
        return item_doc
    own = find_submission(item, student_id)
    item_doc.pop("submissions", None)
    item_doc["my_submission"] = own.to_doc() if own else None
    item_doc["status"] = status(item, student_id, now).value
    if kind is ItemKind.QUIZ:
        for question in item_doc.get("questions", []):
            question.pop("correct_answer", None)
    return item_doc


def course_view(course: Course, principal: Principal, now: datetime) -> Dict[str, Any]:
    doc = course.to_doc()
    if course.is_owner(principal.id):
        doc["file_stats"] = file_stats(course)
        doc["is_owner"] = True
        return doc
    doc.pop("enrollment_key", None)
    doc.pop("enrolled_students", None)
    doc.pop("grades", None)
    doc["requires_enrollment_key"] = course.enrollment_key is not None
    doc["is_owner"] = False
    for chapter, chapter_doc in zip(course.chapters, doc["chapters"]):
        for kind in ItemKind:
            chapter_doc[kind.collection] = [
                _student_item(item_doc, item, kind, principal.id, now)
                for item, item_doc in zip(chapter.items(kind), chapter_doc[kind.collection])
            ]
    return doc


def roster_view(course: Course) -> List[Dict[str, Any]]:
    return [{"student_id": sid} for sid in course.enrolled_students]
