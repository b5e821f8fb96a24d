"""
Course aggregate: structural rules (pure, no store).

Covers:
- create_course validation (title/description/chapters required)
- chapter append/rename/delete with deterministic reindexing
- item add/update/delete, stable ids across reindexing
- enrollment set semantics and key checks
- file metadata attachment and derived file stats
- flat assignment projection
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from backend.courses import aggregate
from backend.courses.errors import (
    AlreadyEnrolledError,
    InvalidKeyError,
    NotFoundError,
    ValidationError,
)
from backend.courses.model import ItemKind, ItemRef
from utils.factories import T0, assignment_payload, quiz_payload


def _course(**overrides):
    kwargs = dict(
        course_id="c1",
        teacher_id="t1",
        title="History",
        description="From antiquity to today",
        chapters=[],
        now=T0,
    )
    kwargs.update(overrides)
    return aggregate.create_course(**kwargs)


def test_create_course_starts_with_empty_roster_and_trimmed_fields():
    course = _course(title="  History ", enrollment_key=" ABC123 ")
    assert course.title == "History"
    assert course.enrolled_students == []
    assert course.enrollment_key == "ABC123"
    assert course.created_at == course.updated_at == T0


@pytest.mark.parametrize(
    "field,value,detail",
    [
        ("title", None, "invalid_title"),
        ("title", "   ", "invalid_title"),
        ("description", None, "invalid_description"),
        ("chapters", None, "invalid_chapters"),
        ("chapters", "Chapter 1", "invalid_chapters"),
    ],
)
def test_create_course_rejects_missing_fields(field, value, detail):
    with pytest.raises(ValidationError) as exc:
        _course(**{field: value})
    assert exc.value.detail == detail


def test_create_course_with_nested_chapters_assigns_ids():
    course = _course(
        chapters=[
            "Intro",
            {"title": "Rome", "lessons": [{"title": "Founding", "content": "753 BC"}], "assignments": [assignment_payload()]},
        ]
    )
    assert [c.title for c in course.chapters] == ["Intro", "Rome"]
    ids = {course.chapters[0].id, course.chapters[1].id, course.chapters[1].lessons[0].id}
    assert len(ids) == 3
    assert course.chapters[1].assignments[0].total_points == 100


def test_add_chapter_appends_and_rejects_empty_title():
    course = _course()
    aggregate.add_chapter(course, "One")
    aggregate.add_chapter(course, "Two")
    assert [c.title for c in course.chapters] == ["One", "Two"]
    with pytest.raises(ValidationError):
        aggregate.add_chapter(course, "")


def test_delete_chapter_reindexes_later_chapters():
    course = _course(chapters=["Zero", "One", "Two"])
    removed = aggregate.delete_chapter(course, 1)
    assert removed.title == "One"
    assert [c.title for c in course.chapters] == ["Zero", "Two"]
    with pytest.raises(NotFoundError):
        aggregate.get_chapter(course, 2)


def test_positional_ref_shifts_but_id_ref_survives_chapter_deletion():
    course = _course(
        chapters=[
            {"title": "A", "assignments": [assignment_payload(title="A0")]},
            {"title": "B", "assignments": [assignment_payload(title="B0")]},
            {"title": "C", "assignments": [assignment_payload(title="C0")]},
        ]
    )
    c_id = course.chapters[2].assignments[0].id
    aggregate.delete_chapter(course, 1)

    by_position = aggregate.resolve_item(course, ItemRef.at(ItemKind.ASSIGNMENT, 1, 0))
    assert by_position.item.title == "C0"
    with pytest.raises(NotFoundError):
        aggregate.resolve_item(course, ItemRef.at(ItemKind.ASSIGNMENT, 2, 0))

    by_id = aggregate.resolve_item(course, ItemRef.by_id(c_id))
    assert (by_id.chapter_index, by_id.item_index, by_id.kind) == (1, 0, ItemKind.ASSIGNMENT)


def test_add_item_to_missing_chapter_is_not_found():
    course = _course(chapters=["Only"])
    with pytest.raises(NotFoundError):
        aggregate.add_lesson(course, 3, {"title": "x", "content": "y"})
    with pytest.raises(NotFoundError):
        aggregate.add_assignment(course, -1, assignment_payload())


def test_assignment_window_must_be_ordered_and_aware():
    course = _course(chapters=["Only"])
    with pytest.raises(ValidationError) as exc:
        aggregate.add_assignment(course, 0, assignment_payload(seconds=0))
    assert exc.value.detail == "invalid_window"
    with pytest.raises(ValidationError) as exc:
        aggregate.add_assignment(course, 0, assignment_payload(start_date_time="2025-03-03T09:00:00"))
    assert exc.value.detail == "invalid_start_date_time"
    with pytest.raises(ValidationError):
        aggregate.add_assignment(course, 0, assignment_payload(total_points=-1))


def test_quiz_total_points_defaults_to_question_sum():
    course = _course(chapters=["Only"])
    quiz = aggregate.add_quiz(course, 0, quiz_payload())
    assert quiz.total_points == 5
    assert quiz.questions[0].correct_answer == 1
    assert quiz.questions[1].options == []


@pytest.mark.parametrize(
    "question,detail",
    [
        ({"text": "q", "type": "multiple_choice", "options": ["only"], "correct_answer": 0}, "invalid_question_options"),
        ({"text": "q", "type": "multiple_choice", "options": ["a", "b"], "correct_answer": 2}, "invalid_correct_answer"),
        ({"text": "q", "type": "true_false", "correct_answer": "yes"}, "invalid_correct_answer"),
        ({"text": "q", "type": "essay"}, "invalid_question_type"),
        ({"text": "q", "type": "short_answer", "correct_answer": " "}, "invalid_correct_answer"),
    ],
)
def test_quiz_question_validation(question, detail):
    course = _course(chapters=["Only"])
    with pytest.raises(ValidationError) as exc:
        aggregate.add_quiz(course, 0, quiz_payload(questions=[question]))
    assert exc.value.detail == detail


def test_quiz_duration_must_be_positive():
    course = _course(chapters=["Only"])
    with pytest.raises(ValidationError) as exc:
        aggregate.add_quiz(course, 0, quiz_payload(duration=0))
    assert exc.value.detail == "invalid_duration"


def test_update_course_keeps_owner_immutable_and_clears_key():
    course = _course(enrollment_key="SECRET")
    with pytest.raises(ValidationError) as exc:
        aggregate.update_course(course, teacher_id="someone-else")
    assert exc.value.detail == "teacher_id_immutable"
    aggregate.update_course(course, title="Modern History", enrollment_key="")
    assert course.title == "Modern History"
    assert course.enrollment_key is None
    assert course.teacher_id == "t1"


def test_update_course_validates_before_changing_anything():
    course = _course()
    with pytest.raises(ValidationError):
        aggregate.update_course(course, title="New", description="  ")
    assert course.title == "History"


def test_update_assignment_cannot_drop_points_below_given_score():
    course = _course(chapters=[{"title": "A", "assignments": [assignment_payload()]}])
    assignment = course.chapters[0].assignments[0]
    from backend.courses.model import Submission

    assignment.submissions.append(Submission(student_id="s1", submitted_at=T0, content="x", score=80))
    ref = ItemRef.at(ItemKind.ASSIGNMENT, 0, 0)
    with pytest.raises(ValidationError) as exc:
        aggregate.update_assignment(course, ref, total_points=50)
    assert exc.value.detail == "total_points_below_existing_score"
    aggregate.update_assignment(course, ref, total_points=80, end_date_time=(T0 + timedelta(hours=5)).isoformat())
    assert assignment.total_points == 80
    assert assignment.end_date_time == T0 + timedelta(hours=5)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_points_are_rejected(value):
    course = _course(chapters=[{"title": "A", "assignments": [assignment_payload()]}])
    with pytest.raises(ValidationError) as exc:
        aggregate.add_assignment(course, 0, assignment_payload(total_points=value))
    assert exc.value.detail == "invalid_total_points"
    with pytest.raises(ValidationError) as exc:
        aggregate.add_quiz(course, 0, quiz_payload(total_points=value))
    assert exc.value.detail == "invalid_total_points"
    question = {"text": "q", "type": "true_false", "correct_answer": True, "points": value}
    with pytest.raises(ValidationError) as exc:
        aggregate.add_quiz(course, 0, quiz_payload(questions=[question]))
    assert exc.value.detail == "invalid_question_points"
    with pytest.raises(ValidationError):
        aggregate.update_assignment(course, ItemRef.at(ItemKind.ASSIGNMENT, 0, 0), total_points=value)
    assert course.chapters[0].assignments[0].total_points == 100
    assert len(course.chapters[0].assignments) == 1
    assert course.chapters[0].quizzes == []


def test_update_lesson_partial():
    course = _course(chapters=[{"title": "A", "lessons": [{"title": "L", "content": "old"}]}])
    ref = ItemRef.at(ItemKind.LESSON, 0, 0)
    lesson = aggregate.update_lesson(course, ref, content="new")
    assert (lesson.title, lesson.content) == ("L", "new")
    with pytest.raises(NotFoundError):
        aggregate.update_lesson(course, ItemRef.at(ItemKind.LESSON, 0, 1), title="x")


def test_delete_item_shifts_later_items():
    course = _course(
        chapters=[{"title": "A", "assignments": [assignment_payload(title="first"), assignment_payload(title="second")]}]
    )
    removed = aggregate.delete_item(course, ItemRef.at("assignments", 0, 0))
    assert removed.title == "first"
    assert [a.title for a in course.chapters[0].assignments] == ["second"]


def test_enroll_set_semantics_and_key_checks():
    course = _course(enrollment_key="ABC123")
    with pytest.raises(InvalidKeyError):
        aggregate.enroll(course, "s1", "WRONG")
    with pytest.raises(InvalidKeyError):
        aggregate.enroll(course, "s1", None)
    aggregate.enroll(course, "s1", "ABC123")
    with pytest.raises(AlreadyEnrolledError):
        aggregate.enroll(course, "s1", "ABC123")
    assert course.enrolled_students == ["s1"]


def test_unenroll_absent_student_is_noop():
    course = _course()
    aggregate.enroll(course, "s1")
    assert aggregate.unenroll(course, "s2") is False
    assert aggregate.unenroll(course, "s1") is True
    assert course.enrolled_students == []


def test_files_and_derived_stats():
    course = _course(chapters=[{"title": "A", "lessons": [{"title": "L", "content": "c"}]}])
    aggregate.add_course_file(course, {"name": "syllabus.pdf", "url": "https://files/s.pdf", "type": "application/pdf"})
    aggregate.add_chapter_file(course, 0, {"name": "map.png", "url": "https://files/m.png"})
    aggregate.attach_item_file(course, ItemRef.at(ItemKind.LESSON, 0, 0), {"name": "l.md", "url": "https://files/l.md"})
    stats = aggregate.file_stats(course)
    assert stats["total_files"] == 3
    assert stats["by_type"] == {"course": 1, "chapter": 1, "lesson": 1, "assignment": 0, "quiz": 0}

    with pytest.raises(ValidationError) as exc:
        aggregate.add_course_file(course, {"name": "", "url": "https://x"})
    assert exc.value.detail == "invalid_file_name"

    removed = aggregate.remove_course_file(course, 0)
    assert removed.name == "syllabus.pdf"
    with pytest.raises(NotFoundError):
        aggregate.remove_course_file(course, 0)


def test_list_assignments_projection():
    course = _course(
        chapters=[
            {"title": "A", "assignments": [assignment_payload(title="a0")]},
            {"title": "B", "assignments": [assignment_payload(title="b0"), assignment_payload(title="b1")]},
        ]
    )
    rows = aggregate.list_assignments(course)
    assert [(r["chapter_index"], r["item_index"], r["title"]) for r in rows] == [(0, 0, "a0"), (1, 0, "b0"), (1, 1, "b1")]
    assert rows[0]["course_id"] == "c1"
    assert rows[0]["submission_count"] == 0
    assert rows[0]["description"] == "Write 300 words."
