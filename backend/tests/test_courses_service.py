"""
Courses service: authoring, role-shaped reads, listings, enrollment.
"""
from __future__ import annotations

import pytest

from backend.courses.errors import (
    AlreadyEnrolledError,
    Forbidden,
    InvalidKeyError,
    NotFoundError,
    Unauthenticated,
    ValidationError,
)
from backend.courses.model import ItemKind, ItemRef
from backend.identity_access.domain import Principal
from utils.factories import assignment_payload


def test_create_course_requires_teacher_role(courses, student):
    with pytest.raises(Forbidden):
        courses.create_course(student, title="x", description="y", chapters=[])
    with pytest.raises(Unauthenticated):
        courses.create_course(None, title="x", description="y", chapters=[])


def test_owner_comes_from_principal(courses, teacher):
    course = courses.create_course(teacher, title="Physics", description="Motion", chapters=["Kinematics"])
    assert course.teacher_id == teacher.id
    assert courses.get_course(teacher, course.id).chapters[0].title == "Kinematics"


def test_enrollment_key_gate(courses, teacher, student):
    course = courses.create_course(teacher, title="Latin", description="Verbs", chapters=[], enrollment_key="ABC123")
    with pytest.raises(InvalidKeyError):
        courses.enroll(student, course.id, "WRONG")
    courses.enroll(student, course.id, "ABC123")
    assert student.id in courses.get_course(teacher, course.id).enrolled_students
    with pytest.raises(AlreadyEnrolledError):
        courses.enroll(student, course.id, "ABC123")


def test_owner_cannot_enroll(courses, teacher):
    course = courses.create_course(teacher, title="Latin", description="Verbs", chapters=[])
    with pytest.raises(Forbidden):
        courses.enroll(teacher, course.id)


def test_read_requires_enrollment(courses, teacher, student):
    course = courses.create_course(teacher, title="Art", description="Colour", chapters=[])
    with pytest.raises(Forbidden):
        courses.get_course_view(student, course.id)
    courses.enroll(student, course.id)
    assert courses.get_course_view(student, course.id)["title"] == "Art"
    with pytest.raises(NotFoundError):
        courses.get_course_view(student, "nope")


def test_anonymous_reads_and_enrollment_are_unauthenticated(course_with_assignment, courses, submissions):
    cid = course_with_assignment.id
    ref = ItemRef.at(ItemKind.ASSIGNMENT, 0, 0)
    with pytest.raises(Unauthenticated):
        courses.get_course_view(None, cid)
    with pytest.raises(Unauthenticated):
        courses.enroll(None, cid)
    with pytest.raises(Unauthenticated):
        courses.unenroll(None, cid)
    with pytest.raises(Unauthenticated):
        submissions.get_submission(None, cid, ref)
    with pytest.raises(Unauthenticated):
        submissions.item_status(None, cid, ref)


def test_student_view_hides_secrets_and_others(course_with_assignment, courses, submissions, teacher, student, other_student):
    courses.enroll(other_student, course_with_assignment.id)
    ref = ItemRef.at(ItemKind.ASSIGNMENT, 0, 0)
    submissions.submit(student, course_with_assignment.id, ref, content="mine")
    submissions.submit(other_student, course_with_assignment.id, ref, content="theirs")

    view = courses.get_course_view(student, course_with_assignment.id)
    assert "enrollment_key" not in view
    assert "enrolled_students" not in view
    assert "grades" not in view
    assignment = view["chapters"][0]["assignments"][0]
    assert "submissions" not in assignment
    assert assignment["my_submission"]["content"] == "mine"
    assert assignment["status"] == "submitted"
    quiz = view["chapters"][0]["quizzes"][0]
    assert quiz["status"] == "open"
    assert all("correct_answer" not in q for q in quiz["questions"])

    owner_view = courses.get_course_view(teacher, course_with_assignment.id)
    assert len(owner_view["chapters"][0]["assignments"][0]["submissions"]) == 2
    assert owner_view["file_stats"]["total_files"] == 0
    assert owner_view["enrolled_students"] == [student.id, other_student.id]


def test_structure_mutations_are_owner_only(courses, teacher, other_teacher, student):
    course = courses.create_course(teacher, title="Geo", description="Maps", chapters=["A"])
    with pytest.raises(Forbidden):
        courses.add_chapter(other_teacher, course.id, "B")
    with pytest.raises(Forbidden):
        courses.delete_course(other_teacher, course.id)
    with pytest.raises(Forbidden):
        courses.update_course(student, course.id, title="Hacked")
    updated = courses.update_course(teacher, course.id, title="Geography")
    assert updated.title == "Geography"


def test_delete_chapter_reindexes(courses, teacher):
    course = courses.create_course(
        teacher,
        title="Maths",
        description="Numbers",
        chapters=[
            {"title": "Zero"},
            {"title": "One", "assignments": [assignment_payload(title="one-0")]},
            {"title": "Two", "assignments": [assignment_payload(title="two-0")]},
        ],
    )
    updated = courses.delete_chapter(teacher, course.id, 1)
    assert [c.title for c in updated.chapters] == ["Zero", "Two"]
    projection = courses.list_assignments(teacher, course.id)
    assert [(r["chapter_index"], r["item_index"], r["title"]) for r in projection] == [(1, 0, "two-0")]


def test_delete_course_cascades(course_with_assignment, courses, submissions, store, teacher, student):
    submissions.submit(student, course_with_assignment.id, ItemRef.at(ItemKind.ASSIGNMENT, 0, 0), content="x")
    courses.delete_course(teacher, course_with_assignment.id)
    assert store.find_course_by_id(course_with_assignment.id) is None
    with pytest.raises(NotFoundError):
        courses.delete_course(teacher, course_with_assignment.id)


def test_listings(courses, clock, teacher, other_teacher, student):
    first = courses.create_course(teacher, title="First", description="d", chapters=[], enrollment_key="k")
    clock.advance(60)
    second = courses.create_course(teacher, title="Second", description="d", chapters=[])
    clock.advance(60)
    courses.create_course(other_teacher, title="Elsewhere", description="d", chapters=[])
    courses.enroll(student, first.id, "k")

    mine = courses.list_courses_for_teacher(teacher)
    assert [c["title"] for c in mine] == ["Second", "First"]
    assert [c["id"] for c in courses.list_courses_for_student(student)] == [first.id]

    catalog = courses.list_catalog()
    assert [c["title"] for c in catalog] == ["Elsewhere", "Second", "First"]
    entry = next(c for c in catalog if c["id"] == first.id)
    assert entry["requires_enrollment_key"] is True
    assert entry["enrolled_count"] == 1
    assert "enrollment_key" not in entry
    assert second.id in {c["id"] for c in catalog}


def test_roster_and_removal(courses, teacher, student, other_student):
    course = courses.create_course(teacher, title="Drama", description="Stage", chapters=[])
    courses.enroll(student, course.id)
    courses.enroll(other_student, course.id)
    assert courses.list_students(teacher, course.id) == [{"student_id": student.id}, {"student_id": other_student.id}]
    with pytest.raises(Forbidden):
        courses.list_students(student, course.id)

    courses.unenroll(teacher, course.id, student.id)
    courses.unenroll(other_student, course.id)
    # Unenrolling someone who is not on the roster is a no-op.
    courses.unenroll(teacher, course.id, "ghost")
    assert courses.list_students(teacher, course.id) == []
    with pytest.raises(Forbidden):
        courses.unenroll(other_student, course.id, student.id)


def test_items_and_files_via_service(courses, teacher):
    course = courses.create_course(teacher, title="Bio", description="Life", chapters=["Cells"])
    lesson = courses.add_item(teacher, course.id, 0, ItemKind.LESSON, {"title": "Membranes", "content": "Lipids"})
    ref = ItemRef.by_id(lesson.id)
    courses.update_lesson(teacher, course.id, ref, title="Cell membranes")
    courses.attach_item_file(teacher, course.id, ref, {"name": "slides.pdf", "url": "https://f/s.pdf"})
    courses.add_course_file(teacher, course.id, {"name": "syllabus", "url": "https://f/syl"})
    courses.add_chapter_file(teacher, course.id, 0, {"name": "notes", "url": "https://f/n"})

    stats = courses.file_stats(teacher, course.id)
    assert stats["by_type"]["lesson"] == 1
    assert stats["total_files"] == 3
    stored = courses.get_course(teacher, course.id).chapters[0].lessons[0]
    assert stored.title == "Cell membranes"
    assert stored.file.name == "slides.pdf"

    courses.remove_course_file(teacher, course.id, 0)
    after = courses.delete_item(teacher, course.id, ref)
    assert after.chapters[0].lessons == []
    assert courses.file_stats(teacher, course.id)["total_files"] == 1


def test_teacher_id_cannot_be_changed(courses, teacher):
    course = courses.create_course(teacher, title="Bio", description="Life", chapters=[])
    with pytest.raises(ValidationError):
        courses.update_course(teacher, course.id, teacher_id="teacher-9")
    assert courses.get_course(teacher, course.id).teacher_id == teacher.id


def test_admin_role_alone_does_not_grant_access(courses, teacher):
    course = courses.create_course(teacher, title="Bio", description="Life", chapters=[])
    admin = Principal(id="admin-1", role="admin")
    with pytest.raises(Forbidden):
        courses.get_course(admin, course.id)
