"""Demo content for local development and operator seeding."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict

from backend.courses.model import Course
from backend.courses.services.courses import CoursesService
from backend.identity_access.domain import Principal


def demo_course_payload(now: datetime) -> Dict[str, Any]:
    """A small two-chapter course whose items are open around `now`."""
    opens = (now - timedelta(days=1)).isoformat()
    closes = (now + timedelta(days=7)).isoformat()
    return {
        "title": "Introduction to Programming",
        "description": "Variables, control flow and functions, one chapter at a time.",
        "enrollment_key": None,
        "chapters": [
            {
                "title": "Getting started",
                "lessons": [
                    {"title": "What is a program?", "content": "A program is a sequence of instructions."},
                    {"title": "Variables", "content": "Variables name values so we can reuse them."},
                ],
                "assignments": [
                    {
                        "title": "Hello, world",
                        "content": "Write a program that prints a greeting.",
                        "start_date_time": opens,
                        "end_date_time": closes,
                        "total_points": 10,
                    }
                ],
            },
            {
                "title": "Control flow",
                "lessons": [{"title": "Branches", "content": "if / else chooses between two paths."}],
                "quizzes": [
                    {
                        "title": "Branching check",
                        "description": "Three quick questions.",
                        "duration": 10,
                        "start_date_time": opens,
                        "end_date_time": closes,
                        "questions": [
                            {
                                "text": "Which keyword starts a branch?",
                                "type": "multiple_choice",
                                "options": ["for", "if", "def"],
                                "correct_answer": 1,
                                "points": 2,
                            },
                            {"text": "A loop can run zero times.", "type": "true_false", "correct_answer": True},
                            {
                                "text": "Name the keyword for the fallback branch.",
                                "type": "short_answer",
                                "correct_answer": "else",
                            },
                        ],
                    }
                ],
            },
        ],
    }


def seed_demo_course(service: CoursesService, teacher_id: str) -> Course:
    teacher = Principal(id=teacher_id, role="teacher")
    payload = demo_course_payload(service.clock())
    return service.create_course(
        teacher,
        title=payload["title"],
        description=payload["description"],
        chapters=payload["chapters"],
        enrollment_key=payload["enrollment_key"],
    )
