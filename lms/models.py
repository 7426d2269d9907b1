"""
lms/models.py -- Domain dataclasses for courses and enrollments.

These are pure data containers with zero logic. Mapping and enrollment rules
live in lms/store.py.

id is None before the record is written to the database.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Course:
    """A course on the platform.

    Only courses with status "publish" take part in the import course
    mapping. meta holds free-form course attributes, including the app-side
    course id under the configured external-id key.
    """

    slug: str
    title: str = ""
    status: str = "publish"  # "publish" | "draft" | "private"
    id: Optional[int] = None
    meta: dict[str, str] = field(default_factory=dict)
    created_at: str = ""


@dataclass
class Enrollment:
    """A user's enrollment in a course. Records are never updated by the importer."""

    user_id: int
    course_id: int
    status: str = "completed"
    title: str = "BSA Import Enrollment"
    id: Optional[int] = None
    created_at: str = ""
