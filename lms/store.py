"""
lms/store.py -- Course catalog capability and its SQLAlchemy-backed implementation.

The importer links migrated users to courses, but the course subsystem is
optional: a deployment may run without an LMS. Instead of probing for the LMS
at call time, the catalog is chosen once at startup (build_catalog):

  LmsCatalog   -- real catalog over CourseStore + the user-metadata list of
                  enrolled course ids
  NullCatalog  -- no courses, enrollments never created, no learner role

Both satisfy the CourseCatalog protocol, so callers never branch on which one
they got.

CourseStore is a Repository + Data Mapper over three tables (courses,
course_meta, enrollments), same shape as auth/store.py.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.store import UserStore
from core.config import Settings
from lms.models import Course, Enrollment

logger = logging.getLogger("bsabridge.lms")

# User-metadata key listing enrolled course ids, one row per course.
ENROLLED_COURSES_KEY = "_tutor_enrolled_courses_ids"
STUDENT_ROLE = "tutor_student"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_courses = Table(
    "courses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String(200), nullable=False, unique=True),
    Column("title", String(255), nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default="publish"),
    Column("created_at", String(32), nullable=False),
)

_course_meta = Table(
    "course_meta",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("course_id", Integer, nullable=False),
    Column("meta_key", String(255), nullable=False),
    Column("meta_value", Text),
    Index("ix_course_meta_course_key", "course_id", "meta_key"),
)

_enrollments = Table(
    "enrollments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("course_id", Integer, nullable=False),
    Column("status", String(20), nullable=False, server_default="completed"),
    Column("title", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Index("ix_enrollments_user_course", "user_id", "course_id"),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CourseStore:
    """Repository for Course and Enrollment entities.

    Usage:
        store = CourseStore("sqlite:///:memory:")
        cid = store.create_course(Course(slug="parenting-101", meta={"bsa_course_id": "7"}))
        store.create_enrollment(Enrollment(user_id=1, course_id=cid))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def create_course(self, course: Course) -> int:
        """Insert a course and its metadata; return the new course ID.

        Raises sqlalchemy.exc.IntegrityError if the slug already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _courses.insert().values(
                    slug=course.slug,
                    title=course.title,
                    status=course.status,
                    created_at=_now_iso(),
                )
            )
            course_id = result.inserted_primary_key[0]
            rows = [{"course_id": course_id, "meta_key": k, "meta_value": str(v)} for k, v in course.meta.items()]
            if rows:
                conn.execute(_course_meta.insert(), rows)
            conn.commit()
        return course_id

    def get_course(self, course_id: int) -> Optional[Course]:
        with self.engine.connect() as conn:
            row = conn.execute(_courses.select().where(_courses.c.id == course_id)).fetchone()
            if row is None:
                return None
            meta = self._load_meta(conn, [course_id])
        return _row_to_course(row, meta.get(course_id, {}))

    def list_courses(self, status: Optional[str] = None) -> list[Course]:
        """Return courses ordered by ID, optionally filtered by status."""
        query = _courses.select().order_by(_courses.c.id)
        if status is not None:
            query = query.where(_courses.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            meta = self._load_meta(conn, [r.id for r in rows])
        return [_row_to_course(r, meta.get(r.id, {})) for r in rows]

    @staticmethod
    def _load_meta(conn, course_ids: list[int]) -> dict[int, dict[str, str]]:
        """Batch-load course metadata. The first value wins for repeated keys."""
        if not course_ids:
            return {}
        rows = conn.execute(
            _course_meta.select().where(_course_meta.c.course_id.in_(course_ids)).order_by(_course_meta.c.id)
        ).fetchall()
        meta: dict[int, dict[str, str]] = {}
        for r in rows:
            meta.setdefault(r.course_id, {}).setdefault(r.meta_key, r.meta_value)
        return meta

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_enrollments.c.id).where(
                    (_enrollments.c.user_id == user_id) & (_enrollments.c.course_id == course_id)
                )
            ).fetchone()
        return row is not None

    def create_enrollment(self, enrollment: Enrollment) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _enrollments.insert().values(
                    user_id=enrollment.user_id,
                    course_id=enrollment.course_id,
                    status=enrollment.status,
                    title=enrollment.title,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return result.inserted_primary_key[0]

    def list_enrollments(self, user_id: int) -> list[Enrollment]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _enrollments.select().where(_enrollments.c.user_id == user_id).order_by(_enrollments.c.id)
            ).fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


class CourseCatalog(Protocol):
    """What the importer needs from a course subsystem."""

    available: bool
    student_role: Optional[str]

    def published_courses(self) -> list[Course]: ...

    def is_enrolled(self, user_id: int, course_id: int) -> bool: ...

    def enroll(self, user_id: int, course_id: int) -> bool: ...


class LmsCatalog:
    """Course catalog backed by CourseStore.

    enroll() is idempotent twice over: it checks the enrollment table first,
    and it only appends to the user's enrolled-course list when the id is not
    already there.
    """

    available = True
    student_role: Optional[str] = STUDENT_ROLE

    def __init__(self, courses: CourseStore, users: UserStore) -> None:
        self.courses = courses
        self.users = users

    def published_courses(self) -> list[Course]:
        return self.courses.list_courses(status="publish")

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        return self.courses.is_enrolled(user_id, course_id)

    def enroll(self, user_id: int, course_id: int) -> bool:
        """Enroll the user. Returns True only if a new enrollment was created."""
        if self.courses.is_enrolled(user_id, course_id):
            return False

        self.courses.create_enrollment(Enrollment(user_id=user_id, course_id=course_id))

        existing_ids: set[int] = set()
        for value in self.users.get_meta_values(user_id, ENROLLED_COURSES_KEY):
            try:
                existing_ids.add(int(value))
            except (TypeError, ValueError):
                continue
        if int(course_id) not in existing_ids:
            self.users.add_meta(user_id, ENROLLED_COURSES_KEY, course_id)
        return True


class NullCatalog:
    """Stand-in used when no course subsystem is available."""

    available = False
    student_role: Optional[str] = None

    def published_courses(self) -> list[Course]:
        return []

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        return False

    def enroll(self, user_id: int, course_id: int) -> bool:
        return False


def build_catalog(settings: Settings, courses: Optional[CourseStore], users: UserStore) -> CourseCatalog:
    """Select the catalog implementation once, at composition time."""
    if settings.lms_enabled and courses is not None:
        return LmsCatalog(courses, users)
    logger.info("Course subsystem disabled -- enrollments will be skipped")
    return NullCatalog()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_course(row, meta: dict[str, str]) -> Course:
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        status=row.status,
        meta=dict(meta),
        created_at=row.created_at,
    )


def _row_to_enrollment(row) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        status=row.status,
        title=row.title,
        created_at=row.created_at,
    )
