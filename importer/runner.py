"""
importer/runner.py -- Bulk import of app users into the platform.

Pipeline:
  export JSON -> parse_export() -> list[AppUserRecord]
  -> run_import(): per record, create-or-skip user -> enrollment pass
  -> ImportSummary

Per-record outcomes:
  error    -- no valid email, or the user could not be looked up, created or
              refreshed. Nothing else happens for that record (in
              particular, no enrollments).
  skipped  -- a user with that email already exists. Only bsa_app_id and
              bsa_phone are refreshed; identity fields are left alone.
  imported -- a new subscriber was created with a random placeholder
              password, the app metadata, and (if present) the app password
              hash as the legacy credential marker.

Skipped and imported users both go through the enrollment pass. Enrollment
is idempotent, so running the same export twice creates no duplicate users
and no duplicate enrollments.

Records are processed sequentially and each record commits on its own, so an
interrupted run leaves a consistent prefix and can simply be re-run.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.legacy import LEGACY_HASH_KEY
from auth.models import ROLE_SUBSCRIBER, User
from auth.store import UserCreationError, UserStore
from auth.tokens import generate_placeholder_password, hash_password
from core.sanitize import clean_text, normalize_email, sanitize_login, split_name
from importer.models import AppUserRecord, ImportSummary
from lms.store import CourseCatalog

logger = logging.getLogger("bsabridge.import")

APP_ID_KEY = "bsa_app_id"
PHONE_KEY = "bsa_phone"
COUNTRY_KEY = "bsa_country"
CITY_KEY = "bsa_city"


def build_course_mapping(catalog: CourseCatalog, external_id_key: str) -> dict[str, int]:
    """Map app course ids to local course ids over all published courses.

    Explicit external ids (course metadata under external_id_key) take
    precedence over slugs. For either kind, the first course seen keeps the
    key. Returns an empty mapping when no course subsystem is available.
    """
    if not catalog.available:
        return {}

    courses = catalog.published_courses()
    mapping: dict[str, int] = {}
    for course in courses:
        external_id = (course.meta.get(external_id_key) or "").strip()
        if external_id:
            mapping.setdefault(external_id, course.id)
    for course in courses:
        if course.slug:
            mapping.setdefault(course.slug, course.id)
    return mapping


def run_import(
    records: Iterable[AppUserRecord],
    users: UserStore,
    catalog: CourseCatalog,
    external_id_key: str = "bsa_course_id",
) -> ImportSummary:
    """Import every record; never raises on a single bad record."""
    records = list(records)
    summary = ImportSummary(total=len(records))
    mapping = build_course_mapping(catalog, external_id_key)
    logger.info("Import started: %d records, %d mapped course keys", len(records), len(mapping))

    for record in records:
        user_id = _import_record(record, users, catalog, summary)
        if user_id is None:
            continue
        summary.enrollments_created += _enroll(record, user_id, catalog, mapping)

    logger.info(
        "Import finished: total=%d imported=%d skipped=%d errors=%d enrollments=%d",
        summary.total,
        summary.imported,
        summary.skipped,
        summary.errors,
        summary.enrollments_created,
    )
    return summary


def _import_record(
    record: AppUserRecord,
    users: UserStore,
    catalog: CourseCatalog,
    summary: ImportSummary,
) -> Optional[int]:
    """Create or refresh the user for one record. Returns the user id, or None on error."""
    email = normalize_email(record.email)
    if not email:
        summary.add_error(f"User '{record.name}' has no email - skipped")
        return None

    try:
        existing = users.get_by_email(email)
    except (SQLAlchemyError, UnicodeError) as exc:
        summary.add_error(f"Failed to look up user '{email}': {exc}")
        logger.warning("Import could not look up %s: %s", email, exc)
        return None

    if existing is not None:
        try:
            if record.app_id is not None:
                users.set_meta(existing.id, APP_ID_KEY, record.app_id)
            if record.phone:
                users.set_meta(existing.id, PHONE_KEY, clean_text(record.phone))
        except UserCreationError as exc:
            summary.add_error(f"Failed to update user '{email}': {exc}")
            logger.warning("Import could not update %s: %s", email, exc)
            return None
        summary.skipped += 1
        return existing.id

    display_name = clean_text(record.name)
    first_name, last_name = split_name(display_name)
    roles = [ROLE_SUBSCRIBER]
    if catalog.student_role:
        roles.append(catalog.student_role)

    new_user = User(
        login=sanitize_login(email),
        email=email,
        display_name=display_name,
        first_name=first_name,
        last_name=last_name,
        roles=roles,
        hashed_password=hash_password(generate_placeholder_password(32)),
    )
    meta = {
        APP_ID_KEY: record.app_id,
        PHONE_KEY: clean_text(record.phone),
        COUNTRY_KEY: clean_text(record.country),
        CITY_KEY: clean_text(record.city),
        LEGACY_HASH_KEY: record.password_hash,
    }
    try:
        user_id = users.create_user(new_user, meta=meta)
    except UserCreationError as exc:
        summary.add_error(f"Failed to create user '{email}': {exc}")
        logger.warning("Import could not create %s: %s", email, exc)
        return None

    summary.imported += 1
    return user_id


def _enroll(record: AppUserRecord, user_id: int, catalog: CourseCatalog, mapping: dict[str, int]) -> int:
    """Enroll the user in every mapped course. Returns the number of new enrollments."""
    if not mapping:
        return 0
    created = 0
    for ref in record.enrollments:
        course_id = mapping.get(ref.course_id)
        if course_id is None:
            continue
        if catalog.enroll(user_id, course_id):
            created += 1
    return created
