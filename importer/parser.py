"""
importer/parser.py -- Parser for the app's user export.

Expected shape:
{
  "users": [
    {
      "id": "u_123", "name": "Amina Yusuf", "email": "amina@example.com",
      "phone": "+252...", "country": "SO", "city": "Hargeisa",
      "passwordHash": "$2b$10$...",
      "enrollments": [{"courseId": "c_7"}]
    }
  ]
}

The document as a whole must be well formed -- otherwise ImportFormatError is
raised and nothing is imported. Individual entries are never rejected here:
a malformed entry becomes an AppUserRecord with empty fields, and the runner
counts it as an error. Email validation is likewise the runner's job.
"""

import json

from importer.models import AppUserRecord, EnrollmentRef


class ImportFormatError(ValueError):
    """The export document is not JSON or has no "users" array."""


_FORMAT_MESSAGE = 'Invalid JSON file format. Expected "users" array.'


def parse_export(content: str) -> list[AppUserRecord]:
    """Parse an export document into AppUserRecords, preserving order."""
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ImportFormatError(_FORMAT_MESSAGE) from exc

    if not isinstance(data, dict) or not isinstance(data.get("users"), list):
        raise ImportFormatError(_FORMAT_MESSAGE)

    return [parse_record(entry) for entry in data["users"]]


def parse_record(entry) -> AppUserRecord:
    """Build an AppUserRecord from one export entry. Never raises."""
    if not isinstance(entry, dict):
        return AppUserRecord(app_id=None, name="", email="", raw={"value": entry})

    app_id = entry.get("id")
    return AppUserRecord(
        app_id=_scrub(str(app_id)) if app_id not in (None, "") else None,
        name=_text(entry.get("name")),
        email=_text(entry.get("email")),
        phone=_text(entry.get("phone")),
        country=_text(entry.get("country")),
        city=_text(entry.get("city")),
        password_hash=_text(entry.get("passwordHash")),
        enrollments=_enrollments(entry.get("enrollments")),
        raw=entry,
    )


def _text(value) -> str:
    if value is None:
        return ""
    return _scrub(str(value)).strip()


def _scrub(text: str) -> str:
    """Replace lone surrogates (legal in JSON escapes, not storable as UTF-8) with "?"."""
    return text.encode("utf-8", "replace").decode("utf-8")


def _enrollments(value) -> tuple[EnrollmentRef, ...]:
    """Keep entries that carry a courseId; drop everything else."""
    if not isinstance(value, list):
        return ()
    refs: list[EnrollmentRef] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        course_id = item.get("courseId")
        if course_id in (None, ""):
            continue
        refs.append(EnrollmentRef(course_id=_text(course_id)))
    return tuple(refs)
