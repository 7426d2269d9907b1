"""
importer/models.py -- Dataclasses for the app export and the import result.

AppUserRecord mirrors one entry of the app's user export. It is read-only
input: the importer never mutates a record. ImportSummary is the result of a
run, returned to the CLI and the HTTP route alike.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass(frozen=True)
class EnrollmentRef:
    """An app-side course reference. course_id is always stringified."""

    course_id: str


@dataclass(frozen=True)
class AppUserRecord:
    """One user from the app export.

    raw preserves the original JSON object for audit and debugging.
    """

    app_id: Optional[str]
    name: str
    email: str
    phone: str = ""
    country: str = ""
    city: str = ""
    password_hash: str = ""
    enrollments: tuple[EnrollmentRef, ...] = ()
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass
class ImportSummary:
    """Counters and human-readable error lines for one import run."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    enrollments_created: int = 0
    error_details: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors += 1
        self.error_details.append(message)

    def to_dict(self) -> dict:
        return asdict(self)
