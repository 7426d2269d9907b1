"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in lms/models.py and importer/models.py -- dataclasses own domain shape;
stores and pipelines do the work.

Layer rule: no imports from api/, importer/, lms/, or sync/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Role names shared with the web platform.
ROLE_SUBSCRIBER = "subscriber"
ROLE_ADMINISTRATOR = "administrator"


@dataclass
class User:
    """An account in the platform identity store.

    email is the identity key for import and sync. It is stored lowercased so
    a plain equality lookup is case-insensitive.

    roles keeps the primary role first. Importer-created users may carry a
    second, learner role granted by the course catalog.

    hashed_password is always in the native format. Users migrated from the
    app carry a random placeholder here until their first login replaces it
    (see auth/legacy.py).
    """

    login: str
    email: str
    id: int | None = None
    display_name: str = ""
    first_name: str = ""
    last_name: str = ""
    roles: list[str] = field(default_factory=lambda: [ROLE_SUBSCRIBER])
    hashed_password: str | None = None
    created_at: str | None = None
    last_login: str = ""

    def has_role(self, role: str) -> bool:
        return role in self.roles
