"""
sync/inbound.py -- Create platform accounts for users who registered in the app.

sync_user_from_app() is the transport-free core of POST /bsa/v1/sync-user.
API-key authentication happens in the route dependency before this runs.

Outcomes:
  InboundResult(action="already_exists")  -- email already known; nothing written
  InboundResult(action="created")         -- new subscriber with provenance markers
  SyncValidationError                     -- no usable email (route -> 400)
  UserCreationError                       -- store refused the insert (route -> 500)

The new user row, its legacy password hash, its phone number and the
synced-from-app marker are written in one transaction (UserStore.create_user),
so outbound sync can never observe the user without the marker.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.legacy import LEGACY_HASH_KEY
from auth.models import ROLE_SUBSCRIBER, User
from auth.store import UserStore
from auth.tokens import generate_placeholder_password, hash_password
from core.sanitize import clean_text, normalize_email, sanitize_login, split_name
from sync.markers import PHONE_NUMBER_KEY, synced_from_app_meta


class SyncValidationError(ValueError):
    """The inbound payload cannot be processed (e.g. missing email)."""


class InboundUser(BaseModel):
    """Inbound sync payload. All fields optional at parse time; email is checked after."""

    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True, extra="ignore")

    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    password_hash: Optional[str] = None


@dataclass(frozen=True)
class InboundResult:
    action: str  # "created" | "already_exists"
    user_id: int
    username: Optional[str] = None


def derive_username(store: UserStore, name: str, email: str) -> str:
    """Pick a login that does not collide with an existing one.

    Candidates, in order: the name without whitespace, lowercased; the email
    local part; the last candidate plus "_NNN" (random 100-999), redrawn until
    free.
    """
    candidate = sanitize_login("".join(name.split()).lower())
    if not candidate or store.login_exists(candidate):
        candidate = sanitize_login(email.split("@", 1)[0])
    if not candidate:
        candidate = "user"
    base = candidate
    while store.login_exists(candidate):
        candidate = f"{base}_{100 + secrets.randbelow(900)}"
    return candidate


def sync_user_from_app(store: UserStore, payload: InboundUser) -> InboundResult:
    email = normalize_email(payload.email)
    if not email:
        raise SyncValidationError("Email required")

    existing = store.get_by_email(email)
    if existing is not None:
        return InboundResult(action="already_exists", user_id=existing.id)

    name = clean_text(payload.name)
    first_name, last_name = split_name(name, max_parts=2)
    username = derive_username(store, name, email)

    meta = {
        LEGACY_HASH_KEY: (payload.password_hash or "").strip(),
        PHONE_NUMBER_KEY: clean_text(payload.phone),
        **synced_from_app_meta(),
    }
    user_id = store.create_user(
        User(
            login=username,
            email=email,
            display_name=name,
            first_name=first_name,
            last_name=last_name,
            roles=[ROLE_SUBSCRIBER],
            hashed_password=hash_password(generate_placeholder_password(24)),
        ),
        meta=meta,
    )
    return InboundResult(action="created", user_id=user_id, username=username)
