"""
auth/pipeline.py -- Login pipeline: ordered authentication stages.

Pattern: Chain of Responsibility. Each stage looks at a login attempt and
returns a StageResult:

  PASS_THROUGH   -- this stage has no opinion; try the next one
  AUTHENTICATED  -- stop; the attempt succeeded for result.user
  REJECTED       -- stop; the attempt failed (later stages do not run)

The first stage that does not pass through decides. If every stage passes
through, the attempt is rejected. The default composition (see
build_login_pipeline) is the legacy credential upgrade followed by native
password verification.

Layer rule: no imports from api/, importer/, lms/, or sync/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from auth.models import User
from auth.store import UserStore
from auth.tokens import verify_dummy, verify_password


class LoginOutcome(str, Enum):
    PASS_THROUGH = "pass_through"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StageResult:
    outcome: LoginOutcome
    user: Optional[User] = None
    reason: str = ""

    @classmethod
    def pass_through(cls) -> "StageResult":
        return cls(LoginOutcome.PASS_THROUGH)

    @classmethod
    def authenticated(cls, user: User) -> "StageResult":
        return cls(LoginOutcome.AUTHENTICATED, user=user)

    @classmethod
    def rejected(cls, reason: str) -> "StageResult":
        return cls(LoginOutcome.REJECTED, reason=reason)


class LoginStage(Protocol):
    def run(self, login: str, password: str) -> StageResult: ...


class NativePasswordStage:
    """Verify the password against the user's native hash.

    Always runs bcrypt, even for unknown users, so response time does not
    reveal whether a login exists.
    """

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def run(self, login: str, password: str) -> StageResult:
        if not login or not password:
            return StageResult.rejected("empty_credentials")
        user = self.store.resolve_login(login)
        if user is None or not user.hashed_password:
            verify_dummy(password)
            return StageResult.rejected("unknown_user")
        if not verify_password(password, user.hashed_password):
            return StageResult.rejected("incorrect_password")
        return StageResult.authenticated(user)


class LoginPipeline:
    """Run login stages in order until one of them decides."""

    def __init__(self, stages: list[LoginStage]) -> None:
        self.stages = list(stages)

    def authenticate(self, login: str, password: str) -> StageResult:
        login = (login or "").strip()
        password = password or ""
        for stage in self.stages:
            result = stage.run(login, password)
            if result.outcome is not LoginOutcome.PASS_THROUGH:
                return result
        return StageResult.rejected("no_stage_accepted")


def build_login_pipeline(store: UserStore) -> LoginPipeline:
    """Default composition: legacy upgrade first, then native verification."""
    from auth.legacy import LegacyCredentialStage

    return LoginPipeline([LegacyCredentialStage(store), NativePasswordStage(store)])
