"""
auth/legacy.py -- One-time upgrade of app-backend bcrypt hashes on first login.

Users migrated from the app (bulk import or inbound sync) carry their app
password hash in the `legacy_bcrypt` user-metadata key and a random
placeholder as their native hash. The first time such a user logs in with the
right password, this stage:

  1. verifies the plaintext against the legacy hash (constant-time bcrypt),
  2. writes a native hash of the plaintext and deletes the marker in one
     transaction,
  3. authenticates the user.

After that the marker is gone and the stage passes through, so every later
login is plain native verification.

A wrong password against an existing marker is rejected here, before native
verification runs. The rejection reason matches the native stage's, so the
caller cannot tell whether a legacy hash existed.
"""

from __future__ import annotations

import logging

from auth.pipeline import StageResult
from auth.store import UserStore
from auth.tokens import hash_password, verify_legacy_hash

logger = logging.getLogger("bsabridge.auth")

LEGACY_HASH_KEY = "legacy_bcrypt"


class LegacyCredentialStage:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def run(self, login: str, password: str) -> StageResult:
        if not login or not password:
            return StageResult.pass_through()

        user = self.store.resolve_login(login)
        if user is None:
            return StageResult.pass_through()

        legacy_hash = self.store.get_meta(user.id, LEGACY_HASH_KEY)
        if not legacy_hash:
            return StageResult.pass_through()

        if not verify_legacy_hash(password, legacy_hash):
            logger.info("Legacy password mismatch for user_id=%s", user.id)
            return StageResult.rejected("incorrect_password")

        if not self.store.upgrade_legacy_password(user.id, hash_password(password), LEGACY_HASH_KEY):
            logger.warning("Legacy upgrade found no user_id=%s", user.id)
            return StageResult.pass_through()
        upgraded = self.store.get_by_id(user.id)
        if upgraded is None:
            return StageResult.pass_through()
        logger.info("Upgraded legacy credential for user_id=%s", user.id)
        return StageResult.authenticated(upgraded)
