"""
sync/outbound.py -- Push locally registered users to the app backend.

OutboundSyncStage is a registration pipeline stage. For each new user:

  1. created by inbound sync (bsa_synced_from_app present) -> IGNORED.
     Without this guard an app-originated user would be echoed back.
  2. no SYNC_API_KEY configured -> warning, IGNORED.
  3. POST {app_url}/api/wordpress/sync-user with X-API-Key and
     {email, name, phone, source: "wordpress"}, bounded by the configured
     timeout.
  4. transport error or non-2xx -> failure markers + warning. No retry.
  5. 2xx -> synced-to-app markers.

Failures are recorded on the user and logged; they never propagate to the
registration that triggered the push.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from auth.models import User
from auth.store import UserStore
from core.config import Settings
from sync.markers import IMPORTED_PHONE_KEY, PHONE_NUMBER_KEY, SyncMarkers
from sync.registration import RegistrationOutcome

logger = logging.getLogger("bsabridge.sync")

SYNC_PATH = "/api/wordpress/sync-user"
SOURCE = "wordpress"

# Module-level session shared across pushes for connection pooling. The app
# endpoint is fixed, so a short redirect budget is plenty.
_session = requests.Session()
_session.max_redirects = 3


class OutboundSyncStage:
    name = "outbound_sync"

    def __init__(self, store: UserStore, settings: Settings) -> None:
        self.store = store
        self.markers = SyncMarkers(store)
        self.api_key = settings.sync_api_key
        self.endpoint = settings.app_url.rstrip("/") + SYNC_PATH
        self.timeout = settings.sync_timeout_seconds

    def run(self, user_id: int) -> RegistrationOutcome:
        if self.markers.is_synced_from_app(user_id):
            return RegistrationOutcome.IGNORED

        user = self.store.get_by_id(user_id)
        if user is None:
            return RegistrationOutcome.IGNORED

        if not self.api_key:
            logger.warning("Sync API key not configured -- skipping sync to app for user_id=%s", user_id)
            return RegistrationOutcome.IGNORED

        payload = self.build_payload(user)
        try:
            resp = _session.post(
                self.endpoint,
                json=payload,
                headers={"X-API-Key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Failed to sync user_id=%s to app: %s", user_id, e)
            self.markers.mark_failed(user_id, str(e))
            return RegistrationOutcome.HANDLED

        if 200 <= resp.status_code < 300:
            self.markers.mark_synced_to_app(user_id)
            logger.info("User user_id=%s synced to app", user_id)
        else:
            detail = f"HTTP {resp.status_code}: {resp.text[:200]}"
            logger.warning("App rejected sync for user_id=%s: %s", user_id, detail)
            self.markers.mark_failed(user_id, detail)
        return RegistrationOutcome.HANDLED

    def build_payload(self, user: User) -> dict[str, Any]:
        name = user.display_name or f"{user.first_name} {user.last_name}".strip()
        phone = self.store.get_meta(user.id, PHONE_NUMBER_KEY) or self.store.get_meta(user.id, IMPORTED_PHONE_KEY) or ""
        return {
            "email": user.email,
            "name": name,
            "phone": phone,
            "source": SOURCE,
        }
