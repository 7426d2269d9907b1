"""
sync/markers.py -- Typed accessors for per-user sync state.

Sync provenance and outcome are stored as user metadata. This module is the
only place that knows the key names; everything else calls SyncMarkers.

  bsa_synced_from_app / bsa_sync_date
      Set once, at creation, by inbound sync. Presence permanently
      suppresses outbound sync for the user (loop prevention).
  bsa_synced_to_app / bsa_sync_to_app_date
      Outbound delivery succeeded.
  bsa_sync_to_app_failed / bsa_sync_error
      Outbound delivery failed; the error text is kept for operators.
"""

from __future__ import annotations

from datetime import datetime, timezone

from auth.store import UserStore

SYNCED_FROM_APP_KEY = "bsa_synced_from_app"
SYNC_DATE_KEY = "bsa_sync_date"
SYNCED_TO_APP_KEY = "bsa_synced_to_app"
SYNC_TO_APP_DATE_KEY = "bsa_sync_to_app_date"
SYNC_FAILED_KEY = "bsa_sync_to_app_failed"
SYNC_ERROR_KEY = "bsa_sync_error"

PHONE_NUMBER_KEY = "phone_number"
# Written by the bulk importer; the outbound payload falls back to it.
IMPORTED_PHONE_KEY = "bsa_phone"

_FLAG = "1"
# Error text is operator-facing; keep rows bounded.
_MAX_ERROR_LEN = 500


def sync_timestamp() -> str:
    """UTC timestamp in the platform's "Y-m-d H:i:s" format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def synced_from_app_meta() -> dict[str, str]:
    """Metadata to write together with a user created by inbound sync."""
    return {SYNCED_FROM_APP_KEY: _FLAG, SYNC_DATE_KEY: sync_timestamp()}


class SyncMarkers:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def is_synced_from_app(self, user_id: int) -> bool:
        return self.store.has_meta(user_id, SYNCED_FROM_APP_KEY)

    def is_synced_to_app(self, user_id: int) -> bool:
        return self.store.has_meta(user_id, SYNCED_TO_APP_KEY)

    def has_failed(self, user_id: int) -> bool:
        return self.store.has_meta(user_id, SYNC_FAILED_KEY)

    def last_error(self, user_id: int) -> str | None:
        return self.store.get_meta(user_id, SYNC_ERROR_KEY)

    def mark_synced_to_app(self, user_id: int) -> None:
        self.store.set_meta(user_id, SYNCED_TO_APP_KEY, _FLAG)
        self.store.set_meta(user_id, SYNC_TO_APP_DATE_KEY, sync_timestamp())

    def mark_failed(self, user_id: int, error: str) -> None:
        self.store.set_meta(user_id, SYNC_FAILED_KEY, _FLAG)
        self.store.set_meta(user_id, SYNC_ERROR_KEY, (error or "unknown error")[:_MAX_ERROR_LEN])
