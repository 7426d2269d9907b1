"""
tests/test_inbound_sync.py -- App -> platform sync (POST /bsa/v1/sync-user).

Covers:
  - sync_user_from_app(): created vs already_exists, provenance markers
    written with the user, legacy hash stored, name split in two
  - derive_username(): name, then email local part, then random suffix;
    generated logins never collide
  - HTTP: 201 / 200 / 400 / 401 bodies, 401 before any body parsing,
    created users are never pushed back to the app
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from auth.legacy import LEGACY_HASH_KEY
from auth.models import ROLE_SUBSCRIBER, User
from sync.inbound import InboundUser, SyncValidationError, derive_username, sync_user_from_app
from sync.markers import PHONE_NUMBER_KEY, SYNC_DATE_KEY, SYNCED_FROM_APP_KEY, SYNCED_TO_APP_KEY, SyncMarkers


def _payload(**kwargs) -> InboundUser:
    data = {"email": "amina@example.com", "name": "Amina Yusuf Ali", "phone": "+252 63 1234567"}
    data.update(kwargs)
    return InboundUser.model_validate(data)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def test_creates_user_with_markers(user_store, make_legacy_hash):
    legacy = make_legacy_hash("app-password")

    result = sync_user_from_app(user_store, _payload(password_hash=legacy))

    assert result.action == "created"
    assert result.username == "aminayusufali"
    user = user_store.get_by_id(result.user_id)
    assert user.login == "aminayusufali"
    assert user.roles == [ROLE_SUBSCRIBER]
    assert (user.first_name, user.last_name) == ("Amina", "Yusuf Ali")
    assert user.display_name == "Amina Yusuf Ali"
    assert user_store.get_meta(user.id, SYNCED_FROM_APP_KEY) == "1"
    assert user_store.get_meta(user.id, SYNC_DATE_KEY)
    assert user_store.get_meta(user.id, LEGACY_HASH_KEY) == legacy
    assert user_store.get_meta(user.id, PHONE_NUMBER_KEY) == "+252 63 1234567"


def test_existing_email_is_reported_not_modified(user_store):
    uid = user_store.create_user(User(login="amina", email="amina@example.com", display_name="Original"))

    result = sync_user_from_app(user_store, _payload(email="  AMINA@Example.com "))

    assert result.action == "already_exists"
    assert result.user_id == uid
    assert user_store.get_by_id(uid).display_name == "Original"
    assert not SyncMarkers(user_store).is_synced_from_app(uid)


@pytest.mark.parametrize("email", [None, "", "   ", "not-an-email"])
def test_missing_email_raises(user_store, email):
    with pytest.raises(SyncValidationError, match="Email required"):
        sync_user_from_app(user_store, _payload(email=email))


def test_missing_password_hash_leaves_no_marker(user_store):
    result = sync_user_from_app(user_store, _payload())

    assert user_store.get_meta(result.user_id, LEGACY_HASH_KEY) is None


def test_derive_username_prefers_name(user_store):
    assert derive_username(user_store, "Amina Yusuf", "x@example.com") == "aminayusuf"


def test_derive_username_falls_back_to_email_local_part(user_store):
    user_store.create_user(User(login="aminayusuf", email="other@example.com"))

    assert derive_username(user_store, "Amina Yusuf", "amina.y@example.com") == "amina.y"
    assert derive_username(user_store, "", "faisal@example.com") == "faisal"


def test_derive_username_adds_suffix_until_free(user_store):
    user_store.create_user(User(login="amina", email="a1@example.com"))
    user_store.create_user(User(login="amina_500", email="a2@example.com"))

    with patch("sync.inbound.secrets.randbelow", side_effect=[400, 400, 17]):
        login = derive_username(user_store, "", "amina@example.com")

    assert login == "amina_117"


def test_derive_username_never_empty(user_store):
    assert derive_username(user_store, "", "!!!@example.com") == "user"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def test_sync_endpoint_creates_user(api):
    resp = api.client.post(
        "/bsa/v1/sync-user",
        json={"email": "new@example.com", "name": "New Person", "phone": "123"},
        headers=api.sync_headers,
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["action"] == "created"
    assert body["username"] == "newperson"
    assert api.user_store.get_by_id(body["wp_user_id"]).email == "new@example.com"


def test_sync_endpoint_reports_existing_user(api):
    resp = api.client.post(
        "/bsa/v1/sync-user",
        json={"email": "ADMIN@example.org"},
        headers=api.sync_headers,
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "action": "already_exists", "wp_user_id": api.admin_id}


def test_sync_endpoint_is_idempotent(api):
    payload = {"email": "twice@example.com", "name": "Twice"}
    first = api.client.post("/bsa/v1/sync-user", json=payload, headers=api.sync_headers)
    second = api.client.post("/bsa/v1/sync-user", json=payload, headers=api.sync_headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["wp_user_id"] == first.json()["wp_user_id"]


def test_sync_endpoint_missing_email_is_400(api):
    resp = api.client.post("/bsa/v1/sync-user", json={"name": "No Mail"}, headers=api.sync_headers)

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Email required"}


def test_sync_endpoint_malformed_body_is_400(api):
    resp = api.client.post(
        "/bsa/v1/sync-user",
        content=b"{not json",
        headers={**api.sync_headers, "Content-Type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_sync_endpoint_non_object_body_is_400(api):
    resp = api.client.post("/bsa/v1/sync-user", json=["a@example.com"], headers=api.sync_headers)

    assert resp.status_code == 400


@pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong-key"}, {"X-API-Key": ""}])
def test_sync_endpoint_rejects_bad_key(api, headers):
    resp = api.client.post("/bsa/v1/sync-user", json={"email": "k@example.com"}, headers=headers)

    assert resp.status_code == 401
    assert api.user_store.get_by_email("k@example.com") is None


def test_sync_endpoint_checks_key_before_body(api):
    resp = api.client.post(
        "/bsa/v1/sync-user",
        content=b"{not json",
        headers={"X-API-Key": "wrong-key", "Content-Type": "application/json"},
    )

    assert resp.status_code == 401


def test_sync_endpoint_rejects_everything_when_unconfigured(api):
    api.client.app.state.settings = api.settings.model_copy(update={"sync_api_key": ""})

    resp = api.client.post("/bsa/v1/sync-user", json={"email": "k@example.com"}, headers={"X-API-Key": ""})

    assert resp.status_code == 401


def test_synced_user_is_not_pushed_back(api):
    api.session.post.reset_mock()

    resp = api.client.post(
        "/bsa/v1/sync-user",
        json={"email": "loop@example.com", "name": "Loop Test"},
        headers=api.sync_headers,
    )

    assert resp.status_code == 201
    uid = resp.json()["wp_user_id"]
    api.session.post.assert_not_called()
    assert api.user_store.get_meta(uid, SYNCED_TO_APP_KEY) is None
