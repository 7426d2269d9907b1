"""
tests/test_import_route.py -- Integration tests for POST /api/v1/import.

Covers:
  - administrators only (401 without token, 403 for subscribers)
  - malformed document -> 400 invalid_format, nothing imported
  - summary counters and enrollments for a valid export
  - text the database cannot store is replaced, not a server error
  - oversized upload -> 413
"""

from __future__ import annotations

import json

from auth.models import User
from auth.tokens import create_access_token
from lms.models import Course


def _upload(api, content: bytes, headers: dict | None = None):
    return api.client.post(
        "/api/v1/import",
        files={"file": ("users.json", content, "application/json")},
        headers=api.admin_headers if headers is None else headers,
    )


def _export(*users: dict) -> bytes:
    return json.dumps({"users": list(users)}).encode("utf-8")


def test_import_requires_authentication(api):
    resp = _upload(api, _export(), headers={})

    assert resp.status_code == 401


def test_import_requires_administrator(api):
    uid = api.user_store.create_user(User(login="sub", email="sub@example.com"))
    token = create_access_token(api.user_store.get_by_id(uid), api.settings.secret_key, 60)

    resp = _upload(api, _export(), headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_import_malformed_document_is_400(api):
    resp = _upload(api, b'{"people": []}')

    assert resp.status_code == 400
    assert resp.json()["error"] == {
        "code": "invalid_format",
        "message": 'Invalid JSON file format. Expected "users" array.',
        "detail": None,
    }


def test_import_not_json_is_400(api):
    assert _upload(api, b"\xff\xfe not json").status_code == 400


def test_import_returns_summary(api):
    course_id = api.course_store.create_course(Course(slug="parenting", meta={"bsa_course_id": "c_7"}))
    content = _export(
        {"id": "1", "name": "Amina Yusuf", "email": "amina@example.com", "enrollments": [{"courseId": "c_7"}]},
        {"id": "2", "name": "Admin Again", "email": "admin@example.org"},
        {"id": "3", "name": "No Mail"},
    )

    resp = _upload(api, content)

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert body["imported"] == 1
    assert body["skipped"] == 1
    assert body["errors"] == 1
    assert body["enrollments_created"] == 1
    assert body["error_details"] == ["User 'No Mail' has no email - skipped"]
    amina = api.user_store.get_by_email("amina@example.com")
    assert api.course_store.is_enrolled(amina.id, course_id)


def test_import_with_lone_surrogate_still_returns_summary(api):
    content = _export(
        {"id": "1", "name": "\ud800bad", "email": "bad@example.com"},
        {"id": "2", "name": "Ok", "email": "ok@example.com"},
    )

    resp = _upload(api, content)

    assert resp.status_code == 200
    assert (resp.json()["imported"], resp.json()["errors"]) == (2, 0)
    assert api.user_store.get_by_email("bad@example.com").display_name == "?bad"


def test_import_does_not_push_users_to_app(api):
    api.session.post.reset_mock()

    _upload(api, _export({"id": "1", "name": "Quiet", "email": "quiet@example.com"}))

    api.session.post.assert_not_called()


def test_import_too_large_is_413(api):
    api.client.app.state.settings = api.settings.model_copy(update={"max_import_bytes": 64})

    resp = _upload(api, _export({"id": "1", "name": "x" * 200, "email": "big@example.com"}))

    assert resp.status_code == 413
    assert resp.json()["error"]["code"] == "file_too_large"
    assert api.user_store.get_by_email("big@example.com") is None
