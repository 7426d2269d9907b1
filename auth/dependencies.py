"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two credentials are accepted, for two different callers:
  Authorization: Bearer <jwt>  -- platform users (login route issues the JWT).
  X-API-Key: <shared secret>   -- the app backend calling the inbound sync
                                  endpoint. Not tied to any user.

get_current_user() raises 401 if no valid Bearer token is present.
require_admin() wraps it and raises 403 for non-administrators.
require_sync_api_key() raises 401 unless the configured shared secret matches.

Settings are read from request.app.state.settings (injected at startup).

Layer rule: no imports from api/, importer/, lms/, or sync/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import ROLE_ADMINISTRATOR, User
from auth.tokens import api_key_matches, decode_access_token


def try_get_current_user(request: Request) -> User | None:
    """Authenticate via Authorization: Bearer. Returns None on any failure."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_access_token(auth_header[7:], request.app.state.settings.secret_key)
    if payload is None:
        return None
    return request.app.state.user_store.get_by_id(payload["user_id"])


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_admin(request: Request) -> User:
    """Require the administrator role. 401 if unauthenticated, 403 otherwise."""
    user = get_current_user(request)
    if not user.has_role(ROLE_ADMINISTRATOR):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Administrator access required."},
        )
    return user


def require_sync_api_key(request: Request) -> None:
    """Require the shared sync secret in X-API-Key.

    Missing header, unconfigured key and wrong key all produce the same 401,
    so a caller cannot tell which check failed.
    """
    presented = request.headers.get("X-API-Key", "")
    expected = request.app.state.settings.sync_api_key
    if not api_key_matches(presented, expected):
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Invalid or missing API key."},
        )
