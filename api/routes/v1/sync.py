"""
api/routes/v1/sync.py -- Inbound sync endpoint called by the app backend.

Route:
  POST /bsa/v1/sync-user   (header X-API-Key, JSON {email, name, phone, password_hash})

Responses (fixed by the app's client):
  201 {success: true, action: "created", wp_user_id, username}
  200 {success: true, action: "already_exists", wp_user_id}
  400 {success: false, error}     -- missing email or unreadable body
  401                             -- missing / wrong / unconfigured API key
  500 {success: false, error}     -- user creation failed

Ordering: the API key is checked by a route dependency before the body is
read, and the body is parsed by hand inside the handler. A request with a bad
key gets 401 whatever its body looks like.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.models import SyncCreatedResponse, SyncErrorResponse, SyncExistsResponse
from auth.dependencies import require_sync_api_key
from auth.store import UserCreationError, UserStore
from sync.inbound import InboundUser, SyncValidationError, sync_user_from_app

logger = logging.getLogger("bsabridge.sync")

router = APIRouter(dependencies=[Depends(require_sync_api_key)])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=SyncErrorResponse(error=message).model_dump())


@router.post("/sync-user", status_code=201)
async def sync_user(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
    """Create (or recognise) a platform account for a user who registered in the app."""
    try:
        data = await request.json()
    except ValueError:
        return _error(400, "Invalid JSON body")
    if not isinstance(data, dict):
        return _error(400, "Invalid JSON body")

    try:
        payload = InboundUser.model_validate(data)
    except ValidationError:
        return _error(400, "Invalid field types in request body")

    user_store: UserStore = request.app.state.user_store
    try:
        result = sync_user_from_app(user_store, payload)
    except SyncValidationError as exc:
        return _error(400, str(exc))
    except UserCreationError as exc:
        logger.warning("Inbound sync could not create user: %s", exc)
        return _error(500, str(exc))

    if result.action == "already_exists":
        return JSONResponse(
            status_code=200,
            content=SyncExistsResponse(wp_user_id=result.user_id).model_dump(),
        )

    logger.info("Inbound sync created user_id=%s", result.user_id)
    background_tasks.add_task(request.app.state.registration.dispatch, result.user_id)
    return JSONResponse(
        status_code=201,
        content=SyncCreatedResponse(wp_user_id=result.user_id, username=result.username).model_dump(),
    )
