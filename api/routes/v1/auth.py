"""
api/routes/v1/auth.py -- Login, native registration and identity endpoints.

Routes:
  POST /api/v1/auth/login      -- runs the login pipeline; returns a JWT
  POST /api/v1/auth/register   -- native sign-up; fires the registration pipeline
  GET  /api/v1/auth/me         -- current user info (requires Bearer JWT)

Security:
  POST /login is rate-limited per IP. Every rejection -- unknown login, wrong
  native password, wrong legacy password -- returns the same 401 body, so the
  response does not reveal whether a legacy hash existed.
  Cache-Control: no-store on login responses.

Registration side effects:
  The registration pipeline (outbound sync to the app) is queued as a
  background task. It runs after the 201 is produced and its outcome never
  changes the response.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ErrorDetail, LoginRequest, LoginResponse, MeResponse, RegisterRequest, RegisterResponse
from auth.dependencies import get_current_user
from auth.models import ROLE_SUBSCRIBER, User
from auth.pipeline import LoginOutcome, LoginPipeline
from auth.store import UserCreationError, UserStore
from auth.tokens import create_access_token, hash_password
from core.config import get_settings
from core.sanitize import clean_text, sanitize_login
from sync.markers import PHONE_NUMBER_KEY

logger = logging.getLogger("bsabridge.api")

router = APIRouter()


@limiter.limit(lambda: get_settings().login_rate_limit)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with a login name or email plus password.

    The legacy credential stage runs first: a migrated user's first correct
    login upgrades the stored hash as a side effect of this call.
    """
    pipeline: LoginPipeline = request.app.state.login_pipeline
    result = pipeline.authenticate(body.login, body.password)
    if result.outcome is not LoginOutcome.AUTHENTICATED:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    user = result.user
    settings = request.app.state.settings
    request.app.state.user_store.update_last_login(user.id)
    token = create_access_token(user, settings.secret_key, settings.token_expire_seconds)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=settings.token_expire_seconds,
            user_id=user.id,
            login=user.login,
            roles=user.roles,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit("5/minute")
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest, background_tasks: BackgroundTasks) -> RegisterResponse:
    """Create a subscriber account and queue the registration pipeline."""
    user_store: UserStore = request.app.state.user_store
    email = body.email.lower()
    login_name = sanitize_login(body.login or email)
    if not login_name:
        raise HTTPException(
            status_code=422,
            detail=ErrorDetail(
                code="validation_error",
                message="Login name contains no usable characters.",
            ).model_dump(),
        )
    display_name = clean_text(body.display_name) or clean_text(f"{body.first_name or ''} {body.last_name or ''}")

    new_user = User(
        login=login_name,
        email=email,
        display_name=display_name,
        first_name=clean_text(body.first_name),
        last_name=clean_text(body.last_name),
        roles=[ROLE_SUBSCRIBER],
        hashed_password=hash_password(body.password),
    )
    try:
        user_id = user_store.create_user(new_user, meta={PHONE_NUMBER_KEY: clean_text(body.phone)})
    except UserCreationError as exc:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(code="user_exists", message=str(exc)).model_dump(),
        ) from exc

    logger.info("Registered user_id=%s", user_id)
    background_tasks.add_task(request.app.state.registration.dispatch, user_id)
    return RegisterResponse(user_id=user_id, login=login_name, email=email)


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=current_user.id,
        login=current_user.login,
        email=current_user.email,
        display_name=current_user.display_name,
        roles=current_user.roles,
    )
