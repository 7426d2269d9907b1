"""
API request and response models for bsa-bridge REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
importer/models.py, which own the internal domain representation. Route
handlers map between the two.

The inbound sync endpoint's bodies are fixed by the app's client
({success, action, wp_user_id, ...}); they do not use the ErrorResponse
envelope.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.sanitize import EMAIL_PATTERN
from importer.models import ImportSummary

# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. login accepts a login name or an email."""

    login: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    login is optional; when omitted the email doubles as the login name.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(min_length=8, max_length=255)
    login: Optional[str] = Field(default=None, max_length=60)
    display_name: Optional[str] = Field(default=None, max_length=255)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=40)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    user_id: int
    login: str
    roles: list[str]


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    login: str
    email: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    login: str
    email: str
    display_name: str
    roles: list[str]


# ---------------------------------------------------------------------------
# Inbound sync
# ---------------------------------------------------------------------------


class SyncCreatedResponse(BaseModel):
    """201 body for POST /bsa/v1/sync-user."""

    success: bool = True
    action: str = "created"
    wp_user_id: int
    username: str


class SyncExistsResponse(BaseModel):
    """200 body for POST /bsa/v1/sync-user when the email is already known."""

    success: bool = True
    action: str = "already_exists"
    wp_user_id: int


class SyncErrorResponse(BaseModel):
    """400 / 500 body for POST /bsa/v1/sync-user."""

    success: bool = False
    error: str


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class ImportResponse(BaseModel):
    """Response for POST /api/v1/import. error_details is human-facing text."""

    model_config = ConfigDict(frozen=True)

    total: int
    imported: int
    skipped: int
    errors: int
    enrollments_created: int
    error_details: list[str] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: ImportSummary) -> "ImportResponse":
        return cls(**summary.to_dict())


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
