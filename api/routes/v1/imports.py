"""
api/routes/v1/imports.py -- Bulk user import from an app export file.

Route:
  POST /api/v1/import   -- multipart/form-data, field "file" (administrators only)

The upload is capped at Settings.max_import_bytes. A malformed document is
rejected as a whole (400); bad individual records are counted in the summary
and never fail the request.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile

from api.limiter import limiter
from api.models import ErrorDetail, ImportResponse
from auth.dependencies import require_admin
from importer.parser import ImportFormatError, parse_export
from importer.runner import run_import

router = APIRouter(dependencies=[Depends(require_admin)])


@limiter.limit("5/minute")
@router.post("/import", response_model=ImportResponse)
async def import_users(request: Request, file: UploadFile) -> ImportResponse:
    """Import users (and their course enrollments) from an app JSON export."""
    settings = request.app.state.settings
    max_bytes: int = settings.max_import_bytes

    # Size guard -- read up to the limit + 1 byte; reject if over limit
    raw = await file.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(
                code="file_too_large",
                message=f"Upload exceeds the {max_bytes} byte limit.",
            ).model_dump(),
        )

    try:
        records = parse_export(raw.decode("utf-8", errors="replace"))
    except ImportFormatError as exc:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_format", message=str(exc)).model_dump(),
        ) from exc

    summary = run_import(
        records,
        request.app.state.user_store,
        request.app.state.catalog,
        external_id_key=settings.course_external_id_key,
    )
    return ImportResponse.from_summary(summary)
