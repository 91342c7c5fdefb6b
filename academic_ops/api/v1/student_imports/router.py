from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.auth.dependencies import get_current_user
from academic_ops.auth.rbac import check_permission
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core.config import settings
from academic_ops.core.schemas import ErrorResponse
from academic_ops.db.session import get_db

from .schemas import (
    ImportBatchResponse,
    ImportBatchStatusResponse,
    ImportCommitResponse,
    ImportPreviewResponse,
)
from .parser import check_upload_size
from . import service

router = APIRouter(
    prefix="/api/v1/students/bulk",
    tags=["student-imports"],
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)


@router.get(
    "/template",
    dependencies=[Depends(check_permission("students", "read"))],
)
async def download_import_template(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Header row plus one example row using the school's own session and class names."""
    if format == "xlsx":
        return Response(
            content=await service.build_template_xlsx(db, current_user.school_id),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": "attachment; filename=student_import_template.xlsx"},
        )
    return Response(
        content=await service.build_template_csv(db, current_user.school_id),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=student_import_template.csv"},
    )


@router.post(
    "/preview",
    response_model=ImportPreviewResponse,
    dependencies=[Depends(check_permission("students", "create"))],
)
async def preview_import(
    file: UploadFile = File(..., description="CSV (UTF-8) or XLSX file using the template columns"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ImportPreviewResponse:
    """
    Validate an upload and stage it. Always returns the full row-by-row report; invalid rows
    are listed with their errors and will not be imported. Commit with the returned batch_id.
    """
    if file.size is not None:
        check_upload_size(file.size, settings.import_max_bytes)
    # One byte past the limit is enough for the parser to reject oversize files
    content = await file.read(settings.import_max_bytes + 1)
    return await service.preview_import(db, current_user, file.filename or "", content)


@router.get(
    "/{batch_id}",
    response_model=ImportBatchResponse,
    dependencies=[Depends(check_permission("students", "read"))],
)
async def get_import_batch(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ImportBatchResponse:
    return await service.get_batch(db, current_user.school_id, batch_id)


@router.get(
    "/{batch_id}/errors.csv",
    dependencies=[Depends(check_permission("students", "read"))],
)
async def download_import_errors(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    return Response(
        content=await service.get_error_csv(db, current_user.school_id, batch_id),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=import_{batch_id}_errors.csv"},
    )


@router.post(
    "/{batch_id}/commit",
    response_model=ImportCommitResponse,
    dependencies=[Depends(check_permission("students", "create"))],
)
async def commit_import(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ImportCommitResponse:
    """Create students from a staged batch. A batch can be committed once; expired batches are refused."""
    return await service.commit_batch(db, current_user, batch_id)


@router.delete(
    "/{batch_id}",
    response_model=ImportBatchStatusResponse,
    dependencies=[Depends(check_permission("students", "delete"))],
)
async def discard_import(
    batch_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ImportBatchStatusResponse:
    return await service.discard_batch(db, current_user.school_id, batch_id)
