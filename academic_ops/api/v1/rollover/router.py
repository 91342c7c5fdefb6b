from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.auth.dependencies import get_current_user
from academic_ops.auth.rbac import check_permission
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core.schemas import ErrorResponse
from academic_ops.db.session import get_db

from .schemas import (
    RolloverCommitRequest,
    RolloverCommitResponse,
    RolloverPreviewRequest,
    RolloverPreviewResponse,
    RolloverRecordResponse,
)
from . import service

router = APIRouter(
    prefix="/api/v1/sessions/rollover",
    tags=["rollover"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)


@router.post(
    "/preview",
    response_model=RolloverPreviewResponse,
    dependencies=[Depends(check_permission("sessions", "read"))],
)
async def preview_rollover(
    payload: RolloverPreviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RolloverPreviewResponse:
    """Proposed new session with prorated terms. Read-only; nothing is written."""
    return await service.preview_rollover(db, current_user.school_id, payload)


@router.post(
    "",
    response_model=RolloverCommitResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("sessions", "create"))],
)
async def commit_rollover(
    payload: RolloverCommitRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RolloverCommitResponse:
    """Create the new session and its cloned terms as one unit. Dates are recomputed from the store."""
    return await service.commit_rollover(db, current_user, payload)


@router.get(
    "/history",
    response_model=List[RolloverRecordResponse],
    dependencies=[Depends(check_permission("sessions", "read"))],
)
async def list_rollover_history(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[RolloverRecordResponse]:
    return await service.list_rollover_history(db, current_user.school_id)
