from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.auth.dependencies import get_current_user
from academic_ops.auth.rbac import check_permission
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core.config import settings
from academic_ops.core.enums import ExportFormat
from academic_ops.db.session import get_db

from .schemas import (
    BulkPromotionRequest,
    BulkPromotionResponse,
    PromotionHistoryFilters,
    PromotionHistoryResponse,
    PromotionPreviewResponse,
)
from . import exports, history, service

router = APIRouter(prefix="/api/v1/promotions", tags=["promotions"])


@router.post(
    "/bulk/preview",
    response_model=PromotionPreviewResponse,
    dependencies=[Depends(check_permission("promotions", "read"))],
)
async def preview_bulk_promotion(
    payload: BulkPromotionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PromotionPreviewResponse:
    """Per-student PROMOTE/SKIP decisions without writing anything."""
    return await service.preview_bulk_promotion(db, current_user.school_id, payload)


@router.post(
    "/bulk",
    response_model=BulkPromotionResponse,
    dependencies=[Depends(check_permission("promotions", "create"))],
)
async def promote_students_bulk(
    payload: BulkPromotionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkPromotionResponse:
    """
    Promote students to the target session and placement. Each student is applied on its own;
    the response lists who was promoted and who was skipped, with reasons.
    """
    return await service.promote_students_bulk(db, current_user, payload)


@router.get(
    "/history",
    response_model=PromotionHistoryResponse,
    dependencies=[Depends(check_permission("promotions", "read"))],
)
async def list_promotion_history(
    filters: PromotionHistoryFilters = Depends(),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PromotionHistoryResponse:
    per_page = min(per_page, settings.history_page_size_max)
    return await history.list_history(db, current_user.school_id, filters, page=page, per_page=per_page)


@router.get(
    "/history/export.{export_format}",
    dependencies=[Depends(check_permission("promotions", "read"))],
)
async def export_promotion_history(
    export_format: ExportFormat,
    filters: PromotionHistoryFilters = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Download the whole filtered ledger as CSV or PDF."""
    rows = await history.history_for_export(db, current_user.school_id, filters)
    if export_format == ExportFormat.pdf:
        return Response(
            content=exports.history_to_pdf(rows),
            media_type="application/pdf",
            headers={"Content-Disposition": "attachment; filename=promotion_history.pdf"},
        )
    return Response(
        content=exports.history_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=promotion_history.csv"},
    )
