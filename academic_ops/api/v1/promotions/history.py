"""Read-only queries over the promotion ledger."""

import math
from datetime import datetime, time, timedelta
from typing import List, Tuple
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.api.v1.sessions import service as session_service
from academic_ops.core.exceptions import NotFoundError
from academic_ops.core.models import AcademicSession, PromotionRecord

from .schemas import PromotionHistoryFilters, PromotionHistoryResponse, PromotionHistoryRow


async def _filtered(db: AsyncSession, school_id: UUID, filters: PromotionHistoryFilters) -> Select:
    stmt = (
        select(PromotionRecord, AcademicSession.name)
        .join(AcademicSession, PromotionRecord.to_session_id == AcademicSession.id)
        .where(PromotionRecord.school_id == school_id)
    )
    if filters.session_id:
        stmt = stmt.where(PromotionRecord.to_session_id == filters.session_id)
    if filters.term_id:
        term = await session_service.get_term(db, school_id, filters.term_id)
        if not term:
            raise NotFoundError(f"Term not found: {filters.term_id}")
        # Whole days: promoted_at is a timestamp, term bounds are dates.
        window_start = datetime.combine(term.start_date, time.min)
        window_end = datetime.combine(term.end_date + timedelta(days=1), time.min)
        stmt = stmt.where(PromotionRecord.promoted_at >= window_start, PromotionRecord.promoted_at < window_end)
    if filters.school_class_id:
        stmt = stmt.where(PromotionRecord.to_school_class_id == filters.school_class_id)
    if filters.class_arm_id:
        stmt = stmt.where(PromotionRecord.to_class_arm_id == filters.class_arm_id)
    if filters.class_section_id:
        stmt = stmt.where(PromotionRecord.to_class_section_id == filters.class_section_id)
    return stmt


def _to_row(record: PromotionRecord, session_name: str) -> PromotionHistoryRow:
    return PromotionHistoryRow(
        id=record.id,
        student_id=record.student_id,
        student_name=record.student_name,
        admission_no=record.admission_no,
        from_session_id=record.from_session_id,
        from_placement_label=record.from_placement_label,
        to_session_id=record.to_session_id,
        to_session_name=session_name,
        to_placement_label=record.to_placement_label,
        retain_subjects=record.retain_subjects,
        performed_by=record.performed_by,
        performed_by_name=record.performed_by_name,
        promoted_at=record.promoted_at,
    )


async def list_history(
    db: AsyncSession,
    school_id: UUID,
    filters: PromotionHistoryFilters,
    page: int = 1,
    per_page: int = 20,
) -> PromotionHistoryResponse:
    """One page of ledger rows in insertion order."""
    stmt = await _filtered(db, school_id, filters)
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    offset = (page - 1) * per_page
    result = await db.execute(stmt.order_by(PromotionRecord.id).offset(offset).limit(per_page))
    data = [_to_row(record, name) for record, name in result.all()]
    return PromotionHistoryResponse(
        data=data,
        current_page=page,
        last_page=max(1, math.ceil(total / per_page)),
        per_page=per_page,
        total=total,
        from_=offset + 1 if data else None,
        to=offset + len(data) if data else None,
    )


async def history_for_export(
    db: AsyncSession,
    school_id: UUID,
    filters: PromotionHistoryFilters,
) -> List[PromotionHistoryRow]:
    """The whole filtered set, unpaginated."""
    stmt = await _filtered(db, school_id, filters)
    result = await db.execute(stmt.order_by(PromotionRecord.id))
    rows: List[Tuple[PromotionRecord, str]] = result.all()
    return [_to_row(record, name) for record, name in rows]
