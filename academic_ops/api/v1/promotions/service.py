"""
Bulk promotion. Each student is promoted in its own transaction, so one failure never
undoes another student's promotion. The student's `version` column guards against two
concurrent requests moving the same student.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from academic_ops.api.v1.sessions import service as session_service
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core import clock
from academic_ops.core.enums import PromotionAction, PromotionOutcome, StudentStatus
from academic_ops.core.exceptions import NotFoundError
from academic_ops.core.logging import get_logger
from academic_ops.core.models import PromotionRecord, Student, StudentSubjectAssignment

from .schemas import (
    BulkPromotionRequest,
    BulkPromotionResponse,
    PromotionPreviewItem,
    PromotionPreviewResponse,
    PromotionStudentResult,
)

logger = get_logger(__name__)

PlacementKey = Tuple[Optional[UUID], Optional[UUID], Optional[UUID]]


class PromotionTarget(NamedTuple):
    session_id: UUID
    session_name: str
    term_id: Optional[UUID]
    school_class_id: UUID
    class_arm_id: UUID
    class_section_id: Optional[UUID]
    label: str


async def _resolve_target(db: AsyncSession, school_id: UUID, payload: BulkPromotionRequest) -> PromotionTarget:
    """Validate the target once, up front. Plain values only: they must survive per-student rollbacks."""
    session = await session_service.get_session(db, school_id, payload.target_session_id)
    if not session:
        raise NotFoundError(f"Target session not found: {payload.target_session_id}")
    placement = await session_service.resolve_placement(
        db,
        school_id,
        payload.target_school_class_id,
        payload.target_class_arm_id,
        payload.target_class_section_id,
        field_prefix="target_",
    )
    terms = await session_service.list_term_models(db, school_id, session.id)
    term = session_service.term_for_date(terms, clock.today())
    return PromotionTarget(
        session_id=session.id,
        session_name=session.name,
        term_id=term.id if term else None,
        school_class_id=placement.school_class_id,
        class_arm_id=placement.class_arm_id,
        class_section_id=placement.class_section_id,
        label=placement.label,
    )


def _unique(ids: Iterable[UUID]) -> List[UUID]:
    seen = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def skip_reason(student: Optional[Student], target: PromotionTarget) -> Optional[str]:
    """Why a student cannot be promoted to `target`, or None if they can."""
    if student is None:
        return "not found"
    if student.status != StudentStatus.ACTIVE.value:
        return f"student is {student.status.lower()}"
    if (
        student.current_session_id == target.session_id
        and student.school_class_id == target.school_class_id
        and student.class_arm_id == target.class_arm_id
        and student.class_section_id == target.class_section_id
    ):
        return "already promoted"
    return None


async def _placement_label(db: AsyncSession, cache: Dict[PlacementKey, str], key: PlacementKey) -> str:
    if key not in cache:
        cache[key] = await session_service.describe_placement(db, *key)
    return cache[key]


async def _load_students(db: AsyncSession, school_id: UUID, ids: List[UUID]) -> Dict[UUID, Student]:
    result = await db.execute(select(Student).where(Student.school_id == school_id, Student.id.in_(ids)))
    return {s.id: s for s in result.scalars().all()}


async def preview_bulk_promotion(
    db: AsyncSession,
    school_id: UUID,
    payload: BulkPromotionRequest,
) -> PromotionPreviewResponse:
    """Per-student PROMOTE/SKIP decisions. Nothing is written."""
    target = await _resolve_target(db, school_id, payload)
    ids = _unique(payload.student_ids)
    students = await _load_students(db, school_id, ids)
    labels: Dict[PlacementKey, str] = {}
    items: List[PromotionPreviewItem] = []
    for student_id in ids:
        student = students.get(student_id)
        reason = skip_reason(student, target)
        from_label = None
        if student is not None:
            from_label = await _placement_label(
                db, labels, (student.school_class_id, student.class_arm_id, student.class_section_id)
            )
        items.append(
            PromotionPreviewItem(
                student_id=student_id,
                full_name=student.full_name if student else None,
                admission_no=student.admission_no if student else None,
                action=PromotionAction.SKIP if reason else PromotionAction.PROMOTE,
                from_placement=from_label,
                to_placement=target.label,
                reason=reason,
            )
        )
    to_skip = sum(1 for i in items if i.action == PromotionAction.SKIP)
    return PromotionPreviewResponse(
        target_session_id=target.session_id,
        target_session_name=target.session_name,
        target_placement=target.label,
        to_promote=len(items) - to_skip,
        to_skip=to_skip,
        items=items,
    )


async def promote_students_bulk(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: BulkPromotionRequest,
) -> BulkPromotionResponse:
    """
    Promote students in request order. A student already at the target placement and session
    is skipped, so re-running a partially applied request promotes only the remainder.
    """
    school_id = current_user.school_id
    target = await _resolve_target(db, school_id, payload)
    labels: Dict[PlacementKey, str] = {}
    results: List[PromotionStudentResult] = []
    promoted = 0

    for student_id in _unique(payload.student_ids):
        result = await db.execute(
            select(Student).where(Student.id == student_id, Student.school_id == school_id)
        )
        student = result.scalar_one_or_none()
        reason = skip_reason(student, target)
        if reason:
            logger.debug("Skipping student %s: %s", student_id, reason)
            results.append(PromotionStudentResult(student_id=student_id, status=PromotionOutcome.skipped, reason=reason))
            continue

        from_key = (student.school_class_id, student.class_arm_id, student.class_section_id)
        from_session_id = student.current_session_id
        from_label = await _placement_label(db, labels, from_key)
        try:
            student.current_session_id = target.session_id
            student.current_term_id = target.term_id
            student.school_class_id = target.school_class_id
            student.class_arm_id = target.class_arm_id
            student.class_section_id = target.class_section_id
            # Flushing checks and bumps the version; a concurrent promotion raises StaleDataError.
            await db.flush()
            if not payload.retain_subjects:
                await db.execute(
                    delete(StudentSubjectAssignment).where(
                        StudentSubjectAssignment.student_id == student_id,
                        StudentSubjectAssignment.school_class_id == from_key[0],
                    )
                )
            record = PromotionRecord(
                school_id=school_id,
                student_id=student_id,
                student_name=student.full_name,
                admission_no=student.admission_no,
                from_session_id=from_session_id,
                from_school_class_id=from_key[0],
                from_class_arm_id=from_key[1],
                from_class_section_id=from_key[2],
                from_placement_label=from_label,
                to_session_id=target.session_id,
                to_school_class_id=target.school_class_id,
                to_class_arm_id=target.class_arm_id,
                to_class_section_id=target.class_section_id,
                to_placement_label=target.label,
                retain_subjects=payload.retain_subjects,
                performed_by=current_user.id,
                performed_by_name=current_user.full_name,
            )
            db.add(record)
            await db.commit()
        except StaleDataError:
            await db.rollback()
            logger.warning("Student %s changed during promotion; skipped", student_id)
            results.append(
                PromotionStudentResult(
                    student_id=student_id,
                    status=PromotionOutcome.skipped,
                    reason="modified concurrently; re-run to retry",
                )
            )
            continue
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Promotion of student %s failed", student_id)
            results.append(
                PromotionStudentResult(
                    student_id=student_id,
                    status=PromotionOutcome.skipped,
                    reason="storage failure; safe to retry",
                )
            )
            continue

        promoted += 1
        results.append(
            PromotionStudentResult(student_id=student_id, status=PromotionOutcome.promoted, record_id=record.id)
        )

    skipped = len(results) - promoted
    logger.info(
        "Bulk promotion to %s (%s) by user %s: %d promoted, %d skipped",
        target.session_name, target.label, current_user.id, promoted, skipped,
    )
    return BulkPromotionResponse(
        message=f"{promoted} student(s) promoted to {target.label} ({target.session_name}); {skipped} skipped.",
        promoted=promoted,
        skipped=skipped,
        results=results,
    )
