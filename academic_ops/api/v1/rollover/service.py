"""
Academic-year rollover: clone a session's term structure into a new session with
proportionally re-dated terms. Preview is pure; commit writes the session, its terms and
a ledger row in one transaction.
"""

from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.api.v1.sessions import service as session_service
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core.enums import RolloverPreviewStatus
from academic_ops.core.exceptions import (
    ConflictError,
    TransientError,
    ValidationFailed,
    ValidationIssue,
)
from academic_ops.core.logging import get_logger
from academic_ops.core.models import AcademicSession, RolloverRecord, Term

from .schemas import (
    ProposedSession,
    ProposedTerm,
    RolloverCommitRequest,
    RolloverCommitResponse,
    RolloverPreviewRequest,
    RolloverPreviewResponse,
    RolloverRecordResponse,
)

logger = get_logger(__name__)


def prorate_windows(count: int, start: date, end: date) -> Tuple[List[Tuple[date, date]], int]:
    """
    Split [start, end) into `count` equal windows of floor((end - start) / count) days, clamped to >= 1.
    Windows tile [start, start + count * duration) exactly; the last one may end before `end`
    by the division remainder. That shortfall is intentional and must not be redistributed.
    """
    if count <= 0:
        return [], 0
    duration = max(1, (end - start).days // count)
    windows = [
        (start + timedelta(days=duration * i), start + timedelta(days=duration * (i + 1)))
        for i in range(count)
    ]
    return windows, duration


def source_term_warnings(terms: Sequence[Term]) -> List[str]:
    """Overlaps and gaps between consecutive source terms. Reported, never rejected."""
    warnings: List[str] = []
    for prev, nxt in zip(terms, terms[1:]):
        if nxt.start_date < prev.end_date:
            warnings.append(f"Source terms '{prev.name}' and '{nxt.name}' overlap")
        elif (nxt.start_date - prev.end_date).days > 1:
            warnings.append(f"Source terms '{prev.name}' and '{nxt.name}' have a gap between them")
    return warnings


def plan_terms(
    terms: Sequence[Term],
    start: Optional[date],
    end: Optional[date],
) -> Tuple[List[ProposedTerm], Optional[int]]:
    """Clone term names in order and attach prorated dates when both bounds are known."""
    if start is None or end is None:
        return [
            ProposedTerm(name=t.name, source_term_id=t.id, source_start=t.start_date, source_end=t.end_date)
            for t in terms
        ], None
    windows, duration = prorate_windows(len(terms), start, end)
    proposed = [
        ProposedTerm(
            name=t.name,
            source_term_id=t.id,
            source_start=t.start_date,
            source_end=t.end_date,
            proposed_start=w_start,
            proposed_end=w_end,
        )
        for t, (w_start, w_end) in zip(terms, windows)
    ]
    return proposed, duration


async def preview_rollover(
    db: AsyncSession,
    school_id: UUID,
    payload: RolloverPreviewRequest,
) -> RolloverPreviewResponse:
    """Side-effect-free proposal. An empty source session is informational, not an error."""
    source = await session_service.get_session_or_404(db, school_id, payload.source_session_id)
    terms = await session_service.list_term_models(db, school_id, source.id)
    new_session = ProposedSession(
        name=(payload.new_session_name or "").strip() or None,
        start_date=payload.new_session_start,
        end_date=payload.new_session_end,
    )
    if not terms:
        return RolloverPreviewResponse(
            source_session_id=source.id,
            source_session_name=source.name,
            new_session=new_session,
            status=RolloverPreviewStatus.empty,
            message=f"Session '{source.name}' has no terms to clone.",
        )

    warnings = source_term_warnings(terms)
    proposed, duration = plan_terms(terms, payload.new_session_start, payload.new_session_end)
    if duration is None:
        status = RolloverPreviewStatus.structural
        message = f"{len(terms)} term(s) will be cloned. Provide start and end dates to see proposed dates."
    else:
        status = RolloverPreviewStatus.ready
        message = f"{len(terms)} term(s) will be cloned with {duration}-day windows."
        if payload.new_session_start >= payload.new_session_end:
            warnings.append("New session end date must be after its start date; commit will be rejected.")
    return RolloverPreviewResponse(
        source_session_id=source.id,
        source_session_name=source.name,
        new_session=new_session,
        proposed_terms=proposed,
        duration_days=duration,
        status=status,
        message=message,
        warnings=warnings,
    )


def _validate_commit(payload: RolloverCommitRequest) -> str:
    issues: List[ValidationIssue] = []
    if payload.source_session_id is None:
        issues.append(ValidationIssue(field="source_session_id", message="Select a source session"))
    name = (payload.new_session_name or "").strip()
    if not name:
        issues.append(ValidationIssue(field="new_session_name", message="New session name is required"))
    if payload.new_session_start is None:
        issues.append(ValidationIssue(field="new_session_start", message="Start date is required"))
    if payload.new_session_end is None:
        issues.append(ValidationIssue(field="new_session_end", message="End date is required"))
    if (
        payload.new_session_start is not None
        and payload.new_session_end is not None
        and payload.new_session_start >= payload.new_session_end
    ):
        issues.append(ValidationIssue(field="new_session_end", message="End date must be after start date"))
    if issues:
        raise ValidationFailed("Rollover request is invalid", issues)
    return name


async def commit_rollover(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: RolloverCommitRequest,
) -> RolloverCommitResponse:
    """Create the new session and all its terms atomically. The source session is never modified."""
    school_id = current_user.school_id
    name = _validate_commit(payload)
    source = await session_service.get_session_or_404(db, school_id, payload.source_session_id)
    source_name = source.name

    existing = await db.execute(
        select(AcademicSession.id).where(AcademicSession.school_id == school_id, AcademicSession.name == name)
    )
    if existing.scalar_one_or_none():
        raise ConflictError(f"Session '{name}' already exists", code="session_exists")

    # Recompute from the store; a client-held preview is never trusted.
    source_terms = await session_service.list_term_models(db, school_id, source.id)
    windows, _ = prorate_windows(len(source_terms), payload.new_session_start, payload.new_session_end)

    try:
        if payload.set_as_current:
            await db.execute(
                update(AcademicSession).where(AcademicSession.school_id == school_id).values(is_current=False)
            )
        new_session = AcademicSession(
            school_id=school_id,
            name=name,
            start_date=payload.new_session_start,
            end_date=payload.new_session_end,
            is_current=payload.set_as_current,
        )
        db.add(new_session)
        await db.flush()
        new_terms: List[Term] = []
        for src, (w_start, w_end) in zip(source_terms, windows):
            term = Term(
                school_id=school_id,
                session_id=new_session.id,
                name=src.name,
                start_date=w_start,
                end_date=w_end,
            )
            db.add(term)
            new_terms.append(term)
        record = RolloverRecord(
            school_id=school_id,
            source_session_id=source.id,
            new_session_id=new_session.id,
            terms_created=len(new_terms),
            notes=payload.notes,
            performed_by=current_user.id,
        )
        db.add(record)
        await db.commit()
        await db.refresh(new_session)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Session '{name}' already exists", code="session_exists")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Rollover from session %s failed", payload.source_session_id)
        raise TransientError(f"Rollover failed; no session was created. Retry is safe. ({e.__class__.__name__})")

    logger.info(
        "Rollover %s -> %s (%s) created %d term(s) by user %s",
        source_name, name, new_session.id, len(new_terms), current_user.id,
    )
    if new_terms:
        message = f"Session '{name}' created with {len(new_terms)} term(s) cloned from '{source_name}'."
    else:
        message = f"Session '{name}' created. '{source_name}' had no terms to clone."
    return RolloverCommitResponse(
        message=message,
        rollover_id=record.id,
        session=session_service.session_to_response(new_session),
        terms=[session_service.term_to_response(t) for t in new_terms],
    )


async def list_rollover_history(db: AsyncSession, school_id: UUID) -> List[RolloverRecordResponse]:
    result = await db.execute(
        select(RolloverRecord).where(RolloverRecord.school_id == school_id).order_by(RolloverRecord.id.desc())
    )
    return [RolloverRecordResponse.model_validate(r) for r in result.scalars().all()]
