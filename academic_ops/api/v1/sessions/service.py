"""Period store: school-scoped reads of sessions, terms and class placements."""

from datetime import date
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.core.exceptions import NotFoundError, ValidationFailed, ValidationIssue
from academic_ops.core.models import AcademicSession, ClassArm, ClassSection, SchoolClass, Term

from .schemas import PlacementResponse, SessionResponse, TermResponse


def session_to_response(s: AcademicSession) -> SessionResponse:
    return SessionResponse(
        id=s.id,
        school_id=s.school_id,
        name=s.name,
        start_date=s.start_date,
        end_date=s.end_date,
        is_current=s.is_current,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def term_to_response(t: Term) -> TermResponse:
    return TermResponse(
        id=t.id,
        session_id=t.session_id,
        name=t.name,
        start_date=t.start_date,
        end_date=t.end_date,
    )


def placement_label(class_name: str, arm_name: str, section_name: Optional[str] = None) -> str:
    """Human label stored on ledger rows, e.g. 'JSS 1 / A / Gold'."""
    parts = [class_name, arm_name]
    if section_name:
        parts.append(section_name)
    return " / ".join(parts)


async def get_session(
    db: AsyncSession,
    school_id: UUID,
    session_id: UUID,
) -> Optional[AcademicSession]:
    result = await db.execute(
        select(AcademicSession).where(
            AcademicSession.id == session_id,
            AcademicSession.school_id == school_id,
        )
    )
    return result.scalar_one_or_none()


async def get_session_or_404(db: AsyncSession, school_id: UUID, session_id: UUID) -> AcademicSession:
    session = await get_session(db, school_id, session_id)
    if not session:
        raise NotFoundError(f"Session not found: {session_id}")
    return session


async def list_sessions(db: AsyncSession, school_id: UUID) -> List[SessionResponse]:
    """List sessions for the school, newest first."""
    result = await db.execute(
        select(AcademicSession)
        .where(AcademicSession.school_id == school_id)
        .order_by(AcademicSession.start_date.desc())
    )
    return [session_to_response(s) for s in result.scalars().all()]


async def get_session_response(db: AsyncSession, school_id: UUID, session_id: UUID) -> SessionResponse:
    return session_to_response(await get_session_or_404(db, school_id, session_id))


async def get_current_session(db: AsyncSession, school_id: UUID) -> Optional[SessionResponse]:
    result = await db.execute(
        select(AcademicSession).where(
            AcademicSession.school_id == school_id,
            AcademicSession.is_current.is_(True),
        )
    )
    session = result.scalar_one_or_none()
    return session_to_response(session) if session else None


async def set_current_session(db: AsyncSession, school_id: UUID, session_id: UUID) -> SessionResponse:
    """Mark one session current. All others for the school become non-current (transaction)."""
    session = await get_session_or_404(db, school_id, session_id)
    await db.execute(
        update(AcademicSession).where(AcademicSession.school_id == school_id).values(is_current=False)
    )
    session.is_current = True
    await db.commit()
    await db.refresh(session)
    return session_to_response(session)


async def list_term_models(db: AsyncSession, school_id: UUID, session_id: UUID) -> List[Term]:
    """Terms of a session ordered by start date (name breaks ties for deterministic output)."""
    result = await db.execute(
        select(Term)
        .where(Term.session_id == session_id, Term.school_id == school_id)
        .order_by(Term.start_date, Term.name)
    )
    return list(result.scalars().all())


async def list_terms(db: AsyncSession, school_id: UUID, session_id: UUID) -> List[TermResponse]:
    await get_session_or_404(db, school_id, session_id)
    return [term_to_response(t) for t in await list_term_models(db, school_id, session_id)]


async def get_term(db: AsyncSession, school_id: UUID, term_id: UUID) -> Optional[Term]:
    result = await db.execute(select(Term).where(Term.id == term_id, Term.school_id == school_id))
    return result.scalar_one_or_none()


def term_for_date(terms: Sequence[Term], on: date) -> Optional[Term]:
    """Term containing `on`, else the first term, else None."""
    for t in terms:
        if t.start_date <= on <= t.end_date:
            return t
    return terms[0] if terms else None


async def get_class(db: AsyncSession, school_id: UUID, class_id: UUID) -> Optional[SchoolClass]:
    result = await db.execute(
        select(SchoolClass).where(
            SchoolClass.id == class_id,
            SchoolClass.school_id == school_id,
            SchoolClass.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_arm(db: AsyncSession, school_id: UUID, arm_id: UUID) -> Optional[ClassArm]:
    result = await db.execute(
        select(ClassArm).where(
            ClassArm.id == arm_id,
            ClassArm.school_id == school_id,
            ClassArm.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_section(db: AsyncSession, school_id: UUID, section_id: UUID) -> Optional[ClassSection]:
    result = await db.execute(
        select(ClassSection).where(
            ClassSection.id == section_id,
            ClassSection.school_id == school_id,
            ClassSection.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def resolve_placement(
    db: AsyncSession,
    school_id: UUID,
    school_class_id: UUID,
    class_arm_id: UUID,
    class_section_id: Optional[UUID] = None,
    field_prefix: str = "",
) -> PlacementResponse:
    """Validate a placement tuple (arm belongs to class, section to arm) and return it with its label.
    Raises ValidationFailed listing every bad field."""
    issues: List[ValidationIssue] = []
    school_class = await get_class(db, school_id, school_class_id)
    if not school_class:
        issues.append(ValidationIssue(field=f"{field_prefix}school_class_id", message="Class not found or inactive"))
    arm = await get_arm(db, school_id, class_arm_id)
    if not arm:
        issues.append(ValidationIssue(field=f"{field_prefix}class_arm_id", message="Class arm not found or inactive"))
    elif school_class and arm.school_class_id != school_class.id:
        issues.append(
            ValidationIssue(field=f"{field_prefix}class_arm_id", message="Class arm does not belong to the selected class")
        )
    section = None
    if class_section_id is not None:
        section = await get_section(db, school_id, class_section_id)
        if not section:
            issues.append(
                ValidationIssue(field=f"{field_prefix}class_section_id", message="Class section not found or inactive")
            )
        elif arm and section.class_arm_id != arm.id:
            issues.append(
                ValidationIssue(
                    field=f"{field_prefix}class_section_id",
                    message="Class section does not belong to the selected arm",
                )
            )
    if issues:
        raise ValidationFailed("Invalid placement", issues)
    return PlacementResponse(
        school_class_id=school_class.id,
        class_arm_id=arm.id,
        class_section_id=section.id if section else None,
        label=placement_label(school_class.name, arm.name, section.name if section else None),
    )


async def describe_placement(
    db: AsyncSession,
    school_class_id: Optional[UUID],
    class_arm_id: Optional[UUID],
    class_section_id: Optional[UUID],
) -> str:
    """Best-effort label for an existing placement (used for the 'from' side of ledger rows).
    Inactive entities are still named; missing ones are shown as '?'."""
    class_name = arm_name = "?"
    section_name = None
    if school_class_id:
        c = await db.get(SchoolClass, school_class_id)
        class_name = c.name if c else "?"
    if class_arm_id:
        a = await db.get(ClassArm, class_arm_id)
        arm_name = a.name if a else "?"
    if class_section_id:
        s = await db.get(ClassSection, class_section_id)
        section_name = s.name if s else "?"
    return placement_label(class_name, arm_name, section_name)
