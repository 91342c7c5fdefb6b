"""
Staged student import.

Preview parses and validates an upload, then stores it as a `staged` batch with every row and its
errors. Commit re-validates the error-free rows against the current store and creates students.
A batch leaves `staged` exactly once; the transition is a conditional UPDATE on the status so two
concurrent commits of the same batch cannot both succeed.
"""

import base64
import csv
import io
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple
from uuid import UUID

from openpyxl import Workbook
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.api.v1.sessions import service as session_service
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core import clock
from academic_ops.core.config import settings
from academic_ops.core.enums import Gender, ImportBatchStatus
from academic_ops.core.exceptions import (
    BatchExpiredError,
    ConflictError,
    NotFoundError,
    TransientError,
    ValidationIssue,
)
from academic_ops.core.logging import get_logger
from academic_ops.core.models import (
    AcademicSession,
    ClassArm,
    ClassSection,
    ImportBatch,
    ImportBatchRow,
    Parent,
    SchoolClass,
    Student,
)

from .parser import TEMPLATE_HEADERS, ParsedRow, parse_upload
from .schemas import (
    ImportBatchResponse,
    ImportBatchStatusResponse,
    ImportCommitResponse,
    ImportCommitSummary,
    ImportPreviewResponse,
    ImportPreviewRow,
    ImportSummary,
)

logger = get_logger(__name__)

_email_adapter = TypeAdapter(EmailStr)

ERROR_CSV_HEADERS = ("row", "column", "message")


class ReferenceIndex(NamedTuple):
    """Store state an import is validated against, keyed by lower-cased name."""

    sessions: Dict[str, AcademicSession]
    classes: Dict[str, SchoolClass]
    arms: Dict[Tuple[UUID, str], ClassArm]
    sections: Dict[Tuple[UUID, str], ClassSection]
    parents: Dict[str, Parent]
    admission_numbers: Set[str]


class ResolvedRow(NamedTuple):
    session: AcademicSession
    school_class: SchoolClass
    arm: ClassArm
    section: Optional[ClassSection]
    parent: Optional[Parent]
    date_of_birth: Optional[date]


def _key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


async def load_reference_index(db: AsyncSession, school_id: UUID, rows: Sequence[Dict[str, str]]) -> ReferenceIndex:
    """Load sessions and active classes/arms/sections, plus only the parents and admission numbers the rows mention."""
    sessions = (await db.execute(select(AcademicSession).where(AcademicSession.school_id == school_id))).scalars().all()
    classes = (
        await db.execute(select(SchoolClass).where(SchoolClass.school_id == school_id, SchoolClass.is_active.is_(True)))
    ).scalars().all()
    arms = (
        await db.execute(select(ClassArm).where(ClassArm.school_id == school_id, ClassArm.is_active.is_(True)))
    ).scalars().all()
    sections = (
        await db.execute(
            select(ClassSection).where(ClassSection.school_id == school_id, ClassSection.is_active.is_(True))
        )
    ).scalars().all()

    emails = {_key(r.get("parent_email")) for r in rows if r.get("parent_email")}
    parents: Dict[str, Parent] = {}
    if emails:
        result = await db.execute(
            select(Parent).where(Parent.school_id == school_id, func.lower(Parent.email).in_(emails))
        )
        parents = {p.email.lower(): p for p in result.scalars().all()}

    admission_nos = {r.get("admission_no", "").strip() for r in rows if r.get("admission_no")}
    existing: Set[str] = set()
    if admission_nos:
        result = await db.execute(
            select(Student.admission_no).where(Student.school_id == school_id, Student.admission_no.in_(admission_nos))
        )
        existing = set(result.scalars().all())

    return ReferenceIndex(
        sessions={s.name.lower(): s for s in sessions},
        classes={c.name.lower(): c for c in classes},
        arms={(a.school_class_id, a.name.lower()): a for a in arms},
        sections={(s.class_arm_id, s.name.lower()): s for s in sections},
        parents=parents,
        admission_numbers=existing,
    )


def validate_row(
    row_number: int,
    values: Dict[str, str],
    index: ReferenceIndex,
    seen_admission_nos: Dict[str, int],
) -> Tuple[List[ValidationIssue], Optional[ResolvedRow]]:
    """
    Check one row against the index. Every problem is collected; nothing raises.
    `seen_admission_nos` maps admission numbers already used earlier in the same file to their row.
    """
    errors: List[ValidationIssue] = []

    def fail(column: str, message: str) -> None:
        errors.append(ValidationIssue(row=row_number, column=column, message=message))

    for column in ("first_name", "last_name", "admission_no", "session", "class", "class_arm"):
        if not values.get(column, "").strip():
            fail(column, f"{column} is required")

    admission_no = values.get("admission_no", "").strip()
    if admission_no:
        if admission_no in seen_admission_nos:
            fail("admission_no", f"Duplicate admission number in file (first used on row {seen_admission_nos[admission_no]})")
        else:
            seen_admission_nos[admission_no] = row_number
        if admission_no in index.admission_numbers:
            fail("admission_no", f"Admission number already exists: {admission_no}")

    gender = _key(values.get("gender"))
    if gender and gender not in {g.value for g in Gender}:
        fail("gender", "Gender must be male or female")

    date_of_birth = None
    dob_raw = values.get("date_of_birth", "").strip()
    if dob_raw:
        try:
            date_of_birth = date.fromisoformat(dob_raw)
        except ValueError:
            fail("date_of_birth", "Date of birth must be YYYY-MM-DD")
        else:
            if date_of_birth > clock.today():
                fail("date_of_birth", "Date of birth cannot be in the future")

    session = None
    if values.get("session", "").strip():
        session = index.sessions.get(_key(values.get("session")))
        if not session:
            fail("session", f"Session not found: {values['session'].strip()}")

    school_class = arm = section = None
    if values.get("class", "").strip():
        school_class = index.classes.get(_key(values.get("class")))
        if not school_class:
            fail("class", f"Class not found or inactive: {values['class'].strip()}")
    if school_class and values.get("class_arm", "").strip():
        arm = index.arms.get((school_class.id, _key(values.get("class_arm"))))
        if not arm:
            fail("class_arm", f"Arm '{values['class_arm'].strip()}' not found in class '{school_class.name}'")
    if values.get("class_section", "").strip() and arm:
        section = index.sections.get((arm.id, _key(values.get("class_section"))))
        if not section:
            fail("class_section", f"Section '{values['class_section'].strip()}' not found in arm '{arm.name}'")

    parent = None
    email = values.get("parent_email", "").strip()
    if email:
        try:
            _email_adapter.validate_python(email)
        except ValidationError:
            fail("parent_email", f"Invalid email address: {email}")
        else:
            parent = index.parents.get(email.lower())
            if not parent:
                fail("parent_email", f"No parent with email {email}")

    if errors:
        return errors, None
    return errors, ResolvedRow(session, school_class, arm, section, parent, date_of_birth)


def _display_name(values: Dict[str, str]) -> str:
    parts = [values.get("first_name", ""), values.get("middle_name", ""), values.get("last_name", "")]
    return " ".join(p.strip() for p in parts if p and p.strip())


def _row_to_preview(row_number: int, values: Dict[str, str], errors: Sequence[ValidationIssue]) -> ImportPreviewRow:
    return ImportPreviewRow(
        row=row_number,
        name=_display_name(values),
        admission_no=values.get("admission_no", ""),
        session=values.get("session", ""),
        school_class=values.get("class", ""),
        class_arm=values.get("class_arm", ""),
        class_section=values.get("class_section") or None,
        parent_email=values.get("parent_email") or None,
        valid=not errors,
        errors=list(errors),
    )


def _issues(raw: Sequence[dict]) -> List[ValidationIssue]:
    return [ValidationIssue(**e) for e in raw]


def build_error_csv(errors: Sequence[ValidationIssue]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(ERROR_CSV_HEADERS)
    for e in errors:
        writer.writerow([e.row or "", e.column or "", e.message])
    return buffer.getvalue().encode("utf-8")


def summarize(resolved: Sequence[ResolvedRow], total_rows: int) -> ImportSummary:
    by_session = Counter(r.session.name for r in resolved)
    by_class = Counter(r.school_class.name for r in resolved)
    return ImportSummary(
        total_rows=total_rows,
        valid_rows=len(resolved),
        invalid_rows=total_rows - len(resolved),
        sessions=len(by_session),
        classes=len(by_class),
        by_session=dict(by_session),
        by_class=dict(by_class),
    )


def effective_status(batch: ImportBatch, now: datetime) -> ImportBatchStatus:
    """A staged batch past its expiry reads as expired even before the reaper has run."""
    status = ImportBatchStatus(batch.status)
    if status == ImportBatchStatus.staged and batch.expires_at <= now:
        return ImportBatchStatus.expired
    return status


async def build_template_csv(db: AsyncSession, school_id: UUID) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(TEMPLATE_HEADERS)
    writer.writerow(await _example_row(db, school_id))
    return buffer.getvalue().encode("utf-8")


async def build_template_xlsx(db: AsyncSession, school_id: UUID) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Students"
    ws.append(list(TEMPLATE_HEADERS))
    ws.append(await _example_row(db, school_id))
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


async def _example_row(db: AsyncSession, school_id: UUID) -> List[str]:
    """Example data row using the school's own current session and first class/arm/section."""
    session_name, class_name, arm_name, section_name = "2024/2025", "JSS 1", "A", ""
    result = await db.execute(
        select(AcademicSession)
        .where(AcademicSession.school_id == school_id)
        .order_by(AcademicSession.is_current.desc(), AcademicSession.start_date.desc())
        .limit(1)
    )
    session = result.scalar_one_or_none()
    if session:
        session_name = session.name
    result = await db.execute(
        select(SchoolClass)
        .where(SchoolClass.school_id == school_id, SchoolClass.is_active.is_(True))
        .order_by(SchoolClass.display_order, SchoolClass.name)
        .limit(1)
    )
    school_class = result.scalar_one_or_none()
    if school_class:
        class_name = school_class.name
        result = await db.execute(
            select(ClassArm)
            .where(ClassArm.school_class_id == school_class.id, ClassArm.is_active.is_(True))
            .order_by(ClassArm.name)
            .limit(1)
        )
        arm = result.scalar_one_or_none()
        if arm:
            arm_name = arm.name
            result = await db.execute(
                select(ClassSection)
                .where(ClassSection.class_arm_id == arm.id, ClassSection.is_active.is_(True))
                .order_by(ClassSection.name)
                .limit(1)
            )
            section = result.scalar_one_or_none()
            section_name = section.name if section else ""
    return [
        "Ada", "Obi", "", "ADM-0001", "female", "2012-05-14",
        session_name, class_name, arm_name, section_name, "",
    ]


async def preview_import(
    db: AsyncSession,
    current_user: CurrentUser,
    filename: str,
    content: bytes,
) -> ImportPreviewResponse:
    """
    Parse, validate and stage an upload. Row problems never abort the preview; every row is
    returned with its errors. File-level problems raise StructuralError and stage nothing.
    """
    school_id = current_user.school_id
    parsed: List[ParsedRow] = parse_upload(filename, content, settings.import_max_rows, settings.import_max_bytes)
    index = await load_reference_index(db, school_id, [r.values for r in parsed])

    seen: Dict[str, int] = {}
    checked: List[Tuple[ParsedRow, List[ValidationIssue]]] = []
    resolved: List[ResolvedRow] = []
    for row in parsed:
        errors, ok = validate_row(row.row_number, row.values, index, seen)
        checked.append((row, errors))
        if ok:
            resolved.append(ok)
    summary = summarize(resolved, len(parsed))

    now = clock.utcnow()
    batch = ImportBatch(
        school_id=school_id,
        filename=filename,
        status=ImportBatchStatus.staged.value,
        total_rows=summary.total_rows,
        valid_rows=summary.valid_rows,
        invalid_rows=summary.invalid_rows,
        summary=summary.model_dump(),
        created_by=current_user.id,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.import_batch_ttl_minutes),
    )
    for row, errors in checked:
        batch.rows.append(
            ImportBatchRow(
                row_number=row.row_number,
                data=row.values,
                errors=[e.model_dump(exclude_none=True) for e in errors],
            )
        )
    db.add(batch)
    await db.commit()

    all_errors = [e for _, errors in checked for e in errors]
    logger.info(
        "Staged import batch %s (%s): %d row(s), %d valid, %d invalid",
        batch.id, filename, summary.total_rows, summary.valid_rows, summary.invalid_rows,
    )
    return ImportPreviewResponse(
        batch_id=batch.id,
        status=ImportBatchStatus.staged,
        preview_rows=[_row_to_preview(row.row_number, row.values, errors) for row, errors in checked],
        summary=summary,
        expires_at=batch.expires_at,
        errors=all_errors,
        error_csv=base64.b64encode(build_error_csv(all_errors)).decode("ascii") if all_errors else None,
    )


async def _get_batch_model(db: AsyncSession, school_id: UUID, batch_id: UUID) -> ImportBatch:
    result = await db.execute(
        select(ImportBatch).where(ImportBatch.id == batch_id, ImportBatch.school_id == school_id)
    )
    batch = result.scalar_one_or_none()
    if not batch:
        raise NotFoundError(f"Import batch not found: {batch_id}")
    return batch


async def _list_rows(db: AsyncSession, batch_id: UUID) -> List[ImportBatchRow]:
    result = await db.execute(
        select(ImportBatchRow).where(ImportBatchRow.batch_id == batch_id).order_by(ImportBatchRow.row_number)
    )
    return list(result.scalars().all())


async def get_batch(db: AsyncSession, school_id: UUID, batch_id: UUID) -> ImportBatchResponse:
    batch = await _get_batch_model(db, school_id, batch_id)
    rows = await _list_rows(db, batch.id)
    return ImportBatchResponse(
        batch_id=batch.id,
        filename=batch.filename,
        status=effective_status(batch, clock.utcnow()),
        summary=ImportSummary(**batch.summary),
        created_at=batch.created_at,
        expires_at=batch.expires_at,
        committed_at=batch.committed_at,
        commit_summary=ImportCommitSummary(**batch.commit_summary) if batch.commit_summary else None,
        rows=[_row_to_preview(r.row_number, r.data, _issues(r.errors)) for r in rows],
    )


async def get_error_csv(db: AsyncSession, school_id: UUID, batch_id: UUID) -> bytes:
    await _get_batch_model(db, school_id, batch_id)
    rows = await _list_rows(db, batch_id)
    return build_error_csv([e for r in rows for e in _issues(r.errors)])


async def _expire_batch(db: AsyncSession, batch_id: UUID, now: datetime) -> None:
    await db.execute(
        update(ImportBatch)
        .where(ImportBatch.id == batch_id, ImportBatch.status == ImportBatchStatus.staged.value)
        .values(status=ImportBatchStatus.expired.value, updated_at=now)
    )
    await db.commit()


async def _raise_not_staged(db: AsyncSession, batch: ImportBatch, now: datetime) -> None:
    """Raise the precise error for a batch that cannot leave `staged`."""
    status = ImportBatchStatus(batch.status)
    if status == ImportBatchStatus.committed:
        raise ConflictError(f"Import batch {batch.id} was already committed", code="batch_already_committed")
    if status == ImportBatchStatus.expired:
        raise BatchExpiredError(f"Import batch {batch.id} has expired; upload the file again")
    if status == ImportBatchStatus.staged and batch.expires_at <= now:
        await _expire_batch(db, batch.id, now)
        raise BatchExpiredError(f"Import batch {batch.id} has expired; upload the file again")
    raise ConflictError(f"Import batch {batch.id} is {status.value}", code="batch_not_staged")


async def discard_batch(db: AsyncSession, school_id: UUID, batch_id: UUID) -> ImportBatchStatusResponse:
    """Abandon a staged batch. Committed, expired and discarded batches cannot be discarded."""
    now = clock.utcnow()
    batch = await _get_batch_model(db, school_id, batch_id)
    result = await db.execute(
        update(ImportBatch)
        .where(
            ImportBatch.id == batch_id,
            ImportBatch.status == ImportBatchStatus.staged.value,
            ImportBatch.expires_at > now,
        )
        .values(status=ImportBatchStatus.discarded.value, discarded_at=now, updated_at=now)
    )
    if result.rowcount != 1:
        await db.rollback()
        await db.refresh(batch)
        await _raise_not_staged(db, batch, now)
    await db.commit()
    logger.info("Discarded import batch %s", batch_id)
    return ImportBatchStatusResponse(
        message="Import batch discarded.",
        batch_id=batch_id,
        status=ImportBatchStatus.discarded,
    )


async def commit_batch(db: AsyncSession, current_user: CurrentUser, batch_id: UUID) -> ImportCommitResponse:
    """
    Create one student per row that is still valid. Rows with preview errors are never created.
    The batch is claimed (staged -> committed) in the same transaction as the inserts: either
    everything below is saved or nothing is and the batch stays staged.
    """
    school_id = current_user.school_id
    now = clock.utcnow()
    batch = await _get_batch_model(db, school_id, batch_id)
    if batch.status != ImportBatchStatus.staged.value or batch.expires_at <= now:
        await _raise_not_staged(db, batch, now)

    rows = [(r.id, r.row_number, dict(r.data), _issues(r.errors)) for r in await _list_rows(db, batch_id)]
    eligible = [(row_id, n, values) for row_id, n, values, errors in rows if not errors]

    # Reference data may have changed since preview.
    index = await load_reference_index(db, school_id, [values for _, _, values in eligible])
    seen: Dict[str, int] = {}
    to_create: List[Tuple[int, int, Dict[str, str], ResolvedRow]] = []
    skipped_rows: List[ImportPreviewRow] = []
    stale: List[Tuple[int, List[ValidationIssue]]] = []
    for row_id, n, values in eligible:
        errors, ok = validate_row(n, values, index, seen)
        if ok:
            to_create.append((row_id, n, values, ok))
        else:
            stale.append((row_id, errors))
            skipped_rows.append(_row_to_preview(n, values, errors))
    for row_id, n, values, errors in rows:
        if errors:
            skipped_rows.append(_row_to_preview(n, values, errors))
    skipped_rows.sort(key=lambda r: r.row)

    summary = ImportCommitSummary(total_processed=len(rows), created=len(to_create), skipped=len(rows) - len(to_create))
    terms_by_session: Dict[UUID, Optional[UUID]] = {}
    created_ids: List[UUID] = []
    current_row: Optional[int] = None
    claimed = False
    try:
        result = await db.execute(
            update(ImportBatch)
            .where(
                ImportBatch.id == batch_id,
                ImportBatch.status == ImportBatchStatus.staged.value,
                ImportBatch.expires_at > now,
            )
            .values(
                status=ImportBatchStatus.committed.value,
                committed_at=now,
                commit_summary=summary.model_dump(),
                updated_at=now,
            )
        )
        claimed = result.rowcount == 1
        if claimed:
            for row_id, n, values, ref in to_create:
                current_row = n
                if ref.session.id not in terms_by_session:
                    terms = await session_service.list_term_models(db, school_id, ref.session.id)
                    term = session_service.term_for_date(terms, clock.today())
                    terms_by_session[ref.session.id] = term.id if term else None
                student = Student(
                    school_id=school_id,
                    admission_no=values["admission_no"].strip(),
                    first_name=values["first_name"].strip(),
                    middle_name=values.get("middle_name", "").strip() or None,
                    last_name=values["last_name"].strip(),
                    gender=values.get("gender", "").strip().lower() or None,
                    date_of_birth=ref.date_of_birth,
                    parent_id=ref.parent.id if ref.parent else None,
                    school_class_id=ref.school_class.id,
                    class_arm_id=ref.arm.id,
                    class_section_id=ref.section.id if ref.section else None,
                    current_session_id=ref.session.id,
                    current_term_id=terms_by_session[ref.session.id],
                    import_batch_id=batch_id,
                )
                db.add(student)
                await db.flush()
                await db.execute(
                    update(ImportBatchRow).where(ImportBatchRow.id == row_id).values(student_id=student.id)
                )
                created_ids.append(student.id)
            current_row = None
            for row_id, errors in stale:
                await db.execute(
                    update(ImportBatchRow)
                    .where(ImportBatchRow.id == row_id)
                    .values(errors=[e.model_dump(exclude_none=True) for e in errors])
                )
            await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Commit of import batch %s failed at row %s", batch_id, current_row)
        where = f"at row {current_row}" if current_row is not None else "while saving the batch"
        raise TransientError(
            f"Import failed {where} after {len(created_ids)} of {len(to_create)} row(s) were processed. "
            "Nothing was saved and the batch is still staged; retry is safe."
        )

    if not claimed:
        # Lost the race, or the batch expired between the check above and the claim.
        await db.rollback()
        await db.refresh(batch)
        await _raise_not_staged(db, batch, now)

    logger.info(
        "Committed import batch %s by user %s: %d created, %d skipped",
        batch_id, current_user.id, summary.created, summary.skipped,
    )
    return ImportCommitResponse(
        message=f"{summary.created} student(s) created; {summary.skipped} row(s) skipped.",
        batch_id=batch_id,
        status=ImportBatchStatus.committed,
        summary=summary,
        created_student_ids=created_ids,
        skipped_rows=skipped_rows,
    )


async def expire_stale_batches(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flip every staged batch past its expiry to expired. Returns the number of batches expired."""
    now = now or clock.utcnow()
    result = await db.execute(
        update(ImportBatch)
        .where(ImportBatch.status == ImportBatchStatus.staged.value, ImportBatch.expires_at <= now)
        .values(status=ImportBatchStatus.expired.value, updated_at=now)
    )
    await db.commit()
    if result.rowcount:
        logger.info("Expired %d stale import batch(es)", result.rowcount)
    return result.rowcount
