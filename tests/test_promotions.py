from datetime import date
from types import SimpleNamespace
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.api.v1.promotions.schemas import BulkPromotionRequest
from academic_ops.api.v1.promotions.service import promote_students_bulk
from academic_ops.auth.schemas import CurrentUser
from academic_ops.core.models import PromotionRecord, Student, StudentSubjectAssignment


def _payload(period: SimpleNamespace, student_ids, **overrides) -> dict:
    body = {
        "target_session_id": str(period.session_2425),
        "target_school_class_id": str(period.jss2),
        "target_class_arm_id": str(period.jss2_a),
        "target_class_section_id": str(period.jss2_a_blue),
        "retain_subjects": False,
        "student_ids": [str(i) for i in student_ids],
    }
    body.update(overrides)
    return body


async def _record_count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(PromotionRecord))).scalar_one()


@pytest.mark.asyncio
async def test_promote_moves_students_and_writes_ledger(
    client: AsyncClient,
    db_session: AsyncSession,
    school: SimpleNamespace,
    period: SimpleNamespace,
    make_students,
    pin_today,
) -> None:
    pin_today(date(2025, 8, 20))
    ids = await make_students(3)

    response = await client.post("/api/v1/promotions/bulk", json=_payload(period, ids), headers=school.admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["promoted"] == 3
    assert data["skipped"] == 0
    assert [r["student_id"] for r in data["results"]] == [str(i) for i in ids]
    assert all(r["status"] == "promoted" for r in data["results"])

    students = (await db_session.execute(select(Student).where(Student.id.in_(ids)))).scalars().all()
    for s in students:
        assert s.current_session_id == period.session_2425
        assert (s.school_class_id, s.class_arm_id, s.class_section_id) == (period.jss2, period.jss2_a, period.jss2_a_blue)
        # Summer break: no 2024/2025 term contains today, so the first term is used
        assert s.current_term_id == period.terms_2425[0]
        assert s.version == 2

    records = (await db_session.execute(select(PromotionRecord).order_by(PromotionRecord.id))).scalars().all()
    assert [r.student_id for r in records] == ids
    assert records[0].from_placement_label == "JSS 1 / A"
    assert records[0].to_placement_label == "JSS 2 / A / Blue"
    assert records[0].from_session_id == period.session_2324
    assert records[0].performed_by == school.admin_id
    assert records[0].performed_by_name == school.admin_name


@pytest.mark.asyncio
async def test_fifty_students_three_already_at_target(
    client: AsyncClient, db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    movers = await make_students(47)
    already = await make_students(
        3,
        prefix="TGT",
        session_id=period.session_2425,
        school_class_id=period.jss2,
        class_arm_id=period.jss2_a,
        class_section_id=period.jss2_a_blue,
    )

    response = await client.post(
        "/api/v1/promotions/bulk", json=_payload(period, movers + already), headers=school.admin_headers
    )

    data = response.json()
    assert (data["promoted"], data["skipped"]) == (47, 3)
    skipped = [r for r in data["results"] if r["status"] == "skipped"]
    assert {r["student_id"] for r in skipped} == {str(i) for i in already}
    assert all(r["reason"] == "already promoted" for r in skipped)
    assert await _record_count(db_session) == 47


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(
    client: AsyncClient, db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    ids = await make_students(5)
    payload = _payload(period, ids)

    first = await client.post("/api/v1/promotions/bulk", json=payload, headers=school.admin_headers)
    second = await client.post("/api/v1/promotions/bulk", json=payload, headers=school.admin_headers)

    assert first.json()["promoted"] == 5
    assert (second.json()["promoted"], second.json()["skipped"]) == (0, 5)
    assert await _record_count(db_session) == 5


@pytest.mark.asyncio
async def test_unknown_and_withdrawn_students_are_skipped(
    client: AsyncClient, db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    [active] = await make_students(1)
    [withdrawn] = await make_students(1, prefix="WD", status="WITHDRAWN")
    missing = uuid4()

    response = await client.post(
        "/api/v1/promotions/bulk",
        json=_payload(period, [missing, active, withdrawn, active]),
        headers=school.admin_headers,
    )

    data = response.json()
    assert (data["promoted"], data["skipped"]) == (1, 2)
    reasons = {r["student_id"]: r.get("reason") for r in data["results"]}
    assert len(data["results"]) == 3  # duplicate id collapsed
    assert reasons[str(missing)] == "not found"
    assert reasons[str(withdrawn)] == "student is withdrawn"
    assert reasons[str(active)] is None


@pytest.mark.asyncio
async def test_retain_subjects_flag(
    client: AsyncClient, db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    cleared, kept = await make_students(2)
    for sid in (cleared, kept):
        db_session.add(
            StudentSubjectAssignment(school_id=school.id, student_id=sid, school_class_id=period.jss1, subject_name="Basic Science")
        )
    await db_session.commit()

    await client.post(
        "/api/v1/promotions/bulk", json=_payload(period, [cleared], retain_subjects=False), headers=school.admin_headers
    )
    await client.post(
        "/api/v1/promotions/bulk", json=_payload(period, [kept], retain_subjects=True), headers=school.admin_headers
    )

    result = await db_session.execute(select(StudentSubjectAssignment.student_id))
    assert result.scalars().all() == [kept]
    retained = await db_session.execute(select(PromotionRecord.retain_subjects).where(PromotionRecord.student_id == kept))
    assert retained.scalar_one() is True


@pytest.mark.asyncio
async def test_preview_writes_nothing(
    client: AsyncClient, db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    ids = await make_students(2)
    [withdrawn] = await make_students(1, prefix="WD", status="WITHDRAWN")

    response = await client.post(
        "/api/v1/promotions/bulk/preview", json=_payload(period, ids + [withdrawn]), headers=school.teacher_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert (data["to_promote"], data["to_skip"]) == (2, 1)
    assert data["target_placement"] == "JSS 2 / A / Blue"
    assert data["items"][0]["action"] == "PROMOTE"
    assert data["items"][0]["from_placement"] == "JSS 1 / A"
    assert data["items"][2]["action"] == "SKIP"
    assert await _record_count(db_session) == 0
    arm = await db_session.execute(select(Student.class_arm_id).where(Student.id == ids[0]))
    assert arm.scalar_one() == period.jss1_a


@pytest.mark.asyncio
async def test_arm_from_another_class_is_rejected(
    client: AsyncClient, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    ids = await make_students(1)

    response = await client.post(
        "/api/v1/promotions/bulk",
        json=_payload(period, ids, target_class_arm_id=str(period.jss1_b), target_class_section_id=None),
        headers=school.admin_headers,
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["errors"] == [
        {"field": "target_class_arm_id", "message": "Class arm does not belong to the selected class"}
    ]


@pytest.mark.asyncio
async def test_unknown_target_session(client: AsyncClient, school: SimpleNamespace, period: SimpleNamespace, make_students) -> None:
    ids = await make_students(1)

    response = await client.post(
        "/api/v1/promotions/bulk",
        json=_payload(period, ids, target_session_id=str(uuid4())),
        headers=school.admin_headers,
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_empty_student_list_is_malformed(client: AsyncClient, school: SimpleNamespace, period: SimpleNamespace) -> None:
    response = await client.post("/api/v1/promotions/bulk", json=_payload(period, []), headers=school.admin_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "structural_error"
    assert body["errors"][0]["field"] == "student_ids"


@pytest.mark.asyncio
async def test_teacher_cannot_promote(client: AsyncClient, school: SimpleNamespace, period: SimpleNamespace, make_students) -> None:
    ids = await make_students(1)

    response = await client.post("/api/v1/promotions/bulk", json=_payload(period, ids), headers=school.teacher_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_concurrently_modified_student_is_skipped(
    db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students
) -> None:
    [sid] = await make_students(1)
    # Hold the loaded row so the session keeps its (soon stale) version
    student = (await db_session.execute(select(Student).where(Student.id == sid))).scalar_one()
    assert student.version == 1
    await db_session.execute(
        update(Student)
        .where(Student.id == sid)
        .values(version=Student.version + 1)
        .execution_options(synchronize_session=False)
    )
    await db_session.commit()

    user = CurrentUser(id=school.admin_id, school_id=school.id, full_name=school.admin_name, role="ADMIN", permissions={})
    payload = BulkPromotionRequest(
        target_session_id=period.session_2425,
        target_school_class_id=period.jss2,
        target_class_arm_id=period.jss2_a,
        student_ids=[sid],
    )
    result = await promote_students_bulk(db_session, user, payload)

    assert (result.promoted, result.skipped) == (0, 1)
    assert result.results[0].reason == "modified concurrently; re-run to retry"
    assert await _record_count(db_session) == 0
    row = await db_session.execute(select(Student.class_arm_id, Student.version).where(Student.id == sid))
    assert tuple(row.one()) == (period.jss1_a, 2)


@pytest.mark.asyncio
async def test_promotion_uses_term_containing_today(
    client: AsyncClient, db_session: AsyncSession, school: SimpleNamespace, period: SimpleNamespace, make_students, pin_today
) -> None:
    pin_today(date(2025, 2, 10))
    [sid] = await make_students(1)

    await client.post("/api/v1/promotions/bulk", json=_payload(period, [sid]), headers=school.admin_headers)

    term = await db_session.execute(select(Student.current_term_id).where(Student.id == sid))
    assert term.scalar_one() == period.terms_2425[1]
