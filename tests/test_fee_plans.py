from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.api.v1.fee_plans import service as plan_service
from fee_ledger.core.models import AcademicYear, FeeStudentPlan, FeeStudentPlanItem


async def _items(db: AsyncSession, plan_id) -> dict:
    rows = (
        await db.execute(
            select(FeeStudentPlanItem.component_type_id, FeeStudentPlanItem.amount_minor_units).where(
                FeeStudentPlanItem.plan_id == UUID(str(plan_id))
            )
        )
    ).all()
    return {cid: amount for cid, amount in rows}


@pytest.mark.asyncio
async def test_open_plan_creates_once(client: AsyncClient, auth_headers, school, db_session: AsyncSession) -> None:
    body = {"student_id": str(school.student_ids[0])}
    first = await client.post("/api/v1/fee-plans/open", json=body, headers=auth_headers)
    assert first.status_code == 200
    data = first.json()
    assert data["created"] is True
    assert data["plan"]["academic_year_id"] == str(school.academic_year_id)
    assert data["plan"]["class_instance_id"] == str(school.class_id)
    # Empty plan opens with one blank editor row
    assert data["items"] == [{"component_type_id": None, "amount_minor_units": 0}]

    second = await client.post("/api/v1/fee-plans/open", json=body, headers=auth_headers)
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["plan"]["id"] == data["plan"]["id"]

    count = (
        await db_session.execute(
            select(func.count()).select_from(FeeStudentPlan).where(
                FeeStudentPlan.student_id == school.student_ids[0]
            )
        )
    ).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_open_plan_unknown_student(client: AsyncClient, auth_headers, school) -> None:
    response = await client.post(
        "/api/v1/fee-plans/open",
        json={"student_id": "00000000-0000-0000-0000-000000000009"},
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Student not found"


@pytest.mark.asyncio
async def test_open_plan_without_active_year(client: AsyncClient, auth_headers, school, db_session: AsyncSession) -> None:
    ay = await db_session.get(AcademicYear, school.academic_year_id)
    ay.is_active = False
    await db_session.commit()
    response = await client.post(
        "/api/v1/fee-plans/open",
        json={"student_id": str(school.student_ids[0])},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("No active academic year found")


@pytest.mark.asyncio
async def test_save_plan_replaces_items(
    client: AsyncClient, auth_headers, school, make_component, db_session: AsyncSession
) -> None:
    a = await make_component("Admission", "A", 100)
    b = await make_component("Books", "B")
    c = await make_component("Club", "C")
    a_id, b_id, c_id = a.id, b.id, c.id
    opened = await client.post(
        "/api/v1/fee-plans/open", json={"student_id": str(school.student_ids[1])}, headers=auth_headers
    )
    plan_id = opened.json()["plan"]["id"]

    first = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [
            {"component_type_id": str(a_id), "amount_minor_units": 100},
            {"component_type_id": str(b_id), "amount_minor_units": 200},
        ]},
        headers=auth_headers,
    )
    assert first.status_code == 200
    assert first.json()["total_due_minor_units"] == 300

    second = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [
            {"component_type_id": str(b_id), "amount_minor_units": 250},
            {"component_type_id": str(c_id), "amount_minor_units": 50},
        ]},
        headers=auth_headers,
    )
    assert second.status_code == 200
    assert second.json()["total_due_minor_units"] == 300
    assert {i["component_name"] for i in second.json()["items"]} == {"Books", "Club"}
    assert await _items(db_session, plan_id) == {b_id: 250, c_id: 50}

    fetched = await client.get(f"/api/v1/fee-plans/{plan_id}", headers=auth_headers)
    assert fetched.status_code == 200
    assert len(fetched.json()["items"]) == 2

    reopened = await client.post(
        "/api/v1/fee-plans/open", json={"student_id": str(school.student_ids[1])}, headers=auth_headers
    )
    assert {i["component_type_id"] for i in reopened.json()["items"]} == {str(b_id), str(c_id)}


@pytest.mark.asyncio
async def test_save_plan_to_empty(client: AsyncClient, auth_headers, school, make_component, db_session: AsyncSession) -> None:
    a = await make_component("Admission", "A", 100)
    a_id = a.id
    plan_id = (
        await client.post(
            "/api/v1/fee-plans/open", json={"student_id": str(school.student_ids[0])}, headers=auth_headers
        )
    ).json()["plan"]["id"]
    await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": str(a_id), "amount_minor_units": 100}]},
        headers=auth_headers,
    )
    response = await client.put(f"/api/v1/fee-plans/{plan_id}/items", json={"items": []}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["items"] == []
    assert await _items(db_session, plan_id) == {}


@pytest.mark.asyncio
async def test_save_plan_rejects_duplicates_and_missing(
    client: AsyncClient, auth_headers, school, make_component, db_session: AsyncSession
) -> None:
    a = await make_component("Admission", "A", 100)
    a_id = a.id
    plan_id = (
        await client.post(
            "/api/v1/fee-plans/open", json={"student_id": str(school.student_ids[0])}, headers=auth_headers
        )
    ).json()["plan"]["id"]

    dup = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [
            {"component_type_id": str(a_id), "amount_minor_units": 100},
            {"component_type_id": str(a_id), "amount_minor_units": 200},
        ]},
        headers=auth_headers,
    )
    assert dup.status_code == 400
    assert dup.json()["detail"] == "This component is already added."

    missing = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": None, "amount_minor_units": 100}]},
        headers=auth_headers,
    )
    assert missing.status_code == 400

    unknown = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": "00000000-0000-0000-0000-000000000007", "amount_minor_units": 1}]},
        headers=auth_headers,
    )
    assert unknown.status_code == 404

    negative = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": str(a_id), "amount_minor_units": -5}]},
        headers=auth_headers,
    )
    assert negative.status_code == 422

    too_large = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": str(a_id), "amount_minor_units": 2**63}]},
        headers=auth_headers,
    )
    assert too_large.status_code == 422
    assert await _items(db_session, plan_id) == {}


@pytest.mark.asyncio
async def test_get_plan_other_school(client: AsyncClient, make_headers, school) -> None:
    opened = await client.post(
        "/api/v1/fee-plans/open",
        json={"student_id": str(school.student_ids[0])},
        headers=make_headers(),
    )
    plan_id = opened.json()["plan"]["id"]
    response = await client.get(f"/api/v1/fee-plans/{plan_id}", headers=make_headers(school_code="OTHER"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_closed_year_blocks_plan_writes(client: AsyncClient, make_headers, school) -> None:
    headers = make_headers(academic_year_id=school.academic_year_id, academic_year_status="CLOSED")
    response = await client.post(
        "/api/v1/fee-plans/open", json={"student_id": str(school.student_ids[0])}, headers=headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_failed_save_keeps_previous_items(
    client: AsyncClient, auth_headers, school, make_component, db_session: AsyncSession, monkeypatch
) -> None:
    a = await make_component("Admission", "A", 100)
    b = await make_component("Books", "B")
    a_id, b_id = a.id, b.id
    plan_id = (
        await client.post(
            "/api/v1/fee-plans/open", json={"student_id": str(school.student_ids[0])}, headers=auth_headers
        )
    ).json()["plan"]["id"]
    await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": str(a_id), "amount_minor_units": 100}]},
        headers=auth_headers,
    )

    async def failing_audit(*args, **kwargs):
        raise OperationalError("INSERT INTO fee_audit_logs", {}, Exception("database is locked"))

    # Fails after the delete and upsert have run, just before commit
    monkeypatch.setattr(plan_service, "log_fee_audit", failing_audit)
    response = await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": str(b_id), "amount_minor_units": 200}]},
        headers=auth_headers,
    )
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to save plan"
    assert await _items(db_session, plan_id) == {a_id: 100}
