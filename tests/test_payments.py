from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.models import FeePayment


async def _plan_with(client: AsyncClient, headers, student_id, items) -> str:
    plan_id = (
        await client.post("/api/v1/fee-plans/open", json={"student_id": str(student_id)}, headers=headers)
    ).json()["plan"]["id"]
    await client.put(
        f"/api/v1/fee-plans/{plan_id}/items",
        json={"items": [{"component_type_id": str(c), "amount_minor_units": a} for c, a in items]},
        headers=headers,
    )
    return plan_id


@pytest.mark.asyncio
async def test_record_payment(client: AsyncClient, auth_headers, school, make_component) -> None:
    tuition = await make_component("Tuition", "TUI")
    plan_id = await _plan_with(client, auth_headers, school.student_ids[0], [(tuition.id, 10000)])

    response = await client.post(
        "/api/v1/fee-payments",
        json={
            "student_id": str(school.student_ids[0]),
            "component_type_id": str(tuition.id),
            "amount": "1,250.50",
            "payment_method": "cash",
            "receipt_number": " R-001 ",
            "payment_date": "2025-07-01",
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["amount_minor_units"] == 125050
    assert data["plan_id"] == plan_id
    assert data["receipt_number"] == "R-001"
    assert data["student_name"] == "Aarav Shah"
    assert data["component_name"] == "Tuition"
    assert data["plan_total_minor_units"] == 10000
    assert data["amount_display"] == "₹1,250.50"


@pytest.mark.asyncio
async def test_payment_requires_plan(client: AsyncClient, auth_headers, school, make_component) -> None:
    tuition = await make_component("Tuition", "TUI")
    response = await client.post(
        "/api/v1/fee-payments",
        json={"student_id": str(school.student_ids[2]), "component_type_id": str(tuition.id), "amount_minor_units": 100},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("This student does not have a fee plan")


@pytest.mark.asyncio
async def test_payment_component_outside_plan(
    client: AsyncClient, auth_headers, school, make_component, db_session: AsyncSession
) -> None:
    tuition = await make_component("Tuition", "TUI")
    bus = await make_component("Bus", "BUS")
    await _plan_with(client, auth_headers, school.student_ids[0], [(tuition.id, 10000)])
    response = await client.post(
        "/api/v1/fee-payments",
        json={"student_id": str(school.student_ids[0]), "component_type_id": str(bus.id), "amount_minor_units": 100},
        headers=auth_headers,
    )
    assert response.status_code == 400
    count = (await db_session.execute(select(func.count()).select_from(FeePayment))).scalar()
    assert count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount_fields",
    [{"amount_minor_units": 0}, {"amount_minor_units": -10}, {"amount": "abc"}, {"amount": "0.001"}, {}],
)
async def test_payment_amount_validation(client: AsyncClient, auth_headers, school, make_component, amount_fields) -> None:
    tuition = await make_component("Tuition", "TUI")
    await _plan_with(client, auth_headers, school.student_ids[0], [(tuition.id, 10000)])
    body = {"student_id": str(school.student_ids[0]), "component_type_id": str(tuition.id), **amount_fields}
    response = await client.post("/api/v1/fee-payments", json=body, headers=auth_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_payment_history_filters(client: AsyncClient, auth_headers, school, make_component) -> None:
    tuition = await make_component("Tuition", "TUI")
    for sid in school.student_ids[:2]:
        await _plan_with(client, auth_headers, sid, [(tuition.id, 10000)])

    async def pay(sid, amount, day, method):
        response = await client.post(
            "/api/v1/fee-payments",
            json={
                "student_id": str(sid),
                "component_type_id": str(tuition.id),
                "amount_minor_units": amount,
                "payment_date": day,
                "payment_method": method,
            },
            headers=auth_headers,
        )
        assert response.status_code == 201

    await pay(school.student_ids[0], 1000, "2025-07-01", "cash")
    await pay(school.student_ids[0], 2000, "2025-08-01", "online")
    await pay(school.student_ids[1], 3000, "2025-07-15", "cash")

    everything = await client.get("/api/v1/fee-payments", headers=auth_headers)
    assert everything.status_code == 200
    data = everything.json()
    assert [p["payment_date"] for p in data["items"]] == ["2025-08-01", "2025-07-15", "2025-07-01"]
    assert data["total_collected_minor_units"] == 6000
    assert data["limit"] == 200
    assert all(p["plan_total_minor_units"] == 10000 for p in data["items"])

    cash = await client.get("/api/v1/fee-payments", params={"payment_method": "cash"}, headers=auth_headers)
    assert cash.json()["total_collected_minor_units"] == 4000

    july = await client.get(
        "/api/v1/fee-payments",
        params={"date_from": "2025-07-01", "date_to": "2025-07-31", "class_id": str(school.class_id)},
        headers=auth_headers,
    )
    assert july.json()["total_collected_minor_units"] == 4000

    by_name = await client.get("/api/v1/fee-payments", params={"search": "ROY"}, headers=auth_headers)
    assert [p["student_name"] for p in by_name.json()["items"]] == ["Émile Roy"]

    bad_range = await client.get(
        "/api/v1/fee-payments",
        params={"date_from": "2025-08-01", "date_to": "2025-07-01"},
        headers=auth_headers,
    )
    assert bad_range.status_code == 400


@pytest.mark.asyncio
async def test_pending_students(client: AsyncClient, auth_headers, school, make_component) -> None:
    tuition = await make_component("Tuition", "TUI")
    await _plan_with(client, auth_headers, school.student_ids[0], [(tuition.id, 10000)])
    await _plan_with(client, auth_headers, school.student_ids[1], [(tuition.id, 8000)])
    await client.post(
        "/api/v1/fee-payments",
        json={
            "student_id": str(school.student_ids[0]),
            "component_type_id": str(tuition.id),
            "amount_minor_units": 4000,
            "payment_date": date.today().isoformat(),
        },
        headers=auth_headers,
    )
    response = await client.get(
        "/api/v1/fee-payments/pending", params={"class_id": str(school.class_id)}, headers=auth_headers
    )
    assert response.status_code == 200
    data = response.json()
    # Roster order is by name; the student who paid is not pending
    assert [s["student_code"] for s in data["students"]] == ["S002", "S003"]
    dues = {s["student_code"]: s["due_minor_units"] for s in data["students"]}
    assert dues == {"S002": 8000, "S003": 0}
    assert data["pending_due_total_minor_units"] == 8000


@pytest.mark.asyncio
@pytest.mark.parametrize("amount_fields", [{"amount_minor_units": 10**19}, {"amount": "1e20"}])
async def test_payment_amount_too_large(
    client: AsyncClient, auth_headers, school, make_component, db_session: AsyncSession, amount_fields
) -> None:
    tuition = await make_component("Tuition", "TUI")
    await _plan_with(client, auth_headers, school.student_ids[0], [(tuition.id, 10000)])
    body = {"student_id": str(school.student_ids[0]), "component_type_id": str(tuition.id), **amount_fields}
    response = await client.post("/api/v1/fee-payments", json=body, headers=auth_headers)
    assert response.status_code == 400
    count = (await db_session.execute(select(func.count()).select_from(FeePayment))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_pending_students_follow_search(client: AsyncClient, auth_headers, school, make_component) -> None:
    tuition = await make_component("Tuition", "TUI")
    await _plan_with(client, auth_headers, school.student_ids[0], [(tuition.id, 10000)])
    await _plan_with(client, auth_headers, school.student_ids[1], [(tuition.id, 8000)])
    await client.post(
        "/api/v1/fee-payments",
        json={
            "student_id": str(school.student_ids[0]),
            "component_type_id": str(tuition.id),
            "amount_minor_units": 4000,
        },
        headers=auth_headers,
    )
    url = "/api/v1/fee-payments/pending"

    matching = (
        await client.get(url, params={"class_id": str(school.class_id), "search": "aarav"}, headers=auth_headers)
    ).json()
    assert [s["student_code"] for s in matching["students"]] == ["S002", "S003"]

    # Aarav's payment is filtered out by the search, so Aarav counts as pending again
    other = (
        await client.get(url, params={"class_id": str(school.class_id), "search": "zara"}, headers=auth_headers)
    ).json()
    assert [s["student_code"] for s in other["students"]] == ["S001", "S002", "S003"]
    assert other["pending_due_total_minor_units"] == 6000 + 8000
