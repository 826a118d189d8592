from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.models.kpi import KpiAssignment, KpiTaskFact
from app.utils.datetimes import utcnow


async def create_kpi(client, admin_headers, approver, **overrides):
    payload = {
        "title": "Q4 targets",
        "deadline": (utcnow() + timedelta(days=30)).isoformat(),
        "approverId": approver.id,
    }
    payload.update(overrides)
    response = await client.post("/api/kpis", headers=admin_headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def build_ready_kpi(client, admin_headers, approver, employees):
    kpi = await create_kpi(client, admin_headers, approver)
    kpi_id = kpi["id"]
    block = await client.post(f"/api/kpis/{kpi_id}/blocks", headers=admin_headers,
                              json={"name": "Sales", "weight": 100})
    block_id = block.json()["blocks"][0]["id"]
    await client.post(f"/api/kpis/{kpi_id}/blocks/{block_id}/tasks", headers=admin_headers,
                      json={"name": "Calls", "weight": 60, "planValue": 50})
    await client.post(f"/api/kpis/{kpi_id}/blocks/{block_id}/tasks", headers=admin_headers,
                      json={"name": "Deals", "weight": 40, "planValue": 10, "unit": "deals"})
    await client.post(f"/api/kpis/{kpi_id}/assign", headers=admin_headers,
                      json={"userIds": [e.id for e in employees]})
    response = await client.get(f"/api/kpis/{kpi_id}", headers=admin_headers)
    return response.json()


async def people(factory):
    group = await factory.group("Sales")
    approver = await factory.user("Approver", group, login="approver", password="pw", can_access_platform=True)
    first = await factory.user("First", group, login="first", password="pw", can_access_platform=True)
    second = await factory.user("Second", group, login="second", password="pw", can_access_platform=True)
    return approver, first, second


async def test_full_lifecycle(client, factory, admin_headers, user_headers):
    approver, first, second = await people(factory)
    kpi = await build_ready_kpi(client, admin_headers, approver, [first, second])
    kpi_id = kpi["id"]
    task_ids = [t["id"] for t in kpi["blocks"][0]["tasks"]]
    assert kpi["blocks"][0]["tasks"][0]["unit"] == "шт"
    assert kpi["blocks"][0]["tasks"][1]["order"] == 1

    submitted = await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "PENDING_APPROVAL"

    pending = await client.get("/api/kpis/pending-approval", headers=user_headers(approver))
    assert [k["id"] for k in pending.json()] == [kpi_id]

    not_visible = await client.get(f"/api/kpis/my/{kpi_id}", headers=user_headers(first))
    assert not_visible.status_code == 403

    approved = await client.post(f"/api/kpis/{kpi_id}/approve", headers=user_headers(approver))
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["approvedAt"]

    facts = [{"taskId": task_ids[0], "factValue": 25}, {"taskId": task_ids[1], "factValue": 10}]
    saved = await client.put(f"/api/kpis/my/{kpi_id}/facts", headers=user_headers(first), json={"facts": facts})
    assert saved.status_code == 200
    # Calls 50% * 60 + Deals 100% * 40
    assert saved.json()["fulfillment"]["score"] == 70.0

    done = await client.post(f"/api/kpis/my/{kpi_id}/submit", headers=user_headers(first))
    assert done.status_code == 200
    assert done.json()["isSubmitted"] is True
    assert done.json()["kpiStatus"] == "APPROVED"

    again = await client.post(f"/api/kpis/my/{kpi_id}/submit", headers=user_headers(first))
    assert again.status_code == 400

    await client.put(f"/api/kpis/my/{kpi_id}/facts", headers=user_headers(second), json={"facts": facts})
    last = await client.post(f"/api/kpis/my/{kpi_id}/submit", headers=user_headers(second))
    assert last.json()["kpiStatus"] == "COMPLETED"

    mine = await client.get("/api/kpis/my", headers=user_headers(second))
    assert [a["kpi"]["status"] for a in mine.json()] == ["COMPLETED"]


async def test_submit_reports_every_violation(client, factory, admin_headers):
    approver, _, _ = await people(factory)
    kpi = await create_kpi(client, admin_headers, approver)

    response = await client.post(f"/api/kpis/{kpi['id']}/submit", headers=admin_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert "At least one block is required" in body["errors"]
    assert "At least one employee must be assigned" in body["errors"]


async def test_reject_then_edit_reopens_as_draft(client, factory, admin_headers, user_headers):
    approver, first, _ = await people(factory)
    kpi = await build_ready_kpi(client, admin_headers, approver, [first])
    kpi_id = kpi["id"]
    await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)

    no_reason = await client.post(f"/api/kpis/{kpi_id}/reject", headers=user_headers(approver), json={})
    assert no_reason.status_code == 400

    wrong_user = await client.post(f"/api/kpis/{kpi_id}/reject", headers=user_headers(first),
                                   json={"reason": "nope"})
    assert wrong_user.status_code == 403

    rejected = await client.post(f"/api/kpis/{kpi_id}/reject", headers=user_headers(approver),
                                 json={"reason": "Raise the plan"})
    assert rejected.json()["status"] == "REJECTED"
    assert rejected.json()["rejectionReason"] == "Raise the plan"

    edited = await client.put(f"/api/kpis/{kpi_id}", headers=admin_headers, json={"title": "Q4 targets v2"})
    assert edited.json()["status"] == "DRAFT"
    assert edited.json()["rejectionReason"] is None

    resubmitted = await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)
    assert resubmitted.json()["status"] == "PENDING_APPROVAL"


async def test_structure_locked_while_pending(client, factory, admin_headers):
    approver, first, _ = await people(factory)
    kpi = await build_ready_kpi(client, admin_headers, approver, [first])
    kpi_id = kpi["id"]
    await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)

    add_block = await client.post(f"/api/kpis/{kpi_id}/blocks", headers=admin_headers,
                                  json={"name": "Extra", "weight": 10})
    delete = await client.delete(f"/api/kpis/{kpi_id}", headers=admin_headers)

    assert add_block.status_code == 400
    assert add_block.json()["error"] == "Can only add blocks to KPI in DRAFT or REJECTED status"
    assert delete.status_code == 400


async def test_assigning_twice_is_idempotent(client, factory, sessionmaker, admin_headers):
    approver, first, second = await people(factory)
    kpi = await create_kpi(client, admin_headers, approver)

    initial = await client.post(f"/api/kpis/{kpi['id']}/assign", headers=admin_headers,
                                json={"userIds": [first.id]})
    repeat = await client.post(f"/api/kpis/{kpi['id']}/assign", headers=admin_headers,
                               json={"userIds": [first.id, second.id]})
    unknown = await client.post(f"/api/kpis/{kpi['id']}/assign", headers=admin_headers,
                                json={"userIds": [999]})

    assert [a["userId"] for a in initial.json()] == [first.id]
    assert [a["userId"] for a in repeat.json()] == [second.id]
    assert unknown.status_code == 404
    async with sessionmaker() as db:
        rows = (await db.execute(select(KpiAssignment))).scalars().all()
    assert sorted(r.user_id for r in rows) == sorted([first.id, second.id])

    removed = await client.delete(f"/api/kpis/{kpi['id']}/assign/{first.id}", headers=admin_headers)
    assert [a["userId"] for a in removed.json()["assignments"]] == [second.id]


async def test_block_and_task_edits(client, factory, admin_headers):
    approver, first, _ = await people(factory)
    kpi = await build_ready_kpi(client, admin_headers, approver, [first])
    kpi_id = kpi["id"]
    block_id = kpi["blocks"][0]["id"]
    task_id = kpi["blocks"][0]["tasks"][1]["id"]

    updated = await client.put(f"/api/kpis/{kpi_id}/blocks/{block_id}/tasks/{task_id}", headers=admin_headers,
                               json={"weight": 30})
    assert updated.json()["blocks"][0]["tasks"][1]["weight"] == 30

    off = await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)
    assert off.json()["errors"] == ['Tasks in block "Sales" must have total weight of 100%, current: 90%']

    removed = await client.delete(f"/api/kpis/{kpi_id}/blocks/{block_id}/tasks/{task_id}", headers=admin_headers)
    assert len(removed.json()["blocks"][0]["tasks"]) == 1

    missing = await client.put(f"/api/kpis/{kpi_id}/blocks/999", headers=admin_headers, json={"weight": 5})
    assert missing.status_code == 404

    dropped = await client.delete(f"/api/kpis/{kpi_id}/blocks/{block_id}", headers=admin_headers)
    assert dropped.json()["blocks"] == []


async def test_submit_results_lists_missing_tasks(client, factory, admin_headers, user_headers):
    approver, first, _ = await people(factory)
    kpi = await build_ready_kpi(client, admin_headers, approver, [first])
    kpi_id = kpi["id"]
    task_ids = [t["id"] for t in kpi["blocks"][0]["tasks"]]
    await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)
    await client.post(f"/api/kpis/{kpi_id}/approve", headers=user_headers(approver))

    await client.put(f"/api/kpis/my/{kpi_id}/facts", headers=user_headers(first),
                     json={"facts": [{"taskId": task_ids[0], "factValue": 5}]})
    response = await client.post(f"/api/kpis/my/{kpi_id}/submit", headers=user_headers(first))

    assert response.status_code == 400
    assert response.json() == {"error": "All tasks must have fact values", "missingTasks": [task_ids[1]]}

    foreign = await client.put(f"/api/kpis/my/{kpi_id}/facts", headers=user_headers(first),
                               json={"facts": [{"taskId": 999, "factValue": 5}]})
    assert foreign.status_code == 400


async def test_unknown_approver_and_unassigned_employee(client, factory, admin_headers, user_headers):
    approver, first, _ = await people(factory)

    bad = await client.post("/api/kpis", headers=admin_headers, json={
        "title": "X", "deadline": utcnow().isoformat(), "approverId": 999,
    })
    assert bad.status_code == 404
    assert bad.json() == {"error": "Approver not found"}

    kpi = await create_kpi(client, admin_headers, approver)
    not_assigned = await client.get(f"/api/kpis/my/{kpi['id']}", headers=user_headers(first))
    assert not_assigned.status_code == 404


async def test_list_filters_by_status(client, factory, admin_headers):
    approver, first, _ = await people(factory)
    ready = await build_ready_kpi(client, admin_headers, approver, [first])
    await create_kpi(client, admin_headers, approver, title="Draft only")
    await client.post(f"/api/kpis/{ready['id']}/submit", headers=admin_headers)

    drafts = await client.get("/api/kpis", headers=admin_headers, params={"status": "DRAFT"})
    everything = await client.get("/api/kpis", headers=admin_headers)

    assert [k["title"] for k in drafts.json()] == ["Draft only"]
    assert len(everything.json()) == 2


async def test_deadline_with_offset_is_stored_as_utc(client, factory, admin_headers):
    approver, _, _ = await people(factory)
    plus_five = timezone(timedelta(hours=5))
    an_hour_ago = (utcnow() - timedelta(hours=1)).astimezone(plus_five)

    kpi = await create_kpi(client, admin_headers, approver, deadline=an_hour_ago.isoformat())
    response = await client.post(f"/api/kpis/{kpi['id']}/submit", headers=admin_headers)

    assert "Deadline must be in the future" in response.json()["errors"]
    stored = kpi["deadline"].replace("Z", "+00:00")
    assert abs((datetime.fromisoformat(stored).replace(tzinfo=timezone.utc) - an_hour_ago).total_seconds()) < 1


async def test_saving_facts_twice_updates_in_place(client, factory, sessionmaker, admin_headers, user_headers):
    approver, first, _ = await people(factory)
    kpi = await build_ready_kpi(client, admin_headers, approver, [first])
    kpi_id = kpi["id"]
    task_id = kpi["blocks"][0]["tasks"][0]["id"]
    await client.post(f"/api/kpis/{kpi_id}/submit", headers=admin_headers)
    await client.post(f"/api/kpis/{kpi_id}/approve", headers=user_headers(approver))

    for value in (10, 40):
        saved = await client.put(f"/api/kpis/my/{kpi_id}/facts", headers=user_headers(first),
                                 json={"facts": [{"taskId": task_id, "factValue": value}]})
        assert saved.status_code == 200

    async with sessionmaker() as db:
        rows = (await db.execute(select(KpiTaskFact))).scalars().all()
    assert [(r.task_id, r.fact_value) for r in rows] == [(task_id, 40)]
