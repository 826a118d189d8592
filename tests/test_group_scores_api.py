from sqlalchemy import select

from app.models.evaluation import GroupScore
from app.models.user import User


async def build_org(factory):
    """A (root, led by U1) -> B (led by U2, who reports to U1); U3 in B."""
    group_a = await factory.group("A")
    group_b = await factory.group("B")
    u1 = await factory.user("U1", group_a)
    u2 = await factory.user("U2", group_b, manager=u1)
    u3 = await factory.user("U3", group_b, manager=u2)
    await factory.lead(group_a, u1)
    await factory.lead(group_b, u2)
    return group_a, group_b, u1, u2, u3


async def test_tree_rolls_child_score_up_to_root(client, factory, admin_headers):
    group_a, group_b, u1, u2, u3 = await build_org(factory)
    period = await factory.period()
    await factory.evaluation(period, u2, u3, 4.0)

    response = await client.get("/api/group-scores", headers=admin_headers, params={"periodId": period.id})

    assert response.status_code == 200
    body = response.json()
    assert body["period"]["id"] == period.id
    assert body["groups"] == [{
        "groupId": group_a.id,
        "groupName": "A",
        "leaderId": u1.id,
        "leaderName": "U1",
        "score": 4.0,
        "userCount": 1,
        "isLeaf": False,
        "children": [{
            "groupId": group_b.id,
            "groupName": "B",
            "leaderId": u2.id,
            "leaderName": "U2",
            "score": 4.0,
            "userCount": 1,
            "isLeaf": True,
            "children": [],
        }],
    }]


async def test_tree_defaults_to_current_period(client, factory, admin_headers):
    await build_org(factory)
    period = await factory.period()

    response = await client.get("/api/group-scores", headers=admin_headers)

    assert response.json()["period"]["id"] == period.id


async def test_no_active_period_gives_empty_payload(client, factory, admin_headers):
    await factory.period(is_active=False)

    tree = await client.get("/api/group-scores", headers=admin_headers)
    summary = await client.get("/api/group-scores/summary", headers=admin_headers)

    assert tree.json() == {"period": None, "groups": []}
    assert summary.json()["period"] is None
    assert summary.json()["groups"] == []


async def test_unknown_period_is_404(client, admin_headers):
    response = await client.get("/api/group-scores", headers=admin_headers, params={"periodId": 999})

    assert response.status_code == 404
    assert response.json() == {"error": "Period not found"}


async def test_cyclic_reporting_lines_are_reported(client, factory, admin_headers):
    group_a = await factory.group("A")
    group_b = await factory.group("B")
    u1 = await factory.user("U1", group_a)
    u2 = await factory.user("U2", group_b, manager=u1)
    await factory.lead(group_a, u1)
    await factory.lead(group_b, u2)
    async with factory.sessionmaker() as db:
        row = await db.get(User, u1.id)
        row.manager_id = u2.id
        await db.commit()
    period = await factory.period()

    response = await client.get("/api/group-scores", headers=admin_headers, params={"periodId": period.id})

    assert response.status_code == 400
    assert response.json()["error"] == "Group hierarchy contains a cycle"


async def test_summary_uses_flat_member_scores(client, factory, admin_headers):
    group_a, group_b, u1, u2, u3 = await build_org(factory)
    period = await factory.period()
    await factory.evaluation(period, u1, u2, 3.0, form_type="manager")
    await factory.evaluation(period, u2, u3, 5.0)

    response = await client.get("/api/group-scores/summary", headers=admin_headers, params={"periodId": period.id})

    body = response.json()
    assert body["overallScore"] == 4.0
    assert body["employeesEvaluated"] == 2
    assert body["managerFormAvg"] == 3.0
    assert body["employeeFormAvg"] == 5.0
    assert body["distribution"] == {"excellent": 1, "good": 0, "satisfactory": 1, "poor": 0}
    by_name = {g["name"]: g for g in body["groups"]}
    # B holds both evaluatees; A has no evaluated members of its own
    assert by_name["B"]["memberScore"] == 4.0
    assert by_name["B"]["evaluatedCount"] == 2
    assert by_name["A"]["memberScore"] is None
    assert body["groupsEvaluated"] == 1


async def test_calculate_persists_non_null_nodes(client, factory, sessionmaker, admin_headers):
    group_a, group_b, u1, u2, u3 = await build_org(factory)
    lonely = await factory.group("Lonely")
    period = await factory.period()
    await factory.evaluation(period, u2, u3, 4.5)

    missing = await client.post("/api/group-scores/calculate", headers=admin_headers, json={})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Period ID is required"}

    first = await client.post("/api/group-scores/calculate", headers=admin_headers, json={"periodId": period.id})
    second = await client.post("/api/group-scores/calculate", headers=admin_headers, json={"periodId": period.id})

    assert first.status_code == second.status_code == 200
    assert second.json()["count"] == 2
    assert {s["groupId"] for s in second.json()["scores"]} == {group_a.id, group_b.id}
    async with sessionmaker() as db:
        rows = (await db.execute(select(GroupScore))).scalars().all()
    assert len(rows) == 2
    assert lonely.id not in {r.group_id for r in rows}

    stored = await client.get("/api/group-scores/stored", headers=admin_headers, params={"periodId": period.id})
    assert [s["score"] for s in stored.json()] == [4.5, 4.5]


async def test_group_detail_lists_members_with_evaluations(client, factory, admin_headers):
    group_a, group_b, u1, u2, u3 = await build_org(factory)
    period = await factory.period()
    await factory.evaluation(period, u2, u3, 3.6)

    response = await client.get(f"/api/group-scores/{group_b.id}", headers=admin_headers,
                                params={"periodId": period.id})

    body = response.json()
    assert body["group"]["leader"]["id"] == u2.id
    assert body["group"]["memberScore"] == 3.6
    assert body["group"]["evaluatedCount"] == 1
    assert body["group"]["totalCount"] == 2
    employees = {e["fullName"]: e for e in body["employees"]}
    assert employees["U3"]["evaluation"]["averageScore"] == 3.6
    assert employees["U2"]["evaluation"] is None


async def test_group_scores_are_admin_only(client, factory, user_headers):
    group = await factory.group("A")
    user = await factory.user("U", group)

    response = await client.get("/api/group-scores", headers=user_headers(user))

    assert response.status_code == 403
