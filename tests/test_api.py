from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import func, select

import teamhealth.db as app_db
from conftest import add_team, add_user
from teamhealth.main import app
from teamhealth.models import HealthDimension, HierarchyLevel
from teamhealth.scope import SupervisorScopeResolver
from teamhealth.seed import seed_defaults

ADMIN = {"X-User-Id": "admin"}
MANAGER = {"X-User-Id": "manager"}
MEMBER = {"X-User-Id": "member_1"}


def setup_org() -> None:
    db = app_db.SessionLocal()
    seed_defaults(db)
    add_user(db, "admin", level_id="level-1")
    add_user(db, "manager", level_id="level-3", reports_to="admin")
    add_user(db, "member_1", level_id="level-5", reports_to="manager")
    add_team(db, "team-a", "Team A", team_lead_id="manager")
    add_team(db, "team-b", "Team B")
    SupervisorScopeResolver(db).rebuild_chain("team-a", [("manager", "level-3"), ("admin", "level-1")])
    db.close()


def submit(client: TestClient, team_id: str, scores: dict[str, int], headers=MEMBER, **extra):
    return client.post(
        "/api/health-checks",
        headers=headers,
        json={
            "team_id": team_id,
            "date": "2025-03-15",
            "responses": [
                {"dimension_id": dimension_id, "score": score, "trend": "stable"}
                for dimension_id, score in scores.items()
            ],
            **extra,
        },
    )


def test_health_and_authentication():
    setup_org()
    client = TestClient(app)

    assert client.get("/health").json() == {"ok": True, "service": "teamhealth"}
    assert client.get("/api/health-dimensions").status_code == 401
    assert client.get("/api/health-dimensions", headers={"X-User-Id": "ghost"}).status_code == 401

    dimensions = client.get("/api/health-dimensions", headers=MEMBER)
    assert dimensions.status_code == 200
    assert len(dimensions.json()) == 11
    assert dimensions.headers["Cache-Control"].startswith("no-store")


def test_seed_defaults_only_fills_empty_tables():
    setup_org()
    db = app_db.SessionLocal()
    seed_defaults(db)
    assert db.scalar(select(func.count(HierarchyLevel.id))) == 5
    assert db.scalar(select(func.count(HealthDimension.id))) == 11
    db.close()


def test_hierarchy_admin_requires_configure_permission():
    setup_org()
    client = TestClient(app)

    assert client.get("/api/admin/hierarchy-levels", headers=MEMBER).status_code == 403
    assert client.get("/api/admin/hierarchy-levels", headers=MANAGER).status_code == 403

    levels = client.get("/api/admin/hierarchy-levels", headers=ADMIN)
    assert levels.status_code == 200
    assert [level["position"] for level in levels.json()] == [1, 2, 3, 4, 5]
    assert levels.json()[0]["permissions"]["can_configure_system"] is True


def test_hierarchy_admin_flow():
    setup_org()
    client = TestClient(app)

    created = client.post(
        "/api/admin/hierarchy-levels",
        headers=ADMIN,
        json={"name": "Senior Manager", "position": 3, "permissions": {"can_view_reports": True}},
    )
    assert created.status_code == 201
    level_id = created.json()["id"]
    assert created.json()["position"] == 3

    moved = client.post(f"/api/admin/hierarchy-levels/{level_id}/move", headers=ADMIN, json={"direction": "up"})
    assert moved.status_code == 200
    assert [level["id"] for level in moved.json()][:3] == ["level-1", level_id, "level-2"]

    bad_direction = client.post(
        f"/api/admin/hierarchy-levels/{level_id}/move", headers=ADMIN, json={"direction": "left"}
    )
    assert bad_direction.status_code == 422

    repositioned = client.put(
        f"/api/admin/hierarchy-levels/{level_id}/position", headers=ADMIN, json={"new_position": 6}
    )
    assert [level["id"] for level in repositioned.json()][-1] == level_id

    renamed = client.put(f"/api/admin/hierarchy-levels/{level_id}", headers=ADMIN, json={"name": "Area Manager"})
    assert renamed.json()["name"] == "Area Manager"

    blank = client.put(f"/api/admin/hierarchy-levels/{level_id}", headers=ADMIN, json={"name": " "})
    assert blank.status_code == 400
    assert "name" in blank.json()["errors"]

    assert client.delete("/api/admin/hierarchy-levels/level-5", headers=ADMIN).status_code == 400
    in_use = client.delete("/api/admin/hierarchy-levels/level-3", headers=ADMIN)
    assert in_use.status_code == 409
    assert "assigned users" in in_use.json()["detail"]
    assert client.delete("/api/admin/hierarchy-levels/level-missing", headers=ADMIN).status_code == 404

    deleted = client.delete(f"/api/admin/hierarchy-levels/{level_id}", headers=ADMIN)
    assert deleted.json() == {"ok": True}
    levels = client.get("/api/admin/hierarchy-levels", headers=ADMIN).json()
    assert [level["position"] for level in levels] == [1, 2, 3, 4, 5]


def test_health_check_submission_and_lookup():
    setup_org()
    client = TestClient(app)

    rejected = submit(client, "team-a", {"mission": 4})
    assert rejected.status_code == 400
    assert "responses[0].score" in rejected.json()["errors"]

    conflict = client.post(
        "/api/health-checks",
        headers=MEMBER,
        json={
            "team_id": "team-a",
            "date": "2025-03-15",
            "responses": [
                {"dimension_id": "mission", "score": 2, "trend": "stable"},
                {"dimension_id": "mission", "score": 3, "trend": "stable"},
            ],
        },
    )
    assert conflict.status_code == 409

    created = submit(client, "team-a", {"mission": 3, "value": 2})
    assert created.status_code == 201
    session_id = created.json()["id"]

    fetched = client.get(f"/api/health-checks/{session_id}", headers=MEMBER).json()
    assert fetched["user_id"] == "member_1"
    assert fetched["assessment_period"] == "2024 - 2nd Half"
    assert [r["dimension_id"] for r in fetched["responses"]] == ["mission", "value"]

    team_sessions = client.get("/api/teams/team-a/health-checks", headers=MANAGER).json()
    assert [s["id"] for s in team_sessions] == [session_id]

    assert client.get("/api/health-checks/session-missing", headers=MEMBER).status_code == 404


def test_only_the_submitter_can_delete_a_health_check():
    setup_org()
    client = TestClient(app)
    session_id = submit(client, "team-a", {"mission": 3}).json()["id"]

    assert client.delete(f"/api/health-checks/{session_id}", headers=MANAGER).status_code == 403
    assert client.delete(f"/api/health-checks/{session_id}", headers=MEMBER).json() == {"ok": True}
    assert client.get(f"/api/health-checks/{session_id}", headers=MEMBER).status_code == 404


def test_manager_dashboard_endpoints():
    setup_org()
    client = TestClient(app)
    submit(client, "team-a", {"mission": 3, "value": 2})
    submit(client, "team-a", {"mission": 1, "value": 1}, assessment_period="2025 - 1st Half")
    submit(client, "team-b", {"mission": 1})

    teams = client.get(
        "/api/manager/teams-health", headers=MANAGER, params={"assessmentPeriod": "2024 - 2nd Half"}
    ).json()
    assert [t["team_id"] for t in teams] == ["team-a"]
    assert teams[0]["overall_health"] == 2.5
    assert teams[0]["submission_count"] == 1

    everything = client.get("/api/manager/teams-health", headers=ADMIN).json()
    assert everything[0]["overall_health"] == 1.75
    assert everything[0]["submission_count"] == 2

    dimensions = client.get(
        "/api/manager/dimensions", headers=MANAGER, params={"assessmentPeriod": "2024 - 2nd Half"}
    ).json()
    assert {d["dimension_id"]: d["avg_score"] for d in dimensions} == {"mission": 3.0, "value": 2.0}

    trends = client.get("/api/manager/trends", headers=MANAGER).json()
    assert trends["periods"] == ["2024 - 2nd Half", "2025 - 1st Half"]

    assert client.get("/api/manager/teams-health", headers=MEMBER).json() == []


def test_admin_team_and_user_routes():
    setup_org()
    client = TestClient(app)

    assert client.get("/api/admin/teams", headers=MEMBER).status_code == 403
    assert client.get("/api/admin/teams", headers=MANAGER).status_code == 200
    assert client.get("/api/admin/users", headers=MANAGER).status_code == 403

    created_user = client.post(
        "/api/admin/users",
        headers=ADMIN,
        json={
            "id": "lead_x",
            "username": "lead.x",
            "email": "lead.x@example.com",
            "hierarchy_level_id": "level-4",
            "reports_to": "manager",
        },
    )
    assert created_user.status_code == 201
    assert created_user.json()["reports_to"] == "manager"

    created_team = client.post(
        "/api/admin/teams",
        headers=ADMIN,
        json={"id": "team-c", "name": "Team C", "team_lead_id": "lead_x", "member_ids": ["member_1"]},
    )
    assert created_team.status_code == 201
    body = created_team.json()
    assert body["member_ids"] == ["member_1"]
    assert [link["user_id"] for link in body["supervisor_chain"]] == ["lead_x", "manager", "admin"]

    scoped = client.get("/api/manager/teams-health", headers=MANAGER).json()
    assert {team["team_id"] for team in scoped} == {"team-a", "team-c"}

    recadenced = client.put("/api/admin/teams/team-c", headers=ADMIN, json={"cadence": "weekly"})
    assert recadenced.json()["team_lead_id"] == "lead_x"
    assert recadenced.json()["cadence"] == "weekly"

    bad_cadence = client.put("/api/admin/teams/team-c", headers=ADMIN, json={"cadence": "daily"})
    assert bad_cadence.status_code == 400
    assert "cadence" in bad_cadence.json()["errors"]

    renamed = client.put("/api/admin/users/lead_x", headers=ADMIN, json={"full_name": "Lead X"})
    assert renamed.json() == {**created_user.json(), "full_name": "Lead X"}

    unled = client.put("/api/admin/teams/team-c", headers=ADMIN, json={"team_lead_id": None})
    assert unled.json()["supervisor_chain"] == []
    scoped = client.get("/api/manager/teams-health", headers=MANAGER).json()
    assert [team["team_id"] for team in scoped] == ["team-a"]

    assert client.delete("/api/admin/teams/team-c", headers=ADMIN).json() == {"ok": True}
    assert client.delete("/api/admin/teams/team-c", headers=ADMIN).status_code == 404
    assert [team["id"] for team in client.get("/api/admin/teams", headers=ADMIN).json()] == ["team-a", "team-b"]


def test_team_health_checks_are_limited_to_people_who_can_see_the_team():
    setup_org()
    client = TestClient(app)
    submit(client, "team-a", {"mission": 3, "value": 2})

    assert client.get("/api/teams/team-a/health-checks", headers=MEMBER).status_code == 403
    assert client.get("/api/teams/team-a/dashboard/health-summary", headers=MEMBER).status_code == 403

    joined = client.put("/api/admin/teams/team-a", headers=ADMIN, json={"member_ids": ["member_1"]})
    assert joined.status_code == 200
    assert len(client.get("/api/teams/team-a/health-checks", headers=MEMBER).json()) == 1

    assert client.get("/api/teams/team-b/health-checks", headers=MANAGER).status_code == 403
    assert client.get("/api/teams/team-b/health-checks", headers=ADMIN).json() == []
    assert client.get("/api/teams/team-missing/health-checks", headers=ADMIN).status_code == 404


def test_team_health_summary_and_survey_history_routes():
    setup_org()
    client = TestClient(app)
    submit(client, "team-a", {"mission": 3, "value": 2}, id="s-1")
    submit(client, "team-a", {"mission": 1}, id="s-2", assessment_period="2025 - 1st Half")

    summary = client.get(
        "/api/teams/team-a/dashboard/health-summary",
        headers=MANAGER,
        params={"assessmentPeriod": "2024 - 2nd Half"},
    ).json()
    assert summary["team_id"] == "team-a"
    assert summary["overall_health"] == 2.5
    assert summary["submission_count"] == 1
    assert client.get("/api/teams/team-missing/dashboard/health-summary", headers=ADMIN).status_code == 404

    history = client.get("/api/users/member_1/survey-history", headers=MEMBER).json()
    assert [entry["avg_score"] for entry in history] == [2.5, 1.0]
    assert history[0]["team_name"] == "Team A"
    assert len(client.get("/api/users/member_1/survey-history", headers=ADMIN, params={"limit": 1}).json()) == 1
    assert client.get("/api/users/member_1/survey-history", headers=MANAGER).status_code == 403
    assert client.get("/api/users/member_1/survey-history", headers=MEMBER, params={"limit": 0}).status_code == 422
