from app.models import TaskPriority, TaskStatus
from app.services.dashboard_snapshot import compute_etag, etag_matches


def test_etag_ignores_timestamps():
    first = {"summary": {"tasks": 1}, "timestamp": "2024-01-01T00:00:00", "lastUpdated": "a"}
    second = {"summary": {"tasks": 1}, "timestamp": "2024-01-02T00:00:00", "lastUpdated": "b"}
    changed = {"summary": {"tasks": 2}, "timestamp": "2024-01-01T00:00:00"}

    assert compute_etag(first) == compute_etag(second)
    assert compute_etag(first) != compute_etag(changed)


def test_etag_matching():
    etag = compute_etag({"a": 1})
    assert etag_matches(etag, etag)
    assert etag_matches(f'"other", {etag}', etag)
    assert etag_matches(f"W/{etag}", etag)
    assert etag_matches("*", etag)
    assert not etag_matches(None, etag)
    assert not etag_matches('"other"', etag)


def test_dashboard_requires_token(client):
    assert client.get("/api/dashboard/real-time").status_code == 401


def test_dashboard_snapshot_for_manager(client, make_user, make_task, make_department, auth_headers):
    department = make_department("Field Ops")
    manager = make_user("MANAGER", department=department)
    worker = make_user("FIELD", name="Worker", department=department)
    make_task("Urgent", assignee=worker, department=department, hours=6, priority=TaskPriority.URGENT)
    make_task("Unassigned", department=department, hours=2)
    make_task("Done", assignee=worker, department=department, status=TaskStatus.COMPLETED)

    response = client.get("/api/dashboard/real-time", headers=auth_headers(manager))
    assert response.status_code == 200
    assert response.headers["etag"].startswith('"')
    assert response.headers["cache-control"] == "no-cache"

    body = response.json()
    for key in ("summary", "critical", "workload", "recent", "projects", "tasks", "stats", "timestamp"):
        assert key in body

    assert body["summary"]["tasks"]["total"] == 3
    assert body["summary"]["tasks"]["completed"] == 1
    assert body["critical"]["unassignedTasks"] == 1
    assert body["workload"]["departments"][0]["workloadHours"] == 6
    assert body["workload"]["topUsers"][0]["name"] == "Worker"
    assert len(body["tasks"]) == 3


def test_dashboard_is_scoped_for_field_users(client, make_user, make_task, auth_headers):
    worker = make_user("FIELD")
    other = make_user("FIELD")
    make_task("Mine", assignee=worker)
    make_task("Theirs", assignee=other)

    body = client.get("/api/dashboard/real-time", headers=auth_headers(worker)).json()
    assert body["summary"]["tasks"]["total"] == 1
    assert [t["title"] for t in body["tasks"]] == ["Mine"]
    assert body["workload"] == {"departments": [], "topUsers": []}


def test_dashboard_returns_304_when_unchanged(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER")
    make_task("Something")
    headers = auth_headers(manager)

    first = client.get("/api/dashboard/real-time", headers=headers)
    etag = first.headers["etag"]

    second = client.get("/api/dashboard/real-time", headers={**headers, "If-None-Match": etag})
    assert second.status_code == 304
    assert second.headers["etag"] == etag

    make_task("Something new")
    third = client.get("/api/dashboard/real-time", headers={**headers, "If-None-Match": etag})
    assert third.status_code == 200
    assert third.headers["etag"] != etag
