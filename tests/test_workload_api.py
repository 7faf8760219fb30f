from datetime import datetime, timedelta

from app.models import Notification, NotificationType, Task, TaskPriority, TaskStatus


def test_workload_requires_token(client):
    response = client.get("/api/users/workload")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_workload_rejects_garbage_token(client):
    response = client.get("/api/users/workload", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_field_user_only_sees_own_workload(client, make_user, make_task, auth_headers):
    worker = make_user("FIELD", name="Worker", capacity=8)
    make_user("FIELD", name="Someone Else")
    make_task("Survey", assignee=worker, hours=3)
    make_task("Report", assignee=worker, hours=4, status=TaskStatus.IN_PROGRESS)

    response = client.get("/api/users/workload", headers=auth_headers(worker))
    assert response.status_code == 200
    body = response.json()

    assert len(body["users"]) == 1
    assert "teamSummary" not in body
    workload = body["users"][0]["workload"]
    assert workload["currentHours"] == 7
    assert workload["utilizationRate"] == 88
    assert workload["status"] == "busy"
    assert workload["availableHours"] == 1


def test_manager_sees_team_summary(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER", name="Manager", capacity=40)
    worker = make_user("FIELD", name="Worker", capacity=40)
    make_task("Big", assignee=worker, hours=44)

    body = client.get("/api/users/workload", headers=auth_headers(manager)).json()
    assert len(body["users"]) == 2
    assert body["teamSummary"]["totalUsers"] == 2
    assert body["teamSummary"]["statusDistribution"]["overloaded"] == 1

    single = client.get(
        "/api/users/workload",
        params={"userId": worker.id},
        headers=auth_headers(manager)
    ).json()
    assert len(single["users"]) == 1
    assert single["users"][0]["workload"]["utilizationRate"] == 110


def test_department_head_is_scoped_to_department(client, make_user, make_department, auth_headers):
    ops = make_department("Operations")
    sales = make_department("Sales")
    head = make_user("DEPARTMENT_HEAD", name="Head", department=ops)
    make_user("FIELD", name="Ops Worker", department=ops)
    make_user("FIELD", name="Sales Worker", department=sales)

    body = client.get(
        "/api/users/workload",
        params={"departmentId": sales.id},
        headers=auth_headers(head)
    ).json()
    assert body["users"] == []


def test_include_project_participants(client, make_user, auth_headers):
    manager = make_user("MANAGER")
    body = client.get(
        "/api/users/workload",
        params={"userId": manager.id, "includeProjectParticipants": "true"},
        headers=auth_headers(manager)
    ).json()
    assert body["users"][0]["projects"] == {"total": 0, "asManager": 0, "asParticipant": 0}


def test_alerts_forbidden_for_field_users(client, make_user, auth_headers):
    worker = make_user("FIELD")
    response = client.get("/api/workload/alerts", headers=auth_headers(worker))
    assert response.status_code == 403
    assert "error" in response.json()


def test_alerts_for_overloaded_and_overdue_users(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER", capacity=40)
    worker = make_user("FIELD", name="Worker", capacity=8)
    make_task("Late", assignee=worker, hours=10, end_date=datetime.utcnow() - timedelta(days=2))

    response = client.get("/api/workload/alerts", headers=auth_headers(manager))
    assert response.status_code == 200
    body = response.json()

    types = {a["type"] for a in body["alerts"]}
    assert types == {"workload", "overdue"}
    assert body["alerts"][0]["severity"] == "critical"
    assert body["summary"]["affectedUsers"] == 1

    critical = client.get(
        "/api/workload/alerts",
        params={"severity": "critical"},
        headers=auth_headers(manager)
    ).json()
    assert [a["type"] for a in critical["alerts"]] == ["workload"]


def test_rebalance_requires_manager(client, make_user, auth_headers):
    admin = make_user("ADMIN")
    head = make_user("DEPARTMENT")
    assert client.post("/api/workload/rebalance", headers=auth_headers(admin)).status_code == 403
    assert client.post("/api/workload/rebalance", headers=auth_headers(head)).status_code == 403


def test_rebalance_without_overloaded_users(client, make_user, auth_headers):
    manager = make_user("MANAGER")
    response = client.post("/api/workload/rebalance", headers=auth_headers(manager))
    assert response.status_code == 200
    assert response.json() == {
        "message": "No overloaded users found",
        "rebalanced": False,
        "tasksRebalanced": 0,
        "overloadedUsers": 0,
        "availableUsers": 1,
    }


def test_rebalance_moves_pending_tasks(client, db, make_user, make_task, auth_headers):
    manager = make_user("MANAGER", name="Manager")
    busy = make_user("FIELD", name="Busy")
    free = make_user("FIELD", name="Free")
    make_task("Ongoing", assignee=busy, hours=22, status=TaskStatus.IN_PROGRESS)
    largest = make_task("Largest", assignee=busy, hours=10)
    make_task("Medium", assignee=busy, hours=8)
    make_task("Small", assignee=busy, hours=5)
    make_task("Urgent", assignee=busy, hours=3, priority=TaskPriority.URGENT)
    make_task("Existing", assignee=free, hours=5)

    # The manager has no tasks, so every move targets the least loaded user first
    response = client.post("/api/workload/rebalance", headers=auth_headers(manager))
    assert response.status_code == 200
    body = response.json()
    assert body["rebalanced"] is True
    assert body["tasksRebalanced"] >= 1
    assert body["overloadedUsers"] == 1

    db.expire_all()
    moved = db.query(Task).filter(Task.id == largest.id).one()
    assert moved.assignee_id in (manager.id, free.id)
    urgent = db.query(Task).filter(Task.title == "Urgent").one()
    assert urgent.assignee_id == busy.id

    notifications = db.query(Notification).filter(
        Notification.notification_type == NotificationType.TASK_ASSIGNED
    ).count()
    assert notifications == body["tasksRebalanced"]


def test_workload_stats(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER")
    worker = make_user("FIELD")
    make_task("Big", assignee=worker, hours=40)

    body = client.get("/api/workload/stats", headers=auth_headers(manager)).json()
    assert body["totalUsers"] == 2
    assert body["overloadedUsers"] == 1
    assert body["availableUsers"] == 1
    assert body["averageWorkload"] == 50
    assert body["totalActiveTasks"] == 1
    assert "timestamp" in body


def test_department_head_without_department_sees_nothing(client, make_user, make_department, make_task, auth_headers):
    ops = make_department("Operations")
    head = make_user("DEPARTMENT", name="Unplaced Head")
    worker = make_user("FIELD", name="Ops Worker", department=ops)
    make_task("Survey", assignee=worker, department=ops, hours=3)

    workload = client.get("/api/users/workload", headers=auth_headers(head)).json()
    assert workload["users"] == []

    tasks = client.get("/api/tasks/", headers=auth_headers(head)).json()
    assert tasks == []

    users = client.get("/api/users/", headers=auth_headers(head)).json()
    assert users["users"] == []
    assert users["pagination"]["total"] == 0
