from fastapi.testclient import TestClient

from app.models import Feedback, FeedbackStatus, Notification, PhaseStatus, Project, Task, TaskPhase, TaskStatus
from main import app


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "TemSafy Pro API"}
    assert client.get("/health").json() == {"status": "ok"}


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_unexpected_errors_return_generic_500(db, make_user, auth_headers, monkeypatch):
    from app.database import get_db
    from app.services import analytics

    manager = make_user("MANAGER")

    def explode(self, days=30):
        raise RuntimeError("database went away")

    monkeypatch.setattr(analytics.AnalyticsAggregator, "overview", explode)
    app.dependency_overrides[get_db] = lambda: db
    try:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/api/analytics", headers=auth_headers(manager))
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


# Auth

def test_login_returns_token_and_user(client, make_user, user_password):
    user = make_user("DEPARTMENT_HEAD")
    response = client.post("/api/auth/login", json={"email": user.email, "password": user_password})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == user.id

    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == user.email


def test_login_with_wrong_password(client, make_user):
    user = make_user()
    response = client.post("/api/auth/login", json={"email": user.email, "password": "nope"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


# Users

def test_manager_creates_user_with_normalized_role(client, make_user, auth_headers):
    manager = make_user("MANAGER")
    response = client.post("/api/users/", headers=auth_headers(manager), json={
        "name": "New Worker",
        "email": "new.worker@example.com",
        "password": "pass1234",
        "role": "FIELD_WORKER",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "FIELD"
    assert body["capacity"] == 8


def test_field_user_cannot_create_users(client, make_user, auth_headers):
    worker = make_user("FIELD")
    response = client.post("/api/users/", headers=auth_headers(worker), json={
        "name": "X", "email": "x@example.com", "password": "pass1234",
    })
    assert response.status_code == 403


def test_duplicate_email_is_rejected(client, make_user, auth_headers):
    admin = make_user("ADMIN")
    response = client.post("/api/users/", headers=auth_headers(admin), json={
        "name": "Copy", "email": admin.email, "password": "pass1234",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "Email already registered"


def test_user_listing_is_paginated(client, make_user, auth_headers):
    admin = make_user("ADMIN")
    for _ in range(3):
        make_user()
    body = client.get("/api/users/", params={"limit": 2}, headers=auth_headers(admin)).json()
    assert len(body["users"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 4, "pages": 2}


def test_cannot_delete_yourself(client, make_user, auth_headers):
    admin = make_user("ADMIN")
    response = client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin))
    assert response.status_code == 400


def test_deleting_user_unassigns_tasks(client, db, make_user, make_task, auth_headers):
    admin = make_user("ADMIN")
    worker = make_user("FIELD")
    task = make_task("Survey", assignee=worker)

    response = client.delete(f"/api/users/{worker.id}", headers=auth_headers(admin))
    assert response.status_code == 204

    db.expire_all()
    assert db.query(Task).filter(Task.id == task.id).one().assignee_id is None


# Departments

def test_department_with_users_cannot_be_deleted(client, make_user, make_department, auth_headers):
    department = make_department("Logistics")
    manager = make_user("MANAGER", department=department)

    response = client.delete(f"/api/departments/{department.id}", headers=auth_headers(manager))
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot delete department with existing users or projects"}


def test_department_crud(client, make_user, auth_headers):
    admin = make_user("ADMIN")
    headers = auth_headers(admin)

    created = client.post("/api/departments/", headers=headers, json={"name": "  Survey  "})
    assert created.status_code == 201
    department = created.json()
    assert department["name"] == "Survey"
    assert department["user_count"] == 0

    duplicate = client.post("/api/departments/", headers=headers, json={"name": "Survey"})
    assert duplicate.status_code == 400

    updated = client.put(f"/api/departments/{department['id']}", headers=headers, json={"description": "Field survey"})
    assert updated.json()["description"] == "Field survey"

    deleted = client.delete(f"/api/departments/{department['id']}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/departments/{department['id']}", headers=headers).status_code == 404


# Projects

def test_project_creation_adds_creator_as_manager(client, db, make_user, make_department, auth_headers):
    department = make_department()
    head = make_user("DEPARTMENT", department=department)
    worker = make_user("FIELD")

    response = client.post("/api/projects/", headers=auth_headers(head), json={
        "name": "Bridge Inspection",
        "participant_ids": [worker.id],
    })
    assert response.status_code == 201
    body = response.json()
    assert [d["id"] for d in body["departments"]] == [department.id]
    roles = {p["user_id"]: p["role"] for p in body["participants"]}
    assert roles == {head.id: "MANAGER", worker.id: "PARTICIPANT"}

    notification = db.query(Notification).filter(Notification.user_id == worker.id).one()
    assert notification.related_entity_id == body["id"]

    # The participant can now see the project
    visible = client.get("/api/projects/", headers=auth_headers(worker)).json()
    assert [p["name"] for p in visible] == ["Bridge Inspection"]


def test_project_rejects_unknown_status(client, make_user, auth_headers):
    manager = make_user("MANAGER")
    response = client.post("/api/projects/", headers=auth_headers(manager), json={"name": "X", "status": "DREAMING"})
    assert response.status_code == 400


def test_project_detail_reports_phase_progress(client, db, make_user, auth_headers):
    manager = make_user("MANAGER")
    project = Project(name="Pipeline", created_by=manager.id)
    db.add(project)
    db.flush()
    task = Task(title="Weld", project_id=project.id, status=TaskStatus.IN_PROGRESS)
    task.phases = [
        TaskPhase(name="Prep", order=1, status=PhaseStatus.COMPLETED),
        TaskPhase(name="Weld", order=2),
    ]
    db.add(task)
    db.commit()

    body = client.get(f"/api/projects/{project.id}", headers=auth_headers(manager)).json()
    assert body["task_progress"] == [{
        "id": task.id,
        "title": "Weld",
        "status": "IN_PROGRESS",
        "total_phases": 2,
        "completed_phases": 1,
        "completion": 0.5,
    }]


def test_deleting_project_keeps_tasks(client, db, make_user, auth_headers):
    manager = make_user("MANAGER")
    project = Project(name="Temp")
    db.add(project)
    db.flush()
    db.add(Task(title="Orphan", project_id=project.id))
    db.commit()

    assert client.delete(f"/api/projects/{project.id}", headers=auth_headers(manager)).status_code == 200
    db.expire_all()
    assert db.query(Task).filter(Task.title == "Orphan").one().project_id is None


# Tasks

def test_task_requires_title_and_department(client, make_user, make_department, auth_headers):
    manager = make_user("MANAGER")
    department = make_department()

    missing_department = client.post("/api/tasks/", headers=auth_headers(manager), json={"title": "Survey"})
    assert missing_department.status_code == 400
    assert missing_department.json()["error"] == "Validation error"

    blank_title = client.post("/api/tasks/", headers=auth_headers(manager), json={
        "title": "  ", "department_id": department.id
    })
    assert blank_title.status_code == 400


def test_task_creation_normalizes_aliases_and_notifies(client, db, make_user, make_department, auth_headers):
    manager = make_user("MANAGER")
    worker = make_user("FIELD")
    department = make_department()

    response = client.post("/api/tasks/", headers=auth_headers(manager), json={
        "title": "Inspect valves",
        "department_id": department.id,
        "assignee_id": worker.id,
        "priority": "CRITICAL",
        "status": "TODO",
        "estimated_hours": 6,
        "phases": [{"name": "Prep"}, {"name": "Inspect"}],
    })
    assert response.status_code == 201
    body = response.json()
    assert body["priority"] == "URGENT"
    assert body["status"] == "PENDING"
    assert [p["order"] for p in body["phases"]] == [1, 2]

    notification = db.query(Notification).filter(Notification.user_id == worker.id).one()
    assert notification.title == "New Task Assigned"


def test_field_user_only_sees_own_tasks(client, make_user, make_task, auth_headers):
    worker = make_user("FIELD")
    other = make_user("FIELD")
    mine = make_task("Mine", assignee=worker)
    theirs = make_task("Theirs", assignee=other)

    listed = client.get("/api/tasks/", headers=auth_headers(worker)).json()
    assert [t["id"] for t in listed] == [mine.id]
    assert client.get(f"/api/tasks/{theirs.id}", headers=auth_headers(worker)).status_code == 404


def test_assignee_may_only_change_status(client, db, make_user, make_task, auth_headers):
    creator = make_user("MANAGER")
    worker = make_user("FIELD")
    task = make_task("Survey", assignee=worker, created_by=creator.id)

    forbidden = client.put(f"/api/tasks/{task.id}", headers=auth_headers(worker), json={"title": "Renamed"})
    assert forbidden.status_code == 403

    done = client.put(f"/api/tasks/{task.id}", headers=auth_headers(worker), json={"status": "DONE"})
    assert done.status_code == 200
    assert done.json()["status"] == "COMPLETED"
    assert done.json()["completed_at"] is not None

    status_note = db.query(Notification).filter(Notification.user_id == creator.id).one()
    assert "PENDING -> COMPLETED" in status_note.message


def test_filter_tasks_by_status_alias(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER")
    make_task("Open")
    make_task("Closed", status=TaskStatus.COMPLETED)

    listed = client.get("/api/tasks/", params={"status": "done"}, headers=auth_headers(manager)).json()
    assert [t["title"] for t in listed] == ["Closed"]

    bad = client.get("/api/tasks/", params={"status": "sleeping"}, headers=auth_headers(manager))
    assert bad.status_code == 400


# Phases

def test_phase_lifecycle(client, db, make_user, make_task, auth_headers):
    worker = make_user("FIELD")
    other = make_user("FIELD")
    task = make_task("Survey", assignee=worker)
    phase = TaskPhase(task_id=task.id, name="Measure", order=1, assigned_to_id=worker.id)
    db.add(phase)
    db.commit()

    assert client.post(f"/api/phases/{phase.id}/start", headers=auth_headers(other)).status_code == 403
    assert client.post(f"/api/phases/{phase.id}/complete", headers=auth_headers(worker)).status_code == 400

    started = client.post(f"/api/phases/{phase.id}/start", headers=auth_headers(worker))
    assert started.status_code == 200
    assert started.json()["status"] == "IN_PROGRESS"
    assert started.json()["started_at"] is not None

    db.expire_all()
    assert db.query(Task).filter(Task.id == task.id).one().status == TaskStatus.IN_PROGRESS

    again = client.post(f"/api/phases/{phase.id}/start", headers=auth_headers(worker))
    assert again.status_code == 400

    completed = client.post(f"/api/phases/{phase.id}/complete", headers=auth_headers(worker), json={"actual_time": 1.5})
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"
    assert completed.json()["actual_time"] == 1.5

    mine = client.get("/api/users/me/phases", headers=auth_headers(worker)).json()
    assert [p["name"] for p in mine] == ["Measure"]


def test_missing_phase_is_404(client, make_user, auth_headers):
    worker = make_user("FIELD")
    assert client.post("/api/phases/999/start", headers=auth_headers(worker)).status_code == 404


# Feedback

def test_feedback_review_stamps_reviewer(client, db, make_user, make_task, make_department, auth_headers):
    department = make_department()
    creator = make_user("MANAGER")
    worker = make_user("FIELD", department=department)
    task = make_task("Survey", assignee=worker, department=department, created_by=creator.id)

    submitted = client.post(f"/api/tasks/{task.id}/feedbacks", headers=auth_headers(worker), json={
        "message": "Need a ladder",
        "type": "issue",
        "priority": "high",
    })
    assert submitted.status_code == 201
    feedback_id = submitted.json()["id"]
    assert submitted.json()["status"] == "PENDING"

    forbidden = client.put(f"/api/tasks/{task.id}/feedbacks", headers=auth_headers(worker), json={
        "feedback_id": feedback_id, "status": "REVIEWED"
    })
    assert forbidden.status_code == 403

    reviewed = client.put(f"/api/tasks/{task.id}/feedbacks", headers=auth_headers(creator), json={
        "feedback_id": feedback_id, "status": "resolved"
    })
    assert reviewed.status_code == 200
    body = reviewed.json()
    assert body["status"] == "RESOLVED"
    assert body["reviewed_by_id"] == creator.id
    assert body["reviewed_at"] is not None

    db.expire_all()
    assert db.query(Feedback).one().status == FeedbackStatus.RESOLVED


def test_unrelated_user_cannot_leave_feedback(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER")
    task = make_task("Survey")
    response = client.post(f"/api/tasks/{task.id}/feedbacks", headers=auth_headers(manager), json={"message": "hi"})
    assert response.status_code == 403


# Notifications

def test_notifications_read_flow(client, db, make_user, auth_headers):
    user = make_user()
    db.add_all([
        Notification(user_id=user.id, title="One", message="first"),
        Notification(user_id=user.id, title="Two", message="second"),
    ])
    db.commit()
    headers = auth_headers(user)

    listed = client.get("/api/notifications/", headers=headers).json()
    assert listed["unread_count"] == 2
    first_id = listed["notifications"][0]["id"]

    read = client.put(f"/api/notifications/{first_id}/read", headers=headers)
    assert read.json()["is_read"] is True

    result = client.put("/api/notifications/read-all", headers=headers).json()
    assert result["updated"] == 1
    assert client.get("/api/notifications/", headers=headers).json()["unread_count"] == 0


def test_cannot_read_someone_elses_notification(client, db, make_user, auth_headers):
    owner = make_user()
    intruder = make_user()
    notification = Notification(user_id=owner.id, title="Private", message="secret")
    db.add(notification)
    db.commit()

    response = client.put(f"/api/notifications/{notification.id}/read", headers=auth_headers(intruder))
    assert response.status_code == 404
