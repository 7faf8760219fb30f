from app.models import NotificationType
from app.services.search import rank_results, relevance_score
from app.utils.notifications import create_notification


# Search

def test_relevance_prefers_exact_then_prefix_matches():
    assert relevance_score({"title": "Survey"}, "survey") == 175
    assert relevance_score({"title": "Site survey"}, "survey") == 60
    assert relevance_score({"title": "Report", "description": "after the survey"}, "survey") == 25

    ranked = rank_results([
        {"type": "project", "name": "Survey"},
        {"type": "task", "title": "Survey"},
        {"type": "user", "name": "Nobody", "description": None},
    ], "survey", limit=2)
    assert [r["type"] for r in ranked] == ["task", "project"]


def test_search_needs_two_characters(client, make_user, auth_headers):
    user = make_user()
    response = client.get("/api/search", params={"q": " a "}, headers=auth_headers(user))
    assert response.status_code == 400
    assert response.json() == {"error": "Query must be at least 2 characters"}


def test_field_user_search_is_limited_to_own_tasks(client, make_user, make_task, auth_headers):
    worker = make_user("FIELD", name="Survey Fan")
    other = make_user("FIELD")
    make_task("Survey north", assignee=worker)
    make_task("Survey south", assignee=other)

    body = client.get("/api/search", params={"q": "survey"}, headers=auth_headers(worker)).json()
    assert [t["title"] for t in body["tasks"]] == ["Survey north"]
    assert body["users"] == []
    assert body["departments"] == []
    assert body["total"] == 1


def test_manager_search_ranks_combined_results(client, make_user, make_task, make_department, auth_headers):
    manager = make_user("MANAGER")
    make_department("Survey Team")
    make_task("Site survey")
    make_task("Survey")

    body = client.get("/api/search", params={"q": "Survey"}, headers=auth_headers(manager)).json()
    assert [c["title"] for c in body["combined"]] == ["Survey", "Site survey"]
    assert body["combined"][0]["relevanceScore"] == 175
    # departments are only searched for administrators
    assert body["departments"] == []

    admin = make_user("ADMIN")
    only_departments = client.get(
        "/api/search",
        params={"q": "survey", "type": "departments"},
        headers=auth_headers(admin)
    ).json()
    assert [d["name"] for d in only_departments["departments"]] == ["Survey Team"]
    assert only_departments["tasks"] == []
    assert "combined" not in only_departments


# Activity

def test_activity_feed_merges_tasks_and_notifications(client, db, make_user, make_task, auth_headers):
    worker = make_user("FIELD")
    other = make_user("FIELD")
    task = make_task("Survey", assignee=worker)
    make_task("Hidden", assignee=other)
    create_notification(db, worker.id, "Heads up", "Check the survey", NotificationType.SYSTEM)

    body = client.get("/api/activity", headers=auth_headers(worker)).json()
    assert body["total"] == 2
    kinds = {(a["type"], a["relatedId"]) for a in body["activities"]}
    assert ("task", task.id) in kinds
    assert {a["type"] for a in body["activities"]} == {"task", "notification"}
    assert all(isinstance(a["timestamp"], str) for a in body["activities"])


def test_activity_feed_respects_limit(client, make_user, make_task, auth_headers):
    manager = make_user("MANAGER")
    for n in range(5):
        make_task(f"Task {n}")

    body = client.get("/api/activity", params={"limit": 3}, headers=auth_headers(manager)).json()
    assert body["total"] == 1
    assert len(body["activities"]) == 1


# Settings

def test_settings_round_trip(client, make_user, auth_headers):
    user = make_user(capacity=8)
    headers = auth_headers(user)

    assert client.get("/api/settings", headers=headers).json()["email"] == user.email

    response = client.put("/api/settings", headers=headers, json={
        "name": "Renamed",
        "email": "renamed@example.com",
        "capacity": 30,
    })
    assert response.status_code == 200
    assert response.json()["name"] == "Renamed"
    assert response.json()["capacity"] == 30


def test_password_change_requires_current_password(client, make_user, auth_headers, user_password):
    user = make_user()
    headers = auth_headers(user)
    base = {"name": user.name, "email": user.email, "new_password": "brand-new-1"}

    missing = client.put("/api/settings", headers=headers, json=base)
    assert missing.status_code == 400
    assert missing.json() == {"error": "Current password is required to set new password"}

    wrong = client.put("/api/settings", headers=headers, json=dict(base, current_password="nope"))
    assert wrong.json() == {"error": "Current password is incorrect"}

    ok = client.put("/api/settings", headers=headers, json=dict(base, current_password=user_password))
    assert ok.status_code == 200

    login = client.post("/api/auth/login", json={"email": user.email, "password": "brand-new-1"})
    assert login.status_code == 200


def test_settings_reject_taken_email(client, make_user, auth_headers):
    first = make_user()
    second = make_user()
    response = client.put("/api/settings", headers=auth_headers(second), json={
        "name": second.name,
        "email": first.email,
    })
    assert response.status_code == 400
    assert response.json() == {"error": "Email already registered"}
