from app.sync.notifications import (
    SyncEvent,
    SyncNotifier,
    build_toast,
    diff_snapshots,
    is_project_relevant,
    is_task_relevant,
)


def snapshot(projects=None, tasks=None):
    return {"projects": projects or [], "tasks": tasks or []}


def test_first_snapshot_yields_no_events():
    assert diff_snapshots(None, snapshot(tasks=[{"id": 1, "title": "A", "assigneeId": 7}]), user_id=7) == []


def test_relevance_rules():
    assert is_project_relevant({"departments": [{"id": 2}]}, user_id=1, department_id=2)
    assert not is_project_relevant({"departments": [{"id": 3}]}, user_id=1, department_id=2)
    assert is_project_relevant({"createdBy": 1}, user_id=1, department_id=None)
    assert is_project_relevant({}, user_id=1, department_id=None)

    assert is_task_relevant({"assigneeId": 1}, user_id=1, department_id=None)
    assert is_task_relevant({"assigneeId": 9, "departmentId": 2}, user_id=1, department_id=2)
    assert not is_task_relevant({"assigneeId": 9, "departmentId": 3}, user_id=1, department_id=2)


def test_new_relevant_task_is_reported():
    previous = snapshot(tasks=[])
    current = snapshot(tasks=[
        {"id": 1, "title": "Mine", "assigneeId": 5, "status": "PENDING"},
        {"id": 2, "title": "Not mine", "assigneeId": 6, "departmentId": 9, "status": "PENDING"},
    ])
    events = diff_snapshots(previous, current, user_id=5, department_id=1)
    assert [(e.type, e.action, e.title) for e in events] == [("task", "created", "Mine")]


def test_reassignment_and_status_change():
    previous = snapshot(tasks=[{"id": 1, "title": "Survey", "assigneeId": 6, "departmentId": 1, "status": "PENDING"}])
    current = snapshot(tasks=[{"id": 1, "title": "Survey", "assigneeId": 5, "departmentId": 1, "status": "IN_PROGRESS"}])
    events = diff_snapshots(previous, current, user_id=5, department_id=1)
    assert [e.action for e in events] == ["assigned", "updated"]


def test_picking_up_an_unassigned_task_is_one_assigned_event():
    previous = snapshot(tasks=[{"id": 4, "title": "Inspect", "assigneeId": None, "status": "PENDING"}])
    current = snapshot(tasks=[{"id": 4, "title": "Inspect", "assigneeId": 5, "status": "PENDING"}])
    events = diff_snapshots(previous, current, user_id=5)
    assert [(e.type, e.action, e.id) for e in events] == [("task", "assigned", 4)]


def test_status_change_alone_is_one_updated_event():
    previous = snapshot(tasks=[{"id": 4, "title": "Inspect", "assigneeId": 5, "status": "PENDING"}])
    current = snapshot(tasks=[{"id": 4, "title": "Inspect", "assigneeId": 5, "status": "COMPLETED"}])
    events = diff_snapshots(previous, current, user_id=5)
    assert [(e.type, e.action, e.id) for e in events] == [("task", "updated", 4)]


def test_project_significant_changes_only():
    base = {"id": 1, "name": "Bridge", "status": "ACTIVE", "departments": [{"id": 1}], "taskCount": 1}
    renamed_count = dict(base, taskCount=4)
    status_change = dict(base, status="ON_HOLD")

    assert diff_snapshots(snapshot(projects=[base]), snapshot(projects=[renamed_count]), department_id=1) == []
    events = diff_snapshots(snapshot(projects=[base]), snapshot(projects=[status_change]), department_id=1)
    assert [(e.type, e.action) for e in events] == [("project", "updated")]


def test_build_toast():
    toast = build_toast(SyncEvent(type="task", action="assigned", title="Survey", id=3, user_id=5))
    assert toast["type"] == "toast"
    assert toast["toast_type"] == "info"
    assert toast["message"] == "Task assigned to you: Survey"
    assert toast["duration"] == 4000
    assert toast["event"]["id"] == 3


def test_notifier_reports_each_change_once():
    received = []
    notifier = SyncNotifier(user_id=5, department_id=1, on_notification=received.append)
    first = snapshot(projects=[])
    second = snapshot(projects=[{"id": 1, "name": "Bridge", "status": "ACTIVE", "departments": [{"id": 1}]}])

    assert notifier.handle(first) == []
    assert len(notifier.handle(second)) == 1
    assert notifier.handle(second) == []
    assert [t["message"] for t in received] == ["Project created: Bridge"]
    assert received[0]["toast_type"] == "success"
