# app/services/workload_engine.py
"""
Workload engine: utilization model, status classification, team summary,
alert generation, the greedy rebalancing heuristic and the schedule and
team collaboration views built on the same numbers.

Everything in this module works on plain objects that look like the ORM
models (``capacity``, ``status``, ``estimated_hours``, ...). Nothing here
touches the database, so results are recomputed from scratch on every call.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from app.config.settings import AppConfig
from app.models.task import ACTIVE_TASK_STATUSES, TaskPriority, TaskStatus

WORKLOAD_STATUSES = ("available", "moderate", "busy", "critical", "overloaded")

STATUS_COLORS = {
    "overloaded": "red",
    "critical": "orange",
    "busy": "yellow",
    "moderate": "blue",
    "available": "green",
}

OVERLOADED_THRESHOLD = 100
CRITICAL_THRESHOLD = 90
BUSY_THRESHOLD = 70


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def task_hours(task) -> float:
    return task.estimated_hours or 0


def sum_hours(tasks: Iterable) -> float:
    return sum(task_hours(task) for task in tasks)


def is_active(task) -> bool:
    return task.status in ACTIVE_TASK_STATUSES


def is_overdue(task, now: datetime) -> bool:
    return is_active(task) and task.end_date is not None and task.end_date < now


def is_urgent(task) -> bool:
    return task.priority == TaskPriority.URGENT


def utilization_rate(current_hours: float, capacity: float) -> int:
    if not capacity or capacity <= 0:
        return 0
    return round_half_up(current_hours / capacity * 100)


def classify_workload_status(rate: float, moderate_threshold: Optional[int] = None) -> str:
    """Map a utilization rate onto its status bucket, first match wins"""
    if moderate_threshold is None:
        moderate_threshold = AppConfig.WORKLOAD['moderate_threshold']

    if rate >= OVERLOADED_THRESHOLD:
        return "overloaded"
    if rate >= CRITICAL_THRESHOLD:
        return "critical"
    if rate >= BUSY_THRESHOLD:
        return "busy"
    if rate >= moderate_threshold:
        return "moderate"
    return "available"


def build_workload_snapshot(
    capacity: float,
    current_hours: float,
    upcoming_hours: float = 0,
    moderate_threshold: Optional[int] = None
) -> Dict:
    capacity = capacity or 0
    rate = utilization_rate(current_hours, capacity)
    status = classify_workload_status(rate, moderate_threshold)
    return {
        "capacity": capacity,
        "currentHours": current_hours,
        "upcomingHours": upcoming_hours,
        "availableHours": max(0, capacity - current_hours),
        "utilizationRate": rate,
        "status": status,
        "statusColor": STATUS_COLORS[status],
    }


@dataclass
class UserWorkload:
    """Per-user workload analysis derived from the user's assigned tasks"""
    user: object
    tasks: List
    now: datetime
    moderate_threshold: Optional[int] = None
    participations: Optional[List] = None

    def __post_init__(self):
        window = timedelta(days=AppConfig.WORKLOAD['upcoming_window_days'])
        self.active_tasks = [t for t in self.tasks if is_active(t)]
        self.completed_tasks = [t for t in self.tasks if t.status == TaskStatus.COMPLETED]
        self.overdue_tasks = [t for t in self.active_tasks if is_overdue(t, self.now)]
        self.urgent_tasks = [t for t in self.active_tasks if is_urgent(t)]
        self.high_priority_tasks = [t for t in self.active_tasks if t.priority == TaskPriority.HIGH]
        self.upcoming_tasks = [
            t for t in self.active_tasks
            if t.start_date is not None and self.now < t.start_date <= self.now + window
        ]
        self.current_hours = sum_hours(self.active_tasks)
        self.snapshot = build_workload_snapshot(
            self.user.capacity,
            self.current_hours,
            sum_hours(self.upcoming_tasks),
            self.moderate_threshold,
        )

    @property
    def capacity(self) -> float:
        return self.snapshot["capacity"]

    @property
    def utilization_rate(self) -> int:
        return self.snapshot["utilizationRate"]

    @property
    def status(self) -> str:
        return self.snapshot["status"]

    def user_info(self) -> Dict:
        department = getattr(self.user, "department", None)
        return {
            "id": self.user.id,
            "name": self.user.name,
            "email": self.user.email,
            "role": self.user.role,
            "department": {"id": department.id, "name": department.name} if department else None,
        }

    def _performance(self) -> Dict:
        completed = self.completed_tasks
        if completed:
            ratios = [
                (t.actual_hours / (t.estimated_hours or 1)) if t.actual_hours else 1
                for t in completed
            ]
            avg_ratio = sum(ratios) / len(ratios)
            on_time = [
                t for t in completed
                if t.end_date is None or t.completed_at is None or t.completed_at <= t.end_date
            ]
            on_time_rate = round_half_up(len(on_time) / len(completed) * 100)
        else:
            avg_ratio = 1
            on_time_rate = 100

        week_ago = self.now - timedelta(days=7)
        return {
            "completedTasks": len(completed),
            "avgEfficiency": round_half_up((2 - avg_ratio) * 100),
            "recentlyActive": any(t.created_at and t.created_at > week_ago for t in self.tasks),
            "onTimeRate": on_time_rate,
        }

    def _projects(self) -> Dict:
        active = [
            p for p in (self.participations or [])
            if p.project is not None and p.project.status == "ACTIVE"
        ]
        return {
            "total": len(active),
            "asManager": len([p for p in active if p.role == "MANAGER"]),
            "asParticipant": len([p for p in active if p.role == "PARTICIPANT"]),
        }

    def _upcoming_deadlines(self, limit: int = 3) -> List[Dict]:
        with_deadline = sorted(
            (t for t in self.active_tasks if t.end_date is not None),
            key=lambda t: t.end_date
        )
        deadlines = []
        for task in with_deadline[:limit]:
            seconds_left = (task.end_date - self.now).total_seconds()
            deadlines.append({
                "id": task.id,
                "title": task.title,
                "endDate": task.end_date.isoformat(),
                "priority": task.priority.value,
                "project": task.project.name if getattr(task, "project", None) else "No Project",
                "daysLeft": math.ceil(seconds_left / 86400),
            })
        return deadlines

    def to_dict(self) -> Dict:
        data = {
            "user": self.user_info(),
            "workload": dict(self.snapshot),
            "tasks": {
                "total": len(self.tasks),
                "active": len(self.active_tasks),
                "completed": len(self.completed_tasks),
                "overdue": len(self.overdue_tasks),
                "urgent": len(self.urgent_tasks),
                "highPriority": len(self.high_priority_tasks),
                "pending": len([t for t in self.active_tasks if t.status == TaskStatus.PENDING]),
                "inProgress": len([t for t in self.active_tasks if t.status == TaskStatus.IN_PROGRESS]),
            },
            "performance": self._performance(),
            "upcomingDeadlines": self._upcoming_deadlines(),
        }
        if self.participations is not None:
            data["projects"] = self._projects()
        return data


def summarize_team(snapshots: Sequence[Dict]) -> Optional[Dict]:
    """Team-wide summary over per-user workload snapshots"""
    if not snapshots:
        return None

    rates = [s["utilizationRate"] for s in snapshots]
    distribution = {status: 0 for status in WORKLOAD_STATUSES}
    for snapshot in snapshots:
        distribution[snapshot["status"]] += 1

    return {
        "totalUsers": len(snapshots),
        "totalCapacity": sum(s["capacity"] for s in snapshots),
        "totalAssigned": sum(s["currentHours"] for s in snapshots),
        "totalAvailable": sum(s["availableHours"] for s in snapshots),
        "avgUtilization": round_half_up(sum(rates) / len(rates)),
        "statusDistribution": distribution,
    }


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

def _alert_user(entry: UserWorkload) -> Dict:
    department = getattr(entry.user, "department", None)
    return {
        "id": entry.user.id,
        "name": entry.user.name,
        "email": entry.user.email,
        "department": department.name if department else "No Department",
    }


def _project_name(task) -> str:
    project = getattr(task, "project", None)
    return project.name if project else "No Project"


def compute_alerts(entries: Sequence[UserWorkload], now: Optional[datetime] = None) -> List[Dict]:
    """Derive workload, overdue and urgent-task alerts for every user"""
    now = now or datetime.utcnow()
    created_at = now.isoformat()
    alerts = []

    for entry in entries:
        rate = entry.utilization_rate
        user = _alert_user(entry)
        name = entry.user.name

        if rate >= CRITICAL_THRESHOLD:
            overloaded = rate >= OVERLOADED_THRESHOLD
            alerts.append({
                "id": f"workload-{entry.user.id}",
                "type": "workload",
                "severity": "critical" if overloaded else "warning",
                "user": user,
                "title": "User Overloaded" if overloaded else "High Workload Alert",
                "message": f"{name} is at {rate}% capacity ({entry.current_hours:g}h/{entry.capacity:g}h)",
                "details": {
                    "utilizationRate": rate,
                    "currentHours": entry.current_hours,
                    "capacity": entry.capacity,
                    "activeTasks": len(entry.active_tasks),
                    "urgentTasks": len(entry.urgent_tasks),
                    "overdueTasks": len(entry.overdue_tasks),
                },
                "actionRequired": overloaded,
                "recommendations": [
                    "Redistribute tasks immediately" if overloaded else "Monitor closely",
                    "Consider adjusting deadlines",
                    "Review task priorities",
                ],
                "createdAt": created_at,
            })

        overdue = entry.overdue_tasks
        if overdue:
            alerts.append({
                "id": f"overdue-{entry.user.id}",
                "type": "overdue",
                "severity": "critical" if len(overdue) >= 3 else "warning",
                "user": user,
                "title": "Overdue Tasks Alert",
                "message": f"{name} has {len(overdue)} overdue task(s)",
                "details": {
                    "overdueTasks": [
                        {
                            "id": task.id,
                            "title": task.title,
                            "daysOverdue": math.ceil((now - task.end_date).total_seconds() / 86400),
                            "project": _project_name(task),
                        }
                        for task in overdue
                    ]
                },
                "actionRequired": len(overdue) >= 2,
                "recommendations": [
                    "Review task priorities with user",
                    "Consider extending deadlines",
                    "Provide additional support",
                ],
                "createdAt": created_at,
            })

        urgent = entry.urgent_tasks
        if len(urgent) >= 2:
            alerts.append({
                "id": f"urgent-{entry.user.id}",
                "type": "urgent",
                "severity": "critical" if len(urgent) >= 4 else "warning",
                "user": user,
                "title": "Multiple Urgent Tasks",
                "message": f"{name} has {len(urgent)} urgent tasks assigned",
                "details": {
                    "urgentTasks": [
                        {
                            "id": task.id,
                            "title": task.title,
                            "project": _project_name(task),
                            "estimatedHours": task_hours(task),
                        }
                        for task in urgent
                    ]
                },
                "actionRequired": len(urgent) >= 3,
                "recommendations": [
                    "Review task urgency levels",
                    "Consider redistributing some urgent tasks",
                    "Prioritize with user",
                ],
                "createdAt": created_at,
            })

    return alerts


def filter_alerts(alerts: List[Dict], severity: Optional[str] = None) -> List[Dict]:
    """Apply the severity filter (all, critical, overloaded) and sort critical first"""
    if severity == "critical":
        filtered = [a for a in alerts if a["severity"] == "critical"]
    elif severity == "overloaded":
        filtered = [
            a for a in alerts
            if a["type"] == "workload" and a["details"]["utilizationRate"] >= OVERLOADED_THRESHOLD
        ]
    else:
        filtered = list(alerts)

    # Stable sort keeps generation order within a severity
    return sorted(filtered, key=lambda a: 0 if a["severity"] == "critical" else 1)


def summarize_alerts(alerts: List[Dict]) -> Dict:
    return {
        "total": len(alerts),
        "critical": len([a for a in alerts if a["severity"] == "critical"]),
        "warning": len([a for a in alerts if a["severity"] == "warning"]),
        "actionRequired": len([a for a in alerts if a["actionRequired"]]),
        "byType": {
            alert_type: len([a for a in alerts if a["type"] == alert_type])
            for alert_type in ("workload", "overdue", "urgent")
        },
        "affectedUsers": len({a["user"]["id"] for a in alerts}),
    }


# ---------------------------------------------------------------------------
# Rebalancing
# ---------------------------------------------------------------------------

def workload_percentage(hours: float, baseline_hours: Optional[float] = None) -> float:
    """Load against the fixed weekly baseline, capped so one outlier cannot dominate averages"""
    if baseline_hours is None:
        baseline_hours = AppConfig.WORKLOAD['rebalance_baseline_hours']
    cap = AppConfig.WORKLOAD['workload_percentage_cap']
    return min(hours / baseline_hours * 100, cap)


@dataclass
class RebalanceCandidate:
    user_id: int
    name: str
    current_hours: float
    workload_percentage: float
    active_tasks: int = 0


@dataclass
class Reassignment:
    task_id: int
    task_title: str
    from_user_id: int
    to_user_id: int
    hours: float
    target_workload_after: float


@dataclass
class RebalanceResult:
    message: str
    rebalanced: bool
    tasks_rebalanced: int = 0
    overloaded_users: int = 0
    available_users: int = 0
    reassignments: List[Reassignment] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "message": self.message,
            "rebalanced": self.rebalanced,
            "tasksRebalanced": self.tasks_rebalanced,
            "overloadedUsers": self.overloaded_users,
            "availableUsers": self.available_users,
        }


def build_candidate(user, active_tasks: Sequence, baseline_hours: Optional[float] = None) -> RebalanceCandidate:
    hours = sum_hours(active_tasks)
    return RebalanceCandidate(
        user_id=user.id,
        name=user.name,
        current_hours=hours,
        workload_percentage=workload_percentage(hours, baseline_hours),
        active_tasks=len(active_tasks),
    )


def partition_candidates(
    candidates: Sequence[RebalanceCandidate]
) -> Tuple[List[RebalanceCandidate], List[RebalanceCandidate]]:
    overloaded_above = AppConfig.WORKLOAD['rebalance_overloaded_above']
    available_below = AppConfig.WORKLOAD['rebalance_available_below']
    overloaded = [c for c in candidates if c.workload_percentage > overloaded_above]
    available = [c for c in candidates if c.workload_percentage < available_below]
    return overloaded, available


def select_reassignable_tasks(tasks: Iterable, limit: Optional[int] = None) -> List:
    """PENDING, non-urgent tasks, largest first; tasks without an estimate go last"""
    if limit is None:
        limit = AppConfig.WORKLOAD['rebalance_max_tasks_per_user']
    eligible = [
        t for t in tasks
        if t.status == TaskStatus.PENDING and t.priority != TaskPriority.URGENT
    ]
    eligible.sort(key=lambda t: (t.estimated_hours is None, -task_hours(t)))
    return eligible[:limit]


def plan_rebalance(
    candidates: Sequence[RebalanceCandidate],
    tasks_for: Callable[[RebalanceCandidate], Sequence],
    apply: Optional[Callable[[object, RebalanceCandidate, RebalanceCandidate], None]] = None,
    baseline_hours: Optional[float] = None,
) -> RebalanceResult:
    """
    Greedy pass moving work from overloaded users to the least loaded available user.

    ``tasks_for`` returns the reassignable tasks of an overloaded candidate.
    ``apply`` persists a single move; it is invoked before the next task is
    considered, so a failure leaves earlier moves in place.
    """
    if baseline_hours is None:
        baseline_hours = AppConfig.WORKLOAD['rebalance_baseline_hours']
    ceiling = AppConfig.WORKLOAD['rebalance_target_ceiling']

    overloaded, available = partition_candidates(candidates)

    if not overloaded:
        return RebalanceResult(
            message="No overloaded users found",
            rebalanced=False,
            available_users=len(available),
        )
    if not available:
        return RebalanceResult(
            message="No available users to redistribute tasks to",
            rebalanced=False,
            overloaded_users=len(overloaded),
        )

    reassignments = []
    for source in overloaded:
        for task in tasks_for(source):
            target = min(available, key=lambda c: c.workload_percentage)
            added = task_hours(task) / baseline_hours * 100

            if target.workload_percentage + added >= ceiling:
                continue

            if apply is not None:
                apply(task, source, target)

            target.workload_percentage += added
            target.current_hours += task_hours(task)
            reassignments.append(Reassignment(
                task_id=task.id,
                task_title=task.title,
                from_user_id=source.user_id,
                to_user_id=target.user_id,
                hours=task_hours(task),
                target_workload_after=target.workload_percentage,
            ))

    return RebalanceResult(
        message=f"Successfully rebalanced {len(reassignments)} tasks",
        rebalanced=True,
        tasks_rebalanced=len(reassignments),
        overloaded_users=len(overloaded),
        available_users=len(available),
        reassignments=reassignments,
    )


def compute_workload_stats(candidates: Sequence[RebalanceCandidate]) -> Dict:
    """Aggregate counts against the fixed baseline used by rebalancing"""
    overloaded_above = AppConfig.WORKLOAD['rebalance_overloaded_above']
    busy_above = AppConfig.WORKLOAD['stats_busy_above']

    overloaded = busy = available = 0
    for candidate in candidates:
        if candidate.workload_percentage > overloaded_above:
            overloaded += 1
        elif candidate.workload_percentage > busy_above:
            busy += 1
        else:
            available += 1

    total = len(candidates)
    average = (
        round_half_up(sum(c.workload_percentage for c in candidates) / total)
        if total else 0
    )
    return {
        "totalUsers": total,
        "overloadedUsers": overloaded,
        "busyUsers": busy,
        "availableUsers": available,
        "averageWorkload": average,
        "totalActiveTasks": sum(c.active_tasks for c in candidates),
    }


# ---------------------------------------------------------------------------
# Schedules and team collaboration
# ---------------------------------------------------------------------------

def schedule_status(percentage: float) -> str:
    """Label used on the manager's schedule board, against the fixed weekly baseline"""
    if percentage > AppConfig.WORKLOAD['rebalance_overloaded_above']:
        return "Overloaded"
    if percentage > AppConfig.WORKLOAD['stats_busy_above']:
        return "Busy"
    if percentage > AppConfig.WORKLOAD['schedule_moderate_above']:
        return "Moderate Load"
    return "Available"


def build_schedule(user, active_tasks: Sequence, upcoming_limit: int = 3) -> Dict:
    """
    Schedule row for one user. ``active_tasks`` are expected oldest first;
    the first one is reported as the next task.
    """
    hours = sum_hours(active_tasks)
    percentage = workload_percentage(hours)
    next_task = active_tasks[0] if active_tasks else None

    return {
        "userId": user.id,
        "userName": user.name,
        "userEmail": user.email,
        "status": schedule_status(percentage),
        "activeTasks": len(active_tasks),
        "workloadPercentage": round_half_up(percentage),
        "nextDeadline": next_task.end_date.isoformat() if next_task and next_task.end_date else None,
        "nextTaskTitle": next_task.title if next_task else None,
        "nextProjectName": _project_name(next_task) if next_task and next_task.project else None,
        "totalEstimatedHours": hours,
        "upcomingTasks": [
            {
                "id": task.id,
                "title": task.title,
                "dueDate": task.end_date.isoformat() if task.end_date else None,
                "priority": task.priority.value,
                "projectName": task.project.name if task.project else None,
            }
            for task in active_tasks[:upcoming_limit]
        ],
    }


def summarize_schedules(schedules: Sequence[Dict]) -> Dict:
    overloaded_above = AppConfig.WORKLOAD['rebalance_overloaded_above']
    busy_above = AppConfig.WORKLOAD['stats_busy_above']
    moderate_above = AppConfig.WORKLOAD['schedule_moderate_above']
    return {
        "totalUsers": len(schedules),
        "overloadedUsers": len([s for s in schedules if s["workloadPercentage"] > overloaded_above]),
        "busyUsers": len([
            s for s in schedules if busy_above < s["workloadPercentage"] <= overloaded_above
        ]),
        "availableUsers": len([s for s in schedules if s["workloadPercentage"] <= moderate_above]),
    }


def collaboration_member(entry: UserWorkload, recent_limit: int = 5) -> Dict:
    """Workload, task and project breakdown of one team member"""
    active_projects = [
        p for p in (entry.participations or [])
        if p.project is not None and p.project.status == "ACTIVE"
    ]
    # Latest deadline first, tasks without one last
    by_deadline = sorted(
        entry.active_tasks,
        key=lambda t: (t.end_date is None, -(t.end_date.timestamp() if t.end_date else 0))
    )

    data = entry.user_info()
    data["workload"] = {
        "capacity": entry.capacity,
        "assignedHours": entry.current_hours,
        "availableHours": entry.snapshot["availableHours"],
        "utilizationRate": entry.utilization_rate,
        "status": entry.status,
    }
    data["tasks"] = {
        "total": len(entry.active_tasks),
        "urgent": len(entry.urgent_tasks),
        "highPriority": len(entry.high_priority_tasks),
        "overdue": len(entry.overdue_tasks),
        "pending": len([t for t in entry.active_tasks if t.status == TaskStatus.PENDING]),
        "inProgress": len([t for t in entry.active_tasks if t.status == TaskStatus.IN_PROGRESS]),
    }
    data["projects"] = {
        "total": len(active_projects),
        "asManager": len([p for p in active_projects if p.role == "MANAGER"]),
        "asParticipant": len([p for p in active_projects if p.role == "PARTICIPANT"]),
        "active": [
            {"id": p.project.id, "name": p.project.name, "role": p.role}
            for p in active_projects
        ],
    }
    data["recentTasks"] = [
        {
            "id": task.id,
            "title": task.title,
            "status": task.status.value,
            "priority": task.priority.value,
            "endDate": task.end_date.isoformat() if task.end_date else None,
            "project": _project_name(task),
        }
        for task in by_deadline[:recent_limit]
    ]
    return data


def summarize_collaboration(members: Sequence[Dict]) -> Dict:
    statuses = [m["workload"]["status"] for m in members]
    return {
        "totalMembers": len(members),
        "availableMembers": statuses.count("available"),
        "busyMembers": len([s for s in statuses if s in ("moderate", "busy", "critical")]),
        "overloadedMembers": statuses.count("overloaded"),
        "avgUtilization": (
            round_half_up(sum(m["workload"]["utilizationRate"] for m in members) / len(members))
            if members else 0
        ),
        "totalCapacity": sum(m["workload"]["capacity"] for m in members),
        "totalAssignedHours": sum(m["workload"]["assignedHours"] for m in members),
        "totalAvailableHours": sum(m["workload"]["availableHours"] for m in members),
        "activeTasks": sum(m["tasks"]["total"] for m in members),
        "urgentTasks": sum(m["tasks"]["urgent"] for m in members),
        "overdueTasks": sum(m["tasks"]["overdue"] for m in members),
    }


def rank_available_members(members: Sequence[Dict], limit: int = 10) -> List[Dict]:
    """Members with spare hours, most available first, then least utilized"""
    ranked = sorted(
        (m for m in members if m["workload"]["availableHours"] > 0),
        key=lambda m: (-m["workload"]["availableHours"], m["workload"]["utilizationRate"])
    )
    return [
        {
            "id": m["id"],
            "name": m["name"],
            "role": m["role"],
            "department": m["department"]["name"] if m["department"] else "No Department",
            "availableHours": m["workload"]["availableHours"],
            "utilizationRate": m["workload"]["utilizationRate"],
            "currentTasks": m["tasks"]["total"],
        }
        for m in ranked[:limit]
    ]


def department_capacity(department, active_hours_by_user: Dict[int, float]) -> Dict:
    total_capacity = sum(user.capacity or 0 for user in department.users)
    total_assigned = sum(active_hours_by_user.get(user.id, 0) for user in department.users)
    return {
        "id": department.id,
        "name": department.name,
        "memberCount": len(department.users),
        "totalCapacity": total_capacity,
        "totalAssigned": total_assigned,
        "availableCapacity": max(0, total_capacity - total_assigned),
        "utilization": utilization_rate(total_assigned, total_capacity),
    }
