from .user import User
from .department import Department
from .project import Project, ProjectParticipation, project_departments
from .task import Task, TaskPhase, TaskStatus, TaskPriority, PhaseStatus, ACTIVE_TASK_STATUSES
from .feedback import Feedback, FeedbackType, FeedbackStatus
from .notification import Notification, NotificationType
