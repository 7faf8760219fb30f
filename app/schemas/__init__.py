from .user import UserCreate, UserLogin, UserOut, UserBasic, UserUpdate, ProfileUpdate, SettingsUpdate, UserList, Pagination, Token
from .department import DepartmentCreate, DepartmentUpdate, DepartmentOut
from .project import ProjectCreate, ProjectUpdate, ProjectOut, ProjectDetail, ParticipantAdd, ParticipantOut
from .task import TaskCreate, TaskUpdate, TaskOut, PhaseCreate, PhaseComplete, PhaseOut, MyPhaseOut
from .feedback import FeedbackCreate, FeedbackReview, FeedbackOut
from .notification import NotificationOut, NotificationList, MarkAllReadResult
