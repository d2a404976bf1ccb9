from wheeldo.models.user import User
from wheeldo.models.category import Category
from wheeldo.models.task import Task, TaskStatus, Effort, Urgency, RecurrenceType
from wheeldo.models.collaborator import TaskCollaborator
from wheeldo.models.invite import TaskInvite
from wheeldo.models.notification import Notification, NotificationType

__all__ = [
    "User",
    "Category",
    "Task",
    "TaskStatus",
    "Effort",
    "Urgency",
    "RecurrenceType",
    "TaskCollaborator",
    "TaskInvite",
    "Notification",
    "NotificationType",
]
