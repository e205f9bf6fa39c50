"""SQLAlchemy ORM models package."""

from .message import Message
from .task import Task, TaskTag, task_assignees
from .task_comment import TaskComment
from .user import User

__all__ = [
    "Message",
    "Task",
    "TaskComment",
    "TaskTag",
    "User",
    "task_assignees",
]
