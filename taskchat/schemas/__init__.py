"""Pydantic schemas package for request/response validation."""

from .comment import (
    CommentCreate,
    CommentListResponse,
    CommentPagination,
    CommentResponse,
    CommentUpdate,
)
from .common import ApiResponse, FieldError
from .task import (
    AssignTaskRequest,
    ChatUserResponse,
    DueDateFilter,
    TaskCreate,
    TaskListResponse,
    TaskPagination,
    TaskPriority,
    TaskResponse,
    TaskSortField,
    TaskStatus,
    TaskUpdate,
    TaskUserInfo,
    UserTaskListResponse,
)

__all__ = [
    # Envelope
    "ApiResponse",
    "FieldError",
    # Task schemas
    "AssignTaskRequest",
    "ChatUserResponse",
    "DueDateFilter",
    "TaskCreate",
    "TaskListResponse",
    "TaskPagination",
    "TaskPriority",
    "TaskResponse",
    "TaskSortField",
    "TaskStatus",
    "TaskUpdate",
    "TaskUserInfo",
    "UserTaskListResponse",
    # Comment schemas
    "CommentCreate",
    "CommentListResponse",
    "CommentPagination",
    "CommentResponse",
    "CommentUpdate",
]
