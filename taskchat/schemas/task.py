"""Pydantic schemas for Task model validation."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskPriority(str, Enum):
    """Task priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    """Task status enumeration."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DueDateFilter(str, Enum):
    """Relative due date windows accepted by the task list filter."""

    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "this-week"
    NEXT_WEEK = "next-week"
    OVERDUE = "overdue"


class TaskSortField(str, Enum):
    """Columns the task list can be sorted by."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    DUE_DATE = "due_date"
    PRIORITY = "priority"
    STATUS = "status"
    TITLE = "title"


MAX_TAG_LENGTH = 50
MAX_HOURS = 1000


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an incoming datetime to the naive UTC form stored in the database."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _validate_future_due_date(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    value = to_naive_utc(value)
    if value <= datetime.utcnow():
        raise ValueError("Due date must be in the future")
    return value


def _validate_tags(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    cleaned: List[str] = []
    for tag in value:
        tag = tag.strip()
        if not tag:
            raise ValueError("All tags must be non-empty strings")
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tags must be at most {MAX_TAG_LENGTH} characters")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class TaskUserInfo(BaseModel):
    """Minimal user information for task creator/assignee display."""

    id: UUID = Field(..., description="User ID")
    full_name: str = Field(..., description="User display name")
    email: str = Field(..., description="User email")
    profile_pic: Optional[str] = Field("", description="User avatar URL")

    model_config = ConfigDict(from_attributes=True)


class TaskCreate(BaseModel):
    """Schema for creating a new task."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(
        ...,
        min_length=3,
        max_length=200,
        description="Task title",
        examples=["Prepare quarterly report"],
    )
    description: str = Field(
        ...,
        min_length=10,
        max_length=2000,
        description="Task description",
        examples=["Collect the numbers from finance and draft the summary"],
    )
    assigned_to: List[UUID] = Field(
        ...,
        min_length=1,
        description="IDs of the users the task is assigned to (chat contacts only)",
    )
    priority: TaskPriority = Field(
        TaskPriority.MEDIUM,
        description="Task priority level",
        examples=["medium", "urgent"],
    )
    due_date: datetime = Field(
        ...,
        description="When the task is due; must be in the future",
    )
    tags: List[str] = Field(
        default_factory=list,
        description="Free-form labels",
        examples=[["finance", "q3"]],
    )
    estimated_hours: Optional[float] = Field(
        None,
        ge=0,
        le=MAX_HOURS,
        description="Estimated effort in hours",
    )

    @field_validator("due_date")
    @classmethod
    def due_date_in_future(cls, v: datetime) -> datetime:
        return _validate_future_due_date(v)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: List[str]) -> List[str]:
        return _validate_tags(v)


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only fields that are set are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(
        None,
        min_length=3,
        max_length=200,
        description="Task title",
    )
    description: Optional[str] = Field(
        None,
        min_length=10,
        max_length=2000,
        description="Task description",
    )
    assigned_to: Optional[List[UUID]] = Field(
        None,
        min_length=1,
        description="Replacement list of assignees",
    )
    priority: Optional[TaskPriority] = Field(
        None,
        description="Task priority level",
    )
    status: Optional[TaskStatus] = Field(
        None,
        description="New task status; must be a permitted transition",
    )
    due_date: Optional[datetime] = Field(
        None,
        description="New due date; must be in the future",
    )
    tags: Optional[List[str]] = Field(
        None,
        description="Replacement list of tags",
    )
    estimated_hours: Optional[float] = Field(
        None,
        ge=0,
        le=MAX_HOURS,
    )
    actual_hours: Optional[float] = Field(
        None,
        ge=0,
        le=MAX_HOURS,
    )

    @field_validator("due_date")
    @classmethod
    def due_date_in_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _validate_future_due_date(v)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _validate_tags(v)


class AssignTaskRequest(BaseModel):
    """Schema for replacing a task's assignees."""

    user_ids: List[UUID] = Field(
        ...,
        min_length=1,
        description="IDs of the users to assign",
    )


class TaskResponse(BaseModel):
    """Schema for task response with creator and assignees."""

    id: UUID
    title: str
    description: str
    assigned_by: TaskUserInfo
    assigned_to: List[TaskUserInfo]
    priority: TaskPriority
    status: TaskStatus
    due_date: datetime
    tags: List[str]
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    is_overdue: bool
    days_until_due: int

    @classmethod
    def from_task(cls, task) -> "TaskResponse":
        """Build the response from a Task row with its relationships loaded."""
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            assigned_by=TaskUserInfo.model_validate(task.creator),
            assigned_to=[TaskUserInfo.model_validate(u) for u in task.assignees],
            priority=task.priority,
            status=task.status,
            due_date=task.due_date,
            tags=task.tags,
            estimated_hours=task.estimated_hours,
            actual_hours=task.actual_hours,
            completed_at=task.completed_at,
            created_at=task.created_at,
            updated_at=task.updated_at,
            is_overdue=task.is_overdue,
            days_until_due=task.days_until_due,
        )


class TaskPagination(BaseModel):
    current_page: int
    total_pages: int
    total_tasks: int
    has_next: bool
    has_prev: bool


class TaskListResponse(BaseModel):
    """Page of tasks with per-status counts."""

    tasks: List[TaskResponse]
    stats: Dict[str, int] = Field(
        ...,
        description="Task counts keyed by status, plus 'total' for the filtered query",
    )
    pagination: TaskPagination


class UserTaskListResponse(BaseModel):
    """Page of tasks a user created or is assigned to."""

    tasks: List[TaskResponse]
    pagination: TaskPagination


class ChatUserResponse(BaseModel):
    """Chat contact formatted for the assignment picker."""

    id: UUID
    full_name: str
    email: str
    profile_pic: str = ""

    model_config = ConfigDict(from_attributes=True)

    @field_validator("profile_pic", mode="before")
    @classmethod
    def default_profile_pic(cls, v: Optional[str]) -> str:
        return v or ""
