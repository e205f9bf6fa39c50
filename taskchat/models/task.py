"""Task SQLAlchemy models for task allocation between chat contacts."""

import math
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Table, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base

# Many-to-many link between tasks and the users they are assigned to
task_assignees = Table(
    "TaskAssignees",
    Base.metadata,
    Column(
        "task_id",
        Uuid,
        ForeignKey("Tasks.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_id",
        Uuid,
        ForeignKey("Users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class Task(Base):
    """
    Task created by one user and assigned to one or more of their chat contacts.

    Attributes:
        id: Unique identifier (UUID)
        title: Task title (3-200 chars)
        description: Task description (10-2000 chars)
        assigned_by_id: FK to the creating user
        priority: low, medium, high or urgent
        status: pending, in-progress, completed or cancelled
        due_date: When the task is due (naive UTC)
        estimated_hours: Optional estimate (0-1000)
        actual_hours: Optional time spent (0-1000)
        completed_at: Stamped when status becomes completed, cleared otherwise
        created_at: Timestamp when task was created
        updated_at: Timestamp when task was last updated
    """

    __tablename__ = "Tasks"
    __allow_unmapped__ = True

    id = Column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    assigned_by_id = Column(
        Uuid,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(
        String(200),
        nullable=False,
    )
    description = Column(
        Text,
        nullable=False,
    )
    priority = Column(
        String(20),
        nullable=False,
        default="medium",
        index=True,
    )
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
    )
    due_date = Column(
        DateTime,
        nullable=False,
        index=True,
    )
    estimated_hours = Column(
        Float,
        nullable=True,
    )
    actual_hours = Column(
        Float,
        nullable=True,
    )

    completed_at = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    creator = relationship(
        "User",
        foreign_keys=[assigned_by_id],
        lazy="selectin",
    )
    assignees = relationship(
        "User",
        secondary=task_assignees,
        lazy="selectin",
    )
    tag_links = relationship(
        "TaskTag",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        """Tag strings in insertion order."""
        return [link.tag for link in self.tag_links]

    @property
    def assignee_ids(self) -> list[uuid.UUID]:
        return [user.id for user in self.assignees]

    @property
    def is_overdue(self) -> bool:
        """True when the due date has passed and the task is not completed."""
        return self.due_date < datetime.utcnow() and self.status != "completed"

    @property
    def days_until_due(self) -> int:
        delta = self.due_date - datetime.utcnow()
        return math.ceil(delta.total_seconds() / 86400)

    def __repr__(self) -> str:
        """String representation of Task."""
        return f"<Task(id={self.id}, title={self.title[:30]}, status={self.status})>"


class TaskTag(Base):
    """Free-form label attached to a task."""

    __tablename__ = "TaskTags"
    __allow_unmapped__ = True

    id = Column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    task_id = Column(
        Uuid,
        ForeignKey("Tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tag = Column(
        String(50),
        nullable=False,
        index=True,
    )

    task = relationship(
        "Task",
        back_populates="tag_links",
    )

    def __repr__(self) -> str:
        return f"<TaskTag(task_id={self.task_id}, tag={self.tag})>"
