"""TaskComment SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base


class TaskComment(Base):
    """
    Comment left on a task by its creator or one of its assignees.

    Attributes:
        id: Unique identifier (UUID)
        task_id: FK to the commented task
        user_id: FK to the author
        comment: Comment text (1-1000 chars, trimmed)
        is_edited: Set once the text has been changed
        edited_at: When the text was last changed
        created_at: Timestamp when comment was created
        updated_at: Timestamp when comment was last updated
    """

    __tablename__ = "TaskComments"
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
    user_id = Column(
        Uuid,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    comment = Column(
        Text,
        nullable=False,
    )
    is_edited = Column(
        Boolean,
        nullable=False,
        default=False,
    )
    edited_at = Column(
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

    author = relationship(
        "User",
        foreign_keys=[user_id],
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation of TaskComment."""
        return f"<TaskComment(id={self.id}, task_id={self.task_id})>"
