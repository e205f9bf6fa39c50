"""User SQLAlchemy model, shared with the chat system."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Uuid

from ..database import Base


class User(Base):
    """
    User model owned by the chat system.

    The task layer only reads users: they are the assignees, creators and
    comment authors referenced by tasks.

    Attributes:
        id: Unique identifier (UUID)
        email: User's email address (unique)
        full_name: Display name shown on tasks and in notifications
        profile_pic: URL to the user's avatar image
        created_at: Timestamp when user was created
    """

    __tablename__ = "Users"
    __allow_unmapped__ = True

    id = Column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    email = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    full_name = Column(
        String(100),
        nullable=False,
    )
    profile_pic = Column(
        String(500),
        nullable=True,
        default="",
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, email={self.email})>"
