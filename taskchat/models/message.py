"""Chat message model, read to find a user's chat contacts."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid

from ..database import Base


class Message(Base):
    """
    Direct message between two users, written by the chat system.

    Tasks may only be assigned to users the creator has exchanged at least
    one message with, in either direction.
    """

    __tablename__ = "Messages"
    __allow_unmapped__ = True

    id = Column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    sender_id = Column(
        Uuid,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    receiver_id = Column(
        Uuid,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(
        Text,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of Message."""
        return f"<Message(id={self.id}, sender={self.sender_id}, receiver={self.receiver_id})>"
