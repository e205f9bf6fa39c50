"""WebSocket message kinds and the JSON envelope they travel in.

Every frame in either direction is ``{"type": <kind>, "data": <payload>}``.
"""

from enum import Enum
from typing import Any

from fastapi.encoders import jsonable_encoder


class MessageType(str, Enum):
    """WebSocket message types."""

    # Connection events
    CONNECTED = "connected"

    # Keepalive
    PING = "ping"
    PONG = "pong"

    # Inbound room events
    JOIN_TASK_ROOM = "join_task_room"
    LEAVE_TASK_ROOM = "leave_task_room"
    JOIN_USER_TASKS_ROOM = "join_user_tasks_room"
    LEAVE_USER_TASKS_ROOM = "leave_user_tasks_room"

    # Inbound client-relayed events
    TASK_STATUS_UPDATE = "task_status_update"
    NOTIFY_TASK_ASSIGNMENT = "notify_task_assignment"
    TASK_COMMENT_TYPING = "task_comment_typing"
    BULK_TASK_UPDATE = "bulk_task_update"

    # Presence
    ONLINE_USERS_LIST = "online_users_list"

    # Task events
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    TASK_ASSIGNED = "task_assigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_ASSIGNMENT_NOTIFICATION = "task_assignment_notification"
    TASK_BULK_UPDATED = "task_bulk_updated"

    # Comment events
    TASK_COMMENT_ADDED = "task_comment_added"
    TASK_COMMENT_UPDATED = "task_comment_updated"
    TASK_COMMENT_DELETED = "task_comment_deleted"
    TASK_COMMENT_TYPING_INDICATOR = "task_comment_typing_indicator"

    # Reminder events
    TASK_DUE_REMINDER = "task_due_reminder"
    TASK_OVERDUE = "task_overdue"


INBOUND_TYPES = frozenset({
    MessageType.PING,
    MessageType.JOIN_TASK_ROOM,
    MessageType.LEAVE_TASK_ROOM,
    MessageType.JOIN_USER_TASKS_ROOM,
    MessageType.LEAVE_USER_TASKS_ROOM,
    MessageType.TASK_STATUS_UPDATE,
    MessageType.NOTIFY_TASK_ASSIGNMENT,
    MessageType.TASK_COMMENT_TYPING,
    MessageType.BULK_TASK_UPDATE,
})

# Kinds the server pushes to clients
OUTBOUND_TYPES = frozenset({
    MessageType.CONNECTED,
    MessageType.PING,
    MessageType.PONG,
    MessageType.ONLINE_USERS_LIST,
    MessageType.TASK_CREATED,
    MessageType.TASK_UPDATED,
    MessageType.TASK_DELETED,
    MessageType.TASK_ASSIGNED,
    MessageType.TASK_STATUS_CHANGED,
    MessageType.TASK_ASSIGNMENT_NOTIFICATION,
    MessageType.TASK_BULK_UPDATED,
    MessageType.TASK_COMMENT_ADDED,
    MessageType.TASK_COMMENT_UPDATED,
    MessageType.TASK_COMMENT_DELETED,
    MessageType.TASK_COMMENT_TYPING_INDICATOR,
    MessageType.TASK_DUE_REMINDER,
    MessageType.TASK_OVERDUE,
})


def build_message(kind: MessageType, data: Any) -> dict[str, Any]:
    """Wrap data in the wire envelope, converting UUIDs, datetimes and models to JSON types."""
    return {"type": kind.value, "data": jsonable_encoder(data)}
