"""WebSocket module for real-time task notifications."""

from .manager import (
    ConnectionManager,
    Session,
    get_connection_manager,
)
from .messages import MessageType, build_message
from .notifier import (
    Audience,
    AudienceKind,
    EventRouter,
    NotificationEvent,
)
from .presence import PresenceEntry, PresenceRegistry
from .rooms import (
    RoomKind,
    RoomMembership,
    get_task_room,
    get_user_room,
    get_user_tasks_room,
    room_name,
)
from .handlers import (
    BroadcastResult,
    handle_comment_added,
    handle_comment_deleted,
    handle_comment_updated,
    handle_task_assigned,
    handle_task_created,
    handle_task_deleted,
    handle_task_due_reminder,
    handle_task_overdue,
    handle_task_updated,
    route_incoming_message,
    task_comment_audience,
    unique_user_ids,
)

__all__ = [
    # Manager
    "ConnectionManager",
    "Session",
    "get_connection_manager",
    # Messages
    "MessageType",
    "build_message",
    # Router
    "Audience",
    "AudienceKind",
    "EventRouter",
    "NotificationEvent",
    # Presence
    "PresenceEntry",
    "PresenceRegistry",
    # Rooms
    "RoomKind",
    "RoomMembership",
    "get_task_room",
    "get_user_room",
    "get_user_tasks_room",
    "room_name",
    # Handlers
    "BroadcastResult",
    "handle_comment_added",
    "handle_comment_deleted",
    "handle_comment_updated",
    "handle_task_assigned",
    "handle_task_created",
    "handle_task_deleted",
    "handle_task_due_reminder",
    "handle_task_overdue",
    "handle_task_updated",
    "route_incoming_message",
    "task_comment_audience",
    "unique_user_ids",
]
