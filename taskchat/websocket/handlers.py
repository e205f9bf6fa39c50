"""WebSocket event handlers: task/comment fan-out and inbound message routing.

The fan-out handlers are called by the REST layer after a change has been
committed. They decide the audience for each event and hand it to the
EventRouter as a NotificationEvent; enqueueing never blocks, so none of them await.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from ..schemas.comment import CommentResponse
from ..schemas.task import TaskResponse
from .manager import ConnectionManager, Session
from .messages import INBOUND_TYPES, MessageType, build_message
from .notifier import Audience, NotificationEvent
from .rooms import RoomKind, get_task_room, get_user_tasks_room

logger = logging.getLogger(__name__)


@dataclass
class BroadcastResult:
    """Result of a fan-out operation."""

    message_type: str
    recipients: int
    user_ids: list[str] = field(default_factory=list)
    room_ids: list[str] = field(default_factory=list)
    success: bool = True


def unique_user_ids(
    *groups: Iterable[UUID | str],
    exclude: Optional[UUID | str] = None,
) -> list[str]:
    """
    Merge id groups into one list without duplicates, first-seen order.

    Args:
        groups: Iterables of user ids (UUID or str)
        exclude: Optional id to leave out (the acting user)
    """
    excluded = str(exclude) if exclude is not None else None
    merged = dict.fromkeys(str(uid) for group in groups for uid in group)
    return [uid for uid in merged if uid != excluded]


def task_participant_ids(task: TaskResponse) -> list[str]:
    """Creator first, then assignees, without duplicates."""
    return unique_user_ids([task.assigned_by.id], [u.id for u in task.assigned_to])


def _task_summary(task: TaskResponse) -> dict[str, Any]:
    return {"id": str(task.id), "title": task.title}


# ============================================================================
# Task fan-out
# ============================================================================


def handle_task_created(
    task: TaskResponse,
    created_by_name: str,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """
    Notify assignees of a new task and refresh every participant's task list.

    - task_assigned to each unique assignee (the creator is included if they
      assigned the task to themselves)
    - task_created to the user_tasks room of the creator and every assignee
    """
    router = connection_manager.router
    assignee_ids = unique_user_ids(u.id for u in task.assigned_to)

    recipients = router.emit(NotificationEvent(
        kind=MessageType.TASK_ASSIGNED,
        audience=Audience.users(assignee_ids),
        payload={
            "task": task,
            "message": f"You have been assigned a new task: {task.title}",
        },
    ))

    room_ids = []
    for user_id in task_participant_ids(task):
        room_ids.append(get_user_tasks_room(user_id))
        recipients += router.emit(NotificationEvent(
            kind=MessageType.TASK_CREATED,
            audience=Audience.room(RoomKind.USER_TASKS, user_id),
            payload={"task": task, "created_by": created_by_name},
        ))

    logger.info(
        f"Task created: task_id={task.id}, assignees={len(assignee_ids)}, "
        f"recipients={recipients}"
    )

    return BroadcastResult(
        message_type=MessageType.TASK_ASSIGNED.value,
        recipients=recipients,
        user_ids=assignee_ids,
        room_ids=room_ids,
    )


def handle_task_updated(
    task: TaskResponse,
    previous_assignee_ids: Iterable[UUID | str],
    previous_title: str,
    previous_status: str,
    updated_by_name: str,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """
    Notify everyone involved before the update, and the task room if the
    status moved.

    The acting user is not excluded: they receive task_updated too.
    """
    router = connection_manager.router
    audience = unique_user_ids(previous_assignee_ids, [task.assigned_by.id])

    recipients = router.emit(NotificationEvent(
        kind=MessageType.TASK_UPDATED,
        audience=Audience.users(audience),
        payload={
            "task": task,
            "updated_by": updated_by_name,
            "message": f'Task "{previous_title}" has been updated',
        },
    ))

    room_ids = []
    if task.status.value != previous_status:
        room_ids.append(get_task_room(task.id))
        recipients += router.emit(NotificationEvent(
            kind=MessageType.TASK_STATUS_CHANGED,
            audience=Audience.room(RoomKind.TASK, task.id),
            payload={
                "task_id": task.id,
                "status": task.status.value,
                "previous_status": previous_status,
                "updated_by": updated_by_name,
                "timestamp": datetime.utcnow(),
            },
        ))

    logger.info(
        f"Task updated: task_id={task.id}, audience={len(audience)}, "
        f"status_changed={bool(room_ids)}, recipients={recipients}"
    )

    return BroadcastResult(
        message_type=MessageType.TASK_UPDATED.value,
        recipients=recipients,
        user_ids=audience,
        room_ids=room_ids,
    )


def handle_task_deleted(
    task: TaskResponse,
    deleted_by_name: str,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Notify creator and assignees, including the deleting user."""
    audience = unique_user_ids([u.id for u in task.assigned_to], [task.assigned_by.id])

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_DELETED,
        audience=Audience.users(audience),
        payload={
            "task_id": task.id,
            "task_title": task.title,
            "deleted_by": deleted_by_name,
            "message": f'Task "{task.title}" has been deleted',
        },
    ))

    logger.info(f"Task deleted: task_id={task.id}, recipients={recipients}")

    return BroadcastResult(
        message_type=MessageType.TASK_DELETED.value,
        recipients=recipients,
        user_ids=audience,
    )


def handle_task_assigned(
    task: TaskResponse,
    assigned_user_ids: Iterable[UUID | str],
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Notify the newly assigned users."""
    audience = unique_user_ids(assigned_user_ids)

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_ASSIGNED,
        audience=Audience.users(audience),
        payload={
            "task": task,
            "message": f"You have been assigned to task: {task.title}",
        },
    ))

    logger.info(f"Task assigned: task_id={task.id}, users={len(audience)}, recipients={recipients}")

    return BroadcastResult(
        message_type=MessageType.TASK_ASSIGNED.value,
        recipients=recipients,
        user_ids=audience,
    )


def handle_task_due_reminder(
    task: TaskResponse,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Remind assignees that the task is due soon."""
    audience = unique_user_ids(u.id for u in task.assigned_to)
    hours_remaining = max((task.due_date - datetime.utcnow()).total_seconds() / 3600, 0)

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_DUE_REMINDER,
        audience=Audience.users(audience),
        payload={
            "task": task,
            "hours_remaining": round(hours_remaining, 1),
            "message": f'Task "{task.title}" is due soon',
        },
    ))

    return BroadcastResult(
        message_type=MessageType.TASK_DUE_REMINDER.value,
        recipients=recipients,
        user_ids=audience,
    )


def handle_task_overdue(
    task: TaskResponse,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Tell assignees the task is past its due date."""
    audience = unique_user_ids(u.id for u in task.assigned_to)

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_OVERDUE,
        audience=Audience.users(audience),
        payload={
            "task": task,
            "message": f'Task "{task.title}" is overdue',
        },
    ))

    return BroadcastResult(
        message_type=MessageType.TASK_OVERDUE.value,
        recipients=recipients,
        user_ids=audience,
    )


# ============================================================================
# Comment fan-out
# ============================================================================


def handle_comment_added(
    task: TaskResponse,
    comment: CommentResponse,
    commenter_name: str,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Notify task participants other than the commenter."""
    audience = task_comment_audience(task, comment.author.id)

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_COMMENT_ADDED,
        audience=Audience.users(audience),
        payload={
            "comment": comment,
            "task": _task_summary(task),
            "commenter": commenter_name,
            "message": f"{commenter_name} commented on task: {task.title}",
        },
    ))

    logger.info(
        f"Comment added: task_id={task.id}, comment_id={comment.id}, recipients={recipients}"
    )

    return BroadcastResult(
        message_type=MessageType.TASK_COMMENT_ADDED.value,
        recipients=recipients,
        user_ids=audience,
    )


def handle_comment_updated(
    task: TaskResponse,
    comment: CommentResponse,
    updater_name: str,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Notify task participants other than the editor."""
    audience = task_comment_audience(task, comment.author.id)

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_COMMENT_UPDATED,
        audience=Audience.users(audience),
        payload={
            "comment": comment,
            "task": _task_summary(task),
            "updater": updater_name,
        },
    ))

    return BroadcastResult(
        message_type=MessageType.TASK_COMMENT_UPDATED.value,
        recipients=recipients,
        user_ids=audience,
    )


def handle_comment_deleted(
    task: TaskResponse,
    comment_id: UUID | str,
    deleted_by_id: UUID | str,
    deleter_name: str,
    connection_manager: ConnectionManager,
) -> BroadcastResult:
    """Notify task participants other than the deleting user."""
    audience = task_comment_audience(task, deleted_by_id)

    recipients = connection_manager.router.emit(NotificationEvent(
        kind=MessageType.TASK_COMMENT_DELETED,
        audience=Audience.users(audience),
        payload={
            "comment_id": comment_id,
            "task_id": task.id,
            "task_title": task.title,
            "deleter": deleter_name,
        },
    ))

    logger.info(f"Comment deleted: task_id={task.id}, comment_id={comment_id}, recipients={recipients}")

    return BroadcastResult(
        message_type=MessageType.TASK_COMMENT_DELETED.value,
        recipients=recipients,
        user_ids=audience,
    )


def task_comment_audience(task: TaskResponse, actor_id: UUID | str) -> list[str]:
    """Creator and assignees, minus the user who acted on the comment."""
    return unique_user_ids(
        [task.assigned_by.id],
        [u.id for u in task.assigned_to],
        exclude=actor_id,
    )


# ============================================================================
# Inbound routing
# ============================================================================


def _get_id(payload: dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (str, int, UUID)):
        return None
    value = str(value).strip()
    return value or None


def _get_id_list(payload: dict[str, Any], key: str) -> list[str]:
    values = payload.get(key)
    if not isinstance(values, list):
        return []
    ids = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            continue
        value = str(value).strip()
        if value:
            ids.append(value)
    return ids


async def route_incoming_message(
    session: Session,
    data: Any,
    connection_manager: ConnectionManager,
) -> None:
    """
    Route an incoming WebSocket message to its handler.

    Malformed messages (wrong shape, unknown type, missing fields) are logged
    and dropped; no error is sent back to the client.

    Args:
        session: The session that sent the message
        data: The decoded JSON message
        connection_manager: The process's connection manager
    """
    mgr = connection_manager
    router = mgr.router

    if not isinstance(data, dict):
        logger.warning(f"Dropping non-object message from session {session.session_id}")
        return

    raw_type = data.get("type")
    try:
        message_type = MessageType(raw_type)
    except ValueError:
        logger.warning(f"Unknown message type {raw_type!r} from session {session.session_id}")
        return

    if message_type not in INBOUND_TYPES:
        logger.warning(
            f"Message type {message_type.value} is not accepted from clients "
            f"(session {session.session_id})"
        )
        return

    payload = data.get("data")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        logger.warning(f"Dropping {message_type.value} with non-object data from session {session.session_id}")
        return

    logger.debug(f"Routing message: session={session.session_id}, user={session.user_id}, type={message_type.value}")

    if message_type == MessageType.PING:
        session.send(build_message(MessageType.PONG, {}))

    elif message_type == MessageType.JOIN_TASK_ROOM:
        task_id = _get_id(payload, "task_id")
        if task_id is None:
            logger.warning(f"join_task_room without task_id from session {session.session_id}")
            return
        mgr.join_task_room(session, task_id)

    elif message_type == MessageType.LEAVE_TASK_ROOM:
        task_id = _get_id(payload, "task_id")
        if task_id is None:
            logger.warning(f"leave_task_room without task_id from session {session.session_id}")
            return
        mgr.leave_task_room(session, task_id)

    elif message_type == MessageType.JOIN_USER_TASKS_ROOM:
        mgr.join_user_tasks_room(session)

    elif message_type == MessageType.LEAVE_USER_TASKS_ROOM:
        mgr.leave_user_tasks_room(session)

    elif message_type == MessageType.TASK_STATUS_UPDATE:
        task_id = _get_id(payload, "task_id")
        if task_id is None or not payload.get("status"):
            logger.warning(f"task_status_update missing fields from session {session.session_id}")
            return
        router.notify_room(
            RoomKind.TASK,
            task_id,
            MessageType.TASK_STATUS_CHANGED,
            {
                "task_id": task_id,
                "status": payload.get("status"),
                "updated_by": payload.get("updated_by"),
                "timestamp": datetime.utcnow(),
            },
            exclude_session_id=session.session_id,
        )

    elif message_type == MessageType.NOTIFY_TASK_ASSIGNMENT:
        user_ids = _get_id_list(payload, "assigned_user_ids")
        if not user_ids:
            logger.warning(f"notify_task_assignment without users from session {session.session_id}")
            return
        router.notify_users(
            user_ids,
            MessageType.TASK_ASSIGNMENT_NOTIFICATION,
            {
                "message": f"You have been assigned to task: {payload.get('task_title', '')}",
                "assigned_by": payload.get("assigned_by"),
                "timestamp": datetime.utcnow(),
            },
        )

    elif message_type == MessageType.TASK_COMMENT_TYPING:
        task_id = _get_id(payload, "task_id")
        if task_id is None:
            logger.warning(f"task_comment_typing without task_id from session {session.session_id}")
            return
        router.notify_room(
            RoomKind.TASK,
            task_id,
            MessageType.TASK_COMMENT_TYPING_INDICATOR,
            {
                "task_id": task_id,
                "user_name": payload.get("user_name"),
                "is_typing": bool(payload.get("is_typing", False)),
                "user_id": session.user_id,
            },
            exclude_session_id=session.session_id,
        )

    elif message_type == MessageType.BULK_TASK_UPDATE:
        task_ids = _get_id_list(payload, "task_ids")
        if not task_ids:
            logger.warning(f"bulk_task_update without task_ids from session {session.session_id}")
            return
        timestamp = datetime.utcnow()
        for task_id in dict.fromkeys(task_ids):
            router.notify_room(
                RoomKind.TASK,
                task_id,
                MessageType.TASK_BULK_UPDATED,
                {
                    "task_id": task_id,
                    "operation": payload.get("operation"),
                    "updated_by": payload.get("updated_by"),
                    "timestamp": timestamp,
                },
                exclude_session_id=session.session_id,
            )


__all__ = [
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
    "task_participant_ids",
    "unique_user_ids",
]
