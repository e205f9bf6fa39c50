"""Business logic services."""

from .auth_service import (
    create_access_token,
    decode_access_token,
    get_current_user,
    get_user_by_id,
)
from .chat_contacts_service import (
    are_users_in_chat_list,
    get_chat_user_ids,
    get_chat_users,
    get_chat_users_for_task_assignment,
)
from .reminder_service import DueReminderService

__all__ = [
    # Auth service
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "get_user_by_id",
    # Chat contacts
    "are_users_in_chat_list",
    "get_chat_user_ids",
    "get_chat_users",
    "get_chat_users_for_task_assignment",
    # Reminders
    "DueReminderService",
]
