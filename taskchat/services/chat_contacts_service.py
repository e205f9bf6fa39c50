"""
Chat contact lookup.

A user's chat contacts are the users they have exchanged at least one direct
message with, in either direction. Tasks can only be assigned to contacts.
"""

import logging
from typing import Iterable, List, Set
from uuid import UUID

from sqlalchemy import select, union
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.message import Message
from ..models.user import User
from ..schemas.task import ChatUserResponse

logger = logging.getLogger(__name__)


async def get_chat_user_ids(db: AsyncSession, user_id: UUID) -> Set[UUID]:
    """IDs of every user that sent a message to, or received one from, user_id."""
    received_from = select(Message.sender_id.label("contact_id")).where(
        Message.receiver_id == user_id
    )
    sent_to = select(Message.receiver_id.label("contact_id")).where(
        Message.sender_id == user_id
    )
    result = await db.execute(union(received_from, sent_to))
    contact_ids = {row.contact_id for row in result}
    contact_ids.discard(user_id)
    return contact_ids


async def get_chat_users(db: AsyncSession, user_id: UUID) -> List[User]:
    """Chat contacts of user_id, ordered by name."""
    contact_ids = await get_chat_user_ids(db, user_id)
    if not contact_ids:
        return []

    result = await db.execute(
        select(User).where(User.id.in_(contact_ids)).order_by(User.full_name)
    )
    return list(result.scalars().all())


async def are_users_in_chat_list(
    db: AsyncSession,
    current_user_id: UUID,
    user_ids: Iterable[UUID],
) -> bool:
    """True when every id in user_ids is a chat contact of current_user_id."""
    contact_ids = await get_chat_user_ids(db, current_user_id)
    missing = [uid for uid in user_ids if uid not in contact_ids]
    if missing:
        logger.debug(f"Users {missing} are not chat contacts of {current_user_id}")
        return False
    return True


async def get_chat_users_for_task_assignment(
    db: AsyncSession,
    user_id: UUID,
) -> List[ChatUserResponse]:
    """Chat contacts formatted for the assignment picker."""
    users = await get_chat_users(db, user_id)
    return [ChatUserResponse.model_validate(user) for user in users]
