"""Comment service for task comments.

Provides business logic for:
- Listing a task's comments, newest first
- Creating, editing and deleting comments
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.task import Task
from ..models.task_comment import TaskComment

logger = logging.getLogger(__name__)


async def get_comment(db: AsyncSession, comment_id: UUID) -> Optional[TaskComment]:
    """Load a comment with its author, re-reading it from the database."""
    result = await db.execute(
        select(TaskComment)
        .where(TaskComment.id == comment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_comments(
    db: AsyncSession,
    task_id: UUID,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[TaskComment], int]:
    """
    Get a page of a task's comments.

    Returns:
        Tuple of (comments newest first, total comment count)
    """
    total = await db.scalar(
        select(func.count()).select_from(TaskComment).where(TaskComment.task_id == task_id)
    ) or 0

    result = await db.execute(
        select(TaskComment)
        .where(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at.desc(), TaskComment.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def create_comment(
    db: AsyncSession,
    task: Task,
    user_id: UUID,
    text: str,
) -> TaskComment:
    """Add a comment to a task. text is expected to be trimmed and non-empty."""
    comment = TaskComment(
        task_id=task.id,
        user_id=user_id,
        comment=text,
        is_edited=False,
    )
    db.add(comment)
    await db.commit()

    logger.info(f"Comment {comment.id} added to task {task.id} by {user_id}")
    return await get_comment(db, comment.id)


async def update_comment(
    db: AsyncSession,
    comment: TaskComment,
    text: str,
) -> TaskComment:
    """Replace the comment text and mark it edited."""
    now = datetime.utcnow()
    comment.comment = text
    comment.is_edited = True
    comment.edited_at = now
    comment.updated_at = now
    await db.commit()

    return await get_comment(db, comment.id)


async def delete_comment(db: AsyncSession, comment: TaskComment) -> None:
    comment_id = comment.id
    await db.delete(comment)
    await db.commit()
    logger.info(f"Comment {comment_id} deleted")
