"""Task service: filtering, persistence and the status state machine.

Provides business logic for:
- Listing tasks with filters, sorting, per-status counts and pagination
- Creating, updating, deleting and reassigning tasks
- Validating assignees against the creator's chat contacts
- Enforcing allowed status transitions and stamping completed_at
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.task import Task, TaskTag, task_assignees
from ..models.task_comment import TaskComment
from ..models.user import User
from ..schemas.task import (
    DueDateFilter,
    TaskCreate,
    TaskPagination,
    TaskSortField,
    TaskStatus,
    TaskUpdate,
)
from .chat_contacts_service import are_users_in_chat_list

logger = logging.getLogger(__name__)

# Reopening is allowed; cancelled tasks can only go back to pending
ALLOWED_STATUS_TRANSITIONS: Dict[str, frozenset] = {
    TaskStatus.PENDING.value: frozenset(
        {TaskStatus.IN_PROGRESS.value, TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value}
    ),
    TaskStatus.IN_PROGRESS.value: frozenset(
        {TaskStatus.PENDING.value, TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value}
    ),
    TaskStatus.COMPLETED.value: frozenset(
        {TaskStatus.IN_PROGRESS.value, TaskStatus.PENDING.value}
    ),
    TaskStatus.CANCELLED.value: frozenset({TaskStatus.PENDING.value}),
}

OPEN_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)

PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3}


@dataclass
class TaskFilters:
    """Query filters accepted by the task list endpoint."""

    status: Optional[str] = None
    priorities: List[str] = field(default_factory=list)
    assigned_to: List[UUID] = field(default_factory=list)
    assigned_by: Optional[UUID] = None
    tags: List[str] = field(default_factory=list)
    search: Optional[str] = None
    due_date: Optional[DueDateFilter] = None
    overdue: bool = False
    sort_by: TaskSortField = TaskSortField.CREATED_AT
    sort_order: str = "desc"


def unique_ids(ids) -> List[UUID]:
    """Drop duplicate ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


def is_task_participant(task: Task, user_id: UUID) -> bool:
    """True for the task's creator and its assignees."""
    return task.assigned_by_id == user_id or user_id in task.assignee_ids


def build_pagination(page: int, limit: int, total: int, returned: int) -> TaskPagination:
    skip = (page - 1) * limit
    return TaskPagination(
        current_page=page,
        total_pages=math.ceil(total / limit) if limit else 0,
        total_tasks=total,
        has_next=skip + returned < total,
        has_prev=page > 1,
    )


# ============================================================================
# Status state machine
# ============================================================================


def is_transition_allowed(current: str, new: str) -> bool:
    """Same-status updates are always allowed (no-op)."""
    if current == new:
        return True
    return new in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset())


def validate_status_transition(current: str, new: str) -> None:
    """
    Raise 400 when moving a task from current to new is not permitted.

    Raises:
        HTTPException: 400 for a disallowed transition
    """
    if not is_transition_allowed(current, new):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change task status from '{current}' to '{new}'",
        )


def apply_status_change(task: Task, new_status: str, now: Optional[datetime] = None) -> bool:
    """
    Set the task status and keep completed_at consistent with it.

    Returns:
        True if the status actually changed
    """
    if task.status == new_status:
        return False

    task.status = new_status
    if new_status == TaskStatus.COMPLETED.value:
        task.completed_at = now or datetime.utcnow()
    else:
        task.completed_at = None
    return True


# ============================================================================
# Queries
# ============================================================================


async def get_task(db: AsyncSession, task_id: UUID) -> Optional[Task]:
    """
    Load a task with creator, assignees and tags.

    Always refreshes from the database so relationships changed earlier in
    the same session are re-read.
    """
    result = await db.execute(
        select(Task)
        .where(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _assigned_to_any(user_ids: Sequence[UUID]):
    return Task.id.in_(
        select(task_assignees.c.task_id).where(task_assignees.c.user_id.in_(user_ids))
    )


def _due_date_conditions(window: DueDateFilter, now: datetime) -> list:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    this_week_end = today + timedelta(days=7)
    next_week_end = today + timedelta(days=14)

    if window == DueDateFilter.TODAY:
        return [Task.due_date >= today, Task.due_date < tomorrow]
    if window == DueDateFilter.TOMORROW:
        return [Task.due_date >= tomorrow, Task.due_date < tomorrow + timedelta(days=1)]
    if window == DueDateFilter.THIS_WEEK:
        return [Task.due_date >= today, Task.due_date <= this_week_end]
    if window == DueDateFilter.NEXT_WEEK:
        return [Task.due_date > this_week_end, Task.due_date <= next_week_end]
    # OVERDUE
    return [Task.due_date < today, Task.status != TaskStatus.COMPLETED.value]


def build_filter_conditions(filters: TaskFilters, now: Optional[datetime] = None) -> list:
    """Translate TaskFilters into SQLAlchemy WHERE clauses (ANDed together)."""
    now = now or datetime.utcnow()
    conditions = []

    if filters.status and filters.status != "all":
        conditions.append(Task.status == filters.status)
    if filters.priorities:
        conditions.append(Task.priority.in_(filters.priorities))
    if filters.assigned_to:
        conditions.append(_assigned_to_any(filters.assigned_to))
    if filters.assigned_by:
        conditions.append(Task.assigned_by_id == filters.assigned_by)
    if filters.tags:
        conditions.append(
            Task.id.in_(select(TaskTag.task_id).where(TaskTag.tag.in_(filters.tags)))
        )
    if filters.due_date:
        conditions.extend(_due_date_conditions(filters.due_date, now))
    if filters.overdue:
        conditions.append(Task.due_date < now)
        conditions.append(Task.status != TaskStatus.COMPLETED.value)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        conditions.append(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    return conditions


def _order_by(sort_by: TaskSortField, sort_order: str):
    if sort_by == TaskSortField.PRIORITY:
        column = case(PRIORITY_RANK, value=Task.priority, else_=-1)
    else:
        column = getattr(Task, sort_by.value)
    primary = column.asc() if sort_order == "asc" else column.desc()
    return [primary, Task.id.asc()]


async def count_tasks_by_status(db: AsyncSession) -> Dict[str, int]:
    """Count every task by status; statuses with no tasks report 0."""
    result = await db.execute(
        select(Task.status, func.count(Task.id)).group_by(Task.status)
    )
    counts = {s.value: 0 for s in TaskStatus}
    for task_status, count in result.all():
        counts[task_status] = count
    return counts


async def list_tasks(
    db: AsyncSession,
    filters: TaskFilters,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Task], int, Dict[str, int]]:
    """
    Get a page of tasks matching filters.

    Returns:
        Tuple of (tasks, total matching count, stats). Stats hold the
        per-status counts over all tasks plus "total" for the filtered count.
    """
    conditions = build_filter_conditions(filters)

    total = await db.scalar(
        select(func.count()).select_from(Task).where(*conditions)
    ) or 0

    result = await db.execute(
        select(Task)
        .where(*conditions)
        .order_by(*_order_by(filters.sort_by, filters.sort_order))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    tasks = list(result.scalars().all())

    stats = {"total": total}
    stats.update(await count_tasks_by_status(db))

    return tasks, total, stats


async def get_user_tasks(
    db: AsyncSession,
    user_id: UUID,
    task_status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Task], int]:
    """Tasks the user created or is assigned to, newest first."""
    conditions = [or_(Task.assigned_by_id == user_id, _assigned_to_any([user_id]))]
    if task_status and task_status != "all":
        conditions.append(Task.status == task_status)

    total = await db.scalar(
        select(func.count()).select_from(Task).where(*conditions)
    ) or 0

    result = await db.execute(
        select(Task)
        .where(*conditions)
        .order_by(Task.created_at.desc(), Task.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_available_tags(db: AsyncSession) -> List[str]:
    """Distinct non-blank tags across all tasks, alphabetically."""
    result = await db.execute(
        select(TaskTag.tag).distinct().order_by(TaskTag.tag)
    )
    return [tag for tag in result.scalars().all() if tag and tag.strip()]


async def get_open_tasks_due_before(db: AsyncSession, cutoff: datetime) -> List[Task]:
    """Pending or in-progress tasks whose due date is at or before cutoff."""
    result = await db.execute(
        select(Task)
        .where(Task.status.in_(OPEN_STATUSES), Task.due_date <= cutoff)
        .order_by(Task.due_date.asc())
    )
    return list(result.scalars().all())


# ============================================================================
# Mutations
# ============================================================================


async def resolve_assignees(
    db: AsyncSession,
    creator_id: UUID,
    user_ids: Sequence[UUID],
    not_found_message: str = "One or more assigned users not found",
) -> List[User]:
    """
    Check that every id is a chat contact of the creator and an existing user.

    Returns:
        The users, in the order of user_ids

    Raises:
        HTTPException: 400 if a user is not a chat contact or does not exist
    """
    user_ids = unique_ids(user_ids)

    if not await are_users_in_chat_list(db, creator_id, user_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You can only assign tasks to people you have chatted with",
        )

    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users_by_id = {user.id: user for user in result.scalars().all()}
    if len(users_by_id) != len(user_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=not_found_message,
        )

    return [users_by_id[uid] for uid in user_ids]


async def create_task(
    db: AsyncSession,
    creator: User,
    task_data: TaskCreate,
) -> Task:
    """
    Create a task assigned to some of the creator's chat contacts.

    Raises:
        HTTPException: 400 if an assignee is not a chat contact or not found
    """
    assignees = await resolve_assignees(db, creator.id, task_data.assigned_to)

    task = Task(
        title=task_data.title,
        description=task_data.description,
        assigned_by_id=creator.id,
        priority=task_data.priority.value,
        status=TaskStatus.PENDING.value,
        due_date=task_data.due_date,
        estimated_hours=task_data.estimated_hours,
    )
    task.assignees = assignees
    task.tag_links = [TaskTag(tag=tag) for tag in task_data.tags]

    db.add(task)
    await db.commit()

    logger.info(
        f"Task {task.id} created by {creator.id} for {len(assignees)} assignee(s)"
    )
    return await get_task(db, task.id)


async def update_task(
    db: AsyncSession,
    task: Task,
    actor: User,
    task_data: TaskUpdate,
) -> Task:
    """
    Apply the fields set in task_data.

    All validation (status transition, assignees) runs before anything on
    the task is modified.

    Raises:
        HTTPException: 400 for a disallowed transition or invalid assignees
    """
    updates = task_data.model_dump(exclude_unset=True)

    new_status = updates.get("status")
    if new_status is not None:
        validate_status_transition(task.status, new_status.value)

    new_assignees = None
    if updates.get("assigned_to"):
        new_assignees = await resolve_assignees(db, actor.id, updates["assigned_to"])

    for name in ("title", "description", "due_date"):
        if updates.get(name) is not None:
            setattr(task, name, updates[name])
    if updates.get("priority") is not None:
        task.priority = updates["priority"].value
    for name in ("estimated_hours", "actual_hours"):
        if name in updates:
            setattr(task, name, updates[name])
    if updates.get("tags") is not None:
        task.tag_links = [TaskTag(tag=tag) for tag in updates["tags"]]
    if new_assignees is not None:
        task.assignees = new_assignees
    if new_status is not None:
        apply_status_change(task, new_status.value)

    task.updated_at = datetime.utcnow()
    await db.commit()

    logger.info(f"Task {task.id} updated by {actor.id}: {sorted(updates)}")
    return await get_task(db, task.id)


async def assign_task(
    db: AsyncSession,
    task: Task,
    actor: User,
    user_ids: Sequence[UUID],
) -> Task:
    """Replace the task's assignees."""
    assignees = await resolve_assignees(
        db, actor.id, user_ids, not_found_message="One or more users not found"
    )

    task.assignees = assignees
    task.updated_at = datetime.utcnow()
    await db.commit()

    logger.info(f"Task {task.id} reassigned by {actor.id} to {[u.id for u in assignees]}")
    return await get_task(db, task.id)


async def delete_task(db: AsyncSession, task: Task) -> None:
    """Delete a task together with its comments, tags and assignee links."""
    task_id = task.id
    await db.execute(delete(TaskComment).where(TaskComment.task_id == task_id))
    await db.delete(task)
    await db.commit()
    logger.info(f"Task {task_id} deleted")
