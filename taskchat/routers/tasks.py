"""Tasks API endpoints.

Provides endpoints for creating, listing, updating, reassigning and deleting
tasks between chat contacts. All endpoints require authentication.

Every mutation commits first and only then notifies connected users; a
rejected request (validation, permission, not found) notifies nobody.
"""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.task import Task
from ..models.user import User
from ..schemas.common import ApiResponse
from ..schemas.task import (
    AssignTaskRequest,
    ChatUserResponse,
    DueDateFilter,
    TaskCreate,
    TaskListResponse,
    TaskPriority,
    TaskResponse,
    TaskSortField,
    TaskStatus,
    TaskUpdate,
    UserTaskListResponse,
)
from ..services.auth_service import get_current_user
from ..services.chat_contacts_service import get_chat_users_for_task_assignment
from ..services.task_service import (
    TaskFilters,
    assign_task,
    build_pagination,
    create_task,
    delete_task,
    get_available_tags,
    get_task,
    get_user_tasks,
    is_task_participant,
    list_tasks,
    update_task,
)
from ..websocket.handlers import (
    handle_task_assigned,
    handle_task_created,
    handle_task_deleted,
    handle_task_updated,
)
from ..websocket.manager import ConnectionManager, get_connection_manager

router = APIRouter(tags=["Tasks"])


# ============================================================================
# Helper Functions
# ============================================================================


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_uuid_list(value: Optional[str], field_name: str) -> List[UUID]:
    ids = []
    for part in _split_csv(value):
        try:
            ids.append(UUID(part))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid user ID in {field_name}: {part}",
            )
    return ids


def _parse_status_filter(value: Optional[str]) -> Optional[str]:
    if value is None or value == "all":
        return value
    try:
        return TaskStatus(value).value
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Status must be one of: all, pending, in-progress, completed, cancelled",
        )


async def get_task_or_404(db: AsyncSession, task_id: UUID) -> Task:
    """
    Load a task or raise 404.

    Raises:
        HTTPException: If task not found
    """
    task = await get_task(db, task_id)
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return task


def require_creator(task: Task, user: User, detail: str) -> None:
    """Raise 403 unless user created the task."""
    if task.assigned_by_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


# ============================================================================
# Query Endpoints
# ============================================================================


@router.get(
    "/api/tasks",
    response_model=ApiResponse[TaskListResponse],
    summary="List tasks",
    description="List tasks with filtering, sorting, per-status counts and pagination.",
    responses={
        200: {"description": "Tasks retrieved successfully"},
        400: {"description": "Invalid filter"},
        401: {"description": "Not authenticated"},
    },
)
async def list_tasks_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    status_filter: Optional[str] = Query(None, alias="status", description="'all' or a task status"),
    priority: Optional[str] = Query(None, description="Comma-separated priorities"),
    assigned_to: Optional[str] = Query(None, description="Comma-separated assignee IDs"),
    assigned_by: Optional[UUID] = Query(None, description="Creator ID"),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
    search: Optional[str] = Query(None, max_length=200, description="Title/description substring"),
    due_date: Optional[DueDateFilter] = Query(None, description="Relative due date window"),
    overdue: bool = Query(False, description="Only tasks past their due date and not completed"),
    sort_by: TaskSortField = Query(TaskSortField.CREATED_AT),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> ApiResponse[TaskListResponse]:
    """List tasks matching the filters."""
    priorities = _split_csv(priority)
    for value in priorities:
        try:
            TaskPriority(value)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Priority must be one of: low, medium, high, urgent",
            )

    filters = TaskFilters(
        status=_parse_status_filter(status_filter),
        priorities=priorities,
        assigned_to=_parse_uuid_list(assigned_to, "assigned_to"),
        assigned_by=assigned_by,
        tags=_split_csv(tags),
        search=search or None,
        due_date=due_date,
        overdue=overdue,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    tasks, total, stats = await list_tasks(db, filters, page=page, limit=limit)

    return ApiResponse(
        data=TaskListResponse(
            tasks=[TaskResponse.from_task(t) for t in tasks],
            stats=stats,
            pagination=build_pagination(page, limit, total, len(tasks)),
        ),
    )


@router.get(
    "/api/tasks/tags",
    response_model=ApiResponse[List[str]],
    summary="List tags",
    description="Distinct non-blank tags used on any task.",
)
async def list_tags_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[str]]:
    """Get available tags."""
    return ApiResponse(data=await get_available_tags(db))


@router.get(
    "/api/tasks/chat-users",
    response_model=ApiResponse[List[ChatUserResponse]],
    summary="List assignable chat contacts",
    description="Users the current user has exchanged messages with.",
)
async def list_chat_users_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[ChatUserResponse]]:
    """Get chat users for task assignment."""
    users = await get_chat_users_for_task_assignment(db, current_user.id)
    return ApiResponse(data=users, message="Chat users retrieved successfully")


@router.get(
    "/api/tasks/user/{user_id}",
    response_model=ApiResponse[UserTaskListResponse],
    summary="List a user's tasks",
    description="Tasks the user created or is assigned to, newest first.",
)
async def list_user_tasks_endpoint(
    user_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[UserTaskListResponse]:
    """Get a user's tasks."""
    tasks, total = await get_user_tasks(
        db,
        user_id,
        task_status=_parse_status_filter(status_filter),
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=UserTaskListResponse(
            tasks=[TaskResponse.from_task(t) for t in tasks],
            pagination=build_pagination(page, limit, total, len(tasks)),
        ),
    )


@router.get(
    "/api/tasks/{task_id}",
    response_model=ApiResponse[TaskResponse],
    summary="Get a task",
    responses={
        200: {"description": "Task retrieved successfully"},
        401: {"description": "Not authenticated"},
        404: {"description": "Task not found"},
    },
)
async def get_task_endpoint(
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TaskResponse]:
    """Get a single task by ID."""
    task = await get_task_or_404(db, task_id)
    return ApiResponse(data=TaskResponse.from_task(task))


# ============================================================================
# Mutation Endpoints
# ============================================================================


@router.post(
    "/api/tasks",
    response_model=ApiResponse[TaskResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a task",
    description="Create a task assigned to one or more of the current user's chat contacts.",
    responses={
        201: {"description": "Task created successfully"},
        400: {"description": "Validation error"},
        401: {"description": "Not authenticated"},
    },
)
async def create_task_endpoint(
    task_data: TaskCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[TaskResponse]:
    """Create a new task."""
    task = await create_task(db, current_user, task_data)
    response = TaskResponse.from_task(task)

    handle_task_created(response, current_user.full_name, connection_manager)

    return ApiResponse(data=response, message="Task created successfully")


@router.put(
    "/api/tasks/{task_id}",
    response_model=ApiResponse[TaskResponse],
    summary="Update a task",
    description="Update a task. Allowed for its creator and assignees.",
    responses={
        200: {"description": "Task updated successfully"},
        400: {"description": "Validation error or disallowed status transition"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the creator or an assignee"},
        404: {"description": "Task not found"},
    },
)
async def update_task_endpoint(
    task_id: UUID,
    task_data: TaskUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[TaskResponse]:
    """Update a task."""
    task = await get_task_or_404(db, task_id)

    if not is_task_participant(task, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to update this task",
        )

    previous_assignee_ids = task.assignee_ids
    previous_title = task.title
    previous_status = task.status

    task = await update_task(db, task, current_user, task_data)
    response = TaskResponse.from_task(task)

    handle_task_updated(
        response,
        previous_assignee_ids=previous_assignee_ids,
        previous_title=previous_title,
        previous_status=previous_status,
        updated_by_name=current_user.full_name,
        connection_manager=connection_manager,
    )

    return ApiResponse(data=response, message="Task updated successfully")


@router.delete(
    "/api/tasks/{task_id}",
    response_model=ApiResponse[dict],
    summary="Delete a task",
    description="Delete a task and its comments. Only the creator may delete.",
    responses={
        200: {"description": "Task deleted successfully"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the creator"},
        404: {"description": "Task not found"},
    },
)
async def delete_task_endpoint(
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[dict]:
    """Delete a task."""
    task = await get_task_or_404(db, task_id)
    require_creator(task, current_user, "Only the task creator can delete this task")

    response = TaskResponse.from_task(task)
    await delete_task(db, task)

    handle_task_deleted(response, current_user.full_name, connection_manager)

    return ApiResponse(message="Task deleted successfully")


@router.put(
    "/api/tasks/{task_id}/assign",
    response_model=ApiResponse[TaskResponse],
    summary="Reassign a task",
    description="Replace the task's assignees. Only the creator may reassign.",
    responses={
        200: {"description": "Task assigned successfully"},
        400: {"description": "Validation error"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the creator"},
        404: {"description": "Task not found"},
    },
)
async def assign_task_endpoint(
    task_id: UUID,
    assign_data: AssignTaskRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[TaskResponse]:
    """Assign a task to users."""
    task = await get_task_or_404(db, task_id)
    require_creator(task, current_user, "Only the task creator can reassign this task")

    task = await assign_task(db, task, current_user, assign_data.user_ids)
    response = TaskResponse.from_task(task)

    handle_task_assigned(response, assign_data.user_ids, connection_manager)

    return ApiResponse(data=response, message="Task assigned successfully")
