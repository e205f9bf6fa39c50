"""Task comments API endpoints.

Comments are visible to and writable by a task's creator and assignees.
Notifications go to the other participants, never to the acting user.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.task import Task
from ..models.task_comment import TaskComment
from ..models.user import User
from ..schemas.comment import (
    CommentCreate,
    CommentListResponse,
    CommentPagination,
    CommentResponse,
    CommentUpdate,
)
from ..schemas.common import ApiResponse
from ..schemas.task import TaskResponse
from ..services.auth_service import get_current_user
from ..services.comment_service import (
    create_comment,
    delete_comment,
    get_comment,
    list_comments,
    update_comment,
)
from ..services.task_service import is_task_participant
from ..websocket.handlers import (
    handle_comment_added,
    handle_comment_deleted,
    handle_comment_updated,
)
from ..websocket.manager import ConnectionManager, get_connection_manager
from .tasks import get_task_or_404

router = APIRouter(tags=["Comments"])


# ============================================================================
# Helper Functions
# ============================================================================


async def verify_task_access(
    task_id: UUID,
    current_user: User,
    db: AsyncSession,
    detail: str,
) -> Task:
    """
    Verify that the user is the task's creator or one of its assignees.

    Raises:
        HTTPException: 404 if task not found, 403 if not a participant
    """
    task = await get_task_or_404(db, task_id)
    if not is_task_participant(task, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )
    return task


async def get_comment_or_404(db: AsyncSession, comment_id: UUID) -> TaskComment:
    comment = await get_comment(db, comment_id)
    if comment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Comment not found",
        )
    return comment


# ============================================================================
# Comment Endpoints
# ============================================================================


@router.get(
    "/api/tasks/{task_id}/comments",
    response_model=ApiResponse[CommentListResponse],
    summary="List comments",
    description="Comments on a task, newest first.",
    responses={
        200: {"description": "Comments retrieved successfully"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the creator or an assignee"},
        404: {"description": "Task not found"},
    },
)
async def list_comments_endpoint(
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse[CommentListResponse]:
    """Get comments for a task."""
    await verify_task_access(
        task_id, current_user, db, "Not authorized to view comments for this task"
    )

    comments, total = await list_comments(db, task_id, page=page, limit=limit)

    return ApiResponse(
        data=CommentListResponse(
            comments=[CommentResponse.model_validate(c) for c in comments],
            pagination=CommentPagination(
                current_page=page,
                total_pages=(total + limit - 1) // limit,
                total_comments=total,
            ),
        ),
    )


@router.post(
    "/api/tasks/{task_id}/comments",
    response_model=ApiResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment",
    responses={
        201: {"description": "Comment added successfully"},
        400: {"description": "Validation error"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the creator or an assignee"},
        404: {"description": "Task not found"},
    },
)
async def create_comment_endpoint(
    task_id: UUID,
    comment_data: CommentCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[CommentResponse]:
    """Add a comment to a task."""
    task = await verify_task_access(
        task_id, current_user, db, "Not authorized to comment on this task"
    )

    comment = await create_comment(db, task, current_user.id, comment_data.comment)
    response = CommentResponse.model_validate(comment)

    handle_comment_added(
        TaskResponse.from_task(task),
        response,
        current_user.full_name,
        connection_manager,
    )

    return ApiResponse(data=response, message="Comment added successfully")


@router.put(
    "/api/tasks/comments/{comment_id}",
    response_model=ApiResponse[CommentResponse],
    summary="Edit a comment",
    description="Replace a comment's text. Only its author may edit it.",
    responses={
        200: {"description": "Comment updated successfully"},
        400: {"description": "Validation error"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the author"},
        404: {"description": "Comment not found"},
    },
)
async def update_comment_endpoint(
    comment_id: UUID,
    comment_data: CommentUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[CommentResponse]:
    """Update a comment."""
    comment = await get_comment_or_404(db, comment_id)

    if comment.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to update this comment",
        )

    task = await get_task_or_404(db, comment.task_id)

    comment = await update_comment(db, comment, comment_data.comment)
    response = CommentResponse.model_validate(comment)

    handle_comment_updated(
        TaskResponse.from_task(task),
        response,
        current_user.full_name,
        connection_manager,
    )

    return ApiResponse(data=response, message="Comment updated successfully")


@router.delete(
    "/api/tasks/comments/{comment_id}",
    response_model=ApiResponse[dict],
    summary="Delete a comment",
    description="Delete a comment. Allowed for its author and the task creator.",
    responses={
        200: {"description": "Comment deleted successfully"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not the author or task creator"},
        404: {"description": "Comment not found"},
    },
)
async def delete_comment_endpoint(
    comment_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> ApiResponse[dict]:
    """Delete a comment."""
    comment = await get_comment_or_404(db, comment_id)
    task = await get_task_or_404(db, comment.task_id)

    if comment.user_id != current_user.id and task.assigned_by_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to delete this comment",
        )

    task_response = TaskResponse.from_task(task)
    await delete_comment(db, comment)

    handle_comment_deleted(
        task_response,
        comment_id,
        current_user.id,
        current_user.full_name,
        connection_manager,
    )

    return ApiResponse(message="Comment deleted successfully")
