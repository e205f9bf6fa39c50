"""Pydantic schemas for TaskComment model."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .task import TaskUserInfo


class CommentCreate(BaseModel):
    """Schema for creating a new comment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    comment: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Comment text",
        examples=["Started on this, will update by Friday"],
    )


class CommentUpdate(BaseModel):
    """Schema for updating a comment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    comment: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Replacement comment text",
    )


class CommentResponse(BaseModel):
    """Schema for comment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique comment identifier")
    task_id: UUID = Field(..., description="ID of the commented task")
    author: TaskUserInfo = Field(..., description="Comment author")
    comment: str = Field(..., description="Comment text")
    is_edited: bool = Field(False, description="Whether the comment was edited")
    edited_at: Optional[datetime] = Field(None, description="When the comment was last edited")
    created_at: datetime = Field(..., description="When the comment was created")
    updated_at: datetime = Field(..., description="When the comment was last updated")


class CommentPagination(BaseModel):
    current_page: int
    total_pages: int
    total_comments: int


class CommentListResponse(BaseModel):
    """Page of comments, newest first."""

    comments: List[CommentResponse]
    pagination: CommentPagination
