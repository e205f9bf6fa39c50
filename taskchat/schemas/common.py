"""Response envelope shared by every REST endpoint."""

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class FieldError(BaseModel):
    """One failed validation rule."""

    field: str
    message: str


class ApiResponse(BaseModel, Generic[T]):
    """
    Standard envelope: {"success": bool, "data": ..., "message": ...}.

    Validation failures additionally carry an ``errors`` list.
    """

    success: bool = Field(True, description="Whether the request succeeded")
    data: Optional[T] = Field(None, description="Response payload")
    message: Optional[str] = Field(None, description="Human readable outcome")
    errors: Optional[List[FieldError]] = Field(None, description="Validation errors")
