"""API routers package.

This package contains all FastAPI routers for the application.
Each router handles a specific domain of the API.
"""

from .comments import router as comments_router
from .tasks import router as tasks_router

__all__ = [
    "comments_router",
    "tasks_router",
]
