"""API routes."""

from .admin import router as admin_router
from .jobs import router as jobs_router

__all__ = [
    "admin_router",
    "jobs_router",
]
