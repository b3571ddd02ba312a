"""
API v1 Router

Identity is taken from the X-User-Id header set by the authenticating proxy.
"""

from fastapi import APIRouter
from . import applications, chats, tasks, users

router = APIRouter()

router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(applications.router, prefix="/applications", tags=["Applications"])
router.include_router(chats.router, prefix="/chats", tags=["Chats"])
router.include_router(users.router, prefix="/users", tags=["Users"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/tasks",
            "/applications",
            "/chats",
            "/users",
        ],
    }
