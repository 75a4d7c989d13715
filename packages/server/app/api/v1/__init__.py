"""
API v1 Router

Group, video and profile endpoints require a user account; organization
accounts use the organization profile and members endpoints.
"""

from fastapi import APIRouter
from . import groups, users, videos

router = APIRouter()

router.include_router(users.router)
router.include_router(groups.router, prefix="/groups", tags=["Groups"])
router.include_router(videos.router, prefix="/videos", tags=["Videos"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/users",
            "/organizations",
            "/profile",
            "/organization/profile",
            "/organization/members",
            "/groups",
            "/videos",
        ],
    }
