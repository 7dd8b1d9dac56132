"""
API Version 1 Router.

Aggregates all v1 endpoint routers.
"""

from fastapi import APIRouter

from modules.notifier.api.v1.endpoints import notifications, templates, users

router = APIRouter()

# Notification dispatch, lifecycle and maintenance
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])

# Versioned templates
router.include_router(templates.router, prefix="/templates", tags=["templates"])

# User contact details and preferences
router.include_router(users.router, prefix="/users", tags=["users"])
