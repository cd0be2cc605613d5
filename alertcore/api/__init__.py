"""
HTTP endpoints for the notification service.
"""

from .notifications import configure_notifications_api, notifications_router

__all__ = ["configure_notifications_api", "notifications_router"]
