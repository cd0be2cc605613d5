"""
Gateways to the OS (or provider) notification and permission APIs.

This module provides:
- Collaborator interfaces used by the permission manager and notification service
- In-process gateways for dry-run delivery and tests
- A Pushover-backed delivery gateway
"""

from .interfaces import (
    CategoryAction,
    GatewayError,
    NotificationGateway,
    PermissionGateway,
    PermissionSnapshot,
    SettingsOpener,
)
from .memory import LoggingSettingsOpener, MemoryNotificationGateway, StaticPermissionGateway
from .pushover import PushoverNotificationGateway

__all__ = [
    "CategoryAction",
    "GatewayError",
    "NotificationGateway",
    "PermissionGateway",
    "PermissionSnapshot",
    "SettingsOpener",
    "LoggingSettingsOpener",
    "MemoryNotificationGateway",
    "StaticPermissionGateway",
    "PushoverNotificationGateway",
]
