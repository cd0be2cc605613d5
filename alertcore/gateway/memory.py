"""
In-process gateways.

Used when no OS/provider integration is configured (dry-run delivery) and by
the test suite. Delivery is recorded in memory and logged; nothing leaves
the process.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from ..notifications.models import NotificationPayload
from .interfaces import (
    CategoryAction,
    GatewayError,
    NotificationGateway,
    PermissionGateway,
    PermissionSnapshot,
    SettingsOpener,
)

logger = logging.getLogger(__name__)

DELIVERED_LIMIT = 1000


class MemoryNotificationGateway(NotificationGateway):
    def __init__(self, delivered_limit: int = DELIVERED_LIMIT) -> None:
        self.scheduled: Dict[str, NotificationPayload] = {}
        # Most recent delivery ids, oldest dropped past delivered_limit
        self.delivered: List[str] = []
        self._delivered_limit = delivered_limit
        self._badge = 0
        # Failure injection for hosts exercising degraded paths
        self.fail_schedule: Optional[Exception] = None
        self.fail_cancel: Optional[Exception] = None
        self.fail_badge: Optional[Exception] = None

    async def schedule(self, payload: NotificationPayload) -> str:
        if self.fail_schedule is not None:
            raise self.fail_schedule
        nid = str(uuid4())
        self.scheduled[nid] = payload
        self.delivered.append(nid)
        if len(self.delivered) > self._delivered_limit:
            del self.delivered[: len(self.delivered) - self._delivered_limit]
        logger.info(
            "dry_run_delivery id=%s category=%s title=%s",
            nid,
            payload.category_id,
            payload.title,
        )
        return nid

    async def cancel(self, notification_id: str) -> None:
        if self.fail_cancel is not None:
            raise self.fail_cancel
        self.scheduled.pop(notification_id, None)

    async def cancel_all(self) -> None:
        if self.fail_cancel is not None:
            raise self.fail_cancel
        self.scheduled.clear()

    async def get_badge_count(self) -> int:
        if self.fail_badge is not None:
            raise self.fail_badge
        return self._badge

    async def set_badge_count(self, count: int) -> None:
        if self.fail_badge is not None:
            raise self.fail_badge
        if count < 0:
            raise GatewayError("badge count must be >= 0")
        self._badge = count


class StaticPermissionGateway(PermissionGateway):
    """Permission gateway backed by a fixed snapshot.

    ``grant_on_request`` decides how a prompt resolves.
    """

    def __init__(
        self,
        snapshot: Optional[PermissionSnapshot] = None,
        *,
        grant_on_request: bool = True,
    ) -> None:
        self.snapshot = snapshot or PermissionSnapshot(granted=False, can_ask_again=True)
        self.grant_on_request = grant_on_request
        self.categories: Dict[str, List[CategoryAction]] = {}
        self.requests: List[List[str]] = []
        self.fail_status: Optional[Exception] = None
        self.fail_request: Optional[Exception] = None
        self.fail_register: Optional[Exception] = None

    async def get_status(self) -> PermissionSnapshot:
        if self.fail_status is not None:
            raise self.fail_status
        return self.snapshot

    async def request(self, capabilities: Sequence[str]) -> PermissionSnapshot:
        if self.fail_request is not None:
            raise self.fail_request
        self.requests.append(list(capabilities))
        self.snapshot = PermissionSnapshot(
            granted=self.grant_on_request,
            can_ask_again=not self.grant_on_request and self.snapshot.can_ask_again,
            platform_detail=dict(self.snapshot.platform_detail),
        )
        return self.snapshot

    async def register_category(self, name: str, actions: List[CategoryAction]) -> None:
        if self.fail_register is not None:
            raise self.fail_register
        self.categories[name] = list(actions)


class LoggingSettingsOpener(SettingsOpener):
    def __init__(self) -> None:
        self.opened = 0

    async def open(self) -> Optional[bool]:
        self.opened += 1
        logger.info("Opening app settings for permission management")
        return True
