"""
Notification permission manager.

Owns the cached permission status and negotiates with the OS permission
gateway. Gateway faults never escape as exceptions: status checks fail open
to ``undetermined`` and every other operation reports a failed
ServiceResponse.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..audit.models import AuditCategory
from ..audit.service import AuditService
from ..gateway.interfaces import (
    CategoryAction,
    PermissionGateway,
    PermissionSnapshot,
    SettingsOpener,
)
from ..notifications.models import (
    AlertPriority,
    ErrorKind,
    PermissionStatus,
    ServiceResponse,
)
from .platform import PlatformProfile

logger = logging.getLogger(__name__)

DENIAL_FALLBACK_MESSAGE = "Notifications disabled. You can still view alerts in the app."

NOTIFICATION_CATEGORIES = {
    "CRITICAL_ALERT": [
        CategoryAction("ACKNOWLEDGE", "Acknowledge", foreground=True),
        CategoryAction("VIEW_DETAILS", "View Details", foreground=True),
    ],
    "HIGH_ALERT": [
        CategoryAction("ACKNOWLEDGE", "Acknowledge", foreground=False),
        CategoryAction("DISMISS", "Dismiss", destructive=True),
    ],
    "MEDIUM_ALERT": [
        CategoryAction("DISMISS", "Dismiss", destructive=False),
    ],
}


def status_from_snapshot(snapshot: PermissionSnapshot) -> PermissionStatus:
    if snapshot.granted:
        return PermissionStatus.granted
    if snapshot.can_ask_again:
        return PermissionStatus.undetermined
    return PermissionStatus.denied


class PermissionManager:
    def __init__(
        self,
        gateway: PermissionGateway,
        profile: PlatformProfile,
        settings_opener: Optional[SettingsOpener] = None,
        audit_service: Optional[AuditService] = None,
    ) -> None:
        self.gateway = gateway
        self.profile = profile
        self.settings_opener = settings_opener
        self.audit_service = audit_service
        self._status = PermissionStatus.undetermined
        self._education_shown = False

    @property
    def education_shown(self) -> bool:
        return self._education_shown

    async def check_permission_status(self) -> PermissionStatus:
        """Query the OS without prompting."""
        try:
            snapshot = await self.gateway.get_status()
        except Exception as e:  # noqa: BLE001
            logger.error("Error checking permission status: %s", e)
            return PermissionStatus.undetermined
        self._status = status_from_snapshot(snapshot)
        return self._status

    async def request_notification_permissions(
        self,
    ) -> ServiceResponse[PermissionStatus]:
        """Prompt for permission unless it is already granted.

        On grant the interactive notification categories are registered.
        """
        try:
            current = await self.gateway.get_status()
            if current.granted:
                self._status = PermissionStatus.granted
                return ServiceResponse.ok(PermissionStatus.granted)

            if not self._education_shown and current.can_ask_again:
                self._education_shown = True
                logger.info("Showing permission education to user")

            capabilities = [c.value for c in self.profile.capabilities]
            result = await self.gateway.request(capabilities)

            if result.granted:
                self._status = PermissionStatus.granted
                await self._setup_notification_categories()
                await self._audit("permission_granted", "success", {"capabilities": capabilities})
                return ServiceResponse.ok(PermissionStatus.granted)

            self._status = PermissionStatus.denied
            await self._audit("permission_denied", "denied", {"capabilities": capabilities})
            return ServiceResponse.fail(
                ErrorKind.permission_denied, "Notification permissions denied by user"
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("permission_request_error: %s", e)
            return ServiceResponse.fail(
                ErrorKind.permission_check_failed, f"Failed to request permissions: {e}"
            )

    async def get_detailed_permissions(self) -> ServiceResponse[PermissionSnapshot]:
        try:
            return ServiceResponse.ok(await self.gateway.get_status())
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.permission_check_failed, f"Failed to read permissions: {e}"
            )

    async def handle_permission_denial(self) -> ServiceResponse[str]:
        try:
            logger.info("User denied notification permissions")
            if self.audit_service is not None:
                await self.audit_service.log_event(
                    event_type="permission_denial_handled",
                    category=AuditCategory.PERMISSION,
                    action="handle_denial",
                    result="fallback",
                    description="Falling back to in-app alerts",
                )
            return ServiceResponse.ok(DENIAL_FALLBACK_MESSAGE)
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_failed, f"Failed to handle permission denial: {e}"
            )

    def show_permission_education(self) -> str:
        return self.profile.education_message

    async def can_ask_again(self) -> bool:
        try:
            snapshot = await self.gateway.get_status()
        except Exception as e:  # noqa: BLE001
            logger.error("Error checking can_ask_again: %s", e)
            return False
        return bool(snapshot.can_ask_again)

    async def open_app_settings(self) -> ServiceResponse[bool]:
        if self.settings_opener is None:
            logger.info("No settings opener configured")
            return ServiceResponse.fail(
                ErrorKind.gateway_failed, "Failed to open app settings: no opener configured"
            )
        try:
            await self.settings_opener.open()
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_failed, f"Failed to open app settings: {e}"
            )
        return ServiceResponse.ok(True)

    def get_current_permission_status(self) -> PermissionStatus:
        return self._status

    def reset_education_state(self) -> None:
        self._education_shown = False

    async def are_critical_alerts_allowed(self) -> bool:
        if not self.profile.separate_critical_entitlement:
            return True
        try:
            snapshot = await self.gateway.get_status()
        except Exception as e:  # noqa: BLE001
            logger.error("Error checking critical alerts permission: %s", e)
            return False
        return bool((snapshot.platform_detail or {}).get("allows_critical_alerts", False))

    async def validate_permission_for_priority(self, priority: AlertPriority) -> bool:
        status = await self.check_permission_status()
        if status != PermissionStatus.granted:
            return False
        if AlertPriority(priority) == AlertPriority.CRITICAL:
            return await self.are_critical_alerts_allowed()
        return True

    async def _setup_notification_categories(self) -> None:
        try:
            for name, actions in NOTIFICATION_CATEGORIES.items():
                await self.gateway.register_category(name, list(actions))
            logger.info("Notification categories set up successfully")
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to setup notification categories: %s", e)

    async def _audit(self, event_type: str, result: str, details: dict) -> None:
        if self.audit_service is None:
            return
        try:
            await self.audit_service.log_event(
                event_type=event_type,
                category=AuditCategory.PERMISSION,
                action="request",
                result=result,
                description=f"Notification permission {result}",
                details={**details, "platform": self.profile.platform.value},
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("audit_log_failed event=%s: %s", event_type, e)
