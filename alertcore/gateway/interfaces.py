from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..notifications.models import NotificationPayload


class GatewayError(Exception):
    """Raised by gateway implementations when the OS/provider call fails."""


@dataclass
class PermissionSnapshot:
    """Permission state as reported by the OS."""

    granted: bool
    can_ask_again: bool
    platform_detail: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CategoryAction:
    """Action button attached to a notification category."""

    identifier: str
    title: str
    foreground: bool = False
    destructive: bool = False


class PermissionGateway(ABC):
    """Interface to the OS notification permission APIs."""

    @abstractmethod
    async def get_status(self) -> PermissionSnapshot:
        """Return the current permission state."""

    @abstractmethod
    async def request(self, capabilities: Sequence[str]) -> PermissionSnapshot:
        """Prompt for the given capabilities and return the resulting state."""

    @abstractmethod
    async def register_category(self, name: str, actions: List[CategoryAction]) -> None:
        """Register an interactive notification category."""


class NotificationGateway(ABC):
    """Interface to the OS notification scheduler."""

    @abstractmethod
    async def schedule(self, payload: NotificationPayload) -> str:
        """Deliver immediately, return the provider-assigned id."""

    @abstractmethod
    async def cancel(self, notification_id: str) -> None:
        """Cancel a scheduled notification."""

    @abstractmethod
    async def cancel_all(self) -> None:
        """Cancel every scheduled notification."""

    @abstractmethod
    async def get_badge_count(self) -> int:
        """Return the application badge count."""

    @abstractmethod
    async def set_badge_count(self, count: int) -> None:
        """Set the application badge count."""


class SettingsOpener(ABC):
    """Opens the OS settings page for this application."""

    @abstractmethod
    async def open(self) -> Optional[bool]:
        """Open the settings page."""
