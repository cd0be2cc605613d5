"""
Notification domain models.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AlertPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AlertPriority):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, AlertPriority):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, AlertPriority):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, AlertPriority):
            return NotImplemented
        return self.rank >= other.rank


_PRIORITY_RANK = {
    AlertPriority.LOW: 0,
    AlertPriority.MEDIUM: 1,
    AlertPriority.HIGH: 2,
    AlertPriority.CRITICAL: 3,
}


class AlertType(str, Enum):
    INVENTORY = "INVENTORY"
    ORDER = "ORDER"
    EQUIPMENT = "EQUIPMENT"
    STAFF = "STAFF"
    CUSTOMER = "CUSTOMER"
    FINANCIAL = "FINANCIAL"
    SAFETY = "SAFETY"
    HEALTH = "HEALTH"
    SECURITY = "SECURITY"


class PermissionStatus(str, Enum):
    granted = "granted"
    denied = "denied"
    undetermined = "undetermined"


class Alert(BaseModel):
    """An operational event that may become a user notification.

    The caller owns the instance; the notification service only annotates
    the delivery fields in place.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str
    type: AlertType
    priority: AlertPriority
    title: str
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    acknowledged: bool = False
    resolved: bool = False
    read: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)
    should_notify: bool = True
    notification_sent: bool = False
    notification_scheduled_at: Optional[datetime] = None
    notification_id: Optional[str] = None


_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class QuietHours(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    start: str = "22:00"
    end: str = "08:00"

    @field_validator("start", "end")
    @classmethod
    def _check_clock(cls, v: str) -> str:
        if not _CLOCK_RE.match(v):
            raise ValueError(f"expected HH:MM clock time, got {v!r}")
        return v


class NotificationSettings(BaseModel):
    """User-controlled notification policy (persisted as one blob)."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    allow_notifications: bool = True
    allow_critical: bool = True
    allow_high: bool = True
    allow_medium: bool = True
    allow_low: bool = False
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    max_per_hour: int = Field(default=10, ge=0)
    custom_sounds: bool = True
    vibration: bool = True

    def allows(self, priority: AlertPriority) -> bool:
        return {
            AlertPriority.CRITICAL: self.allow_critical,
            AlertPriority.HIGH: self.allow_high,
            AlertPriority.MEDIUM: self.allow_medium,
            AlertPriority.LOW: self.allow_low,
        }[priority]


def merge_settings(
    current: NotificationSettings, patch: Mapping[str, Any]
) -> NotificationSettings:
    """Return a new settings record with ``patch`` applied.

    ``quiet_hours`` may be patched partially. The result is fully
    validated; ``current`` is left untouched.
    """
    data = current.model_dump()
    for key, value in dict(patch or {}).items():
        if key == "quiet_hours" and isinstance(value, (dict, QuietHours)):
            qh = value.model_dump() if isinstance(value, QuietHours) else dict(value)
            data["quiet_hours"] = {**data["quiet_hours"], **qh}
        else:
            data[key] = value
    return NotificationSettings.model_validate(data)


class NotificationPayload(BaseModel):
    title: str
    body: str
    category_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    sound: Optional[str] = None


class NotificationHistoryEntry(BaseModel):
    notification_id: str
    alert_id: str
    title: str
    body: str
    category_id: str
    priority: AlertPriority
    sent_at: datetime
    action_identifier: Optional[str] = None
    user_text: Optional[str] = None
    responded_at: Optional[datetime] = None


class ErrorKind(str, Enum):
    permission_denied = "permission_denied"
    permission_check_failed = "permission_check_failed"
    policy_filtered = "policy_filtered"
    gateway_schedule_failed = "gateway_schedule_failed"
    gateway_cancel_failed = "gateway_cancel_failed"
    gateway_failed = "gateway_failed"
    persistence_failed = "persistence_failed"
    invalid_settings = "invalid_settings"
    initialization_failed = "initialization_failed"
    not_found = "not_found"


T = TypeVar("T")


class ServiceResponse(BaseModel, Generic[T]):
    """Uniform result of every public operation that can fail."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResponse[Any]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "ServiceResponse[Any]":
        return cls(success=False, error=message, error_kind=kind)
