"""
Notification orchestration service.

Responsibilities:
- Decide per alert whether a notification may be surfaced now (policy engine)
- Deliver allowed alerts through the notification gateway and annotate them
- Drain a FIFO queue of alerts with at most one drain loop active
- Keep the send ledger (rate limit), a bounded history and the settings record
- Emit Prometheus metrics and audit events
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, List, Mapping, Optional

from ..audit.models import AuditCategory
from ..audit.service import AuditService
from ..config.service import SettingsStore
from ..gateway.interfaces import NotificationGateway
from ..monitoring.metrics import (
    notifications_failed_total,
    notifications_filtered_total,
    notifications_queue_depth,
    notifications_schedule_latency,
    notifications_scheduled_total,
)
from ..permissions.manager import PermissionManager
from ..policy.engine import NotificationPolicyEngine, PolicyRequest
from ..policy.ratelimit import SendLedger
from .models import (
    Alert,
    AlertPriority,
    ErrorKind,
    NotificationHistoryEntry,
    NotificationPayload,
    NotificationSettings,
    ServiceResponse,
    merge_settings,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY = "notification_settings"
FILTERED_MESSAGE = "Notification filtered by user settings"
MAX_BODY_LENGTH = 100
ELLIPSIS = "..."
HISTORY_LIMIT = 100

PRIORITY_SOUNDS = {
    AlertPriority.CRITICAL: "critical-alert.caf",
    AlertPriority.HIGH: "high-priority.caf",
    AlertPriority.MEDIUM: "medium-alert.caf",
    AlertPriority.LOW: "low-priority.caf",
}


def truncate_body(message: str, limit: int = MAX_BODY_LENGTH) -> str:
    if len(message) > limit:
        return message[:limit] + ELLIPSIS
    return message


def category_id(priority: AlertPriority) -> str:
    return f"{AlertPriority(priority).value}_ALERT"


class NotificationService:
    def __init__(
        self,
        permission_manager: PermissionManager,
        gateway: NotificationGateway,
        settings_store: SettingsStore,
        policy_engine: Optional[NotificationPolicyEngine] = None,
        audit_service: Optional[AuditService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        queue_interval: float = 0.1,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self.permission_manager = permission_manager
        self.gateway = gateway
        self.settings_store = settings_store
        self.policy_engine = policy_engine or NotificationPolicyEngine()
        self.audit_service = audit_service
        self._clock = clock or datetime.now
        self._queue_interval = queue_interval
        self._history_limit = history_limit
        self._settings = NotificationSettings()
        self._queue: Deque[Alert] = deque()
        self._ledger = SendLedger()
        self._history: List[NotificationHistoryEntry] = []
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def initialize(self) -> ServiceResponse[bool]:
        """Load settings, negotiate permission and drain anything queued early.

        A denied or failed permission request leaves the service running in
        degraded mode; only an exception from the request itself is fatal.
        """
        await self._load_settings()
        try:
            permission = await self.permission_manager.request_notification_permissions()
        except Exception as e:  # noqa: BLE001
            logger.error("notification_service_init_failed: %s", e)
            return ServiceResponse.fail(
                ErrorKind.initialization_failed,
                f"Failed to initialize notification service: {e}",
            )
        if not permission.success:
            logger.warning("Notifications disabled: %s", permission.error)

        self._initialized = True
        self._start_drain()
        logger.info("Notification service initialized")
        return ServiceResponse.ok(True)

    async def stop(self) -> None:
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Notification service stopped")

    # Decision & delivery

    async def schedule_notification(self, alert: Alert) -> ServiceResponse[str]:
        """Decide on and, if allowed, deliver a notification for ``alert``.

        The alert is only annotated after the gateway confirms delivery. An
        alert that was already sent is not delivered again; the existing
        notification id is returned.
        """
        if alert.notification_sent:
            logger.debug("notification_already_sent alert=%s id=%s", alert.id, alert.notification_id)
            return ServiceResponse.ok(alert.notification_id)

        start = time.perf_counter()
        try:
            now = self._clock()
            if alert.priority == AlertPriority.CRITICAL:
                permission = self.permission_manager.get_current_permission_status()
            else:
                permission = await self.permission_manager.check_permission_status()

            result = self.policy_engine.evaluate(
                PolicyRequest(
                    alert_id=alert.id,
                    priority=alert.priority,
                    permission_status=permission,
                    settings=self._settings,
                    now=now,
                    sends_last_hour=self._ledger.sends_in_last_hour(now),
                )
            )
            if not result.allowed:
                notifications_filtered_total.labels(reason=result.reason).inc()
                await self._audit(
                    "notification_filtered",
                    AuditCategory.DELIVERY,
                    "filter",
                    result.reason,
                    alert.id,
                    {"priority": alert.priority.value},
                )
                return ServiceResponse.fail(ErrorKind.policy_filtered, FILTERED_MESSAGE)

            payload = self.build_notification_payload(alert)
            try:
                notification_id = await self.gateway.schedule(payload)
            except Exception as e:  # noqa: BLE001
                notifications_failed_total.inc()
                logger.warning("notification_schedule_failed alert=%s: %s", alert.id, e)
                await self._audit(
                    "notification_failed",
                    AuditCategory.DELIVERY,
                    "schedule",
                    "failure",
                    alert.id,
                    {"error": str(e)},
                )
                return ServiceResponse.fail(
                    ErrorKind.gateway_schedule_failed,
                    f"Failed to schedule notification: {e}",
                )

            alert.notification_id = notification_id
            alert.notification_sent = True
            alert.notification_scheduled_at = now
            self._ledger.record(now)
            self._append_history(
                NotificationHistoryEntry(
                    notification_id=notification_id,
                    alert_id=alert.id,
                    title=payload.title,
                    body=payload.body,
                    category_id=payload.category_id,
                    priority=alert.priority,
                    sent_at=now,
                )
            )
            notifications_scheduled_total.labels(priority=alert.priority.value).inc()
            logger.info(
                "notification_sent alert=%s category=%s id=%s",
                alert.id,
                payload.category_id,
                notification_id,
            )
            await self._audit(
                "notification_sent",
                AuditCategory.DELIVERY,
                "schedule",
                "success",
                alert.id,
                {"notification_id": notification_id, "category": payload.category_id},
            )
            return ServiceResponse.ok(notification_id)
        finally:
            notifications_schedule_latency.observe(time.perf_counter() - start)

    def build_notification_payload(self, alert: Alert) -> NotificationPayload:
        return NotificationPayload(
            title=alert.title,
            body=truncate_body(alert.message),
            category_id=category_id(alert.priority),
            data={
                "alert_id": alert.id,
                "type": alert.type.value,
                "priority": alert.priority.value,
                "alert_data": dict(alert.data),
            },
            sound=self._select_sound(alert.priority),
        )

    def _select_sound(self, priority: AlertPriority) -> Optional[str]:
        if not self._settings.custom_sounds:
            return None  # system default
        return PRIORITY_SOUNDS[priority]

    # Queue

    def queue_notification(self, alert: Alert) -> None:
        """Append ``alert`` to the queue and make sure a drain is running.

        Fire-and-forget: callers that need the outcome should call
        schedule_notification directly.
        """
        self._queue.append(alert)
        notifications_queue_depth.set(len(self._queue))
        self._start_drain()

    def _start_drain(self) -> None:
        if self._draining or not self._queue:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Picked up by initialize() or the next queue_notification under a loop
            logger.debug("no running event loop; %d alert(s) left queued", len(self._queue))
            return
        self._draining = True
        self._drain_task = loop.create_task(self._process_queue())

    async def _process_queue(self) -> None:
        try:
            while self._queue:
                alert = self._queue[0]
                try:
                    await self.schedule_notification(alert)
                except Exception as e:  # noqa: BLE001
                    logger.exception("queue_processing_error alert=%s: %s", alert.id, e)
                self._queue.popleft()
                notifications_queue_depth.set(len(self._queue))
                if self._queue:
                    await asyncio.sleep(self._queue_interval)
        finally:
            self._draining = False
            self._drain_task = None

    async def join_queue(self) -> None:
        """Wait until the active drain loop (if any) has emptied the queue."""
        while self._drain_task is not None:
            await asyncio.shield(self._drain_task)

    # Settings

    async def update_settings(
        self, patch: Mapping[str, Any]
    ) -> ServiceResponse[NotificationSettings]:
        """Merge ``patch`` into the settings and persist; all-or-nothing."""
        try:
            updated = merge_settings(self._settings, patch)
        except (ValueError, TypeError) as e:
            return ServiceResponse.fail(
                ErrorKind.invalid_settings, f"Failed to update settings: {e}"
            )
        try:
            await self.settings_store.set(SETTINGS_KEY, updated.model_dump_json())
        except Exception as e:  # noqa: BLE001
            logger.error("settings_persist_failed: %s", e)
            return ServiceResponse.fail(
                ErrorKind.persistence_failed, f"Failed to update settings: {e}"
            )
        self._settings = updated
        await self._audit(
            "settings_updated",
            AuditCategory.SETTINGS,
            "update",
            "success",
            None,
            {"fields": sorted(dict(patch).keys())},
        )
        return ServiceResponse.ok(updated.model_copy(deep=True))

    def get_settings(self) -> NotificationSettings:
        return self._settings.model_copy(deep=True)

    async def _load_settings(self) -> None:
        try:
            blob = await self.settings_store.get(SETTINGS_KEY)
            if not blob:
                return
            data = json.loads(blob)
            known = {
                k: v for k, v in data.items() if k in NotificationSettings.model_fields
            }
            self._settings = merge_settings(NotificationSettings(), known)
        except Exception as e:  # noqa: BLE001
            logger.error("Error loading notification settings: %s", e)

    # Cancellation & badge

    async def cancel_notification(self, notification_id: str) -> ServiceResponse[bool]:
        try:
            await self.gateway.cancel(notification_id)
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_cancel_failed, f"Failed to cancel notification: {e}"
            )
        return ServiceResponse.ok(True)

    async def cancel_all_notifications(self) -> ServiceResponse[bool]:
        try:
            await self.gateway.cancel_all()
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_cancel_failed,
                f"Failed to cancel all notifications: {e}",
            )
        return ServiceResponse.ok(True)

    async def get_badge_count(self) -> ServiceResponse[int]:
        try:
            return ServiceResponse.ok(await self.gateway.get_badge_count())
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_failed, f"Failed to get badge count: {e}"
            )

    async def set_badge_count(self, count: int) -> ServiceResponse[bool]:
        try:
            await self.gateway.set_badge_count(count)
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_failed, f"Failed to set badge count: {e}"
            )
        return ServiceResponse.ok(True)

    # History

    def get_notification_history(self) -> List[NotificationHistoryEntry]:
        return [entry.model_copy() for entry in self._history]

    def clear_notification_history(self) -> None:
        self._history = []

    def _append_history(self, entry: NotificationHistoryEntry) -> None:
        self._history.append(entry)
        if len(self._history) > self._history_limit:
            del self._history[: len(self._history) - self._history_limit]

    async def handle_notification_response(
        self,
        notification_id: str,
        action_identifier: str,
        user_text: Optional[str] = None,
    ) -> ServiceResponse[NotificationHistoryEntry]:
        """Record the user's response (button or tap) to a delivered notification."""
        entry = next(
            (e for e in self._history if e.notification_id == notification_id), None
        )
        if entry is None:
            return ServiceResponse.fail(
                ErrorKind.not_found, f"Unknown notification: {notification_id}"
            )
        entry.action_identifier = action_identifier
        entry.user_text = user_text
        entry.responded_at = self._clock()

        if action_identifier == "ACKNOWLEDGE":
            logger.info("User acknowledged alert: %s", entry.alert_id)
        elif action_identifier == "DISMISS":
            logger.info("User dismissed alert: %s", entry.alert_id)
        elif action_identifier == "VIEW_DETAILS":
            logger.info("User wants to view details for alert: %s", entry.alert_id)
        else:
            logger.info("User tapped notification for alert: %s", entry.alert_id)

        await self._audit(
            "notification_response",
            AuditCategory.DELIVERY,
            "respond",
            action_identifier,
            entry.alert_id,
            {"notification_id": notification_id},
        )
        return ServiceResponse.ok(entry.model_copy())

    async def _audit(
        self,
        event_type: str,
        category: AuditCategory,
        action: str,
        result: str,
        resource_id: Optional[str],
        details: dict,
    ) -> None:
        if self.audit_service is None:
            return
        try:
            await self.audit_service.log_event(
                event_type=event_type,
                category=category,
                action=action,
                result=result,
                description=f"{event_type} ({result})",
                resource_id=resource_id,
                details=details,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("audit_log_failed event=%s: %s", event_type, e)
