"""
Delivery timing and batching on top of NotificationService.

Non-critical alerts are spread out with a priority-dependent delay, related
alerts can be grouped, and the candidate set can be trimmed by time of day,
user engagement or the current operating scenario. Every delivery still goes
through NotificationService.schedule_notification, so policy filtering is
applied at the moment the notification actually fires.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .models import Alert, AlertPriority, AlertType, ErrorKind, ServiceResponse
from .service import NotificationService

logger = logging.getLogger(__name__)

# Delivery delay ranges in milliseconds
PRIORITY_DELAYS_MS = {
    AlertPriority.HIGH: (30_000, 120_000),
    AlertPriority.MEDIUM: (120_000, 300_000),
    AlertPriority.LOW: (300_000, 900_000),
}

RELATED_WINDOW = timedelta(minutes=5)
BUSY_PERIOD_LIMIT = 5


class OperatingScenario(str, Enum):
    BUSY_LUNCH_RUSH = "BUSY_LUNCH_RUSH"
    MORNING_PREP = "MORNING_PREP"
    EVENING_SERVICE = "EVENING_SERVICE"
    NORMAL_OPERATIONS = "NORMAL_OPERATIONS"


def _urgent(alert: Alert) -> bool:
    return alert.priority in (AlertPriority.CRITICAL, AlertPriority.HIGH)


class NotificationScheduler:
    def __init__(
        self,
        notification_service: NotificationService,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.notification_service = notification_service
        self._rng = rng or random.Random()
        self._clock = clock or datetime.now
        self._pending: Dict[str, asyncio.Task] = {}
        self._delay_total = 0.0
        self._scheduled_total = 0

    async def schedule_notifications(self, alerts: Sequence[Alert]) -> ServiceResponse[int]:
        """Schedule every eligible alert, return how many were accepted.

        Eligible means ``should_notify`` and not already sent.
        """
        try:
            count = 0
            for alert in alerts:
                if not alert.should_notify or alert.notification_sent:
                    continue
                result = await self.schedule_delayed_notification(
                    alert, self.calculate_delay(alert)
                )
                if result.success:
                    count += 1
            return ServiceResponse.ok(count)
        except Exception as e:  # noqa: BLE001
            return ServiceResponse.fail(
                ErrorKind.gateway_schedule_failed, f"Failed to schedule notifications: {e}"
            )

    def calculate_delay(self, alert: Alert) -> float:
        """Seconds to wait before delivering ``alert``; CRITICAL is immediate."""
        if alert.priority == AlertPriority.CRITICAL:
            return 0.0
        low, high = PRIORITY_DELAYS_MS[alert.priority]
        return self.random_delay_ms(low, high) / 1000.0

    def random_delay_ms(self, minimum: int, maximum: int) -> int:
        return self._rng.randint(minimum, maximum)

    async def schedule_delayed_notification(
        self, alert: Alert, delay: float
    ) -> ServiceResponse[str]:
        if delay <= 0:
            result = await self.notification_service.schedule_notification(alert)
            if result.success:
                self._record(0.0)
            return result

        self.cancel_scheduled_notification(alert.id)
        task = asyncio.get_running_loop().create_task(self._deliver_later(alert, delay))
        self._pending[alert.id] = task
        self._record(delay)
        logger.debug("notification_deferred alert=%s delay=%.1fs", alert.id, delay)
        return ServiceResponse.ok(f"Scheduled in {int(delay * 1000)}ms")

    async def _deliver_later(self, alert: Alert, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            result = await self.notification_service.schedule_notification(alert)
            if not result.success:
                logger.info("deferred_notification_not_sent alert=%s: %s", alert.id, result.error)
        finally:
            if self._pending.get(alert.id) is asyncio.current_task():
                del self._pending[alert.id]

    def _record(self, delay: float) -> None:
        self._scheduled_total += 1
        self._delay_total += delay

    def cancel_scheduled_notification(self, alert_id: str) -> bool:
        task = self._pending.pop(alert_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all_scheduled_notifications(self) -> None:
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

    def get_scheduling_stats(self) -> Dict[str, float]:
        if self._scheduled_total:
            average = self._delay_total / self._scheduled_total
        else:
            average = 0.0
        return {
            "total_scheduled": self._scheduled_total,
            "pending_scheduled": len(self._pending),
            "average_delay": average,
        }

    # Batching & filtering

    @staticmethod
    def are_alerts_related(first: Alert, second: Alert) -> bool:
        if first.type == second.type:
            if first.type == AlertType.EQUIPMENT:
                return True
            return abs(first.timestamp - second.timestamp) < RELATED_WINDOW
        pair = {first.type, second.type}
        return pair == {AlertType.INVENTORY, AlertType.ORDER}

    def batch_related_alerts(self, alerts: Sequence[Alert]) -> List[List[Alert]]:
        batches: List[List[Alert]] = []
        processed: set = set()
        for alert in alerts:
            if alert.id in processed:
                continue
            batch = [alert]
            processed.add(alert.id)
            for other in alerts:
                if other.id in processed:
                    continue
                if self.are_alerts_related(alert, other):
                    batch.append(other)
                    processed.add(other.id)
            batches.append(batch)
        return batches

    def adapt_to_engagement(self, alerts: Sequence[Alert], engagement_score: float) -> List[Alert]:
        """Fewer notifications for disengaged users, more for engaged ones."""
        adapted = list(alerts)
        if engagement_score < 0.3:
            return [a for a in adapted if _urgent(a)]
        if engagement_score > 0.8:
            for alert in adapted:
                if alert.priority == AlertPriority.LOW:
                    alert.should_notify = True
        return adapted

    def optimize_for_time_of_day(
        self, alerts: Sequence[Alert], now: Optional[datetime] = None
    ) -> List[Alert]:
        hour = (now or self._clock()).hour
        candidates = list(alerts)
        if 5 <= hour < 8:
            return [a for a in candidates if _urgent(a)]
        if 8 <= hour < 18:
            return candidates
        if 18 <= hour < 22:
            return [
                a
                for a in candidates
                if _urgent(a)
                or (a.priority == AlertPriority.MEDIUM and self._rng.random() > 0.5)
            ]
        return [a for a in candidates if a.priority == AlertPriority.CRITICAL]

    def schedule_for_context(
        self, alerts: Sequence[Alert], scenario: OperatingScenario
    ) -> List[Alert]:
        candidates = list(alerts)
        if scenario == OperatingScenario.BUSY_LUNCH_RUSH:
            ranked = sorted(candidates, key=lambda a: a.priority.rank, reverse=True)
            return ranked[:BUSY_PERIOD_LIMIT]
        if scenario == OperatingScenario.MORNING_PREP:
            return [
                a
                for a in candidates
                if a.type in (AlertType.INVENTORY, AlertType.EQUIPMENT)
                or a.priority == AlertPriority.CRITICAL
            ]
        if scenario == OperatingScenario.EVENING_SERVICE:
            return [
                max(batch, key=lambda a: a.priority.rank)
                for batch in self.batch_related_alerts(candidates)
            ]
        return candidates
