import asyncio
import random
from datetime import datetime, timedelta

from alertcore.config.service import SettingsStore
from alertcore.gateway.interfaces import PermissionSnapshot
from alertcore.gateway.memory import MemoryNotificationGateway, StaticPermissionGateway
from alertcore.notifications.models import Alert, AlertPriority, AlertType
from alertcore.notifications.scheduler import (
    BUSY_PERIOD_LIMIT,
    NotificationScheduler,
    OperatingScenario,
)
from alertcore.notifications.service import NotificationService
from alertcore.permissions.manager import PermissionManager
from alertcore.permissions.platform import ANDROID_PROFILE


def run(coro):
    return asyncio.run(coro)


T0 = datetime(2024, 5, 14, 12, 0)


class FixedRandom(random.Random):
    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


def _alert(alert_id, priority=AlertPriority.MEDIUM, type=AlertType.ORDER, at=T0, **kw):
    return Alert(
        id=alert_id, type=type, priority=priority, title=alert_id, message="m", timestamp=at, **kw
    )


def _scheduler(rng=None):
    pm = PermissionManager(
        StaticPermissionGateway(PermissionSnapshot(granted=True, can_ask_again=False)),
        ANDROID_PROFILE,
    )
    gateway = MemoryNotificationGateway()
    svc = NotificationService(pm, gateway, SettingsStore(), clock=lambda: T0, queue_interval=0)
    return NotificationScheduler(svc, rng=rng or random.Random(7), clock=lambda: T0), gateway


def test_delay_ranges_per_priority():
    sched, _ = _scheduler()
    assert sched.calculate_delay(_alert("c", AlertPriority.CRITICAL)) == 0.0
    for _ in range(50):
        assert 30 <= sched.calculate_delay(_alert("h", AlertPriority.HIGH)) <= 120
        assert 120 <= sched.calculate_delay(_alert("m", AlertPriority.MEDIUM)) <= 300
        assert 300 <= sched.calculate_delay(_alert("l", AlertPriority.LOW)) <= 900


def test_schedule_notifications_counts_eligible_alerts():
    sched, gateway = _scheduler()

    async def scenario():
        result = await sched.schedule_notifications(
            [
                _alert("crit", AlertPriority.CRITICAL),
                _alert("high", AlertPriority.HIGH),
                _alert("muted", AlertPriority.HIGH, should_notify=False),
                _alert("done", AlertPriority.HIGH, notification_sent=True),
            ]
        )
        stats = sched.get_scheduling_stats()
        sched.cancel_all_scheduled_notifications()
        return result, stats

    result, stats = run(scenario())
    assert result.data == 2
    assert len(gateway.delivered) == 1  # only the critical one fired immediately
    assert stats["total_scheduled"] == 2
    assert stats["pending_scheduled"] == 1
    assert stats["average_delay"] > 0


def test_deferred_delivery_fires_after_delay():
    sched, gateway = _scheduler()
    alert = _alert("soon", AlertPriority.HIGH)

    async def scenario():
        res = await sched.schedule_delayed_notification(alert, 0.01)
        assert res.success
        await asyncio.sleep(0.1)
        return sched.get_scheduling_stats()

    stats = run(scenario())
    assert alert.notification_sent is True
    assert len(gateway.delivered) == 1
    assert stats["pending_scheduled"] == 0


def test_cancel_scheduled_notification():
    sched, gateway = _scheduler()

    async def scenario():
        await sched.schedule_delayed_notification(_alert("later", AlertPriority.LOW), 5)
        assert sched.get_scheduling_stats()["pending_scheduled"] == 1
        assert sched.cancel_scheduled_notification("later") is True
        assert sched.cancel_scheduled_notification("later") is False
        await asyncio.sleep(0)

    run(scenario())
    assert gateway.delivered == []
    assert sched.get_scheduling_stats()["pending_scheduled"] == 0


def test_related_alerts():
    related = NotificationScheduler.are_alerts_related
    assert related(
        _alert("e1", type=AlertType.EQUIPMENT),
        _alert("e2", type=AlertType.EQUIPMENT, at=T0 + timedelta(hours=3)),
    )
    assert related(_alert("s1", type=AlertType.STAFF), _alert("s2", type=AlertType.STAFF, at=T0 + timedelta(minutes=4)))
    assert not related(_alert("s1", type=AlertType.STAFF), _alert("s2", type=AlertType.STAFF, at=T0 + timedelta(minutes=6)))
    assert related(_alert("i", type=AlertType.INVENTORY), _alert("o", type=AlertType.ORDER, at=T0 + timedelta(hours=1)))
    assert not related(_alert("i", type=AlertType.INVENTORY), _alert("f", type=AlertType.FINANCIAL))


def test_batch_related_alerts():
    sched, _ = _scheduler()
    alerts = [
        _alert("inv", type=AlertType.INVENTORY),
        _alert("staff1", type=AlertType.STAFF),
        _alert("ord", type=AlertType.ORDER),
        _alert("staff2", type=AlertType.STAFF, at=T0 + timedelta(minutes=10)),
    ]
    batches = [[a.id for a in b] for b in sched.batch_related_alerts(alerts)]
    assert batches == [["inv", "ord"], ["staff1"], ["staff2"]]


def test_adapt_to_engagement():
    sched, _ = _scheduler()
    alerts = [
        _alert("c", AlertPriority.CRITICAL),
        _alert("m", AlertPriority.MEDIUM),
        _alert("l", AlertPriority.LOW, should_notify=False),
    ]
    assert [a.id for a in sched.adapt_to_engagement(alerts, 0.1)] == ["c"]
    assert len(sched.adapt_to_engagement(alerts, 0.5)) == 3
    assert alerts[2].should_notify is False
    sched.adapt_to_engagement(alerts, 0.9)
    assert alerts[2].should_notify is True


def test_optimize_for_time_of_day():
    alerts = [
        _alert("c", AlertPriority.CRITICAL),
        _alert("h", AlertPriority.HIGH),
        _alert("m", AlertPriority.MEDIUM),
        _alert("l", AlertPriority.LOW),
    ]

    def ids(sched, hour):
        return [a.id for a in sched.optimize_for_time_of_day(alerts, T0.replace(hour=hour))]

    sched, _ = _scheduler(FixedRandom(0.9))
    assert ids(sched, 6) == ["c", "h"]
    assert ids(sched, 12) == ["c", "h", "m", "l"]
    assert ids(sched, 19) == ["c", "h", "m"]
    assert ids(sched, 23) == ["c"]
    assert ids(sched, 3) == ["c"]

    sched, _ = _scheduler(FixedRandom(0.1))
    assert ids(sched, 19) == ["c", "h"]


def test_schedule_for_context():
    sched, _ = _scheduler()
    many = [_alert(f"l{i}", AlertPriority.LOW, type=AlertType.CUSTOMER) for i in range(6)]
    many.append(_alert("crit", AlertPriority.CRITICAL, type=AlertType.SAFETY))

    busy = sched.schedule_for_context(many, OperatingScenario.BUSY_LUNCH_RUSH)
    assert len(busy) == BUSY_PERIOD_LIMIT
    assert busy[0].id == "crit"

    prep = sched.schedule_for_context(
        [
            _alert("inv", type=AlertType.INVENTORY),
            _alert("eq", type=AlertType.EQUIPMENT),
            _alert("cust", type=AlertType.CUSTOMER),
            _alert("fire", AlertPriority.CRITICAL, type=AlertType.SAFETY),
        ],
        OperatingScenario.MORNING_PREP,
    )
    assert [a.id for a in prep] == ["inv", "eq", "fire"]

    evening = sched.schedule_for_context(
        [
            _alert("inv", AlertPriority.LOW, type=AlertType.INVENTORY),
            _alert("ord", AlertPriority.HIGH, type=AlertType.ORDER),
            _alert("cust", AlertPriority.MEDIUM, type=AlertType.CUSTOMER),
        ],
        OperatingScenario.EVENING_SERVICE,
    )
    assert [a.id for a in evening] == ["ord", "cust"]

    assert len(sched.schedule_for_context(many, OperatingScenario.NORMAL_OPERATIONS)) == 7


def test_average_delay_tracks_all_scheduled():
    sched, _ = _scheduler()

    async def scenario():
        await sched.schedule_delayed_notification(_alert("now", AlertPriority.CRITICAL), 0)
        await sched.schedule_delayed_notification(_alert("a", AlertPriority.LOW), 40)
        await sched.schedule_delayed_notification(_alert("b", AlertPriority.LOW), 20)
        stats = sched.get_scheduling_stats()
        sched.cancel_all_scheduled_notifications()
        return stats

    stats = run(scenario())
    assert stats["total_scheduled"] == 3
    assert stats["average_delay"] == 20.0
    assert sched.get_scheduling_stats()["pending_scheduled"] == 0
