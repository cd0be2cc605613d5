from datetime import datetime, timedelta

from alertcore.notifications.models import (
    AlertPriority,
    NotificationSettings,
    PermissionStatus,
    QuietHours,
)
from alertcore.policy.engine import NotificationPolicyEngine, PolicyDecision, PolicyRequest
from alertcore.policy.ratelimit import SendLedger, sends_in_last_hour
from alertcore.policy.rules import clock_minutes, in_quiet_hours


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 5, 14, hour, minute)


def test_clock_minutes():
    assert clock_minutes("00:00") == 0
    assert clock_minutes("08:30") == 510
    assert clock_minutes("23:59") == 1439


def test_disabled_window_never_matches():
    window = QuietHours(enabled=False, start="00:00", end="23:59")
    assert not in_quiet_hours(at(3), window)
    assert not in_quiet_hours(at(12), window)


def test_full_day_window_covers_every_minute():
    window = QuietHours(enabled=True, start="00:00", end="23:59")
    for hour in range(24):
        for minute in (0, 17, 59):
            assert in_quiet_hours(at(hour, minute), window)


def test_same_day_window_bounds_inclusive():
    window = QuietHours(enabled=True, start="13:00", end="14:30")
    assert in_quiet_hours(at(13, 0), window)
    assert in_quiet_hours(at(14, 30), window)
    assert not in_quiet_hours(at(12, 59), window)
    assert not in_quiet_hours(at(14, 31), window)


def test_window_wrapping_midnight():
    window = QuietHours(enabled=True, start="22:00", end="08:00")
    assert in_quiet_hours(at(22, 0), window)
    assert in_quiet_hours(at(23, 45), window)
    assert in_quiet_hours(at(0, 0), window)
    assert in_quiet_hours(at(7, 59), window)
    assert in_quiet_hours(at(8, 0), window)
    assert not in_quiet_hours(at(8, 1), window)
    assert not in_quiet_hours(at(21, 59), window)
    assert not in_quiet_hours(at(12), window)


def test_ledger_counts_last_hour_and_prunes_on_read():
    now = at(12)
    ledger = SendLedger(
        entries=[
            now - timedelta(hours=3),
            now - timedelta(minutes=61),
            now - timedelta(minutes=60),
            now - timedelta(minutes=5),
            now,
        ]
    )
    assert len(ledger) == 5
    assert sends_in_last_hour(ledger, now) == 3
    # older entries were dropped during the read
    assert len(ledger) == 3


def test_ledger_window_slides():
    ledger = SendLedger()
    start = at(9)
    for i in range(4):
        ledger.record(start + timedelta(minutes=10 * i))
    assert ledger.sends_in_last_hour(start + timedelta(minutes=30)) == 4
    assert ledger.sends_in_last_hour(start + timedelta(minutes=75)) == 2
    assert ledger.sends_in_last_hour(start + timedelta(hours=3)) == 0


def test_ledger_keeps_order_for_late_records():
    ledger = SendLedger()
    now = at(10)
    ledger.record(now)
    ledger.record(now - timedelta(hours=2))
    assert ledger.sends_in_last_hour(now) == 1


def _request(priority=AlertPriority.HIGH, permission=PermissionStatus.granted, sends=0, now=None, **settings):
    return PolicyRequest(
        alert_id="a1",
        priority=priority,
        permission_status=permission,
        settings=NotificationSettings(**settings),
        now=now or at(12),
        sends_last_hour=sends,
    )


def test_critical_bypasses_every_gate():
    eng = NotificationPolicyEngine()
    res = eng.evaluate(
        _request(
            priority=AlertPriority.CRITICAL,
            permission=PermissionStatus.denied,
            sends=999,
            allow_notifications=False,
            allow_critical=False,
            max_per_hour=0,
            quiet_hours=QuietHours(enabled=True, start="00:00", end="23:59"),
        )
    )
    assert res.decision == PolicyDecision.ALLOW
    assert res.reason == "critical_bypass"


def test_gates_report_first_failure():
    eng = NotificationPolicyEngine()
    assert eng.evaluate(_request(permission=PermissionStatus.undetermined)).reason == "permission_not_granted"
    assert eng.evaluate(_request(allow_notifications=False)).reason == "notifications_disabled"
    assert eng.evaluate(_request(allow_high=False)).reason == "priority_disabled"
    assert eng.evaluate(_request(priority=AlertPriority.LOW)).reason == "priority_disabled"
    quiet = QuietHours(enabled=True, start="11:00", end="13:00")
    assert eng.evaluate(_request(quiet_hours=quiet)).reason == "quiet_hours"
    assert eng.evaluate(_request(sends=10, max_per_hour=10)).reason == "rate_limited"
    assert eng.evaluate(_request(sends=0, max_per_hour=0)).reason == "rate_limited"


def test_default_allow():
    res = NotificationPolicyEngine().evaluate(_request(priority=AlertPriority.MEDIUM, sends=9))
    assert res.allowed
    assert res.reason == "default_allow"


def test_decisions_are_logged(caplog):
    caplog.set_level("INFO", logger="alertcore.policy.engine")
    NotificationPolicyEngine().evaluate(_request(allow_high=False))
    assert any("policy_decision=" in r.getMessage() and "priority_disabled" in r.getMessage() for r in caplog.records)
