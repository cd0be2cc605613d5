import pytest
from pydantic import ValidationError

from alertcore.notifications.models import (
    Alert,
    AlertPriority,
    NotificationSettings,
    QuietHours,
    merge_settings,
)


def test_default_settings():
    s = NotificationSettings()
    assert s.version == 1
    assert s.allow_notifications is True
    assert s.allow_critical and s.allow_high and s.allow_medium
    assert s.allow_low is False
    assert s.quiet_hours.enabled is False
    assert (s.quiet_hours.start, s.quiet_hours.end) == ("22:00", "08:00")
    assert s.max_per_hour == 10
    assert s.custom_sounds is True


def test_merge_is_pure_and_partial():
    current = NotificationSettings()
    merged = merge_settings(current, {"allow_high": False, "max_per_hour": 5})
    assert merged.allow_high is False
    assert merged.max_per_hour == 5
    assert merged.allow_medium is True
    # input untouched
    assert current.allow_high is True
    assert current.max_per_hour == 10


def test_merge_quiet_hours_field_by_field():
    merged = merge_settings(NotificationSettings(), {"quiet_hours": {"enabled": True}})
    assert merged.quiet_hours == QuietHours(enabled=True, start="22:00", end="08:00")

    merged = merge_settings(merged, {"quiet_hours": QuietHours(enabled=True, start="01:00", end="02:00")})
    assert merged.quiet_hours.start == "01:00"


@pytest.mark.parametrize(
    "patch",
    [
        {"max_per_hour": -1},
        {"quiet_hours": {"start": "25:00"}},
        {"quiet_hours": {"end": "7am"}},
        {"unknown_flag": True},
    ],
)
def test_merge_rejects_invalid_patches(patch):
    with pytest.raises(ValidationError):
        merge_settings(NotificationSettings(), patch)


def test_allows_maps_priority_flags():
    s = NotificationSettings(allow_critical=False, allow_high=True, allow_medium=False, allow_low=True)
    assert s.allows(AlertPriority.CRITICAL) is False
    assert s.allows(AlertPriority.HIGH) is True
    assert s.allows(AlertPriority.MEDIUM) is False
    assert s.allows(AlertPriority.LOW) is True


def test_priority_total_order():
    ordered = sorted([AlertPriority.HIGH, AlertPriority.LOW, AlertPriority.CRITICAL, AlertPriority.MEDIUM])
    assert ordered == [AlertPriority.LOW, AlertPriority.MEDIUM, AlertPriority.HIGH, AlertPriority.CRITICAL]
    assert AlertPriority.CRITICAL > AlertPriority.HIGH
    assert AlertPriority.LOW <= AlertPriority.LOW


def test_alert_defaults_and_coercion():
    alert = Alert(id="x", type="ORDER", priority="HIGH", title="t", message="m")
    assert alert.priority == AlertPriority.HIGH
    assert alert.notification_sent is False
    assert alert.notification_scheduled_at is None
    assert alert.should_notify is True
    assert alert.data == {}
