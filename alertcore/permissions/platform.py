"""
Platform capability profiles.

The two supported platform families differ in which capabilities a
permission prompt asks for and in whether critical alerts need a separate
entitlement. A profile is picked once at start-up and handed to the
permission manager.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class Platform(str, Enum):
    ios = "ios"
    android = "android"


class Capability(str, Enum):
    ALERT = "alert"
    BADGE = "badge"
    SOUND = "sound"
    CRITICAL_ALERTS = "critical_alerts"


@dataclass(frozen=True)
class PlatformProfile:
    platform: Platform
    capabilities: Tuple[Capability, ...]
    separate_critical_entitlement: bool
    education_message: str


IOS_PROFILE = PlatformProfile(
    platform=Platform.ios,
    capabilities=(
        Capability.ALERT,
        Capability.BADGE,
        Capability.SOUND,
        Capability.CRITICAL_ALERTS,
    ),
    separate_critical_entitlement=True,
    education_message=(
        "Get notified about critical operational alerts even when the app is "
        "closed. We'll only send important updates."
    ),
)

ANDROID_PROFILE = PlatformProfile(
    platform=Platform.android,
    capabilities=(Capability.ALERT, Capability.BADGE, Capability.SOUND),
    separate_critical_entitlement=False,
    education_message=(
        "Allow notifications to stay informed about urgent issues that need "
        "your immediate attention."
    ),
)

_PROFILES = {
    Platform.ios: IOS_PROFILE,
    Platform.android: ANDROID_PROFILE,
}


def get_platform_profile(platform: Union[Platform, str]) -> PlatformProfile:
    if isinstance(platform, Platform):
        return _PROFILES[platform]
    try:
        return _PROFILES[Platform(str(platform).strip().lower())]
    except ValueError:
        raise ValueError(f"unsupported platform: {platform!r}") from None
