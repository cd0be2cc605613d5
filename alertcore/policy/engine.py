"""
Notification policy engine.

Decides whether an alert may be surfaced as a notification right now:
- CRITICAL alerts always pass
- Everything else must clear permission, user settings, quiet hours
  and the hourly rate limit
- Every decision is written to the log as a compact JSON line
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import json
import logging

from ..notifications.models import AlertPriority, NotificationSettings, PermissionStatus
from .rules import in_quiet_hours

logger = logging.getLogger(__name__)


class PolicyDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass
class PolicyRequest:
    """Everything a decision depends on, captured at one point in time."""

    alert_id: str
    priority: AlertPriority
    permission_status: PermissionStatus
    settings: NotificationSettings
    now: datetime
    sends_last_hour: int


@dataclass
class PolicyResult:
    decision: PolicyDecision
    reason: str

    @property
    def allowed(self) -> bool:
        return self.decision == PolicyDecision.ALLOW


class NotificationPolicyEngine:
    def evaluate(self, request: PolicyRequest) -> PolicyResult:
        """Evaluate the gates in order and return the first failure.

        Rules (in priority order):
        1. CRITICAL bypass
        2. OS permission granted
        3. Master switch (allow_notifications)
        4. Priority-specific switch
        5. Quiet hours
        6. Hourly rate limit
        """
        settings = request.settings

        if request.priority == AlertPriority.CRITICAL:
            return self._decide(request, PolicyDecision.ALLOW, "critical_bypass")

        if request.permission_status != PermissionStatus.granted:
            return self._decide(request, PolicyDecision.DENY, "permission_not_granted")

        if not settings.allow_notifications:
            return self._decide(request, PolicyDecision.DENY, "notifications_disabled")

        if not settings.allows(request.priority):
            return self._decide(request, PolicyDecision.DENY, "priority_disabled")

        if in_quiet_hours(request.now, settings.quiet_hours):
            return self._decide(request, PolicyDecision.DENY, "quiet_hours")

        if request.sends_last_hour >= settings.max_per_hour:
            return self._decide(request, PolicyDecision.DENY, "rate_limited")

        return self._decide(request, PolicyDecision.ALLOW, "default_allow")

    def _decide(
        self, request: PolicyRequest, decision: PolicyDecision, reason: str
    ) -> PolicyResult:
        self.audit(request, decision.value, reason)
        return PolicyResult(decision, reason)

    def audit(self, request: PolicyRequest, decision: str, reason: str) -> None:
        payload = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "alert_id": request.alert_id,
            "priority": request.priority.value,
            "permission": request.permission_status.value,
            "sends_last_hour": request.sends_last_hour,
            "decision": decision,
            "reason": reason,
        }
        logger.info("policy_decision=%s", json.dumps(payload, separators=(",", ":")))


# Module-level default instance
policy_engine = NotificationPolicyEngine()
