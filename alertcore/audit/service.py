"""
Audit trail for notification decisions.

Every permission negotiation, policy decision, delivery and settings change
is emitted as a structured JSON log line and kept in a bounded in-memory
buffer for listing. Alert payloads are opaque, so anything that looks like a
credential or contact detail is redacted before it is written.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import logging

from .models import AuditCategory


class AuditLevel(str, Enum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    DETAILED = "detailed"


logger = logging.getLogger(__name__)

EVENT_BUFFER_LIMIT = 1000


class AuditService:
    SENSITIVE_KEYS = {
        "token",
        "api_token",
        "user_key",
        "password",
        "secret",
        "email",
        "phone",
        "phone_number",
        "address",
    }

    def __init__(self, buffer_limit: int = EVENT_BUFFER_LIMIT) -> None:
        self._buffer: List[Dict[str, Any]] = []
        self._buffer_limit = buffer_limit

    @classmethod
    def _sanitize(cls, data: Any) -> Any:
        """Recursively redact sensitive keys."""
        if isinstance(data, dict):
            out: Dict[str, Any] = {}
            for k, v in data.items():
                key_l = str(k).lower()
                if key_l in cls.SENSITIVE_KEYS or any(
                    t in key_l for t in ("token", "secret", "password")
                ):
                    out[k] = "[REDACTED]"
                else:
                    out[k] = cls._sanitize(v)
            return out
        if isinstance(data, (list, tuple)):
            return [cls._sanitize(x) for x in list(data)[:50]]  # cap length
        if isinstance(data, (str, int, float, bool)) or data is None:
            return data
        if isinstance(data, Enum):
            return data.value
        if isinstance(data, datetime):
            return data.isoformat()
        return str(data)

    async def log_event(
        self,
        event_type: str,
        category: Any,
        action: str,
        result: str,
        description: str,
        resource_id: Optional[str] = None,
        level: AuditLevel = AuditLevel.STANDARD,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        category_str = (
            category.value if isinstance(category, AuditCategory) else str(category)
        )
        payload = {
            "type": event_type,
            "category": category_str,
            "action": action,
            "result": result,
            "level": level.value,
            "resource_id": resource_id,
            "description": description,
            "details": self._sanitize(details or {}),
            "ts": datetime.now(tz=timezone.utc).isoformat(),
        }
        logger.info("audit_event=%s", json.dumps(payload, separators=(",", ":")))
        self._buffer.append(payload)
        if len(self._buffer) > self._buffer_limit:
            del self._buffer[: len(self._buffer) - self._buffer_limit]

    async def list_events(self, limit: int = 100, offset: int = 0) -> dict:
        items = list(self._buffer)
        items.reverse()
        slice_ = items[offset : offset + limit]
        return {
            "items": slice_,
            "total": len(self._buffer),
            "limit": limit,
            "offset": offset,
        }
