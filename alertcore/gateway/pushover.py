"""
Pushover delivery gateway.

Delivers notifications through the Pushover messages API. CRITICAL alerts
are sent with emergency priority so they repeat until acknowledged; their
receipts are tracked so they can be cancelled. Lower priorities are fire
and forget, so cancelling them is a no-op.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from ..notifications.models import AlertPriority, NotificationPayload
from .interfaces import GatewayError, NotificationGateway

logger = logging.getLogger(__name__)

PUSHOVER_API = "https://api.pushover.net/1"

_PRIORITY_MAP = {
    AlertPriority.LOW.value: -1,
    AlertPriority.MEDIUM.value: 0,
    AlertPriority.HIGH.value: 1,
    AlertPriority.CRITICAL.value: 2,
}

# Emergency retry/expire bounds (seconds) accepted by the API
EMERGENCY_RETRY = 60
EMERGENCY_EXPIRE = 3600


class PushoverNotificationGateway(NotificationGateway):
    def __init__(
        self,
        api_token: str,
        user_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = PUSHOVER_API,
        timeout: float = 10.0,
    ) -> None:
        if not api_token or not user_key:
            raise ValueError("PUSHOVER_API_TOKEN and PUSHOVER_USER_KEY are required")
        self._token = api_token
        self._user = user_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        # request id -> emergency receipt
        self._receipts: Dict[str, str] = {}
        self._badge = 0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, data: Dict[str, str]) -> Dict:
        try:
            r = await self._client.post(f"{self._base_url}{path}", data=data)
        except httpx.HTTPError as e:
            raise GatewayError(f"pushover request failed: {e}") from e
        if r.status_code != 200:
            raise GatewayError(f"pushover status={r.status_code} body={r.text[:256]}")
        try:
            body = r.json()
        except ValueError as e:
            raise GatewayError("pushover returned invalid JSON") from e
        if int(body.get("status", 0)) != 1:
            raise GatewayError(f"pushover rejected request: {body.get('errors')}")
        return body

    async def schedule(self, payload: NotificationPayload) -> str:
        priority = _PRIORITY_MAP.get(str(payload.data.get("priority")), 0)
        form = {
            "token": self._token,
            "user": self._user,
            "title": payload.title,
            "message": payload.body,
            "priority": str(priority),
        }
        if priority == 2:
            form["retry"] = str(EMERGENCY_RETRY)
            form["expire"] = str(EMERGENCY_EXPIRE)
        body = await self._post("/messages.json", form)
        request_id = str(body.get("request") or "")
        if not request_id:
            raise GatewayError("pushover response missing request id")
        if body.get("receipt"):
            self._receipts[request_id] = str(body["receipt"])
        logger.info(
            "pushover_sent request=%s priority=%s category=%s",
            request_id,
            priority,
            payload.category_id,
        )
        return request_id

    async def cancel(self, notification_id: str) -> None:
        receipt = self._receipts.get(notification_id)
        if receipt is None:
            logger.debug("pushover_cancel_noop request=%s", notification_id)
            return
        await self._post(f"/receipts/{receipt}/cancel.json", {"token": self._token})
        self._receipts.pop(notification_id, None)

    async def cancel_all(self) -> None:
        for request_id in list(self._receipts):
            await self.cancel(request_id)

    async def get_badge_count(self) -> int:
        return self._badge

    async def set_badge_count(self, count: int) -> None:
        if count < 0:
            raise GatewayError("badge count must be >= 0")
        self._badge = count
