from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..notifications.models import Alert, ErrorKind
from ..notifications.scheduler import NotificationScheduler, OperatingScenario
from ..notifications.service import NotificationService


notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])

_svc: Optional[NotificationService] = None
_scheduler: Optional[NotificationScheduler] = None


class BadgeRequest(BaseModel):
    count: int = Field(ge=0)


class ResponseRequest(BaseModel):
    notification_id: str
    action_identifier: str
    user_text: Optional[str] = None


class BatchRequest(BaseModel):
    alerts: List[Alert]
    scenario: Optional[OperatingScenario] = None


def configure_notifications_api(
    *,
    svc: Optional[NotificationService],
    scheduler: Optional[NotificationScheduler] = None,
) -> None:
    global _svc, _scheduler
    _svc = svc
    _scheduler = scheduler


def _resolve_svc() -> NotificationService:
    if _svc is None:
        raise HTTPException(status_code=503, detail="Notifications service unavailable")
    return _svc


def _resolve_scheduler() -> NotificationScheduler:
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Notification scheduler unavailable")
    return _scheduler


@notifications_router.get("/settings")
async def get_settings():
    return _resolve_svc().get_settings().model_dump()


@notifications_router.put("/settings")
async def update_settings(payload: Dict[str, Any]):
    res = await _resolve_svc().update_settings(payload)
    if not res.success:
        status = 422 if res.error_kind == ErrorKind.invalid_settings else 500
        raise HTTPException(status_code=status, detail=res.error)
    return res.model_dump(mode="json")


@notifications_router.post("/schedule")
async def schedule_notification(alert: Alert):
    res = await _resolve_svc().schedule_notification(alert)
    return {"result": res.model_dump(mode="json"), "alert": alert.model_dump(mode="json")}


@notifications_router.post("/queue", status_code=202)
async def queue_notification(alert: Alert):
    svc = _resolve_svc()
    svc.queue_notification(alert)
    return {"queued": True, "alert_id": alert.id, "queue_size": svc.queue_size}


@notifications_router.post("/batch", status_code=202)
async def schedule_batch(req: BatchRequest):
    scheduler = _resolve_scheduler()
    alerts = req.alerts
    if req.scenario is not None:
        alerts = scheduler.schedule_for_context(alerts, req.scenario)
    res = await scheduler.schedule_notifications(alerts)
    return {
        "result": res.model_dump(mode="json"),
        "alert_ids": [a.id for a in alerts],
        "stats": scheduler.get_scheduling_stats(),
    }


@notifications_router.get("/scheduled")
async def scheduling_stats():
    return _resolve_scheduler().get_scheduling_stats()


@notifications_router.delete("/scheduled")
async def cancel_scheduled():
    _resolve_scheduler().cancel_all_scheduled_notifications()
    return {"ok": True}


@notifications_router.delete("/scheduled/{alert_id}")
async def cancel_scheduled_alert(alert_id: str):
    if not _resolve_scheduler().cancel_scheduled_notification(alert_id):
        raise HTTPException(status_code=404, detail=f"No pending delivery for {alert_id}")
    return {"ok": True}


@notifications_router.get("/history")
async def get_history():
    items = _resolve_svc().get_notification_history()
    return {"items": [i.model_dump(mode="json") for i in items]}


@notifications_router.delete("/history")
async def clear_history():
    _resolve_svc().clear_notification_history()
    return {"ok": True}


@notifications_router.post("/responses")
async def record_response(req: ResponseRequest):
    res = await _resolve_svc().handle_notification_response(
        req.notification_id, req.action_identifier, req.user_text
    )
    if not res.success:
        raise HTTPException(status_code=404, detail=res.error)
    return res.model_dump(mode="json")


@notifications_router.get("/badge")
async def get_badge():
    return (await _resolve_svc().get_badge_count()).model_dump(mode="json")


@notifications_router.put("/badge")
async def set_badge(req: BadgeRequest):
    return (await _resolve_svc().set_badge_count(req.count)).model_dump(mode="json")


@notifications_router.get("/permissions")
async def get_permissions():
    pm = _resolve_svc().permission_manager
    status = await pm.check_permission_status()
    return {
        "status": status.value,
        "platform": pm.profile.platform.value,
        "critical_alerts_allowed": await pm.are_critical_alerts_allowed(),
        "education": pm.show_permission_education(),
    }


@notifications_router.post("/permissions/request")
async def request_permissions():
    pm = _resolve_svc().permission_manager
    res = await pm.request_notification_permissions()
    if not res.success:
        fallback = await pm.handle_permission_denial()
        return {"result": res.model_dump(mode="json"), "fallback": fallback.data}
    return {"result": res.model_dump(mode="json")}


@notifications_router.delete("")
async def cancel_all():
    return (await _resolve_svc().cancel_all_notifications()).model_dump(mode="json")


@notifications_router.delete("/{notification_id}")
async def cancel_notification(notification_id: str):
    return (await _resolve_svc().cancel_notification(notification_id)).model_dump(mode="json")
