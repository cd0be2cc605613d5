from fastapi import FastAPI
import logging
from datetime import datetime
import os
from typing import Optional

from .audit.service import AuditService
from .config.env import AlertcoreEnv
from .config.service import SettingsStore
from .gateway.interfaces import NotificationGateway, PermissionSnapshot
from .gateway.memory import (
    LoggingSettingsOpener,
    MemoryNotificationGateway,
    StaticPermissionGateway,
)
from .gateway.pushover import PushoverNotificationGateway
from .monitoring.metrics import metrics_router
from .notifications.scheduler import NotificationScheduler
from .notifications.service import NotificationService
from .permissions.manager import PermissionManager
from .permissions.platform import get_platform_profile
from .policy.engine import policy_engine
from .api.notifications import notifications_router, configure_notifications_api


class AddTraceIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "trace_id"):
            record.trace_id = "system"
        return True


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - trace_id=%(trace_id)s - %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(AddTraceIdFilter())
logger = logging.getLogger("alertcore")

app = FastAPI(
    title="Alertcore Notification Service",
    version="1.0.0",
)

audit_service = AuditService()
notifications_service: Optional[NotificationService] = None
notification_scheduler: Optional[NotificationScheduler] = None
_engine = None

app.include_router(metrics_router)
app.include_router(notifications_router)


def _build_gateway(env: AlertcoreEnv) -> NotificationGateway:
    if env.gateway == "pushover":
        if env.pushover_api_token and env.pushover_user_key:
            return PushoverNotificationGateway(env.pushover_api_token, env.pushover_user_key)
        logger.warning(
            "missing_config: PUSHOVER_API_TOKEN/PUSHOVER_USER_KEY not set, using dry-run gateway"
        )
    return MemoryNotificationGateway()


async def build_notification_service(env: AlertcoreEnv) -> NotificationService:
    """Compose the permission manager, settings store and notification service."""
    global _engine
    session_factory = None
    if env.database_url:
        from .database import async_session_factory, get_engine

        _engine = get_engine(env.database_url)
        session_factory = async_session_factory

    store = SettingsStore(
        db_session_factory=session_factory, encryption_key=env.settings_enc_key
    )
    if _engine is not None and env.db_init:
        await store.init_schema(_engine)

    # Without an OS bridge the process itself is the delivery target
    permission_gateway = StaticPermissionGateway(
        PermissionSnapshot(
            granted=True,
            can_ask_again=True,
            platform_detail={"allows_critical_alerts": True},
        )
    )
    permissions = PermissionManager(
        permission_gateway,
        get_platform_profile(env.platform),
        settings_opener=LoggingSettingsOpener(),
        audit_service=audit_service,
    )
    return NotificationService(
        permissions,
        _build_gateway(env),
        store,
        policy_engine=policy_engine,
        audit_service=audit_service,
        queue_interval=env.queue_interval,
        history_limit=env.history_limit,
    )


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "initialized": bool(notifications_service and notifications_service.initialized),
        "timestamp": datetime.utcnow().isoformat(),
        "version": "1.0.0",
    }


@app.on_event("startup")
async def startup_event():
    global notifications_service, notification_scheduler
    logger.info("Alertcore notification service starting")
    try:
        notifications_service = await build_notification_service(AlertcoreEnv.from_env())
        res = await notifications_service.initialize()
        if not res.success:
            logger.error("Notification service initialization failed: %s", res.error)
        notification_scheduler = NotificationScheduler(notifications_service)
        configure_notifications_api(
            svc=notifications_service, scheduler=notification_scheduler
        )
    except Exception as e:  # noqa: BLE001
        logger.exception("Failed to start notification service: %s", e)


@app.on_event("shutdown")
async def shutdown_event():
    global _engine, notification_scheduler
    logger.info("Alertcore notification service shutting down")
    if notification_scheduler is not None:
        notification_scheduler.cancel_all_scheduled_notifications()
        notification_scheduler = None
    if notifications_service is not None:
        await notifications_service.stop()
        gateway = notifications_service.gateway
        if isinstance(gateway, PushoverNotificationGateway):
            await gateway.aclose()
    configure_notifications_api(svc=None)
    if _engine is not None:
        from .database import dispose_engine

        await dispose_engine()
        _engine = None


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
