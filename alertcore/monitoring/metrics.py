from prometheus_client import CollectorRegistry, Histogram, Gauge, Counter
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter
from fastapi.responses import Response

registry = CollectorRegistry()

notifications_scheduled_total = Counter(
    "alertcore_notifications_scheduled_total",
    "Total notifications handed to the delivery gateway",
    ["priority"],
    registry=registry,
)

notifications_filtered_total = Counter(
    "alertcore_notifications_filtered_total",
    "Total alerts withheld by notification policy",
    ["reason"],
    registry=registry,
)

notifications_failed_total = Counter(
    "alertcore_notifications_failed_total",
    "Total delivery gateway failures",
    registry=registry,
)

notifications_queue_depth = Gauge(
    "alertcore_notifications_queue_depth",
    "Alerts waiting in the notification queue",
    registry=registry,
)

notifications_schedule_latency = Histogram(
    "alertcore_notifications_schedule_latency_seconds",
    "Latency for deciding and delivering a single alert",
    registry=registry,
)

metrics_router = APIRouter()


@metrics_router.get("/metrics")
async def get_metrics():
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
