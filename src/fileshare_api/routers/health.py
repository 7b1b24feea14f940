import logging
import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from fileshare_api.database.connection import get_database
from fileshare_api.dependencies import get_app_settings
from fileshare_api.errors import AppError
from fileshare_api.metrics import get_metrics_store
from fileshare_api.responses import NO_CACHE_HEADERS, json_response
from fileshare_api.schemas import ComponentHealth, HealthCheckResponse, HealthStatus
from fileshare_api.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()

STARTED_AT = time.monotonic()


def check_database_health(settings: Settings) -> ComponentHealth:
    start = time.perf_counter()
    try:
        healthy = get_database(settings).is_healthy()
        message = "Database connection successful" if healthy else "Database query failed"
    except AppError as err:
        healthy = False
        message = f"Database connection failed: {err.message}"

    return ComponentHealth(
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        message=message,
        response_time=round((time.perf_counter() - start) * 1000, 2),
    )


def overall_status(components: dict) -> HealthStatus:
    statuses = {component.status for component in components.values()}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


@router.get("/health", responses={status.HTTP_200_OK: {"model": HealthCheckResponse}})
async def health_check(settings: Settings = Depends(get_app_settings)):
    """
    Health check with the state of each backing component.

    Responds 200 when healthy or degraded and 503 when any component is unhealthy.
    """
    components = {"database": check_database_health(settings)}
    health = HealthCheckResponse(
        status=overall_status(components),
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - STARTED_AT, 3),
        version=settings.app_version,
        components=components,
    )

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if health.status is HealthStatus.UNHEALTHY else status.HTTP_200_OK
    logger.info("Health check completed: %s", health.status.value)
    return json_response(health, status_code=status_code, headers=NO_CACHE_HEADERS)


@router.get("/ready")
async def readiness_check():
    return json_response(
        {"ready": True, "timestamp": datetime.now(timezone.utc)},
        headers=NO_CACHE_HEADERS,
    )


@router.get("/metrics")
async def get_metrics():
    """Summaries of the request metrics this process has collected."""
    cpu = os.times()
    return json_response(
        {
            "timestamp": datetime.now(timezone.utc),
            "system": {
                "uptime": round(time.monotonic() - STARTED_AT, 3),
                "cpu": {"user": cpu.user, "system": cpu.system},
                "pid": os.getpid(),
            },
            "metrics": get_metrics_store().get_summary(),
        },
        headers=NO_CACHE_HEADERS,
    )
