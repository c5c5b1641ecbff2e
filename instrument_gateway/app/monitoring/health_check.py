from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
import time

from instrument_gateway.app.core.gateway_manager import GatewayManager, gateway_manager
from instrument_gateway.app.dependencies import get_gateway_manager
from instrument_gateway.app.schemas.health import (
    DeviceHealthResponse,
    LivenessResponse,
    SystemHealthResponse
)
from instrument_gateway.app.utilities.converters import (
    convert_device_status_to_response,
    convert_system_health_to_response
)
from instrument_gateway.app.utilities.telemetry import logger

router = APIRouter(tags=["health"])

PROCESS_START_TIME = time.time()


@router.get("/health", response_model=SystemHealthResponse)
async def health_check(manager: GatewayManager = Depends(get_gateway_manager)):
    """
    Overall gateway health.

    Healthy when every device is connected with no outstanding failures,
    degraded when only some are, unhealthy when none are. Unhealthy is
    reported with 503 so load balancers can act on it; the gateway itself
    keeps retrying every device regardless.
    """
    start_time = time.time()
    health = manager.get_health_status()
    response = convert_system_health_to_response(health)

    status_code = status.HTTP_200_OK
    if response.overall_status == "unhealthy":
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    logger.debug("Health check completed", extra={
        "component": "api",
        "endpoint": "health_check",
        "overall_status": response.overall_status,
        "duration_ms": int((time.time() - start_time) * 1000)
    })

    return JSONResponse(content=response.model_dump(), status_code=status_code)


@router.get("/health/devices/{device_id}", response_model=DeviceHealthResponse)
async def device_health_check(device_id: str, manager: GatewayManager = Depends(get_gateway_manager)) -> DeviceHealthResponse:
    """Status and metrics of a single device poller"""
    return convert_device_status_to_response(manager.get_device_status(device_id))


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check() -> LivenessResponse:
    """Liveness probe; answers as long as the process serves requests"""
    return LivenessResponse(
        status="alive",
        alive=True,
        uptime_seconds=time.time() - PROCESS_START_TIME,
        timestamp=time.time()
    )


@router.get("/health/ready")
async def readiness_check():
    """Readiness probe: 200 once all pollers have been started"""
    ready = gateway_manager.is_initialized
    return JSONResponse(
        content={"status": "ready" if ready else "not_ready", "ready": ready, "timestamp": time.time()},
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE
    )
