from fastapi import APIRouter, Depends
import time

from instrument_gateway.app.core.gateway_manager import GatewayManager
from instrument_gateway.app.dependencies import get_gateway_manager
from instrument_gateway.app.schemas.common import RootResponse, StatusResponse
from instrument_gateway.app.api.v1.items import router as items_router
from instrument_gateway.app.monitoring.health_check import router as health_router

API_VERSION = "1.0.0"

# Create main API router
api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health_router)


@api_router.get("", response_model=RootResponse)
async def v1_root() -> RootResponse:
    """Root endpoint with API information"""
    return RootResponse(message="Instrument Gateway API v1 is running", version=API_VERSION)


# Application-level routes; item paths keep the /{device}/{kind}/{item} layout clients use
root_router = APIRouter()


@root_router.get("/", response_model=RootResponse)
async def root() -> RootResponse:
    """Root endpoint with API information"""
    return RootResponse(message="Instrument Gateway is running", version=API_VERSION)


@root_router.get("/status", response_model=StatusResponse)
async def status_endpoint(manager: GatewayManager = Depends(get_gateway_manager)) -> StatusResponse:
    """Every cached value, for monitoring and debugging"""
    return StatusResponse(
        service_status="running",
        version=API_VERSION,
        device_count=len(manager.pollers),
        values=manager.cache.snapshot(),
        timestamp=time.time()
    )


root_router.include_router(items_router)


# Export combined router; /api/v1 must match before the three-segment item routes
combined_router = APIRouter()
combined_router.include_router(api_router)
combined_router.include_router(root_router)
