from fastapi import FastAPI
from contextlib import asynccontextmanager
from typing import Dict, Optional

from instrument_gateway.app.api.v1.router import API_VERSION, combined_router
from instrument_gateway.app.config import Settings
from instrument_gateway.app.core.exceptions import setup_exception_handlers
from instrument_gateway.app.core.transport import TransportFactory
from instrument_gateway.app.models.device_config import DeviceConfig
from instrument_gateway.app.runtime.service_runtime import ServiceRuntime
from instrument_gateway.app.utilities.telemetry import logger


def create_app(
    settings: Optional[Settings] = None,
    devices: Optional[Dict[str, DeviceConfig]] = None,
    transport_factory: Optional[TransportFactory] = None,
    configure_logging: bool = True
) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or Settings()
    runtime = ServiceRuntime(
        settings,
        devices=devices,
        transport_factory=transport_factory,
        configure_logging=configure_logging
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown"""
        try:
            await runtime.start()
        except Exception as e:
            logger.error(f"Failed to initialize application: {str(e)}", extra={"component": "app"})
            raise

        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(
        title=settings.api_title,
        version=API_VERSION,
        description=settings.api_description,
        lifespan=lifespan
    )
    app.state.runtime = runtime

    setup_exception_handlers(app)
    app.include_router(combined_router)

    return app
