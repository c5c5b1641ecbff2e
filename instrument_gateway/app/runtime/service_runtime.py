from typing import Dict, Optional

from instrument_gateway.app.config import ConfigManager, Settings
from instrument_gateway.app.core.gateway_manager import GatewayManager, gateway_manager
from instrument_gateway.app.core.transport import TransportFactory
from instrument_gateway.app.models.device_config import DeviceConfig
from instrument_gateway.app.utilities.telemetry import logger, setup_logging


class ServiceRuntime:
    """Startup and shutdown sequence shared by the HTTP app and embedded use"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        devices: Optional[Dict[str, DeviceConfig]] = None,
        transport_factory: Optional[TransportFactory] = None,
        manager: Optional[GatewayManager] = None,
        configure_logging: bool = True
    ):
        self.settings = settings or Settings()
        self.config_manager = ConfigManager(self.settings)
        self.devices = devices
        self.transport_factory = transport_factory
        self.manager = manager or gateway_manager
        self.configure_logging = configure_logging

    async def start(self):
        if self.configure_logging:
            setup_logging(self.settings.log_level, self.settings.log_format, self.settings.log_file_path)

        # Configuration errors surface here, before any poller exists
        if self.devices is None:
            self.devices = self.config_manager.load_devices()

        logger.info("Starting device pollers...", extra={
            "component": "service_runtime",
            "device_count": len(self.devices)
        })
        await self.manager.initialize(
            list(self.devices.values()),
            timings=self.settings.poller_timings(),
            transport_factory=self.transport_factory
        )
        logger.info("All services initialized successfully", extra={"component": "service_runtime"})

    async def stop(self):
        logger.info("Shutting down services...", extra={"component": "service_runtime"})
        if self.manager.is_initialized:
            await self.manager.shutdown()
