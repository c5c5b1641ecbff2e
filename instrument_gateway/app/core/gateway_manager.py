from datetime import datetime
from typing import Any, Dict, List, Optional
import asyncio

from instrument_gateway.app.core.device_poller import DevicePoller
from instrument_gateway.app.core.gateway_exceptions import ItemNotFoundError
from instrument_gateway.app.core.transport import TransportFactory
from instrument_gateway.app.core.value_cache import CachedValue, ValueCache
from instrument_gateway.app.models.device_config import DeviceConfig, ItemKey, ItemKind
from instrument_gateway.app.models.poller_state import PollerState, PollerTimings
from instrument_gateway.app.utilities.telemetry import logger


class GatewayManager:
    """Global manager for all device pollers and the shared value cache"""

    def __init__(self):
        self.pollers: Dict[str, DevicePoller] = {}
        self.devices: Dict[str, DeviceConfig] = {}
        self.cache: Optional[ValueCache] = None
        self.is_initialized = False
        self.started_at: Optional[datetime] = None

    async def initialize(
        self,
        devices: List[DeviceConfig],
        timings: Optional[PollerTimings] = None,
        transport_factory: Optional[TransportFactory] = None
    ):
        """Build the cache and start one poller per device"""
        if self.is_initialized:
            raise RuntimeError("Gateway manager is already initialized")

        logger.info("Initializing gateway manager", extra={
            "component": "gateway_manager",
            "device_count": len(devices)
        })

        self.devices = {device.device_id: device for device in devices}
        self.cache = ValueCache.from_devices(devices)
        self.pollers = {
            device.device_id: DevicePoller(
                device,
                self.cache.writer(device.device_id),
                timings=timings,
                transport_factory=transport_factory
            )
            for device in devices
        }

        results = await asyncio.gather(
            *(poller.start() for poller in self.pollers.values()),
            return_exceptions=True
        )

        started_count = 0
        for device_id, result in zip(self.pollers.keys(), results):
            if isinstance(result, Exception):
                logger.error("Device poller failed to start", extra={
                    "component": "gateway_manager",
                    "device_id": device_id,
                    "error": str(result)
                })
            else:
                started_count += 1

        self.is_initialized = True
        self.started_at = datetime.now()

        logger.info("Gateway manager initialization complete", extra={
            "component": "gateway_manager",
            "total_devices": len(devices),
            "started_devices": started_count,
            "failed_devices": len(devices) - started_count,
            "cached_items": len(self.cache)
        })

    async def shutdown(self):
        """Stop all pollers concurrently"""
        logger.info("Shutting down gateway manager", extra={
            "component": "gateway_manager",
            "device_count": len(self.pollers)
        })

        results = await asyncio.gather(
            *(poller.stop() for poller in self.pollers.values()),
            return_exceptions=True
        )

        for device_id, result in zip(self.pollers.keys(), results):
            if isinstance(result, Exception):
                logger.warning("Device poller shutdown error", extra={
                    "component": "gateway_manager",
                    "device_id": device_id,
                    "error": str(result)
                })

        self.pollers = {}
        self.devices = {}
        self.cache = None
        self.is_initialized = False
        self.started_at = None
        logger.info("Gateway manager shutdown complete", extra={
            "component": "gateway_manager"
        })

    def read_item(self, device_id: str, kind: ItemKind, item_id: str) -> Optional[CachedValue]:
        """Latest cached value of an item; never touches the device"""
        self._require_initialized()
        return self.cache.get(ItemKey(device_id, kind, item_id))

    async def set_switch(self, device_id: str, item_id: str, state: bool) -> None:
        poller = self._get_poller(device_id)
        try:
            await poller.set_switch(item_id, state)
        except Exception as e:
            logger.error("Switch command failed", extra={
                "component": "gateway_manager",
                "device_id": device_id,
                "item_id": item_id,
                "state": state,
                "error": str(e),
                "error_type": type(e).__name__
            })
            raise

    def get_device_status(self, device_id: Optional[str] = None) -> Dict[str, Any]:
        if device_id:
            return self._get_poller(device_id).status()

        return {
            device_id: poller.status()
            for device_id, poller in self.pollers.items()
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Overall health: healthy, degraded or unhealthy"""
        total_devices = len(self.pollers)
        healthy_devices = sum(1 for poller in self.pollers.values() if self._is_poller_healthy(poller))

        result = {
            'status': self._determine_overall_health(healthy_devices, total_devices),
            'total_devices': total_devices,
            'healthy_devices': healthy_devices,
            'unhealthy_devices': total_devices - healthy_devices,
            'uptime_seconds': (datetime.now() - self.started_at).total_seconds() if self.started_at else 0.0,
            'timestamp': datetime.now().isoformat(),
            'devices': self.get_device_status()
        }

        logger.debug("Health status retrieved", extra={
            "component": "gateway_manager",
            "overall_status": result['status'],
            "healthy_count": healthy_devices,
            "total_count": total_devices
        })

        return result

    # Private helper methods

    def _require_initialized(self):
        if not self.is_initialized or self.cache is None:
            raise RuntimeError("Gateway manager is not initialized")

    def _get_poller(self, device_id: str) -> DevicePoller:
        self._require_initialized()
        poller = self.pollers.get(device_id)
        if poller is None:
            raise ItemNotFoundError(f"Unknown device '{device_id}'", device_id=device_id)
        return poller

    @staticmethod
    def _is_poller_healthy(poller: DevicePoller) -> bool:
        return poller.state == PollerState.CONNECTED and poller.tracker.failure_count == 0

    @staticmethod
    def _determine_overall_health(healthy_devices: int, total_devices: int) -> str:
        if total_devices and healthy_devices == total_devices:
            return 'healthy'
        elif healthy_devices > 0:
            return 'degraded'
        else:
            return 'unhealthy'


# Global gateway manager instance
gateway_manager = GatewayManager()


async def initialize_gateway(devices: List[DeviceConfig], timings: Optional[PollerTimings] = None,
                             transport_factory: Optional[TransportFactory] = None):
    """Initialize the global gateway manager"""
    await gateway_manager.initialize(devices, timings, transport_factory)


async def shutdown_gateway():
    """Shutdown the global gateway manager"""
    await gateway_manager.shutdown()


def get_device_status(device_id: Optional[str] = None) -> Dict[str, Any]:
    return gateway_manager.get_device_status(device_id)


def get_health_status() -> Dict[str, Any]:
    return gateway_manager.get_health_status()
