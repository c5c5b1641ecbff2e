import asyncio
import threading
from typing import Optional

from instrument_gateway.app.core.value_cache import CachedValue
from instrument_gateway.app.models.device_config import ItemKind
from instrument_gateway.app.runtime.service_runtime import ServiceRuntime
from instrument_gateway.app.utilities.telemetry import logger


class ServiceManager:
    """Runs a ServiceRuntime on a background event loop and offers sync access to it"""
    _instance: Optional['ServiceManager'] = None
    _loop: Optional[asyncio.AbstractEventLoop] = None
    _service_thread: Optional[threading.Thread] = None
    _runtime: Optional[ServiceRuntime] = None
    _ready_event: Optional[threading.Event] = None
    _start_error: Optional[BaseException] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def is_running(self) -> bool:
        return bool(self._service_thread and self._service_thread.is_alive() and self._ready_event
                    and self._ready_event.is_set() and self._start_error is None)

    def start_background_service(self, runtime: ServiceRuntime, max_wait_time: float = 30.0):
        """Start the service runtime in a background thread"""
        if self._service_thread and self._service_thread.is_alive():
            raise RuntimeError("Background service is already running")

        self._runtime = runtime
        self._ready_event = threading.Event()
        self._start_error = None

        def run_service():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            started = False

            try:
                loop.run_until_complete(runtime.start())
                started = True
                self._ready_event.set()
                logger.info("Background service started", extra={"component": "service_manager"})
                loop.run_forever()
            except Exception as e:
                self._start_error = e
                logger.error("Background service failed", extra={
                    "component": "service_manager",
                    "error": str(e)
                }, exc_info=True)
                self._ready_event.set()
            finally:
                if started:
                    loop.run_until_complete(runtime.stop())
                loop.close()
                logger.info("Background service shut down", extra={"component": "service_manager"})

        self._service_thread = threading.Thread(target=run_service, name="gateway-service", daemon=True)
        self._service_thread.start()

        if not self._ready_event.wait(timeout=max_wait_time):
            raise TimeoutError(f"Background service failed to start within {max_wait_time} seconds")
        if self._start_error is not None:
            error = self._start_error
            self._service_thread.join(timeout=10.0)
            self._reset()
            raise error

    def stop_background_service(self):
        """Stop the background service"""
        if self._loop and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)

        if self._service_thread:
            self._service_thread.join(timeout=30.0)

        self._reset()

    def read_item(self, device_id: str, kind: ItemKind, item_id: str) -> Optional[CachedValue]:
        """Cached value of an item; the cache is thread-safe so no loop hop is needed"""
        self._require_running()
        return self._runtime.manager.read_item(device_id, kind, item_id)

    def set_switch(self, device_id: str, item_id: str, state: bool, timeout: float = 30.0) -> None:
        """Synchronous wrapper for switch commands"""
        self._require_running()
        future = asyncio.run_coroutine_threadsafe(
            self._runtime.manager.set_switch(device_id, item_id, state),
            self._loop
        )
        try:
            future.result(timeout=timeout)
        except TimeoutError:
            future.cancel()
            raise TimeoutError(f"Switch command timed out after {timeout} seconds")

    def _require_running(self):
        if not self.is_running or self._loop is None:
            raise RuntimeError("Background service not started. Call start_background_service() first.")

    def _reset(self):
        self._loop = None
        self._service_thread = None
        self._runtime = None
        self._ready_event = None
        self._start_error = None


# Global instance
service_manager = ServiceManager()
