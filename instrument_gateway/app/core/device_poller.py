from datetime import datetime
import time
from typing import Any, Callable, Dict, Optional
import asyncio
from concurrent.futures import ThreadPoolExecutor

from instrument_gateway.app.core.failure_tracker import FailureTracker
from instrument_gateway.app.core.gateway_exceptions import (
    GatewayError, ItemNotFoundError, TransportConnectionError
)
from instrument_gateway.app.core.item_codecs import read_analog, read_switch, read_temperature, write_switch
from instrument_gateway.app.core.transport import SerialTransport, Transport, TransportFactory
from instrument_gateway.app.core.value_cache import CacheWriter
from instrument_gateway.app.models.device_config import DeviceConfig, Item, ItemKind
from instrument_gateway.app.models.poller_state import PollerMetrics, PollerState, PollerTimings
from instrument_gateway.app.utilities.telemetry import logger


ITEM_READERS: Dict[ItemKind, Callable[[Transport, Item], Any]] = {
    ItemKind.ANALOG: read_analog,
    ItemKind.TEMPERATURE: read_temperature,
    ItemKind.SWITCH: read_switch,
}

# Extra time stop() allows beyond one read timeout for an in-flight exchange
STOP_GRACE_SECONDS = 1.0


class DevicePoller:
    """
    Polls every item of one device for the lifetime of the service.

    All traffic on the device's transport, from the polling loop and from
    switch commands alike, runs inside ``exchange_lock`` for one complete
    exchange. Blocking serial I/O runs on the device's own worker thread so devices
    progress independently of each other and of the event loop.
    """

    def __init__(
        self,
        device: DeviceConfig,
        writer: CacheWriter,
        timings: Optional[PollerTimings] = None,
        transport_factory: Optional[TransportFactory] = None
    ):
        self.device = device
        self.writer = writer
        self.timings = timings or PollerTimings()
        self._transport_factory = transport_factory or SerialTransport.from_device
        self.transport: Optional[Transport] = None
        self.tracker = FailureTracker(self.timings.max_errors, device.device_id)
        self.metrics = PollerMetrics()
        self.state = PollerState.DISCONNECTED
        self.exchange_lock = asyncio.Lock()
        # Dedicated I/O thread per device
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"poller-{device.device_id}")
        self.poll_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        logger.debug("Device poller created", extra={
            "component": "device_poller",
            "device_id": device.device_id,
            "devfile": device.devfile,
            "baud": device.baud,
            "item_count": device.item_count
        })

    @property
    def device_id(self) -> str:
        return self.device.device_id

    async def start(self):
        """Open the transport and launch the polling task"""
        logger.info("Starting device poller", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "devfile": self.device.devfile
        })

        self.transport = self._transport_factory(self.device)
        self.metrics.started_at = datetime.now()
        self._stop_event.clear()

        # Open failures are retried by the fault path
        await self._open_transport(reopen=False)

        if self.device.item_count == 0:
            logger.warning("Device has no items, polling not started", extra={
                "component": "device_poller",
                "device_id": self.device_id
            })
            return

        self.poll_task = asyncio.create_task(self._poll_loop(), name=f"poller:{self.device_id}")
        self.poll_task.add_done_callback(self._on_poll_task_done)

    async def stop(self):
        """Stop polling and close the transport. Safe to call more than once."""
        if self.state == PollerState.STOPPED:
            return

        logger.info("Stopping device poller", extra={
            "component": "device_poller",
            "device_id": self.device_id
        })

        self._stop_event.set()
        if self.poll_task:
            grace = self.device.read_timeout_s * 2 + STOP_GRACE_SECONDS
            try:
                await asyncio.wait_for(self.poll_task, timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Poll task did not finish in time, cancelled", extra={
                    "component": "device_poller",
                    "device_id": self.device_id,
                    "grace_seconds": grace
                })
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Poll task had already failed, closing anyway", extra={
                    "component": "device_poller",
                    "device_id": self.device_id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })
            self.poll_task = None

        try:
            if self.transport is not None:
                async with self.exchange_lock:
                    await self._run_blocking(self.transport.close)
        finally:
            self.state = PollerState.STOPPED
            self._executor.shutdown(wait=False, cancel_futures=True)

        logger.debug("Device poller stopped", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "cycles": self.metrics.cycles
        })

    async def set_switch(self, item_id: str, state: bool) -> None:
        """Drive a switch. Errors go to the caller; the cache is left to the next poll."""
        item = self.device.get_item(ItemKind.SWITCH, item_id)
        if item is None:
            raise ItemNotFoundError(
                f"No switch '{item_id}' on device '{self.device_id}'",
                device_id=self.device_id,
                item_id=item_id
            )
        if self.transport is None or self.state == PollerState.STOPPED:
            raise TransportConnectionError(
                f"Device '{self.device_id}' is not running",
                device_id=self.device_id,
                item_id=item_id
            )

        async with self.exchange_lock:
            await self._run_blocking(write_switch, self.transport, item, state)

        logger.info("Switch command acknowledged", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "item_id": item_id,
            "state": state
        })

    def status(self) -> Dict[str, Any]:
        metrics = self.metrics
        return {
            'device_id': self.device_id,
            'devfile': self.device.devfile,
            'baud': self.device.baud,
            'state': self.state.value,
            'transport_open': bool(self.transport is not None and self.transport.is_open),
            'failure_count': self.tracker.failure_count,
            'item_count': self.device.item_count,
            'metrics': {
                'cycles': metrics.cycles,
                'total_exchanges': metrics.total_exchanges,
                'successful_exchanges': metrics.successful_exchanges,
                'failed_exchanges': metrics.failed_exchanges,
                'fault_pauses': metrics.fault_pauses,
                'reopen_failures': metrics.reopen_failures,
                'avg_exchange_time': metrics.avg_exchange_time,
                'last_success': metrics.last_success.isoformat() if metrics.last_success else None,
                'last_error': metrics.last_error,
                'last_error_time': metrics.last_error_time.isoformat() if metrics.last_error_time else None,
                'started_at': metrics.started_at.isoformat() if metrics.started_at else None
            }
        }

    # Private methods

    async def _poll_loop(self):
        logger.debug("Poll loop started", extra={
            "component": "device_poller",
            "device_id": self.device_id
        })

        while not self._stop_event.is_set():
            await self._run_cycle()
            if self._stop_event.is_set():
                break

            if self.tracker.threshold_exceeded:
                await self._recover_from_fault()

            await self._pause(self.timings.cycle_interval_s)

        logger.debug("Poll loop finished", extra={
            "component": "device_poller",
            "device_id": self.device_id
        })

    async def _run_cycle(self):
        for kind, item in self.device.iter_items():
            if self._stop_event.is_set():
                return
            await self._poll_item(kind, item)
        self.metrics.cycles += 1

    async def _poll_item(self, kind: ItemKind, item: Item):
        reader = ITEM_READERS[kind]
        start_time = time.monotonic()
        self.metrics.total_exchanges += 1

        try:
            async with self.exchange_lock:
                value = await self._run_blocking(reader, self.transport, item)
        except GatewayError as e:
            self._record_failed_exchange(kind, item, str(e), type(e).__name__)
            await self._pause(self.timings.error_pause_s)
            return
        except Exception as e:
            self._record_failed_exchange(kind, item, str(e), type(e).__name__, unexpected=True)
            await self._pause(self.timings.error_pause_s)
            return

        self.writer.set(kind, item.item_id, value)
        self._record_successful_exchange(kind, item, start_time, value)

    async def _recover_from_fault(self):
        """Close, wait out the fault timeout, reopen; the counter is reset either way"""
        self.state = PollerState.FAULT_PAUSED
        self.metrics.fault_pauses += 1

        logger.warning("Too many consecutive failures, pausing device", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "failure_count": self.tracker.failure_count,
            "max_errors": self.timings.max_errors,
            "fault_timeout_s": self.timings.fault_timeout_s
        })

        async with self.exchange_lock:
            await self._run_blocking(self.transport.close)

        await self._pause(self.timings.fault_timeout_s)
        if self._stop_event.is_set():
            return

        await self._open_transport(reopen=True)
        self.tracker.reset()
        self.state = PollerState.CONNECTED

    async def _open_transport(self, reopen: bool) -> bool:
        try:
            async with self.exchange_lock:
                await self._run_blocking(self.transport.open)
        except GatewayError as e:
            self._record_open_failure(e, reopen)
            return False
        except Exception as e:
            self._record_open_failure(e, reopen, unexpected=True)
            return False

        self.state = PollerState.CONNECTED
        logger.info("Transport reopened" if reopen else "Transport opened", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "devfile": self.device.devfile,
            "baud": self.device.baud
        })
        return True

    async def _pause(self, seconds: float):
        """Sleep that returns early when stop() is called"""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_blocking(self, func: Callable[..., Any], *args) -> Any:
        """Run blocking transport I/O on this device's own worker thread"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    def _on_poll_task_done(self, task: asyncio.Task):
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error("Poll task died unexpectedly, device is no longer polled", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "error": str(error),
            "error_type": type(error).__name__
        }, exc_info=(type(error), error, error.__traceback__))

    def _record_open_failure(self, error: Exception, reopen: bool, unexpected: bool = False):
        self.metrics.last_error = str(error)
        self.metrics.last_error_time = datetime.now()
        if reopen:
            self.metrics.reopen_failures += 1

        extra = {
            "component": "device_poller",
            "device_id": self.device_id,
            "devfile": self.device.devfile,
            "error": str(error),
            "error_type": type(error).__name__,
            "reopen_failures": self.metrics.reopen_failures
        }
        message = "Failed to reopen transport" if reopen else "Failed to open transport"
        if unexpected:
            logger.error(message, extra=extra, exc_info=True)
        else:
            logger.error(message, extra=extra)

    def _update_avg_exchange_time(self):
        if self.metrics.exchange_times:
            self.metrics.avg_exchange_time = sum(self.metrics.exchange_times) / len(self.metrics.exchange_times)

    def _record_successful_exchange(self, kind: ItemKind, item: Item, start_time: float, value):
        exchange_time = time.monotonic() - start_time
        self.metrics.exchange_times.append(exchange_time)
        self._update_avg_exchange_time()
        self.metrics.successful_exchanges += 1
        self.metrics.last_success = datetime.now()
        self.tracker.record_success()

        logger.debug("Item polled", extra={
            "component": "device_poller",
            "device_id": self.device_id,
            "item_kind": kind.value,
            "item_id": item.item_id,
            "value": value,
            "exchange_time": round(exchange_time, 3)
        })

    def _record_failed_exchange(self, kind: ItemKind, item: Item, error_message: str, error_type: str,
                                unexpected: bool = False):
        self.metrics.failed_exchanges += 1
        self.metrics.last_error = error_message
        self.metrics.last_error_time = datetime.now()
        self.tracker.record_failure()

        extra = {
            "component": "device_poller",
            "device_id": self.device_id,
            "item_kind": kind.value,
            "item_id": item.item_id,
            "error": error_message,
            "error_type": error_type,
            "failure_count": self.tracker.failure_count
        }
        if unexpected:
            logger.error("Unexpected error polling item", extra=extra, exc_info=True)
        else:
            logger.warning("Item poll failed", extra=extra)
