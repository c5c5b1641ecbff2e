import time
from typing import Any, Dict

from instrument_gateway.app.schemas.health import (
    DeviceHealthResponse, DeviceMetricsResponse, SystemHealthResponse
)


def _device_health_label(status: Dict[str, Any]) -> str:
    if status['state'] == 'connected' and status['failure_count'] == 0:
        return 'healthy'
    if status['state'] == 'stopped':
        return 'stopped'
    return 'unhealthy'


def convert_device_status_to_response(status: Dict[str, Any]) -> DeviceHealthResponse:
    """Convert a poller status dict to API response model"""
    metrics = status['metrics']
    total = metrics['total_exchanges']
    return DeviceHealthResponse(
        device_id=status['device_id'],
        status=_device_health_label(status),
        state=status['state'],
        devfile=status['devfile'],
        baud=status['baud'],
        transport_open=status['transport_open'],
        failure_count=status['failure_count'],
        item_count=status['item_count'],
        metrics=DeviceMetricsResponse(
            cycles=metrics['cycles'],
            total_exchanges=total,
            successful_exchanges=metrics['successful_exchanges'],
            failed_exchanges=metrics['failed_exchanges'],
            success_rate=(metrics['successful_exchanges'] / total * 100) if total else 0.0,
            fault_pauses=metrics['fault_pauses'],
            reopen_failures=metrics['reopen_failures'],
            avg_exchange_time_ms=metrics['avg_exchange_time'] * 1000,
            last_success=metrics['last_success'],
            last_error=metrics['last_error'],
            last_error_time=metrics['last_error_time'],
            started_at=metrics['started_at']
        ),
        timestamp=time.time()
    )


def convert_system_health_to_response(health: Dict[str, Any]) -> SystemHealthResponse:
    """Convert gateway health dict to API response model"""
    return SystemHealthResponse(
        overall_status=health['status'],
        service_uptime_seconds=health['uptime_seconds'],
        total_devices=health['total_devices'],
        healthy_devices=health['healthy_devices'],
        unhealthy_devices=health['unhealthy_devices'],
        devices=[convert_device_status_to_response(status) for status in health['devices'].values()],
        timestamp=time.time()
    )
