from pydantic import BaseModel
from typing import List, Optional


class DeviceMetricsResponse(BaseModel):
    cycles: int = 0
    total_exchanges: int = 0
    successful_exchanges: int = 0
    failed_exchanges: int = 0
    success_rate: float = 0.0
    fault_pauses: int = 0
    reopen_failures: int = 0
    avg_exchange_time_ms: float = 0.0
    last_success: Optional[str] = None
    last_error: Optional[str] = None
    last_error_time: Optional[str] = None
    started_at: Optional[str] = None


class DeviceHealthResponse(BaseModel):
    device_id: str
    status: str
    state: str
    devfile: str
    baud: int
    transport_open: bool
    failure_count: int
    item_count: int
    metrics: DeviceMetricsResponse
    timestamp: Optional[float] = None


class SystemHealthResponse(BaseModel):
    overall_status: str
    service_uptime_seconds: float
    total_devices: int
    healthy_devices: int
    unhealthy_devices: int
    devices: List[DeviceHealthResponse]
    timestamp: float


class LivenessResponse(BaseModel):
    status: str
    alive: bool
    uptime_seconds: float
    timestamp: float
