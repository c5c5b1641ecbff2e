from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from collections import deque


class PollerState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    FAULT_PAUSED = "fault_paused"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PollerTimings:
    """Pacing of the polling loop and its fault recovery"""
    error_pause_s: float = 4.0
    fault_timeout_s: float = 30.0
    max_errors: int = 3
    cycle_interval_s: float = 0.0


@dataclass()
class PollerMetrics:
    """Exchange and recovery counters for one device"""
    cycles: int = 0
    total_exchanges: int = 0
    successful_exchanges: int = 0
    failed_exchanges: int = 0
    fault_pauses: int = 0
    reopen_failures: int = 0
    avg_exchange_time: float = 0.0
    last_success: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    exchange_times: deque = field(default_factory=lambda: deque(maxlen=100))
