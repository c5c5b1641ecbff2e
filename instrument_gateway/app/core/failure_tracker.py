from datetime import datetime
from instrument_gateway.app.utilities.telemetry import logger


class FailureTracker:
    """Consecutive exchange failure counter for one device"""

    def __init__(self, max_errors: int = 3, device_id: str = None):
        self.max_errors = max_errors
        self.device_id = device_id
        self.failure_count = 0
        self.last_failure_time = None

    def record_success(self):
        """Any successful exchange clears the run of failures"""
        if self.failure_count:
            logger.debug("Failure run cleared", extra={
                "component": "failure_tracker",
                "device_id": self.device_id,
                "previous_failure_count": self.failure_count
            })
        self.failure_count = 0

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        logger.debug("Exchange failure recorded", extra={
            "component": "failure_tracker",
            "device_id": self.device_id,
            "failure_count": self.failure_count,
            "max_errors": self.max_errors
        })

    @property
    def threshold_exceeded(self) -> bool:
        """True once failures exceed max_errors (strictly greater)"""
        return self.failure_count > self.max_errors

    def reset(self):
        self.failure_count = 0
