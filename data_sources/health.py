"""
Source Health - Consecutive-failure health tracking.

    UNKNOWN ──success──> HEALTHY
    3 failures in a row  -> DEGRADED
    5 failures in a row  -> UNAVAILABLE
    any success          -> HEALTHY

Health is informational only; it never blocks a request.
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from data_sources.exceptions import FetchError


logger = logging.getLogger(__name__)


class SourceStatus(Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


@dataclass
class SourceHealth:
    """Point-in-time health of one source."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    uptime_percentage: float = 100.0
    
    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["status"] = self.status.value
        for key in ("last_check", "last_error_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class HealthTracker:
    """Tracks request outcomes of one data source."""
    
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5
    
    def __init__(self, source_name: str) -> None:
        self._source_name = source_name
        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self._requests = 0
        self._successes = 0
    
    def record_success(self, latency_ms: Optional[float] = None) -> None:
        self._requests += 1
        self._successes += 1
        self._health.last_check = datetime.now(timezone.utc)
        self._health.consecutive_failures = 0
        if latency_ms is not None:
            self._health.latency_ms = latency_ms
        self._transition(SourceStatus.HEALTHY)
    
    def record_failure(self, error: FetchError) -> None:
        self._requests += 1
        failed_at = datetime.now(timezone.utc)
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = failed_at
        self._health.last_check = failed_at
        
        failures = self._health.consecutive_failures
        if failures >= self.UNAVAILABLE_THRESHOLD:
            self._transition(SourceStatus.UNAVAILABLE)
        elif failures >= self.DEGRADED_THRESHOLD:
            self._transition(SourceStatus.DEGRADED)
    
    def _transition(self, status: SourceStatus) -> None:
        previous = self._health.status
        if previous == status:
            return
        self._health.status = status
        
        message = f"[{self._source_name}] {previous.value} -> {status.value}"
        if status == SourceStatus.UNAVAILABLE:
            logger.error(f"{message} after {self._health.consecutive_failures} failures")
        elif status == SourceStatus.DEGRADED:
            logger.warning(f"{message} after {self._health.consecutive_failures} failures")
        else:
            logger.info(message)
    
    @property
    def status(self) -> SourceStatus:
        return self._health.status
    
    def snapshot(self) -> SourceHealth:
        """Copy of the current health, with uptime over all requests."""
        uptime = 100.0
        if self._requests:
            uptime = self._successes / self._requests * 100
        return dataclasses.replace(self._health, uptime_percentage=uptime)
