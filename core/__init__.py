"""
Core Module Package.

Infrastructure shared by every other package.

Components:
- clock: Injectable UTC time source
- rwlock: Reader/writer lock for shared maps
- config: Process-level service configuration
"""

from core.clock import ClockProtocol, MockClock, SystemClock
from core.config import ConfigError, PricingConfig
from core.rwlock import ReadWriteLock

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ReadWriteLock",
    "PricingConfig",
    "ConfigError",
]
