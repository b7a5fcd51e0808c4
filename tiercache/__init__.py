"""Tiered reference cache with eager and pressure-reclaimed entries."""

from tiercache.cache import (
    CacheStats,
    Entry,
    LookupResult,
    PressureSignal,
    ReclaimEvent,
    ReclaimSweeper,
    TieredCache,
    TieredCacheConfig,
)
from tiercache.exceptions import (
    InvalidConfigurationError,
    ObservabilityError,
    TierCacheException,
)

__version__ = "0.3.0"

__all__ = [
    "CacheStats",
    "Entry",
    "InvalidConfigurationError",
    "LookupResult",
    "ObservabilityError",
    "PressureSignal",
    "ReclaimEvent",
    "ReclaimSweeper",
    "TierCacheException",
    "TieredCache",
    "TieredCacheConfig",
]
