"""Tiered reference cache: entries, pressure signal, sweeper and engine."""

from tiercache.cache.entry import EAGER, PERSISTENT, Entry, ReclaimEvent
from tiercache.cache.pressure import PressureSignal
from tiercache.cache.sweeper import ReclaimSweeper
from tiercache.cache.tiered import (
    CacheStats,
    LookupResult,
    TieredCache,
    TieredCacheConfig,
)

__all__ = [
    "EAGER",
    "PERSISTENT",
    "CacheStats",
    "Entry",
    "LookupResult",
    "PressureSignal",
    "ReclaimEvent",
    "ReclaimSweeper",
    "TieredCache",
    "TieredCacheConfig",
]
