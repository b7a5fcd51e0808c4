"""
Tiered reference cache.

Holds caller values under one of two reclaim priorities:

* ``eager`` entries are dropped by every sweep, whatever the pressure;
* ``persistent`` entries survive sweeps until the host reports memory
  pressure at or above the configured threshold.

Sweeps run synchronously on every :meth:`TieredCache.set_pressure`, on
:meth:`TieredCache.force_sweep`, and when an insert would overflow the
configured capacity.  All public operations share one lock.
"""

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from tiercache.cache.entry import EAGER, PERSISTENT, Entry, ReclaimEvent, Tier
from tiercache.cache.pressure import PressureLevel, PressureSignal, validate_level
from tiercache.cache.sweeper import NO_KEY, ReclaimSweeper, ReliefEstimator, count_by_tier
from tiercache.config import get_settings
from tiercache.exceptions import InvalidConfigurationError

if TYPE_CHECKING:
    from tiercache.observability.metrics import ReclaimMetrics

logger = logging.getLogger(__name__)

ReclaimListener = Callable[[ReclaimEvent], None]

_TIERS = (EAGER, PERSISTENT)


class TieredCacheConfig(BaseModel):
    """Construction parameters for :class:`TieredCache`.

    Attributes:
        capacity: Maximum number of live entries.
        persistent_reclaim_threshold: Lowest pressure level at which
            persistent entries may be reclaimed.
        batch_fraction: Share of persistent entries reclaimed per
            pressured sweep when no relief estimator is supplied.
    """

    capacity: int = Field(gt=0)
    persistent_reclaim_threshold: PressureLevel = "high"
    batch_fraction: float = Field(default=0.25, gt=0.0, le=1.0)

    @field_validator("persistent_reclaim_threshold", mode="before")
    @classmethod
    def normalise_threshold(cls, v: Any) -> Any:
        """Accept level names in any case."""
        return v.strip().lower() if isinstance(v, str) else v


class LookupResult(BaseModel):
    """Outcome of :meth:`TieredCache.lookup`.

    Attributes:
        hit: Whether a live entry was found.
        value: The stored value on a hit, ``None`` otherwise.
    """

    hit: bool = False
    value: Any = None


class CacheStats(BaseModel):
    """Aggregate cache statistics.

    Attributes:
        hits: Total successful lookups.
        misses: Total lookups that found nothing.
        hit_rate: Ratio of hits to total lookups (0.0 if no lookups).
        entry_count: Live entries.
        eager_count: Live eager entries.
        persistent_count: Live persistent entries.
        capacity: Configured maximum entry count.
        sweeps: Sweeps run since construction.
        reclaimed: Reclaimed entry counts keyed by reason.
        pressure: Current pressure level.
    """

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    entry_count: int = 0
    eager_count: int = 0
    persistent_count: int = 0
    capacity: int = 0
    sweeps: int = 0
    reclaimed: Dict[str, int] = Field(default_factory=dict)
    pressure: str = "low"


def _build_config(
    config: Optional[TieredCacheConfig],
    overrides: Dict[str, Any],
) -> TieredCacheConfig:
    """Merge keyword overrides onto *config* (or the settings defaults)."""
    if config is None:
        s = get_settings().cache
        base: Dict[str, Any] = {
            "capacity": s.capacity,
            "persistent_reclaim_threshold": s.persistent_reclaim_threshold,
            "batch_fraction": s.batch_fraction,
        }
    else:
        base = config.model_dump()
    base.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return TieredCacheConfig(**base)
    except ValidationError as exc:
        raise InvalidConfigurationError(
            f"Invalid cache configuration: {exc}"
        ) from exc


class TieredCache:
    """In-memory cache with eager and persistent reclaim tiers.

    Thread-safe: every public operation holds ``_lock`` for its full
    duration, including any sweep it triggers.  Reclaim listeners and
    the metrics collector are called after the lock is released, so
    they may call back into the cache.

    Args:
        config: Base configuration.  When omitted, values come from
            :func:`tiercache.config.get_settings`.
        capacity: Overrides ``config.capacity``.
        persistent_reclaim_threshold: Overrides the threshold level.
        batch_fraction: Overrides the pressured-sweep batch fraction.
        relief_estimator: Optional ``fn(key, value) -> float`` giving the
            pressure level steps relieved by reclaiming one entry.
        metrics: Optional :class:`~tiercache.observability.metrics.ReclaimMetrics`.

    Raises:
        InvalidConfigurationError: If capacity is not positive, the
            threshold is unknown, or the batch fraction is out of range.
    """

    def __init__(
        self,
        config: Optional[TieredCacheConfig] = None,
        *,
        capacity: Optional[int] = None,
        persistent_reclaim_threshold: Optional[str] = None,
        batch_fraction: Optional[float] = None,
        relief_estimator: Optional[ReliefEstimator] = None,
        metrics: Optional["ReclaimMetrics"] = None,
    ) -> None:
        self._config = _build_config(
            config,
            {
                "capacity": capacity,
                "persistent_reclaim_threshold": persistent_reclaim_threshold,
                "batch_fraction": batch_fraction,
            },
        )
        self._lock = threading.Lock()
        self._entries: Dict[Any, Entry] = {}
        self._signal = PressureSignal(
            threshold=self._config.persistent_reclaim_threshold
        )
        self._sweeper = ReclaimSweeper(
            batch_fraction=self._config.batch_fraction,
            relief_estimator=relief_estimator,
        )
        self._metrics = metrics
        self._listeners: List[ReclaimListener] = []

        self._clock: int = 0
        self._sequence: int = 0
        self._hits: int = 0
        self._misses: int = 0
        self._sweeps: int = 0
        self._reclaimed: Dict[str, int] = {"sweep": 0, "pressure": 0, "capacity": 0}

        logger.info(
            "TieredCache initialised",
            extra={
                "capacity": self._config.capacity,
                "threshold": self._config.persistent_reclaim_threshold,
            },
        )

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def put(self, key: Any, value: Any, tier: Tier = PERSISTENT) -> None:
        """Insert or overwrite *key*.

        Overwriting with the same tier replaces the value in place;
        overwriting with a different tier creates a fresh entry.  When a
        new key would overflow capacity, a sweep runs first and then
        least-recently-accessed persistent entries are evicted.  The
        entry being written is never reclaimed by its own insert.

        Args:
            key: Hashable key.
            value: Value to store.  Held by reference.
            tier: ``eager`` or ``persistent``.

        Raises:
            ValueError: If *tier* is not a known tier.
        """
        if tier not in _TIERS:
            raise ValueError(f"Unknown tier {tier!r}; expected one of {_TIERS}")

        events: List[ReclaimEvent] = []
        swept = False
        with self._lock:
            tick = self._tick()
            existing = self._entries.get(key)
            if existing is not None and existing.tier == tier:
                existing.value = value
                existing.touch(tick)
            else:
                if existing is None and len(self._entries) >= self._config.capacity:
                    swept = True
                    events.extend(self._sweep_locked(protected=key))
                    events.extend(
                        self._sweeper.evict_for_capacity(
                            self._entries, self._config.capacity, protected=key
                        )
                    )
                elif existing is not None:
                    existing.alive = False
                self._sequence += 1
                self._entries[key] = Entry(
                    key=key,
                    value=value,
                    tier=tier,
                    last_access=tick,
                    sequence=self._sequence,
                )
            self._count_reclaimed(events)
            assert len(self._entries) <= self._config.capacity

        self._dispatch(events, swept=swept)

    def get(self, key: Any, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default* on a miss.

        A hit refreshes the entry's access time.  Never-inserted,
        removed and reclaimed keys all miss the same way.
        """
        hit, value = self._lookup(key)
        return value if hit else default

    def lookup(self, key: Any) -> LookupResult:
        """Like :meth:`get`, but reports the hit explicitly.

        Useful when ``None`` is a legitimate stored value.
        """
        hit, value = self._lookup(key)
        return LookupResult(hit=hit, value=value)

    def remove(self, key: Any) -> bool:
        """Explicitly drop *key*.  No-op if absent.

        Returns:
            ``True`` if an entry was removed.
        """
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            entry.alive = False
        logger.debug("Entry removed", extra={"tier": entry.tier})
        return True

    def set_pressure(self, level: str) -> None:
        """Report a new pressure level and run one sweep.

        Every call sweeps, whichever direction the level moved, so
        eager entries are always cleared.

        Raises:
            ValueError: If *level* is not ``low``, ``medium`` or ``high``.
        """
        level = validate_level(level)
        with self._lock:
            previous = self._signal.set(level)
            events = self._sweep_locked()
            self._count_reclaimed(events)

        if previous != level:
            logger.info(
                "Memory pressure changed",
                extra={
                    "previous": previous,
                    "level": level,
                    "reclaimed": len(events),
                },
            )
        if self._metrics is not None:
            self._metrics.record_pressure(level)
        self._dispatch(events, swept=True)

    def force_sweep(self) -> int:
        """Run one sweep now.

        Returns:
            Number of entries reclaimed, which may be zero.
        """
        with self._lock:
            events = self._sweep_locked()
            self._count_reclaimed(events)
        self._dispatch(events, swept=True)
        return len(events)

    def size(self) -> int:
        """Number of live entries."""
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Supplementary operations
    # ------------------------------------------------------------------

    def clear(self) -> int:
        """Drop every entry without emitting reclaim events.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._entries)
            for entry in self._entries.values():
                entry.alive = False
            self._entries.clear()
        logger.info("Cache cleared", extra={"entries_removed": count})
        return count

    def tier_of(self, key: Any) -> Optional[Tier]:
        """Tier of the live entry for *key*, or ``None`` if absent."""
        with self._lock:
            entry = self._entries.get(key)
            return entry.tier if entry is not None else None

    def add_reclaim_listener(self, listener: ReclaimListener) -> None:
        """Call *listener* with each :class:`ReclaimEvent` from now on."""
        with self._lock:
            self._listeners.append(listener)

    def remove_reclaim_listener(self, listener: ReclaimListener) -> bool:
        """Unregister *listener*.  Returns ``False`` if it was not registered."""
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def stats(self) -> CacheStats:
        """Return a consistent snapshot of cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            tiers = count_by_tier(self._entries)
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total > 0 else 0.0,
                entry_count=len(self._entries),
                eager_count=tiers[EAGER],
                persistent_count=tiers[PERSISTENT],
                capacity=self._config.capacity,
                sweeps=self._sweeps,
                reclaimed=dict(self._reclaimed),
                pressure=self._signal.level,
            )

    @property
    def pressure(self) -> PressureLevel:
        """Current pressure level."""
        with self._lock:
            return self._signal.level

    @property
    def config(self) -> TieredCacheConfig:
        return self._config

    @property
    def capacity(self) -> int:
        return self._config.capacity

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: Any) -> bool:
        """Presence test; does not count as an access."""
        with self._lock:
            return key in self._entries

    def __repr__(self) -> str:
        return (
            f"TieredCache(size={len(self._entries)}, "
            f"capacity={self._config.capacity}, pressure={self._signal.level!r})"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _tick(self) -> int:
        self._clock += 1
        return self._clock

    def _lookup(self, key: Any) -> Tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                tier = None
                hit, value = False, None
            else:
                assert entry.alive, "reclaimed entry reachable by lookup"
                entry.touch(self._tick())
                self._hits += 1
                tier = entry.tier
                hit, value = True, entry.value

        if self._metrics is not None:
            self._metrics.record_lookup(tier, hit)
        return hit, value

    def _sweep_locked(self, protected: Any = NO_KEY) -> List[ReclaimEvent]:
        """Run the sweeper; caller must hold ``_lock``."""
        self._sweeps += 1
        return self._sweeper.sweep(self._entries, self._signal, protected=protected)

    def _count_reclaimed(self, events: List[ReclaimEvent]) -> None:
        for event in events:
            self._reclaimed[event.reason] += 1

    def _dispatch(self, events: List[ReclaimEvent], swept: bool = False) -> None:
        """Deliver reclaim events outside the lock."""
        if self._metrics is not None and swept:
            self._metrics.record_sweep()
        if not events:
            return
        if self._metrics is not None:
            for event in events:
                self._metrics.record_reclaim(event.tier, event.reason)

        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            for event in events:
                try:
                    listener(event)
                except Exception as exc:
                    logger.warning(
                        "Reclaim listener failed",
                        extra={"key": repr(event.key), "error": str(exc)},
                        exc_info=True,
                    )
