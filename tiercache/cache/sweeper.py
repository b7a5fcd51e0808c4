"""
Reclamation pass over a cache's entry mapping.

One sweep clears every eager entry, then, when the pressure signal is at
or above its threshold, reclaims persistent entries least-recently-used
first until the estimated relief brings pressure below threshold.  The
key touched by the triggering operation is always spared.

The sweeper owns no state besides its policy; the caller passes in the
mapping and holds whatever lock guards it.
"""

import logging
import math
from typing import Any, Callable, Dict, List, MutableMapping, Optional

from tiercache.cache.entry import EAGER, PERSISTENT, Entry, ReclaimEvent, ReclaimReason
from tiercache.cache.pressure import PressureSignal

logger = logging.getLogger(__name__)

# Estimated pressure relief, in level steps, from dropping one entry.
ReliefEstimator = Callable[[Any, Any], float]

NO_KEY = object()


class ReclaimSweeper:
    """Tier-aware reclamation policy.

    Args:
        batch_fraction: Share of eligible persistent entries reclaimed by
            one pressured sweep when no estimator is supplied.  At least
            one entry is reclaimed whenever any is eligible.
        relief_estimator: Optional ``fn(key, value) -> float`` giving the
            number of pressure level steps that reclaiming the entry
            relieves.  Overrides *batch_fraction* when set; if it raises,
            the sweep falls back to *batch_fraction*.
    """

    def __init__(
        self,
        batch_fraction: float = 0.25,
        relief_estimator: Optional[ReliefEstimator] = None,
    ) -> None:
        if not 0.0 < batch_fraction <= 1.0:
            raise ValueError(
                f"batch_fraction must be in (0, 1], got {batch_fraction}"
            )
        self._batch_fraction = batch_fraction
        self._relief_estimator = relief_estimator

    @property
    def batch_fraction(self) -> float:
        return self._batch_fraction

    def sweep(
        self,
        entries: MutableMapping[Any, Entry],
        signal: PressureSignal,
        protected: Any = NO_KEY,
    ) -> List[ReclaimEvent]:
        """Run one reclamation pass over *entries*, in place.

        Args:
            entries: The cache's key -> entry mapping.
            signal: Current pressure state.
            protected: Key accessed by the triggering operation; never
                reclaimed by this pass.

        Returns:
            One event per reclaimed entry, eager entries first.
        """
        eager = [
            e for e in entries.values()
            if e.tier == EAGER and e.key != protected
        ]
        pressured: List[Entry] = []
        if signal.eligible():
            pressured = self._select_persistent(entries, signal, protected)

        events = self._reclaim(entries, eager, "sweep")
        events.extend(self._reclaim(entries, pressured, "pressure"))

        assert all(e.alive for e in entries.values()), "dead entry left in mapping"

        logger.debug(
            "Sweep complete",
            extra={
                "pressure": signal.level,
                "eager_reclaimed": len(eager),
                "persistent_reclaimed": len(pressured),
                "remaining": len(entries),
            },
        )
        return events

    def evict_for_capacity(
        self,
        entries: MutableMapping[Any, Entry],
        capacity: int,
        protected: Any = NO_KEY,
    ) -> List[ReclaimEvent]:
        """Evict entries until one more insert fits within *capacity*.

        Eager entries go first (normally none are left after a sweep),
        then persistent entries in least-recently-accessed order.

        Returns:
            One ``capacity`` event per evicted entry.
        """
        overflow = len(entries) - capacity + 1
        if overflow <= 0:
            return []

        candidates = sorted(
            (e for e in entries.values() if e.key != protected),
            key=lambda e: (e.tier == PERSISTENT, e.lru_rank()),
        )
        victims = candidates[:overflow]
        events = self._reclaim(entries, victims, "capacity")
        if events:
            logger.info(
                "Capacity eviction",
                extra={"evicted": len(events), "capacity": capacity},
            )
        return events

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _select_persistent(
        self,
        entries: MutableMapping[Any, Entry],
        signal: PressureSignal,
        protected: Any,
    ) -> List[Entry]:
        """Pick persistent victims, least-recently-accessed first."""
        candidates = sorted(
            (
                e for e in entries.values()
                if e.tier == PERSISTENT and e.key != protected
            ),
            key=Entry.lru_rank,
        )
        if not candidates:
            return []

        if self._relief_estimator is None:
            return self._batch(candidates)

        needed = float(signal.excess())
        relieved = 0.0
        victims: List[Entry] = []
        try:
            for entry in candidates:
                if relieved >= needed:
                    break
                relieved += float(self._relief_estimator(entry.key, entry.value))
                victims.append(entry)
        except Exception as exc:
            logger.warning(
                "Relief estimator failed; using batch fraction",
                extra={"error": str(exc)},
                exc_info=True,
            )
            return self._batch(candidates)
        return victims

    def _batch(self, candidates: List[Entry]) -> List[Entry]:
        count = max(1, math.ceil(len(candidates) * self._batch_fraction))
        return candidates[:count]

    @staticmethod
    def _reclaim(
        entries: MutableMapping[Any, Entry],
        victims: List[Entry],
        reason: ReclaimReason,
    ) -> List[ReclaimEvent]:
        events: List[ReclaimEvent] = []
        for entry in victims:
            entry.alive = False
            del entries[entry.key]
            events.append(ReclaimEvent.from_entry(entry, reason))
        return events


def count_by_tier(entries: Dict[Any, Entry]) -> Dict[str, int]:
    """Live entry counts keyed by tier name."""
    counts = {EAGER: 0, PERSISTENT: 0}
    for entry in entries.values():
        counts[entry.tier] += 1
    return counts
