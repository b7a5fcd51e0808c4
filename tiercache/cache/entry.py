"""
Cache slot and reclaim-event models.

An :class:`Entry` holds one caller value together with its reclaim
tier and the logical-clock bookkeeping the sweeper orders by.  A
:class:`ReclaimEvent` is emitted for every entry the cache reclaims on
its own (sweep, pressure or capacity), never for explicit removal.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Tier = Literal["eager", "persistent"]
ReclaimReason = Literal["sweep", "pressure", "capacity"]

EAGER: Tier = "eager"
PERSISTENT: Tier = "persistent"


class Entry(BaseModel):
    """A single cache slot.

    Attributes:
        key: Opaque hashable identifier, unique within one cache.
        value: Caller payload, held by reference and never inspected.
        tier: ``eager`` (cleared on every sweep) or ``persistent``
            (cleared only under pressure).  Cannot be reassigned.
        last_access: Logical timestamp of the latest put or hit.
        sequence: Insertion order; breaks ``last_access`` ties.
        alive: ``False`` once the sweeper has marked the entry reclaimed.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: Any
    value: Any = None
    tier: Tier = Field(default=PERSISTENT, frozen=True)
    last_access: int = 0
    sequence: int = 0
    alive: bool = True

    def touch(self, tick: int) -> None:
        """Record an access at logical time *tick*."""
        self.last_access = tick

    def lru_rank(self) -> tuple:
        """Sort key placing the least-recently-accessed entry first."""
        return (self.last_access, self.sequence)


class ReclaimEvent(BaseModel):
    """Notification that the cache reclaimed an entry.

    Attributes:
        key: Key of the reclaimed entry.
        value: The value that was dropped.
        tier: Tier the entry belonged to.
        reason: ``sweep`` for eager clearing, ``pressure`` for
            persistent entries reclaimed at or above threshold,
            ``capacity`` for LRU eviction to make room on insert.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: Any
    value: Any = None
    tier: Tier
    reason: ReclaimReason

    @classmethod
    def from_entry(cls, entry: Entry, reason: ReclaimReason) -> "ReclaimEvent":
        return cls(key=entry.key, value=entry.value, tier=entry.tier, reason=reason)
