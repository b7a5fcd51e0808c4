"""Tests for ReclaimSweeper."""

from typing import Dict, List

import pytest

from tiercache.cache.entry import EAGER, PERSISTENT, Entry
from tiercache.cache.pressure import PressureSignal
from tiercache.cache.sweeper import ReclaimSweeper, count_by_tier


def make_entries(specs: List[tuple]) -> Dict[str, Entry]:
    """Build a mapping from ``(key, tier, last_access)`` triples."""
    entries: Dict[str, Entry] = {}
    for seq, (key, tier, last_access) in enumerate(specs):
        entries[key] = Entry(
            key=key,
            value=f"v-{key}",
            tier=tier,
            last_access=last_access,
            sequence=seq,
        )
    return entries


def high_signal(threshold: str = "high") -> PressureSignal:
    signal = PressureSignal(threshold=threshold)
    signal.set("high")
    return signal


class TestSweepBelowThreshold:
    """Sweeps while pressure is under the threshold."""

    def test_clears_eager_keeps_persistent(self) -> None:
        entries = make_entries([
            ("e1", EAGER, 1),
            ("p1", PERSISTENT, 2),
            ("e2", EAGER, 3),
        ])
        events = ReclaimSweeper().sweep(entries, PressureSignal())
        assert set(entries) == {"p1"}
        assert {e.key for e in events} == {"e1", "e2"}
        assert all(e.reason == "sweep" for e in events)

    def test_protected_eager_entry_survives(self) -> None:
        entries = make_entries([("e1", EAGER, 1), ("e2", EAGER, 2)])
        events = ReclaimSweeper().sweep(entries, PressureSignal(), protected="e2")
        assert set(entries) == {"e2"}
        assert [e.key for e in events] == ["e1"]

    def test_reclaimed_entries_marked_dead(self) -> None:
        entries = make_entries([("e1", EAGER, 1)])
        entry = entries["e1"]
        ReclaimSweeper().sweep(entries, PressureSignal())
        assert entry.alive is False

    def test_empty_mapping(self) -> None:
        entries: Dict[str, Entry] = {}
        assert ReclaimSweeper().sweep(entries, high_signal()) == []


class TestSweepUnderPressure:
    """Sweeps at or above the threshold."""

    def test_batch_fraction_reclaims_lru_first(self) -> None:
        entries = make_entries([
            (f"p{i}", PERSISTENT, last) for i, last in enumerate([8, 3, 6, 1, 7, 2, 5, 4])
        ])
        events = ReclaimSweeper(batch_fraction=0.25).sweep(entries, high_signal())
        # ceil(8 * 0.25) == 2; lowest last_access are p3 (1) and p5 (2)
        assert [e.key for e in events] == ["p3", "p5"]
        assert all(e.reason == "pressure" for e in events)
        assert len(entries) == 6

    def test_batch_reclaims_at_least_one(self) -> None:
        entries = make_entries([("p1", PERSISTENT, 1)])
        events = ReclaimSweeper(batch_fraction=0.1).sweep(entries, high_signal())
        assert len(events) == 1
        assert entries == {}

    def test_eager_reported_before_persistent(self) -> None:
        entries = make_entries([("p1", PERSISTENT, 1), ("e1", EAGER, 2)])
        events = ReclaimSweeper(batch_fraction=1.0).sweep(entries, high_signal())
        assert [(e.key, e.reason) for e in events] == [
            ("e1", "sweep"),
            ("p1", "pressure"),
        ]

    def test_tie_broken_by_insertion_order(self) -> None:
        entries = make_entries([
            ("first", PERSISTENT, 5),
            ("second", PERSISTENT, 5),
            ("third", PERSISTENT, 5),
            ("fourth", PERSISTENT, 5),
        ])
        events = ReclaimSweeper(batch_fraction=0.25).sweep(entries, high_signal())
        assert [e.key for e in events] == ["first"]

    def test_protected_persistent_entry_survives(self) -> None:
        entries = make_entries([("p1", PERSISTENT, 1), ("p2", PERSISTENT, 2)])
        ReclaimSweeper(batch_fraction=1.0).sweep(entries, high_signal(), protected="p1")
        assert set(entries) == {"p1"}

    def test_estimator_stops_once_relief_reached(self) -> None:
        entries = make_entries([(f"p{i}", PERSISTENT, i) for i in range(5)])
        sweeper = ReclaimSweeper(relief_estimator=lambda key, value: 0.5)
        events = sweeper.sweep(entries, high_signal())
        # High with threshold high needs one level step: two entries at 0.5.
        assert [e.key for e in events] == ["p0", "p1"]

    def test_estimator_needs_more_relief_further_above_threshold(self) -> None:
        entries = make_entries([(f"p{i}", PERSISTENT, i) for i in range(5)])
        sweeper = ReclaimSweeper(relief_estimator=lambda key, value: 1.0)
        events = sweeper.sweep(entries, high_signal(threshold="low"))
        assert [e.key for e in events] == ["p0", "p1", "p2"]

    def test_estimator_bounded_by_entry_count(self) -> None:
        entries = make_entries([("p0", PERSISTENT, 0), ("p1", PERSISTENT, 1)])
        sweeper = ReclaimSweeper(relief_estimator=lambda key, value: 0.0)
        events = sweeper.sweep(entries, high_signal())
        assert len(events) == 2
        assert entries == {}

    def test_estimator_error_falls_back_to_batch_fraction(self) -> None:
        entries = make_entries([
            ("e1", EAGER, 0),
            ("p1", PERSISTENT, 1),
            ("p2", PERSISTENT, 2),
        ])

        def broken(key, value):
            raise RuntimeError("estimator down")

        sweeper = ReclaimSweeper(batch_fraction=0.5, relief_estimator=broken)
        events = sweeper.sweep(entries, high_signal())
        assert [(e.key, e.reason) for e in events] == [("e1", "sweep"), ("p1", "pressure")]
        assert set(entries) == {"p2"}


class TestEvictForCapacity:
    def test_evicts_lru_persistent(self) -> None:
        entries = make_entries([
            ("p1", PERSISTENT, 5),
            ("p2", PERSISTENT, 1),
            ("p3", PERSISTENT, 3),
        ])
        events = ReclaimSweeper().evict_for_capacity(entries, capacity=3)
        assert [e.key for e in events] == ["p2"]
        assert events[0].reason == "capacity"
        assert len(entries) == 2

    def test_no_eviction_when_room(self) -> None:
        entries = make_entries([("p1", PERSISTENT, 1)])
        assert ReclaimSweeper().evict_for_capacity(entries, capacity=5) == []
        assert len(entries) == 1

    def test_eager_evicted_before_persistent(self) -> None:
        entries = make_entries([("p1", PERSISTENT, 0), ("e1", EAGER, 9)])
        events = ReclaimSweeper().evict_for_capacity(entries, capacity=2)
        assert [e.key for e in events] == ["e1"]

    def test_protected_key_not_evicted(self) -> None:
        entries = make_entries([("p1", PERSISTENT, 0), ("p2", PERSISTENT, 1)])
        events = ReclaimSweeper().evict_for_capacity(entries, capacity=2, protected="p1")
        assert [e.key for e in events] == ["p2"]


class TestSweeperConfig:
    @pytest.mark.parametrize("fraction", [0.0, -0.5, 1.5])
    def test_invalid_batch_fraction(self, fraction: float) -> None:
        with pytest.raises(ValueError, match="batch_fraction"):
            ReclaimSweeper(batch_fraction=fraction)

    def test_count_by_tier(self) -> None:
        entries = make_entries([
            ("e1", EAGER, 0),
            ("p1", PERSISTENT, 1),
            ("p2", PERSISTENT, 2),
        ])
        assert count_by_tier(entries) == {EAGER: 1, PERSISTENT: 2}
