"""
Host-reported memory pressure.

The cache never measures memory itself.  The host application reports
one of three levels and the :class:`PressureSignal` answers whether
persistent entries are currently eligible for reclamation.
"""

import logging
from typing import Dict, Literal

logger = logging.getLogger(__name__)

PressureLevel = Literal["low", "medium", "high"]

PRESSURE_RANK: Dict[str, int] = {"low": 0, "medium": 1, "high": 2}


def validate_level(level: str) -> PressureLevel:
    """Normalise a pressure level name.

    Args:
        level: ``low``, ``medium`` or ``high`` (case-insensitive).

    Returns:
        The lower-cased level.

    Raises:
        ValueError: If *level* is not a known pressure level.
    """
    normalised = str(level).strip().lower()
    if normalised not in PRESSURE_RANK:
        raise ValueError(
            f"Unknown pressure level {level!r}; "
            f"expected one of {sorted(PRESSURE_RANK, key=PRESSURE_RANK.get)}"
        )
    return normalised  # type: ignore[return-value]


class PressureSignal:
    """Current pressure level plus the persistent-reclaim threshold.

    Transitions are unrestricted: any level may follow any other.

    Args:
        threshold: Minimum level at which persistent entries become
            eligible for reclamation.  Defaults to ``high``.
        level: Initial level.  Defaults to ``low``.
    """

    def __init__(self, threshold: str = "high", level: str = "low") -> None:
        self._threshold: PressureLevel = validate_level(threshold)
        self._level: PressureLevel = validate_level(level)

    @property
    def level(self) -> PressureLevel:
        return self._level

    @property
    def threshold(self) -> PressureLevel:
        return self._threshold

    def set(self, level: str) -> PressureLevel:
        """Replace the current level and return the previous one."""
        new_level = validate_level(level)
        previous = self._level
        self._level = new_level
        if previous != new_level:
            logger.debug(
                "Pressure level changed",
                extra={"previous": previous, "level": new_level},
            )
        return previous

    def eligible(self) -> bool:
        """Whether persistent entries may be reclaimed at the current level."""
        return PRESSURE_RANK[self._level] >= PRESSURE_RANK[self._threshold]

    def excess(self) -> int:
        """Level steps needed to bring pressure below the threshold.

        Zero when the current level is already below threshold.
        """
        if not self.eligible():
            return 0
        return PRESSURE_RANK[self._level] - PRESSURE_RANK[self._threshold] + 1

    def __repr__(self) -> str:
        return f"PressureSignal(level={self._level!r}, threshold={self._threshold!r})"
