"""
ReclaimMetrics -- operational counters for a tiered cache.

Counts lookups by tier and outcome, reclaimed entries by tier and
reason, sweeps, and pressure reports.  Renders everything in Prometheus
text exposition format for scraping or for the CLI.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tiercache.config import get_settings
from tiercache.exceptions import ObservabilityError

logger = logging.getLogger(__name__)


class MetricsConfig(BaseModel):
    """Configuration for :class:`ReclaimMetrics`.

    Attributes:
        enabled: Whether events are recorded at all.
        metric_prefix: Prefix for every exported metric name.
    """

    enabled: bool = True
    metric_prefix: str = Field(default="tiercache", min_length=1)


class ReclaimMetrics:
    """Thread-safe metric sink for :class:`~tiercache.cache.TieredCache`.

    All mutations acquire ``_lock``.  A disabled collector silently
    ignores every ``record_*`` call.

    Args:
        config: Optional configuration; settings defaults apply if omitted.
    """

    def __init__(self, config: Optional[MetricsConfig] = None) -> None:
        if config is None:
            _s = get_settings().observability
            config = MetricsConfig(
                enabled=_s.enabled,
                metric_prefix=_s.metric_prefix,
            )
        self._config = config
        self._lock = threading.Lock()

        # label_key -> count
        self._lookups: Dict[str, float] = defaultdict(float)
        self._reclaimed: Dict[str, float] = defaultdict(float)
        self._pressure_reports: Dict[str, float] = defaultdict(float)
        self._sweeps: float = 0.0
        self._pressure_level: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    # ------------------------------------------------------------------
    # Recording methods
    # ------------------------------------------------------------------

    def record_lookup(self, tier: Optional[str], hit: bool) -> None:
        """Record a lookup.  *tier* is ``None`` on a miss."""
        if not self._config.enabled:
            return
        outcome = "hit" if hit else "miss"
        key = f'tier="{tier or "none"}",outcome="{outcome}"'
        with self._lock:
            self._lookups[key] += 1

    def record_reclaim(self, tier: str, reason: str) -> None:
        """Record one reclaimed entry.

        Raises:
            ObservabilityError: If the labels cannot be recorded.
        """
        if not self._config.enabled:
            return
        try:
            key = f'tier="{str(tier)}",reason="{str(reason)}"'
            with self._lock:
                self._reclaimed[key] += 1
        except Exception as exc:
            raise ObservabilityError(
                f"Failed to record reclaim event: {exc}"
            ) from exc

        logger.debug(
            "Reclaim recorded",
            extra={"tier": tier, "reason": reason},
        )

    def record_sweep(self) -> None:
        """Record that a sweep pass ran."""
        if not self._config.enabled:
            return
        with self._lock:
            self._sweeps += 1

    def record_pressure(self, level: str) -> None:
        """Record a pressure report from the host."""
        if not self._config.enabled:
            return
        with self._lock:
            self._pressure_reports[f'level="{level}"'] += 1
            self._pressure_level = level

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def total_lookups(self, outcome: Optional[str] = None) -> int:
        """Lookups recorded, optionally restricted to ``hit`` or ``miss``."""
        with self._lock:
            return int(sum(
                v for k, v in self._lookups.items()
                if outcome is None or f'outcome="{outcome}"' in k
            ))

    def total_reclaimed(self, reason: Optional[str] = None) -> int:
        """Reclaimed entries recorded, optionally for one reason."""
        with self._lock:
            return int(sum(
                v for k, v in self._reclaimed.items()
                if reason is None or f'reason="{reason}"' in k
            ))

    @property
    def sweeps(self) -> int:
        with self._lock:
            return int(self._sweeps)

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict copy of every counter."""
        with self._lock:
            return {
                "lookups": dict(self._lookups),
                "reclaimed": dict(self._reclaimed),
                "pressure_reports": dict(self._pressure_reports),
                "sweeps": int(self._sweeps),
                "pressure_level": self._pressure_level,
            }

    def reset(self) -> None:
        """Zero all counters."""
        with self._lock:
            self._lookups.clear()
            self._reclaimed.clear()
            self._pressure_reports.clear()
            self._sweeps = 0.0
            self._pressure_level = None

    # ------------------------------------------------------------------
    # Prometheus exposition
    # ------------------------------------------------------------------

    def get_prometheus_metrics(self) -> str:
        """Return all metrics in Prometheus text exposition format.

        Returns:
            Multi-line string suitable for ``/metrics`` endpoint scraping.
        """
        p = self._config.metric_prefix
        lines: List[str] = []

        with self._lock:
            lines.append(f"# HELP {p}_lookups_total Cache lookups by tier and outcome")
            lines.append(f"# TYPE {p}_lookups_total counter")
            for labels, val in sorted(self._lookups.items()):
                lines.append(f"{p}_lookups_total{{{labels}}} {val}")

            lines.append(f"# HELP {p}_reclaimed_total Reclaimed entries by tier and reason")
            lines.append(f"# TYPE {p}_reclaimed_total counter")
            for labels, val in sorted(self._reclaimed.items()):
                lines.append(f"{p}_reclaimed_total{{{labels}}} {val}")

            lines.append(f"# HELP {p}_sweeps_total Sweep passes run")
            lines.append(f"# TYPE {p}_sweeps_total counter")
            lines.append(f"{p}_sweeps_total {self._sweeps}")

            lines.append(f"# HELP {p}_pressure_reports_total Pressure reports by level")
            lines.append(f"# TYPE {p}_pressure_reports_total counter")
            for labels, val in sorted(self._pressure_reports.items()):
                lines.append(f"{p}_pressure_reports_total{{{labels}}} {val}")

            if self._pressure_level is not None:
                lines.append(f"# HELP {p}_pressure_level Last reported pressure level")
                lines.append(f"# TYPE {p}_pressure_level gauge")
                for level in ("low", "medium", "high"):
                    active = 1 if level == self._pressure_level else 0
                    lines.append(f'{p}_pressure_level{{level="{level}"}} {active}')

        return "\n".join(lines) + "\n"
