"""
Command-line driver for tiercache.

Replays a YAML script of cache operations against a fresh cache and
prints the outcome, which is handy for exploring how thresholds and
batch fractions behave under a given pressure sequence.

Usage:
    tiercache replay workload.yaml [--capacity 8] [--threshold medium]
    tiercache metrics workload.yaml

Script format (a YAML list)::

    - {op: put, key: a, value: 1, tier: eager}
    - {op: get, key: a}
    - {op: pressure, level: high}
    - {op: sweep}
    - {op: remove, key: a}
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from tiercache.cache import TieredCache
from tiercache.config import get_settings
from tiercache.exceptions import InvalidConfigurationError, TierCacheException
from tiercache.observability.metrics import ReclaimMetrics

logger = logging.getLogger(__name__)


def load_script(path: Path) -> List[Dict[str, Any]]:
    """Read a replay script.

    Raises:
        InvalidConfigurationError: If the file is missing, unparsable, or
            not a list of mappings.
    """
    if not path.exists():
        raise InvalidConfigurationError(f"Script not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(f"Cannot parse script {path}: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(s, dict) for s in data):
        raise InvalidConfigurationError(
            f"Script {path} must be a list of operation mappings"
        )
    return data


def apply_step(cache: TieredCache, step: Dict[str, Any]) -> Dict[str, Any]:
    """Apply one script step and describe what happened."""
    op = step.get("op")
    if op == "put":
        cache.put(step["key"], step.get("value"), step.get("tier", "persistent"))
        return {"op": op, "key": step["key"], "size": cache.size()}
    if op == "get":
        result = cache.lookup(step["key"])
        return {"op": op, "key": step["key"], "hit": result.hit, "value": result.value}
    if op == "remove":
        return {"op": op, "key": step["key"], "removed": cache.remove(step["key"])}
    if op == "pressure":
        cache.set_pressure(step["level"])
        return {"op": op, "level": cache.pressure, "size": cache.size()}
    if op == "sweep":
        return {"op": op, "reclaimed": cache.force_sweep()}
    raise InvalidConfigurationError(f"Unknown script op: {op!r}")


def replay(
    steps: List[Dict[str, Any]],
    cache: TieredCache,
) -> List[Dict[str, Any]]:
    """Apply every step in order, returning per-step outcomes."""
    logger.debug("Replaying script", extra={"step_count": len(steps)})
    outcomes = []
    for i, step in enumerate(steps):
        try:
            outcomes.append(apply_step(cache, step))
        except KeyError as exc:
            raise InvalidConfigurationError(
                f"Step {i} ({step.get('op')!r}) is missing field {exc}"
            ) from exc
    return outcomes


def _build_cache(args: argparse.Namespace, metrics: ReclaimMetrics) -> TieredCache:
    return TieredCache(
        capacity=args.capacity,
        persistent_reclaim_threshold=args.threshold,
        batch_fraction=args.batch_fraction,
        metrics=metrics,
    )


def cmd_replay(args: argparse.Namespace) -> None:
    """Replay a script and print per-step outcomes plus final stats."""
    metrics = ReclaimMetrics()
    cache = _build_cache(args, metrics)
    outcomes = replay(load_script(Path(args.script)), cache)
    print(json.dumps(
        {"steps": outcomes, "stats": cache.stats().model_dump()},
        indent=2,
        default=str,
    ))


def cmd_metrics(args: argparse.Namespace) -> None:
    """Replay a script and print Prometheus metrics."""
    metrics = ReclaimMetrics()
    cache = _build_cache(args, metrics)
    replay(load_script(Path(args.script)), cache)
    print(metrics.get_prometheus_metrics(), end="")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="tiercache - tiered reference cache workbench"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("replay", "Replay a script and print outcomes"),
        ("metrics", "Replay a script and print Prometheus metrics"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("script", help="YAML list of operations")
        p.add_argument("--capacity", type=int, default=None)
        p.add_argument("--threshold", default=None, help="low, medium or high")
        p.add_argument("--batch-fraction", type=float, default=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {"replay": cmd_replay, "metrics": cmd_metrics}
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        log_settings = get_settings().logging
        logging.basicConfig(level=log_settings.level, format=log_settings.format)
        handler(args)
    except (TierCacheException, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0
