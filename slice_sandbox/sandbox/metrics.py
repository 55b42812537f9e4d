"""
Tracks write-back outcomes in a JSONL log file.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_METRICS_FILE = "sync_metrics.jsonl"


def _metrics_path(state_dir: str) -> str:
    return os.path.join(state_dir, _METRICS_FILE)


def log_sync_metric(data: dict, state_dir: str) -> None:
    """Append a single sync metric entry to the JSONL log.

    Parameters
    ----------
    data:
        Metric fields to log (artifact, session, outcome, regions, error).
    state_dir:
        Directory holding the metrics file.
    """
    path = _metrics_path(state_dir)
    entry = {"timestamp": datetime.now(timezone.utc).isoformat()}
    entry.update(data)

    try:
        os.makedirs(state_dir, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError as exc:
        logger.warning("[Metrics] Failed to write metrics: %s", exc)


def read_sync_stats(state_dir: str, last_n: int = 50) -> dict:
    """Compute rolling statistics from the metrics log.

    Returns
    -------
    dict
        total_syncs, success_rate, dropped, failed, outcomes, errors.
    """
    path = _metrics_path(state_dir)

    entries: list[dict] = []
    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        try:
                            entries.append(json.loads(line))
                        except json.JSONDecodeError:
                            continue
        except OSError:
            pass

    entries = entries[-last_n:]

    if not entries:
        return {
            "total_syncs": 0,
            "success_rate": 0.0,
            "dropped": 0,
            "failed": 0,
            "outcomes": {},
            "errors": {},
        }

    outcomes = Counter(e.get("outcome", "unknown") for e in entries)
    errors = Counter(e["error"] for e in entries if e.get("error"))
    attempted = outcomes["applied"] + outcomes["failed"]

    return {
        "total_syncs": len(entries),
        "success_rate": outcomes["applied"] / attempted * 100 if attempted else 0.0,
        "dropped": outcomes["dropped"],
        "failed": outcomes["failed"],
        "outcomes": dict(outcomes.most_common()),
        "errors": dict(errors.most_common()),
    }
