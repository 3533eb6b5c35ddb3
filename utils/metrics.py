#!/usr/bin/env python3
"""Release run metrics, one JSON object per line in ``<METRICS_ROOT>/metrics.log``.

Two record kinds are written: ``counter`` (``incr``) and ``timer``
(``observe`` and ``Timer``). Labels are short scalars; ``None`` labels are
dropped and long strings clipped, so a stray release body never lands here.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict

from configs.config import Config

_MAX_LABEL_LEN = 120


def metrics_file() -> Path:
    root = Path(Config.METRICS_ROOT)
    root.mkdir(parents=True, exist_ok=True)
    return root / "metrics.log"


def _clean_labels(labels: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in labels.items():
        if value is None:
            continue
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        if isinstance(value, str) and len(value) > _MAX_LABEL_LEN:
            value = value[:_MAX_LABEL_LEN] + "…"
        cleaned[key] = value
    return cleaned


def emit(kind: str, name: str, value: Any, **labels) -> None:
    if not Config.METRICS_ENABLED:
        return
    record = {"ts": round(time.time(), 3), "kind": kind, "metric": name, "value": value}
    record.update(_clean_labels(labels))
    with open(metrics_file(), "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n")


def incr(name: str, value: int = 1, **labels) -> None:
    emit("counter", name, value, **labels)


def observe(name: str, seconds: float, **labels) -> None:
    emit("timer", name, round(seconds, 4), **labels)


class Timer:
    """Times a block and records ``<name>.latency_s``.

    The record carries ``ok``; a failing block also records ``error``, the
    release error code when there is one, else the exception class name.
    Exceptions are never suppressed.
    """

    def __init__(self, name: str, **labels):
        self.name = name
        self.labels = labels
        self.elapsed = 0.0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.elapsed = time.perf_counter() - self._started
        outcome: Dict[str, Any] = {"ok": exc_type is None}
        if exc_type is not None:
            outcome["error"] = getattr(exc, "code", None) or exc_type.__name__
        observe(f"{self.name}.latency_s", self.elapsed, **self.labels, **outcome)
        return False
