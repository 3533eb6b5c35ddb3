#!/usr/bin/env python3
"""Append-only audit log of release attempts."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Dict, Optional

from configs.config import Config


def audit_release_attempt(
    repo: str,
    tag: str,
    result: str,
    details: Optional[Dict] = None,
    root: Optional[str] = None,
) -> Path:
    """Append a single JSON line with safe metadata and return the log path.

    Fields: ts, repo, tag, result, details. ``result`` is one of PUBLISHED,
    FAILED, DRY_RUN or SKIPPED.
    """
    path = Path(root or Config.AUDIT_ROOT) / f"{repo.replace('/', '#')}.audit.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "ts": int(time.time()),
        "repo": repo,
        "tag": tag,
        "result": result,
        "details": details or {},
    }
    line = json.dumps(record, separators=(",", ":"), default=str) + "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)
        f.flush()
        os.fsync(f.fileno())
    return path
