#!/usr/bin/env python3
"""Enumerate existing version tags and compute the next date-coded version."""

from __future__ import annotations

import datetime as _dt
import logging
from typing import Iterable, List

from utils.release_errors import DuplicateVersionError, MalformedTagError
from utils.release_models import VersionTag

logger = logging.getLogger(__name__)


def scan_tags(raw_names: Iterable[str]) -> List[VersionTag]:
    """Parse raw tag names, skipping anything outside the vYY.M.D.N scheme.

    Historical tags may predate the scheme, so a malformed tag is logged and
    dropped instead of aborting the run.
    """
    tags: List[VersionTag] = []
    for name in raw_names or []:
        if not name or not name.strip():
            continue
        try:
            tags.append(VersionTag.parse(name))
        except MalformedTagError as e:
            logger.warning(f"Skipping tag: {e}")
    return sorted(set(tags))


def compute_next_version(existing_tags: Iterable[VersionTag], today: _dt.date) -> VersionTag:
    """Return today's next version tag.

    The sequence is one more than the numeric maximum among tags sharing
    today's (year, month, day), or 1 when there are none.
    """
    key = VersionTag.date_key_for(today)
    same_day = [t.sequence for t in existing_tags if t.date_key == key]
    sequence = max(same_day) + 1 if same_day else 1
    version = VersionTag.for_date(today, sequence)
    logger.info(f"Next version: {version} ({len(same_day)} earlier release(s) today)")
    return version


def ensure_unpublished(version: VersionTag, raw_names: Iterable[str]) -> None:
    """Raise if the computed tag name is already taken."""
    if str(version) in {n.strip() for n in raw_names or []}:
        raise DuplicateVersionError(f"Tag {version} already exists")
