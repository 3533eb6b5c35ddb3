#!/usr/bin/env python3
from __future__ import annotations

from typing import Dict, Iterable, List

from utils.release_models import Category, ChangeRecord

_BY_PREFIX: Dict[str, Category] = {c.value: c for c in Category if c is not Category.OTHER}


def classify(record: ChangeRecord) -> Category:
    """Map a record's declared type prefix to a category.

    Total: a missing colon or an unknown prefix is ``Category.OTHER``.
    """
    declared = record.declared_type
    if not declared:
        return Category.OTHER
    return _BY_PREFIX.get(declared, Category.OTHER)


def is_typed(title: str) -> bool:
    return classify(ChangeRecord(identifier="-", title=title or "")) is not Category.OTHER


def clean_title(record: ChangeRecord) -> str:
    """Title with a recognized type prefix removed."""
    title = record.title.strip()
    if classify(record) is Category.OTHER:
        return title
    cleaned = title.split(":", 1)[1].strip()
    return cleaned or title


def group_by_category(records: Iterable[ChangeRecord]) -> Dict[Category, List[ChangeRecord]]:
    # dict keeps discovery order within each category
    grouped: Dict[Category, List[ChangeRecord]] = {}
    for rec in records or []:
        grouped.setdefault(classify(rec), []).append(rec)
    return grouped
