#!/usr/bin/env python3
"""Opt-in retry wrapper for calls that fail with retryable release errors."""

from __future__ import annotations

import logging
import time
from typing import Callable, Any, Iterable, Optional

from utils.release_errors import RETRYABLE_CODES, TransientNetworkError

logger = logging.getLogger(__name__)


def classify_exc(exc: Exception) -> str:
    # only transient errors are ever retryable, whatever code they carry
    if not isinstance(exc, TransientNetworkError):
        return "FATAL"
    return exc.code


def with_retries(
    fn: Callable[[], Any],
    *,
    max_attempts: int,
    backoff_s: float,
    retry_on: Iterable[str] = RETRYABLE_CODES,
    classify: Callable[[Exception], str] = classify_exc,
    sleep: Optional[Callable[[float], None]] = None,
) -> Any:
    """Call ``fn`` up to ``max_attempts`` times with exponential backoff.

    Only exceptions whose code is in ``retry_on`` are retried; anything else,
    or the last failure, propagates unchanged.
    """
    sleep = sleep or time.sleep
    retry_on = set(retry_on)
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            code = classify(e)
            if code in retry_on and attempt + 1 < max_attempts:
                delay = backoff_s * (2 ** attempt)
                logger.warning(f"Attempt {attempt + 1}/{max_attempts} failed ({code}): {e}; retrying in {delay:.1f}s")
                sleep(delay)
                attempt += 1
                continue
            raise
