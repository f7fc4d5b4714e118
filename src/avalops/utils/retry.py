# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/utils/retry.py

import functools
import logging
import time
from typing import Callable, Optional

from ..errors import AvalopsError

log = logging.getLogger("avalops")


class RetryError(AvalopsError):
    def __init__(self, message: str, *, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


def retry(
    *,
    retries: int,
    delay: float,
    backoff: float = 1.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    when: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
):
    """
    Retry decorator for idempotent calls (object-store reads, listings, puts
    of the caller's own keys).

    retries: number of attempts
    delay: seconds before the second attempt
    backoff: multiplier applied to the delay after every failed attempt
    retry_on: exception types to retry
    when: extra predicate; an exception it rejects propagates unchanged
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            wait = delay
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    if when is not None and not when(exc):
                        raise
                    last_exc = exc
                    log.debug("%s attempt %d/%d failed: %s", fn.__name__, attempt, retries, exc)
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    time.sleep(wait)
                    wait *= backoff
            raise RetryError(f"{fn.__name__} failed after {retries} attempts: {last_exc}", attempts=retries) from last_exc
        return wrapper
    return decorator
