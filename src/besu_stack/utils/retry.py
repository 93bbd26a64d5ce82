# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/utils/retry.py

import time
import functools
from typing import Callable, Optional


class RetryError(RuntimeError):
    pass


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations.

    retries: number of attempts
    delay: seconds between attempts
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    sleep(delay)
            raise RetryError(f"{fn.__name__} failed after {retries} retries") from last_exc
        return wrapper
    return decorator


def poll(
    done: Callable[[], bool],
    *,
    timeout: float,
    interval: float,
    progress_every: float = 0,
    on_progress: Optional[Callable[[float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[bool, float]:
    """
    Call *done* every *interval* seconds until it returns True or *timeout*
    elapses. Elapsed time is counted in intervals, not wall clock, so a fake
    sleep makes this deterministic.

    Returns (succeeded, elapsed_seconds).
    """
    elapsed = 0.0
    since_progress = 0.0
    while elapsed < timeout:
        if done():
            return True, elapsed
        sleep(interval)
        elapsed += interval
        since_progress += interval
        if on_progress and progress_every and since_progress >= progress_every:
            on_progress(elapsed)
            since_progress = 0.0
    return done(), elapsed
