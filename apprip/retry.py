"""
retry.py
Retry with exponential backoff, plus size validation of produced dump files.

Size checks cannot detect logical corruption; they reject the two common
silent failures: an auth error producing an empty stream, and a partial write
from a killed process (missing file).
"""
from __future__ import annotations
import logging, time
from pathlib import Path
from typing import Callable, Tuple, Type, TypeVar

from .types import Validation

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY = 5.0


def with_retry(
    action: Callable[[], T],
    max_attempts: int = DEFAULT_ATTEMPTS,
    initial_delay: float = DEFAULT_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    what: str = "action",
) -> T:
    """
    Run action up to max_attempts times. Between attempts sleep `delay`, then
    double it. Re-raise the last failure once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    delay = initial_delay
    attempt = 1
    while True:
        try:
            return action()
        except retry_on as e:
            if attempt >= max_attempts:
                log.error("%s: all %d attempts failed", what, max_attempts)
                raise
            log.warning(
                "%s: attempt %d/%d failed (%s), retrying in %ss",
                what, attempt, max_attempts, e, delay,
            )
            sleep(delay)
            delay *= 2
            attempt += 1


def validate_dump(path: Path, min_size: int, label: str = "database") -> Validation:
    if not path.is_file():
        log.error("Dump file does not exist: %s", path)
        return Validation.MISSING
    size = path.stat().st_size
    if size == 0:
        log.error("Dump file is empty (0 bytes): %s", label)
        return Validation.EMPTY
    if size < min_size:
        log.warning("Dump file suspiciously small (%d bytes < %d bytes): %s", size, min_size, label)
        return Validation.UNDERSIZED
    return Validation.OK
