"""Capped exponential backoff with jitter."""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from flipflow.errors import is_retryable_error

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_retries: int = 3
    jitter: float = 0.1
    # Replaced in tests so nothing actually waits
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    @classmethod
    def from_config(cls, config, **overrides) -> 'RetryPolicy':
        values = dict(
            base_delay=config.get('RETRY_BASE_DELAY', 1.0),
            multiplier=config.get('RETRY_MULTIPLIER', 2.0),
            max_delay=config.get('RETRY_MAX_DELAY', 30.0),
            max_retries=config.get('RETRY_MAX_RETRIES', 3),
            jitter=config.get('RETRY_JITTER', 0.1),
        )
        values.update(overrides)
        return cls(**values)

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-based)."""
        delay = min(self.base_delay * self.multiplier ** attempt, self.max_delay)
        if self.jitter:
            delay += random.random() * self.jitter * delay
        return delay

    def call(self, fn: Callable, should_retry: Optional[Callable[[BaseException], bool]] = None,
             on_retry: Optional[Callable[[int, BaseException, float], None]] = None):
        """
        Call ``fn`` until it succeeds or the retry budget is spent.

        The last exception is re-raised unchanged. Errors that
        ``should_retry`` rejects (by default auth, permission, validation and
        not-found) are raised after the first attempt.
        """
        should_retry = should_retry or is_retryable_error
        attempt = 0
        while True:
            try:
                return fn()
            except Exception as e:
                if attempt >= self.max_retries or not should_retry(e):
                    raise
                delay = self.delay_for(attempt)
                logger.info(f"RetryPolicy: attempt {attempt + 1} failed ({e}), retrying in {delay:.2f}s")
                if on_retry:
                    on_retry(attempt, e, delay)
                self.sleep(delay)
                attempt += 1
