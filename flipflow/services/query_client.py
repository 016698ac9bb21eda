"""
Query cache with stale/gc times, prefix invalidation and optimistic mutations.

Entries live in the Flask-Caching backend (gc time is the entry timeout), so
values are copied on every read: a snapshot taken before an optimistic edit
is never mutated by the edit itself.

Prefix matching runs over the keys this client has written. The index is
per process, so prefix invalidation assumes a single-process backend such as
the default SimpleCache; entries that expire are dropped from it on read.

Usage:
    queries.fetch_query(query_keys.flipbooks_by_user(uid), load, QUERY_OPTIONS['user_flipbooks'])
    queries.invalidate_queries(query_keys.FLIPBOOKS)
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from cachelib import SimpleCache

from flipflow.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

KEY_PREFIX = 'flipflow:query:'


@dataclass(frozen=True)
class QueryOptions:
    stale_time: float  # seconds
    gc_time: float  # seconds
    retry: int


QUERY_OPTIONS = {
    'default': QueryOptions(stale_time=5 * 60, gc_time=10 * 60, retry=3),
    'profile': QueryOptions(stale_time=10 * 60, gc_time=30 * 60, retry=3),
    'flipbooks': QueryOptions(stale_time=5 * 60, gc_time=10 * 60, retry=3),
    'realtime': QueryOptions(stale_time=30, gc_time=2 * 60, retry=2),
    'user_flipbooks': QueryOptions(stale_time=30, gc_time=10 * 60, retry=2),
}

MUTATION_RETRY = {'max_retries': 2, 'max_delay': 5.0, 'jitter': 0.0}


def _cache_key(key: Tuple) -> str:
    return KEY_PREFIX + '/'.join(str(part) for part in key)


class QueryClient:
    """Keyed cache of remote reads, shared by the services."""

    def __init__(self, store=None, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store if store is not None else SimpleCache()
        self.clock = clock
        self.sleep = sleep
        self.retry_defaults: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._keys: Dict[Tuple, str] = {}

    def init_app(self, app, cache=None):
        if cache is not None:
            self.store = app.extensions['cache'][cache]
        self.retry_defaults = {
            'base_delay': app.config.get('RETRY_BASE_DELAY', 1.0),
            'multiplier': app.config.get('RETRY_MULTIPLIER', 2.0),
            'max_delay': app.config.get('RETRY_MAX_DELAY', 30.0),
            'jitter': app.config.get('RETRY_JITTER', 0.1),
        }

    def retry_policy(self, **overrides) -> RetryPolicy:
        values = dict(self.retry_defaults)
        values.update(overrides)
        return RetryPolicy(sleep=self.sleep, **values)

    # Reads

    def _entry(self, key: Tuple) -> Optional[Dict[str, Any]]:
        entry = self.store.get(_cache_key(key))
        if entry is None:
            # expired or evicted by the backend
            with self._lock:
                self._keys.pop(tuple(key), None)
        return entry

    def get_query_data(self, key: Tuple, default=None):
        entry = self._entry(key)
        return default if entry is None else entry['data']

    def is_stale(self, key: Tuple, options: Optional[QueryOptions] = None) -> bool:
        entry = self._entry(key)
        if entry is None or entry['invalidated']:
            return True
        stale_time = (options or QUERY_OPTIONS['default']).stale_time
        return self.clock() - entry['updated_at'] >= stale_time

    def fetch_query(self, key: Tuple, fn: Callable[[], Any], options: Optional[QueryOptions] = None):
        """
        Return cached data while fresh, otherwise call ``fn`` with retry and
        cache the result.

        Errors from ``fn`` propagate once retries are spent; cached data is
        left untouched.
        """
        options = options or QUERY_OPTIONS['default']
        entry = self._entry(key)
        if entry is not None and not entry['invalidated'] \
                and self.clock() - entry['updated_at'] < options.stale_time:
            return entry['data']

        logger.debug(f"QueryClient: fetching {key}")
        data = self.retry_policy(max_retries=options.retry).call(fn)
        self.set_query_data(key, data, options)
        return data

    # Writes

    def set_query_data(self, key: Tuple, value, options: Optional[QueryOptions] = None):
        """Store ``value`` under ``key``; a callable receives the current data."""
        options = options or QUERY_OPTIONS['default']
        with self._lock:
            if callable(value):
                value = value(self.get_query_data(key))
            self.store.set(_cache_key(key), {
                'data': value,
                'updated_at': self.clock(),
                'invalidated': False,
                'gc_time': options.gc_time,
            }, timeout=int(options.gc_time))
            self._keys[tuple(key)] = _cache_key(key)
        return value

    def _matching(self, prefix: Tuple):
        prefix = tuple(prefix)
        return [k for k in self._keys if k[:len(prefix)] == prefix]

    def invalidate_queries(self, prefix: Tuple) -> int:
        """Mark every query under ``prefix`` stale. Returns the number touched."""
        touched = 0
        with self._lock:
            for key in self._matching(prefix):
                entry = self._entry(key)
                if entry is None:
                    self._keys.pop(key, None)
                    continue
                entry['invalidated'] = True
                self.store.set(self._keys[key], entry, timeout=int(entry['gc_time']))
                touched += 1
        logger.debug(f"QueryClient: invalidated {touched} queries under {prefix}")
        return touched

    def remove_queries(self, prefix: Tuple) -> int:
        with self._lock:
            keys = self._matching(prefix)
            for key in keys:
                self.store.delete(self._keys.pop(key))
        return len(keys)

    def clear(self):
        with self._lock:
            for cache_key in self._keys.values():
                self.store.delete(cache_key)
            self._keys.clear()

    # Mutations

    def mutate(self, mutation_fn: Callable[[Any], Any], variables=None, *,
               on_mutate: Optional[Callable] = None,
               on_error: Optional[Callable] = None,
               on_success: Optional[Callable] = None,
               on_settled: Optional[Callable] = None,
               retry: Optional[RetryPolicy] = None):
        """
        Run a remote write with optimistic local state.

        ``on_mutate(variables)`` applies the optimistic edit and returns a
        context (typically the snapshot to restore). On failure
        ``on_error(error, variables, context)`` rolls back and the error is
        re-raised. ``on_settled`` always runs last.
        """
        context = on_mutate(variables) if on_mutate else None
        policy = retry or self.retry_policy(**MUTATION_RETRY)
        try:
            result = policy.call(lambda: mutation_fn(variables))
        except Exception as e:
            logger.warning(f"QueryClient: mutation failed, rolling back: {e}")
            if on_error:
                on_error(e, variables, context)
            if on_settled:
                on_settled(None, e, variables, context)
            raise

        if on_success:
            on_success(result, variables, context)
        if on_settled:
            on_settled(result, None, variables, context)
        return result
