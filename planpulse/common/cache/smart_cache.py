"""In-memory TTL cache with stale-while-revalidate and retrying fetches.

``SmartCache`` memoizes expensive computations (report roll-ups) keyed by
string. Entries expire after a time-to-live measured in seconds. Misses run a
fetcher with bounded retries, concurrent misses on one key share a single
fetch, and entries may declare dependent keys that are invalidated with them.

Size is bounded approximately: every entry is weighed by the length of its
JSON encoding, and once the total exceeds ``max_size`` the least valuable
entries (scored from recency and hit count) are evicted down to 80%.

The cache can optionally be persisted to disk as JSON, encrypted with Fernet
when a passphrase is supplied.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Iterable, Optional, Pattern, Tuple, Type, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from tenacity import Retrying, retry_if_not_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_STALE_AFTER_SECONDS = 2 * 60
DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
EVICTION_TARGET_RATIO = 0.8
FALLBACK_ENTRY_SIZE = 1024
SNAPSHOT_VERSION = 1
KDF_ITERATIONS = 480000


class CacheEntry:
    """A cached value plus bookkeeping."""

    __slots__ = ("value", "timestamp", "ttl", "hits", "last_accessed", "size", "dependencies")

    def __init__(self, value: Any, timestamp: float, ttl: float, size: int, dependencies: Iterable[str] = ()):
        self.value = value
        self.timestamp = timestamp
        self.ttl = ttl
        self.hits = 0
        self.last_accessed = timestamp
        self.size = size
        self.dependencies = tuple(dependencies)

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl

    def score(self) -> float:
        # Lower scores are evicted first
        return self.last_accessed * 0.7 + self.hits * 0.3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "hits": self.hits,
            "last_accessed": self.last_accessed,
            "dependencies": list(self.dependencies),
        }


def derive_key(passphrase: str, namespace: str) -> bytes:
    """Derive a Fernet key from a passphrase, salted with the cache namespace."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=namespace.encode("utf-8"),
        iterations=KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


def estimate_size(value: Any) -> int:
    """Approximate the memory weight of a value from its JSON encoding."""
    try:
        return len(json.dumps(value, default=str).encode("utf-8"))
    except (TypeError, ValueError):
        return FALLBACK_ENTRY_SIZE


class SmartCache:
    """Thread-safe TTL cache.

    Args:
        namespace: Logical name, used in logs and as the key-derivation salt
        default_ttl: Seconds an entry stays fresh when ``set`` gets no ttl
        stale_after: Age in seconds after which a ``stale_while_revalidate``
            hit schedules a background refresh
        max_size: Approximate bound in bytes
        retry_attempts: Total fetch attempts on a miss
        retry_delay: Base delay in seconds; attempt n waits ``retry_delay * 2**(n-1)``
        persist_path: Optional JSON snapshot location
        encryption_key: Optional passphrase; encrypts the snapshot when set
        clock: Time source returning seconds, injectable for tests
        non_retryable: Exception types raised by fetchers that are re-raised at once
    """

    def __init__(
        self,
        namespace: str = "planpulse",
        default_ttl: float = DEFAULT_TTL_SECONDS,
        stale_after: float = DEFAULT_STALE_AFTER_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE_BYTES,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        persist_path: Optional[str] = None,
        encryption_key: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        max_workers: int = 2,
        non_retryable: Tuple[Type[BaseException], ...] = (),
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")

        self.namespace = namespace
        self.default_ttl = default_ttl
        self.stale_after = stale_after
        self.max_size = max_size
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.persist_path = Path(persist_path) if persist_path else None
        self._fernet = Fernet(derive_key(encryption_key, namespace)) if encryption_key else None
        self._clock = clock
        self.non_retryable = tuple(non_retryable)

        self._entries: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, Future] = {}
        self._hits = 0
        self._misses = 0
        self._lock = RLock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"{namespace}-revalidate")

        if self.persist_path is not None:
            self.load()

    # Basic access

    def get(self, key: str) -> Optional[Any]:
        """Return the fresh value for ``key`` or None.

        Expired entries are dropped on read.
        """
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                return None
            entry.hits += 1
            entry.last_accessed = now
            self._hits += 1
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        dependencies: Optional[Iterable[str]] = None,
    ) -> None:
        """Store ``value`` under ``key``.

        Args:
            ttl: Seconds until expiry, defaults to ``default_ttl``
            dependencies: Keys invalidated together with this one
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        size = estimate_size(value)
        with self._lock:
            now = self._clock()
            previous = self._entries.pop(key, None)
            current = self._total_size()
            if current + size > self.max_size:
                self._evict(current + size)
            entry = CacheEntry(value, now, ttl, size, dependencies or ())
            if previous is not None:
                entry.hits = previous.hits
            self._entries[key] = entry

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    # Fetch path

    def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Any],
        ttl: Optional[float] = None,
        stale_while_revalidate: bool = False,
        dependencies: Optional[Iterable[str]] = None,
    ) -> Any:
        """Return the cached value or compute it with ``fetcher``.

        Concurrent callers missing on the same key wait for one shared fetch.
        With ``stale_while_revalidate`` an entry older than ``stale_after``
        is served as-is while a refresh runs in the background.
        """
        owner = False
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and not entry.is_expired(now):
                entry.hits += 1
                entry.last_accessed = now
                self._hits += 1
                if (
                    stale_while_revalidate
                    and entry.age(now) > self.stale_after
                    and key not in self._pending
                ):
                    self._schedule_revalidation(key, fetcher, ttl, dependencies)
                return entry.value

            if entry is not None:
                del self._entries[key]
            self._misses += 1

            future = self._pending.get(key)
            if future is None:
                future = Future()
                self._pending[key] = future
                owner = True

        if not owner:
            logger.debug("Joining in-flight fetch for %s", key)
            return future.result()

        try:
            value = self._fetch_with_retry(key, fetcher)
        except Exception as exc:
            with self._lock:
                if self._pending.get(key) is future:
                    del self._pending[key]
            future.set_exception(exc)
            raise

        self._complete(key, future, value, ttl, dependencies)
        return value

    def _complete(self, key, future, value, ttl, dependencies) -> None:
        with self._lock:
            # An invalidate() during the fetch detaches the future; drop the result then
            if self._pending.get(key) is future:
                del self._pending[key]
                self.set(key, value, ttl=ttl, dependencies=dependencies)
        future.set_result(value)

    def _fetch_with_retry(self, key: str, fetcher: Callable[[], Any]) -> Any:
        def _log_retry(retry_state):
            logger.warning(
                "Retry %d/%d for %s after error: %s",
                retry_state.attempt_number,
                self.retry_attempts,
                key,
                retry_state.outcome.exception() if retry_state.outcome else None,
            )

        retryer = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            retry=retry_if_not_exception_type(self.non_retryable),
            wait=wait_exponential(multiplier=self.retry_delay, min=0, max=max(self.retry_delay, 0) * 8),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retryer(fetcher)

    def _schedule_revalidation(self, key, fetcher, ttl, dependencies) -> None:
        """Start a background refresh. Caller holds the lock."""
        future: Future = Future()
        self._pending[key] = future
        logger.debug("Revalidating stale entry %s", key)
        self._executor.submit(self._revalidate, key, fetcher, ttl, dependencies, future)

    def _revalidate(self, key, fetcher, ttl, dependencies, future: Future) -> None:
        try:
            value = self._fetch_with_retry(key, fetcher)
        except Exception as exc:
            logger.warning("Background revalidation failed for %s, keeping stale value: %s", key, exc)
            with self._lock:
                if self._pending.get(key) is future:
                    del self._pending[key]
            future.set_exception(exc)
            return
        self._complete(key, future, value, ttl, dependencies)

    def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        """Block until in-flight fetches finish. Used by tests and shutdown."""
        with self._lock:
            futures = list(self._pending.values())
        for future in futures:
            try:
                future.result(timeout=timeout)
            except Exception:
                # Failures were already logged by the fetching thread
                continue

    # Invalidation

    def invalidate(self, key: str) -> bool:
        """Remove ``key`` and, recursively, the keys it declared as dependencies.

        Returns True if ``key`` itself was cached.
        """
        with self._lock:
            return self._invalidate(key, set())

    def _invalidate(self, key: str, visited: set) -> bool:
        if key in visited:
            return False
        visited.add(key)
        entry = self._entries.pop(key, None)
        self._pending.pop(key, None)
        if entry is not None:
            for dependent in entry.dependencies:
                self._invalidate(dependent, visited)
        return entry is not None

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Invalidate every key matching ``pattern`` (``re.search`` semantics).

        Returns the number of matching keys that were removed.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            keys = [key for key in self._entries if regex.search(key)]
            visited: set = set()
            removed = 0
            for key in keys:
                if self._invalidate(key, visited):
                    removed += 1
            for key in [k for k in self._pending if regex.search(k)]:
                self._pending.pop(key, None)
        if removed:
            logger.debug("Invalidated %d cache entries matching %s", removed, regex.pattern)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._pending.clear()
            self._hits = 0
            self._misses = 0

    def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    # Size management

    def _total_size(self) -> int:
        return sum(entry.size for entry in self._entries.values())

    def _evict(self, projected_size: int) -> int:
        """Evict lowest-scoring entries until usage is at most 80% of max_size.

        Caller holds the lock.
        """
        target = self.max_size * EVICTION_TARGET_RATIO
        evicted = 0
        freed = 0
        for key, entry in sorted(self._entries.items(), key=lambda item: item[1].score()):
            if projected_size - freed <= target:
                break
            del self._entries[key]
            freed += entry.size
            evicted += 1
        if evicted:
            logger.info("Evicted %d cache entries (%d KB freed)", evicted, freed // 1024)
        return evicted

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            size = self._total_size()
            return {
                "namespace": self.namespace,
                "entries": len(self._entries),
                "size": size,
                "max_size": self.max_size,
                "memory_usage": size / self.max_size if self.max_size else 0.0,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
                "pending": len(self._pending),
                "encrypted": self._fernet is not None,
            }

    def keys(self) -> list:
        with self._lock:
            return list(self._entries)

    # Persistence

    def save(self) -> int:
        """Write unexpired, JSON-serializable entries to ``persist_path``.

        Returns the number of entries written.
        """
        if self.persist_path is None:
            return 0
        with self._lock:
            now = self._clock()
            entries = {}
            for key, entry in self._entries.items():
                if entry.is_expired(now):
                    continue
                try:
                    json.dumps(entry.value)
                except (TypeError, ValueError):
                    logger.debug("Skipping non-serializable cache entry %s", key)
                    continue
                entries[key] = entry.to_dict()
        payload = json.dumps({"version": SNAPSHOT_VERSION, "namespace": self.namespace, "entries": entries}).encode("utf-8")
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)
        self.persist_path.parent.mkdir(parents=True, exist_ok=True)
        self.persist_path.write_bytes(payload)
        logger.info("Persisted %d cache entries to %s", len(entries), self.persist_path)
        return len(entries)

    def load(self) -> int:
        """Restore unexpired entries from ``persist_path``.

        A missing, undecryptable or malformed snapshot is logged and ignored.
        """
        if self.persist_path is None or not self.persist_path.exists():
            return 0
        try:
            raw = self.persist_path.read_bytes()
            if self._fernet is not None:
                raw = self._fernet.decrypt(raw)
            payload = json.loads(raw.decode("utf-8"))
            entries = payload["entries"]
            if not isinstance(entries, dict):
                raise TypeError(f"entries must be an object, not {type(entries).__name__}")
        except (OSError, InvalidToken, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable cache snapshot at %s: %s", self.persist_path, exc)
            return 0

        loaded = 0
        with self._lock:
            now = self._clock()
            for key, data in entries.items():
                try:
                    if not isinstance(data, dict):
                        raise TypeError(type(data).__name__)
                    entry = CacheEntry(
                        data["value"],
                        float(data["timestamp"]),
                        float(data["ttl"]),
                        estimate_size(data["value"]),
                        data.get("dependencies") or (),
                    )
                    entry.hits = int(data.get("hits", 0))
                    entry.last_accessed = float(data.get("last_accessed", entry.timestamp))
                except (KeyError, TypeError, ValueError):
                    logger.debug("Skipping malformed cache snapshot entry %s", key)
                    continue
                if entry.is_expired(now):
                    continue
                self._entries[key] = entry
                loaded += 1
        logger.info("Loaded %d cache entries from %s", loaded, self.persist_path)
        return loaded

    def close(self) -> None:
        """Stop background refreshes and persist if configured."""
        self._executor.shutdown(wait=True)
        if self.persist_path is not None:
            self.save()


__all__ = ["SmartCache", "CacheEntry", "derive_key", "estimate_size"]
