"""
Entitlement Cache - in-process TTL cache of subscription lookups.

Provides:
- EntitlementCache: (customer_id, product_id) -> subscribed, with a fixed TTL
- Lazy expiry on read plus a periodic sweep of stale entries
- Explicit lifecycle (start / close) owned by the service container

Negative results are cached exactly like positive ones so ineligible users
do not hit the billing provider on every request.

Keys are (customer_id, product_id) tuples, so ids containing any delimiter
can never collide.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 30
DEFAULT_SWEEP_INTERVAL_SECONDS = 300

CacheKey = Tuple[str, str]


@dataclass(frozen=True)
class CachedEntitlement:
    """Cached subscription fact for one (customer, product) pair."""

    subscribed: bool
    cached_at: float

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return now - self.cached_at > ttl_seconds


class EntitlementCache:
    """
    Thread-safe TTL cache shielding the billing provider.

    Usage:
        cache = EntitlementCache(ttl_seconds=30)
        cache.start()

        subscribed, fresh = cache.get(customer_id, product_id)
        if not fresh:
            subscribed = lookup_billing_provider(...)
            cache.put(customer_id, product_id, subscribed)

        cache.close()
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl_seconds = ttl_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, CachedEntitlement] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, customer_id: str, product_id: str) -> Tuple[bool, bool]:
        """
        Look up a cached subscription fact.

        Returns:
            (subscribed, is_fresh). A miss or an entry older than the TTL
            yields (False, False) and the caller must query the provider.
        """
        key = (customer_id, product_id)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Entitlement cache miss", extra={
                    "customer_id": customer_id, "product_id": product_id,
                })
                return False, False
            if entry.is_expired(self._ttl_seconds, now):
                del self._entries[key]
                logger.debug("Entitlement cache entry expired", extra={
                    "customer_id": customer_id, "product_id": product_id,
                })
                return False, False
            return entry.subscribed, True

    def put(self, customer_id: str, product_id: str, subscribed: bool) -> None:
        """Overwrite the entry with the current time, negative results included."""
        with self._lock:
            self._entries[(customer_id, product_id)] = CachedEntitlement(
                subscribed=bool(subscribed),
                cached_at=self._clock(),
            )

    def invalidate(self, customer_id: str, product_id: Optional[str] = None) -> int:
        """Drop one pair, or every product for a customer when product_id is None."""
        with self._lock:
            if product_id is not None:
                return 1 if self._entries.pop((customer_id, product_id), None) else 0
            keys = [k for k in self._entries if k[0] == customer_id]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove every stale entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            stale = [
                key for key, entry in self._entries.items()
                if entry.is_expired(self._ttl_seconds, now)
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Swept entitlement cache", extra={"removed": len(stale)})
        return len(stale)

    def start(self) -> None:
        """Start the background sweeper thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        if self._sweep_interval_seconds <= 0:
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper,
            name="entitlement-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.info("Entitlement cache sweeper started", extra={
            "ttl_seconds": self._ttl_seconds,
            "sweep_interval_seconds": self._sweep_interval_seconds,
        })

    def _run_sweeper(self) -> None:
        while not self._stop.wait(self._sweep_interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Entitlement cache sweep failed")

    def close(self) -> None:
        """Stop the sweeper and drop all entries."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
        self.clear()
        logger.info("Entitlement cache closed")
