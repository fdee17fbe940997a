"""In-memory rate limiter keyed by client IP."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitTier:
    """A request budget over a sliding window."""

    name: str
    max_requests: int
    window_seconds: int


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    general: RateLimitTier = field(default_factory=lambda: RateLimitTier("general", 100, 900))
    checkout: RateLimitTier = field(default_factory=lambda: RateLimitTier("checkout", 10, 3600))
    cleanup_interval_seconds: int = 300  # Cleanup expired entries every 5 minutes

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        """Create config from application settings."""
        from src.core.config import get_settings
        settings = get_settings()
        return cls(
            general=RateLimitTier(
                "general",
                settings.rate_limit_general_requests,
                settings.rate_limit_general_window_seconds,
            ),
            checkout=RateLimitTier(
                "checkout",
                settings.rate_limit_checkout_requests,
                settings.rate_limit_checkout_window_seconds,
            ),
        )

    @property
    def longest_window(self) -> int:
        return max(self.general.window_seconds, self.checkout.window_seconds)


@dataclass
class RequestRecord:
    """Record of requests for one client in one tier."""

    timestamps: list[float] = field(default_factory=list)

    def prune_old(self, window_seconds: int) -> None:
        """Remove timestamps older than the window."""
        cutoff = time.time() - window_seconds
        self.timestamps = [ts for ts in self.timestamps if ts > cutoff]

    def add_request(self) -> None:
        """Record a new request."""
        self.timestamps.append(time.time())

    def seconds_until_available(self, window_seconds: int, max_requests: int) -> int:
        """Calculate seconds until a new request slot is available."""
        if len(self.timestamps) < max_requests:
            return 0

        oldest_in_window = sorted(self.timestamps)[-max_requests]
        return max(0, int(oldest_in_window + window_seconds - time.time()) + 1)


class InMemoryRateLimitStorage:
    """Thread-safe in-memory rate limit storage with automatic cleanup."""

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self.config = config or RateLimitConfig()
        self._storage: dict[str, RequestRecord] = defaultdict(RequestRecord)
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Rate limiter cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Rate limiter cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        """Background loop to cleanup expired entries."""
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            count = await self.cleanup()
            if count > 0:
                logger.debug("Rate limiter cleaned up %d expired entries", count)

    async def check_and_increment(self, key: str, tier: RateLimitTier) -> tuple[bool, int, int]:
        """Check rate limit and increment if allowed.

        Args:
            key: Client identifier (IP address).
            tier: Budget to charge the request against.

        Returns:
            Tuple of (allowed, remaining_requests, retry_after_seconds).
        """
        with self._lock:
            record = self._storage[f"{tier.name}:{key}"]
            record.prune_old(tier.window_seconds)

            current_count = len(record.timestamps)
            if current_count >= tier.max_requests:
                retry_after = record.seconds_until_available(tier.window_seconds, tier.max_requests)
                return (False, 0, retry_after)

            record.add_request()
            return (True, tier.max_requests - current_count - 1, 0)

    async def cleanup(self) -> int:
        """Remove clients with no requests inside the longest window."""
        window = self.config.longest_window
        removed = 0

        with self._lock:
            keys_to_remove = []
            for key, record in self._storage.items():
                record.prune_old(window)
                if not record.timestamps:
                    keys_to_remove.append(key)

            for key in keys_to_remove:
                del self._storage[key]
                removed += 1

        return removed

    def reset(self) -> None:
        """Forget all recorded requests."""
        with self._lock:
            self._storage.clear()


# Global singleton instance
_rate_limiter: InMemoryRateLimitStorage | None = None


def get_rate_limiter() -> InMemoryRateLimitStorage:
    """Get or create the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = InMemoryRateLimitStorage(RateLimitConfig.from_settings())
    return _rate_limiter


async def init_rate_limiter() -> InMemoryRateLimitStorage:
    """Initialize rate limiter with cleanup task. Call at app startup."""
    limiter = get_rate_limiter()
    await limiter.start_cleanup_task()
    return limiter


async def shutdown_rate_limiter() -> None:
    """Shutdown rate limiter cleanup task. Call at app shutdown."""
    global _rate_limiter
    if _rate_limiter:
        await _rate_limiter.stop_cleanup_task()
