"""Fixed-window rate limiting on shared Redis counters.

Each limiter owns one key space (``rl:{name}:{client}``). A window starts
with the first hit for a client and is dropped wholesale when its TTL runs
out; there is no sliding or token refill.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from tally.config import get_settings
from tally.errors import ConfigurationError, TallyError
from tally.keys import limiter_key, limiter_prefix
from tally.store import CounterStore

logger = logging.getLogger(__name__)

_RATE_LIMIT_PATTERN = re.compile(r"^\s*(\d+)\s*/\s*(?:(\d+)\s*)?(ms|[smhd])\s*$")
_UNIT_MS = {"ms": 1, "s": 1_000, "m": 60_000, "h": 3_600_000, "d": 86_400_000}


@dataclass(frozen=True)
class RateLimitConfig:
    """Window length, hit budget and key prefix for one limiter."""

    window_ms: int
    max: int
    prefix: str = "rl"

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ConfigurationError("rate limit window_ms must be > 0")
        if self.max <= 0:
            raise ConfigurationError("rate limit max must be > 0")
        if not self.prefix:
            raise ConfigurationError("rate limit prefix must not be empty")


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single :meth:`FixedWindowRateLimiter.check`."""

    allowed: bool
    total_hits: int
    limit: int
    reset_at: datetime | None

    @property
    def remaining(self) -> int:
        return max(self.limit - self.total_hits, 0)

    def reset_after_seconds(self, now: datetime | None = None) -> int:
        if self.reset_at is None:
            return 0
        now = now or datetime.now(UTC)
        return max(int((self.reset_at - now).total_seconds() + 0.999), 0)


def parse_rate_limit(value: str, *, prefix: str = "rl") -> RateLimitConfig:
    """Parse a rate limit string like '100/m', '10/15m' or '3/1h'."""
    match = _RATE_LIMIT_PATTERN.fullmatch(value)
    if match is None:
        raise ConfigurationError(
            "rate_limit must match '<count>/<unit>' or '<count>/<multiplier><unit>'"
        )

    capacity = int(match.group(1))
    multiplier = int(match.group(2) or "1")
    if multiplier <= 0:
        raise ConfigurationError("rate_limit window multiplier must be > 0")

    window_ms = multiplier * _UNIT_MS[match.group(3)]
    return RateLimitConfig(window_ms=window_ms, max=capacity, prefix=prefix)


class FixedWindowRateLimiter:
    """Admission control for one (window, max, prefix) tuple."""

    def __init__(self, store: CounterStore | Any, config: RateLimitConfig) -> None:
        self._store = store if isinstance(store, CounterStore) else CounterStore(store)
        self.config = config

    @property
    def prefix(self) -> str:
        return self.config.prefix

    def _key(self, client_key: str) -> str:
        return limiter_key(self.config.prefix, client_key)

    async def check(self, client_key: str) -> RateLimitDecision:
        """Count one hit for ``client_key`` and decide whether to admit it.

        The window TTL is attached lazily by whichever caller sees the key
        without one. Two callers racing on a brand-new key may both set it;
        a key can briefly exist without expiry between INCR and PEXPIRE.
        Store failures admit the request.
        """
        key = self._key(client_key)
        window_ms = self.config.window_ms

        try:
            total_hits, ttl_ms = await self._store.incr_with_pttl(key)
            if ttl_ms == -1:
                await self._store.pexpire(key, window_ms)
        except (TallyError, OSError) as exc:
            logger.error("Rate limit store error for %s, failing open: %s", key, exc)
            return RateLimitDecision(
                allowed=True,
                total_hits=1,
                limit=self.config.max,
                reset_at=None,
            )

        now = datetime.now(UTC)
        if ttl_ms > 0:
            reset_at = now + timedelta(milliseconds=ttl_ms)
        else:
            reset_at = now + timedelta(milliseconds=window_ms)

        allowed = total_hits <= self.config.max
        if not allowed:
            logger.info(
                "Rate limit exceeded for %s (%d/%d)", key, total_hits, self.config.max
            )

        return RateLimitDecision(
            allowed=allowed,
            total_hits=total_hits,
            limit=self.config.max,
            reset_at=reset_at,
        )

    async def decrement(self, client_key: str) -> None:
        """Give back one hit, e.g. for a request that should not count."""
        await self._store.decr(self._key(client_key))

    async def reset_key(self, client_key: str) -> None:
        await self._store.delete(self._key(client_key))


# Named limiters. Each is an independent key space.
GENERAL = "general"
AUTH = "auth"
REGISTER = "register"
VERIFY = "verify"
RESEND = "resend"
FORGOT_PASSWORD = "forgot"
APPLICATION = "application"

_HOUR_MS = 60 * 60 * 1000

PRESETS: dict[str, tuple[int, int]] = {
    AUTH: (15 * 60 * 1000, 10),
    REGISTER: (_HOUR_MS, 5),
    VERIFY: (_HOUR_MS, 10),
    RESEND: (_HOUR_MS, 3),
    FORGOT_PASSWORD: (_HOUR_MS, 3),
    APPLICATION: (_HOUR_MS, 10),
}


def preset_config(
    name: str,
    *,
    general_window_ms: int | None = None,
    general_max: int | None = None,
) -> RateLimitConfig:
    """Config for a named limiter; ``general`` takes its budget from settings."""
    if name == GENERAL:
        if general_window_ms is None or general_max is None:
            settings = get_settings()
            general_window_ms = general_window_ms or settings.rate_limit_window_ms
            general_max = general_max or settings.rate_limit_max_requests
        return RateLimitConfig(
            window_ms=general_window_ms,
            max=general_max,
            prefix=limiter_prefix(GENERAL),
        )

    try:
        window_ms, max_hits = PRESETS[name]
    except KeyError as exc:
        raise ConfigurationError(f"Unknown rate limiter preset: {name}") from exc
    return RateLimitConfig(window_ms=window_ms, max=max_hits, prefix=limiter_prefix(name))


def create_rate_limiter(
    store: CounterStore | Any,
    name: str,
    **overrides: int,
) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(store, preset_config(name, **overrides))


__all__ = [
    "APPLICATION",
    "AUTH",
    "FORGOT_PASSWORD",
    "GENERAL",
    "PRESETS",
    "REGISTER",
    "RESEND",
    "VERIFY",
    "FixedWindowRateLimiter",
    "RateLimitConfig",
    "RateLimitDecision",
    "create_rate_limiter",
    "parse_rate_limit",
    "preset_config",
]
