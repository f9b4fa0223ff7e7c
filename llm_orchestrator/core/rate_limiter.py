"""
Per-user rate limiting by subscription tier.

Tracks calls and tokens in fixed per-minute and per-day windows kept in
process memory.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional, Union

MINUTE_SECONDS = 60
DAY_SECONDS = 24 * 60 * 60


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class RateLimitConfig:
    """Call and token limits for a tier."""
    max_calls_per_minute: int
    max_calls_per_day: int
    max_tokens_per_day: int


RATE_LIMITS: Dict[SubscriptionTier, RateLimitConfig] = {
    SubscriptionTier.FREE: RateLimitConfig(
        max_calls_per_minute=3, max_calls_per_day=10, max_tokens_per_day=50_000,
    ),
    SubscriptionTier.PREMIUM: RateLimitConfig(
        max_calls_per_minute=10, max_calls_per_day=100, max_tokens_per_day=500_000,
    ),
    SubscriptionTier.ENTERPRISE: RateLimitConfig(
        max_calls_per_minute=60, max_calls_per_day=10_000, max_tokens_per_day=5_000_000,
    ),
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    reason: Optional[str] = None


@dataclass
class _Window:
    count: int
    tokens: int
    started: float


class RateLimiter:
    """In-memory fixed-window rate limiter keyed by user id."""

    def __init__(
        self,
        limits: Optional[Dict[SubscriptionTier, RateLimitConfig]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.limits = dict(limits or RATE_LIMITS)
        self._clock = clock
        self._minute: Dict[str, _Window] = {}
        self._day: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _live(self, windows: Dict[str, _Window], user_id: str, span: int, now: float) -> Optional[_Window]:
        window = windows.get(user_id)
        if window is not None and now - window.started < span:
            return window
        return None

    def _reset_at(self, started: float, span: int) -> datetime:
        return datetime.fromtimestamp(started + span)

    def check(self, user_id: str, tier: Union[SubscriptionTier, str] = SubscriptionTier.FREE) -> RateLimitResult:
        """Check whether *user_id* may make another call.

        Args:
            user_id: Caller identity
            tier: Subscription tier selecting the limits

        Returns:
            RateLimitResult describing the decision
        """
        config = self.limits[SubscriptionTier(tier)]
        now = self._clock()
        with self._lock:
            minute = self._live(self._minute, user_id, MINUTE_SECONDS, now)
            if minute and minute.count >= config.max_calls_per_minute:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=self._reset_at(minute.started, MINUTE_SECONDS),
                    reason=f"Rate limit exceeded: {config.max_calls_per_minute} calls per minute for {SubscriptionTier(tier).value} tier",
                )

            day = self._live(self._day, user_id, DAY_SECONDS, now)
            if day is None:
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_calls_per_day,
                    reset_at=self._reset_at(now, DAY_SECONDS),
                )
            if day.count >= config.max_calls_per_day:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=self._reset_at(day.started, DAY_SECONDS),
                    reason=f"Daily limit exceeded: {config.max_calls_per_day} calls per day for {SubscriptionTier(tier).value} tier",
                )
            if day.tokens >= config.max_tokens_per_day:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=self._reset_at(day.started, DAY_SECONDS),
                    reason=f"Daily token limit exceeded: {config.max_tokens_per_day} tokens per day for {SubscriptionTier(tier).value} tier",
                )
            return RateLimitResult(
                allowed=True,
                remaining=config.max_calls_per_day - day.count,
                reset_at=self._reset_at(day.started, DAY_SECONDS),
            )

    def record(self, user_id: str, tokens: int) -> None:
        """Count one call and *tokens* against the user's windows."""
        now = self._clock()
        with self._lock:
            for windows, span in ((self._minute, MINUTE_SECONDS), (self._day, DAY_SECONDS)):
                window = self._live(windows, user_id, span, now)
                if window is None:
                    windows[user_id] = _Window(count=1, tokens=tokens, started=now)
                else:
                    window.count += 1
                    window.tokens += tokens

    def usage(self, user_id: str) -> Dict[str, int]:
        now = self._clock()
        with self._lock:
            day = self._live(self._day, user_id, DAY_SECONDS, now)
            minute = self._live(self._minute, user_id, MINUTE_SECONDS, now)
            return {
                "daily_calls": day.count if day else 0,
                "daily_tokens": day.tokens if day else 0,
                "minute_calls": minute.count if minute else 0,
            }

    def reset(self) -> None:
        with self._lock:
            self._minute.clear()
            self._day.clear()
