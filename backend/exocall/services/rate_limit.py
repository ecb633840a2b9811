import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

import redis
from redis.exceptions import ConnectionError, TimeoutError

from exocall.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

VOICE_MIN_INTERVAL = 0.3
VOICE_RESERVOIR = 200
SMS_MIN_INTERVAL = 0.5


class PacedQueue:
    """Serializes provider calls: one in flight, FIFO, spaced, optionally quota-bound.

    The reservoir grants ``reservoir`` starts per ``refresh_interval`` seconds and
    is refilled in full at each interval boundary. Callers are never rejected;
    excess work waits in memory (``pending`` reports the depth).
    """

    def __init__(
        self,
        name: str,
        min_interval: float,
        reservoir: Optional[int] = None,
        refresh_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self.min_interval = min_interval
        self.reservoir = reservoir
        self.refresh_interval = refresh_interval
        self.pending = 0
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None
        self._window_start: Optional[float] = None
        self._remaining = reservoir

    async def schedule(self, thunk: Callable[[], Awaitable[T]]) -> T:
        self.pending += 1
        try:
            async with self._lock:
                await self._wait_turn()
                return await thunk()
        finally:
            self.pending -= 1

    async def _wait_turn(self) -> None:
        now = self._clock()
        if self.reservoir is not None:
            now = await self._take_token(now)
        if self._last_start is not None:
            wait = self._last_start + self.min_interval - now
            if wait > 0:
                await self._sleep(wait)
                now = self._clock()
        self._last_start = now

    async def _take_token(self, now: float) -> float:
        if self._window_start is None:
            self._window_start = now
        elapsed = now - self._window_start
        if elapsed >= self.refresh_interval:
            self._window_start += (elapsed // self.refresh_interval) * self.refresh_interval
            self._remaining = self.reservoir
        if self._remaining <= 0:
            wait = self._window_start + self.refresh_interval - now
            logger.warning(
                "%s queue reservoir exhausted, waiting %.2fs (pending=%s)",
                self.name,
                wait,
                self.pending,
            )
            await self._sleep(wait)
            now = self._clock()
            self._window_start += self.refresh_interval
            self._remaining = self.reservoir
        self._remaining -= 1
        return now


class ProviderRateLimiter:
    """The two provider queues; built once at startup and injected."""

    def __init__(self, voice: Optional[PacedQueue] = None, sms: Optional[PacedQueue] = None) -> None:
        self.voice = voice or PacedQueue(
            "voice", VOICE_MIN_INTERVAL, reservoir=VOICE_RESERVOIR, refresh_interval=60.0
        )
        self.sms = sms or PacedQueue("sms", SMS_MIN_INTERVAL)


class LoginRateLimiter:
    def __init__(self, prefix: str = "login", limit: int = 5, window_seconds: int = 300):
        self.prefix = prefix
        self.limit = limit
        self.window_seconds = window_seconds
        self.client = redis.Redis.from_url(
            settings.redis_url, decode_responses=True, socket_connect_timeout=1
        )

    def hit(self, key: str) -> bool:
        redis_key = f"{self.prefix}:{key}"
        try:
            count = self.client.incr(redis_key)
            if count == 1:
                self.client.expire(redis_key, self.window_seconds)
            return count <= self.limit
        except (ConnectionError, TimeoutError) as exc:
            logger.warning("Login rate limiter unavailable, allowing attempt: %s", exc)
            return True

    def reset(self, key: str) -> None:
        redis_key = f"{self.prefix}:{key}"
        try:
            self.client.delete(redis_key)
        except (ConnectionError, TimeoutError):
            return
