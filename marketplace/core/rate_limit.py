# marketplace/core/rate_limit.py
# Простой rate limiter в памяти процесса (fixed window).
# Счётчики локальны для инстанса: при нескольких инстансах нужен общий
# счётчик (например Redis), иначе лимиты расходятся.

import math
import threading
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request

from marketplace.core.config import settings


@dataclass(frozen=True)
class RateLimitConfig:
    interval: float  # окно в секундах
    max_requests: int


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # unix time конца окна


class RateLimiter:
    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._store: dict[str, list] = {}

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._purge(now)
            entry = self._store.get(identifier)
            if entry is None or entry[1] < now:
                entry = [0, now + config.interval]
                self._store[identifier] = entry
            entry[0] += 1
            count, reset = entry
        return RateLimitResult(
            success=count <= config.max_requests,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - count),
            reset=reset,
        )

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

    def _purge(self, now: float) -> None:
        expired = [key for key, (_, reset) in self._store.items() if reset < now]
        for key in expired:
            del self._store[key]


class RateLimitPresets:
    # для чувствительных операций (логин)
    strict = RateLimitConfig(interval=15 * 60, max_requests=5)
    auth = RateLimitConfig(interval=60 * 60, max_requests=20)
    standard = RateLimitConfig(
        interval=settings.RATE_LIMIT_WINDOW_SECONDS,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    )


limiter = RateLimiter()


def client_identifier(request: Request) -> str:
    """IP клиента с учётом прокси заголовков."""
    forwarded = request.headers.get("x-forwarded-for")
    real_ip = request.headers.get("x-real-ip")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif real_ip:
        ip = real_ip
    elif request.client:
        ip = request.client.host
    else:
        ip = "unknown"
    return f"ip:{ip}"


def rate_limit(config: RateLimitConfig, scope: str):
    """Фабрика зависимости FastAPI; при превышении лимита отдаёт 429."""
    def _dependency(request: Request):
        result = limiter.check(f"{scope}:{client_identifier(request)}", config)
        if not result.success:
            retry_after = max(1, math.ceil(result.reset - time.time()))
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please try again later.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": str(result.remaining),
                    "X-RateLimit-Reset": str(int(result.reset)),
                },
            )
    return _dependency
