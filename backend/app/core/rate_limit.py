from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from typing import Callable, Hashable

from fastapi import HTTPException, Request, status

KeyFunc = Callable[[Request], Hashable]


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "anon"


def shared_key(name: str) -> KeyFunc:
    """Key every request into the same bucket."""
    return lambda _request: name


class SlidingWindowLimiter:
    """Per-process request limiter usable as a FastAPI dependency.

    Each key gets a deque of request timestamps; timestamps older than the
    window are dropped before counting. Rejected requests get 429 with a
    Retry-After header pointing at the moment the oldest hit expires.
    """

    def __init__(self, key_func: KeyFunc, limit: int, window_seconds: int = 60) -> None:
        self.key_func = key_func
        self.limit = limit
        self.window_seconds = window_seconds
        self.buckets: defaultdict[Hashable, deque[float]] = defaultdict(deque)

    def hit(self, key: Hashable, now: float | None = None) -> None:
        now = time.time() if now is None else now
        bucket = self.buckets[key]
        cutoff = now - self.window_seconds
        while bucket and bucket[0] < cutoff:
            bucket.popleft()
        if len(bucket) >= self.limit:
            wait = max(1, math.ceil(bucket[0] + self.window_seconds - now))
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests",
                headers={"Retry-After": str(wait)},
            )
        bucket.append(now)

    def reset(self) -> None:
        self.buckets.clear()

    async def __call__(self, request: Request) -> None:
        self.hit(self.key_func(request))
