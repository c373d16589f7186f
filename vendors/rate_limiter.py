"""Host-aware async rate limiter to be respectful to city websites"""

import asyncio
import random
import time
from collections import defaultdict
from typing import Callable, Awaitable, Dict, Optional
from urllib.parse import urlparse

from config import get_logger

logger = get_logger(__name__).bind(component="vendor")


class PoliteRateLimiter:
    """Enforce a minimum delay (plus jitter) between requests to the same host

    Constructed and injected; holds no module-level state. Concurrent callers
    for one host are serialized, different hosts proceed independently.
    """

    def __init__(
        self,
        min_delay: float = 1.0,
        max_jitter: float = 0.5,
        host_delays: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_delay = min_delay
        self.max_jitter = max_jitter
        self.host_delays = host_delays or {}
        self._clock = clock
        self._sleep = sleep
        self._last_request: Dict[str, float] = defaultdict(float)
        self._locks: Dict[str, asyncio.Lock] = {}

    @staticmethod
    def host_for(url: str) -> str:
        return urlparse(url).netloc.lower() or url

    def _lock_for(self, host: str) -> asyncio.Lock:
        if host not in self._locks:
            self._locks[host] = asyncio.Lock()
        return self._locks[host]

    async def wait(self, url: str) -> float:
        """Wait until a request to url's host is allowed. Returns seconds slept."""
        host = self.host_for(url)
        min_delay = self.host_delays.get(host, self.min_delay)
        slept = 0.0

        async with self._lock_for(host):
            last = self._last_request[host]
            if last > 0:
                elapsed = self._clock() - last
                if elapsed < min_delay:
                    jitter = random.uniform(0, self.max_jitter) if self.max_jitter else 0.0
                    slept = min_delay - elapsed + jitter
                    logger.debug("rate limiting", host=host, sleep_seconds=round(slept, 2))
                    await self._sleep(slept)

            self._last_request[host] = self._clock()

        return slept
