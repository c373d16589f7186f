"""
Document Resolver - ordered fallback candidate fetching

City sites publish the same monthly document under several naming conventions.
The resolver tries candidate URLs strictly in order and returns the first one
that answers with a 2xx. Running out of candidates is an expected outcome
and returns a NotFound value; resolve() never raises for fetch failures.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp

from config import get_logger
from pipeline.protocols import MetricsCollector, NullMetrics
from vendors.rate_limiter import PoliteRateLimiter
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="vendor")


@dataclass
class FetchResponse:
    status: int
    body: bytes
    content_type: str = ""


@dataclass
class ResolvedDocument:
    url: str
    payload: bytes
    content_type: str
    attempts: int = 1


@dataclass
class NotFound:
    """Every candidate was tried and none resolved

    failures holds (url, reason) for each attempt, in order.
    """

    candidates: List[str]
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return False


ResolveResult = Union[ResolvedDocument, NotFound]
Fetch = Callable[[str], Awaitable[FetchResponse]]


class ResolverCache:
    """Per-run memo of resolution results keyed by a logical name (e.g. permit:2024-03)"""

    def __init__(self):
        self._results: Dict[str, ResolveResult] = {}

    def get(self, key: str) -> Optional[ResolveResult]:
        return self._results.get(key)

    def put(self, key: str, result: ResolveResult) -> None:
        self._results[key] = result

    def __contains__(self, key: str) -> bool:
        return key in self._results

    def __len__(self) -> int:
        return len(self._results)


def _dedupe(candidates: Sequence[str]) -> List[str]:
    seen = set()
    ordered = []
    for url in candidates:
        if url not in seen:
            seen.add(url)
            ordered.append(url)
    return ordered


class DocumentResolver:
    """Try candidate URLs in order; first 2xx wins

    Args:
        fetch: Optional coroutine url -> FetchResponse. Defaults to an aiohttp GET
            through the session manager.
        session_manager: Session pool for the default fetch
        rate_limiter: Per-host politeness delay, applied before each attempt
        cache: Per-run memo for cache_key lookups
        timeout: Per-attempt total timeout in seconds
    """

    def __init__(
        self,
        fetch: Optional[Fetch] = None,
        session_manager: Optional[AsyncSessionManager] = None,
        rate_limiter: Optional[PoliteRateLimiter] = None,
        cache: Optional[ResolverCache] = None,
        timeout: int = 30,
        vendor: str = "city_site",
        metrics: Optional[MetricsCollector] = None,
    ):
        if fetch is None and session_manager is None:
            session_manager = AsyncSessionManager(timeout_total=timeout)
        self._fetch = fetch or self._http_fetch
        self.session_manager = session_manager
        self.rate_limiter = rate_limiter
        self.cache = cache if cache is not None else ResolverCache()
        self.timeout = timeout
        self.vendor = vendor
        self.metrics = metrics or NullMetrics()

    async def _http_fetch(self, url: str) -> FetchResponse:
        session = await self.session_manager.get_session(self.vendor)
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
            body = await response.read()
            return FetchResponse(
                status=response.status,
                body=body,
                content_type=response.headers.get("content-type", ""),
            )

    async def resolve(
        self,
        candidates: Sequence[str],
        expect_pdf: bool = False,
        cache_key: Optional[str] = None,
    ) -> ResolveResult:
        """Fetch candidates in order until one succeeds

        Args:
            candidates: Ordered URLs; duplicates are tried once
            expect_pdf: Reject 2xx responses whose body is not a PDF (soft 404 pages)
            cache_key: Memoize the result for the rest of the run

        Returns:
            ResolvedDocument for the first success, NotFound if none resolved
        """
        if cache_key and cache_key in self.cache:
            logger.debug("resolver cache hit", cache_key=cache_key)
            return self.cache.get(cache_key)

        ordered = _dedupe(candidates)
        failures: List[Tuple[str, str]] = []

        for attempt, url in enumerate(ordered, start=1):
            if self.rate_limiter:
                await self.rate_limiter.wait(url)

            start_time = time.time()
            try:
                response = await self._fetch(url)
            except asyncio.TimeoutError:
                failures.append((url, "timeout"))
                self.metrics.vendor_requests.labels(vendor=self.vendor, status="timeout").inc()
                logger.debug("candidate timed out", url=url, attempt=attempt)
                continue
            except aiohttp.ClientError as e:
                failures.append((url, f"client_error: {type(e).__name__}"))
                self.metrics.vendor_requests.labels(vendor=self.vendor, status="error").inc()
                logger.debug("candidate request failed", url=url, attempt=attempt, error=str(e))
                continue

            self.metrics.vendor_request_duration.labels(vendor=self.vendor).observe(time.time() - start_time)

            if not 200 <= response.status < 300:
                failures.append((url, f"http_{response.status}"))
                self.metrics.vendor_requests.labels(vendor=self.vendor, status=f"http_{response.status}").inc()
                logger.debug("candidate not available", url=url, status_code=response.status, attempt=attempt)
                continue

            if expect_pdf and not response.body.startswith(b"%PDF"):
                failures.append((url, "not_pdf"))
                self.metrics.vendor_requests.labels(vendor=self.vendor, status="not_pdf").inc()
                logger.debug("candidate is not a pdf", url=url, content_type=response.content_type, attempt=attempt)
                continue

            self.metrics.vendor_requests.labels(vendor=self.vendor, status="success").inc()
            self.metrics.documents_resolved.labels(outcome="found").inc()
            logger.info("resolved document", url=url, attempt=attempt, candidates=len(ordered), bytes=len(response.body))
            result: ResolveResult = ResolvedDocument(
                url=url,
                payload=response.body,
                content_type=response.content_type,
                attempts=attempt,
            )
            break
        else:
            self.metrics.documents_resolved.labels(outcome="not_found").inc()
            logger.info("no candidate resolved", candidates=len(ordered), cache_key=cache_key)
            result = NotFound(candidates=ordered, failures=failures)

        if cache_key:
            self.cache.put(cache_key, result)
        return result

    async def close(self):
        if self.session_manager:
            await self.session_manager.close_all()
