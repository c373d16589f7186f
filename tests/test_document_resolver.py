"""
Tests for candidate URL building, ordered document resolution and the
per-host rate limiter
"""

import asyncio

import aiohttp
import pytest

from conftest import PDF_BYTES, FakeFetch
from vendors.document_resolver import (
    DocumentResolver,
    FetchResponse,
    NotFound,
    ResolvedDocument,
    ResolverCache,
)
from vendors.rate_limiter import PoliteRateLimiter
from vendors.report_urls import business_report_candidates, permit_report_candidates

SITE = "https://www.examplecityga.gov"
FOLDER = f"{SITE}/Documents/Departments/Community%20Development/Monthly%20Permit%20Statistics/2024"


class TestReportCandidates:
    """Naming conventions the city site has used for monthly listings"""

    def test_permit_candidates_primary_first(self):
        candidates = permit_report_candidates(SITE, 2024, 3)
        assert candidates[:4] == [
            f"{SITE}/Mar2024permitlisting.pdf",
            f"{SITE}/March2024permitlisting.pdf",
            f"{SITE}/Mar2024permit.pdf",
            f"{SITE}/March2024permit.pdf",
        ]
        assert f"{FOLDER}/mar2024permitlisting.pdf" in candidates
        assert f"{FOLDER}/mar2024permit_listing.pdf" in candidates
        assert candidates[-1] == f"{FOLDER}/march2024permit.pdf"

    def test_permit_candidates_unique(self):
        candidates = permit_report_candidates(SITE + "/", 2024, 5)
        assert len(candidates) == len(set(candidates))
        assert candidates[0] == f"{SITE}/May2024permitlisting.pdf"

    def test_september_alternates(self):
        assert business_report_candidates(SITE, 2023, 9) == [
            f"{SITE}/Sept2023businesslisting.pdf",
            f"{SITE}/Sep2023businesslisting.pdf",
            f"{SITE}/September2023businesslisting.pdf",
        ]

    def test_june_primary_is_long_form(self):
        assert business_report_candidates(SITE, 2024, 6)[0] == f"{SITE}/June2024businesslisting.pdf"

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, month):
        with pytest.raises(ValueError):
            permit_report_candidates(SITE, 2024, month)


class TestResolve:
    """First 2xx candidate wins; exhaustion is a value, not an exception"""

    async def test_first_success_wins(self):
        fetch = FakeFetch(
            {
                "https://a/1.pdf": FetchResponse(status=404, body=b""),
                "https://a/2.pdf": FetchResponse(status=200, body=PDF_BYTES, content_type="application/pdf"),
                "https://a/3.pdf": FetchResponse(status=200, body=PDF_BYTES),
            }
        )
        resolver = DocumentResolver(fetch=fetch)

        result = await resolver.resolve(["https://a/1.pdf", "https://a/2.pdf", "https://a/3.pdf"])

        assert isinstance(result, ResolvedDocument)
        assert result.url == "https://a/2.pdf"
        assert result.attempts == 2
        assert result.content_type == "application/pdf"
        assert fetch.calls == ["https://a/1.pdf", "https://a/2.pdf"]

    async def test_duplicates_tried_once(self):
        fetch = FakeFetch()
        resolver = DocumentResolver(fetch=fetch)

        result = await resolver.resolve(["https://a/1.pdf", "https://a/1.pdf", "https://a/2.pdf"])

        assert fetch.calls == ["https://a/1.pdf", "https://a/2.pdf"]
        assert isinstance(result, NotFound)
        assert result.candidates == ["https://a/1.pdf", "https://a/2.pdf"]

    async def test_not_found_is_falsy_with_reasons(self):
        fetch = FakeFetch(
            {
                "https://a/1.pdf": asyncio.TimeoutError(),
                "https://a/2.pdf": aiohttp.ClientConnectionError("refused"),
                "https://a/3.pdf": FetchResponse(status=500, body=b""),
            }
        )
        resolver = DocumentResolver(fetch=fetch)

        result = await resolver.resolve(["https://a/1.pdf", "https://a/2.pdf", "https://a/3.pdf"])

        assert not result
        assert [reason for _, reason in result.failures] == [
            "timeout",
            "client_error: ClientConnectionError",
            "http_500",
        ]

    async def test_expect_pdf_rejects_soft_404(self):
        fetch = FakeFetch(
            {
                "https://a/1.pdf": FetchResponse(status=200, body=b"<html>Page not found</html>"),
                "https://a/2.pdf": FetchResponse(status=200, body=PDF_BYTES),
            }
        )
        resolver = DocumentResolver(fetch=fetch)

        result = await resolver.resolve(["https://a/1.pdf", "https://a/2.pdf"], expect_pdf=True)

        assert result.url == "https://a/2.pdf"

    async def test_html_accepted_without_expect_pdf(self):
        fetch = FakeFetch({"https://a/1": FetchResponse(status=200, body=b"<html></html>")})
        result = await DocumentResolver(fetch=fetch).resolve(["https://a/1"])
        assert result.payload == b"<html></html>"

    async def test_empty_candidates(self):
        result = await DocumentResolver(fetch=FakeFetch()).resolve([])
        assert isinstance(result, NotFound)
        assert result.candidates == []


class TestResolverCache:
    async def test_cache_key_memoizes_found(self):
        fetch = FakeFetch({"https://a/1.pdf": FetchResponse(status=200, body=PDF_BYTES)})
        resolver = DocumentResolver(fetch=fetch)

        first = await resolver.resolve(["https://a/1.pdf"], cache_key="permit:2024-03")
        second = await resolver.resolve(["https://a/1.pdf"], cache_key="permit:2024-03")

        assert first is second
        assert len(fetch.calls) == 1

    async def test_cache_key_memoizes_not_found(self):
        fetch = FakeFetch()
        cache = ResolverCache()
        resolver = DocumentResolver(fetch=fetch, cache=cache)

        await resolver.resolve(["https://a/1.pdf"], cache_key="business:2024-03")
        await resolver.resolve(["https://a/1.pdf"], cache_key="business:2024-03")

        assert len(fetch.calls) == 1
        assert "business:2024-03" in cache
        assert len(cache) == 1

    async def test_no_cache_key_always_fetches(self):
        fetch = FakeFetch()
        resolver = DocumentResolver(fetch=fetch)

        await resolver.resolve(["https://a/1.pdf"])
        await resolver.resolve(["https://a/1.pdf"])

        assert len(fetch.calls) == 2


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestPoliteRateLimiter:
    """Minimum delay between requests to the same host"""

    async def test_first_request_not_delayed(self):
        clock = FakeClock()
        limiter = PoliteRateLimiter(min_delay=2.0, max_jitter=0, clock=clock, sleep=clock.sleep)
        assert await limiter.wait("https://a.gov/x") == 0.0
        assert clock.sleeps == []

    async def test_same_host_waits_remaining_delay(self):
        clock = FakeClock()
        limiter = PoliteRateLimiter(min_delay=2.0, max_jitter=0, clock=clock, sleep=clock.sleep)

        await limiter.wait("https://a.gov/x")
        clock.now += 0.5
        slept = await limiter.wait("https://a.gov/y")

        assert slept == pytest.approx(1.5)

    async def test_other_host_not_delayed(self):
        clock = FakeClock()
        limiter = PoliteRateLimiter(min_delay=2.0, max_jitter=0, clock=clock, sleep=clock.sleep)

        await limiter.wait("https://a.gov/x")
        assert await limiter.wait("https://b.gov/x") == 0.0

    async def test_host_override(self):
        clock = FakeClock()
        limiter = PoliteRateLimiter(
            min_delay=2.0, max_jitter=0, host_delays={"slow.gov": 5.0}, clock=clock, sleep=clock.sleep
        )

        await limiter.wait("https://slow.gov/x")
        assert await limiter.wait("https://slow.gov/y") == pytest.approx(5.0)

    async def test_resolver_waits_before_each_attempt(self):
        clock = FakeClock()
        limiter = PoliteRateLimiter(min_delay=1.0, max_jitter=0, clock=clock, sleep=clock.sleep)
        resolver = DocumentResolver(fetch=FakeFetch(), rate_limiter=limiter)

        await resolver.resolve(["https://a.gov/1.pdf", "https://a.gov/2.pdf", "https://a.gov/3.pdf"])

        assert clock.sleeps == [1.0, 1.0]
