"""
Async Session Manager for remote sources

HTTP session pooling using aiohttp. One manager is constructed per run and
passed to the DocumentResolver and the site adapters; nothing is global.
"""

import aiohttp
from typing import Any, Dict

from config import get_logger

logger = get_logger(__name__).bind(component="vendor")

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"


class AsyncSessionManager:
    """
    Manages aiohttp client sessions per source.

    Sessions are created lazily and reused until close_all().
    """

    def __init__(self, timeout_total: int = 30):
        self.timeout_total = timeout_total
        self._sessions: Dict[str, aiohttp.ClientSession] = {}
        self._closed = False

    async def get_session(self, vendor: str) -> aiohttp.ClientSession:
        """
        Get or create aiohttp session for a source.

        Args:
            vendor: Source name (e.g., "city_site", "municode")

        Returns:
            Shared aiohttp.ClientSession for the source
        """
        if self._closed:
            raise RuntimeError("AsyncSessionManager has been closed")

        if vendor not in self._sessions or self._sessions[vendor].closed:
            timeout = aiohttp.ClientTimeout(
                total=self.timeout_total,
                connect=10,
                sock_read=self.timeout_total,
            )

            connector = aiohttp.TCPConnector(
                limit=10,
                limit_per_host=3,
                ttl_dns_cache=300,
            )

            headers = {
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/pdf;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            }

            self._sessions[vendor] = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers=headers,
                raise_for_status=False,  # status handled by callers
            )

            logger.debug("created async session", vendor=vendor, timeout_seconds=self.timeout_total)

        return self._sessions[vendor]

    async def close_all(self):
        """Close all active sessions (cleanup on shutdown)"""
        if self._closed:
            return

        logger.debug("closing async sessions", session_count=len(self._sessions))

        for vendor, session in self._sessions.items():
            if not session.closed:
                await session.close()

        self._sessions.clear()
        self._closed = True

    async def __aenter__(self) -> "AsyncSessionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close_all()

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about active sessions"""
        return {
            "total_sessions": len(self._sessions),
            "closed": self._closed,
            "vendors": sorted(self._sessions),
        }
