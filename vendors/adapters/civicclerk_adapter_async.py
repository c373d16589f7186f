"""
Async CivicClerk Adapter - rendered portal scraping for the CivicClerk platform

The public portal ({portal}/event/{id}/files) is a React SPA with no usable
public API, so every page goes through the headless browser:
- list_events(): scrolls the calendar to load past and future events
- fetch_details(): meeting metadata and sidebar agenda items
- fetch_minutes_url() / fetch_agenda_pdf_url(): pdf.js viewer file= parameter
- fetch_vote_outcomes(): MOTIONS / VOTES modals on the overview page

Parsing is delegated to vendors.adapters.parsers.civicclerk_parser so it can be
tested against captured text without a browser.
"""

import asyncio
import re
from typing import List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from config import get_logger
from database.models import AgendaItem, Meeting
from exceptions import ExtractionError, PortalRenderError
from parsing.pdf import PdfExtractor
from pipeline.protocols import MetricsCollector
from vendors.adapters.base_adapter_async import AsyncBaseAdapter
from vendors.adapters.parsers.civicclerk_parser import (
    MODAL_HEADER,
    VoteOutcome,
    build_agenda_items,
    classify_event_page,
    extract_agenda_lines,
    find_pdfjs_document_url,
    parse_event_page,
    parse_pdfjs_file_param,
    parse_vote_modal,
)
from vendors.browser import PortalBrowser
from vendors.document_resolver import DocumentResolver
from vendors.rate_limiter import PoliteRateLimiter
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="vendor")

EVENT_HREF_PATTERN = re.compile(r"/event/(\d+)")
VOTE_BUTTON_TEXT = "MOTIONS / VOTES"

SCROLL_UP_PASSES = 5
SCROLL_DOWN_PASSES = 3
SCROLL_WAIT_MS = 500
MODAL_TIMEOUT_MS = 5000

# Text of the nearest ancestor that looks like an agenda item, one entry per vote button
_VOTE_ITEM_TEXTS_JS = """
(label) => {
  const results = [];
  for (const el of Array.from(document.querySelectorAll('*'))) {
    if (el.innerText !== label && (el.textContent || '').trim() !== label) continue;
    let text = '';
    let parent = el.parentElement;
    for (let i = 0; i < 8 && parent; i++) {
      const candidate = parent.innerText || parent.textContent || '';
      if (candidate.length > 50 && candidate.length < 800) { text = candidate; break; }
      parent = parent.parentElement;
    }
    results.push(text.split(label).join('').trim().slice(0, 200));
  }
  return results;
}
"""

_CLICK_VOTE_BUTTON_JS = """
([label, index]) => {
  let seen = 0;
  for (const el of Array.from(document.querySelectorAll('*'))) {
    if (el.innerText !== label && (el.textContent || '').trim() !== label) continue;
    if (seen === index) { el.click(); return true; }
    seen++;
  }
  return false;
}
"""

_CLICK_MINUTES_JS = """
() => {
  for (const item of document.querySelectorAll('li.MuiListItem-container')) {
    const label = item.querySelector('.MuiListItemText-primary');
    if (!label || (label.textContent || '').trim() !== 'Minutes') continue;
    const button = item.querySelector('button:not([title])') || item.querySelector('button');
    if (button) { button.click(); return true; }
  }
  return false;
}
"""


class CivicClerkAdapter(AsyncBaseAdapter):
    """Async adapter for one CivicClerk portal (e.g. https://{city}portal.civicclerk.com)"""

    def __init__(
        self,
        portal_url: str,
        location: Optional[str] = None,
        resolver: Optional[DocumentResolver] = None,
        pdf_extractor: Optional[PdfExtractor] = None,
        settle_ms: int = 2000,
        session_manager: Optional[AsyncSessionManager] = None,
        browser: Optional[PortalBrowser] = None,
        rate_limiter: Optional[PoliteRateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(
            "civicclerk",
            portal_url,
            session_manager=session_manager,
            browser=browser,
            rate_limiter=rate_limiter,
            metrics=metrics,
        )
        self.location = location
        self.resolver = resolver
        self.pdf_extractor = pdf_extractor or PdfExtractor()
        self.settle_ms = settle_ms

    def event_url(self, event_id: int, view: str = "files") -> str:
        return f"{self.base_url}/event/{event_id}/{view}"

    async def list_events(self) -> List[int]:
        """Event ids linked from the portal calendar, ascending

        The calendar lazy-loads in both directions; scrolling to the top loads
        past events and scrolling to the bottom loads upcoming ones.
        """
        browser = self._get_browser()
        await self._polite(self.base_url)

        async with browser.page() as page:
            await browser.goto(page, self.base_url, settle_ms=self.settle_ms)
            try:
                for _ in range(SCROLL_UP_PASSES):
                    await page.evaluate("() => window.scrollTo(0, 0)")
                    await page.wait_for_timeout(SCROLL_WAIT_MS)
                for _ in range(SCROLL_DOWN_PASSES):
                    await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
                    await page.wait_for_timeout(SCROLL_WAIT_MS)

                hrefs = await page.eval_on_selector_all(
                    'a[href*="/event/"]', "links => links.map(link => link.href)"
                )
            except PlaywrightError as e:
                raise PortalRenderError(
                    "Failed to list portal events", vendor=self.vendor, source_id=self.base_url, original_error=e
                ) from e

        event_ids = set()
        for href in hrefs:
            match = EVENT_HREF_PATTERN.search(href or "")
            if match:
                event_ids.add(int(match.group(1)))

        logger.info("listed portal events", vendor=self.vendor, event_count=len(event_ids))
        return sorted(event_ids)

    async def fetch_details(self, event_id: int) -> Tuple[Meeting, List[AgendaItem]]:
        """Meeting metadata and agenda items for one event

        Falls back to the agenda PDF when the files page lists no items.

        Raises:
            PortalRenderError: the page could not be rendered
            ParsingError: the page rendered but carries no meeting date
        """
        rendered = await self._render(self.event_url(event_id), settle_ms=self.settle_ms)
        parsed = parse_event_page(
            event_id,
            rendered.text,
            rendered.title,
            self.base_url,
            location=self.location,
        )

        items = parsed.items
        if parsed.has_files and not items:
            pdf_url = find_pdfjs_document_url(rendered.html)
            if pdf_url:
                parsed.meeting.packet_url = pdf_url
                items = await self._items_from_agenda_pdf(parsed.meeting.id, pdf_url)

        for item in items:
            self.metrics.items_extracted.labels(item_type=item.type).inc()
        logger.info(
            "fetched event details",
            vendor=self.vendor,
            event_id=event_id,
            meeting_date=parsed.meeting.date.isoformat(),
            has_files=parsed.has_files,
            item_count=len(items),
        )
        return parsed.meeting, items

    async def _items_from_agenda_pdf(self, meeting_id: str, pdf_url: str) -> List[AgendaItem]:
        if self.resolver is None:
            logger.debug("no resolver for agenda pdf fallback", meeting_id=meeting_id)
            return []

        result = await self.resolver.resolve([pdf_url], expect_pdf=True)
        if not result:
            logger.info("agenda pdf not available", meeting_id=meeting_id, url=pdf_url[:100])
            return []

        try:
            extracted = await asyncio.to_thread(self.pdf_extractor.extract_from_bytes, result.payload)
        except ExtractionError as e:
            logger.warning("agenda pdf extraction failed", meeting_id=meeting_id, error=str(e))
            return []

        items = build_agenda_items(meeting_id, extract_agenda_lines(extracted["text"]))
        logger.debug("agenda items from pdf", meeting_id=meeting_id, item_count=len(items))
        return items

    async def probe_event(self, event_id: int) -> str:
        """Classify an event id as "valid" or "invalid". Raises PortalRenderError."""
        rendered = await self._render(self.event_url(event_id), settle_ms=self.settle_ms)
        return classify_event_page(rendered.text)

    async def fetch_agenda_pdf_url(self, event_id: int) -> Optional[str]:
        """Document URL shown in the files page viewer, None when there is none"""
        rendered = await self._render(self.event_url(event_id), settle_ms=self.settle_ms)
        return find_pdfjs_document_url(rendered.html)

    async def fetch_minutes_url(self, event_id: int) -> Optional[str]:
        """Minutes PDF URL for an event; None when minutes are not published yet"""
        browser = self._get_browser()
        url = self.event_url(event_id)
        await self._polite(url)

        async with browser.page() as page:
            await browser.goto(page, url, settle_ms=self.settle_ms)
            try:
                clicked = await page.evaluate(_CLICK_MINUTES_JS)
                if not clicked:
                    logger.debug("no minutes published", event_id=event_id)
                    return None

                await page.wait_for_timeout(self.settle_ms)
                src = await page.get_attribute('iframe[src*="pdfjs"]', "src", timeout=MODAL_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                logger.info("minutes viewer did not load", event_id=event_id)
                return None
            except PlaywrightError as e:
                raise PortalRenderError(
                    f"Failed to open minutes for event {event_id}",
                    vendor=self.vendor,
                    source_id=str(event_id),
                    original_error=e,
                ) from e

        minutes_url = parse_pdfjs_file_param(src or "")
        logger.info("found minutes", event_id=event_id, found=bool(minutes_url))
        return minutes_url

    async def fetch_vote_outcomes(self, event_id: int) -> List[VoteOutcome]:
        """Motions recorded on the overview page, one per MOTIONS / VOTES button"""
        browser = self._get_browser()
        url = self.event_url(event_id, view="overview")
        await self._polite(url)
        outcomes: List[VoteOutcome] = []

        async with browser.page() as page:
            await browser.goto(page, url, settle_ms=self.settle_ms)
            try:
                for button in await page.query_selector_all('[aria-expanded="false"]'):
                    try:
                        await button.click(timeout=2000)
                    except PlaywrightError:
                        logger.debug("section did not expand", event_id=event_id)

                item_texts = await page.evaluate(_VOTE_ITEM_TEXTS_JS, VOTE_BUTTON_TEXT)
            except PlaywrightError as e:
                raise PortalRenderError(
                    f"Failed to read overview for event {event_id}",
                    vendor=self.vendor,
                    source_id=str(event_id),
                    original_error=e,
                ) from e

            for index, item_text in enumerate(item_texts):
                outcome = await self._read_vote_modal(page, event_id, index, item_text)
                if outcome:
                    outcomes.append(outcome)

        logger.info(
            "fetched vote outcomes",
            event_id=event_id,
            buttons=len(item_texts),
            outcomes=len(outcomes),
        )
        return outcomes

    async def _read_vote_modal(self, page, event_id: int, index: int, item_text: str) -> Optional[VoteOutcome]:
        try:
            clicked = await page.evaluate(_CLICK_VOTE_BUTTON_JS, [VOTE_BUTTON_TEXT, index])
            if not clicked:
                return None

            await page.wait_for_function(
                """(header) => {
                    const text = document.body.innerText;
                    return text.includes(header) &&
                        (text.includes('Passed') || text.includes('Failed') || text.includes('Tabled'));
                }""",
                arg=MODAL_HEADER,
                timeout=MODAL_TIMEOUT_MS,
            )
            modal_text = await page.inner_text("body")
        except PlaywrightTimeoutError:
            logger.debug("vote modal has no result", event_id=event_id, index=index)
            await self._dismiss_modal(page)
            return None
        except PlaywrightError as e:
            logger.warning("vote modal failed", event_id=event_id, index=index, error=str(e))
            return None

        await self._dismiss_modal(page)
        return parse_vote_modal(item_text, modal_text)

    async def _dismiss_modal(self, page) -> None:
        try:
            await page.keyboard.press("Escape")
            await page.wait_for_function(
                "(header) => !document.body.innerText.includes(header)",
                arg=MODAL_HEADER,
                timeout=2000,
            )
        except PlaywrightError:
            logger.debug("vote modal did not close")
