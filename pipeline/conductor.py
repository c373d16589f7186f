"""
Pipeline Conductor - Lightweight orchestration

Coordinates one batch run:
- Meeting scrape (via Fetcher) and vote outcomes (via OutcomeRecorder)
- Ordinance library sync and lifecycle linking (via OrdinanceLinker)
- Resolution extraction (via ResolutionExtractor)
- Monthly reports and summarized city documents (via ReportPipeline)

Single process, single writer. Shared network resources (aiohttp sessions,
the headless browser, the per-host rate limiter and the resolver cache) are
built once per run and closed with the Conductor.
"""

import asyncio
import json
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import config, get_logger
from database.db import LedgerDatabase
from database.transaction import transaction
from pipeline.fetcher import BatchResult, Fetcher
from pipeline.ordinance_linker import LibrarySyncResult, LinkResult, OrdinanceLinker
from pipeline.outcomes import OutcomeRecorder, OutcomeResult
from pipeline.protocols import MetricsCollector, NullMetrics, NullSummarizer, Summarizer
from pipeline.reports import ReportPipeline, ReportResult
from pipeline.resolution_extractor import ResolutionExtractor
from pipeline.click_types import EVENT_RANGE, MONTH
from vendors.adapters.city_site_adapter_async import CitySiteAdapter
from vendors.adapters.civicclerk_adapter_async import CivicClerkAdapter
from vendors.adapters.municode_adapter_async import MunicodeAdapter
from vendors.browser import PortalBrowser
from vendors.document_resolver import DocumentResolver, ResolverCache
from vendors.event_discovery import DiscoveryResult
from vendors.rate_limiter import PoliteRateLimiter
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="conductor")


def previous_month(today: date) -> str:
    """YYYY-MM of the month before today; the latest listing usually published"""
    if today.month == 1:
        return f"{today.year - 1}-12"
    return f"{today.year}-{today.month - 1:02d}"


class Conductor:
    """Builds the pipeline components for one run and sequences them"""

    def __init__(
        self,
        db: LedgerDatabase,
        metrics: Optional[MetricsCollector] = None,
        summarizer: Optional[Summarizer] = None,
        today: Optional[date] = None,
    ):
        """Initialize the conductor

        Args:
            db: Ledger database instance
            metrics: Optional metrics collector (prometheus metrics from the CLI)
            summarizer: Summarization service; Gemini when an API key is configured
            today: Reference date for meeting status and lifecycle policies
        """
        self.db = db
        self.metrics = metrics or NullMetrics()
        self.today = today
        self._summarizer = summarizer

        self.session_manager = AsyncSessionManager(timeout_total=config.FETCH_TIMEOUT)
        self.rate_limiter = PoliteRateLimiter(min_delay=config.MIN_REQUEST_DELAY)
        self.browser = PortalBrowser(timeout_ms=config.FETCH_TIMEOUT * 1000)
        self.resolver = DocumentResolver(
            session_manager=self.session_manager,
            rate_limiter=self.rate_limiter,
            cache=ResolverCache(),
            timeout=config.FETCH_TIMEOUT,
            metrics=self.metrics,
        )

        self.linker = OrdinanceLinker(db, metrics=self.metrics, today=today)
        self.extractor = ResolutionExtractor(db, metrics=self.metrics, today=today)

        self._civicclerk: Optional[CivicClerkAdapter] = None
        self._municode: Optional[MunicodeAdapter] = None
        self._city_site: Optional[CitySiteAdapter] = None

    # ========== Components ==========
    # Each adapter checks its settings on first use, before any network call.

    @property
    def civicclerk(self) -> CivicClerkAdapter:
        if self._civicclerk is None:
            config.require("CIVICCLERK_URL")
            self._civicclerk = CivicClerkAdapter(
                config.CIVICCLERK_URL,
                location=config.MEETING_LOCATION or None,
                resolver=self.resolver,
                settle_ms=config.PORTAL_SETTLE_MS,
                session_manager=self.session_manager,
                browser=self.browser,
                rate_limiter=self.rate_limiter,
                metrics=self.metrics,
            )
        return self._civicclerk

    @property
    def municode(self) -> MunicodeAdapter:
        if self._municode is None:
            config.require("MUNICODE_URL", "MUNICODE_PRODUCT_ID")
            self._municode = MunicodeAdapter(
                config.MUNICODE_URL,
                config.MUNICODE_PRODUCT_ID,
                browser=self.browser,
                rate_limiter=self.rate_limiter,
                metrics=self.metrics,
            )
        return self._municode

    @property
    def city_site(self) -> CitySiteAdapter:
        if self._city_site is None:
            config.require("CITY_SITE_URL")
            self._city_site = CitySiteAdapter(
                config.CITY_SITE_URL,
                session_manager=self.session_manager,
                rate_limiter=self.rate_limiter,
                metrics=self.metrics,
            )
        return self._city_site

    @property
    def summarizer(self) -> Summarizer:
        if self._summarizer is None:
            if config.get_api_key():
                from analysis.llm.summarizer import GeminiSummarizer

                self._summarizer = GeminiSummarizer(api_key=config.get_api_key(), metrics=self.metrics)
            else:
                logger.warning("no LLM API key configured - storing text excerpts instead of summaries")
                self._summarizer = NullSummarizer()
        return self._summarizer

    def fetcher(self) -> Fetcher:
        return Fetcher(
            self.db,
            self.civicclerk,
            concurrency=config.FETCH_CONCURRENCY,
            metrics=self.metrics,
            today=self.today,
        )

    def reports(self, force: bool = False) -> ReportPipeline:
        return ReportPipeline(
            self.db,
            self.resolver,
            self.city_site.base_url,
            city_site=self.city_site,
            summarizer=self.summarizer,
            metrics=self.metrics,
            force=force,
        )

    async def close(self):
        """Cleanup resources (browser and HTTP sessions)"""
        await self.browser.close()
        await self.session_manager.close_all()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # ========== Stages ==========

    async def scrape_meetings(
        self,
        event_ids: Optional[Sequence[int]] = None,
        discover: Optional[Tuple[int, int]] = None,
    ) -> Tuple[BatchResult, Optional[DiscoveryResult]]:
        """Scrape given event ids, a discovered id range, or the whole calendar"""
        fetcher = self.fetcher()
        if discover:
            start, stop = discover
            discovery, batch = await fetcher.discover_and_scrape(
                start,
                stop,
                max_probes=config.DISCOVERY_MAX_PROBES,
                max_consecutive_misses=config.DISCOVERY_MAX_MISSES,
            )
            return batch, discovery
        if event_ids:
            return await fetcher.scrape_events(event_ids), None
        return await fetcher.scrape_calendar(), None

    async def record_outcomes(self, limit: Optional[int] = None) -> OutcomeResult:
        return await OutcomeRecorder(self.db, self.civicclerk, metrics=self.metrics).record_pending(limit)

    async def sync_ordinances(self, years: Optional[List[str]] = None) -> LibrarySyncResult:
        library = await self.municode.list_ordinances(years)
        return self.linker.sync_library(library)

    async def sync_supplements(self) -> LibrarySyncResult:
        entries = await self.municode.fetch_supplement_history()
        return self.linker.apply_supplement_history(entries)

    def link_ordinances(self) -> LinkResult:
        return self.linker.link_all()

    def extract_resolutions(self, meeting_id: Optional[str] = None) -> int:
        return self.extractor.extract(meeting_id)

    def refresh_meeting_statuses(self) -> int:
        with transaction(self.db.conn):
            changed = self.db.meetings.refresh_statuses(self.today)
        logger.info("refreshed meeting statuses", changed=changed)
        return changed

    async def full_run(self) -> Dict[str, Any]:
        """Every stage in dependency order

        Scrape before linking, library before linking, outcomes before
        resolutions. Each stage is idempotent, so a failed run is simply re-run.
        """
        config.require("CIVICCLERK_URL", "CITY_SITE_URL", "MUNICODE_URL", "MUNICODE_PRODUCT_ID")
        today = self.today or date.today()

        summary: Dict[str, Any] = {"statuses_refreshed": self.refresh_meeting_statuses()}

        batch, _ = await self.scrape_meetings()
        summary["meetings"] = {"succeeded": batch.succeeded, "failed": batch.failed, "items": batch.items_stored}

        outcomes = await self.record_outcomes()
        summary["outcomes"] = {"recorded": outcomes.outcomes_recorded, "minutes_found": outcomes.minutes_found}

        library = await self.sync_ordinances()
        supplements = await self.sync_supplements()
        summary["library"] = {"created": library.created + supplements.created, "updated": library.updated + supplements.updated}

        links = self.link_ordinances()
        summary["links"] = {"created": links.links_created, "status_changes": links.status_changes}

        summary["resolutions_changed"] = self.extract_resolutions()

        month = previous_month(today)
        pipeline = self.reports()
        for kind in ("permit", "business"):
            report = await pipeline.fetch_monthly(kind, month)
            summary[f"{kind}_{month}"] = {"stored": report.records_stored, "not_found": bool(report.not_found)}

        logger.info("full run complete", **{k: v for k, v in summary.items() if not isinstance(v, dict)})
        return summary

    def get_status(self) -> Dict[str, Any]:
        return {"config": config.summary(), "database": self.db.get_stats()}


# CLI commands create their own Conductor instances


def _parse_event_ids(arg: str) -> List[int]:
    """Helper to parse event ids (supports comma-separated or @file)"""
    if arg.startswith("@"):
        file_path = arg[1:]
        with open(file_path, "r") as f:
            values = []
            for line in f:
                line = line.split('#')[0].strip()
                if line:
                    values.append(line)
    else:
        values = [v.strip() for v in arg.split(",") if v.strip()]
    return [int(v) for v in values]


def _report_dict(result: ReportResult) -> Dict[str, Any]:
    return {
        "kind": result.kind,
        "documents_found": result.documents_found,
        "processed": result.processed,
        "skipped": result.skipped,
        "not_found": result.not_found,
        "records_stored": result.records_stored,
        "failures": result.failures,
        "errors": result.errors,
    }


def main():
    """Entry point for the civicledger CLI"""
    import click
    from prometheus_client import start_http_server

    from exceptions import ConfigurationError

    def run_with_conductor(ctx, stage):
        """Open the database, run one async stage, always clean up"""
        async def run():
            db = LedgerDatabase(ctx.obj["db_path"])
            try:
                async with Conductor(db, metrics=ctx.obj["metrics"]) as conductor:
                    return await stage(conductor)
            finally:
                db.close()

        try:
            return asyncio.run(run())
        except ConfigurationError as e:
            raise click.ClickException(str(e))

    def echo_json(data):
        click.echo(json.dumps(data, indent=2, default=str))

    @click.group(invoke_without_command=True)
    @click.option("--db-path", default=None, help="SQLite file (defaults to CIVICLEDGER_DB_PATH)")
    @click.option("--metrics-port", type=int, default=None, help="Expose prometheus metrics on this port")
    @click.pass_context
    def cli(ctx, db_path, metrics_port):
        """Municipal records pipeline for civicledger"""
        ctx.ensure_object(dict)
        if not db_path:
            config.ensure_data_dir()
        ctx.obj["db_path"] = db_path or config.DB_PATH

        port = metrics_port if metrics_port is not None else config.METRICS_PORT
        if port:
            from server.metrics import metrics

            start_http_server(port)
            ctx.obj["metrics"] = metrics
            logger.info("metrics server started", port=port)
        else:
            ctx.obj["metrics"] = NullMetrics()

        if ctx.invoked_subcommand is None:
            click.echo(ctx.get_help())

    @cli.command("scrape-meetings")
    @click.option("--event-ids", help="Comma-separated event ids or @file path")
    @click.option("--discover", type=EVENT_RANGE, help="Probe an event id range START-STOP")
    @click.pass_context
    def scrape_meetings(ctx, event_ids, discover):
        """Scrape meetings from the calendar, given ids, or a probed id range"""
        ids = _parse_event_ids(event_ids) if event_ids else None

        async def stage(conductor):
            return await conductor.scrape_meetings(event_ids=ids, discover=discover)

        batch, discovery = run_with_conductor(ctx, stage)
        if discovery:
            click.echo(
                f"Discovery: {len(discovery.valid)} valid, {len(discovery.invalid)} invalid, "
                f"{len(discovery.inconclusive)} inconclusive ({discovery.probes} probes, "
                f"stopped: {discovery.stopped_reason})"
            )
        click.echo(f"Scraped {batch.succeeded}/{batch.requested} events, {batch.items_stored} items")
        if batch.failed_event_ids:
            click.echo(f"Failed events: {', '.join(map(str, batch.failed_event_ids))}")

    @cli.command("scrape-meeting")
    @click.argument("event_id", type=int)
    @click.pass_context
    def scrape_meeting(ctx, event_id):
        """Scrape a single event by id"""
        async def stage(conductor):
            return await conductor.fetcher().scrape_event(event_id)

        result = run_with_conductor(ctx, stage)
        click.echo(f"Scrape result: {result}")

    @cli.command("link-ordinances")
    @click.pass_context
    def link_ordinances(ctx):
        """Link ordinance agenda items and recompute ordinance status"""
        async def stage(conductor):
            return conductor.link_ordinances()

        echo_json(run_with_conductor(ctx, stage).__dict__)

    @cli.command("extract-resolutions")
    @click.option("--meeting-id", help="Only resolutions mentioned in this meeting")
    @click.pass_context
    def extract_resolutions(ctx, meeting_id):
        """Create or update resolutions from agenda mentions"""
        async def stage(conductor):
            return conductor.extract_resolutions(meeting_id)

        changed = run_with_conductor(ctx, stage)
        click.echo(f"Resolutions created or updated: {changed}")

    @cli.command("sync-ordinances")
    @click.option("--years", help="Comma-separated listing years (default: 2020 onward)")
    @click.pass_context
    def sync_ordinances(ctx, years):
        """Sync authoritative ordinances from the ordinance library"""
        year_list = [y.strip() for y in years.split(",") if y.strip()] if years else None

        async def stage(conductor):
            return await conductor.sync_ordinances(year_list)

        echo_json(run_with_conductor(ctx, stage).__dict__)

    @cli.command("sync-supplements")
    @click.pass_context
    def sync_supplements(ctx):
        """Apply the ordinance library's supplement history"""
        async def stage(conductor):
            return await conductor.sync_supplements()

        echo_json(run_with_conductor(ctx, stage).__dict__)

    @cli.command("record-outcomes")
    @click.option("--limit", type=int, default=None, help="Maximum meetings to check")
    @click.pass_context
    def record_outcomes(ctx, limit):
        """Fetch vote outcomes and minutes for past meetings"""
        async def stage(conductor):
            return await conductor.record_outcomes(limit)

        echo_json(run_with_conductor(ctx, stage).__dict__)

    @cli.command("fetch-reports")
    @click.option("--kind", type=click.Choice(["permit", "business"]), required=True)
    @click.option("--month", type=MONTH, required=True, help="Report month as YYYY-MM")
    @click.pass_context
    def fetch_reports(ctx, kind, month):
        """Fetch and parse one monthly permit or business listing"""
        async def stage(conductor):
            return await conductor.reports().fetch_monthly(kind, month)

        echo_json(_report_dict(run_with_conductor(ctx, stage)))

    @cli.command("financial-reports")
    @click.option("--force", is_flag=True, help="Re-summarize documents that already have a summary")
    @click.pass_context
    def financial_reports(ctx, force):
        """Summarize budget, audit, PAFR and digest reports"""
        async def stage(conductor):
            return await conductor.reports(force=force).summarize_financial_reports()

        echo_json(_report_dict(run_with_conductor(ctx, stage)))

    @cli.command("civic-docs")
    @click.option(
        "--type",
        "doc_type",
        type=click.Choice(["splost", "notice", "strategic", "water-quality"]),
        default=None,
        help="Document type (default: all)",
    )
    @click.option("--force", is_flag=True, help="Re-summarize documents that already have a summary")
    @click.pass_context
    def civic_docs(ctx, doc_type, force):
        """Summarize SPLOST reports, notices, strategic plans and water quality reports"""
        async def stage(conductor):
            return await conductor.reports(force=force).summarize_civic_documents(doc_type)

        echo_json(_report_dict(run_with_conductor(ctx, stage)))

    @cli.command("full-run")
    @click.pass_context
    def full_run(ctx):
        """Run every stage in order"""
        async def stage(conductor):
            return await conductor.full_run()

        echo_json(run_with_conductor(ctx, stage))

    @cli.command("status")
    @click.pass_context
    def status(ctx):
        """Show configuration and database counts"""
        async def stage(conductor):
            return conductor.get_status()

        echo_json(run_with_conductor(ctx, stage))

    cli()


if __name__ == "__main__":
    main()
