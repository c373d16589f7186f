"""
Prometheus Metrics Module

Provides instrumentation for all core operations:
- Portal and report fetches
- Meeting scrapes and item extraction
- Ordinance links and resolution extraction
- LLM API calls
- Error tracking

Usage:
    from server.metrics import metrics
    metrics.meetings_scraped.labels(status="success").inc()
    with metrics.processing_duration.labels(stage="link_ordinances").time():
        linker.link_all()

The CLI exposes the default registry with prometheus_client.start_http_server
when --metrics-port is given.
"""

from typing import Optional

from prometheus_client import Counter, Histogram, CollectorRegistry, REGISTRY


class LedgerMetrics:
    """Centralized metrics for the civicledger pipeline"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry or REGISTRY

        # Vendor metrics
        self.vendor_requests = Counter(
            'civicledger_vendor_requests_total',
            'Total portal/site requests',
            ['vendor', 'status'],
            registry=registry,
        )

        self.vendor_request_duration = Histogram(
            'civicledger_vendor_request_duration_seconds',
            'Portal/site request duration',
            ['vendor'],
            buckets=[0.5, 1, 2, 5, 10, 30, 60],
            registry=registry,
        )

        self.documents_resolved = Counter(
            'civicledger_documents_resolved_total',
            'Fallback candidate resolutions by outcome',
            ['outcome'],  # found/not_found
            registry=registry,
        )

        # Pipeline metrics
        self.meetings_scraped = Counter(
            'civicledger_meetings_scraped_total',
            'Meetings scraped from the portal',
            ['status'],  # success/failed
            registry=registry,
        )

        self.items_extracted = Counter(
            'civicledger_items_extracted_total',
            'Agenda items extracted',
            ['item_type'],
            registry=registry,
        )

        self.links_created = Counter(
            'civicledger_ordinance_links_created_total',
            'Ordinance meeting links created',
            ['action'],
            registry=registry,
        )

        self.resolutions_extracted = Counter(
            'civicledger_resolutions_extracted_total',
            'Resolutions created or updated',
            ['status'],
            registry=registry,
        )

        self.processing_duration = Histogram(
            'civicledger_processing_duration_seconds',
            'Pipeline stage duration',
            ['stage'],
            buckets=[1, 5, 10, 30, 60, 120, 300, 600],
            registry=registry,
        )

        # LLM metrics
        self.llm_api_calls = Counter(
            'civicledger_llm_api_calls_total',
            'Total LLM API calls',
            ['model', 'prompt_type', 'status'],
            registry=registry,
        )

        self.llm_api_duration = Histogram(
            'civicledger_llm_api_duration_seconds',
            'LLM API call duration',
            ['model', 'prompt_type'],
            buckets=[1, 2, 5, 10, 20, 30, 60],
            registry=registry,
        )

        self.llm_api_tokens = Counter(
            'civicledger_llm_api_tokens_total',
            'Total tokens consumed',
            ['model', 'token_type'],  # token_type: input/output
            registry=registry,
        )

        # Error metrics
        self.errors = Counter(
            'civicledger_errors_total',
            'Total errors by component and type',
            ['component', 'error_type'],
            registry=registry,
        )

    def record_llm_call(
        self,
        model: str,
        prompt_type: str,
        duration_seconds: float,
        input_tokens: int,
        output_tokens: int,
        success: bool = True
    ):
        """Record a complete LLM API call with all metrics"""
        status = 'success' if success else 'error'

        self.llm_api_calls.labels(model=model, prompt_type=prompt_type, status=status).inc()

        if success:
            self.llm_api_duration.labels(model=model, prompt_type=prompt_type).observe(duration_seconds)
            self.llm_api_tokens.labels(model=model, token_type='input').inc(input_tokens)
            self.llm_api_tokens.labels(model=model, token_type='output').inc(output_tokens)

    def record_error(self, component: str, error: Exception):
        """Record an error

        Args:
            component: Component name (vendor/pipeline/analyzer/database)
            error: Exception instance
        """
        error_type = type(error).__name__
        self.errors.labels(component=component, error_type=error_type).inc()


# Global metrics instance
metrics = LedgerMetrics()
