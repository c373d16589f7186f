"""Metrics Protocol - Interface for metrics collection without concrete dependency

This protocol enables dependency injection of metrics throughout the pipeline,
allowing components to be tested and run without the server module.
"""

from typing import Protocol, Any, ContextManager
from contextlib import contextmanager


class LabeledCounter(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledCounter": ...
    def inc(self, amount: float = 1) -> None: ...


class LabeledHistogram(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledHistogram": ...
    def observe(self, value: float) -> None: ...
    def time(self) -> ContextManager: ...


class MetricsCollector(Protocol):
    """Unified metrics interface for all pipeline components

    Used by:
    - vendors/adapters/base_adapter_async.py - Vendor request metrics
    - vendors/document_resolver.py - Candidate resolution
    - pipeline/fetcher.py - Meeting scrape metrics
    - pipeline/ordinance_linker.py, pipeline/resolution_extractor.py - Reconciliation
    - analysis/llm/summarizer.py - LLM API metrics
    """
    # Vendor metrics
    vendor_requests: LabeledCounter
    vendor_request_duration: LabeledHistogram
    documents_resolved: LabeledCounter

    # Pipeline metrics
    meetings_scraped: LabeledCounter
    items_extracted: LabeledCounter
    links_created: LabeledCounter
    resolutions_extracted: LabeledCounter
    processing_duration: LabeledHistogram

    def record_error(self, component: str, error: Exception) -> None: ...

    def record_llm_call(
        self,
        model: str,
        prompt_type: str,
        duration_seconds: float,
        input_tokens: int,
        output_tokens: int,
        success: bool = True
    ) -> None: ...


class _NullCounter:
    def labels(self, **kwargs: Any) -> "_NullCounter":
        return self

    def inc(self, amount: float = 1) -> None:
        pass


class _NullHistogram:
    def labels(self, **kwargs: Any) -> "_NullHistogram":
        return self

    def observe(self, value: float) -> None:
        pass

    @contextmanager
    def time(self):
        yield


class NullMetrics:
    """No-op metrics for testing or standalone use"""

    def __init__(self):
        self.vendor_requests = _NullCounter()
        self.vendor_request_duration = _NullHistogram()
        self.documents_resolved = _NullCounter()
        self.meetings_scraped = _NullCounter()
        self.items_extracted = _NullCounter()
        self.links_created = _NullCounter()
        self.resolutions_extracted = _NullCounter()
        self.processing_duration = _NullHistogram()

    def record_error(self, component: str, error: Exception) -> None:
        pass

    def record_llm_call(
        self,
        model: str,
        prompt_type: str,
        duration_seconds: float,
        input_tokens: int,
        output_tokens: int,
        success: bool = True
    ) -> None:
        pass
