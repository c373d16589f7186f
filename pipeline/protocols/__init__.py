"""Pipeline Protocols - Type interfaces for dependency injection"""

from pipeline.protocols.metrics import MetricsCollector, NullMetrics
from pipeline.protocols.summarizer import Summarizer, NullSummarizer

__all__ = ["MetricsCollector", "NullMetrics", "Summarizer", "NullSummarizer"]
