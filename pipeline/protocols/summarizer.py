"""Summarizer Protocol - opaque natural-language summarization service

The pipeline decides when to summarize (after a document resolves) and which
metadata to attach; the content of the summary is the collaborator's business.
"""

from typing import Protocol, Optional, Dict, Any


class Summarizer(Protocol):
    def summarize(
        self,
        kind: str,
        doc_id: str,
        text: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> str: ...


class NullSummarizer:
    """Offline stand-in: returns the first lines of the document"""

    def __init__(self, max_chars: int = 500):
        self.max_chars = max_chars

    def summarize(
        self,
        kind: str,
        doc_id: str,
        text: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        return text.strip()[: self.max_chars]
