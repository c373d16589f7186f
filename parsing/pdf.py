"""PDF text extraction using PyMuPDF

Agenda packets, minutes and monthly listings are born-digital PDFs, so plain
text extraction is enough. Scanned pages come back with little or no text and
are reported through `sparse_pages` rather than OCR'd.
"""

import time
from typing import Any, Dict, List

import fitz  # PyMuPDF

from config import get_logger
from exceptions import ExtractionError

logger = get_logger(__name__).bind(component="parser")


class PdfExtractor:
    """PDF extractor using PyMuPDF"""

    def __init__(self, sparse_threshold: int = 100, page_markers: bool = False):
        """Initialize PDF extractor

        Args:
            sparse_threshold: Pages with fewer characters than this are counted
                as sparse (likely scanned images)
            page_markers: Prefix each page with "--- PAGE n ---". Off by default
                because line-oriented parsers read the text directly.
        """
        self.sparse_threshold = sparse_threshold
        self.page_markers = page_markers

    def extract_from_bytes(self, pdf_bytes: bytes, extract_links: bool = False) -> Dict[str, Any]:
        """Extract text and optionally links from PDF bytes

        Returns:
            dict with text, page_count, sparse_pages, extraction_time and
            (when extract_links) links

        Raises:
            ExtractionError: if the bytes cannot be opened or read as a PDF
        """
        start_time = time.time()

        try:
            with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
                page_texts: List[str] = []
                links: List[Dict[str, Any]] = []
                sparse_pages = 0

                for page_num, page in enumerate(doc, start=1):
                    page_text = page.get_text()  # type: ignore[attr-defined]
                    if len(page_text.strip()) < self.sparse_threshold:
                        sparse_pages += 1

                    if self.page_markers:
                        page_text = f"--- PAGE {page_num} ---\n{page_text}"
                    page_texts.append(page_text)

                    if extract_links:
                        for link in page.get_links():  # type: ignore[attr-defined]
                            if link.get("uri"):
                                links.append({"page": page_num, "url": link["uri"]})

                page_count = len(doc)

        except (RuntimeError, ValueError) as e:  # fitz.FileDataError subclasses RuntimeError
            extraction_time = time.time() - start_time
            logger.error(
                "pdf extraction failed",
                error=str(e),
                error_type=type(e).__name__,
                extraction_time=round(extraction_time, 2),
            )
            raise ExtractionError(
                f"PDF extraction from bytes failed after {extraction_time:.1f}s",
                document_type="pdf",
                original_error=e,
            ) from e

        full_text = "\n".join(page_texts)
        extraction_time = time.time() - start_time

        if sparse_pages:
            logger.warning("sparse pdf pages", page_count=page_count, sparse_pages=sparse_pages)

        logger.debug(
            "extracted pdf",
            page_count=page_count,
            chars=len(full_text),
            links=len(links) if extract_links else None,
            extraction_time=round(extraction_time, 2),
        )

        result = {
            "text": full_text,
            "page_count": page_count,
            "sparse_pages": sparse_pages,
            "extraction_time": extraction_time,
        }
        if extract_links:
            result["links"] = links
        return result

    def validate_text(self, text: str) -> bool:
        """Validate text quality - basic check for now"""
        if not text or len(text) < 100:
            return False

        letters = sum(1 for c in text if c.isalpha())
        if letters / len(text) < 0.3:
            return False

        return True
