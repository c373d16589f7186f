"""
Gemini Summarizer - document summaries for the records pipeline

Responsibilities:
- Load prompts from prompts.json
- Map a document kind (ordinance, permit, splost, ...) to a prompt
- Select model (flash vs flash-lite) and thinking budget from document size
- Retry on 429 rate limits using Gemini's retryDelay hint
- Record LLM metrics

Implements pipeline.protocols.Summarizer. The pipeline decides when to call it.
"""

import json
import os
import re
import time
from importlib.resources import files
from typing import Any, Callable, Dict, Optional, Tuple

from google import genai
from google.genai import errors, types

from config import get_logger
from exceptions import ConfigurationError, LLMError
from pipeline.protocols import MetricsCollector

logger = get_logger(__name__).bind(component="analyzer")

# Model thresholds
FLASH_LITE_MAX_CHARS = 200000
FLASH_LITE_MAX_PAGES = 50

# Longer inputs are truncated; monthly packets occasionally run to hundreds of pages
MAX_INPUT_CHARS = 400000

# document kind -> (prompt category, prompt type)
PROMPT_FOR_KIND: Dict[str, Tuple[str, str]] = {
    "agenda": ("meeting", "agenda"),
    "meeting": ("meeting", "agenda"),
    "minutes": ("meeting", "minutes"),
    "ordinance": ("legislation", "ordinance"),
    "resolution": ("legislation", "resolution"),
    "permit": ("report", "permit"),
    "business": ("report", "business"),
    "budget": ("report", "budget"),
    "audit": ("report", "audit"),
    "pafr": ("report", "pafr"),
    "digest": ("report", "digest"),
    "splost": ("civic", "splost"),
    "notice": ("civic", "notice"),
    "strategic": ("civic", "strategic"),
    "water-quality": ("civic", "water-quality"),
}
GENERAL_PROMPT = ("general", "document")

PREAMBLE_PATTERNS = (
    re.compile(r"^(?:Certainly|Sure|Of course)[!.,][^\n]*\n", re.IGNORECASE),
    re.compile(r"^Here(?:'s| is) (?:a|the) [^:\n]*:\s*", re.IGNORECASE),
)


class GeminiSummarizer:
    """Picks model and prompt per document kind, returns cleaned summary text"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        prompts_path: Optional[str] = None,
        metrics: Optional[MetricsCollector] = None,
        client: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize summarizer

        Args:
            api_key: Gemini API key (defaults to env vars)
            prompts_path: Path to prompts.json (defaults to packaged file)
            metrics: Metrics collector (defaults to the process-wide prometheus metrics)
            client: Pre-built genai client, mainly for tests
        """
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY")
        if client is None and not self.api_key:
            raise ConfigurationError(
                "API key required - set GEMINI_API_KEY or LLM_API_KEY environment variable",
                config_key="GEMINI_API_KEY",
            )

        self.client = client or genai.Client(api_key=self.api_key)
        self._sleep = sleep

        if metrics is None:
            from server.metrics import metrics as default_metrics

            metrics = default_metrics
        self.metrics = metrics

        self.flash_model_name = "gemini-2.5-flash"
        self.flash_lite_model_name = "gemini-2.5-flash-lite"

        if prompts_path is None:
            prompts_text = files("analysis.llm").joinpath("prompts.json").read_text()
            self.prompts = json.loads(prompts_text)
        else:
            with open(prompts_path, "r") as f:
                self.prompts = json.load(f)

        logger.info("prompts loaded", prompt_categories=len(self.prompts))

    def summarize(
        self,
        kind: str,
        doc_id: str,
        text: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Summarize one document

        Args:
            kind: Document kind; unknown kinds use the general prompt
            doc_id: Identifier used for logging only
            text: Extracted document text
            options: Optional {"prompt": custom template with {text}}

        Raises:
            LLMError: API failure, empty response, or retries exhausted
        """
        options = options or {}
        if not text or not text.strip():
            raise LLMError("Nothing to summarize - empty document text", prompt_type=kind)

        if len(text) > MAX_INPUT_CHARS:
            logger.warning("truncating long document", doc_id=doc_id, kind=kind, text_size=len(text))
            text = text[:MAX_INPUT_CHARS]

        category, prompt_type = PROMPT_FOR_KIND.get(kind, GENERAL_PROMPT)
        if options.get("prompt"):
            prompt = options["prompt"].format(text=text)
        else:
            prompt = self._get_prompt(category, prompt_type, text=text)

        page_count = self._estimate_page_count(text)
        if len(text) < FLASH_LITE_MAX_CHARS and page_count <= FLASH_LITE_MAX_PAGES:
            model_name, model_display = self.flash_lite_model_name, "flash-lite"
        else:
            model_name, model_display = self.flash_model_name, "flash"

        config = self._get_thinking_config(page_count, len(text), model_name)
        metric_prompt_type = f"{category}_{prompt_type}"
        start_time = time.time()

        try:
            response = self._call_with_retry(model_name, prompt, config, prompt_type=metric_prompt_type)
            response_text = response.text or self._extract_text_from_response(response)
            if not response_text:
                raise LLMError("Gemini returned no text", model=model_display, prompt_type=metric_prompt_type)
        except LLMError as e:
            duration = time.time() - start_time
            self.metrics.record_llm_call(
                model=model_display,
                prompt_type=metric_prompt_type,
                duration_seconds=duration,
                input_tokens=0,
                output_tokens=0,
                success=False,
            )
            self.metrics.record_error(component="analyzer", error=e)
            logger.error(
                "summarization failed",
                doc_id=doc_id,
                kind=kind,
                duration_seconds=round(duration, 1),
                error=str(e),
            )
            raise

        usage = getattr(response, "usage_metadata", None)
        input_tokens = getattr(usage, "prompt_token_count", 0) or 0
        output_tokens = getattr(usage, "candidates_token_count", 0) or 0
        duration = time.time() - start_time

        self.metrics.record_llm_call(
            model=model_display,
            prompt_type=metric_prompt_type,
            duration_seconds=duration,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            success=True,
        )
        logger.info(
            "document summarized",
            doc_id=doc_id,
            kind=kind,
            model=model_display,
            duration_seconds=round(duration, 1),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return self._clean_summary(response_text)

    def _call_with_retry(self, model_name: str, prompt: str, config, prompt_type: str, max_retries: int = 3):
        """Call Gemini, waiting out 429s. Gemini returns retryDelay in 429 responses."""
        last_error: Optional[Exception] = None

        for attempt in range(max_retries):
            try:
                return self.client.models.generate_content(model=model_name, contents=prompt, config=config)
            except errors.APIError as e:
                last_error = e
                error_str = str(e)
                if e.code != 429 and "RESOURCE_EXHAUSTED" not in error_str:
                    raise LLMError(
                        f"Gemini API error: {e}", model=model_name, prompt_type=prompt_type, original_error=e
                    ) from e

                retry_match = re.search(r'"?retryDelay"?:\s*"(\d+)s"', error_str)
                delay = int(retry_match.group(1)) + 1 if retry_match else 30 * (attempt + 1)
                logger.warning(
                    "rate limited by gemini, waiting for retry",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=delay,
                )
                self._sleep(delay)

        raise LLMError(
            f"Max retries ({max_retries}) exceeded due to rate limiting",
            model=model_name,
            prompt_type=prompt_type,
            original_error=last_error,
        )

    def _get_prompt(self, category: str, prompt_type: str, **variables) -> str:
        try:
            template = self.prompts[category][prompt_type]["template"]
        except KeyError as e:
            raise LLMError(f"Prompt not found: {category}.{prompt_type}", prompt_type=prompt_type) from e
        return template.format(**variables)

    def _get_thinking_config(self, page_count: int, text_size: int, model_name: str) -> types.GenerateContentConfig:
        """Thinking budget from document complexity"""
        if page_count <= 10 and text_size <= 30000:
            # Short reports and notices: no thinking needed
            return types.GenerateContentConfig(
                temperature=0.3,
                max_output_tokens=8192,
                thinking_config=types.ThinkingConfig(thinking_budget=0),
            )

        if page_count <= 50 and text_size <= 150000:
            if model_name == self.flash_lite_model_name:
                # Flash-Lite does not think unless given a budget
                return types.GenerateContentConfig(
                    temperature=0.3,
                    max_output_tokens=8192,
                    thinking_config=types.ThinkingConfig(thinking_budget=2048),
                )
            return types.GenerateContentConfig(temperature=0.3, max_output_tokens=8192)

        return types.GenerateContentConfig(
            temperature=0.3,
            max_output_tokens=8192,
            thinking_config=types.ThinkingConfig(thinking_budget=-1),
        )

    def _extract_text_from_response(self, response) -> Optional[str]:
        """First non-empty text part of the first candidate (skips thinking blocks)"""
        candidates = getattr(response, "candidates", None)
        if not candidates:
            return None
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            if getattr(part, "text", None):
                return part.text
        return None

    def _clean_summary(self, raw_summary: str) -> str:
        cleaned = raw_summary.strip()
        for pattern in PREAMBLE_PATTERNS:
            cleaned = pattern.sub("", cleaned, count=1)
        cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
        return cleaned.strip()

    def _estimate_page_count(self, text: str) -> int:
        # ~2000 chars per page
        return max(1, len(text) // 2000)
