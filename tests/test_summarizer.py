"""
Tests for GeminiSummarizer

The genai client is replaced with a scripted fake; no network calls are made.
"""

from types import SimpleNamespace

import pytest
from google.genai import errors

from analysis.llm.summarizer import FLASH_LITE_MAX_CHARS, GeminiSummarizer
from exceptions import ConfigurationError, LLMError
from pipeline.protocols import NullMetrics


class FakeModels:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append((model, contents))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def response(text, input_tokens=120, output_tokens=40):
    return SimpleNamespace(
        text=text,
        candidates=[],
        usage_metadata=SimpleNamespace(prompt_token_count=input_tokens, candidates_token_count=output_tokens),
    )


def api_error(code, status):
    return errors.APIError(code, {"error": {"code": code, "message": status.lower(), "status": status}})


def summarizer(*responses):
    models = FakeModels(responses)
    sleeps = []
    instance = GeminiSummarizer(
        client=SimpleNamespace(models=models),
        metrics=NullMetrics(),
        sleep=sleeps.append,
    )
    return instance, models, sleeps


class TestSummarize:
    def test_prompt_for_kind(self):
        instance, models, _ = summarizer(response("**Document Date:** March 1, 2024\nPermits rose."))

        summary = instance.summarize("permit", "2024-03", "123 Main Street Residential $150,000")

        assert summary.startswith("**Document Date:**")
        model, prompt = models.calls[0]
        assert model == "gemini-2.5-flash-lite"
        assert "123 Main Street" in prompt

    def test_large_document_uses_flash(self):
        instance, models, _ = summarizer(response("Budget summary"))

        instance.summarize("budget", "FY2025-budget", "x" * (FLASH_LITE_MAX_CHARS + 10))

        assert models.calls[0][0] == "gemini-2.5-flash"

    def test_unknown_kind_uses_general_prompt(self):
        instance, models, _ = summarizer(response("General summary"))

        assert instance.summarize("flyer", "f1", "Spring festival on Main Street") == "General summary"

    def test_preamble_removed(self):
        instance, _, _ = summarizer(response("Here is a summary of the document:\n\nThe council met."))
        assert instance.summarize("notice", "n1", "text") == "The council met."

    def test_custom_prompt_option(self):
        instance, models, _ = summarizer(response("ok"))

        instance.summarize("notice", "n1", "body text", {"prompt": "Summarize: {text}"})

        assert models.calls[0][1] == "Summarize: body text"

    def test_empty_text_rejected(self):
        instance, models, _ = summarizer()
        with pytest.raises(LLMError):
            instance.summarize("notice", "n1", "   ")
        assert models.calls == []

    def test_empty_response_is_error(self):
        instance, _, _ = summarizer(response(""))
        with pytest.raises(LLMError):
            instance.summarize("notice", "n1", "text")


class TestRetry:
    def test_rate_limit_retried(self):
        instance, models, sleeps = summarizer(
            api_error(429, "RESOURCE_EXHAUSTED"),
            response("Recovered"),
        )

        assert instance.summarize("notice", "n1", "text") == "Recovered"
        assert len(models.calls) == 2
        assert len(sleeps) == 1

    def test_retries_exhausted(self):
        instance, _, sleeps = summarizer(*[api_error(429, "RESOURCE_EXHAUSTED")] * 3)

        with pytest.raises(LLMError, match="Max retries"):
            instance.summarize("notice", "n1", "text")
        assert len(sleeps) == 3

    def test_other_api_errors_not_retried(self):
        instance, models, sleeps = summarizer(api_error(500, "INTERNAL"))

        with pytest.raises(LLMError, match="Gemini API error"):
            instance.summarize("notice", "n1", "text")
        assert len(models.calls) == 1
        assert sleeps == []


class TestConfiguration:
    def test_api_key_required_without_client(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("LLM_API_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            GeminiSummarizer(metrics=NullMetrics())
