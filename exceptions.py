"""
Custom Exception Hierarchy - Domain-specific error types

Provides clear, typed exceptions for different failure modes across the pipeline.
All custom exceptions inherit from CivicLedgerError for easy catching.

Failure taxonomy:
- Expected absence (no report for a month, no minutes yet) is NOT an exception.
  DocumentResolver returns a NotFound value instead.
- TransientFetchError: network/timeout/5xx/render failures. Try the next candidate
  or record a per-item failure; never abort a batch.
- ParsingError: unexpected page or document shape. Logged with the source id,
  affected item skipped.
- ConfigurationError: missing or invalid settings. Fatal, raised before any
  network activity.

Design Philosophy:
- Exceptions are data: Include context for debugging
- Fail explicitly: Better to raise specific exception than generic
- Catch specifically: Handler can distinguish error types
"""

from typing import Optional, Dict, Any


class CivicLedgerError(Exception):
    """Base exception for all civicledger errors

    All custom exceptions inherit from this, enabling:
    - Catch all pipeline errors with single except clause
    - Distinguish our errors from library errors
    - Check if error is retryable via is_retryable property
    """

    # Default: errors are not retryable (permanent failure)
    _retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Check if this error represents a transient failure that should be retried.

        Returns:
            True for transient failures (network, timeouts, render failures)
            False for permanent failures (parse errors, validation, configuration)
        """
        return self._retryable

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Database Errors ==========


class DatabaseError(CivicLedgerError):
    """Database operation failures

    Examples:
    - Query errors
    - Transaction rollbacks
    - Data integrity violations
    """
    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to establish or maintain database connection"""
    _retryable = True


class DataIntegrityError(DatabaseError):
    """Data integrity constraint violation

    Examples:
    - Foreign key violations
    - Unique constraint violations
    """

    def __init__(self, message: str, table: Optional[str] = None, constraint: Optional[str] = None):
        self.table = table
        self.constraint = constraint
        context = {}
        if table:
            context['table'] = table
        if constraint:
            context['constraint'] = constraint
        super().__init__(message, context)


# ========== Vendor Errors ==========


class VendorError(CivicLedgerError):
    """Vendor adapter failures

    Includes context about which source failed.
    """

    def __init__(
        self,
        message: str,
        vendor: str,
        source_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.vendor = vendor
        self.source_id = source_id
        self.original_error = original_error

        context = {'vendor': vendor}
        if source_id:
            context['source_id'] = source_id
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


class TransientFetchError(VendorError):
    """Network, timeout, or server-side failure while fetching a remote resource

    Callers try the next candidate or record a per-item failure.
    """
    _retryable = True


class VendorHTTPError(TransientFetchError):
    """HTTP request to a remote source failed

    Retryable for:
    - 5xx errors (server issues)
    - Timeouts and connection errors (no status code)

    Not retryable for:
    - 4xx errors (missing document, bad request)
    """

    def __init__(
        self,
        message: str,
        vendor: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        source_id: Optional[str] = None,
    ):
        self.status_code = status_code
        self.url = url
        super().__init__(message, vendor=vendor, source_id=source_id)
        if status_code:
            self.context['status_code'] = status_code
        if url:
            self.context['url'] = url

    @property
    def is_retryable(self) -> bool:
        """5xx errors and timeouts are retryable, 4xx are not"""
        if self.status_code is None:
            return True
        return self.status_code >= 500


class PortalRenderError(TransientFetchError):
    """Headless browser failed to load or render a portal page

    Examples:
    - Navigation timeout
    - Browser crash / closed target
    """
    pass


# ========== Processing Errors ==========


class ProcessingError(CivicLedgerError):
    """Processing pipeline failures

    Covers extraction and summarization errors.
    """
    pass


class ExtractionError(ProcessingError):
    """Failed to extract text from document

    Examples:
    - PDF extraction failure
    - Corrupted file
    """

    def __init__(
        self,
        message: str,
        document_url: Optional[str] = None,
        document_type: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.document_url = document_url
        self.document_type = document_type
        self.original_error = original_error

        context = {}
        if document_url:
            context['document_url'] = document_url
        if document_type:
            context['document_type'] = document_type
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


class LLMError(ProcessingError):
    """LLM API failures

    Examples:
    - API rate limit
    - Invalid response format
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        prompt_type: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.model = model
        self.prompt_type = prompt_type
        self.original_error = original_error

        context = {}
        if model:
            context['model'] = model
        if prompt_type:
            context['prompt_type'] = prompt_type
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


# ========== Parsing Errors ==========


class ParsingError(CivicLedgerError):
    """HTML/PDF/text parsing failures

    Raised when a page renders but does not have the expected shape.
    `source` identifies the page/document so the failure can be reproduced.
    """

    def __init__(
        self,
        message: str,
        parser_type: Optional[str] = None,
        source: Optional[str] = None
    ):
        self.parser_type = parser_type
        self.source = source

        context = {}
        if parser_type:
            context['parser_type'] = parser_type
        if source:
            context['source'] = source

        super().__init__(message, context)


# ========== Configuration Errors ==========


class ConfigurationError(CivicLedgerError):
    """Configuration or environment errors

    Examples:
    - Missing required env var
    - Invalid bound (non-positive concurrency, probe count)
    """

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        context = {}
        if config_key:
            context['config_key'] = config_key
        super().__init__(message, context)


# ========== Validation Errors ==========


class ValidationError(CivicLedgerError):
    """Data validation failures

    Examples:
    - Invalid enum value on a model
    - Missing required field
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context)
