import os
import logging
import sys
from typing import Optional

import structlog

from exceptions import ConfigurationError

logger = logging.getLogger("civicledger")


def get_logger(name: str = "civicledger"):
    """Get a structured logger instance

    Usage:
        logger = get_logger(__name__)
        logger = logger.bind(component="vendor", vendor="civicclerk")
        logger.info("fetching event", event_id=1234)

    Args:
        name: Logger name (typically __name__ or module path)

    Returns:
        Structured logger instance with context binding support
    """
    return structlog.get_logger(name)


class Config:
    """Configuration management for civicledger"""

    # Settings that must be present before the matching command touches the network
    REQUIRED_FOR = {
        "CIVICCLERK_URL": "CIVICLEDGER_CIVICCLERK_URL",
        "CITY_SITE_URL": "CIVICLEDGER_CITY_SITE_URL",
        "MUNICODE_URL": "CIVICLEDGER_MUNICODE_URL",
        "MUNICODE_PRODUCT_ID": "CIVICLEDGER_MUNICODE_PRODUCT_ID",
    }

    def __init__(self):
        # Database configuration - single embedded SQLite file
        local_path = os.path.join(os.getcwd(), "data")
        self.DB_DIR = os.getenv("CIVICLEDGER_DB_DIR", local_path)
        self.DB_PATH = os.getenv(
            "CIVICLEDGER_DB_PATH", f"{self.DB_DIR}/civicledger.db"
        )

        # Remote sources
        self.CIVICCLERK_URL = os.getenv("CIVICLEDGER_CIVICCLERK_URL", "").rstrip("/")
        self.CITY_SITE_URL = os.getenv("CIVICLEDGER_CITY_SITE_URL", "").rstrip("/")
        self.MUNICODE_URL = os.getenv("CIVICLEDGER_MUNICODE_URL", "").rstrip("/")
        self.MUNICODE_PRODUCT_ID = os.getenv("CIVICLEDGER_MUNICODE_PRODUCT_ID", "")
        self.MEETING_LOCATION = os.getenv("CIVICLEDGER_MEETING_LOCATION", "")

        # Fetch bounds
        self.FETCH_CONCURRENCY = int(os.getenv("CIVICLEDGER_FETCH_CONCURRENCY", "3"))
        self.FETCH_TIMEOUT = int(os.getenv("CIVICLEDGER_FETCH_TIMEOUT", "30"))
        self.PORTAL_SETTLE_MS = int(os.getenv("CIVICLEDGER_PORTAL_SETTLE_MS", "2000"))
        self.MIN_REQUEST_DELAY = float(os.getenv("CIVICLEDGER_MIN_REQUEST_DELAY", "1.0"))

        # Event id discovery bounds
        self.DISCOVERY_MAX_PROBES = int(os.getenv("CIVICLEDGER_DISCOVERY_MAX_PROBES", "200"))
        self.DISCOVERY_MAX_MISSES = int(
            os.getenv("CIVICLEDGER_DISCOVERY_MAX_MISSES", "30")
        )

        # External APIs
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")  # Google Gemini API
        self.LLM_API_KEY = os.getenv("LLM_API_KEY")  # Fallback

        # Metrics
        self.METRICS_PORT = int(os.getenv("CIVICLEDGER_METRICS_PORT", "0"))

        # Logging
        self.DEBUG = os.getenv("CIVICLEDGER_DEBUG", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("CIVICLEDGER_LOG_LEVEL", "INFO").upper()

        # Validate configuration
        self._validate()

    def _validate(self):
        """Validate configuration values"""
        if self.FETCH_CONCURRENCY <= 0:
            raise ConfigurationError(
                "CIVICLEDGER_FETCH_CONCURRENCY must be positive",
                config_key="CIVICLEDGER_FETCH_CONCURRENCY",
            )

        if self.FETCH_TIMEOUT <= 0:
            raise ConfigurationError(
                "CIVICLEDGER_FETCH_TIMEOUT must be positive",
                config_key="CIVICLEDGER_FETCH_TIMEOUT",
            )

        if self.DISCOVERY_MAX_PROBES <= 0:
            raise ConfigurationError(
                "CIVICLEDGER_DISCOVERY_MAX_PROBES must be positive",
                config_key="CIVICLEDGER_DISCOVERY_MAX_PROBES",
            )

        if self.DISCOVERY_MAX_MISSES <= 0:
            raise ConfigurationError(
                "CIVICLEDGER_DISCOVERY_MAX_MISSES must be positive",
                config_key="CIVICLEDGER_DISCOVERY_MAX_MISSES",
            )

        if self.METRICS_PORT < 0 or self.METRICS_PORT > 65535:
            raise ConfigurationError(
                "CIVICLEDGER_METRICS_PORT must be between 0 and 65535",
                config_key="CIVICLEDGER_METRICS_PORT",
            )

        if not self.get_api_key():
            logger.warning("No LLM API key configured - summaries will be disabled")

    def require(self, *names: str) -> None:
        """Fail fast when a command needs settings that were never provided

        Called by CLI commands before any network activity.

        Raises:
            ConfigurationError: naming the first missing environment variable
        """
        for name in names:
            if not getattr(self, name, None):
                env_key = self.REQUIRED_FOR.get(name, name)
                raise ConfigurationError(f"{env_key} is required", config_key=env_key)

    def get_api_key(self) -> Optional[str]:
        """Get the API key for LLM services"""
        return self.GEMINI_API_KEY or self.LLM_API_KEY

    def ensure_data_dir(self) -> str:
        """Lazily create data directory if it doesn't exist

        Returns:
            Path to the data directory
        """
        if not os.path.exists(self.DB_DIR):
            logger.info("creating data directory %s", self.DB_DIR)
            os.makedirs(self.DB_DIR, exist_ok=True)
        return self.DB_DIR

    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.DEBUG

    def summary(self) -> dict:
        """Get a summary of current configuration (excluding secrets)"""
        return {
            "db_path": self.DB_PATH,
            "civicclerk_url": self.CIVICCLERK_URL or None,
            "city_site_url": self.CITY_SITE_URL or None,
            "municode_url": self.MUNICODE_URL or None,
            "municode_product_id": self.MUNICODE_PRODUCT_ID or None,
            "fetch_concurrency": self.FETCH_CONCURRENCY,
            "fetch_timeout": self.FETCH_TIMEOUT,
            "portal_settle_ms": self.PORTAL_SETTLE_MS,
            "discovery_max_probes": self.DISCOVERY_MAX_PROBES,
            "discovery_max_misses": self.DISCOVERY_MAX_MISSES,
            "metrics_port": self.METRICS_PORT or None,
            "log_level": self.LOG_LEVEL,
            "has_api_key": bool(self.get_api_key()),
            "is_development": self.is_development(),
        }


def configure_structlog(is_development: bool = False, log_level: str = "INFO"):
    """Configure structlog for structured logging

    Args:
        is_development: If True, use human-readable key-value output. If False, use JSON.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # No timestamp processor - the scheduler (cron/systemd) stamps output
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if is_development:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


# Global configuration instance
config = Config()

configure_structlog(
    is_development=config.is_development(),
    log_level=config.LOG_LEVEL
)
