"""Configuration and environment handling for salesqueue."""

import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from salesqueue.connectors.base import RequestPolicy
from salesqueue.pipedrive.client import DEFAULT_BASE_URL, DEFAULT_LEGACY_BASE_URL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

FILTER_ENV_VARS = {
    "overdue": "PIPEDRIVE_OVERDUE_FILTER_ID",
    "today": "PIPEDRIVE_TODAY_FILTER_ID",
    "missing": "PIPEDRIVE_MISSING_ACTION_FILTER_ID",
}


class ConfigError(ValueError):
    """Required configuration is missing or malformed."""

    pass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")


class Config:
    """Central configuration object."""

    def __init__(self, load_env_file: bool = True):
        # Load .env from the working directory, then the project root
        if load_env_file:
            for env_path in (Path.cwd() / ".env", Path(__file__).parent.parent.parent / ".env"):
                if env_path.exists():
                    load_dotenv(env_path)

        # Pipedrive
        self.api_token: Optional[str] = os.getenv("PIPEDRIVE_API_TOKEN") or None
        self.base_url: str = os.getenv("PIPEDRIVE_BASE_URL", DEFAULT_BASE_URL)
        self.legacy_base_url: str = os.getenv("PIPEDRIVE_LEGACY_BASE_URL", DEFAULT_LEGACY_BASE_URL)
        self.company_domain: str = os.getenv("PIPEDRIVE_COMPANY_DOMAIN", "app.pipedrive.com")

        # Saved filters (id or name)
        self.overdue_filter: Optional[str] = os.getenv(FILTER_ENV_VARS["overdue"]) or None
        self.today_filter: Optional[str] = os.getenv(FILTER_ENV_VARS["today"]) or None
        self.missing_filter: Optional[str] = os.getenv(FILTER_ENV_VARS["missing"]) or None

        # Digest
        self.timezone: str = os.getenv("SALES_QUEUE_TIMEZONE", "Europe/Madrid")
        self.cache_ttl: int = _int_env("SALES_QUEUE_CACHE_TTL", 3600)
        self.max_results: int = _int_env("SALES_QUEUE_MAX_RESULTS", 50)

        # HTTP
        self.http_timeout: float = _float_env("SALES_QUEUE_HTTP_TIMEOUT", 30.0)
        self.http_retries: int = _int_env("SALES_QUEUE_HTTP_RETRIES", 3)

        # Logging
        self.log_level: str = os.getenv("SALES_QUEUE_LOG_LEVEL", "INFO")

    def require_token(self) -> str:
        """Return the API token or raise ConfigError."""
        if not self.api_token:
            raise ConfigError("PIPEDRIVE_API_TOKEN is not set")
        return self.api_token

    def filter_values(self) -> Dict[str, Optional[str]]:
        return {
            "overdue": self.overdue_filter,
            "today": self.today_filter,
            "missing": self.missing_filter,
        }

    def require_filter_ids(self) -> Dict[str, str]:
        """Return the three configured filters, naming every missing variable."""
        values = self.filter_values()
        missing: List[str] = [FILTER_ENV_VARS[k] for k, v in values.items() if not v]
        if missing:
            raise ConfigError(f"Missing filter configuration: {', '.join(missing)}")
        return {k: str(v) for k, v in values.items()}

    def build_policy(self) -> RequestPolicy:
        """Request policy derived from the HTTP settings."""
        return RequestPolicy(
            read_timeout=self.http_timeout,
            max_retries=self.http_retries,
        )

    def setup_logging(self, level: Optional[str] = None) -> None:
        """Configure root logging on stderr (stdout carries JSON and MCP traffic)."""
        logging.basicConfig(
            level=getattr(logging, (level or self.log_level).upper(), logging.INFO),
            format=LOG_FORMAT,
            stream=sys.stderr,
        )
