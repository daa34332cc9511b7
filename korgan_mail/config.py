"""Runtime configuration, read from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100


def _env_number(name: str, default: float, cast: type = int) -> float:
    """Read a numeric env var, falling back to the default on bad input."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %s", name, raw, default)
        return default


@dataclass
class MailConfig:
    """Connection and caching settings for the mail core."""

    base_url: str = "http://localhost:3000"
    user_email: str = ""
    api_token: str = ""
    page_size: int = DEFAULT_PAGE_SIZE
    stale_after_minutes: float = 5
    request_timeout_seconds: float = 30
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    refresh_interval_seconds: int = 60

    @property
    def stale_after(self) -> timedelta:
        return timedelta(minutes=self.stale_after_minutes)

    @classmethod
    def from_env(cls) -> MailConfig:
        """Build MailConfig from KORGAN_* environment variables."""
        page_size = int(_env_number("KORGAN_PAGE_SIZE", DEFAULT_PAGE_SIZE))
        if not MIN_PAGE_SIZE <= page_size <= MAX_PAGE_SIZE:
            logger.warning(
                "KORGAN_PAGE_SIZE %d outside %d..%d; defaulting to %d",
                page_size,
                MIN_PAGE_SIZE,
                MAX_PAGE_SIZE,
                DEFAULT_PAGE_SIZE,
            )
            page_size = DEFAULT_PAGE_SIZE
        return cls(
            base_url=os.environ.get("KORGAN_API_BASE_URL", "http://localhost:3000").rstrip("/"),
            user_email=os.environ.get("KORGAN_USER_EMAIL", ""),
            api_token=os.environ.get("KORGAN_API_TOKEN", ""),
            page_size=page_size,
            stale_after_minutes=_env_number("KORGAN_STALE_MINUTES", 5, float),
            request_timeout_seconds=_env_number("KORGAN_REQUEST_TIMEOUT", 30, float),
            max_retries=int(_env_number("KORGAN_MAX_RETRIES", 3)),
            retry_delay_seconds=_env_number("KORGAN_RETRY_DELAY", 1.0, float),
            refresh_interval_seconds=int(_env_number("KORGAN_REFRESH_INTERVAL", 60)),
        )
