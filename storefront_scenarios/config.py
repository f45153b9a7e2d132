"""Runtime settings for scenario runs, read from the environment."""

import logging
import os
import sys
from typing import Optional

from pydantic import BaseModel, Field

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Settings(BaseModel):
    base_url: str = "http://localhost:8080"
    headless: bool = True
    navigation_timeout_ms: int = Field(default=10000, gt=0)
    settle_timeout_ms: int = Field(default=10000, gt=0)
    email_domain: str = "test.com"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from STOREFRONT_* variables, then apply overrides"""
        values = {
            "base_url": os.environ.get("STOREFRONT_BASE_URL", cls.model_fields["base_url"].default),
            "headless": _env_bool("STOREFRONT_HEADLESS", True),
            "navigation_timeout_ms": _env_int("STOREFRONT_NAVIGATION_TIMEOUT_MS", 10000),
            "settle_timeout_ms": _env_int("STOREFRONT_SETTLE_TIMEOUT_MS", 10000),
            "email_domain": os.environ.get("STOREFRONT_EMAIL_DOMAIN", "test.com"),
            "log_level": os.environ.get("STOREFRONT_LOG_LEVEL", "INFO"),
        }
        values.update(overrides)
        return cls(**values)

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


def configure_logging(level: Optional[str] = None):
    """Set up root logging the same way for library users and test runs"""
    level = (level or os.environ.get("STOREFRONT_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr
    )
