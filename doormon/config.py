from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from .constants import DEFAULT_RETRY_COUNT, DEFAULT_SIGN_KEY, DEFAULT_WEBHOOK_URL
from .errors import ConfigurationError


def get_env(name: str, default: str = "", environ: Optional[Mapping[str, str]] = None) -> str:
    """Read an environment variable; unset or empty values fall back to ``default``."""
    env = os.environ if environ is None else environ
    val = env.get(name)
    if not val:
        if not default:
            raise ConfigurationError(f"Environment variable {name} not found")
        return default
    return val


def get_bool_env(name: str, default: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    val = env.get(name)
    if val is None:
        return default
    val = val.lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


def parse_retry_count(raw) -> int:
    try:
        count = int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"RETRY_COUNT must be an integer, got {raw!r}") from None
    if count < 0:
        raise ConfigurationError(f"RETRY_COUNT must be >= 0, got {count}")
    return count


def validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"WEBHOOK_URL must be an http(s) URL, got {url!r}")
    return url


@dataclass(frozen=True)
class WebhookConfig:
    """Webhook settings read from the environment at startup."""
    url: str = DEFAULT_WEBHOOK_URL
    sign_key: str = DEFAULT_SIGN_KEY
    retry_count: int = DEFAULT_RETRY_COUNT

    @property
    def insecure_key(self) -> bool:
        return self.sign_key == DEFAULT_SIGN_KEY


def get_webhook_config(environ: Optional[Mapping[str, str]] = None) -> WebhookConfig:
    """Build the webhook configuration from WEBHOOK_URL, SIGN_KEY and RETRY_COUNT."""
    return WebhookConfig(
        url=validate_url(get_env("WEBHOOK_URL", DEFAULT_WEBHOOK_URL, environ)),
        sign_key=get_env("SIGN_KEY", DEFAULT_SIGN_KEY, environ),
        retry_count=parse_retry_count(get_env("RETRY_COUNT", str(DEFAULT_RETRY_COUNT), environ)),
    )
