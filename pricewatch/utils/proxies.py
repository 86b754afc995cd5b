"""Outbound proxy pool."""

from __future__ import annotations

import logging
import pathlib
import random
from typing import Iterable

import httpx
import yaml

from pricewatch.config import Settings
from pricewatch.ingest.errors import ProxyConfigError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = frozenset({"http", "https", "socks5", "socks5h"})


def validate_proxy_url(url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise ProxyConfigError(f"Malformed proxy URL: {url}") from exc
    if parsed.scheme not in SUPPORTED_SCHEMES:
        raise ProxyConfigError(f"Unsupported proxy scheme: {parsed.scheme or '<none>'}")
    if not parsed.host:
        raise ProxyConfigError(f"Malformed proxy URL: {url}")
    return url


def load_proxy_file(path: str | pathlib.Path) -> list[str]:
    """Read a YAML list of proxy URLs."""
    data = yaml.safe_load(pathlib.Path(path).read_text()) or []
    if not isinstance(data, list):
        raise ProxyConfigError(f"Proxy file {path} must contain a list of URLs")
    return [str(item) for item in data]


class ProxyPool:
    """Proxy URLs picked uniformly at random, one pick per attempt."""

    def __init__(self, urls: Iterable[str] = (), *, rng: random.Random | None = None) -> None:
        self.urls: list[str] = []
        for url in urls:
            url = validate_proxy_url(url)
            if url not in self.urls:
                self.urls.append(url)
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProxyPool":
        if not settings.enable_proxy:
            return cls()
        urls: list[str] = list(settings.proxy_endpoints)
        if settings.proxy_file:
            urls.extend(load_proxy_file(settings.proxy_file))
        if not urls:
            logger.warning("ENABLE_PROXY is set but no proxy endpoints are configured")
        return cls(urls)

    def __len__(self) -> int:
        return len(self.urls)

    def __bool__(self) -> bool:
        return bool(self.urls)

    def choose(self) -> str | None:
        if not self.urls:
            return None
        return self._rng.choice(self.urls)
