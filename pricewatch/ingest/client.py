"""HTTP client for the upstream catalog API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Mapping

import httpx

from pricewatch.config import Settings
from pricewatch.ingest.errors import BootstrapError
from pricewatch.utils.proxies import ProxyPool
from pricewatch.utils.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; pricewatch/1.0)"

SessionFactory = Callable[[str | None], httpx.AsyncClient]


def extract_api_key(body: Any) -> tuple[str, str]:
    """Pull the ``(header name, value)`` pair out of the bootstrap response.

    The bootstrap body nests a list of raw ``"Name: value"`` header lines under
    ``changeHomestore.storeLocator.api.headers``; the first one carries the key.
    """
    try:
        line = body["changeHomestore"]["storeLocator"]["api"]["headers"][0]
    except (KeyError, IndexError, TypeError) as exc:
        raise BootstrapError("Bootstrap response has no api headers") from exc
    name, sep, value = str(line).partition(": ")
    if not sep or not name.strip() or not value.strip():
        raise BootstrapError(f"Unexpected api header line: {line!r}")
    return name.strip(), value.strip()


class CatalogClient:
    """Authenticated GET requests with retries and per-attempt proxy rotation."""

    def __init__(
        self,
        settings: Settings,
        *,
        session: httpx.AsyncClient | None = None,
        session_factory: SessionFactory | None = None,
        proxy_pool: ProxyPool | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.proxy_pool = proxy_pool if proxy_pool is not None else ProxyPool.from_settings(settings)
        self.policy = policy or RetryPolicy(max_tries=settings.max_tries)
        self._session_factory = session_factory or self._default_session
        self._sessions: dict[str | None, httpx.AsyncClient] = {}
        if session is not None:
            self._sessions[None] = session
        self._sleep = sleep
        self._api_key: tuple[str, str] | None = None
        self._api_key_lock = asyncio.Lock()

    async def close(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.aclose()

    async def get_api_key(self) -> tuple[str, str]:
        async with self._api_key_lock:
            if self._api_key is None:
                logger.info("Fetching API key from %s", self.settings.api_url)
                body = await self.fetch(self.settings.api_url, skip_auth=True)
                self._api_key = extract_api_key(body)
        return self._api_key

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        *,
        skip_auth: bool = False,
    ) -> Any:
        request_headers = dict(headers or {})
        if not skip_auth:
            name, value = await self.get_api_key()
            request_headers[name] = value
        host = self._host_for(url)
        if host:
            request_headers["host"] = host

        async def attempt() -> Any:
            proxy = self.proxy_pool.choose()
            session = self._session_for(proxy)
            response = await session.get(
                url, headers=request_headers, params=params, timeout=self.settings.request_timeout
            )
            response.raise_for_status()
            return response.json()

        return await retry_async(attempt, self.policy, label=url, sleep=self._sleep)

    def _host_for(self, url: str) -> str:
        if url == self.settings.api_url:
            return self.settings.api_host_url
        return self.settings.host_url

    def _session_for(self, proxy: str | None) -> httpx.AsyncClient:
        session = self._sessions.get(proxy)
        if session is None:
            session = self._session_factory(proxy)
            self._sessions[proxy] = session
        return session

    def _default_session(self, proxy: str | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            proxy=proxy,
            headers={"User-Agent": USER_AGENT},
        )
