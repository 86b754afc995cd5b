"""Errors raised while talking to the upstream catalog."""

from __future__ import annotations


class CatalogError(RuntimeError):
    pass


class CatalogFetchError(CatalogError):
    """A request failed for good, either fatally or after exhausting retries."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.attempts = attempts


class BootstrapError(CatalogError):
    pass


class ProxyConfigError(CatalogError):
    pass
