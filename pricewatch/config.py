"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_DATABASE_URL = "postgresql://user:pass@db:5432/pricewatch"

TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


@dataclass(frozen=True, slots=True)
class Settings:
    product_url: str
    promotion_url: str
    api_url: str
    host_url: str = ""
    api_host_url: str = ""
    client_code: str = "CLP"
    place_id: str = ""
    enable_proxy: bool = False
    proxy_endpoints: tuple[str, ...] = field(default_factory=tuple)
    proxy_file: str | None = None
    request_timeout: float = 30.0
    max_tries: int = 10
    product_page_size: int = 250
    promotion_page_size: int = 50
    price_retention_days: int = 90

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        ``PRODUCT_URL``, ``PROMOTION_URL`` and ``API_URL`` are required and a
        missing one raises ``KeyError``.
        """
        endpoints = os.environ.get("PROXY_ENDPOINTS", "") or os.environ.get("PROXY_ENDPOINT", "")
        host_url = os.environ.get("HOST_URL", "")
        return cls(
            product_url=os.environ["PRODUCT_URL"],
            promotion_url=os.environ["PROMOTION_URL"],
            api_url=os.environ["API_URL"],
            host_url=host_url,
            api_host_url=os.environ.get("API_HOST_URL", host_url),
            client_code=os.environ.get("CLIENT_CODE", "CLP"),
            place_id=os.environ.get("PLACE_ID", ""),
            enable_proxy=env_flag("ENABLE_PROXY"),
            proxy_endpoints=tuple(item.strip() for item in endpoints.split(",") if item.strip()),
            proxy_file=os.environ.get("PROXY_FILE") or None,
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", 30)),
            max_tries=int(os.environ.get("MAX_TRIES", 10)),
            product_page_size=int(os.environ.get("PRODUCT_PAGE_SIZE", 250)),
            promotion_page_size=int(os.environ.get("PROMOTION_PAGE_SIZE", 50)),
            price_retention_days=int(os.environ.get("PRICE_RETENTION_DAYS", 90)),
        )


def database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
