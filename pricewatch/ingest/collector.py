"""Paginated collection of catalog resources."""

from __future__ import annotations

import asyncio
import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from pricewatch.config import Settings
from pricewatch.ingest.client import CatalogClient
from pricewatch.ingest.errors import CatalogError

logger = logging.getLogger(__name__)


class ResourceKind(enum.Enum):
    PRODUCTS = "products"
    PROMOTIONS = "promotions"


@dataclass(frozen=True, slots=True)
class Resource:
    kind: ResourceKind
    url: str
    count_field: str
    items_field: str
    page_size: int
    params: Mapping[str, Any]


def resource_for(kind: ResourceKind, settings: Settings) -> Resource:
    base = {"clientCode": settings.client_code, "placeId": settings.place_id}
    if kind is ResourceKind.PRODUCTS:
        return Resource(
            kind=kind,
            url=settings.product_url,
            count_field="productsFound",
            items_field="products",
            page_size=settings.product_page_size,
            params={**base, "sort": "basicprice asc"},
        )
    return Resource(
        kind=kind,
        url=settings.promotion_url,
        count_field="totalPromotionFound",
        items_field="promotions",
        page_size=settings.promotion_page_size,
        params=base,
    )


@dataclass(slots=True)
class CollectionResult:
    kind: ResourceKind
    total: int
    page_count: int
    records: list[dict[str, Any]] = field(default_factory=list)
    failed_pages: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_pages


class ProgressSink(Protocol):
    def start(self, label: str, total: int) -> None: ...

    def advance(self) -> None: ...

    def finish(self) -> None: ...


class LoggingProgress:
    """Logs page progress roughly every tenth of the way."""

    def __init__(self, steps: int = 10) -> None:
        self.steps = steps
        self.label = ""
        self.total = 0
        self.done = 0
        self._next_report = 0

    def start(self, label: str, total: int) -> None:
        self.label, self.total, self.done = label, total, 0
        self._next_report = max(1, math.ceil(total / self.steps))

    def advance(self) -> None:
        self.done += 1
        if self.done >= self._next_report or self.done == self.total:
            logger.info("%s: %s/%s pages", self.label, self.done, self.total)
            self._next_report = self.done + max(1, math.ceil(self.total / self.steps))

    def finish(self) -> None:
        logger.info("%s: finished %s/%s pages", self.label, self.done, self.total)


class PaginatedCollector:
    def __init__(
        self,
        client: CatalogClient,
        settings: Settings,
        *,
        progress: ProgressSink | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.progress = progress or LoggingProgress()

    async def collect_all(self, kind: ResourceKind) -> CollectionResult:
        resource = resource_for(kind, self.settings)
        total = await self._count(resource)
        page_count = math.ceil(total / resource.page_size) if total > 0 else 0
        logger.info("Collecting %s %s over %s pages", total, kind.value, page_count)

        self.progress.start(kind.value, page_count)
        pages = await asyncio.gather(
            *(self._fetch_page(resource, page) for page in range(1, page_count + 1))
        )
        self.progress.finish()

        result = CollectionResult(kind=kind, total=total, page_count=page_count)
        for page, items in enumerate(pages, start=1):
            if items is None:
                result.failed_pages.append(page)
            else:
                result.records.extend(items)
        if result.failed_pages:
            logger.warning(
                "Collected %s %s with %s missing pages: %s",
                len(result.records),
                kind.value,
                len(result.failed_pages),
                result.failed_pages,
            )
        else:
            logger.info("Collected %s %s", len(result.records), kind.value)
        return result

    async def _count(self, resource: Resource) -> int:
        body = await self.client.fetch(resource.url, params={**resource.params, "size": 1})
        try:
            return int(body[resource.count_field])
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(
                f"{resource.kind.value} probe response has no usable {resource.count_field!r}"
            ) from exc

    async def _fetch_page(self, resource: Resource, page: int) -> list[dict[str, Any]] | None:
        params = {**resource.params, "page": page, "size": resource.page_size}
        try:
            body = await self.client.fetch(resource.url, params=params)
        except (CatalogError, ValueError) as exc:
            logger.warning("Dropping %s page %s: %s", resource.kind.value, page, exc)
            return None
        finally:
            self.progress.advance()
        items = body.get(resource.items_field) if isinstance(body, dict) else None
        if not isinstance(items, list):
            logger.warning("Dropping %s page %s: no %r list", resource.kind.value, page, resource.items_field)
            return None
        return items
