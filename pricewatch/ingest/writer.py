"""Transactional persistence of a catalog snapshot."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Hashable
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Iterable, Sequence, TypeVar

from sqlalchemy import delete
from sqlalchemy.engine import Connection, Engine

from pricewatch.db import bulk
from pricewatch.db.schema import (
    benefits,
    price_changes,
    prices,
    products as products_table,
    promotion_products,
    promotion_texts,
    promotions as promotions_table,
)
from pricewatch.ingest.models import Product, Promotion
from pricewatch.utils.dates import retention_cutoff

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90

T = TypeVar("T")


@dataclass(slots=True)
class IngestStats:
    products: int = 0
    prices: int = 0
    promotions: int = 0
    promotion_products: int = 0
    benefits: int = 0
    promotion_texts: int = 0
    stale_products: int = 0
    stale_promotions: int = 0
    expired_prices: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def dedupe(records: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the last record for every key, in order of first appearance."""
    latest: dict[Hashable, T] = {}
    for record in records:
        latest[key(record)] = record
    return list(latest.values())


def index_by_article_number(products: Iterable[Product]) -> dict[str, list[str]]:
    index: dict[str, list[str]] = defaultdict(list)
    for product in products:
        if product.technical_article_number:
            index[product.technical_article_number].append(product.product_id)
    return dict(index)


def resolve_links(promotion: Promotion, products_by_tan: dict[str, list[str]]) -> list[dict[str, str]]:
    """Promotion/product link rows for every product carrying a linked article number."""
    rows: list[dict[str, str]] = []
    seen: set[str] = set()
    for tan in promotion.linked_technical_article_numbers:
        for product_id in products_by_tan.get(tan, ()):
            if product_id in seen:
                continue
            seen.add(product_id)
            rows.append({"promotion_id": promotion.promotion_id, "product_id": product_id})
    return rows


class IngestionWriter:
    def __init__(self, engine: Engine, *, retention_days: int = DEFAULT_RETENTION_DAYS) -> None:
        self.engine = engine
        self.retention_days = retention_days

    def ingest(
        self,
        products: Sequence[Product],
        promotions: Sequence[Promotion],
        as_of: date,
        *,
        remove_stale: bool = True,
        listed_product_ids: Iterable[str] = (),
        listed_promotion_ids: Iterable[str] = (),
    ) -> IngestStats:
        """Persist one snapshot; either everything is written or nothing is.

        ``listed_product_ids`` and ``listed_promotion_ids`` name records the
        upstream still lists but that failed validation. They are not written,
        and they are not treated as stale either.
        """
        stats = IngestStats()
        products = dedupe(products, key=lambda p: p.product_id)
        promotions = dedupe(promotions, key=lambda p: p.promotion_id)
        with self.engine.begin() as conn:
            if remove_stale:
                self._remove_stale(
                    conn,
                    {p.product_id for p in products} | set(listed_product_ids),
                    {p.promotion_id for p in promotions} | set(listed_promotion_ids),
                    stats,
                )
            else:
                logger.warning("Snapshot is incomplete; keeping products and promotions missing from it")
            self._expire_prices(conn, as_of, stats)
            self._upsert_products(conn, products, as_of, stats)
            self._upsert_promotions(conn, promotions, products, stats)
        logger.info("Ingested snapshot for %s: %s", as_of, stats.as_dict())
        return stats

    def _remove_stale(
        self,
        conn: Connection,
        product_ids: set[str],
        promotion_ids: set[str],
        stats: IngestStats,
    ) -> None:
        stale_products = bulk.existing_keys(conn, products_table.c.product_id) - product_ids
        if stale_products:
            bulk.delete_in(conn, price_changes.c.product_id, stale_products)
            bulk.delete_in(conn, prices.c.product_id, stale_products)
            bulk.delete_in(conn, promotion_products.c.product_id, stale_products)
            stats.stale_products = bulk.delete_in(conn, products_table.c.product_id, stale_products)

        stale_promotions = bulk.existing_keys(conn, promotions_table.c.promotion_id) - promotion_ids
        if stale_promotions:
            self._clear_promotion_children(conn, stale_promotions)
            stats.stale_promotions = bulk.delete_in(conn, promotions_table.c.promotion_id, stale_promotions)

    def _expire_prices(self, conn: Connection, as_of: date, stats: IngestStats) -> None:
        cutoff = retention_cutoff(as_of, self.retention_days)
        result = conn.execute(delete(prices).where(prices.c.date < cutoff))
        stats.expired_prices = max(result.rowcount, 0)

    def _upsert_products(
        self, conn: Connection, products: Sequence[Product], as_of: date, stats: IngestStats
    ) -> None:
        stats.products = bulk.upsert(
            conn, products_table, [p.to_row() for p in products], keys=["product_id"]
        )
        price_rows = [p.price.to_row(p.product_id, as_of) for p in products if p.price is not None]
        stats.prices = bulk.insert_ignore(conn, prices, price_rows, keys=["product_id", "date"])

    def _upsert_promotions(
        self,
        conn: Connection,
        promotions: Sequence[Promotion],
        products: Sequence[Product],
        stats: IngestStats,
    ) -> None:
        stats.promotions = bulk.upsert(
            conn, promotions_table, [p.to_row() for p in promotions], keys=["promotion_id"]
        )
        self._clear_promotion_children(conn, [p.promotion_id for p in promotions])

        products_by_tan = index_by_article_number(products)
        links: list[dict[str, str]] = []
        benefit_rows: list[dict[str, Any]] = []
        text_rows: list[dict[str, Any]] = []
        for promotion in promotions:
            links.extend(resolve_links(promotion, products_by_tan))
            benefit_rows.extend(
                {"promotion_id": promotion.promotion_id, **benefit.model_dump()}
                for benefit in promotion.benefits
            )
            text_rows.extend(
                {"promotion_id": promotion.promotion_id, **text.model_dump()} for text in promotion.texts
            )
        stats.promotion_products = bulk.insert_ignore(conn, promotion_products, links)
        stats.benefits = bulk.insert_ignore(conn, benefits, benefit_rows)
        stats.promotion_texts = bulk.insert_ignore(conn, promotion_texts, text_rows)

    def _clear_promotion_children(self, conn: Connection, promotion_ids: Iterable[str]) -> None:
        promotion_ids = list(promotion_ids)
        if not promotion_ids:
            return
        bulk.delete_in(conn, promotion_products.c.promotion_id, promotion_ids)
        bulk.delete_in(conn, benefits.c.promotion_id, promotion_ids)
        bulk.delete_in(conn, promotion_texts.c.promotion_id, promotion_ids)
