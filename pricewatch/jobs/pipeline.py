"""Catalog ingestion and price-change job orchestration."""

from __future__ import annotations

import argparse
import asyncio
import enum
import functools
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from pricewatch.config import Settings
from pricewatch.db.migrate import run_migrations
from pricewatch.db.session import create_engine_from_env
from pricewatch.ingest.client import CatalogClient
from pricewatch.ingest.collector import PaginatedCollector, ResourceKind
from pricewatch.ingest.errors import ProxyConfigError
from pricewatch.ingest.models import Product, Promotion, listed_keys, parse_records
from pricewatch.ingest.writer import IngestionWriter
from pricewatch.logic.price_changes import (
    diff,
    load_existing_changes,
    load_price_snapshots,
    persist_price_changes,
)
from pricewatch.utils.dates import parse_iso_date, previous_day, today_in_tz

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    IDLE = "idle"
    FETCHING_PRODUCTS = "fetching_products"
    FETCHING_PROMOTIONS = "fetching_promotions"
    CONNECTING = "connecting"
    INGESTING = "ingesting"
    LOADING_SNAPSHOTS = "loading_snapshots"
    DIFFING = "diffing"
    PERSISTING_CHANGES = "persisting_changes"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class PipelineRun:
    name: str
    as_of: date
    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    error: BaseException | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE

    def advance(self, state: PipelineState) -> None:
        logger.info("[%s %s] %s -> %s", self.name, self.as_of, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, exc: BaseException) -> None:
        logger.exception(
            "[%s %s] failed while %s: %s (cause: %r)",
            self.name,
            self.as_of,
            self.state.value,
            exc,
            exc.__cause__,
        )
        self.error = exc
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)


class Pipeline:
    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        *,
        client: CatalogClient | None = None,
        collector: PaginatedCollector | None = None,
        writer: IngestionWriter | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.client = client or CatalogClient(settings)
        self.collector = collector or PaginatedCollector(self.client, settings)
        self.writer = writer or IngestionWriter(engine, retention_days=settings.price_retention_days)

    async def close(self) -> None:
        await self.client.close()

    async def run_ingest(self, as_of: date | None = None) -> PipelineRun:
        run = PipelineRun("ingest", as_of or today_in_tz())
        loop = asyncio.get_running_loop()
        try:
            run.advance(PipelineState.FETCHING_PRODUCTS)
            product_result = await self.collector.collect_all(ResourceKind.PRODUCTS)
            run.advance(PipelineState.FETCHING_PROMOTIONS)
            promotion_result = await self.collector.collect_all(ResourceKind.PROMOTIONS)
            products = parse_records(Product, product_result.records)
            promotions = parse_records(Promotion, promotion_result.records)
            run.stats["failed_pages"] = {
                "products": product_result.failed_pages,
                "promotions": promotion_result.failed_pages,
            }

            run.advance(PipelineState.CONNECTING)
            await loop.run_in_executor(None, run_migrations, self.engine)

            run.advance(PipelineState.INGESTING)
            complete = product_result.complete and promotion_result.complete
            stats = await loop.run_in_executor(
                None,
                functools.partial(
                    self.writer.ingest,
                    products,
                    promotions,
                    run.as_of,
                    remove_stale=complete,
                    listed_product_ids=listed_keys(product_result.records, "productId"),
                    listed_promotion_ids=listed_keys(promotion_result.records, "promotionId"),
                ),
            )
            run.stats.update(stats.as_dict())
            run.advance(PipelineState.DONE)
        except Exception as exc:
            run.fail(exc)
        return run

    async def run_price_changes(self, as_of: date | None = None) -> PipelineRun:
        run = PipelineRun("price-changes", as_of or today_in_tz())
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._compare, run)
            run.advance(PipelineState.DONE)
        except Exception as exc:
            run.fail(exc)
        return run

    def _compare(self, run: PipelineRun) -> None:
        with self.engine.begin() as conn:
            run.advance(PipelineState.LOADING_SNAPSHOTS)
            yesterday = load_price_snapshots(conn, previous_day(run.as_of))
            today = load_price_snapshots(conn, run.as_of)
            existing = load_existing_changes(conn)

            run.advance(PipelineState.DIFFING)
            changes = diff(yesterday, today, existing)

            run.advance(PipelineState.PERSISTING_CHANGES)
            persist_price_changes(conn, changes.records)
        run.stats.update(
            yesterday=len(yesterday), today=len(today), new=len(changes.new), updated=len(changes.updated)
        )

    async def scrape_and_compare(self, as_of: date | None = None) -> list[PipelineRun]:
        target = as_of or today_in_tz()
        ingest = await self.run_ingest(target)
        if not ingest.succeeded:
            logger.warning("Skipping price comparison for %s: ingest did not finish", target)
            return [ingest]
        return [ingest, await self.run_price_changes(target)]


async def run_pipeline(mode: str = "all", as_of: date | None = None) -> list[PipelineRun]:
    load_dotenv()
    settings = Settings.from_env()
    engine = create_engine_from_env()
    pipeline = Pipeline(settings, engine)
    try:
        if mode == "ingest":
            return [await pipeline.run_ingest(as_of)]
        if mode == "compare":
            return [await pipeline.run_price_changes(as_of)]
        return await pipeline.scrape_and_compare(as_of)
    finally:
        await pipeline.close()
        engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Harvest the catalog and compute price changes.")
    parser.add_argument("mode", nargs="?", choices=("all", "ingest", "compare"), default="all")
    parser.add_argument("--date", type=parse_iso_date, default=None, help="snapshot date (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        runs = asyncio.run(run_pipeline(args.mode, args.date))
    except KeyError as exc:
        print(f"Missing environment variable: {exc}", file=sys.stderr)
        return 1
    except ProxyConfigError as exc:
        print(f"Invalid proxy configuration: {exc}", file=sys.stderr)
        return 1
    return 0 if all(run.succeeded for run in runs) else 2


if __name__ == "__main__":
    sys.exit(main())
