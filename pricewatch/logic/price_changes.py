"""Day-over-day price change detection."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.engine import Connection

from pricewatch.db import bulk
from pricewatch.db.schema import price_changes, prices


class PriceChangeType(str, enum.Enum):
    BASIC = "BASIC"
    QUANTITY = "QUANTITY"


@dataclass(frozen=True, slots=True)
class PriceSnapshot:
    product_id: str
    basic_price: float | None
    quantity_price: float | None = None
    is_promo_active: bool | None = None


@dataclass(frozen=True, slots=True)
class PriceChangeRecord:
    product_id: str
    price_change_type: PriceChangeType
    price_change: float
    price_change_percentage: float
    involves_promotion: bool
    old_price: float
    new_price: float

    @property
    def key(self) -> tuple[str, PriceChangeType]:
        return self.product_id, self.price_change_type

    def to_row(self) -> dict[str, object]:
        row = asdict(self)
        row["price_change_type"] = self.price_change_type.value
        return row


@dataclass(slots=True)
class PriceChangeDiff:
    updated: list[PriceChangeRecord] = field(default_factory=list)
    new: list[PriceChangeRecord] = field(default_factory=list)

    @property
    def records(self) -> list[PriceChangeRecord]:
        return [*self.new, *self.updated]


def _current(price: PriceSnapshot, tier: PriceChangeType) -> float | None:
    if tier is PriceChangeType.BASIC:
        return price.basic_price
    return price.quantity_price


def _previous(price: PriceSnapshot | None, tier: PriceChangeType) -> float | None:
    if price is None:
        return None
    if tier is PriceChangeType.QUANTITY and price.quantity_price is not None:
        return price.quantity_price
    # No earlier quantity price: measure against the basic price.
    return price.basic_price


def _record(
    price: PriceSnapshot, tier: PriceChangeType, old: float, new: float
) -> PriceChangeRecord:
    delta = new - old
    percentage = round(delta / old, 4) if old > 0 else 0.0
    return PriceChangeRecord(
        product_id=price.product_id,
        price_change_type=tier,
        price_change=round(delta, 2),
        price_change_percentage=percentage,
        involves_promotion=bool(price.is_promo_active),
        old_price=old,
        new_price=new,
    )


def diff(
    yesterday: Iterable[PriceSnapshot],
    today: Iterable[PriceSnapshot],
    existing: Iterable[PriceChangeRecord | tuple[str, PriceChangeType]],
) -> PriceChangeDiff:
    """Compare today's prices with yesterday's, per product and tier.

    A record is emitted when a tier's price moved, or as a zero-sized baseline
    when the product has no earlier price or no change row for that tier yet.
    Records whose ``(product_id, tier)`` already has a change row land in
    ``updated``, the rest in ``new``. Output order follows ``today``.
    """
    before = {price.product_id: price for price in yesterday}
    known = {item.key if isinstance(item, PriceChangeRecord) else tuple(item) for item in existing}
    latest = {price.product_id: price for price in today}

    result = PriceChangeDiff()
    for price in latest.values():
        previous = before.get(price.product_id)
        for tier in PriceChangeType:
            new = _current(price, tier)
            if new is None:
                continue
            old = _previous(previous, tier)
            exists = (price.product_id, tier) in known
            if old is not None and new != old:
                record = _record(price, tier, old, new)
            elif old is None or not exists:
                record = _record(price, tier, new, new)
            else:
                continue
            (result.updated if exists else result.new).append(record)
    return result


def load_price_snapshots(conn: Connection, day: date) -> list[PriceSnapshot]:
    query = (
        select(prices.c.product_id, prices.c.basic_price, prices.c.quantity_price, prices.c.is_promo_active)
        .where(prices.c.date == day)
        .order_by(prices.c.product_id)
    )
    return [PriceSnapshot(*row) for row in conn.execute(query)]


def load_existing_changes(conn: Connection) -> list[PriceChangeRecord]:
    query = select(
        price_changes.c.product_id,
        price_changes.c.price_change_type,
        price_changes.c.price_change,
        price_changes.c.price_change_percentage,
        price_changes.c.involves_promotion,
        price_changes.c.old_price,
        price_changes.c.new_price,
    ).order_by(price_changes.c.product_id, price_changes.c.price_change_type)
    return [
        PriceChangeRecord(
            product_id=row.product_id,
            price_change_type=PriceChangeType(row.price_change_type),
            price_change=row.price_change,
            price_change_percentage=row.price_change_percentage,
            involves_promotion=bool(row.involves_promotion),
            old_price=row.old_price,
            new_price=row.new_price,
        )
        for row in conn.execute(query)
    ]


def persist_price_changes(conn: Connection, records: Sequence[PriceChangeRecord]) -> int:
    """Upsert change rows keyed by ``(product_id, price_change_type)``."""
    return bulk.upsert(
        conn,
        price_changes,
        [record.to_row() for record in records],
        keys=["product_id", "price_change_type"],
    )
