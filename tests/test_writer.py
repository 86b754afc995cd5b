from datetime import timedelta

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError

from factories import TODAY, product_payload, promotion_payload
from pricewatch.db import schema
from pricewatch.ingest.models import Product, Promotion
from pricewatch.ingest.writer import IngestionWriter, dedupe
from pricewatch.logic.price_changes import PriceChangeRecord, PriceChangeType, persist_price_changes


def products(*payloads):
    return [Product.model_validate(p) for p in payloads]


def promotions(*payloads):
    return [Promotion.model_validate(p) for p in payloads]


def counts(engine):
    tables = [
        schema.products,
        schema.prices,
        schema.price_changes,
        schema.promotions,
        schema.benefits,
        schema.promotion_texts,
        schema.promotion_products,
    ]
    with engine.connect() as conn:
        return {t.name: conn.execute(select(func.count()).select_from(t)).scalar_one() for t in tables}


def test_dedupe_keeps_last_occurrence():
    items = [("a", 1), ("b", 2), ("a", 3)]
    assert dedupe(items, key=lambda item: item[0]) == [("a", 3), ("b", 2)]


def test_ingest_is_idempotent(engine):
    writer = IngestionWriter(engine)
    batch = products(product_payload("1", tan="A", basic=1.0), product_payload("2", tan="B", basic=2.0))
    promos = promotions(promotion_payload("PROMO1", linked="A,B"))

    writer.ingest(batch, promos, TODAY)
    first = counts(engine)
    writer.ingest(batch, promos, TODAY)

    assert counts(engine) == first
    assert first["products"] == 2
    assert first["prices"] == 2
    assert first["promotion_products"] == 2
    assert first["benefits"] == 1
    assert first["promotion_texts"] == 1


def test_existing_price_for_the_day_is_not_overwritten(engine):
    writer = IngestionWriter(engine)
    writer.ingest(products(product_payload("1", basic=1.0)), [], TODAY)
    writer.ingest(products(product_payload("1", basic=9.0)), [], TODAY)
    writer.ingest(products(product_payload("1", basic=3.0)), [], TODAY + timedelta(days=1))

    with engine.connect() as conn:
        rows = conn.execute(select(schema.prices.c.date, schema.prices.c.basic_price).order_by(schema.prices.c.date)).all()
    assert [tuple(row) for row in rows] == [(TODAY, 1.0), (TODAY + timedelta(days=1), 3.0)]


def test_product_attributes_are_overwritten_last_one_wins(engine):
    writer = IngestionWriter(engine)
    first = product_payload("1", basic=1.0)
    renamed = dict(first, name="Renamed")
    writer.ingest(products(first, renamed), [], TODAY)

    with engine.connect() as conn:
        assert conn.execute(select(schema.products.c.name)).scalar_one() == "Renamed"


def test_stale_products_are_removed_with_dependents(engine):
    writer = IngestionWriter(engine)
    writer.ingest(
        products(product_payload("1", tan="A", basic=1.0), product_payload("2", tan="B", basic=2.0)),
        promotions(promotion_payload("PROMO1", linked="A,B")),
        TODAY,
    )
    with engine.begin() as conn:
        persist_price_changes(
            conn,
            [PriceChangeRecord("2", PriceChangeType.BASIC, 0.0, 0.0, False, 2.0, 2.0)],
        )

    stats = writer.ingest(
        products(product_payload("1", tan="A", basic=1.0)),
        promotions(promotion_payload("PROMO1", linked="A,B")),
        TODAY,
    )

    assert stats.stale_products == 1
    with engine.connect() as conn:
        assert conn.execute(select(schema.products.c.product_id)).scalars().all() == ["1"]
        assert conn.execute(select(schema.prices.c.product_id)).scalars().all() == ["1"]
        assert conn.execute(select(func.count()).select_from(schema.price_changes)).scalar_one() == 0
        links = conn.execute(select(schema.promotion_products.c.product_id)).scalars().all()
    assert links == ["1"]


def test_stale_promotions_are_removed_with_children(engine):
    writer = IngestionWriter(engine)
    batch = products(product_payload("1", tan="A", basic=1.0))
    writer.ingest(batch, promotions(promotion_payload("OLD", linked="A"), promotion_payload("KEEP")), TODAY)
    stats = writer.ingest(batch, promotions(promotion_payload("KEEP")), TODAY)

    assert stats.stale_promotions == 1
    result = counts(engine)
    assert result["promotions"] == 1
    assert result["benefits"] == 1
    assert result["promotion_texts"] == 1
    assert result["promotion_products"] == 0


def test_incomplete_snapshot_keeps_missing_rows(engine):
    writer = IngestionWriter(engine)
    writer.ingest(products(product_payload("1", basic=1.0), product_payload("2", basic=2.0)), [], TODAY)
    stats = writer.ingest(products(product_payload("1", basic=1.0)), [], TODAY, remove_stale=False)

    assert stats.stale_products == 0
    assert counts(engine)["products"] == 2


def test_prices_outside_retention_window_expire(engine):
    writer = IngestionWriter(engine, retention_days=90)
    batch = products(product_payload("1", basic=1.0))
    for age in (91, 90, 1):
        writer.ingest(batch, [], TODAY - timedelta(days=age))

    stats = writer.ingest(batch, [], TODAY)

    assert stats.expired_prices == 1
    with engine.connect() as conn:
        dates = conn.execute(select(schema.prices.c.date).order_by(schema.prices.c.date)).scalars().all()
    assert dates == [TODAY - timedelta(days=90), TODAY - timedelta(days=1), TODAY]


def test_promotion_links_only_resolved_article_numbers(engine):
    writer = IngestionWriter(engine)
    stats = writer.ingest(
        products(product_payload("pid-a", tan="A", basic=1.0)),
        promotions(promotion_payload("PROMO1", linked="A,B")),
        TODAY,
    )

    assert stats.promotion_products == 1
    with engine.connect() as conn:
        rows = conn.execute(select(schema.promotion_products)).all()
    assert [tuple(row) for row in rows] == [("PROMO1", "pid-a")]


def test_promotion_children_are_replaced_not_merged(engine):
    writer = IngestionWriter(engine)
    batch = products(product_payload("1", tan="A", basic=1.0), product_payload("2", tan="B", basic=1.0))
    writer.ingest(batch, promotions(promotion_payload("PROMO1", linked="A")), TODAY)
    writer.ingest(
        batch,
        promotions(
            promotion_payload(
                "PROMO1",
                linked="B",
                benefit=[{"benefitAmount": 1.5}, {"benefitAmount": 3.0}],
            )
        ),
        TODAY,
    )

    with engine.connect() as conn:
        links = conn.execute(select(schema.promotion_products.c.product_id)).scalars().all()
        amounts = conn.execute(
            select(schema.benefits.c.benefit_amount).order_by(schema.benefits.c.benefit_amount)
        ).scalars().all()
    assert links == ["2"]
    assert amounts == [1.5, 3.0]


def test_failed_ingest_leaves_no_partial_writes(engine):
    writer = IngestionWriter(engine)
    writer.ingest(products(product_payload("1", basic=1.0)), [], TODAY)
    before = counts(engine)

    with engine.begin() as conn:
        conn.execute(text("CREATE TRIGGER reject_benefits BEFORE INSERT ON benefits BEGIN SELECT RAISE(ABORT, 'boom'); END"))

    with pytest.raises(IntegrityError):
        writer.ingest(
            products(product_payload("2", basic=2.0)),
            promotions(promotion_payload("PROMO1")),
            TODAY,
        )

    assert counts(engine) == before


def test_promotion_links_every_product_sharing_an_article_number(engine):
    writer = IngestionWriter(engine)
    stats = writer.ingest(
        products(product_payload("1", tan="A", basic=1.0), product_payload("2", tan="A", basic=1.5)),
        promotions(promotion_payload("PROMO1", linked="A,A")),
        TODAY,
    )

    assert stats.promotion_products == 2
    with engine.connect() as conn:
        links = conn.execute(
            select(schema.promotion_products.c.product_id).order_by(schema.promotion_products.c.product_id)
        ).scalars().all()
    assert links == ["1", "2"]


def test_listed_but_unwritten_keys_survive_stale_removal(engine):
    writer = IngestionWriter(engine)
    writer.ingest(products(product_payload("1", basic=1.0), product_payload("2", basic=2.0)), [], TODAY)
    stats = writer.ingest(products(product_payload("1", basic=1.0)), [], TODAY, listed_product_ids={"2"})

    assert stats.stale_products == 0
    assert counts(engine)["prices"] == 2
