from datetime import date

from factories import TODAY, product_payload, promotion_payload
from pricewatch.ingest.models import Product, Promotion, listed_keys, parse_records


def test_product_maps_upstream_fields():
    payload = product_payload(
        "P1",
        tan="T-1",
        basic="2.49",
        quantityPrice=1.99,
        quantityPriceQuantity="3",
        isPromoActive="Y",
        isRedPrice="N",
    )
    payload.update({"walkRouteSequenceNumber": "", "unknownField": "ignored", "IsBio": "true"})
    product = Product.model_validate(payload)

    assert product.product_id == "P1"
    assert product.technical_article_number == "T-1"
    assert product.long_name == "Long product P1"
    assert product.is_bio is True
    assert product.walk_route_sequence_number is None
    assert product.price.basic_price == 2.49
    assert product.price.quantity_price == 1.99
    assert product.price.is_promo_active is True
    assert product.price.is_red_price is False
    assert "unknownField" not in product.to_row()
    assert product.price.to_row("P1", TODAY)["date"] == TODAY


def test_numeric_product_id_is_coerced():
    product = Product.model_validate({"productId": 12345})
    assert product.product_id == "12345"
    assert product.price is None


def test_promotion_splits_linked_article_numbers():
    promotion = Promotion.model_validate(
        promotion_payload("PROMO1", linked=" A, B,,C ", linkedCommercialArticleNumber="X,Y", benefit=None)
    )
    assert promotion.linked_technical_article_numbers == ["A", "B", "C"]
    assert promotion.linked_commercial_article_numbers == ["X", "Y"]
    assert promotion.active_start_date == date(2024, 3, 1)
    assert promotion.benefits == []
    assert promotion.texts[0].text == "2 + 1 free"
    assert "benefits" not in promotion.to_row()


def test_promotion_accepts_list_and_bad_dates():
    promotion = Promotion.model_validate(
        promotion_payload("PROMO2", linked=["A", "B"], activeEndDate="someday")
    )
    assert promotion.linked_technical_article_numbers == ["A", "B"]
    assert promotion.active_end_date is None


def test_parse_records_drops_invalid_items(caplog):
    items = [product_payload("1"), {"name": "no id"}, {"productId": ""}, product_payload("2")]
    with caplog.at_level("WARNING"):
        products = parse_records(Product, items)
    assert [p.product_id for p in products] == ["1", "2"]
    assert "Rejected 2 of 4 Product records" in caplog.text


def test_listed_keys_include_rejected_items():
    items = [product_payload("1"), {"productId": 7, "price": {"basicPrice": "n/a"}}, {"productId": " "}, "junk"]
    assert listed_keys(items, "productId") == {"1", "7"}
