"""Upstream catalog records, validated at the ingestion boundary."""

from __future__ import annotations

import logging
from datetime import date
from typing import Annotated, Any, Iterable, TypeVar

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from pricewatch.utils.dates import parse_iso_date

logger = logging.getLogger(__name__)

TRUE_STRINGS = {"1", "true", "t", "y", "yes", "on"}
FALSE_STRINGS = {"0", "false", "f", "n", "no", "off"}


def _lenient_bool(value: Any) -> Any:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        return None
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _lenient_date(value: Any) -> Any:
    if value in (None, ""):
        return None
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except ValueError:
            logger.debug("Unparseable date %r", value)
            return None
    return value


def _split_list(value: Any) -> list[str]:
    if value in (None, ""):
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(item).strip() for item in value if str(item).strip()]


Flag = Annotated[bool | None, BeforeValidator(_lenient_bool)]
Amount = Annotated[float | None, BeforeValidator(_blank_to_none)]
Day = Annotated[date | None, BeforeValidator(_lenient_date)]
Code = Annotated[str | None, BeforeValidator(_blank_to_none)]
Count = Annotated[int | None, BeforeValidator(_blank_to_none)]


class UpstreamModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class Price(UpstreamModel):
    basic_price: Amount = Field(default=None, alias="basicPrice")
    quantity_price: Amount = Field(default=None, alias="quantityPrice")
    quantity_price_quantity: Code = Field(default=None, alias="quantityPriceQuantity")
    measurement_unit_price: Amount = Field(default=None, alias="measurementUnitPrice")
    measurement_unit: Code = Field(default=None, alias="measurementUnit")
    recommended_quantity: Code = Field(default=None, alias="recommendedQuantity")
    is_red_price: Flag = Field(default=None, alias="isRedPrice")
    is_promo_active: Flag = Field(default=None, alias="isPromoActive")

    def to_row(self, product_id: str, as_of: date) -> dict[str, Any]:
        return {"product_id": product_id, "date": as_of, **self.model_dump()}


class Product(UpstreamModel):
    product_id: str = Field(alias="productId", min_length=1)
    name: Code = None
    long_name: Code = Field(default=None, alias="LongName")
    short_name: Code = Field(default=None, alias="ShortName")
    content: Code = None
    square_image: Code = Field(default=None, alias="squareImage")
    full_image: Code = Field(default=None, alias="fullImage")
    thumbnail: Code = Field(default=None, alias="thumbNail")
    commercial_article_number: Code = Field(default=None, alias="commercialArticleNumber")
    technical_article_number: Code = Field(default=None, alias="technicalArticleNumber")
    brand: Code = None
    seo_brand: Code = Field(default=None, alias="seoBrand")
    business_domain: Code = Field(default=None, alias="businessDomain")
    top_category_id: Code = Field(default=None, alias="topCategoryId")
    top_category_name: Code = Field(default=None, alias="topCategoryName")
    is_available: Flag = Field(default=None, alias="isAvailable")
    is_new: Flag = Field(default=None, alias="IsNew")
    is_bio: Flag = Field(default=None, alias="IsBio")
    is_private_label: Flag = Field(default=None, alias="IsPrivateLabel")
    is_weight_article: Flag = Field(default=None, alias="IsWeightArticle")
    country_of_origin: Code = Field(default=None, alias="CountryOfOrigin")
    order_unit: Code = Field(default=None, alias="OrderUnit")
    walk_route_sequence_number: Count = Field(default=None, alias="walkRouteSequenceNumber")
    price: Price | None = None

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(exclude={"price"})


class Benefit(UpstreamModel):
    benefit_amount: Amount = Field(default=None, alias="benefitAmount")
    benefit_percentage: Amount = Field(default=None, alias="benefitPercentage")
    min_limit: Amount = Field(default=None, alias="minLimit")
    max_limit: Amount = Field(default=None, alias="maxLimit")
    limit_unit: Code = Field(default=None, alias="limitUnit")


class PromotionText(UpstreamModel):
    text_type: Code = Field(default=None, alias="textType")
    text: Code = None
    sequence: Amount = None


class Promotion(UpstreamModel):
    promotion_id: str = Field(alias="promotionId", min_length=1)
    promotion_type: Code = Field(default=None, alias="promotionType")
    active_start_date: Day = Field(default=None, alias="activeStartDate")
    active_end_date: Day = Field(default=None, alias="activeEndDate")
    top_promo: Flag = Field(default=None, alias="topPromo")
    seo_brand_list: list[str] = Field(default_factory=list, alias="seoBrandList")
    linked_technical_article_numbers: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("linkedTechnicalArticleNumber", "linked_technical_article_numbers"),
    )
    linked_commercial_article_numbers: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("linkedCommercialArticleNumber", "linked_commercial_article_numbers"),
    )
    benefits: list[Benefit] = Field(
        default_factory=list, validation_alias=AliasChoices("benefit", "benefits")
    )
    texts: list[PromotionText] = Field(
        default_factory=list, validation_alias=AliasChoices("promotionText", "text", "texts")
    )

    @field_validator(
        "seo_brand_list",
        "linked_technical_article_numbers",
        "linked_commercial_article_numbers",
        mode="before",
    )
    @classmethod
    def _normalise_list(cls, value: Any) -> list[str]:
        return _split_list(value)

    @field_validator("benefits", "texts", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(exclude={"benefits", "texts"})


ModelT = TypeVar("ModelT", bound=UpstreamModel)


def parse_records(model: type[ModelT], items: Iterable[dict[str, Any]]) -> list[ModelT]:
    """Validate raw upstream dicts, dropping the ones that do not fit ``model``."""
    records: list[ModelT] = []
    rejected = 0
    for item in items:
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            rejected += 1
            logger.warning("Rejected %s record: %s", model.__name__, exc.errors(include_url=False)[:3])
    if rejected:
        logger.warning("Rejected %s of %s %s records", rejected, rejected + len(records), model.__name__)
    return records


def listed_keys(items: Iterable[Any], field: str) -> set[str]:
    """Every non-blank ``field`` value in the raw items, valid or not."""
    keys: set[str] = set()
    for item in items:
        value = item.get(field) if isinstance(item, dict) else None
        if value is not None and str(value).strip():
            keys.add(str(value))
    return keys
