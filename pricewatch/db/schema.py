"""Relational schema for the catalog and its price history."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

products = Table(
    "products",
    metadata,
    Column("product_id", String, primary_key=True),
    Column("name", Text),
    Column("long_name", Text),
    Column("short_name", Text),
    Column("content", Text),
    Column("square_image", Text),
    Column("full_image", Text),
    Column("thumbnail", Text),
    Column("commercial_article_number", String),
    Column("technical_article_number", String),
    Column("brand", Text),
    Column("seo_brand", Text),
    Column("business_domain", Text),
    Column("top_category_id", String),
    Column("top_category_name", Text),
    Column("is_available", Boolean),
    Column("is_new", Boolean),
    Column("is_bio", Boolean),
    Column("is_private_label", Boolean),
    Column("is_weight_article", Boolean),
    Column("country_of_origin", Text),
    Column("order_unit", String),
    Column("walk_route_sequence_number", Integer),
    Index("ix_products_technical_article_number", "technical_article_number"),
)

prices = Table(
    "prices",
    metadata,
    Column("price_id", Integer, primary_key=True, autoincrement=True),
    Column("product_id", String, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False),
    Column("date", Date, nullable=False),
    Column("basic_price", Float),
    Column("quantity_price", Float),
    Column("quantity_price_quantity", String),
    Column("measurement_unit_price", Float),
    Column("measurement_unit", String),
    Column("recommended_quantity", String),
    Column("is_red_price", Boolean),
    Column("is_promo_active", Boolean),
    UniqueConstraint("product_id", "date", name="uq_prices_product_date"),
)

price_changes = Table(
    "price_changes",
    metadata,
    Column("price_change_id", Integer, primary_key=True, autoincrement=True),
    Column("product_id", String, ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False),
    Column("price_change_type", String(16), nullable=False),
    Column("price_change", Float),
    Column("price_change_percentage", Float),
    Column("involves_promotion", Boolean),
    Column("old_price", Float),
    Column("new_price", Float),
    UniqueConstraint("product_id", "price_change_type", name="uq_price_changes_product_type"),
)

promotions = Table(
    "promotions",
    metadata,
    Column("promotion_id", String, primary_key=True),
    Column("promotion_type", String),
    Column("active_start_date", Date),
    Column("active_end_date", Date),
    Column("top_promo", Boolean),
    Column("seo_brand_list", JSON),
    Column("linked_technical_article_numbers", JSON),
    Column("linked_commercial_article_numbers", JSON),
)

benefits = Table(
    "benefits",
    metadata,
    Column("benefit_id", Integer, primary_key=True, autoincrement=True),
    Column("promotion_id", String, ForeignKey("promotions.promotion_id", ondelete="CASCADE"), nullable=False),
    Column("benefit_amount", Float),
    Column("benefit_percentage", Float),
    Column("min_limit", Float),
    Column("max_limit", Float),
    Column("limit_unit", String),
)

promotion_texts = Table(
    "promotion_texts",
    metadata,
    Column("promotion_text_id", Integer, primary_key=True, autoincrement=True),
    Column("promotion_id", String, ForeignKey("promotions.promotion_id", ondelete="CASCADE"), nullable=False),
    Column("text_type", String),
    Column("text", Text),
    Column("sequence", Float),
)

promotion_products = Table(
    "promotion_products",
    metadata,
    Column("promotion_id", String, ForeignKey("promotions.promotion_id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", String, ForeignKey("products.product_id", ondelete="CASCADE"), primary_key=True),
)
