"""Fetch the API key and one product page to check upstream connectivity."""

from __future__ import annotations

import asyncio
import json
import logging
import os

from dotenv import load_dotenv

from pricewatch.config import Settings
from pricewatch.ingest.client import CatalogClient
from pricewatch.ingest.collector import ResourceKind, resource_for


async def main() -> None:
    load_dotenv()
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    settings = Settings.from_env()
    client = CatalogClient(settings)
    try:
        name, _ = await client.get_api_key()
        print("API key header:", name)
        resource = resource_for(ResourceKind.PRODUCTS, settings)
        body = await client.fetch(resource.url, params={**resource.params, "page": 1, "size": 1})
    finally:
        await client.close()
    print("Products found:", body.get(resource.count_field))
    items = body.get(resource.items_field) or []
    if items:
        print(json.dumps(items[0], indent=2, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
