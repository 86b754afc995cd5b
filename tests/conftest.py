import pytest

from pricewatch.config import Settings
from pricewatch.db.migrate import run_migrations
from pricewatch.db.session import create_engine_from_url

from factories import API_URL, PRODUCT_URL, PROMOTION_URL


@pytest.fixture()
def settings():
    return Settings(
        product_url=PRODUCT_URL,
        promotion_url=PROMOTION_URL,
        api_url=API_URL,
        host_url="catalog.test",
        api_host_url="bootstrap.test",
        place_id="604",
        max_tries=3,
        product_page_size=2,
        promotion_page_size=2,
    )


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine_from_url(f"sqlite:///{tmp_path / 'pricewatch.db'}")
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def bootstrap_body():
    return {
        "changeHomestore": {
            "storeLocator": {"api": {"headers": ["X-Cg-Apikey: secret-key", "Accept: */*"]}}
        }
    }


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)

    return _sleep
