"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from pricewatch.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("pricewatch", broker=broker_url, backend=backend_url)
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "daily-scrape-and-compare": {
        "task": "pricewatch.jobs.celery_app.scrape_and_compare",
        "schedule": crontab(hour=int(os.environ.get("SCRAPE_HOUR", "6")), minute=int(os.environ.get("SCRAPE_MINUTE", "0"))),
    },
}


def _summaries(runs) -> list[dict[str, object]]:
    return [{"name": run.name, "as_of": run.as_of.isoformat(), "state": run.state.value} for run in runs]


@celery_app.task(name="pricewatch.jobs.celery_app.scrape_and_compare")
def scrape_and_compare_task():  # pragma: no cover - executed by worker
    import asyncio

    from pricewatch.jobs.pipeline import run_pipeline

    return _summaries(asyncio.run(run_pipeline("all")))


@celery_app.task(name="pricewatch.jobs.celery_app.compare")
def compare_task():  # pragma: no cover - executed by worker
    import asyncio

    from pricewatch.jobs.pipeline import run_pipeline

    return _summaries(asyncio.run(run_pipeline("compare")))
