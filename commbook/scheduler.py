"""
commbook/scheduler.py
Scheduled trigger. Calls the /api/cron endpoint with the bearer token at
the configured times (default 08:00 and 15:00 on school days).

Runs as its own process next to the API server:
    python -m commbook.cli cron
"""

import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Iterable, Mapping, Optional

import schedule

from commbook.config import resolve_cron_url, resolve_token

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")
ALL_DAYS = WEEKDAYS + ("saturday", "sunday")


def trigger(url: str, token: str, timeout_sec: int = 300) -> Optional[bool]:
    """
    Call the report endpoint once.
    Returns the endpoint's boolean, or None if the call failed.
    Never raises; the next scheduled run tries again.
    """
    req = urllib.request.Request(
        url,
        headers = {
            'Content-Type':  'application/json',
            'Authorization': f'Bearer {token}',
        },
        method  = 'GET',
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_sec) as resp:
            body = json.loads(resp.read().decode('utf-8'))
        logger.info(f"Report trigger returned {body!r}")
        return bool(body)
    except urllib.error.HTTPError as e:
        logger.error(f"Report trigger failed: HTTP {e.code} from {url}")
        return None
    except urllib.error.URLError as e:
        logger.error(f"Report trigger failed: {e.reason}")
        return None
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Report trigger failed: {e}")
        return None


def register_jobs(
    scheduler:     schedule.Scheduler,
    times:         Iterable[str],
    job:           Callable[[], Any],
    weekdays_only: bool = True,
) -> list:
    """One job per (day, time). Returns the created schedule.Job objects."""
    days = WEEKDAYS if weekdays_only else ALL_DAYS
    jobs = []
    for day in days:
        for at in times:
            jobs.append(getattr(scheduler.every(), day).at(at).do(job))
    return jobs


def build_scheduler(config: Mapping[str, Any]) -> schedule.Scheduler:
    url = resolve_cron_url(config)
    token = resolve_token(config)
    scheduler = schedule.Scheduler()

    def job():
        logger.info(f"Running report trigger → {url}")
        trigger(url, token)

    register_jobs(
        scheduler,
        config.get("cron_times") or ["08:00", "15:00"],
        job,
        weekdays_only=bool(config.get("cron_weekdays_only", True)),
    )
    return scheduler


def run_forever(config: Mapping[str, Any], poll_sec: int = 30) -> None:
    scheduler = build_scheduler(config)
    logger.info(f"Report scheduler started with {len(scheduler.jobs)} jobs")
    try:
        while True:
            scheduler.run_pending()
            time.sleep(poll_sec)
    except KeyboardInterrupt:
        logger.info("Report scheduler stopped")
