"""Scheduled feed synchronization.

A periodic tick looks for feeds whose next scheduled run has passed, runs a
sync for each one in turn, and books the feed's next run according to its
cadence. All schedule arithmetic is done in UTC.
"""

import logging
import threading
from datetime import datetime, time, timedelta
from datetime import timezone as dt_timezone
from typing import Any, Callable, Optional, Union

from django.conf import settings
from django.db import close_old_connections
from django.utils import timezone

from .exceptions import ConflictError
from .models import SyncFeed, SyncLog
from .sync import run_sync

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 15 * 60
DEFAULT_STARTUP_DELAY = 5
DEFAULT_SCHEDULE_TIME = time(3, 0)

INTERVAL_HOURS = {
    SyncFeed.Frequency.HOURLY.value: 1,
    SyncFeed.Frequency.EVERY_6_HOURS.value: 6,
    SyncFeed.Frequency.EVERY_12_HOURS.value: 12,
}


def _parse_schedule_time(schedule_time: Union[time, str, None]) -> time:
    if schedule_time is None:
        return DEFAULT_SCHEDULE_TIME
    if isinstance(schedule_time, time):
        return schedule_time
    parts = [int(part) for part in str(schedule_time).split(":")[:2]]
    hour, minute = (parts + [0])[:2]
    return time(hour, minute)


def _next_interval(now: datetime, hours: int, anchor_hour: int) -> datetime:
    origin = now.replace(hour=anchor_hour % 24, minute=0, second=0, microsecond=0)
    step = timedelta(hours=hours)
    return origin + ((now - origin) // step + 1) * step


def compute_next_run(
    frequency: Optional[str],
    schedule_time: Union[time, str, None],
    day_of_week: Optional[int],
    now: datetime,
    anchor_hour: Optional[int] = None,
) -> datetime:
    """Compute the next scheduled run strictly after ``now``.

    Hourly, 6-hourly and 12-hourly cadences run on boundaries anchored at
    ``anchor_hour`` UTC (midnight by default). Daily and weekly cadences run
    at ``schedule_time``; weekly runs fall on ``day_of_week`` (0 = Sunday).

    Args:
        frequency: One of the SyncFeed.Frequency values. Unknown values are
            treated as daily.
        schedule_time: Time of day as a time or an "HH:MM[:SS]" string.
            Seconds are ignored.
        day_of_week: Day for weekly runs, 0 = Sunday. Defaults to Sunday.
        now: Reference time.
        anchor_hour: Hour the interval cadences are anchored on. Defaults to
            LISTING_SYNC_INTERVAL_ANCHOR_HOUR.

    Returns:
        Aware UTC datetime of the next run.
    """
    now = now.astimezone(dt_timezone.utc)
    frequency = str(frequency) if frequency is not None else None

    if frequency in INTERVAL_HOURS:
        if anchor_hour is None:
            anchor_hour = getattr(settings, "LISTING_SYNC_INTERVAL_ANCHOR_HOUR", 0)
        return _next_interval(now, INTERVAL_HOURS[frequency], anchor_hour)

    at = _parse_schedule_time(schedule_time)
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)

    if frequency == SyncFeed.Frequency.WEEKLY:
        target_day = day_of_week if day_of_week is not None else 0
        # isoweekday() is Monday=1..Sunday=7; modulo 7 gives Sunday=0.
        days_until = (target_day - now.isoweekday() % 7) % 7
        candidate += timedelta(days=days_until)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    if frequency != SyncFeed.Frequency.DAILY:
        logger.warning(f"Unknown schedule frequency {frequency!r}, using daily")
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def get_due_feeds(now: Optional[datetime] = None) -> list[SyncFeed]:
    """Get enabled, scheduled feeds whose next run is not in the future.

    Args:
        now: Reference time. Defaults to the current time.

    Returns:
        Due feeds ordered by next scheduled run.
    """
    now = now or timezone.now()
    return list(
        SyncFeed.objects.filter(
            is_enabled=True,
            schedule_enabled=True,
            next_scheduled_run__isnull=False,
            next_scheduled_run__lte=now,
        ).order_by("next_scheduled_run", "pk")
    )


def run_scheduled_feeds(now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """Run a sync for every due feed.

    A failure for one feed is logged and does not stop the others. Every
    processed feed has its last and next scheduled run updated, whatever the
    outcome of its sync.

    Args:
        now: Tick time. Defaults to the current time.

    Returns:
        One summary dictionary per processed feed.
    """
    now = now or timezone.now()
    due_feeds = get_due_feeds(now)

    if not due_feeds:
        logger.info("No feeds due to run")
        return []

    logger.info(f"Found {len(due_feeds)} feed(s) due to run")
    results: list[dict[str, Any]] = []

    for feed in due_feeds:
        summary: dict[str, Any] = {
            "feed_id": feed.pk,
            "feed_name": feed.name,
            "success": False,
        }
        try:
            logger.info(f"Running scheduled sync for feed: {feed.name} (ID: {feed.pk})")
            result = run_sync(trigger=SyncLog.Trigger.SCHEDULED, feed_id=feed.pk)
            summary["success"] = result.success
            summary["stats"] = result.stats.as_dict()
            summary["error"] = result.error_message
            if result.success:
                logger.info(
                    f"Feed {feed.name} completed: "
                    f"{result.stats.listings_created} created, "
                    f"{result.stats.listings_updated} updated in {result.duration:.1f}s"
                )
            else:
                logger.error(f"Feed {feed.name} failed: {result.error_message}")
        except ConflictError as e:
            summary["error"] = str(e)
            logger.warning(f"Skipping feed {feed.name}: {e}")
        except Exception as e:
            summary["error"] = str(e)
            logger.exception(f"Error running sync for feed {feed.pk}")
        finally:
            feed.last_scheduled_run = now
            feed.next_scheduled_run = compute_next_run(
                feed.schedule_frequency,
                feed.schedule_time,
                feed.schedule_day_of_week,
                timezone.now(),
            )
            SyncFeed.objects.filter(pk=feed.pk).update(
                last_scheduled_run=feed.last_scheduled_run,
                next_scheduled_run=feed.next_scheduled_run,
                updated_at=timezone.now(),
            )
            summary["next_scheduled_run"] = feed.next_scheduled_run
        results.append(summary)

    return results


class FeedScheduler:
    """Background timer that runs due feed syncs.

    The scheduler runs a catch-up check shortly after start, then ticks at a
    fixed interval until stopped. ``start`` is idempotent per instance.

    Attributes:
        tick_interval: Seconds between ticks.
        startup_delay: Seconds before the first catch-up tick.
    """

    def __init__(
        self,
        tick_interval: Optional[float] = None,
        startup_delay: Optional[float] = None,
        runner: Callable[[], Any] = run_scheduled_feeds,
    ) -> None:
        self.tick_interval = (
            tick_interval
            if tick_interval is not None
            else getattr(settings, "LISTING_SYNC_TICK_SECONDS", DEFAULT_TICK_SECONDS)
        )
        self.startup_delay = (
            startup_delay
            if startup_delay is not None
            else getattr(settings, "LISTING_SYNC_STARTUP_DELAY", DEFAULT_STARTUP_DELAY)
        )
        self.runner = runner
        self.ticks = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the timer thread.

        Returns:
            True if the scheduler was started, False if it already was.
        """
        with self._lock:
            if self.is_running:
                logger.info("Scheduler already started, skipping")
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop,
                name="listing-sync-scheduler",
                daemon=True,
            )
            self._thread.start()

        logger.info(
            f"Scheduler started: first check in {self.startup_delay}s, "
            f"then every {self.tick_interval}s"
        )
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the timer thread and wait for the current tick to finish.

        Args:
            timeout: Seconds to wait for the thread to exit.
        """
        with self._lock:
            thread = self._thread
            self._stop_event.set()
        if thread is not None:
            thread.join(timeout)
        logger.info("Scheduler stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler is stopped.

        Returns:
            True if the scheduler was stopped within the timeout.
        """
        return self._stop_event.wait(timeout)

    def tick(self) -> Any:
        """Run one scheduling check, logging instead of raising on failure."""
        close_old_connections()
        try:
            return self.runner()
        except Exception:
            logger.exception("Error checking scheduled feeds")
            return None
        finally:
            self.ticks += 1
            close_old_connections()

    def _loop(self) -> None:
        if self._stop_event.wait(self.startup_delay):
            return
        logger.info("Initial check for scheduled feeds...")
        self.tick()
        while not self._stop_event.wait(self.tick_interval):
            logger.info("Checking for scheduled feeds to run...")
            self.tick()
