"""Tests for scheduled feed synchronization."""

import threading
from datetime import datetime, time, timezone
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from listings.exceptions import ConflictError
from listings.models import SyncFeed, SyncLog
from listings.scheduler import (
    FeedScheduler,
    compute_next_run,
    get_due_feeds,
    run_scheduled_feeds,
)
from listings.sync import SyncResult

UTC = timezone.utc


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def test_daily_after_schedule_time_rolls_to_tomorrow():
    """Daily at 03:00, checked at 05:00, runs tomorrow at 03:00."""
    result = compute_next_run("daily", time(3, 0), None, _utc(2024, 1, 15, 5, 0))

    assert result == _utc(2024, 1, 16, 3, 0)


def test_daily_before_schedule_time_runs_today():
    """Daily at 03:00, checked at 01:00, runs today."""
    result = compute_next_run("daily", "03:00:00", None, _utc(2024, 1, 15, 1, 0))

    assert result == _utc(2024, 1, 15, 3, 0)


def test_weekly_lands_on_next_sunday():
    """Weekly on Sunday, checked on a Wednesday, runs the following Sunday."""
    wednesday = _utc(2024, 1, 17, 10, 0)

    result = compute_next_run("weekly", time(3, 0), 0, wednesday)

    assert result == _utc(2024, 1, 21, 3, 0)
    assert result.isoweekday() == 7


def test_weekly_same_day_after_time_moves_a_week():
    """Weekly on the current day after the scheduled time runs next week."""
    sunday_noon = _utc(2024, 1, 21, 12, 0)

    result = compute_next_run("weekly", time(3, 0), 0, sunday_noon)

    assert result == _utc(2024, 1, 28, 3, 0)


def test_hourly_rounds_to_next_hour():
    """Hourly at 05:47 runs at 06:00."""
    result = compute_next_run("hourly", None, None, _utc(2024, 1, 15, 5, 47))

    assert result == _utc(2024, 1, 15, 6, 0)


@pytest.mark.parametrize(
    "frequency,now,expected",
    [
        ("every_6_hours", _utc(2024, 1, 15, 5, 47), _utc(2024, 1, 15, 6, 0)),
        ("every_6_hours", _utc(2024, 1, 15, 6, 0), _utc(2024, 1, 15, 12, 0)),
        ("every_6_hours", _utc(2024, 1, 15, 19, 0), _utc(2024, 1, 16, 0, 0)),
        ("every_12_hours", _utc(2024, 1, 15, 5, 0), _utc(2024, 1, 15, 12, 0)),
        ("every_12_hours", _utc(2024, 1, 15, 13, 0), _utc(2024, 1, 16, 0, 0)),
    ],
)
def test_interval_boundaries_anchor_at_midnight(frequency, now, expected):
    """Interval cadences run on boundaries counted from UTC midnight."""
    assert compute_next_run(frequency, None, None, now, anchor_hour=0) == expected


def test_interval_anchor_is_configurable(settings):
    """The interval anchor hour comes from settings."""
    settings.LISTING_SYNC_INTERVAL_ANCHOR_HOUR = 2

    result = compute_next_run("every_6_hours", None, None, _utc(2024, 1, 15, 5, 0))

    assert result == _utc(2024, 1, 15, 8, 0)


def test_unknown_frequency_treated_as_daily():
    """Unknown cadences fall back to daily."""
    result = compute_next_run("fortnightly", time(3, 0), None, _utc(2024, 1, 15, 5, 0))

    assert result == _utc(2024, 1, 16, 3, 0)


@pytest.mark.django_db
def test_reschedule_sets_or_clears_next_run():
    """Saving a feed's schedule books or clears its next run."""
    feed = SyncFeed(name="Main", slug="main", schedule_enabled=True)

    feed.reschedule(now=_utc(2024, 1, 15, 5, 0))
    assert feed.next_scheduled_run == _utc(2024, 1, 16, 3, 0)

    feed.schedule_enabled = False
    feed.reschedule()
    assert feed.next_scheduled_run is None


@pytest.mark.django_db
def test_get_due_feeds_filters(feed):
    """Only enabled, scheduled feeds whose run has passed are due."""
    now = _utc(2024, 1, 15, 5, 0)
    SyncFeed.objects.filter(pk=feed.pk).update(next_scheduled_run=_utc(2024, 1, 15, 3, 0))
    SyncFeed.objects.create(
        name="Disabled",
        slug="disabled",
        is_enabled=False,
        schedule_enabled=True,
        next_scheduled_run=_utc(2024, 1, 15, 3, 0),
    )
    SyncFeed.objects.create(
        name="Later",
        slug="later",
        schedule_enabled=True,
        next_scheduled_run=_utc(2024, 1, 15, 9, 0),
    )
    SyncFeed.objects.create(name="Unscheduled", slug="unscheduled")

    assert [f.slug for f in get_due_feeds(now)] == ["main-mls"]


@pytest.mark.django_db
@freeze_time("2024-01-15 05:00:00")
def test_run_scheduled_feeds_updates_schedule(feed):
    """Due feeds are synced with the scheduled trigger and rebooked."""
    SyncFeed.objects.filter(pk=feed.pk).update(next_scheduled_run=_utc(2024, 1, 15, 3, 0))

    with patch("listings.scheduler.run_sync", return_value=SyncResult(success=True)) as run:
        results = run_scheduled_feeds()

    run.assert_called_once_with(trigger=SyncLog.Trigger.SCHEDULED, feed_id=feed.pk)
    feed.refresh_from_db()
    assert results[0]["success"] is True
    assert feed.last_scheduled_run == _utc(2024, 1, 15, 5, 0)
    assert feed.next_scheduled_run == _utc(2024, 1, 16, 3, 0)


@pytest.mark.django_db
@freeze_time("2024-01-15 05:00:00")
def test_failing_feed_does_not_stop_others(feed):
    """An error in one feed is logged and the next feed still runs."""
    other = SyncFeed.objects.create(
        name="Second",
        slug="second",
        schedule_enabled=True,
        schedule_frequency=SyncFeed.Frequency.HOURLY,
        next_scheduled_run=_utc(2024, 1, 15, 4, 0),
    )
    SyncFeed.objects.filter(pk=feed.pk).update(next_scheduled_run=_utc(2024, 1, 15, 3, 0))

    with patch(
        "listings.scheduler.run_sync",
        side_effect=[RuntimeError("boom"), SyncResult(success=True)],
    ):
        results = run_scheduled_feeds()

    other.refresh_from_db()
    feed.refresh_from_db()
    assert [r["success"] for r in results] == [False, True]
    assert results[0]["error"] == "boom"
    assert feed.next_scheduled_run == _utc(2024, 1, 16, 3, 0)
    assert other.next_scheduled_run == _utc(2024, 1, 15, 6, 0)


@pytest.mark.django_db
@freeze_time("2024-01-15 05:00:00")
def test_conflict_skips_feed_but_rebooks(feed):
    """A feed skipped because a sync is running still gets its next run."""
    SyncFeed.objects.filter(pk=feed.pk).update(next_scheduled_run=_utc(2024, 1, 15, 3, 0))

    with patch(
        "listings.scheduler.run_sync",
        side_effect=ConflictError("A sync is already running"),
    ):
        results = run_scheduled_feeds()

    feed.refresh_from_db()
    assert results[0]["error"] == "A sync is already running"
    assert feed.next_scheduled_run == _utc(2024, 1, 16, 3, 0)


@pytest.mark.django_db
def test_no_due_feeds_returns_empty(feed):
    """Nothing runs when no feed is due."""
    with patch("listings.scheduler.run_sync") as run:
        assert run_scheduled_feeds() == []

    run.assert_not_called()


def test_scheduler_start_is_idempotent():
    """Starting twice keeps a single timer thread."""
    ticked = threading.Event()
    scheduler = FeedScheduler(
        tick_interval=60, startup_delay=0, runner=lambda: ticked.set()
    )

    try:
        assert scheduler.start() is True
        assert scheduler.start() is False
        assert ticked.wait(5)
        assert scheduler.is_running
    finally:
        scheduler.stop(timeout=5)

    assert not scheduler.is_running
    assert scheduler.ticks == 1


def test_scheduler_tick_survives_errors():
    """A failing tick is logged and the loop keeps going."""
    calls = []

    def runner():
        calls.append(1)
        raise RuntimeError("database unavailable")

    scheduler = FeedScheduler(tick_interval=60, startup_delay=0, runner=runner)

    with patch("listings.scheduler.close_old_connections"):
        assert scheduler.tick() is None
        assert scheduler.tick() is None

    assert len(calls) == 2
    assert scheduler.ticks == 2


def test_scheduler_defaults_from_settings(settings):
    """Tick interval and startup delay default to the settings."""
    settings.LISTING_SYNC_TICK_SECONDS = 120
    settings.LISTING_SYNC_STARTUP_DELAY = 3

    scheduler = FeedScheduler()

    assert scheduler.tick_interval == 120
    assert scheduler.startup_delay == 3
