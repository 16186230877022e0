"""Sync orchestration for listing feeds.

This module runs one end-to-end feed synchronization: it takes the run-level
guard by inserting a running SyncLog, fetches and parses the feed, reconciles
every record, and records the outcome on the SyncLog. It also exposes the
manual trigger used by the operator surface.
"""

import logging
import time
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Optional

from django.conf import settings
from django.db import IntegrityError, connection, transaction
from django.utils import timezone

from .exceptions import ConflictError, RecordError
from .feed_client import get_feed_client, resolve_feed_url
from .models import SyncFeed, SyncLog
from .normalizers import get_normalizer, normalize_listing
from .reconciler import CREATED, ReconcileOutcome, reconcile_listing

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=6)
DEFAULT_TRIGGER_WAIT = 0.1

# Background worker for manual triggers; runs are serialized by the guard.
_trigger_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="listing-sync")


@dataclass
class SyncStats:
    """Counters accumulated over one sync run."""

    listings_created: int = 0
    listings_updated: int = 0
    listings_deleted: int = 0
    agents_created: int = 0
    agents_updated: int = 0
    offices_created: int = 0
    offices_updated: int = 0
    photos_processed: int = 0
    open_houses_processed: int = 0
    errors: int = 0

    def record(self, outcome: ReconcileOutcome) -> None:
        """Add the counters of one reconciled listing.

        Args:
            outcome: Outcome returned by the reconciler.
        """
        if outcome.action == CREATED:
            self.listings_created += 1
        else:
            self.listings_updated += 1

        if outcome.agent_action == CREATED:
            self.agents_created += 1
        elif outcome.agent_action:
            self.agents_updated += 1

        if outcome.office_action == CREATED:
            self.offices_created += 1
        elif outcome.office_action:
            self.offices_updated += 1

        self.photos_processed += outcome.photos
        self.open_houses_processed += outcome.open_houses

    @property
    def processed(self) -> int:
        return self.listings_created + self.listings_updated + self.errors

    def as_dict(self) -> dict[str, int]:
        """Get the statistics in the external camel-case shape.

        Returns:
            Dictionary keyed by camel-case counter names.
        """
        return {
            "listingsCreated": self.listings_created,
            "listingsUpdated": self.listings_updated,
            "listingsDeleted": self.listings_deleted,
            "agentsCreated": self.agents_created,
            "agentsUpdated": self.agents_updated,
            "officesCreated": self.offices_created,
            "officesUpdated": self.offices_updated,
            "photosProcessed": self.photos_processed,
            "openHousesProcessed": self.open_houses_processed,
            "errors": self.errors,
        }

    def log_fields(self) -> dict[str, int]:
        """Get the counters keyed by SyncLog field name."""
        fields = asdict(self)
        fields["records_failed"] = fields.pop("errors")
        return fields


@dataclass
class SyncResult:
    """Outcome of a sync run.

    Attributes:
        success: False only when the run failed as a whole.
        stats: Counters accumulated before the run ended.
        duration: Elapsed wall time in seconds.
        error_message: Message of the fatal error, if any.
    """

    success: bool
    stats: SyncStats = field(default_factory=SyncStats)
    duration: float = 0.0
    error_message: Optional[str] = None
    error_stack: Optional[str] = None
    sync_log_id: Optional[int] = None

    def as_dict(self) -> dict[str, Any]:
        result = {
            "success": self.success,
            "stats": self.stats.as_dict(),
            "duration": round(self.duration * 1000),
            "syncLogId": self.sync_log_id,
        }
        if self.error_message:
            result["errorMessage"] = self.error_message
        return result


@dataclass
class TriggerResponse:
    """Acknowledgment returned by a manual trigger.

    Attributes:
        status: ``completed`` when the run finished inside the wait window,
            ``running`` when it continues in the background.
        result: The run result when completed.
    """

    status: str
    result: Optional[SyncResult] = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"


def is_sync_running(feed_id: Optional[int] = None) -> bool:
    """Check whether a sync is currently running.

    Args:
        feed_id: Restrict the check to one feed.

    Returns:
        True if a SyncLog in the running state exists.
    """
    queryset = SyncLog.objects.filter(status=SyncLog.SyncStatus.RUNNING)
    if feed_id is not None:
        queryset = queryset.filter(feed_id=feed_id)
    return queryset.exists()


def expire_stale_runs() -> int:
    """Fail running syncs that exceeded LISTING_SYNC_STALE_AFTER.

    Returns:
        Number of sync logs that were expired.
    """
    stale_after = getattr(settings, "LISTING_SYNC_STALE_AFTER", DEFAULT_STALE_AFTER)
    expired = SyncLog.expire_stale_runs(timezone.now() - stale_after)
    if expired:
        logger.warning(f"Expired {expired} stale running sync(s)")
    return expired


def start_sync(
    trigger: str,
    triggered_by: Any = None,
    feed: Optional[SyncFeed] = None,
) -> SyncLog:
    """Create the running SyncLog that guards a run.

    The existence check and the insert run in one transaction, and the
    single-running-sync constraint rejects a concurrent insert that slipped
    past the check.

    Args:
        trigger: What initiated the run.
        triggered_by: User who started the run, if any.
        feed: Feed being synced, if any.

    Returns:
        The new SyncLog in the running state.

    Raises:
        ConflictError: If a sync is already running.
    """
    try:
        with transaction.atomic():
            if is_sync_running():
                raise ConflictError("A sync is already running")
            return SyncLog.objects.create(
                feed=feed,
                status=SyncLog.SyncStatus.RUNNING,
                trigger=trigger,
                triggered_by=triggered_by,
                started_at=timezone.now(),
            )
    except IntegrityError as e:
        raise ConflictError("A sync is already running") from e


def _finish_sync(
    sync_log: SyncLog,
    status: str,
    stats: SyncStats,
    error_message: Optional[str] = None,
    error_stack: Optional[str] = None,
) -> None:
    for name, value in stats.log_fields().items():
        setattr(sync_log, name, value)
    sync_log.status = status
    sync_log.completed_at = timezone.now()
    sync_log.error_message = error_message
    sync_log.error_stack = error_stack
    sync_log.save()


def execute_sync(
    sync_log: SyncLog,
    feed_url: Optional[str] = None,
    feed_content: Optional[str] = None,
) -> SyncResult:
    """Fetch, parse and reconcile a feed for an already started run.

    Per-record failures are counted and skipped. Any other failure marks
    the run as failed with the error message and traceback.

    Args:
        sync_log: Running SyncLog created by start_sync.
        feed_url: Explicit URL overriding the feed's URL.
        feed_content: Feed document to use instead of fetching.

    Returns:
        SyncResult for the run.
    """
    start_time = time.monotonic()
    stats = SyncStats()
    feed = sync_log.feed

    try:
        normalizer = get_normalizer(feed.feed_type if feed else None)
        if feed_content is None:
            url = resolve_feed_url(feed, feed_url)
            feed_content = get_feed_client().fetch(url)

        for raw in normalizer.iter_raw_listings(feed_content):
            try:
                record = normalize_listing(raw)
            except Exception as e:
                stats.errors += 1
                logger.exception(f"Error normalizing listing: {e}")
                continue

            try:
                outcome = reconcile_listing(record)
            except RecordError as e:
                stats.errors += 1
                logger.error(f"Error syncing listing {e.mls_id}: {e}")
                continue

            stats.record(outcome)
            if stats.processed % 100 == 0:
                logger.info(f"Processed {stats.processed} listings...")

    except Exception as e:
        duration = time.monotonic() - start_time
        error_stack = traceback.format_exc()
        logger.exception(f"Sync {sync_log.pk} failed: {e}")
        _finish_sync(
            sync_log,
            SyncLog.SyncStatus.FAILED,
            stats,
            error_message=str(e),
            error_stack=error_stack,
        )
        return SyncResult(
            success=False,
            stats=stats,
            duration=duration,
            error_message=str(e),
            error_stack=error_stack,
            sync_log_id=sync_log.pk,
        )

    _finish_sync(sync_log, SyncLog.SyncStatus.COMPLETED, stats)
    duration = time.monotonic() - start_time
    logger.info(
        f"Sync {sync_log.pk} completed in {duration:.1f}s: "
        f"{stats.listings_created} created, {stats.listings_updated} updated, "
        f"{stats.errors} errors"
    )
    return SyncResult(
        success=True,
        stats=stats,
        duration=duration,
        sync_log_id=sync_log.pk,
    )


def _get_feed(feed_id: Optional[int]) -> Optional[SyncFeed]:
    return SyncFeed.objects.get(pk=feed_id) if feed_id is not None else None


def _begin(
    trigger: str,
    triggered_by: Any,
    feed: Optional[SyncFeed],
) -> SyncLog:
    expire_stale_runs()
    sync_log = start_sync(trigger, triggered_by=triggered_by, feed=feed)
    feed_label = feed.name if feed else "default feed"
    logger.info(f"Sync {sync_log.pk} started ({trigger}) for {feed_label}")
    return sync_log


def run_sync(
    trigger: str = SyncLog.Trigger.MANUAL,
    triggered_by: Any = None,
    feed_id: Optional[int] = None,
    feed_url: Optional[str] = None,
    feed_content: Optional[str] = None,
) -> SyncResult:
    """Run one synchronous feed sync.

    Args:
        trigger: What initiated the run (manual, scheduled, webhook).
        triggered_by: User who started the run, if any.
        feed_id: Feed configuration to sync. Without it the default feed
            URL and the XML format are used.
        feed_url: Explicit URL overriding the feed's URL.
        feed_content: Feed document to use instead of fetching.

    Returns:
        SyncResult with statistics; ``success`` is False when the feed could
        not be fetched or parsed.

    Raises:
        ConflictError: If a sync is already running.
        SyncFeed.DoesNotExist: If feed_id does not match a feed.
    """
    feed = _get_feed(feed_id)
    sync_log = _begin(trigger, triggered_by, feed)
    return execute_sync(sync_log, feed_url=feed_url, feed_content=feed_content)


def _execute_in_background(sync_log: SyncLog) -> SyncResult:
    try:
        return execute_sync(sync_log)
    except Exception as e:
        error_stack = traceback.format_exc()
        try:
            SyncLog.objects.filter(
                pk=sync_log.pk, status=SyncLog.SyncStatus.RUNNING
            ).update(
                status=SyncLog.SyncStatus.FAILED,
                completed_at=timezone.now(),
                error_message=str(e),
                error_stack=error_stack,
            )
        except Exception:
            logger.exception(f"Could not mark sync {sync_log.pk} as failed")
        raise
    finally:
        connection.close()


def _log_background_failure(future: Future) -> None:
    error = future.exception()
    if error is not None:
        logger.error(f"Background sync error: {error}")


def trigger_sync(
    triggered_by: Any = None,
    feed_id: Optional[int] = None,
    wait: Optional[float] = None,
) -> TriggerResponse:
    """Start a manual sync and wait briefly for it to finish.

    The run-level guard is taken before returning, so a conflicting trigger
    fails immediately instead of being queued.

    Args:
        triggered_by: User who requested the sync.
        feed_id: Feed to sync, if any.
        wait: Seconds to wait for completion. Defaults to
            LISTING_SYNC_TRIGGER_WAIT.

    Returns:
        TriggerResponse, completed with the result or still running.

    Raises:
        ConflictError: If a sync is already running.
        SyncFeed.DoesNotExist: If feed_id does not match a feed.
    """
    if wait is None:
        wait = getattr(settings, "LISTING_SYNC_TRIGGER_WAIT", DEFAULT_TRIGGER_WAIT)

    feed = _get_feed(feed_id)
    sync_log = _begin(SyncLog.Trigger.MANUAL, triggered_by, feed)

    future = _trigger_executor.submit(_execute_in_background, sync_log)
    try:
        result = future.result(timeout=wait)
    except FutureTimeoutError:
        future.add_done_callback(_log_background_failure)
        return TriggerResponse(status="running")

    return TriggerResponse(status="completed", result=result)


def get_sync_status(sync_id: int) -> Optional[SyncLog]:
    """Get a sync log by id, or None if it does not exist."""
    return SyncLog.objects.filter(pk=sync_id).first()


def get_current_sync() -> Optional[SyncLog]:
    """Get the sync currently pending or running, if any."""
    return (
        SyncLog.objects.filter(
            status__in=[SyncLog.SyncStatus.PENDING, SyncLog.SyncStatus.RUNNING]
        )
        .select_related("feed", "triggered_by")
        .order_by("-created_at")
        .first()
    )


def get_last_sync(feed_id: Optional[int] = None) -> Optional[SyncLog]:
    """Get the most recently completed sync."""
    return SyncLog.get_last_successful_sync(feed_id)


def get_recent_sync_logs(limit: int = 10) -> list[SyncLog]:
    """Get the most recent sync logs, newest first."""
    return list(
        SyncLog.objects.select_related("feed", "triggered_by").order_by("-created_at")[
            :limit
        ]
    )
