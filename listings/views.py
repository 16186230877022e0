"""Views for the listing feed sync.

This module contains the staff-only JSON endpoints used to trigger a manual
sync, check the current sync status and browse the sync history, plus the
secret-protected endpoint an external scheduler calls to run due feeds.
"""

import json
import logging
from typing import Any, Optional

from django.conf import settings
from django.contrib.admin.views.decorators import staff_member_required
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.utils.crypto import constant_time_compare
from django.utils.decorators import method_decorator
from django.views import View

from .exceptions import ConflictError
from .filters import SyncLogFilter
from .models import SyncFeed, SyncLog
from .scheduler import run_scheduled_feeds
from .sync import get_current_sync, get_last_sync, trigger_sync

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


def _serialize_user(user: Any) -> Optional[dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.pk,
        "name": user.get_full_name() or user.get_username(),
        "email": user.email,
    }


def serialize_sync_log(sync_log: SyncLog, include_stats: bool = True) -> dict[str, Any]:
    """Serialize a sync log for the JSON endpoints.

    Args:
        sync_log: The SyncLog to serialize.
        include_stats: Whether to include the counters and error message.

    Returns:
        Dictionary with camel-case keys.
    """
    data: dict[str, Any] = {
        "id": sync_log.pk,
        "feedId": sync_log.feed_id,
        "status": sync_log.status,
        "trigger": sync_log.trigger,
        "triggeredBy": _serialize_user(sync_log.triggered_by),
        "startedAt": sync_log.started_at,
        "completedAt": sync_log.completed_at,
        "createdAt": sync_log.created_at,
    }
    if include_stats:
        data["stats"] = {
            "listingsCreated": sync_log.listings_created,
            "listingsUpdated": sync_log.listings_updated,
            "listingsDeleted": sync_log.listings_deleted,
            "agentsCreated": sync_log.agents_created,
            "agentsUpdated": sync_log.agents_updated,
            "officesCreated": sync_log.offices_created,
            "officesUpdated": sync_log.offices_updated,
            "photosProcessed": sync_log.photos_processed,
            "openHousesProcessed": sync_log.open_houses_processed,
            "errors": sync_log.records_failed,
        }
        data["errorMessage"] = sync_log.error_message
    return data


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


@method_decorator(staff_member_required, name="dispatch")
class SyncTriggerView(View):
    """Start a manual sync.

    The optional JSON body ``{"feedId": <id>}`` selects the feed. The
    response is 200 when the sync finished within the wait window, 202 when
    it continues in the background, and 409 when a sync is already running.
    """

    http_method_names = ["post"]

    def post(self, request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
        """Handle the trigger request.

        Args:
            request: The HTTP request.

        Returns:
            JSON response describing the trigger outcome.
        """
        feed_id = None
        if request.body:
            try:
                body = json.loads(request.body)
            except ValueError:
                body = {}
            if isinstance(body, dict):
                feed_id = body.get("feedId")

        if feed_id is not None:
            try:
                feed_id = int(feed_id)
            except (TypeError, ValueError):
                return JsonResponse({"error": "Invalid feedId"}, status=400)

        try:
            response = trigger_sync(triggered_by=request.user, feed_id=feed_id)
        except ConflictError as e:
            return JsonResponse({"error": str(e)}, status=409)
        except SyncFeed.DoesNotExist:
            return JsonResponse({"error": f"Feed {feed_id} not found"}, status=404)

        if response.completed:
            result = response.result
            payload = {"message": "Sync completed", **result.as_dict()}
            return JsonResponse(payload)

        logger.info(f"Manual sync started by {request.user} in the background")
        return JsonResponse(
            {"success": True, "message": "Sync started", "status": "running"},
            status=202,
        )


@method_decorator(staff_member_required, name="dispatch")
class SyncStatusView(View):
    """Report the running sync, if any, and the last completed one."""

    http_method_names = ["get"]

    def get(self, request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
        current = get_current_sync()
        last_completed = get_last_sync()
        return JsonResponse(
            {
                "isRunning": current is not None,
                "currentSync": (
                    serialize_sync_log(current, include_stats=False)
                    if current
                    else None
                ),
                "lastCompleted": (
                    serialize_sync_log(last_completed) if last_completed else None
                ),
            }
        )


@method_decorator(staff_member_required, name="dispatch")
class SyncHistoryView(View):
    """List sync logs, newest first.

    Supports the SyncLogFilter query parameters plus ``limit`` and
    ``offset`` for paging.
    """

    http_method_names = ["get"]

    def get(self, request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
        """Handle the history request.

        Args:
            request: The HTTP request.

        Returns:
            JSON response with the matching logs.
        """
        limit = _parse_int(request.GET.get("limit"), DEFAULT_HISTORY_LIMIT)
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        offset = max(0, _parse_int(request.GET.get("offset"), 0))

        queryset = SyncLog.objects.select_related("feed", "triggered_by")
        filterset = SyncLogFilter(request.GET, queryset=queryset)
        if not filterset.is_valid():
            return JsonResponse(
                {"errors": filterset.errors.get_json_data()}, status=400
            )

        logs = filterset.qs.order_by("-created_at")[offset : offset + limit]
        return JsonResponse(
            {
                "logs": [serialize_sync_log(log) for log in logs],
                "limit": limit,
                "offset": offset,
            }
        )


class SyncCronView(View):
    """Run the due scheduled feeds for an external scheduler.

    The caller authenticates with LISTING_SYNC_CRON_SECRET, passed either as
    an ``Authorization: Bearer <secret>`` header or a ``secret`` query
    parameter. Responds 500 when no secret is configured and 401 when the
    secret does not match.
    """

    http_method_names = ["get"]

    def get(self, request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
        """Handle the cron request.

        Args:
            request: The HTTP request.

        Returns:
            JSON response with one result per processed feed.
        """
        cron_secret = getattr(settings, "LISTING_SYNC_CRON_SECRET", None)
        if not cron_secret:
            logger.error("LISTING_SYNC_CRON_SECRET is not configured")
            return JsonResponse({"error": "Cron not configured"}, status=500)

        auth_header = request.headers.get("Authorization", "")
        provided = auth_header.removeprefix("Bearer ").strip() or request.GET.get(
            "secret", ""
        )
        if not constant_time_compare(provided, cron_secret):
            logger.warning("Rejected cron sync request with an invalid secret")
            return JsonResponse({"error": "Unauthorized"}, status=401)

        checked_at = timezone.now()
        summaries = run_scheduled_feeds(now=checked_at)
        if not summaries:
            return JsonResponse(
                {
                    "success": True,
                    "message": "No feeds due to run",
                    "checkedAt": checked_at,
                }
            )

        results = [
            {
                "feedId": summary["feed_id"],
                "feedName": summary["feed_name"],
                "success": summary["success"],
                "stats": summary.get("stats"),
                "error": summary.get("error"),
            }
            for summary in summaries
        ]
        succeeded = sum(1 for result in results if result["success"])
        failed = len(results) - succeeded
        return JsonResponse(
            {
                "success": failed == 0,
                "message": (
                    f"Processed {len(results)} feed(s): "
                    f"{succeeded} succeeded, {failed} failed"
                ),
                "checkedAt": checked_at,
                "results": results,
            }
        )
