"""Admin configuration for the listing feed sync.

This module registers the listing store and feed sync models with the
Django admin site, including a "sync now" action for feeds.
"""

from django.contrib import admin, messages
from django.db.models import QuerySet
from django.http import HttpRequest

from .exceptions import ConflictError
from .models import (
    Agent,
    Listing,
    ListingPhoto,
    Office,
    OpenHouse,
    SyncFeed,
    SyncLog,
)
from .sync import trigger_sync


class ListingPhotoInline(admin.TabularInline):
    """Read-only photos shown on the listing page."""

    model = ListingPhoto
    extra = 0
    can_delete = False
    readonly_fields = ["sort_order", "url", "caption"]


class OpenHouseInline(admin.TabularInline):
    """Read-only open houses shown on the listing page."""

    model = OpenHouse
    extra = 0
    can_delete = False
    readonly_fields = ["date", "start_time", "end_time"]


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    """Admin configuration for Listing model."""

    list_display = [
        "mls_id",
        "street_address",
        "city",
        "status",
        "price",
        "agent",
        "office",
        "synced_at",
    ]
    list_filter = [
        "status",
        "property_type",
        "city",
    ]
    search_fields = [
        "mls_id",
        "street_address",
        "city",
        "zip_code",
    ]
    date_hierarchy = "synced_at"
    ordering = ["-synced_at"]
    list_select_related = ["agent", "office"]
    inlines = [ListingPhotoInline, OpenHouseInline]


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    """Admin configuration for Agent model."""

    list_display = [
        "full_name",
        "email",
        "license_num",
        "phone",
        "user",
    ]
    search_fields = [
        "first_name",
        "last_name",
        "email",
        "license_num",
    ]
    ordering = ["last_name", "first_name"]


@admin.register(Office)
class OfficeAdmin(admin.ModelAdmin):
    """Admin configuration for Office model."""

    list_display = [
        "name",
        "brokerage_name",
        "city",
        "state",
        "phone",
    ]
    search_fields = [
        "name",
        "brokerage_name",
    ]
    ordering = ["name"]


@admin.register(SyncFeed)
class SyncFeedAdmin(admin.ModelAdmin):
    """Admin configuration for SyncFeed model."""

    list_display = [
        "name",
        "feed_type",
        "is_enabled",
        "schedule_enabled",
        "schedule_frequency",
        "last_scheduled_run",
        "next_scheduled_run",
    ]
    list_filter = [
        "feed_type",
        "is_enabled",
        "schedule_enabled",
        "schedule_frequency",
    ]
    search_fields = ["name", "slug"]
    prepopulated_fields = {"slug": ["name"]}
    readonly_fields = ["last_scheduled_run", "next_scheduled_run"]
    actions = ["run_sync_now"]

    def save_model(
        self, request: HttpRequest, obj: SyncFeed, form: object, change: bool
    ) -> None:
        """Recompute the next scheduled run whenever a feed is saved."""
        obj.reschedule()
        super().save_model(request, obj, form, change)

    @admin.action(description="Run sync now")
    def run_sync_now(self, request: HttpRequest, queryset: QuerySet[SyncFeed]) -> None:
        """Trigger a manual sync for the selected feed.

        Args:
            request: The admin request.
            queryset: Selected feeds; exactly one is expected.
        """
        if queryset.count() != 1:
            self.message_user(
                request, "Select exactly one feed to sync.", messages.WARNING
            )
            return

        feed = queryset.get()
        try:
            response = trigger_sync(triggered_by=request.user, feed_id=feed.pk)
        except ConflictError as e:
            self.message_user(request, str(e), messages.ERROR)
            return

        if not response.completed:
            self.message_user(request, f"Sync started for {feed.name}.", messages.INFO)
        elif response.result.success:
            stats = response.result.stats
            self.message_user(
                request,
                f"Sync completed for {feed.name}: "
                f"{stats.listings_created} created, {stats.listings_updated} updated.",
                messages.SUCCESS,
            )
        else:
            self.message_user(
                request,
                f"Sync failed for {feed.name}: {response.result.error_message}",
                messages.ERROR,
            )


@admin.register(SyncLog)
class SyncLogAdmin(admin.ModelAdmin):
    """Admin configuration for SyncLog model."""

    list_display = [
        "created_at",
        "feed",
        "trigger",
        "status",
        "listings_created",
        "listings_updated",
        "records_failed",
        "completed_at",
    ]
    list_filter = [
        "status",
        "trigger",
        "feed",
    ]
    ordering = ["-created_at"]
    readonly_fields = [
        "feed",
        "status",
        "trigger",
        "triggered_by",
        "started_at",
        "completed_at",
        "listings_created",
        "listings_updated",
        "listings_deleted",
        "agents_created",
        "agents_updated",
        "offices_created",
        "offices_updated",
        "photos_processed",
        "open_houses_processed",
        "records_failed",
        "error_message",
        "error_stack",
        "created_at",
    ]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False
