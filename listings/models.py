"""Models for the listing feed sync.

This module contains the listing store populated from external feeds
(listings, agents, offices, photos, open houses) together with the feed
configurations and the sync log used for run history and mutual exclusion.
"""

from datetime import datetime, time
from typing import Optional

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Agent(models.Model):
    """Represents a listing's agent as supplied by the feed.

    Agents are matched by email only; an agent without a matching email is
    always created as a new row.

    Attributes:
        email: Agent email address, used as the lookup key.
        user: Optional portal account linked to this agent.
    """

    first_name = models.CharField(max_length=100, blank=True, null=True)
    last_name = models.CharField(max_length=100, blank=True, null=True)
    email = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        db_index=True,
    )
    license_num = models.CharField(max_length=50, blank=True, null=True)
    phone = models.CharField(max_length=50, blank=True, null=True)
    photo_url = models.TextField(blank=True, null=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="agent_profile",
        help_text="Portal account linked to this agent",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for Agent model."""

        verbose_name = "Agent"
        verbose_name_plural = "Agents"
        ordering = ["last_name", "first_name"]

    def __str__(self) -> str:
        """Return string representation of the agent.

        Returns:
            Full name, falling back to the email address.
        """
        return self.full_name or self.email or f"Agent {self.pk}"

    @property
    def full_name(self) -> str:
        """Get the agent's full name.

        Returns:
            First and last name joined by a space.
        """
        return " ".join(filter(None, [self.first_name, self.last_name]))


class Office(models.Model):
    """Represents a brokerage office, matched by exact name."""

    name = models.CharField(max_length=255, blank=True, null=True, db_index=True)
    brokerage_name = models.CharField(max_length=255, blank=True, null=True)
    phone = models.CharField(max_length=50, blank=True, null=True)
    email = models.CharField(max_length=255, blank=True, null=True)
    street_address = models.CharField(max_length=255, blank=True, null=True)
    city = models.CharField(max_length=100, blank=True, null=True)
    state = models.CharField(max_length=2, blank=True, null=True)
    zip_code = models.CharField(max_length=10, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for Office model."""

        verbose_name = "Office"
        verbose_name_plural = "Offices"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name or f"Office {self.pk}"


class Listing(models.Model):
    """Represents a property listing keyed by its MLS identifier.

    Photos and open houses are owned by the listing and are replaced
    wholesale every time the listing is synced.

    Attributes:
        mls_id: Externally assigned MLS identifier, unique in the store.
        agent: Listing agent resolved from the feed.
        office: Listing office resolved from the feed.
        synced_at: When the listing was last reconciled from a feed.
    """

    mls_id = models.CharField(
        max_length=50,
        unique=True,
        help_text="MLS identifier assigned by the feed provider",
    )
    internal_mls_id = models.CharField(max_length=50, blank=True, null=True)
    mls_board = models.CharField(max_length=100, blank=True, null=True)

    # Location
    street_address = models.CharField(max_length=255)
    unit_number = models.CharField(max_length=50, blank=True, null=True)
    city = models.CharField(max_length=100, db_index=True)
    state = models.CharField(max_length=2)
    zip_code = models.CharField(max_length=10)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)

    # Listing details
    status = models.CharField(max_length=50, db_index=True)
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        db_index=True,
    )
    listing_url = models.TextField(blank=True, null=True)
    virtual_tour_url = models.TextField(blank=True, null=True)

    # Property details
    property_type = models.CharField(
        max_length=50, blank=True, null=True, db_index=True
    )
    description = models.TextField(blank=True, null=True)
    bedrooms = models.SmallIntegerField(null=True, blank=True)
    bathrooms = models.DecimalField(
        max_digits=3, decimal_places=1, null=True, blank=True
    )
    full_bathrooms = models.SmallIntegerField(null=True, blank=True)
    half_bathrooms = models.SmallIntegerField(null=True, blank=True)
    living_area = models.IntegerField(null=True, blank=True)
    lot_size = models.DecimalField(
        max_digits=10, decimal_places=5, null=True, blank=True
    )
    year_built = models.SmallIntegerField(null=True, blank=True)

    # Rental
    pets_allowed = models.BooleanField(null=True, blank=True)

    agent = models.ForeignKey(
        Agent,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="listings",
    )
    office = models.ForeignKey(
        Office,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="listings",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    synced_at = models.DateTimeField(default=timezone.now)

    class Meta:
        """Meta options for Listing model."""

        verbose_name = "Listing"
        verbose_name_plural = "Listings"
        indexes = [
            models.Index(
                fields=["bedrooms", "bathrooms"], name="listing_beds_baths_idx"
            ),
            models.Index(
                fields=["latitude", "longitude"], name="listing_lat_lng_idx"
            ),
        ]

    def __str__(self) -> str:
        """Return string representation of the listing.

        Returns:
            MLS id followed by the street address and city.
        """
        return f"{self.mls_id} - {self.street_address}, {self.city}"

    @property
    def full_address(self) -> str:
        """Get the full formatted address.

        Returns:
            Complete address string.
        """
        address_line = " ".join(
            filter(None, [self.street_address, self.unit_number])
        )
        city_state = f"{self.city}, {self.state}" if self.city else ""
        return f"{address_line}, {city_state} {self.zip_code or ''}".strip()


class ListingPhoto(models.Model):
    """Ordered photo owned by a listing."""

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name="photos",
    )
    url = models.TextField()
    caption = models.TextField(blank=True, null=True)
    sort_order = models.SmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Meta options for ListingPhoto model."""

        ordering = ["listing", "sort_order"]
        indexes = [
            models.Index(
                fields=["listing", "sort_order"], name="listing_photo_order_idx"
            )
        ]

    def __str__(self) -> str:
        return f"{self.listing_id} #{self.sort_order}"


class OpenHouse(models.Model):
    """Scheduled showing owned by a listing."""

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name="open_houses",
    )
    date = models.DateField(db_index=True)
    start_time = models.TimeField()
    end_time = models.TimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Meta options for OpenHouse model."""

        verbose_name = "Open House"
        verbose_name_plural = "Open Houses"
        ordering = ["date", "start_time"]

    def __str__(self) -> str:
        return f"{self.listing_id} {self.date} {self.start_time}-{self.end_time}"


class SyncFeed(models.Model):
    """An ingestion source and its schedule.

    Attributes:
        feed_url: URL (or file path) the feed is fetched from.
        feed_type: Document format, selects the normalizer.
        schedule_frequency: Cadence used to compute the next run.
        schedule_time: Time of day (UTC) for daily and weekly runs.
        schedule_day_of_week: Day for weekly runs, 0 = Sunday.
    """

    class FeedType(models.TextChoices):
        """Supported feed document formats."""

        XML = "xml", "XML"
        JSON = "json", "JSON"
        API = "api", "API"

    class Frequency(models.TextChoices):
        """Schedule cadences."""

        HOURLY = "hourly", "Hourly"
        EVERY_6_HOURS = "every_6_hours", "Every 6 hours"
        EVERY_12_HOURS = "every_12_hours", "Every 12 hours"
        DAILY = "daily", "Daily"
        WEEKLY = "weekly", "Weekly"

    class DayOfWeek(models.IntegerChoices):
        """Days of the week, numbered from Sunday."""

        SUNDAY = 0, "Sunday"
        MONDAY = 1, "Monday"
        TUESDAY = 2, "Tuesday"
        WEDNESDAY = 3, "Wednesday"
        THURSDAY = 4, "Thursday"
        FRIDAY = 5, "Friday"
        SATURDAY = 6, "Saturday"

    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=50, unique=True)
    description = models.TextField(blank=True, null=True)
    feed_url = models.TextField(blank=True, null=True)
    feed_type = models.CharField(
        max_length=20,
        choices=FeedType.choices,
        default=FeedType.XML,
    )
    is_enabled = models.BooleanField(default=True, db_index=True)

    schedule_enabled = models.BooleanField(default=False)
    schedule_frequency = models.CharField(
        max_length=20,
        choices=Frequency.choices,
        default=Frequency.DAILY,
    )
    schedule_time = models.TimeField(
        default=time(3, 0),
        help_text="Time of day (UTC) for daily and weekly syncs",
    )
    schedule_day_of_week = models.SmallIntegerField(
        choices=DayOfWeek.choices,
        null=True,
        blank=True,
    )
    last_scheduled_run = models.DateTimeField(null=True, blank=True)
    next_scheduled_run = models.DateTimeField(null=True, blank=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for SyncFeed model."""

        verbose_name = "Sync Feed"
        verbose_name_plural = "Sync Feeds"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def reschedule(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Recompute the next scheduled run from the schedule settings.

        Args:
            now: Reference time. Defaults to the current time.

        Returns:
            The new next run, or None when scheduling is disabled.
        """
        from .scheduler import compute_next_run

        if self.schedule_enabled:
            self.next_scheduled_run = compute_next_run(
                self.schedule_frequency,
                self.schedule_time,
                self.schedule_day_of_week,
                now or timezone.now(),
            )
        else:
            self.next_scheduled_run = None
        return self.next_scheduled_run


class SyncLog(models.Model):
    """One record per sync run.

    A partial unique constraint allows at most one row in the running
    state, which makes the "already running" check atomic with the insert.

    Attributes:
        feed: The feed that was synced, if any.
        status: Current status of the run.
        trigger: What started the run.
        triggered_by: User who started a manual run.
    """

    class SyncStatus(models.TextChoices):
        """Status of synchronization runs."""

        PENDING = "pending", "Pending"
        RUNNING = "running", "Running"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    class Trigger(models.TextChoices):
        """What initiated a synchronization run."""

        MANUAL = "manual", "Manual"
        SCHEDULED = "scheduled", "Scheduled"
        WEBHOOK = "webhook", "Webhook"

    feed = models.ForeignKey(
        SyncFeed,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="logs",
    )
    status = models.CharField(
        max_length=20,
        choices=SyncStatus.choices,
        default=SyncStatus.PENDING,
        db_index=True,
    )
    trigger = models.CharField(max_length=20, choices=Trigger.choices)
    triggered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sync_logs",
    )
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    listings_created = models.IntegerField(default=0)
    listings_updated = models.IntegerField(default=0)
    listings_deleted = models.IntegerField(default=0)
    agents_created = models.IntegerField(default=0)
    agents_updated = models.IntegerField(default=0)
    offices_created = models.IntegerField(default=0)
    offices_updated = models.IntegerField(default=0)
    photos_processed = models.IntegerField(default=0)
    open_houses_processed = models.IntegerField(default=0)
    records_failed = models.IntegerField(default=0)

    error_message = models.TextField(blank=True, null=True)
    error_stack = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        """Meta options for SyncLog model."""

        verbose_name = "Sync Log"
        verbose_name_plural = "Sync Logs"
        ordering = ["-created_at"]
        get_latest_by = "created_at"
        constraints = [
            models.UniqueConstraint(
                fields=["status"],
                condition=Q(status="running"),
                name="single_running_sync",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation of the sync log.

        Returns:
            String with trigger, status, and creation timestamp.
        """
        return f"{self.get_trigger_display()} - {self.get_status_display()} - {self.created_at}"

    @property
    def duration(self) -> Optional[float]:
        """Elapsed seconds between start and completion, if both are known."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @classmethod
    def get_last_successful_sync(
        cls, feed_id: Optional[int] = None
    ) -> Optional["SyncLog"]:
        """Get the last completed sync, optionally for one feed.

        Args:
            feed_id: Restrict the lookup to this feed.

        Returns:
            The last completed SyncLog or None if no sync has completed.
        """
        queryset = cls.objects.filter(status=cls.SyncStatus.COMPLETED)
        if feed_id is not None:
            queryset = queryset.filter(feed_id=feed_id)
        return queryset.order_by("-completed_at").first()

    @classmethod
    def expire_stale_runs(cls, older_than: datetime) -> int:
        """Mark running syncs started before a cutoff as failed.

        Args:
            older_than: Runs started before this instant are considered hung.

        Returns:
            Number of sync logs that were expired.
        """
        return cls.objects.filter(
            status=cls.SyncStatus.RUNNING,
            started_at__lt=older_than,
        ).update(
            status=cls.SyncStatus.FAILED,
            completed_at=timezone.now(),
            error_message="Sync exceeded the maximum run time and was marked as failed",
        )
