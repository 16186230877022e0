import datetime

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Agent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("first_name", models.CharField(blank=True, max_length=100, null=True)),
                ("last_name", models.CharField(blank=True, max_length=100, null=True)),
                (
                    "email",
                    models.CharField(
                        blank=True, db_index=True, max_length=255, null=True
                    ),
                ),
                ("license_num", models.CharField(blank=True, max_length=50, null=True)),
                ("phone", models.CharField(blank=True, max_length=50, null=True)),
                ("photo_url", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        blank=True,
                        help_text="Portal account linked to this agent",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="agent_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Agent",
                "verbose_name_plural": "Agents",
                "ordering": ["last_name", "first_name"],
            },
        ),
        migrations.CreateModel(
            name="Office",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        blank=True, db_index=True, max_length=255, null=True
                    ),
                ),
                (
                    "brokerage_name",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("phone", models.CharField(blank=True, max_length=50, null=True)),
                ("email", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "street_address",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("city", models.CharField(blank=True, max_length=100, null=True)),
                ("state", models.CharField(blank=True, max_length=2, null=True)),
                ("zip_code", models.CharField(blank=True, max_length=10, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Office",
                "verbose_name_plural": "Offices",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Listing",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "mls_id",
                    models.CharField(
                        help_text="MLS identifier assigned by the feed provider",
                        max_length=50,
                        unique=True,
                    ),
                ),
                (
                    "internal_mls_id",
                    models.CharField(blank=True, max_length=50, null=True),
                ),
                ("mls_board", models.CharField(blank=True, max_length=100, null=True)),
                ("street_address", models.CharField(max_length=255)),
                ("unit_number", models.CharField(blank=True, max_length=50, null=True)),
                ("city", models.CharField(db_index=True, max_length=100)),
                ("state", models.CharField(max_length=2)),
                ("zip_code", models.CharField(max_length=10)),
                ("latitude", models.FloatField(blank=True, null=True)),
                ("longitude", models.FloatField(blank=True, null=True)),
                ("status", models.CharField(db_index=True, max_length=50)),
                (
                    "price",
                    models.DecimalField(
                        blank=True,
                        db_index=True,
                        decimal_places=2,
                        max_digits=12,
                        null=True,
                    ),
                ),
                ("listing_url", models.TextField(blank=True, null=True)),
                ("virtual_tour_url", models.TextField(blank=True, null=True)),
                (
                    "property_type",
                    models.CharField(
                        blank=True, db_index=True, max_length=50, null=True
                    ),
                ),
                ("description", models.TextField(blank=True, null=True)),
                ("bedrooms", models.SmallIntegerField(blank=True, null=True)),
                (
                    "bathrooms",
                    models.DecimalField(
                        blank=True, decimal_places=1, max_digits=3, null=True
                    ),
                ),
                ("full_bathrooms", models.SmallIntegerField(blank=True, null=True)),
                ("half_bathrooms", models.SmallIntegerField(blank=True, null=True)),
                ("living_area", models.IntegerField(blank=True, null=True)),
                (
                    "lot_size",
                    models.DecimalField(
                        blank=True, decimal_places=5, max_digits=10, null=True
                    ),
                ),
                ("year_built", models.SmallIntegerField(blank=True, null=True)),
                ("pets_allowed", models.BooleanField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "synced_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "agent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="listings",
                        to="listings.agent",
                    ),
                ),
                (
                    "office",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="listings",
                        to="listings.office",
                    ),
                ),
            ],
            options={
                "verbose_name": "Listing",
                "verbose_name_plural": "Listings",
                "indexes": [
                    models.Index(
                        fields=["bedrooms", "bathrooms"],
                        name="listing_beds_baths_idx",
                    ),
                    models.Index(
                        fields=["latitude", "longitude"],
                        name="listing_lat_lng_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ListingPhoto",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("url", models.TextField()),
                ("caption", models.TextField(blank=True, null=True)),
                ("sort_order", models.SmallIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="photos",
                        to="listings.listing",
                    ),
                ),
            ],
            options={
                "ordering": ["listing", "sort_order"],
                "indexes": [
                    models.Index(
                        fields=["listing", "sort_order"],
                        name="listing_photo_order_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OpenHouse",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("date", models.DateField(db_index=True)),
                ("start_time", models.TimeField()),
                ("end_time", models.TimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="open_houses",
                        to="listings.listing",
                    ),
                ),
            ],
            options={
                "verbose_name": "Open House",
                "verbose_name_plural": "Open Houses",
                "ordering": ["date", "start_time"],
            },
        ),
        migrations.CreateModel(
            name="SyncFeed",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("slug", models.SlugField(unique=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("feed_url", models.TextField(blank=True, null=True)),
                (
                    "feed_type",
                    models.CharField(
                        choices=[("xml", "XML"), ("json", "JSON"), ("api", "API")],
                        default="xml",
                        max_length=20,
                    ),
                ),
                ("is_enabled", models.BooleanField(db_index=True, default=True)),
                ("schedule_enabled", models.BooleanField(default=False)),
                (
                    "schedule_frequency",
                    models.CharField(
                        choices=[
                            ("hourly", "Hourly"),
                            ("every_6_hours", "Every 6 hours"),
                            ("every_12_hours", "Every 12 hours"),
                            ("daily", "Daily"),
                            ("weekly", "Weekly"),
                        ],
                        default="daily",
                        max_length=20,
                    ),
                ),
                (
                    "schedule_time",
                    models.TimeField(
                        default=datetime.time(3, 0),
                        help_text="Time of day (UTC) for daily and weekly syncs",
                    ),
                ),
                (
                    "schedule_day_of_week",
                    models.SmallIntegerField(
                        blank=True,
                        choices=[
                            (0, "Sunday"),
                            (1, "Monday"),
                            (2, "Tuesday"),
                            (3, "Wednesday"),
                            (4, "Thursday"),
                            (5, "Friday"),
                            (6, "Saturday"),
                        ],
                        null=True,
                    ),
                ),
                ("last_scheduled_run", models.DateTimeField(blank=True, null=True)),
                (
                    "next_scheduled_run",
                    models.DateTimeField(blank=True, db_index=True, null=True),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Sync Feed",
                "verbose_name_plural": "Sync Feeds",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="SyncLog",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "trigger",
                    models.CharField(
                        choices=[
                            ("manual", "Manual"),
                            ("scheduled", "Scheduled"),
                            ("webhook", "Webhook"),
                        ],
                        max_length=20,
                    ),
                ),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("listings_created", models.IntegerField(default=0)),
                ("listings_updated", models.IntegerField(default=0)),
                ("listings_deleted", models.IntegerField(default=0)),
                ("agents_created", models.IntegerField(default=0)),
                ("agents_updated", models.IntegerField(default=0)),
                ("offices_created", models.IntegerField(default=0)),
                ("offices_updated", models.IntegerField(default=0)),
                ("photos_processed", models.IntegerField(default=0)),
                ("open_houses_processed", models.IntegerField(default=0)),
                ("records_failed", models.IntegerField(default=0)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("error_stack", models.TextField(blank=True, null=True)),
                (
                    "created_at",
                    models.DateTimeField(
                        db_index=True, default=django.utils.timezone.now
                    ),
                ),
                (
                    "feed",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="logs",
                        to="listings.syncfeed",
                    ),
                ),
                (
                    "triggered_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="sync_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Sync Log",
                "verbose_name_plural": "Sync Logs",
                "ordering": ["-created_at"],
                "get_latest_by": "created_at",
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "running")),
                        fields=("status",),
                        name="single_running_sync",
                    )
                ],
            },
        ),
    ]
