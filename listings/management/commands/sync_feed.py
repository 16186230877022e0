"""Management command to sync a listing feed.

This command runs one manual sync inline and is suitable for cron jobs or
for loading a feed file during development.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError, CommandParser
from django.utils import timezone

from listings.exceptions import ConflictError
from listings.models import SyncFeed, SyncLog
from listings.sync import run_sync

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Django management command for syncing a listing feed.

    Without options the default feed URL (LISTING_FEED_URL) is synced as
    XML. A configured feed can be selected by id or slug, and its URL can be
    overridden with --url or --file.

    Examples:
        # Sync the default feed
        python manage.py sync_feed

        # Sync a configured feed
        python manage.py sync_feed --feed main-mls

        # Load a local file through a configured feed's format
        python manage.py sync_feed --feed 2 --file ./listings.xml

        # Attribute the run to a user
        python manage.py sync_feed --user admin
    """

    help = "Synchronize listings from a feed"

    def add_arguments(self, parser: CommandParser) -> None:
        """Add command-line arguments.

        Args:
            parser: The argument parser to add arguments to.
        """
        parser.add_argument(
            "--feed",
            default=None,
            help="Id or slug of the feed configuration to sync",
        )
        parser.add_argument(
            "--url",
            default=None,
            help="Feed URL overriding the configured one",
        )
        parser.add_argument(
            "--file",
            default=None,
            help="Local feed file to sync instead of fetching a URL",
        )
        parser.add_argument(
            "--user",
            default=None,
            help="Username to record as the user who triggered the sync",
        )

    def _get_feed(self, value: Optional[str]) -> Optional[SyncFeed]:
        if value is None:
            return None
        lookup = {"pk": int(value)} if value.isdigit() else {"slug": value}
        try:
            return SyncFeed.objects.get(**lookup)
        except SyncFeed.DoesNotExist:
            raise CommandError(f"Feed {value!r} does not exist")

    def _get_user(self, username: Optional[str]) -> Any:
        if username is None:
            return None
        user_model = get_user_model()
        try:
            return user_model.objects.get(**{user_model.USERNAME_FIELD: username})
        except user_model.DoesNotExist:
            raise CommandError(f"User {username!r} does not exist")

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            *args: Positional arguments.
            **options: Keyword arguments from command line.
        """
        if options["url"] and options["file"]:
            raise CommandError("Use either --url or --file, not both")

        feed = self._get_feed(options["feed"])
        user = self._get_user(options["user"])

        feed_url = options["url"]
        if options["file"]:
            path = Path(options["file"])
            if not path.is_file():
                raise CommandError(f"Feed file {path} does not exist")
            feed_url = str(path.resolve())

        self.stdout.write(
            self.style.NOTICE(
                f"Starting feed sync at {timezone.now().strftime('%Y-%m-%d %H:%M:%S')}"
            )
        )
        self.stdout.write(f"Feed: {feed.name if feed else 'default'}")

        try:
            result = run_sync(
                trigger=SyncLog.Trigger.MANUAL,
                triggered_by=user,
                feed_id=feed.pk if feed else None,
                feed_url=feed_url,
            )
        except ConflictError as e:
            raise CommandError(str(e))

        stats = result.stats
        self.stdout.write(
            f"Listings: {stats.listings_created} created, "
            f"{stats.listings_updated} updated, {stats.errors} failed"
        )
        self.stdout.write(
            f"Agents: {stats.agents_created} created, {stats.agents_updated} updated"
        )
        self.stdout.write(
            f"Offices: {stats.offices_created} created, {stats.offices_updated} updated"
        )
        self.stdout.write(
            f"Photos: {stats.photos_processed}, "
            f"open houses: {stats.open_houses_processed}"
        )

        if not result.success:
            logger.error(f"Feed sync {result.sync_log_id} failed")
            raise CommandError(f"Sync failed: {result.error_message}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Sync completed in {result.duration:.1f}s "
                f"(sync log {result.sync_log_id})"
            )
        )
