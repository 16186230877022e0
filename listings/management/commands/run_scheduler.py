"""Management command to run the feed scheduler.

Runs the scheduling loop in the foreground until SIGINT or SIGTERM, or a
single scheduling check with --once.
"""

import logging
import signal
from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from listings.scheduler import FeedScheduler, run_scheduled_feeds

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Django management command for running scheduled feed syncs.

    Examples:
        # Run the scheduler until interrupted
        python manage.py run_scheduler

        # Check every minute
        python manage.py run_scheduler --tick 60

        # Run the due feeds once and exit
        python manage.py run_scheduler --once
    """

    help = "Run scheduled listing feed syncs"

    def add_arguments(self, parser: CommandParser) -> None:
        """Add command-line arguments.

        Args:
            parser: The argument parser to add arguments to.
        """
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run the due feeds once and exit",
        )
        parser.add_argument(
            "--tick",
            type=float,
            default=None,
            help="Seconds between scheduling checks (default: LISTING_SYNC_TICK_SECONDS)",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            *args: Positional arguments.
            **options: Keyword arguments from command line.
        """
        if options["once"]:
            results = run_scheduled_feeds()
            if not results:
                self.stdout.write("No feeds due to run")
            for summary in results:
                line = f"{summary['feed_name']}: "
                if summary["success"]:
                    self.stdout.write(self.style.SUCCESS(line + "completed"))
                else:
                    self.stdout.write(self.style.ERROR(line + f"{summary['error']}"))
            return

        scheduler = FeedScheduler(tick_interval=options["tick"])

        def shutdown_handler(signum: int, frame: Any) -> None:
            logger.info(f"Received signal {signum}, shutting down...")
            scheduler.stop(timeout=0)

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)

        scheduler.start()
        self.stdout.write(
            self.style.NOTICE(
                f"Scheduler running, checking every {scheduler.tick_interval}s"
            )
        )
        while not scheduler.wait(timeout=1):
            pass
        scheduler.stop()
        self.stdout.write(self.style.SUCCESS("Scheduler stopped"))
