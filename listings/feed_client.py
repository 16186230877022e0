"""Feed client for retrieving raw listing feeds over HTTP or from disk."""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests
from django.conf import settings

from .exceptions import FetchError
from .models import SyncFeed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


class FeedClient:
    """Fetches feed payloads.

    HTTP(S) URLs are downloaded with a fixed timeout; ``file://`` URLs and
    plain paths are read from the local filesystem. No retries are made.

    Attributes:
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/xml, application/json, */*")

    def fetch(self, url: str) -> str:
        """Fetch a feed document.

        Args:
            url: HTTP(S) URL, ``file://`` URL or filesystem path.

        Returns:
            The feed payload as text.

        Raises:
            FetchError: If the feed cannot be retrieved.
        """
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            return self._fetch_http(url)
        if parsed.scheme == "file":
            return self._read_file(Path(unquote(parsed.path)))
        if parsed.scheme and len(parsed.scheme) > 1:
            raise FetchError(f"Unsupported feed URL scheme: {parsed.scheme}")
        return self._read_file(Path(url))

    def _fetch_http(self, url: str) -> str:
        logger.info(f"Fetching feed from {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.Timeout as e:
            raise FetchError(f"Timed out fetching feed after {self.timeout}s") from e
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch feed: {e}") from e

        if not response.ok:
            raise FetchError(
                f"Failed to fetch feed: {response.status_code} {response.reason}"
            )
        return response.text

    def _read_file(self, path: Path) -> str:
        logger.info(f"Reading feed from {path}")
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise FetchError(f"Failed to read feed file {path}: {e}") from e


def get_feed_client() -> FeedClient:
    """Get a feed client configured from settings.

    Returns:
        FeedClient using LISTING_FEED_TIMEOUT.
    """
    timeout = getattr(settings, "LISTING_FEED_TIMEOUT", DEFAULT_TIMEOUT)
    return FeedClient(timeout=timeout)


def resolve_feed_url(
    feed: Optional[SyncFeed] = None,
    feed_url: Optional[str] = None,
) -> str:
    """Pick the URL to fetch for a run.

    An explicit URL wins, then the feed's configured URL, then the
    process-wide LISTING_FEED_URL setting.

    Args:
        feed: Feed configuration for the run, if any.
        feed_url: Explicit URL override.

    Returns:
        The feed URL.

    Raises:
        FetchError: If no URL is configured anywhere.
    """
    url = feed_url or (feed.feed_url if feed else None)
    url = url or getattr(settings, "LISTING_FEED_URL", None)
    if not url:
        raise FetchError(
            "No feed URL configured. Set LISTING_FEED_URL or configure the feed URL."
        )
    return url
