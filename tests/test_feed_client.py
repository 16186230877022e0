"""Tests for the feed client."""

from unittest.mock import MagicMock

import pytest
import requests

from listings.exceptions import FetchError
from listings.feed_client import FeedClient, get_feed_client, resolve_feed_url
from listings.models import SyncFeed


def _session(response=None, error=None):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return session


def test_fetch_http_uses_timeout():
    """HTTP fetches pass the configured timeout."""
    response = MagicMock(ok=True, text="<Listings/>")
    session = _session(response)

    content = FeedClient(timeout=5, session=session).fetch("https://feeds.example.com/a.xml")

    assert content == "<Listings/>"
    session.get.assert_called_once_with("https://feeds.example.com/a.xml", timeout=5)


def test_fetch_http_error_status():
    """Non-success responses raise FetchError."""
    response = MagicMock(ok=False, status_code=503, reason="Service Unavailable")
    client = FeedClient(session=_session(response))

    with pytest.raises(FetchError, match="503"):
        client.fetch("https://feeds.example.com/a.xml")


def test_fetch_http_timeout():
    """Timeouts raise FetchError."""
    client = FeedClient(timeout=1, session=_session(error=requests.Timeout()))

    with pytest.raises(FetchError, match="Timed out"):
        client.fetch("https://feeds.example.com/a.xml")


def test_fetch_http_connection_error():
    """Connection failures raise FetchError."""
    client = FeedClient(session=_session(error=requests.ConnectionError("refused")))

    with pytest.raises(FetchError):
        client.fetch("https://feeds.example.com/a.xml")


def test_fetch_local_file(tmp_path):
    """Paths and file URLs are read from disk."""
    path = tmp_path / "feed.xml"
    path.write_text("<Listings/>", encoding="utf-8")
    client = FeedClient(session=_session())

    assert client.fetch(str(path)) == "<Listings/>"
    assert client.fetch(path.as_uri()) == "<Listings/>"


def test_fetch_missing_file(tmp_path):
    """A missing file raises FetchError."""
    with pytest.raises(FetchError):
        FeedClient(session=_session()).fetch(str(tmp_path / "missing.xml"))


def test_fetch_unsupported_scheme():
    """Unknown URL schemes are rejected."""
    with pytest.raises(FetchError, match="scheme"):
        FeedClient(session=_session()).fetch("ftp://feeds.example.com/a.xml")


def test_get_feed_client_reads_timeout(settings):
    """The client timeout comes from settings."""
    settings.LISTING_FEED_TIMEOUT = 12

    assert get_feed_client().timeout == 12


def test_resolve_feed_url_precedence(settings):
    """Explicit URL beats the feed URL, which beats the setting."""
    settings.LISTING_FEED_URL = "https://default.example.com/feed.xml"
    feed = SyncFeed(name="Main", slug="main", feed_url="https://feed.example.com/x.xml")

    assert resolve_feed_url(feed, "https://override.example.com") == "https://override.example.com"
    assert resolve_feed_url(feed) == "https://feed.example.com/x.xml"
    assert resolve_feed_url(SyncFeed(name="Empty", slug="empty")) == (
        "https://default.example.com/feed.xml"
    )


def test_resolve_feed_url_missing(settings):
    """No URL anywhere raises FetchError."""
    settings.LISTING_FEED_URL = None

    with pytest.raises(FetchError, match="No feed URL configured"):
        resolve_feed_url()
