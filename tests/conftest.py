"""Shared fixtures for listing feed sync tests."""

import pytest

from listings.models import SyncFeed

from .feeds import feed_xml, listing_xml


@pytest.fixture
def sample_feed() -> str:
    """Feed with two valid listings."""
    return feed_xml(
        listing_xml(
            mls_id="MLS-1001",
            photos=(
                "https://img.example.com/1.jpg",
                "https://img.example.com/2.jpg",
            ),
            open_houses=(("2024-02-03", "13:00", "15:00"),),
        ),
        listing_xml(
            mls_id="MLS-1002",
            street="98 Elm Avenue",
            price="1,250,000",
            agent_email="sam@example.com",
            office_name="Main Street Realty",
        ),
    )


@pytest.fixture
def feed(db) -> SyncFeed:
    """An enabled XML feed with a daily schedule."""
    return SyncFeed.objects.create(
        name="Main MLS",
        slug="main-mls",
        feed_url="https://feeds.example.com/listings.xml",
        feed_type=SyncFeed.FeedType.XML,
        schedule_enabled=True,
        schedule_frequency=SyncFeed.Frequency.DAILY,
    )
