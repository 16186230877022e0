"""Tests for listing reconciliation."""

from datetime import date, time

import pytest

from listings.exceptions import RecordError
from listings.models import Agent, Listing, ListingPhoto, Office, OpenHouse
from listings.normalizers import (
    FeedAgent,
    FeedListing,
    FeedOffice,
    FeedOpenHouse,
    FeedPhoto,
    XMLFeedNormalizer,
)
from listings.reconciler import (
    CREATED,
    UPDATED,
    find_or_create_agent,
    find_or_create_office,
    reconcile_listing,
)

pytestmark = pytest.mark.django_db


def _record(**overrides) -> FeedListing:
    fields = {
        "mls_id": "MLS-1",
        "street_address": "12 Oak Street",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62704",
        "status": "Active",
        "agent": FeedAgent(first_name="Jane", email="jane@example.com"),
        "office": FeedOffice(name="Main Street Realty"),
        "photos": [FeedPhoto(url="https://img.example.com/1.jpg")],
    }
    fields.update(overrides)
    return FeedListing(**fields)


def test_reconcile_creates_listing_and_relations():
    """A new record creates the listing, agent, office and children."""
    outcome = reconcile_listing(
        _record(
            open_houses=[FeedOpenHouse(date(2024, 2, 3), time(13, 0), time(15, 0))]
        )
    )

    listing = Listing.objects.get(mls_id="MLS-1")
    assert outcome.action == CREATED
    assert outcome.agent_action == CREATED
    assert outcome.office_action == CREATED
    assert outcome.photos == 1
    assert outcome.open_houses == 1
    assert listing.agent.email == "jane@example.com"
    assert listing.office.name == "Main Street Realty"
    assert listing.open_houses.count() == 1


def test_reconcile_is_idempotent(sample_feed):
    """Reprocessing an unchanged feed only updates."""
    first = [reconcile_listing(r) for r in XMLFeedNormalizer().parse(sample_feed)]
    snapshot = list(
        Listing.objects.order_by("mls_id").values("mls_id", "price", "agent_id", "office_id")
    )
    second = [reconcile_listing(r) for r in XMLFeedNormalizer().parse(sample_feed)]

    assert [o.action for o in first] == [CREATED, CREATED]
    assert [o.action for o in second] == [UPDATED, UPDATED]
    assert (
        list(
            Listing.objects.order_by("mls_id").values(
                "mls_id", "price", "agent_id", "office_id"
            )
        )
        == snapshot
    )
    assert Agent.objects.count() == 2
    assert Office.objects.count() == 1
    assert ListingPhoto.objects.count() == 3


def test_existing_mls_id_updates_instead_of_duplicating():
    """Re-ingesting an MLS id updates the stored row."""
    reconcile_listing(_record(status="Active"))
    reconcile_listing(_record(status="Pending"))

    assert Listing.objects.filter(mls_id="MLS-1").count() == 1
    assert Listing.objects.get(mls_id="MLS-1").status == "Pending"


def test_update_clears_absent_values():
    """Fields missing from the new record are cleared."""
    reconcile_listing(_record(description="Lovely home"))
    reconcile_listing(_record(description=None))

    assert Listing.objects.get(mls_id="MLS-1").description is None


def test_photos_are_replaced_in_feed_order():
    """Stored photos match the latest record exactly, ordered from zero."""
    reconcile_listing(
        _record(
            photos=[
                FeedPhoto(url="https://img.example.com/old-1.jpg"),
                FeedPhoto(url="https://img.example.com/old-2.jpg"),
                FeedPhoto(url="https://img.example.com/old-3.jpg"),
            ]
        )
    )
    reconcile_listing(
        _record(
            photos=[
                FeedPhoto(url="https://img.example.com/b.jpg"),
                FeedPhoto(url="https://img.example.com/a.jpg"),
            ]
        )
    )

    photos = list(
        Listing.objects.get(mls_id="MLS-1")
        .photos.order_by("sort_order")
        .values_list("sort_order", "url")
    )
    assert photos == [
        (0, "https://img.example.com/b.jpg"),
        (1, "https://img.example.com/a.jpg"),
    ]


def test_open_houses_are_replaced():
    """Open houses not in the new record are removed."""
    reconcile_listing(
        _record(open_houses=[FeedOpenHouse(date(2024, 2, 3), time(13, 0), time(15, 0))])
    )
    reconcile_listing(_record(open_houses=[]))

    assert OpenHouse.objects.count() == 0


def test_missing_mls_id_raises_record_error():
    """A record without an MLS id is rejected before any write."""
    with pytest.raises(RecordError):
        reconcile_listing(_record(mls_id=None))

    assert Listing.objects.count() == 0
    assert Agent.objects.count() == 0


def test_failed_write_rolls_back_record():
    """A record failing mid-write persists nothing."""
    with pytest.raises(RecordError) as excinfo:
        reconcile_listing(_record(street_address=None))

    assert excinfo.value.mls_id == "MLS-1"
    assert Listing.objects.count() == 0
    assert Agent.objects.count() == 0
    assert Office.objects.count() == 0


def test_agent_matched_by_email():
    """Agents with a known email are reused."""
    existing = Agent.objects.create(first_name="Jane", email="jane@example.com")

    agent, action = find_or_create_agent(FeedAgent(first_name="J", email="jane@example.com"))

    assert agent == existing
    assert action == UPDATED


def test_agent_without_email_always_created():
    """Agents without an email are never matched by name."""
    find_or_create_agent(FeedAgent(first_name="Jane", last_name="Doe"))
    agent, action = find_or_create_agent(FeedAgent(first_name="Jane", last_name="Doe"))

    assert action == CREATED
    assert Agent.objects.count() == 2


def test_empty_agent_and_office_resolve_to_none():
    """Missing agents and offices leave the relations empty."""
    assert find_or_create_agent(None) == (None, None)
    assert find_or_create_office(FeedOffice(name=None)) == (None, None)


def test_office_matched_by_name():
    """Offices are matched by exact name."""
    existing = Office.objects.create(name="Main Street Realty")

    office, action = find_or_create_office(FeedOffice(name="Main Street Realty"))

    assert office == existing
    assert action == UPDATED
