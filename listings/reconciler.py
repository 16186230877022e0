"""Reconciliation of normalized feed listings against the listing store.

Each record resolves its agent and office (find-or-create), upserts the
listing by MLS id with a full field replace, and then replaces the listing's
photos and open houses. All writes for one record happen in one transaction.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from django.utils import timezone

from .exceptions import RecordError
from .models import Agent, Listing, ListingPhoto, Office, OpenHouse
from .normalizers import FeedAgent, FeedListing, FeedOffice, FeedOpenHouse, FeedPhoto

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"


@dataclass
class ReconcileOutcome:
    """Result of reconciling one feed listing.

    Attributes:
        action: ``created`` or ``updated`` for the listing itself.
        listing_id: Primary key of the stored listing.
        agent_action: ``created``/``updated`` for the agent, None if no agent.
        office_action: ``created``/``updated`` for the office, None if no office.
        photos: Number of photos stored.
        open_houses: Number of open houses stored.
    """

    action: str
    listing_id: int
    mls_id: str
    agent_action: Optional[str] = None
    office_action: Optional[str] = None
    photos: int = 0
    open_houses: int = 0


def find_or_create_agent(
    agent_data: Optional[FeedAgent],
) -> tuple[Optional[Agent], Optional[str]]:
    """Resolve the agent for a listing.

    Agents are matched by exact email. An agent without an email, or whose
    email is unknown, is always created as a new row; there is no matching
    by name.

    Args:
        agent_data: Normalized agent details, or None.

    Returns:
        Tuple of (Agent or None, ``created``/``updated`` or None).
    """
    if agent_data is None or agent_data.is_empty:
        return None, None

    if agent_data.email:
        existing = Agent.objects.filter(email=agent_data.email).order_by("pk").first()
        if existing:
            return existing, UPDATED

    agent = Agent.objects.create(
        first_name=agent_data.first_name,
        last_name=agent_data.last_name,
        email=agent_data.email,
        license_num=agent_data.license_num,
        phone=agent_data.phone,
        photo_url=agent_data.photo_url,
    )
    return agent, CREATED


def find_or_create_office(
    office_data: Optional[FeedOffice],
) -> tuple[Optional[Office], Optional[str]]:
    """Resolve the office for a listing by exact name.

    Args:
        office_data: Normalized office details, or None.

    Returns:
        Tuple of (Office or None, ``created``/``updated`` or None).
    """
    if office_data is None or not office_data.name:
        return None, None

    existing = Office.objects.filter(name=office_data.name).order_by("pk").first()
    if existing:
        return existing, UPDATED

    office = Office.objects.create(
        name=office_data.name,
        brokerage_name=office_data.brokerage_name,
        phone=office_data.phone,
        email=office_data.email,
        street_address=office_data.street_address,
        city=office_data.city,
        state=office_data.state,
        zip_code=office_data.zip_code,
    )
    return office, CREATED


def replace_photos(listing: Listing, photos: list[FeedPhoto]) -> int:
    """Replace all photos of a listing, keeping feed order as sort order.

    Args:
        listing: Listing owning the photos.
        photos: Photos in feed order.

    Returns:
        Number of photos stored.
    """
    listing.photos.all().delete()
    rows = [
        ListingPhoto(
            listing=listing,
            url=photo.url,
            caption=photo.caption,
            sort_order=index,
        )
        for index, photo in enumerate(p for p in photos if p.url)
    ]
    ListingPhoto.objects.bulk_create(rows)
    return len(rows)


def replace_open_houses(listing: Listing, open_houses: list[FeedOpenHouse]) -> int:
    """Replace all open houses of a listing.

    Args:
        listing: Listing owning the open houses.
        open_houses: Open houses from the feed.

    Returns:
        Number of open houses stored.
    """
    listing.open_houses.all().delete()
    rows = [
        OpenHouse(
            listing=listing,
            date=open_house.date,
            start_time=open_house.start_time,
            end_time=open_house.end_time,
        )
        for open_house in open_houses
        if open_house.is_complete
    ]
    OpenHouse.objects.bulk_create(rows)
    return len(rows)


def reconcile_listing(record: FeedListing) -> ReconcileOutcome:
    """Upsert one feed listing and its related entities.

    Existing listings are overwritten field by field (absent values clear
    previous ones) and their photos and open houses are deleted and
    reinserted.

    Args:
        record: Normalized feed listing.

    Returns:
        ReconcileOutcome describing what was written.

    Raises:
        RecordError: If the record has no MLS id or any write fails. Nothing
            from the record is persisted in that case.
    """
    if not record.mls_id:
        raise RecordError("Listing is missing its MLS id")

    try:
        with transaction.atomic():
            agent, agent_action = find_or_create_agent(record.agent)
            office, office_action = find_or_create_office(record.office)

            now = timezone.now()
            defaults = record.listing_fields()
            defaults.update(
                {
                    "agent": agent,
                    "office": office,
                    "synced_at": now,
                }
            )
            listing, created = Listing.objects.update_or_create(
                mls_id=record.mls_id,
                defaults=defaults,
            )

            photos = replace_photos(listing, record.photos)
            open_houses = replace_open_houses(listing, record.open_houses)
    except Exception as e:
        raise RecordError(
            f"Failed to sync listing {record.mls_id}: {e}", mls_id=record.mls_id
        ) from e

    action = CREATED if created else UPDATED
    logger.debug(
        f"Listing {record.mls_id} {action}: {photos} photos, {open_houses} open houses"
    )
    return ReconcileOutcome(
        action=action,
        listing_id=listing.pk,
        mls_id=record.mls_id,
        agent_action=agent_action,
        office_action=office_action,
        photos=photos,
        open_houses=open_houses,
    )
