"""Feed normalizers.

Feed providers are inconsistent: blank and "None"/"null" strings stand in
for missing values, repeated elements are sometimes a single object and
sometimes a list, and numeric fields may hold anything. This module turns a
raw feed document into typed ``FeedListing`` records and is the only place
that tolerates those quirks.
"""

import json
import logging
import math
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, Optional

from django.utils import dateparse

from .exceptions import ParseError

logger = logging.getLogger(__name__)

NULL_SENTINELS = {"", "none", "null"}

DATE_FORMATS = ["%m/%d/%Y"]
TIME_FORMATS = ["%I:%M %p", "%I:%M%p", "%I:%M:%S %p"]


@dataclass
class FeedPhoto:
    """A picture reference from the feed."""

    url: Optional[str]
    caption: Optional[str] = None


@dataclass
class FeedOpenHouse:
    """An open house slot from the feed."""

    date: Optional[date]
    start_time: Optional[time]
    end_time: Optional[time]

    @property
    def is_complete(self) -> bool:
        return bool(self.date and self.start_time and self.end_time)


@dataclass
class FeedAgent:
    """Agent details attached to a feed listing."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    license_num: Optional[str] = None
    phone: Optional[str] = None
    photo_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.email and not self.first_name


@dataclass
class FeedOffice:
    """Office details attached to a feed listing."""

    name: Optional[str] = None
    brokerage_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


@dataclass
class FeedListing:
    """A normalized listing record ready for reconciliation.

    Attributes:
        mls_id: MLS identifier; None when the feed omitted it.
        agent: Agent details, or None when the feed has no usable agent.
        office: Office details, or None when the feed has no office name.
        photos: Pictures in feed order, entries without a URL removed.
        open_houses: Open houses with date, start and end all present.
    """

    mls_id: Optional[str]
    internal_mls_id: Optional[str] = None
    mls_board: Optional[str] = None
    street_address: Optional[str] = None
    unit_number: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: Optional[str] = None
    price: Optional[Decimal] = None
    listing_url: Optional[str] = None
    virtual_tour_url: Optional[str] = None
    property_type: Optional[str] = None
    description: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[Decimal] = None
    full_bathrooms: Optional[int] = None
    half_bathrooms: Optional[int] = None
    living_area: Optional[int] = None
    lot_size: Optional[Decimal] = None
    year_built: Optional[int] = None
    pets_allowed: Optional[bool] = None
    agent: Optional[FeedAgent] = None
    office: Optional[FeedOffice] = None
    photos: list[FeedPhoto] = field(default_factory=list)
    open_houses: list[FeedOpenHouse] = field(default_factory=list)

    def listing_fields(self) -> dict[str, Any]:
        """Get the scalar fields stored on the Listing row.

        Returns:
            Mapping of Listing model field names to normalized values.
        """
        return {
            "internal_mls_id": self.internal_mls_id,
            "mls_board": self.mls_board,
            "street_address": self.street_address,
            "unit_number": self.unit_number,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "status": self.status,
            "price": self.price,
            "listing_url": self.listing_url,
            "virtual_tour_url": self.virtual_tour_url,
            "property_type": self.property_type,
            "description": self.description,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "full_bathrooms": self.full_bathrooms,
            "half_bathrooms": self.half_bathrooms,
            "living_area": self.living_area,
            "lot_size": self.lot_size,
            "year_built": self.year_built,
            "pets_allowed": self.pets_allowed,
        }


def clean_value(value: Any) -> Optional[str]:
    """Normalize a raw feed value to a stripped string or None.

    Args:
        value: Raw value from the feed.

    Returns:
        The stripped string, or None for missing, blank, "none" or "null".
    """
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    if text.lower() in NULL_SENTINELS:
        return None
    return text


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a decimal value, returning None for anything non-numeric."""
    cleaned = clean_value(value)
    if cleaned is None:
        return None
    try:
        number = Decimal(cleaned.replace(",", ""))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_float(value: Any) -> Optional[float]:
    """Parse a float value, returning None for anything non-numeric."""
    cleaned = clean_value(value)
    if cleaned is None:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer value.

    Decimal strings are truncated toward zero ("2.5" becomes 2).

    Args:
        value: Raw value from the feed.

    Returns:
        The parsed integer, or None if the value is not numeric.
    """
    cleaned = clean_value(value)
    if cleaned is None:
        return None
    try:
        return int(cleaned)
    except ValueError:
        pass
    number = parse_float(cleaned)
    return int(number) if number is not None else None


def parse_date(value: Any) -> Optional[date]:
    """Parse a feed date (ISO or MM/DD/YYYY)."""
    cleaned = clean_value(value)
    if cleaned is None:
        return None
    try:
        parsed = dateparse.parse_date(cleaned)
    except ValueError:
        parsed = None
    if parsed:
        return parsed
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def parse_time(value: Any) -> Optional[time]:
    """Parse a feed time (12-hour clock or ISO HH:MM[:SS])."""
    cleaned = clean_value(value)
    if cleaned is None:
        return None
    # 12-hour formats first; the ISO parser would read "1:30 PM" as 01:30.
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(cleaned.upper(), fmt).time()
        except ValueError:
            continue
    try:
        return dateparse.parse_time(cleaned)
    except ValueError:
        return None


def as_list(value: Any) -> list[Any]:
    """Normalize a single-object-or-list feed element to a list.

    Args:
        value: A mapping, a list of mappings, or None.

    Returns:
        A list; empty when the element is absent.
    """
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _pets_allowed(rental: dict[str, Any]) -> Optional[bool]:
    pets = rental.get("PetsAllowed")
    if not isinstance(pets, dict):
        return None
    no_pets = clean_value(pets.get("NoPets"))
    # Only an explicit "no" on the NoPets flag is meaningful.
    if no_pets and no_pets.lower() == "no":
        return True
    return None


def normalize_agent(raw: Any) -> Optional[FeedAgent]:
    """Build a FeedAgent, or None when neither email nor first name is set."""
    if not isinstance(raw, dict):
        return None
    agent = FeedAgent(
        first_name=clean_value(raw.get("FirstName")),
        last_name=clean_value(raw.get("LastName")),
        email=clean_value(raw.get("EmailAddress")),
        license_num=clean_value(raw.get("LicenseNum")),
        phone=clean_value(raw.get("OfficeLineNumber")),
        photo_url=clean_value(raw.get("PictureUrl")),
    )
    return None if agent.is_empty else agent


def normalize_office(raw: Any) -> Optional[FeedOffice]:
    """Build a FeedOffice, or None when the office has no name."""
    if not isinstance(raw, dict):
        return None
    name = clean_value(raw.get("OfficeName"))
    if not name:
        return None
    return FeedOffice(
        name=name,
        brokerage_name=clean_value(raw.get("BrokerageName")),
        phone=clean_value(raw.get("BrokerPhone")),
        email=clean_value(raw.get("BrokerEmail")),
        street_address=clean_value(raw.get("StreetAddress")),
        city=clean_value(raw.get("City")),
        state=clean_value(raw.get("State")),
        zip_code=clean_value(raw.get("Zip")),
    )


def normalize_photos(raw: Any) -> list[FeedPhoto]:
    """Normalize the Pictures section, keeping feed order."""
    container = raw if isinstance(raw, dict) else {}
    photos = []
    for picture in as_list(container.get("Picture")):
        if not isinstance(picture, dict):
            continue
        url = clean_value(picture.get("PictureUrl"))
        if not url:
            continue
        photos.append(FeedPhoto(url=url, caption=clean_value(picture.get("Caption"))))
    return photos


def normalize_open_houses(raw: Any) -> list[FeedOpenHouse]:
    """Normalize the OpenHouses section, dropping incomplete entries."""
    container = raw if isinstance(raw, dict) else {}
    open_houses = []
    for entry in as_list(container.get("OpenHouse")):
        if not isinstance(entry, dict):
            continue
        open_house = FeedOpenHouse(
            date=parse_date(entry.get("Date")),
            start_time=parse_time(entry.get("StartTime")),
            end_time=parse_time(entry.get("EndTime")),
        )
        if open_house.is_complete:
            open_houses.append(open_house)
    return open_houses


def normalize_listing(raw: Any) -> FeedListing:
    """Convert one raw feed listing mapping to a FeedListing.

    Missing sections normalize to empty values; this never raises for
    bad field content. A listing that is not a mapping, such as an empty
    or text-only ``Listing`` element, normalizes to an empty record.

    Args:
        raw: Nested mapping for a single ``Listing`` element.

    Returns:
        The normalized listing record.
    """
    if not isinstance(raw, dict):
        raw = {}

    location = _section(raw, "Location")
    details = _section(raw, "ListingDetails")
    basic = _section(raw, "BasicDetails")

    return FeedListing(
        mls_id=clean_value(details.get("MlsId")),
        internal_mls_id=clean_value(details.get("InternalMlsId")),
        mls_board=clean_value(details.get("MlsBoard")),
        street_address=clean_value(location.get("StreetAddress")),
        unit_number=clean_value(location.get("UnitNumber")),
        city=clean_value(location.get("City")),
        state=clean_value(location.get("State")),
        zip_code=clean_value(location.get("Zip")),
        latitude=parse_float(location.get("Lat")),
        longitude=parse_float(location.get("Long")),
        status=clean_value(details.get("Status")),
        price=parse_decimal(details.get("Price")),
        listing_url=clean_value(details.get("ListingUrl")),
        virtual_tour_url=clean_value(details.get("VirtualTourUrl")),
        property_type=clean_value(basic.get("PropertyType")),
        description=clean_value(basic.get("Description")),
        bedrooms=parse_int(basic.get("Bedrooms")),
        bathrooms=parse_decimal(basic.get("Bathrooms")),
        full_bathrooms=parse_int(basic.get("FullBathrooms")),
        half_bathrooms=parse_int(basic.get("HalfBathrooms")),
        living_area=parse_int(basic.get("LivingArea")),
        lot_size=parse_decimal(basic.get("LotSize")),
        year_built=parse_int(basic.get("YearBuilt")),
        pets_allowed=_pets_allowed(_section(raw, "RentalDetails")),
        agent=normalize_agent(raw.get("Agent")),
        office=normalize_office(raw.get("Office")),
        photos=normalize_photos(raw.get("Pictures")),
        open_houses=normalize_open_houses(raw.get("OpenHouses")),
    )


class FeedNormalizer(ABC):
    """Strategy turning a raw feed document into FeedListing records."""

    feed_type: str = ""

    @abstractmethod
    def iter_raw_listings(self, content: str) -> Iterator[Any]:
        """Yield one raw mapping per listing in the document.

        Raises:
            ParseError: If the document cannot be parsed.
        """

    def parse(self, content: str) -> Iterator[FeedListing]:
        """Parse a feed document into normalized listings.

        The document is validated eagerly; records are normalized lazily.

        Args:
            content: Raw feed payload.

        Returns:
            Iterator of normalized listings.

        Raises:
            ParseError: If the document is malformed or has no listings
                container.
        """
        raw_listings = self.iter_raw_listings(content)
        return (normalize_listing(raw) for raw in raw_listings)


def element_to_value(element: ET.Element) -> Any:
    """Convert an XML element to nested dicts, lists and strings.

    Text-only elements become strings, repeated child tags become lists and
    attributes are ignored.

    Args:
        element: Element to convert.

    Returns:
        A string for leaf elements, otherwise a dict keyed by child tag.
    """
    children = list(element)
    if not children:
        return (element.text or "").strip()

    result: dict[str, Any] = {}
    for child in children:
        value = element_to_value(child)
        if child.tag in result:
            existing = result[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[child.tag] = [existing, value]
        else:
            result[child.tag] = value
    return result


class XMLFeedNormalizer(FeedNormalizer):
    """Normalizer for ``<Listings><Listing>...</Listing></Listings>`` feeds."""

    feed_type = "xml"

    def iter_raw_listings(self, content: str) -> Iterator[Any]:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ParseError(f"Malformed feed document: {e}") from e

        container = root if root.tag == "Listings" else root.find("Listings")
        if container is None:
            raise ParseError("Feed document has no Listings container")

        elements = container.findall("Listing")
        logger.info(f"Feed contains {len(elements)} listings")
        return (element_to_value(element) for element in elements)


class JSONFeedNormalizer(FeedNormalizer):
    """Normalizer for JSON feeds shaped like the XML document."""

    feed_type = "json"

    def iter_raw_listings(self, content: str) -> Iterator[Any]:
        try:
            document = json.loads(content)
        except ValueError as e:
            raise ParseError(f"Malformed feed document: {e}") from e

        if isinstance(document, list):
            listings = document
        elif isinstance(document, dict) and isinstance(document.get("Listings"), dict):
            listings = as_list(document["Listings"].get("Listing"))
        elif isinstance(document, dict) and isinstance(document.get("Listings"), list):
            listings = document["Listings"]
        else:
            raise ParseError("Feed document has no Listings container")

        logger.info(f"Feed contains {len(listings)} listings")
        return (raw if isinstance(raw, dict) else {} for raw in listings)


NORMALIZERS: dict[str, type[FeedNormalizer]] = {
    XMLFeedNormalizer.feed_type: XMLFeedNormalizer,
    JSONFeedNormalizer.feed_type: JSONFeedNormalizer,
}


def get_normalizer(feed_type: Optional[str]) -> FeedNormalizer:
    """Get the normalizer for a feed type.

    Args:
        feed_type: Feed format from the feed configuration. Defaults to xml.

    Returns:
        A normalizer instance.

    Raises:
        ParseError: If the feed type has no normalizer.
    """
    normalizer_class = NORMALIZERS.get((feed_type or "xml").lower())
    if normalizer_class is None:
        raise ParseError(f"Unsupported feed type: {feed_type}")
    return normalizer_class()
