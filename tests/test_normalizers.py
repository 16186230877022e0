"""Tests for feed normalization."""

import json
import xml.etree.ElementTree as ET
from datetime import date, time
from decimal import Decimal

import pytest

from listings.exceptions import ParseError
from listings.normalizers import (
    JSONFeedNormalizer,
    XMLFeedNormalizer,
    as_list,
    clean_value,
    element_to_value,
    get_normalizer,
    normalize_listing,
    parse_date,
    parse_decimal,
    parse_int,
    parse_time,
)

from .feeds import feed_xml, listing_xml


@pytest.mark.parametrize("value", [None, "", "   ", "None", "none", "NULL", {}, []])
def test_clean_value_missing(value):
    """Blank and null-like values normalize to None."""
    assert clean_value(value) is None


def test_clean_value_strips():
    """Values are stripped of surrounding whitespace."""
    assert clean_value("  Springfield \n") == "Springfield"
    assert clean_value(3) == "3"


def test_literal_none_is_missing_for_every_type():
    """The literal string "None" is no value for strings, numbers and dates."""
    assert clean_value("None") is None
    assert parse_decimal("None") is None
    assert parse_int("None") is None
    assert parse_date("None") is None
    assert parse_time("None") is None


def test_parse_decimal():
    """Decimals accept thousands separators and reject junk."""
    assert parse_decimal("450,000") == Decimal("450000")
    assert parse_decimal("2.5") == Decimal("2.5")
    assert parse_decimal("call agent") is None
    assert parse_decimal("NaN") is None


def test_parse_int_truncates_decimals():
    """Integer fields truncate decimal strings."""
    assert parse_int("3") == 3
    assert parse_int("2.9") == 2
    assert parse_int("three") is None


def test_parse_date_formats():
    """ISO and US dates are both accepted."""
    assert parse_date("2024-02-03") == date(2024, 2, 3)
    assert parse_date("02/03/2024") == date(2024, 2, 3)
    assert parse_date("someday") is None


def test_parse_time_formats():
    """24-hour and 12-hour clock times are both accepted."""
    assert parse_time("13:00") == time(13, 0)
    assert parse_time("1:30 pm") == time(13, 30)
    assert parse_time("later") is None


def test_as_list():
    """Single objects become one-element lists."""
    assert as_list(None) == []
    assert as_list({"a": "1"}) == [{"a": "1"}]
    assert as_list([{"a": "1"}, {"a": "2"}]) == [{"a": "1"}, {"a": "2"}]


def test_single_picture_becomes_one_photo():
    """A lone Picture element normalizes to a one-element photo list."""
    raw = {
        "ListingDetails": {"MlsId": "MLS-1"},
        "Pictures": {"Picture": {"PictureUrl": "https://img.example.com/a.jpg"}},
    }

    record = normalize_listing(raw)

    assert len(record.photos) == 1
    assert record.photos[0].url == "https://img.example.com/a.jpg"


def test_normalize_listing_fields():
    """A full XML listing maps onto the typed record."""
    [record] = XMLFeedNormalizer().parse(
        feed_xml(
            listing_xml(
                photos=("https://img.example.com/1.jpg", "https://img.example.com/2.jpg"),
                open_houses=(("2024-02-03", "13:00", "15:00"),),
            )
        )
    )

    assert record.mls_id == "MLS-1001"
    assert record.street_address == "12 Oak Street"
    assert record.price == Decimal("450000")
    assert record.bedrooms == 3
    assert record.bathrooms == Decimal("2.5")
    assert record.latitude == pytest.approx(39.78)
    assert record.agent.email == "jane@example.com"
    assert record.office.name == "Main Street Realty"
    assert [photo.url for photo in record.photos] == [
        "https://img.example.com/1.jpg",
        "https://img.example.com/2.jpg",
    ]
    assert record.open_houses[0].date == date(2024, 2, 3)
    assert record.open_houses[0].start_time == time(13, 0)


def test_incomplete_open_house_dropped():
    """Open houses without an end time are skipped."""
    raw = {
        "OpenHouses": {
            "OpenHouse": [
                {"Date": "2024-02-03", "StartTime": "13:00", "EndTime": "15:00"},
                {"Date": "2024-02-04", "StartTime": "13:00", "EndTime": "None"},
            ]
        }
    }

    record = normalize_listing(raw)

    assert len(record.open_houses) == 1


def test_agent_without_email_or_first_name_is_none():
    """An agent with only a last name is treated as absent."""
    record = normalize_listing({"Agent": {"LastName": "Doe", "EmailAddress": "None"}})

    assert record.agent is None


def test_pets_allowed_only_from_explicit_no():
    """Only NoPets=no marks pets as allowed."""
    allowed = normalize_listing({"RentalDetails": {"PetsAllowed": {"NoPets": "No"}}})
    unknown = normalize_listing({"RentalDetails": {"PetsAllowed": {"NoPets": "Yes"}}})

    assert allowed.pets_allowed is True
    assert unknown.pets_allowed is None


def test_missing_sections_normalize_empty():
    """A listing with no sections yields an empty record."""
    record = normalize_listing({})

    assert record.mls_id is None
    assert record.photos == []
    assert record.agent is None
    assert record.office is None


def test_element_to_value_repeats_become_lists():
    """Repeated child tags collapse into a list."""
    element = ET.fromstring("<P><Picture>a</Picture><Picture>b</Picture></P>")

    assert element_to_value(element) == {"Picture": ["a", "b"]}


def test_xml_malformed_raises_parse_error():
    """Malformed XML is a parse error."""
    with pytest.raises(ParseError):
        XMLFeedNormalizer().parse("<Listings><Listing>")


def test_xml_missing_container_raises_parse_error():
    """A document without a Listings container is a parse error."""
    with pytest.raises(ParseError):
        XMLFeedNormalizer().parse("<Feed><Item/></Feed>")


def test_xml_nested_container():
    """The Listings container may sit one level below the root."""
    content = f"<Feed>{feed_xml(listing_xml()).split('?>', 1)[1]}</Feed>"

    records = list(XMLFeedNormalizer().parse(content))

    assert [record.mls_id for record in records] == ["MLS-1001"]


def test_json_feed_shapes():
    """JSON feeds accept the wrapped and bare list shapes."""
    listing = {"ListingDetails": {"MlsId": "MLS-9"}}
    normalizer = JSONFeedNormalizer()

    wrapped = list(normalizer.parse(json.dumps({"Listings": {"Listing": listing}})))
    bare = list(normalizer.parse(json.dumps([listing])))

    assert [record.mls_id for record in wrapped] == ["MLS-9"]
    assert [record.mls_id for record in bare] == ["MLS-9"]


def test_json_without_container_raises_parse_error():
    """A JSON object without Listings is a parse error."""
    with pytest.raises(ParseError):
        JSONFeedNormalizer().parse('{"items": []}')


def test_get_normalizer():
    """Normalizers are selected by feed type, defaulting to XML."""
    assert isinstance(get_normalizer(None), XMLFeedNormalizer)
    assert isinstance(get_normalizer("json"), JSONFeedNormalizer)
    with pytest.raises(ParseError):
        get_normalizer("api")


@pytest.mark.parametrize("raw", ["", "oops", None, ["a"]])
def test_non_mapping_listing_normalizes_empty(raw):
    """A listing that is not a mapping yields an empty record."""
    record = normalize_listing(raw)

    assert record.mls_id is None
    assert record.photos == []
