"""
Tests for the GoHighLevel contact and property request bodies.
"""
import pytest

from app.ghl.payloads import build_contact_payload, build_property_payload
from app.models import Contact, Property


@pytest.fixture
def contact():
    return Contact(
        contact_id="src-1",
        first_name="Jamie",
        last_name="Rivera",
        email="jamie@example.com",
        phone="+13035550100",
        company_name=None,
        tags="Returning",
    )


@pytest.fixture
def prop():
    return Property(
        address_full="123 Main St, Denver, CO 80202",
        street_address="123 Main St",
        city="Denver",
        state="CO",
        postal_code="80202",
        country="United States",
        price=450000,
        bedrooms="3",
        bathrooms="2",
        above_grade_finished_sqft="1,850",
        parking_type="Attached Garage",
        loan_type="Conventional with PMI",
        free_and_clear="no",
        estimated_equity="120,500.75",
        estimated_mtg_balance="300,000",
        asking_price="",
        equity="35",
        year_built="1995",
        property_type="Single Family",
        owner_occupied="yes",
        date_of_auction="03/15/2025",
        tags="Hot",
    )


def _custom_fields(payload):
    return {field["id"]: field["value"] for field in payload["customFields"]}


class TestContactPayload:
    """Tests for build_contact_payload."""

    def test_top_level_fields(self, contact, prop):
        payload = build_contact_payload(contact, prop, "loc-1")

        assert payload["locationId"] == "loc-1"
        assert payload["firstName"] == "Jamie"
        assert payload["address1"] == "123 Main St"
        assert payload["country"] == "US"
        assert payload["postalCode"] == "80202"
        assert payload["source"] == "ProEdge"
        assert payload["tags"] == ["Returning", "Hot", "Seller"]

    def test_none_values_dropped(self, contact, prop):
        payload = build_contact_payload(contact, prop, "loc-1")

        assert "companyName" not in payload
        assert all(field["value"] is not None for field in payload["customFields"])
        assert "plaintiff_name" not in _custom_fields(payload)

    def test_custom_fields_are_normalized(self, contact, prop):
        fields = _custom_fields(build_contact_payload(contact, prop, "loc-1"))

        assert fields["price"] == "450000"
        assert fields["parkting_type"] == "Garage - Attached"
        assert fields["loan_type"] == "Conventional"
        assert fields["free_and_clear"] == "FALSE"
        assert fields["owner_occupied"] == "Yes"
        assert fields["property_type"] == "single_family"
        assert fields["estimated_equity"] == 120500.75
        assert fields["year_built"] == "1995"
        assert fields["date_of_auction"] == "2025-03-15T00:00:00.000Z"

    def test_unparseable_auction_date_is_omitted(self, contact, prop):
        prop.date_of_auction = "sometime next spring"
        fields = _custom_fields(build_contact_payload(contact, prop, "loc-1"))
        assert "date_of_auction" not in fields

    def test_pool_only_sent_when_present(self, contact, prop):
        assert "pool" not in _custom_fields(build_contact_payload(contact, prop, "loc-1"))
        prop.pool = "Yes"
        assert _custom_fields(build_contact_payload(contact, prop, "loc-1"))["pool"] == "True"
        prop.pool = "In-ground"
        assert "pool" not in _custom_fields(build_contact_payload(contact, prop, "loc-1"))


class TestPropertyPayload:
    """Tests for build_property_payload."""

    def test_shape(self, prop):
        payload = build_property_payload(prop, "loc-1")

        assert payload["locationId"] == "loc-1"
        assert payload["properties"]["address"] == "123 Main St, Denver, CO 80202"
        assert payload["properties"]["zippostal"] == "80202"
        assert payload["properties"]["beds"] == "3"

    def test_currency_fields(self, prop):
        properties = build_property_payload(prop, "loc-1")["properties"]

        assert properties["estimated_equity"] == {"currency": "default", "value": 120500.75}
        assert properties["estimated_mtg_balance"] == {"currency": "default", "value": 300000}
        assert "asking_price" not in properties

    def test_normalized_fields(self, prop):
        properties = build_property_payload(prop, "loc-1")["properties"]

        assert properties["loan_type"] == "conventional"
        assert properties["equity_"] == 35
        assert properties["year_built"] == 1995
        assert properties["property_type"] == "single_family"
        assert properties["owner_occupied"] == "Yes"

    def test_empty_fields_left_out(self, prop):
        prop.loan_type = "Seller financed"
        prop.seller_motivation = ""
        properties = build_property_payload(prop, "loc-1")["properties"]

        assert "loan_type" not in properties
        assert "seller_motivation" not in properties
        assert "home_condition" not in properties
