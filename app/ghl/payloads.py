"""
Build GoHighLevel request bodies from local Contact/Property rows.

Contact custom fields are sourced from one representative property owned by
the contact. None values never reach the wire: top-level keys and custom
field entries that resolve to None are dropped.
"""
from datetime import datetime, timezone

from app.datetime_utils import parse_iso_datetime, format_datetime_utc
from app.ghl.country import normalize_country, normalize_postal_code
from app.ghl import normalizers as n

CONTACT_SOURCE = "ProEdge"
CURRENCY_DEFAULT = "default"

_AUCTION_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y", "%m-%d-%Y")


def _or_blank(value):
    return value if value not in (None, "") else ""


def _as_text(value):
    if value is None or value == "":
        return None
    return str(value)


def _format_auction_date(value):
    """ISO timestamp for an auction date, or None when it can't be parsed."""
    if not value:
        return None
    text = str(value).strip()
    try:
        return format_datetime_utc(parse_iso_datetime(text))
    except ValueError:
        pass
    for fmt in _AUCTION_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
        return format_datetime_utc(parsed)
    return None


def _contact_custom_fields(p):
    fields = [
        ("bedrooms", _or_blank(p.bedrooms)),
        ("bathrooms", _or_blank(p.bathrooms)),
        ("price", str(p.price) if p.price else ""),
        ("mls_status", n.normalize_mls_status(p.mls_status)),
        ("tax_value", p.tax_value),
        ("first_lien_amount", p.first_lien_amount),
        ("owner_occupied", n.normalize_owner_occupied(p.owner_occupied) or ""),
        ("contact_2_phone_1", p.contact2_phone1),
        ("contact_2_phone_1_dnc", p.contact2_phone1_dnc),
        ("heating_type", p.heating_type),
        ("contact_2_phone_1_line_type", p.contact2_phone1_line_type),
        ("seller_timing", p.seller_timing),
        ("cooling_type", p.cooling_type),
        ("contact_2_phone_2", p.contact2_phone2),
        ("contact_2_phone_2_dnc", p.contact2_phone2_dnc),
        ("home_condition", _or_blank(p.home_condition)),
        ("contact_2_phone_2_line_type", p.contact2_phone2_line_type),
        ("basement_sqft", p.basement_sqft),
        ("basement_type", p.basement_type),
        ("contact_2_email_1", p.contact2_email1),
        ("contact_2_email_2", p.contact2_email2),
        # Field id is misspelled in the destination account
        ("parkting_type", n.normalize_parking_type(p.parking_type)),
        ("parking_spaces", p.parking_spaces),
        ("owner_status", p.owner_status),
        ("rental_history", p.rental_history),
        ("in_preforclosure", n.normalize_in_preforeclosure(p.in_preforclosure) or ""),
        ("resale_value_arv", p.resale_value_arv),
        ("lender_name", p.lender_name),
        ("contact_1_phone_1_dnc", p.contact1_phone1_dnc),
        ("realtors_name", p.realtor_name),
        ("date_of_auction", _format_auction_date(p.date_of_auction)),
        ("plaintiff_name", p.plaintiff_name),
        ("contact_1_phone_1_line_type", p.contact1_phone1_line_type),
        ("attorney", p.attorney),
        ("est_opening_bid", p.est_opening_bid),
        ("contact_1_phone_2", p.contact1_phone2),
        ("attorney_phone_number", p.attorney_phone_number),
        ("contact_2", p.contact2),
        ("mls_number", _or_blank(p.mls_number)),
        ("square_footage", _or_blank(p.above_grade_finished_sqft)),
        ("loan_type", n.normalize_contact_loan_type(p.loan_type) or ""),
        ("loan_maturity_date", p.loan_maturity_date),
        ("working_with_realtor", n.normalize_working_with_realtor(p.working_with_realtor)),
        ("contact_1_phone_2_dnc", p.contact1_phone2_dnc),
        ("seller_motivation", p.seller_motivation),
        ("contact_1_phone_2_line_type", p.contact1_phone2_line_type),
        ("contact_1_email_2", p.contact1_email2),
        ("owner_type", p.owner_type),
        ("free_and_clear", n.normalize_free_and_clear(p.free_and_clear) or ""),
        ("estimated_mtg_payment", n.to_number(p.estimated_mtg_payment)),
        ("avm", n.to_number(p.automated_value)),
        ("avm_min", n.to_number(p.automated_value_minimum)),
        ("avm_max", n.to_number(p.automated_value_maximum)),
        ("owner_address", p.owner_address),
        ("equity_", n.to_number(p.equity)),
        ("household_income", n.normalize_household_income(p.household_income)),
        ("owner_city", p.owner_city),
        ("asking_price", n.to_number(p.asking_price)),
        ("liquid_assets", n.normalize_liquid_assets(p.liquid_assets)),
        ("year_built", _as_text(p.year_built)),
        ("property_type", n.normalize_property_type(p.property_type) or ""),
        ("pool", n.normalize_pool(p.pool) if p.pool else None),
        ("county", p.county),
        ("owner_zip", p.owner_zip),
        ("owner_state", p.owner_state),
        ("landline_1", p.landline1),
        ("landline_2", p.landline2),
        ("landline_3", p.landline3),
        ("landline_4", p.landline4),
        ("landline_5", p.landline5),
        ("contact_1_phone_3", p.contact1_phone3),
        ("estimated_equity", n.to_number(p.estimated_equity)),
        ("lead_source", n.normalize_lead_source(p.lead_source)),
        ("lot_size", p.lot_size),
        ("estimated_mtg_balance", _or_blank(p.estimated_mtg_balance)),
        ("sq_feet", _or_blank(p.above_grade_finished_sqft)),
    ]
    return [{"id": field_id, "value": value} for field_id, value in fields if value is not None]


def build_contact_payload(contact, prop, location_id):
    """Contact create body for one account, custom fields taken from `prop`."""
    payload = {
        "locationId": location_id,
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "address1": prop.street_address,
        "tags": n.build_tags(prop.tags, contact.tags),
        "city": prop.city,
        "country": normalize_country(prop.country),
        "state": prop.state,
        "postalCode": normalize_postal_code(prop.postal_code),
        "companyName": contact.company_name,
        "source": CONTACT_SOURCE,
        "customFields": _contact_custom_fields(prop),
    }
    return {key: value for key, value in payload.items() if value is not None}


def _currency(value):
    return {"currency": CURRENCY_DEFAULT, "value": value}


def build_property_payload(prop, location_id):
    """Custom-object record body. Empty fields are left out entirely."""
    custom_fields = {}

    currency_fields = (
        ("estimated_equity", n.to_float(prop.estimated_equity)),
        ("estimated_mtg_balance", n.to_number(prop.estimated_mtg_balance)),
        ("resale_value_arv", n.to_number(prop.resale_value_arv)),
        ("asking_price", n.to_number(prop.asking_price)),
    )
    for key, value in currency_fields:
        if value is not None:
            custom_fields[key] = _currency(value)

    plain_fields = {
        "city": prop.city,
        "state": prop.state,
        "zippostal": prop.postal_code,
        "beds": prop.bedrooms,
        "baths": prop.bathrooms,
        "sq_feet": prop.above_grade_finished_sqft,
        "free_and_clear": prop.free_and_clear,
        "equity_": n.to_number(prop.equity),
        "year_built": n.to_number(prop.year_built),
        "property_type": n.normalize_property_type(prop.property_type),
        "seller_motivation": prop.seller_motivation,
        "in_preforclosure": n.normalize_in_preforeclosure(prop.in_preforclosure),
        "home_condition": prop.home_condition,
        "owner_occupied": n.normalize_owner_occupied(prop.owner_occupied),
        "loan_type": n.normalize_loan_type(prop.loan_type) or "",
    }
    for key, value in plain_fields.items():
        if not n.is_empty(value):
            custom_fields[key] = value

    return {
        "properties": {"address": prop.address_full, **custom_fields},
        "locationId": location_id,
    }
