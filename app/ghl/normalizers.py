"""
Field normalizers for GoHighLevel payloads.

Every function here is total: any input (None, str, int, float, bool) maps to
a value in the destination's vocabulary or to None, and nothing raises.
"""
import math
import re


YES_VALUES = ("yes", "true", "1")
NO_VALUES = ("no", "false", "0")

LEAD_SOURCE_OPTIONS = [
    "Saw Sign",
    "On Zillow",
    "Redfin",
    "Home.com",
    "Facebook Marketplace",
    "Other",
]

PROPERTY_TYPE_MAPPING = {
    "single family": "single_family",
    "single family residence": "single_family",
    "single-family home": "single_family",
    "sfr": "single_family",
    "residential": "single_family",

    "town home": "town_home",
    "townhouse": "town_home",
    "row house": "town_home",
    "condominium / townhouse": "town_home",
    "condo/townhouse": "town_home",

    "condominium": "condominium",
    "condo": "condominium",

    "duplex": "duplex",

    "triplex": "triplex",
    "tri-plex": "triplex",

    "quadplex": "quadplex",
    "quad-plex": "quadplex",
}

# Exact-match table; keys are the raw strings seen in the source data
PARKING_MAPPING = {
    "no": "No Parking",
    "No": "No Parking",
    "NO": "No Parking",
    "": "No Parking",
    "0": "No Parking",
    "None": "No Parking",
    "Unknown": "No Parking",

    "Garage - Attached": "Garage - Attached",
    "Garage Attached": "Garage - Attached",
    "Attached Garage": "Garage - Attached",
    "Garage, Attached": "Garage - Attached",
    "Garage Faces Front": "Garage - Attached",
    "Garage Faces Rear, Attached": "Garage - Attached",

    "Garage - Detached": "Garage - Detached",
    "Garage Detached": "Garage - Detached",
    "Garage, Detached": "Garage - Detached",

    "Driveway": "Driveway",
    "Private, Detached Carport": "Driveway",
    "Inside Entrance, Private, Driveway, Attached, Other": "Driveway",

    "On Street": "On Street",
    "On-street": "On Street",
    "On-Street": "On Street",
    "on street": "On Street",

    "Off Street": "Off Street",
    "Off-street": "Off Street",
    "Off-Street": "Off Street",

    "Parking Lot": "Parking Lot",
    "Unassigned, Parking Lot": "Parking Lot",

    "Carport": "Carport",
    "Other": "Other",
    "Yes": "Other",
    "Storage": "Other",
    "Garage Open": "Other",
    "Garage Door Opener": "Other",
    "Garage Basement": "Other",
    "Garage Attached On Street": "Other",
    "Inside Entrance, Attached,": "Other",
}
PARKING_DEFAULT = "Other"

_NOT_AVAILABLE = {"not available", "not_available", "n/a", "#n/a", "na", "unknown"}
_TAG_SPLIT = re.compile(r"[,;\n\r]+")
_WHITESPACE = re.compile(r"\s+")


def _clean(value):
    """Lower-cased, whitespace-collapsed string, or '' for empty input."""
    if value is None or isinstance(value, bool):
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip().lower()


def _strip_separators(value):
    return str(value).replace(",", "").strip()


def to_number(value):
    """Parse a number, dropping thousands separators. None when not numeric."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    text = _strip_separators(value)
    if not text:
        return 0
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number) if number.is_integer() else number


_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def to_float(value):
    """Parse the leading float of a string, dropping thousands separators."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return None
    match = _FLOAT_PREFIX.match(_strip_separators(value))
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def normalize_yes_no(value):
    """'Yes'/'No' from yes/true/1 and no/false/0 variants."""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    v = _clean(value)
    if v in YES_VALUES:
        return "Yes"
    if v in NO_VALUES:
        return "No"
    return None


def normalize_free_and_clear(value):
    """'TRUE'/'FALSE' vocabulary used by the free-and-clear field."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    v = _clean(value)
    if v in ("yes", "true"):
        return "TRUE"
    if v in ("no", "false"):
        return "FALSE"
    return None


def normalize_pool(value):
    """'True'/'False' vocabulary used by the pool field, None when unrecognized."""
    answer = normalize_yes_no(value)
    if answer is None:
        return None
    return "True" if answer == "Yes" else "False"


def normalize_owner_occupied(value):
    return normalize_yes_no(value)


def normalize_in_preforeclosure(value):
    return normalize_yes_no(value)


def normalize_working_with_realtor(value):
    v = _clean(value)
    if v in ("yes", "y"):
        return "Yes, I am"
    return "No I am Not"


def normalize_mls_status(value):
    """Listed flag: off-market and empty statuses are 'FALSE', anything else 'TRUE'."""
    v = _clean(value)
    if v in ("", "off market", "offmarket", "pa"):
        return "FALSE"
    return "TRUE"


def normalize_liquid_assets(value):
    if _clean(value) == "yes":
        return "Over $20k"
    return None


def normalize_household_income(value):
    """Bucket a household income into the destination's three ranges."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = value
    else:
        text = re.sub(r"[$,]", "", str(value)).strip()
        if not text:
            return None
        try:
            amount = float(text)
        except ValueError:
            return None
    if amount != amount:
        return None
    if amount < 65000:
        return "Below $65k"
    if amount <= 90000:
        return "65k - 90k"
    return "Above 90k"


def normalize_loan_type(value):
    """Property-record loan type key, e.g. 'conventional', 'arm', 'fha'."""
    v = _clean(value)
    if not v:
        return None

    if v in ("conventional", "conventional with pmi"):
        return "conventional"
    if v.startswith("arm") or "adjustable rate mortgage" in v:
        return "arm"
    if v == "fha":
        return "fha"
    if v == "usda":
        return "usda"
    if v == "va" or "veterans" in v:
        return "va"
    if v in ("building or construction", "building_or_construction", "construction"):
        return "building_or_construction"
    if v in _NOT_AVAILABLE:
        return "not_available"
    return None


def normalize_contact_loan_type(value):
    """Contact-field loan type label: Conventional, FHA, VA, USDA or Jumbo."""
    v = _clean(value)
    if v in ("conventional", "conventional with pmi"):
        return "Conventional"
    if v == "fha":
        return "FHA"
    if v in ("va", "veterans administration"):
        return "VA"
    if v == "usda":
        return "USDA"
    if v == "jumbo":
        return "Jumbo"
    return None


def normalize_property_type(value):
    return PROPERTY_TYPE_MAPPING.get(_clean(value))


def normalize_lead_source(value):
    v = _clean(value)
    if not v:
        return None
    for option in LEAD_SOURCE_OPTIONS:
        if option.lower() == v:
            return option
    return None


def normalize_parking_type(value):
    """Map a parking description; unknown descriptions fall back to 'Other'."""
    if value is None or isinstance(value, bool):
        return PARKING_DEFAULT
    return PARKING_MAPPING.get(str(value), PARKING_DEFAULT)


def _split_tags(source):
    if not source:
        return []
    if isinstance(source, (list, tuple, set)):
        items = [str(s) for s in source if s is not None]
    else:
        items = _TAG_SPLIT.split(str(source))
    return [_WHITESPACE.sub(" ", item).strip() for item in items]


def build_tags(source_tags=None, existing_tags=None, marker="Seller"):
    """
    Merge existing and new tags, deduplicating case-insensitively.

    Existing tags win on casing. The marker tag is always present exactly once.
    """
    merged = {}
    for tag in _split_tags(existing_tags) + _split_tags(source_tags):
        key = tag.lower()
        if key and key not in merged:
            merged[key] = tag
    if marker.strip().lower() not in merged:
        merged[marker.strip().lower()] = marker
    return list(merged.values())


def is_empty(value):
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
