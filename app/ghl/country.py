"""
Country and postal-code normalization.

normalize_country() walks a fixed chain of checks, stopping at the first hit:
2-letter code, 3-letter code, pycountry name lookup, alias table, then each
word of the input against the alias and 3-letter tables. Earlier stages are
stricter, so the order matters.
"""
import re

import pycountry

from app.logging_config import get_logger

logger = get_logger(__name__)


ALPHA3_TO_ALPHA2 = {
    "USA": "US", "GBR": "GB", "CAN": "CA", "AUS": "AU", "DEU": "DE",
    "FRA": "FR", "ESP": "ES", "ITA": "IT", "MEX": "MX", "BRA": "BR",
    "CHN": "CN", "RUS": "RU", "IND": "IN", "JPN": "JP", "KOR": "KR",
    "ZAF": "ZA", "NLD": "NL", "CHE": "CH", "SWE": "SE", "NOR": "NO",
    "DNK": "DK", "BEL": "BE", "AUT": "AT", "POL": "PL", "TUR": "TR",
    "IRL": "IE", "NZL": "NZ", "SGP": "SG", "HKG": "HK", "TWN": "TW",
    "ARE": "AE", "SAU": "SA", "ARG": "AR", "COL": "CO", "CHL": "CL",
    "PRT": "PT", "GRC": "GR", "HUN": "HU",
}

# Common names, local names and misspellings
ALIASES = {
    # United States
    "usa": "US",
    "us": "US",
    "u s": "US",
    "u s a": "US",
    "united states": "US",
    "united states of america": "US",
    "america": "US",
    "estad os unidos": "US",
    "estados unidos": "US",
    "estados unidos de america": "US",
    "eeuu": "US",

    # United Kingdom
    "uk": "GB",
    "gb": "GB",
    "united kingdom": "GB",
    "great britain": "GB",
    "britain": "GB",
    "england": "GB",
    "scotland": "GB",
    "wales": "GB",
    "northern ireland": "GB",

    "canada": "CA",
    "ca": "CA",
    "australia": "AU",
    "au": "AU",
    "germany": "DE",
    "deutschland": "DE",
    "de": "DE",
    "france": "FR",
    "fr": "FR",
    "spain": "ES",
    "españa": "ES",
    "es": "ES",
    "italy": "IT",
    "italia": "IT",
    "it": "IT",
    "mexico": "MX",
    "méxico": "MX",
    "mx": "MX",
    "china": "CN",
    "prc": "CN",
    "people's republic of china": "CN",
    "peoples republic of china": "CN",
    "cn": "CN",
    "india": "IN",
    "bharat": "IN",
    "in": "IN",
    "japan": "JP",
    "nihon": "JP",
    "nippon": "JP",
    "jp": "JP",
    "south korea": "KR",
    "korea republic of": "KR",
    "korea": "KR",
    "kr": "KR",
    "brazil": "BR",
    "brasil": "BR",
    "br": "BR",
    "russia": "RU",
    "russian federation": "RU",
    "ru": "RU",
    "netherlands": "NL",
    "holland": "NL",
    "nl": "NL",
    "sweden": "SE",
    "se": "SE",
    "norway": "NO",
    "no": "NO",
    "switzerland": "CH",
    "che": "CH",
    "ch": "CH",
    "turkey": "TR",
    "tr": "TR",
    "ireland": "IE",
    "ie": "IE",
    "south africa": "ZA",
    "za": "ZA",
}

_MATCH_PUNCTUATION = re.compile(r"[.,'`\"]")
_MATCH_SEPARATORS = re.compile(r"[–—\-/\\]+")
_WHITESPACE = re.compile(r"\s+")
_NON_LETTERS = re.compile(r"[^A-Za-z]")

_US_ZIP = re.compile(r"^(\d{5})(?:[-\s]?(\d{4}))?$")
_CA_POSTAL = re.compile(r"^([A-Z]\d[A-Z])(\d[A-Z]\d)$")
_GB_POSTCODE = re.compile(r"^([A-Z]{1,2}\d[A-Z\d]?\d[A-Z]{2})$")


def _normalize_text_for_match(value):
    if value is None or value == "":
        return ""
    text = _MATCH_PUNCTUATION.sub("", str(value).strip())
    text = _MATCH_SEPARATORS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip().lower()


def _is_alpha2(code):
    return pycountry.countries.get(alpha_2=code) is not None


def _alpha3_to_alpha2(code):
    country = pycountry.countries.get(alpha_3=code)
    if country is not None:
        return country.alpha_2
    return ALPHA3_TO_ALPHA2.get(code)


def _lookup_by_name(raw, normalized):
    for candidate in (raw, normalized.title()):
        if not candidate:
            continue
        try:
            return pycountry.countries.lookup(candidate).alpha_2
        except LookupError:
            continue
    return None


def normalize_country(value):
    """Return the ISO alpha-2 code for a country code or name, or None."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if not raw:
        return None

    letters = _NON_LETTERS.sub("", raw)
    if len(letters) == 2 and _is_alpha2(letters.upper()):
        return letters.upper()

    if len(letters) == 3:
        code = _alpha3_to_alpha2(letters.upper())
        if code:
            return code

    key = _normalize_text_for_match(raw)

    code = _lookup_by_name(raw, key)
    if code:
        return code

    if key in ALIASES:
        return ALIASES[key]

    # "United States (USA)", "USA - United States"
    for word in key.split():
        if word in ALIASES:
            return ALIASES[word]
        upper = word.upper()
        if upper in ALPHA3_TO_ALPHA2:
            return ALPHA3_TO_ALPHA2[upper]
        if len(upper) == 2 and _is_alpha2(upper):
            return upper

    logger.debug("Unrecognized country", value=raw)
    return None


def normalize_countries_bulk(values):
    """Normalize many values at once. Returns (mapping, counts per code)."""
    mapping = {}
    counts = {}
    for value in values:
        code = normalize_country(value)
        mapping[str(value)] = code
        if code:
            counts[code] = counts.get(code, 0) + 1
    return mapping, counts


def normalize_postal_code(postal_code, country_code="US"):
    """
    Validate and reformat a postal code for the given country.

    US accepts ZIP and ZIP+4, CA and GB are reformatted with their standard
    space. Other countries pass through trimmed and upper-cased.
    """
    if postal_code is None or isinstance(postal_code, bool):
        return None
    pc = str(postal_code).strip().upper()
    if not pc:
        return None

    if country_code == "US":
        match = _US_ZIP.match(pc)
        if not match:
            return None
        if match.group(2):
            return f"{match.group(1)}-{match.group(2)}"
        return match.group(1)

    if country_code == "CA":
        match = _CA_POSTAL.match(_WHITESPACE.sub("", pc))
        if not match:
            return None
        return f"{match.group(1)} {match.group(2)}"

    if country_code == "GB":
        match = _GB_POSTCODE.match(_WHITESPACE.sub("", pc))
        if not match:
            return None
        code = match.group(1)
        return f"{code[:-3]} {code[-3:]}"

    return pc
