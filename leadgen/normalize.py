"""
Key and value normalization shared by every dataset join.

BBL (borough/block/lot) is the canonical parcel key: one borough digit,
a five digit block and a four digit lot. Datasets hand it to us as
triples, as raw ten digit strings (sometimes with dashes or a trailing
".00000000"), or not at all, in which case a house number + street name
is the only join key we get.
"""

import re
from datetime import date, datetime

from .errors import InvalidKey

# ── Boroughs ─────────────────────────────────────────────────────────────

BOROUGH_NAMES = {
    "1": "MANHATTAN",
    "2": "BRONX",
    "3": "BROOKLYN",
    "4": "QUEENS",
    "5": "STATEN ISLAND",
}

BOROUGH_TEXT_TO_CODE = {
    "MANHATTAN": "1", "MN": "1", "NY": "1", "NEW YORK": "1",
    "BRONX": "2", "BX": "2", "BRX": "2", "THE BRONX": "2",
    "BROOKLYN": "3", "BKLYN": "3", "BK": "3", "KINGS": "3",
    "QUEENS": "4", "QN": "4", "QNS": "4",
    "STATEN ISLAND": "5", "STATEN IS": "5", "SI": "5", "RICHMOND": "5",
}

# MapPLUTO stores borough as a two letter code
PLUTO_BOROUGH_CODES = {"1": "MN", "2": "BX", "3": "BK", "4": "QN", "5": "SI"}


def borough_code_from_text(value) -> str | None:
    """'Brooklyn', 'BK', 'KINGS' or '3' -> '3'."""
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value).strip().upper())
    if text in BOROUGH_NAMES:
        return text
    return BOROUGH_TEXT_TO_CODE.get(text)


def borough_text_from_code(code) -> str | None:
    """'3' -> 'BROOKLYN'. Also accepts any spelling borough_code_from_text does."""
    return BOROUGH_NAMES.get(borough_code_from_text(code) or "")


def pluto_borough_code(code) -> str | None:
    return PLUTO_BOROUGH_CODES.get(borough_code_from_text(code) or "")


# ── BBL ──────────────────────────────────────────────────────────────────

def _digits(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return re.sub(r"[^0-9]", "", str(value))


def build_parcel_key(borough_code, block, lot) -> str:
    """Construct a 10 digit BBL from a borough digit, block and lot."""
    if borough_code is None or block is None or lot is None:
        raise InvalidKey(f"incomplete BBL parts: {borough_code!r}, {block!r}, {lot!r}")
    boro = str(borough_code).strip()
    if len(boro) != 1 or not boro.isdigit():
        raise InvalidKey(f"borough code must be a single digit: {borough_code!r}")
    block_digits = _digits(block)
    lot_digits = _digits(lot)
    if not block_digits or not lot_digits:
        raise InvalidKey(f"block/lot have no digits: {block!r}, {lot!r}")
    block_digits = block_digits.lstrip("0") or "0"
    lot_digits = lot_digits.lstrip("0") or "0"
    if len(block_digits) > 5 or len(lot_digits) > 4:
        raise InvalidKey(f"block/lot out of range: {block!r}, {lot!r}")
    return f"{boro}{block_digits.zfill(5)}{lot_digits.zfill(4)}"


def try_parcel_key(borough_code, block, lot) -> str | None:
    try:
        return build_parcel_key(borough_code, block, lot)
    except InvalidKey:
        return None


def parse_parcel_key(raw) -> str | None:
    """Pull a BBL out of a raw value; None when fewer than 10 digits remain."""
    if raw is None:
        return None
    text = str(raw)
    # PLUTO publishes bbl as a decimal ("1001230045.00000000")
    if re.fullmatch(r"\s*\d{10}\.0*\s*", text):
        text = text.split(".")[0]
    digits = _digits(text)
    if len(digits) >= 10:
        return digits[:10]
    return None


def split_parcel_key(key: str) -> tuple[str, str, str]:
    """'1001230045' -> ('1', '123', '45'), the unpadded form ACRIS stores."""
    return key[0], str(int(key[1:6])), str(int(key[6:10]))


# ── Addresses ────────────────────────────────────────────────────────────

STREET_ABBREVIATIONS = [
    ("AVENUE", "AVE"),
    ("STREET", "ST"),
    ("BOULEVARD", "BLVD"),
    ("PLACE", "PL"),
    ("ROAD", "RD"),
    ("DRIVE", "DR"),
    ("PARKWAY", "PKWY"),
    ("TERRACE", "TER"),
    ("LANE", "LN"),
    ("COURT", "CT"),
    ("EAST", "E"),
    ("WEST", "W"),
    ("NORTH", "N"),
    ("SOUTH", "S"),
]
_ABBREVIATION_RES = [(re.compile(rf"\b{word}\b"), short) for word, short in STREET_ABBREVIATIONS]


def normalize_street_name(value) -> str | None:
    if value is None:
        return None
    text = str(value).upper()
    text = re.sub(r"[.,;:]", " ", text)
    for pattern, short in _ABBREVIATION_RES:
        text = pattern.sub(short, text)
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


def normalize_house_number(value) -> str | None:
    if value is None:
        return None
    text = re.sub(r"[^0-9A-Z]", "", str(value).upper())
    return text or None


def normalize_address(house, street) -> str | None:
    """Canonical '<HOUSE> <STREET>' join key, or None if either half is empty."""
    h = normalize_house_number(house)
    st = normalize_street_name(street)
    if not h or not st:
        return None
    return f"{h} {st}"


def split_address(address) -> tuple[str | None, str | None]:
    """'245 West 107 Street' -> ('245', 'West 107 Street')."""
    parts = str(address or "").strip().split()
    if len(parts) < 2:
        return None, None
    return parts[0], " ".join(parts[1:])


# ── Owners ───────────────────────────────────────────────────────────────

_ENTITY_SUFFIXES = [
    (re.compile(r"\bL\s*\.?\s*L\s*\.?\s*C\b\.?"), "LLC"),
    (re.compile(r"\bL\s*\.?\s*P\b\.?"), "LP"),
    (re.compile(r"\bINCORPORATED\b"), "INC"),
    (re.compile(r"\bCORPORATION\b"), "CORP"),
    (re.compile(r"\bCOMPANY\b"), "CO"),
]


def normalize_owner_name(value) -> str | None:
    """'Acme, L.L.C.' and 'ACME LLC' both -> 'ACME LLC'."""
    if value is None:
        return None
    text = str(value).upper()
    for pattern, short in _ENTITY_SUFFIXES:
        text = pattern.sub(short, text)
    text = re.sub(r"[^0-9A-Z&\s]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


# ── Dates and numbers ────────────────────────────────────────────────────

def parse_date(value) -> date | None:
    """Parse ISO, YYYYMMDD and MM/DD/YYYY strings into a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt, width in (("%Y-%m-%d", 10), ("%m/%d/%Y", 10), ("%Y%m%d", 8)):
        try:
            return datetime.strptime(text[:width], fmt).date()
        except ValueError:
            continue
    return None


def months_between(earlier: date, later: date) -> int:
    """Whole calendar months from earlier to later (negative if reversed)."""
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if later.day < earlier.day:
        months -= 1
    return months


def years_between(earlier: date, later: date) -> float:
    return (later - earlier).days / 365.25


def to_float(value) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (ValueError, TypeError):
        return 0.0


def to_int(value) -> int:
    if value is None:
        return 0
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return 0
