"""
Neighborhood -> NTA code / community district lookup.

MapPLUTO has no clean neighborhood column, so an area is narrowed by its
community district(s) (PLUTO `cd`, e.g. 107 for the Upper West Side).
Two neighborhoods can share one NTA code (MN24 covers both TriBeCa and
SoHo); in that case the name picks the district.
"""

import re
from dataclasses import dataclass

from .errors import InvalidInput
from .normalize import PLUTO_BOROUGH_CODES, borough_code_from_text


@dataclass(frozen=True)
class Area:
    code: str
    name: str
    borough: str                      # borough digit
    districts: tuple[str, ...] = ()   # PLUTO community district codes


MANHATTAN_AREAS = [
    Area("MN01", "Marble Hill-Inwood", "1", ("112",)),
    Area("MN03", "Central Harlem North-Polo Grounds", "1", ("110",)),
    Area("MN04", "Hamilton Heights", "1", ("109",)),
    Area("MN06", "Manhattanville", "1", ("109",)),
    Area("MN09", "Morningside Heights", "1", ("109",)),
    Area("MN11", "Central Harlem South", "1", ("110",)),
    Area("MN12", "Upper West Side", "1", ("107", "108")),
    Area("MN13", "Hudson Yards-Chelsea-Flatiron-Union Square", "1", ("104",)),
    Area("MN14", "Lincoln Square", "1", ("107",)),
    Area("MN15", "Clinton", "1", ("104",)),
    Area("MN17", "Midtown-Midtown South", "1", ("105",)),
    Area("MN19", "Turtle Bay-East Midtown", "1", ("106",)),
    Area("MN20", "Murray Hill-Kips Bay", "1", ("106",)),
    Area("MN21", "Gramercy", "1", ("106",)),
    Area("MN22", "East Village", "1", ("103",)),
    Area("MN23", "West Village", "1", ("102",)),
    Area("MN24", "TriBeCa-Civic Center", "1", ("101",)),
    Area("MN24", "SoHo-Little Italy", "1", ("102",)),
    Area("MN25", "Battery Park City-Lower Manhattan", "1", ("101",)),
    Area("MN27", "Chinatown", "1", ("103",)),
    Area("MN28", "Lower East Side", "1", ("103",)),
    Area("MN31", "Lenox Hill-Roosevelt Island", "1", ("108",)),
    Area("MN32", "Yorkville", "1", ("108",)),
    Area("MN33", "East Harlem South", "1", ("111",)),
    Area("MN34", "East Harlem North", "1", ("111",)),
    Area("MN35", "Washington Heights North", "1", ("112",)),
    Area("MN36", "Washington Heights South", "1", ("112",)),
    Area("MN40", "Upper East Side-Carnegie Hill", "1", ("108",)),
    Area("MN50", "Stuyvesant Town-Cooper Village", "1", ("106",)),
    Area("MN99", "park-cemetery-etc-Manhattan", "1", ("111",)),
]

AREAS_BY_BOROUGH = {"1": MANHATTAN_AREAS}

NTA_CODE_RE = re.compile(r"^([A-Z]{2})\d{2}$")


def normalize_area_name(value) -> str:
    """'Upper  West-Side' -> 'upper west side'."""
    return re.sub(r"[^a-z0-9]+", " ", str(value or "").lower()).strip()


def list_areas(borough) -> list[Area]:
    code = borough_code_from_text(borough)
    return list(AREAS_BY_BOROUGH.get(code or "", []))


def resolve_area(borough, area_name=None, area_code=None) -> Area:
    """Validate a (borough, area) selection and find its districts.

    Raises InvalidInput for an unknown borough, a missing area, or an NTA
    code whose borough prefix disagrees with the borough, or a code outside
    the table given without a name. Named areas outside the table come back
    with no districts and are filtered on PLUTO's ntaname.
    """
    boro = borough_code_from_text(borough)
    if not boro:
        raise InvalidInput(f"Invalid borough: {borough!r}")

    code = str(area_code or "").strip().upper()
    name = str(area_name or "").strip()
    if not code and not name:
        raise InvalidInput("An area name or NTA code is required")

    match = NTA_CODE_RE.match(code)
    if code and match and match.group(1) != PLUTO_BOROUGH_CODES[boro]:
        raise InvalidInput(f"Area {code} is not in borough {borough}")

    candidates = AREAS_BY_BOROUGH.get(boro, [])
    wanted = normalize_area_name(name)
    if code:
        by_code = [a for a in candidates if a.code == code]
        if len(by_code) > 1 and wanted:
            by_code = [a for a in by_code if normalize_area_name(a.name) == wanted] or by_code
        if len(by_code) == 1:
            return by_code[0]
        if by_code:
            # shared code without a name: cover every area under it, named for all of them
            districts = tuple(sorted({d for a in by_code for d in a.districts}))
            return Area(code, " / ".join(a.name for a in by_code), boro, districts)
        if not wanted:
            raise InvalidInput(f"Unknown area code {code} for borough {borough}")
    if wanted:
        for a in candidates:
            if normalize_area_name(a.name) == wanted:
                return a
    return Area(code, name, boro)
