"""
Joins auxiliary datasets onto the PLUTO parcel roster.

Every dataset keys a lot differently:

  ACRIS legals/master     document_id -> (borough, block, lot) triples
  DOB job filings         house number + street name, sometimes bbl/block/lot
  311 service requests    raw bbl
  HPD violations          raw bbl
  HPD registrations       boroid + block + lot, owners via registrationid

Each link_* routine fetches, keys each record, looks the key up in an index
built from the roster and attaches the record, or drops it when no parcel
matches. Routines never remove parcels.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta

from . import config
from .errors import StageFetchError
from .models import Parcel, Stage
from .normalize import (
    borough_code_from_text,
    borough_text_from_code,
    normalize_address,
    normalize_owner_name,
    parse_date,
    parse_parcel_key,
    split_address,
    split_parcel_key,
    try_parcel_key,
)
from .socrata import (
    FetchResult,
    and_clause,
    fetch_by_key_batches,
    in_clause,
    or_clause,
    soql_quote,
)

log = logging.getLogger(__name__)

OWNER_CONTACT_TYPES = ("CorporateOwner", "IndividualOwner", "JointOwner")


@dataclass
class LinkReport:
    fetched: int = 0
    matched: int = 0
    failed_batches: int = 0
    total_batches: int = 0
    message: str | None = None

    def add(self, result: FetchResult):
        self.failed_batches += len(result.failures)
        self.total_batches += result.batches

    @property
    def dropped(self) -> int:
        return self.fetched - self.matched


def _require(stage: Stage, result: FetchResult, what: str):
    if result.failed:
        raise StageFetchError(stage.value, f"{what}: {result.error}")


# ── Roster ───────────────────────────────────────────────────────────────

class ParcelRoster:
    """The parcels of one run plus the join indexes built while linking."""

    def __init__(self, borough: str, parcels: dict[str, Parcel] | None = None):
        self.borough = borough
        self.parcels: dict[str, Parcel] = parcels if parcels is not None else {}
        self.doc_index: dict[str, list[str]] = {}
        self.owner_portfolio: dict[str, set[str]] = {}

    def __len__(self):
        return len(self.parcels)

    def __contains__(self, key):
        return key in self.parcels

    def __iter__(self):
        return iter(self.parcels.values())

    def get(self, key) -> Parcel | None:
        return self.parcels.get(key) if key else None

    def keys(self) -> list[str]:
        return list(self.parcels)


def pluto_key(row: dict) -> str | None:
    key = parse_parcel_key(row.get("bbl"))
    if key:
        return key
    boro = borough_code_from_text(row.get("borough") or row.get("BOROUGH"))
    return try_parcel_key(boro, row.get("block") or row.get("BLOCK"), row.get("lot") or row.get("LOT"))


def pluto_address_parts(row: dict) -> tuple[str | None, str | None]:
    house = row.get("housenum") or row.get("housenumber")
    street = row.get("stname") or row.get("street")
    if house and street:
        return str(house).strip(), str(street).strip()
    return split_address(row.get("address"))


def display_address(row: dict) -> str | None:
    house = str(row.get("housenum") or row.get("housenumber") or "").strip()
    street = str(row.get("stname") or row.get("street") or "").strip()
    if house and street:
        return f"{house} {street}"
    if row.get("address"):
        return str(row["address"]).strip() or None
    return " ".join(p for p in (house, street) if p) or None


def build_roster(rows: list[dict], borough: str) -> ParcelRoster:
    """Seed one Parcel per PLUTO row that yields a BBL. First row wins."""
    roster = ParcelRoster(borough)
    skipped = 0
    for row in rows:
        key = pluto_key(row)
        if not key:
            skipped += 1
            continue
        if key in roster:
            continue
        roster.parcels[key] = Parcel(
            bbl=key,
            pluto=row,
            address=display_address(row),
            ntaname=row.get("ntaname"),
        )
    if skipped:
        log.debug("roster: %d PLUTO rows without a usable BBL", skipped)
    return roster


# ── ACRIS deeds ──────────────────────────────────────────────────────────

def _legals_predicate(keys: list[str]) -> str:
    parts = []
    for key in keys:
        boro, block, lot = split_parcel_key(key)
        parts.append(f"borough={soql_quote(boro)} AND block={soql_quote(block)} AND lot={soql_quote(lot)}")
    return or_clause(parts)


def _master_predicate(doc_type: str):
    def build(doc_ids: list[str]) -> str:
        return and_clause(or_clause([f"document_id={soql_quote(d)}" for d in doc_ids]),
                          f"doc_type={soql_quote(doc_type)}")
    return build


def build_document_index(roster: ParcelRoster, legals: list[dict]) -> dict[str, list[str]]:
    """document_id -> BBLs in the roster that the document's legals name."""
    index: dict[str, list[str]] = {}
    for legal in legals:
        doc_id = legal.get("document_id")
        key = try_parcel_key(legal.get("borough"), legal.get("block"), legal.get("lot"))
        if not doc_id or key not in roster:
            continue
        keys = index.setdefault(doc_id, [])
        if key not in keys:
            keys.append(key)
    return index


def _document_date(record: dict) -> date | None:
    return parse_date(record.get("document_date") or record.get("recorded_datetime"))


def _sort_by_document_date(records: list[dict]):
    records.sort(key=lambda r: _document_date(r) or date.min, reverse=True)


def link_deeds(roster: ParcelRoster, fetcher, settings: config.Settings,
               should_stop=None) -> LinkReport:
    """Legals -> document index -> DEED master records -> parcels."""
    report = LinkReport()
    legals = fetch_by_key_batches(
        fetcher, config.LEGALS_ENDPOINT, roster.keys(), settings.legals_batch_size,
        _legals_predicate, select=config.LEGALS_COLUMNS,
        limit_per_batch=settings.rows_per_key * settings.legals_batch_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(legals)
    _require(Stage.DEEDS, legals, "ACRIS legals")

    roster.doc_index = build_document_index(roster, legals.records)
    log.info("deeds: %d legals -> %d documents on %d lots", len(legals),
             len(roster.doc_index), len({k for keys in roster.doc_index.values() for k in keys}))

    masters = fetch_by_key_batches(
        fetcher, config.MASTER_ENDPOINT, list(roster.doc_index), settings.master_batch_size,
        _master_predicate(config.DEED_DOC_TYPE), select=config.MASTER_COLUMNS,
        limit_per_batch=settings.rows_per_key * settings.master_batch_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(masters)
    _require(Stage.DEEDS, masters, "ACRIS master")

    touched = set()
    for master in masters.records:
        keys = roster.doc_index.get(master.get("document_id"))
        if not keys or (master.get("doc_type") or config.DEED_DOC_TYPE) != config.DEED_DOC_TYPE:
            continue
        report.matched += 1
        sale_date = _document_date(master)
        for key in keys:
            parcel = roster.parcels[key]
            parcel.deeds.append(master)
            touched.add(key)
            current = parse_date(parcel.last_sale_date)
            if sale_date and (current is None or sale_date > current):
                parcel.last_sale_date = master.get("document_date") or sale_date.isoformat()
                parcel.last_deed_type = master.get("doc_type")
                parcel.document_id = master.get("document_id")
    for key in touched:
        _sort_by_document_date(roster.parcels[key].deeds)

    report.fetched = len(masters)
    report.message = (f"{len(legals)} legals, {len(masters)} deeds "
                      f"({report.matched} matched)")
    return report


def link_mortgages(roster: ParcelRoster, fetcher, settings: config.Settings,
                   should_stop=None) -> LinkReport:
    """MTGE master records for the documents the deed stage indexed."""
    report = LinkReport()
    if not roster.doc_index:
        report.message = "0 records (no ACRIS documents indexed)"
        return report

    masters = fetch_by_key_batches(
        fetcher, config.MASTER_ENDPOINT, list(roster.doc_index), settings.master_batch_size,
        _master_predicate(config.MORTGAGE_DOC_TYPE), select=config.MASTER_COLUMNS,
        limit_per_batch=settings.rows_per_key * settings.master_batch_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(masters)
    _require(Stage.MORTGAGES, masters, "ACRIS master")

    touched = set()
    for master in masters.records:
        keys = roster.doc_index.get(master.get("document_id"))
        if not keys or (master.get("doc_type") or config.MORTGAGE_DOC_TYPE) != config.MORTGAGE_DOC_TYPE:
            continue
        report.matched += 1
        for key in keys:
            roster.parcels[key].mortgages.append(master)
            touched.add(key)
    for key in touched:
        _sort_by_document_date(roster.parcels[key].mortgages)
    report.fetched = len(masters)
    return report


# ── DOB job filings ──────────────────────────────────────────────────────

def job_address_parts(job: dict) -> tuple[str | None, str | None]:
    house = job.get("house__") or job.get("house") or job.get("houseno") or job.get("house_number")
    street = job.get("street_name") or job.get("streetname") or job.get("street")
    return house, street


def job_unit(job: dict) -> str | None:
    for field in ("apartment", "apartment__", "apt", "apt__", "apt_no", "unit", "unit__",
                  "apartment_number", "aptnum"):
        value = job.get(field)
        if value:
            unit = str(value).strip()
            for prefix in ("APT", "UNIT", "#"):
                if unit.upper().startswith(prefix):
                    unit = unit[len(prefix):].strip()
            return unit or None
    return None


def job_display_address(job: dict) -> str:
    house, street = job_address_parts(job)
    base = " ".join(str(p).strip() for p in (house, street) if p).strip()
    unit = job_unit(job)
    return f"{base}, Apt {unit}" if unit else base


def build_address_index(roster: ParcelRoster) -> tuple[dict[str, list[str]], dict[str, set[str]]]:
    """normalized address -> BBLs, plus the raw street spellings per address."""
    index: dict[str, list[str]] = defaultdict(list)
    spellings: dict[str, set[str]] = defaultdict(set)
    for parcel in roster:
        house, street = pluto_address_parts(parcel.pluto)
        if not (house and street) and parcel.address:
            house, street = split_address(parcel.address)
        key = normalize_address(house, street)
        if not key:
            continue
        index[key].append(parcel.bbl)
        spellings[key].add(key.split(" ", 1)[1])
        spellings[key].add(" ".join(str(street).upper().split()))
    return dict(index), dict(spellings)


def _job_key_fallback(job: dict, roster: ParcelRoster) -> str | None:
    key = parse_parcel_key(job.get("bbl"))
    if key in roster:
        return key
    boro = borough_code_from_text(job.get("borough"))
    key = try_parcel_key(boro, job.get("block"), job.get("lot"))
    if key in roster:
        return key
    return None


def match_job(job: dict, roster: ParcelRoster, address_index: dict[str, list[str]]) -> str | None:
    """Address first (block breaks ties), then raw bbl, then borough/block/lot."""
    house, street = job_address_parts(job)
    key = normalize_address(house, street)
    candidates = address_index.get(key) if key else None
    if candidates:
        if len(candidates) > 1 and job.get("block"):
            block = "".join(ch for ch in str(job["block"]) if ch.isdigit()).lstrip("0").zfill(5)
            same_block = [bbl for bbl in candidates if bbl[1:6] == block]
            if same_block:
                candidates = same_block
        return candidates[0]
    return _job_key_fallback(job, roster)


def link_permits(roster: ParcelRoster, fetcher, settings: config.Settings,
                 should_stop=None) -> LinkReport:
    report = LinkReport()
    address_index, spellings = build_address_index(roster)
    boro = roster.borough
    boro_text = borough_text_from_code(boro)

    def predicate(keys: list[str]) -> str:
        clauses = []
        for key in keys:
            house = key.split(" ", 1)[0]
            streets = sorted(spellings.get(key, ()))
            clauses.append(and_clause(f"house__={soql_quote(house)}", in_clause("upper(street_name)", streets)))
        return and_clause(f"borough={soql_quote(boro_text)} OR borough={soql_quote(boro)}", or_clause(clauses))

    jobs = fetch_by_key_batches(
        fetcher, config.DOBJOBS_ENDPOINT, sorted(address_index), settings.permits_batch_size,
        predicate, limit_per_batch=settings.page_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(jobs)
    _require(Stage.PERMITS, jobs, "DOB jobs")

    seen = set()
    for job in jobs.records:
        job_id = (job.get("job__"), job.get("doc__"))
        if job_id != (None, None):
            if job_id in seen:
                continue
            seen.add(job_id)
        key = match_job(job, roster, address_index)
        if not key:
            log.debug("permits: no parcel for job %s", job.get("job__"))
            continue
        record = dict(job)
        record["display_address"] = job_display_address(job)
        record["apartment_unit"] = job_unit(job)
        roster.parcels[key].permits.append(record)
        report.matched += 1
    report.fetched = len(jobs)
    return report


# ── 311 and HPD violations ───────────────────────────────────────────────

def _attach_by_bbl(roster: ParcelRoster, records: list[dict], collection: str) -> int:
    matched = 0
    for record in records:
        parcel = roster.get(parse_parcel_key(record.get("bbl")))
        if parcel is None:
            continue
        getattr(parcel, collection).append(record)
        matched += 1
    return matched


def link_complaints(roster: ParcelRoster, fetcher, settings: config.Settings,
                    today: date, should_stop=None) -> LinkReport:
    """311 requests from the last complaint_window_days, joined on raw bbl."""
    report = LinkReport()
    cutoff = (today - timedelta(days=settings.complaint_window_days)).strftime("%Y-%m-%dT00:00:00")

    def predicate(keys: list[str]) -> str:
        return and_clause(f"created_date >= {soql_quote(cutoff)}", in_clause("bbl", keys))

    complaints = fetch_by_key_batches(
        fetcher, config.THREEONEONE_ENDPOINT, roster.keys(), settings.complaints_batch_size,
        predicate, select=config.THREEONEONE_COLUMNS, limit_per_batch=settings.page_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(complaints)
    _require(Stage.COMPLAINTS, complaints, "311 service requests")
    report.fetched = len(complaints)
    report.matched = _attach_by_bbl(roster, complaints.records, "complaints")
    report.message = f"{report.fetched} complaints ({settings.complaint_window_days}d, {report.matched} matched)"
    return report


def link_violations(roster: ParcelRoster, fetcher, settings: config.Settings,
                    should_stop=None) -> LinkReport:
    report = LinkReport()

    def predicate(keys: list[str]) -> str:
        status = "violationstatus='Open'" if settings.open_violations_only else None
        return and_clause(in_clause("bbl", keys), status)

    violations = fetch_by_key_batches(
        fetcher, config.HPD_VIOLATIONS_ENDPOINT, roster.keys(), settings.violations_batch_size,
        predicate, select=config.HPD_VIOLATIONS_COLUMNS, limit_per_batch=settings.page_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(violations)
    _require(Stage.VIOLATIONS, violations, "HPD violations")
    report.fetched = len(violations)
    report.matched = _attach_by_bbl(roster, violations.records, "violations")
    return report


# ── HPD registrations and owner portfolios ───────────────────────────────

def contact_owner_name(contact: dict) -> str | None:
    if contact.get("type") == "CorporateOwner":
        name = (contact.get("corporationname") or "").strip()
        return name or None
    name = " ".join(str(contact.get(f) or "").strip() for f in ("firstname", "lastname")).strip()
    return name or None


def pick_owner(contacts: list[dict]) -> str | None:
    """Corporate owner beats individual owner beats joint owner."""
    for contact_type in OWNER_CONTACT_TYPES:
        for contact in contacts:
            if contact.get("type") == contact_type:
                name = contact_owner_name(contact)
                if name:
                    return name
    return None


def link_registrations(roster: ParcelRoster, fetcher, settings: config.Settings,
                       should_stop=None) -> LinkReport:
    report = LinkReport()
    boro = roster.borough
    blocks = sorted({split_parcel_key(key)[1] for key in roster.keys()}, key=int)

    def predicate(batch: list[str]) -> str:
        return and_clause(f"boroid={soql_quote(boro)}", in_clause("block", batch))

    registrations = fetch_by_key_batches(
        fetcher, config.HPD_REGISTRATIONS_ENDPOINT, blocks, settings.registrations_batch_size,
        predicate, select=config.HPD_REGISTRATIONS_COLUMNS, limit_per_batch=settings.page_size,
        delay=settings.batch_delay, should_stop=should_stop,
    )
    report.add(registrations)
    _require(Stage.REGISTRATIONS, registrations, "HPD registrations")

    for reg in registrations.records:
        parcel = roster.get(try_parcel_key(reg.get("boroid"), reg.get("block"), reg.get("lot")))
        if parcel is None:
            continue
        report.matched += 1
        current = parcel.registration
        if current is None or (parse_date(reg.get("lastregistrationdate")) or date.min) > \
                (parse_date(current.get("lastregistrationdate")) or date.min):
            parcel.registration = reg
    report.fetched = len(registrations)

    by_registration = {p.registration["registrationid"]: p for p in roster
                       if p.registration and p.registration.get("registrationid")}
    if by_registration:
        contacts = fetch_by_key_batches(
            fetcher, config.HPD_CONTACTS_ENDPOINT, sorted(by_registration), settings.contacts_batch_size,
            lambda ids: and_clause(in_clause("registrationid", ids), in_clause("type", OWNER_CONTACT_TYPES)),
            select=config.HPD_CONTACTS_COLUMNS, limit_per_batch=settings.page_size,
            delay=settings.batch_delay, should_stop=should_stop,
        )
        report.add(contacts)
        grouped: dict[str, list[dict]] = defaultdict(list)
        for contact in contacts.records:
            grouped[str(contact.get("registrationid"))].append(contact)
        for reg_id, parcel in by_registration.items():
            owner = pick_owner(grouped.get(str(reg_id), []))
            if owner:
                parcel.owner_name = owner
    return report


def build_owner_portfolio(roster: ParcelRoster) -> dict[str, set[str]]:
    """Group parcels by normalized owner (HPD owner, else PLUTO ownername)."""
    portfolio: dict[str, set[str]] = defaultdict(set)
    names = {}
    for parcel in roster:
        if not parcel.owner_name and parcel.pluto.get("ownername"):
            parcel.owner_name = str(parcel.pluto["ownername"]).strip()
        name = normalize_owner_name(parcel.owner_name)
        if name:
            names[parcel.bbl] = name
            portfolio[name].add(parcel.bbl)
    for bbl, name in names.items():
        parcel = roster.parcels[bbl]
        parcel.portfolio = sorted(portfolio[name])
        parcel.portfolio_size = len(portfolio[name])
    roster.owner_portfolio = dict(portfolio)
    return roster.owner_portfolio
