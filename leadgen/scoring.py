"""
Seller-likelihood scoring.

Each signal reads a parcel's linked records and returns the contributions
it earns. The scorer adds them to the base score and records the badge for
each one, so the badge list is the full audit trail of a score: a parcel
with no badges has exactly the base score.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from .config import ScoringConfig
from .models import Parcel
from .normalize import months_between, parse_date, to_float, to_int, years_between

DEFAULT_CONFIG = ScoringConfig()


@dataclass(frozen=True)
class Contribution:
    points: float
    badge: str


def months_ago(today: date, months: int) -> date:
    year, month = divmod(today.year * 12 + today.month - 1 - months, 12)
    day = min(today.day, calendar.monthrange(year, month + 1)[1])
    return date(year, month + 1, day)


def tenure_months(parcel: Parcel, today: date) -> int | None:
    sold = parse_date(parcel.last_sale_date)
    if sold is None:
        return None
    return months_between(sold, today)


def permit_date(job: dict) -> date | None:
    return parse_date(job.get("filing_date") or job.get("pre__filing_date") or job.get("pre_filing_date"))


def is_renovation(job: dict, cfg: ScoringConfig) -> bool:
    return str(job.get("job_type") or "").strip().upper() in cfg.renovation_job_types


def recent_permits(parcel: Parcel, today: date, cfg: ScoringConfig) -> list[dict]:
    cutoff = months_ago(today, cfg.permit_window_months)
    recent = []
    for job in parcel.permits:
        filed = permit_date(job)
        if filed and filed >= cutoff:
            recent.append(job)
    return recent


def recent_complaints(parcel: Parcel, today: date, cfg: ScoringConfig) -> list[dict]:
    cutoff = today - timedelta(days=cfg.complaint_window_days)
    return [c for c in parcel.complaints
            if (parse_date(c.get("created_date")) or date.min) >= cutoff]


# ── Signals ──────────────────────────────────────────────────────────────

def tenure_signal(parcel, today, cfg):
    months = tenure_months(parcel, today)
    parcel.tenure_months = months
    if months is None:
        return []
    if months >= cfg.long_tenure_months:
        return [Contribution(cfg.long_tenure_points, f"Long Tenure {cfg.long_tenure_months // 12}+ yrs")]
    if months >= cfg.mid_tenure_months:
        return [Contribution(cfg.mid_tenure_points, f"Long Tenure {cfg.mid_tenure_months // 12}+ yrs")]
    return []


def permit_signal(parcel, today, cfg):
    jobs = recent_permits(parcel, today, cfg)
    renovations = [j for j in jobs if is_renovation(j, cfg)]
    parcel.permits_last_12_months = len(jobs)
    parcel.renovation_permits = len(renovations)
    parcel.job_types = sorted({str(j.get("job_type")) for j in jobs if j.get("job_type")})

    codes = "/".join(cfg.renovation_job_types)
    if len(renovations) > 1:
        return [Contribution(cfg.multi_renovation_points, f"Renovations ({codes})")]
    if len(renovations) == 1:
        return [Contribution(cfg.single_renovation_points, "Renovation Permit")]
    if len(jobs) > 2:
        return [Contribution(cfg.multi_permit_points, "Multiple Permits")]
    if jobs:
        return [Contribution(cfg.any_permit_points, "Recent Permit")]
    return []


def complaint_signal(parcel, today, cfg):
    recent = recent_complaints(parcel, today, cfg)
    count = len(recent)
    units = to_int(parcel.pluto.get("unitsres"))
    per_unit = round(count / (units if units > 0 else 1), 2)
    parcel.complaints_last_30_days = count
    parcel.complaints_per_unit_30_days = per_unit
    parcel.complaint_types = sorted({c["complaint_type"] for c in recent if c.get("complaint_type")})

    out = []
    groups = count // cfg.complaint_group_size
    if groups > 0:
        points = round(groups * cfg.complaint_group_points, 1)
        out.append(Contribution(points, f"Complaints +{points} ({count} in {cfg.complaint_window_days}d)"))
    serious = any(kind in (c.get("complaint_type") or "").upper()
                  for c in recent for kind in cfg.serious_complaint_types)
    if serious:
        out.append(Contribution(cfg.serious_complaint_points, "Serious Complaint"))
    if count and per_unit >= cfg.complaints_per_unit_cutoff:
        out.append(Contribution(cfg.complaints_per_unit_points, "High Complaints/Unit"))
    return out


def loan_signal(parcel, today, cfg):
    out = []
    oldest = None
    for mortgage in parcel.mortgages:
        recorded = parse_date(mortgage.get("document_date") or mortgage.get("recorded_datetime"))
        if recorded is None:
            continue
        age = years_between(recorded, today)
        if oldest is None or age > oldest:
            oldest = age
        if parcel.loan_near_maturity or age < cfg.min_loan_age_years:
            continue
        term = min(cfg.loan_terms_years, key=lambda t: abs(age - t))
        if abs(age - term) <= cfg.maturity_window_years:
            parcel.loan_near_maturity = True
            parcel.loan_maturity_term = term
            out.append(Contribution(cfg.loan_maturity_points, f"Loan Maturing (~{term}yr term, {age:.0f} yrs old)"))
    parcel.oldest_mortgage_years = round(oldest, 1) if oldest is not None else None
    if oldest is not None and oldest >= cfg.aged_mortgage_years:
        out.append(Contribution(cfg.aged_mortgage_points, f"Aged Mortgage ({oldest:.0f} yrs)"))
    return out


def violation_signal(parcel, today, cfg):
    counts = {"A": 0, "B": 0, "C": 0}
    for v in parcel.violations:
        cls = str(v.get("class") or "").strip().upper()
        if cls in counts:
            counts[cls] += 1
    parcel.violations_class_a = counts["A"]
    parcel.violations_class_b = counts["B"]
    parcel.violations_class_c = counts["C"]

    out = []
    c, b = counts["C"], counts["B"]
    if c >= cfg.class_c_heavy:
        out.append(Contribution(cfg.class_c_heavy_points, f"Class C Violations ({c})"))
    elif c >= cfg.class_c_some:
        out.append(Contribution(cfg.class_c_some_points, f"Class C Violations ({c})"))
    elif c == 1:
        out.append(Contribution(cfg.class_c_single_points, "Class C Violation"))
    if b >= cfg.class_b_heavy:
        out.append(Contribution(cfg.class_b_heavy_points, f"Class B Violations ({b})"))
    elif b >= cfg.class_b_some:
        out.append(Contribution(cfg.class_b_some_points, f"Class B Violations ({b})"))
    total = len(parcel.violations)
    if total >= cfg.violation_load:
        out.append(Contribution(cfg.violation_load_points, f"Violation Load ({total})"))
    return out


def estate_deed_signal(parcel, today, cfg):
    # last_deed_type is the ACRIS doc_type; the deed stage links only doc_type DEED,
    # so this fires only when a deed text source carrying estate wording is linked
    deed_type = (parcel.last_deed_type or "").upper()
    parcel.estate_deed = any(token in deed_type for token in cfg.estate_deed_tokens)
    if parcel.estate_deed:
        return [Contribution(cfg.estate_deed_points, "Estate/Inherited Deed")]
    return []


def flip_signal(parcel, today, cfg):
    months = tenure_months(parcel, today)
    has_renovation = any(is_renovation(job, cfg) for job in parcel.permits)
    parcel.flip_pattern = months is not None and 0 <= months <= cfg.flip_max_tenure_months and has_renovation
    if parcel.flip_pattern:
        return [Contribution(cfg.flip_points, "Fix & Flip Pattern")]
    return []


def portfolio_signal(parcel, today, cfg):
    size = parcel.portfolio_size
    out = []
    if size >= cfg.portfolio_large:
        out.append(Contribution(cfg.portfolio_large_points, f"Portfolio Owner ({size} lots)"))
    elif size >= cfg.portfolio_mid:
        out.append(Contribution(cfg.portfolio_mid_points, f"Portfolio Owner ({size} lots)"))
    elif size >= cfg.portfolio_small:
        out.append(Contribution(cfg.portfolio_small_points, f"Portfolio Owner ({size} lots)"))
    if size >= cfg.portfolio_mid and parcel.violations:
        out.append(Contribution(cfg.portfolio_violation_points, "Portfolio Owner w/ Violations"))
    return out


def far_signal(parcel, today, cfg):
    pd = parcel.pluto
    lot_area = to_float(pd.get("lotarea"))
    if lot_area < cfg.min_lot_area:
        return []
    allowed = max(to_float(pd.get("residfar")), to_float(pd.get("commfar")), to_float(pd.get("facilfar")))
    remaining = allowed - to_float(pd.get("builtfar"))
    parcel.remaining_far = round(remaining, 2)
    for cutoff, points, suffix in cfg.far_tiers:
        if remaining >= cutoff:
            return [Contribution(points, f"Underbuilt FAR +{remaining:.1f}{suffix}")]
    return []


SIGNALS = [
    tenure_signal,
    permit_signal,
    complaint_signal,
    loan_signal,
    violation_signal,
    estate_deed_signal,
    flip_signal,
    portfolio_signal,
    far_signal,
]


def score_parcel(parcel: Parcel, today: date, cfg: ScoringConfig | None = None) -> Parcel:
    cfg = cfg or DEFAULT_CONFIG
    parcel.loan_near_maturity = False
    parcel.loan_maturity_term = None
    score = cfg.base_score
    badges = []
    for signal in SIGNALS:
        for contribution in signal(parcel, today, cfg):
            score += contribution.points
            badges.append(contribution.badge)
    parcel.score = round(score, 1)
    parcel.signal_badges = badges
    return parcel
