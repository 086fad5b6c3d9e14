"""
Dataset endpoints, fetch settings and scoring thresholds.

Every number the scorer uses lives in ScoringConfig so that the heuristic
cutoffs (lot area, complaints per unit, maturity window) can be tuned per
run without touching the signal code.
"""

import os

from pydantic import BaseModel

ENV_PREFIX = "LEADGEN_"

# ── NYC Open Data endpoints ──────────────────────────────────────────────

PLUTO_ENDPOINT = "https://data.cityofnewyork.us/resource/64uk-42ks.json"          # MapPLUTO
LEGALS_ENDPOINT = "https://data.cityofnewyork.us/resource/8h5j-fqxa.json"         # ACRIS Real Property Legals
MASTER_ENDPOINT = "https://data.cityofnewyork.us/resource/bnx9-e6tj.json"         # ACRIS Real Property Master
DOBJOBS_ENDPOINT = "https://data.cityofnewyork.us/resource/hir8-3a8d.json"        # DOB Job Filings
THREEONEONE_ENDPOINT = "https://data.cityofnewyork.us/resource/erm2-nwe9.json"    # 311 Service Requests
HPD_VIOLATIONS_ENDPOINT = "https://data.cityofnewyork.us/resource/wvxf-dwi5.json" # HPD Housing Maintenance Code Violations
HPD_REGISTRATIONS_ENDPOINT = "https://data.cityofnewyork.us/resource/tesw-yqqr.json"
HPD_CONTACTS_ENDPOINT = "https://data.cityofnewyork.us/resource/feu5-w2e2.json"

LEGALS_COLUMNS = "document_id,borough,block,lot,property_type,street_number,street_name,unit"
MASTER_COLUMNS = ("document_id,record_type,crfn,recorded_borough,doc_type,document_date,"
                  "document_amt,recorded_datetime,modified_date")
THREEONEONE_COLUMNS = "unique_key,bbl,incident_address,complaint_type,descriptor,created_date,status"
HPD_VIOLATIONS_COLUMNS = ("violationid,bbl,boroid,block,lot,apartment,class,inspectiondate,"
                          "novdescription,violationstatus,currentstatus")
HPD_REGISTRATIONS_COLUMNS = ("registrationid,boroid,block,lot,housenumber,streetname,"
                             "lastregistrationdate,registrationenddate")
HPD_CONTACTS_COLUMNS = "registrationid,type,corporationname,firstname,lastname"

BASE_SCORE = 1.5

DEED_DOC_TYPE = "DEED"
MORTGAGE_DOC_TYPE = "MTGE"


class Settings(BaseModel):
    """Fetch policy for one run. Override any field with LEADGEN_<FIELD>."""

    app_token: str | None = None
    request_timeout: float = 60.0

    page_size: int = 50000
    page_delay: float = 0.1
    batch_delay: float = 0.08

    legals_batch_size: int = 50
    master_batch_size: int = 50
    permits_batch_size: int = 20
    complaints_batch_size: int = 10
    violations_batch_size: int = 50
    registrations_batch_size: int = 50
    contacts_batch_size: int = 50

    rows_per_key: int = 100
    complaint_window_days: int = 60
    open_violations_only: bool = True
    max_leads: int = 200

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)


class ScoringConfig(BaseModel):
    base_score: float = BASE_SCORE

    # tenure
    long_tenure_months: int = 180
    mid_tenure_months: int = 120
    long_tenure_points: float = 0.6
    mid_tenure_points: float = 0.4

    # permits
    permit_window_months: int = 12
    renovation_job_types: tuple[str, ...] = ("A1", "A2", "DM")
    multi_renovation_points: float = 1.2
    single_renovation_points: float = 0.9
    multi_permit_points: float = 0.7
    any_permit_points: float = 0.4

    # 311 complaints
    complaint_window_days: int = 30
    complaint_group_size: int = 5
    complaint_group_points: float = 0.3
    serious_complaint_types: tuple[str, ...] = (
        "HEAT/HOT WATER", "PLUMBING", "WATER LEAK", "NO WATER",
        "ELECTRIC", "ELEVATOR", "PAINT/PLASTER", "DOOR/WINDOW",
    )
    serious_complaint_points: float = 0.2
    complaints_per_unit_cutoff: float = 0.15
    complaints_per_unit_points: float = 0.2

    # mortgages
    loan_terms_years: tuple[int, ...] = (5, 7, 10, 15, 20, 25, 30)
    maturity_window_years: float = 1.0
    min_loan_age_years: float = 4.0
    loan_maturity_points: float = 1.0
    aged_mortgage_years: float = 20.0
    aged_mortgage_points: float = 0.5

    # HPD violations
    class_c_heavy: int = 5
    class_c_some: int = 2
    class_c_heavy_points: float = 1.5
    class_c_some_points: float = 1.0
    class_c_single_points: float = 0.5
    class_b_heavy: int = 10
    class_b_some: int = 5
    class_b_heavy_points: float = 0.8
    class_b_some_points: float = 0.4
    violation_load: int = 20
    violation_load_points: float = 0.5

    # deeds
    estate_deed_tokens: tuple[str, ...] = (
        "EXECUTOR", "EXECUTRIX", "ADMIN", "ADMINISTRATOR", "ESTATE",
        "HEIR", "DEVISEE", "SURV", "SURVIVOR",
    )
    estate_deed_points: float = 1.5
    flip_max_tenure_months: int = 36
    flip_points: float = 2.0

    # owner portfolio
    portfolio_large: int = 10
    portfolio_mid: int = 5
    portfolio_small: int = 3
    portfolio_large_points: float = 0.8
    portfolio_mid_points: float = 0.5
    portfolio_small_points: float = 0.3
    portfolio_violation_points: float = 0.5

    # development potential
    min_lot_area: float = 2000.0
    far_tiers: tuple[tuple[float, float, str], ...] = (
        (8.0, 4.0, " (8+)"),
        (5.0, 2.0, " (5+)"),
        (2.0, 0.5, ""),
    )

    # roll-up
    likely_seller_score: float = 3.0
