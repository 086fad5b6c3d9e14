from datetime import date

import pytest

from leadgen.config import ScoringConfig
from leadgen.models import Parcel
from leadgen.scoring import months_ago, score_parcel

TODAY = date(2024, 6, 1)


def parcel(**fields):
    fields.setdefault("bbl", "1001230045")
    return Parcel(**fields)


def score(p, cfg=None):
    return score_parcel(p, TODAY, cfg)


def test_no_signals_is_base_score():
    p = score(parcel())
    assert p.score == 1.5
    assert p.signal_badges == []


def test_unscored_parcel_starts_at_base_score():
    assert parcel().score == ScoringConfig().base_score == 1.5


def test_underbuilt_lot():
    p = score(parcel(pluto={"lotarea": "3000", "builtfar": "2.0", "residfar": "10.0",
                            "commfar": "0", "facilfar": "0"}))
    assert p.score == 5.5
    assert p.signal_badges == ["Underbuilt FAR +8.0 (8+)"]
    assert p.remaining_far == 8.0


@pytest.mark.parametrize("allowed,badge,expected", [
    ("7.5", "Underbuilt FAR +5.5 (5+)", 3.5),
    ("4.0", "Underbuilt FAR +2.0", 2.0),
])
def test_far_tiers(allowed, badge, expected):
    p = score(parcel(pluto={"lotarea": "5000", "builtfar": "2.0", "commfar": allowed}))
    assert p.signal_badges == [badge]
    assert p.score == expected


def test_small_lot_skips_far():
    p = score(parcel(pluto={"lotarea": "1999", "builtfar": "0", "residfar": "10"}))
    assert p.signal_badges == []
    assert p.remaining_far is None


@pytest.mark.parametrize("sold,badge,expected", [
    ("2005-01-01", "Long Tenure 15+ yrs", 2.1),
    ("2012-01-01", "Long Tenure 10+ yrs", 1.9),
])
def test_tenure(sold, badge, expected):
    p = score(parcel(last_sale_date=sold))
    assert p.signal_badges == [badge]
    assert p.score == expected


class TestPermits:
    def job(self, job_type, filed="2024-01-15"):
        return {"job_type": job_type, "filing_date": filed}

    def test_multiple_renovations(self):
        p = score(parcel(permits=[self.job("A1"), self.job("DM")]))
        assert p.signal_badges == ["Renovations (A1/A2/DM)"]
        assert p.score == 2.7
        assert p.renovation_permits == 2

    def test_single_renovation(self):
        p = score(parcel(permits=[self.job("A2"), self.job("NB")]))
        assert p.signal_badges == ["Renovation Permit"]
        assert p.score == 2.4

    def test_many_other_permits(self):
        p = score(parcel(permits=[self.job("NB"), self.job("A3"), self.job("SG")]))
        assert p.signal_badges == ["Multiple Permits"]
        assert p.score == 2.2

    def test_one_permit(self):
        p = score(parcel(permits=[self.job("A3")]))
        assert p.signal_badges == ["Recent Permit"]
        assert p.permits_last_12_months == 1

    def test_old_permits_ignored(self):
        p = score(parcel(permits=[self.job("A1", "2023-05-31"), self.job("A1", "05/01/2020")]))
        assert p.signal_badges == []
        assert p.permits_last_12_months == 0

    def test_pre_filing_date_fallback(self):
        p = score(parcel(permits=[{"job_type": "A3", "pre__filing_date": "03/01/2024"}]))
        assert p.signal_badges == ["Recent Permit"]


class TestComplaints:
    def complaints(self, n, kind="NOISE - RESIDENTIAL", created="2024-05-20T10:00:00.000"):
        return [{"complaint_type": kind, "created_date": created} for _ in range(n)]

    def test_groups_of_five_and_per_unit(self):
        p = score(parcel(pluto={"unitsres": "10"}, complaints=self.complaints(10)))
        assert p.signal_badges == ["Complaints +0.6 (10 in 30d)", "High Complaints/Unit"]
        assert p.score == 2.3
        assert p.complaints_per_unit_30_days == 1.0

    def test_serious_type(self):
        p = score(parcel(pluto={"unitsres": "100"}, complaints=self.complaints(1, "HEAT/HOT WATER")))
        assert p.signal_badges == ["Serious Complaint"]
        assert p.score == 1.7

    def test_outside_window(self):
        p = score(parcel(pluto={"unitsres": "1"}, complaints=self.complaints(6, created="2024-04-15T00:00:00.000")))
        assert p.signal_badges == []
        assert p.complaints_last_30_days == 0


class TestLoans:
    def test_loan_near_maturity(self):
        p = score(parcel(mortgages=[{"document_date": "2014-06-15T00:00:00.000"},
                                    {"document_date": "2017-06-01T00:00:00.000"}]))
        assert p.signal_badges == ["Loan Maturing (~10yr term, 10 yrs old)"]
        assert p.score == 2.5
        assert p.loan_near_maturity
        assert p.loan_maturity_term == 10

    def test_aged_mortgage(self):
        p = score(parcel(mortgages=[{"document_date": "2002-06-01T00:00:00.000"}]))
        assert p.signal_badges == ["Aged Mortgage (22 yrs)"]
        assert p.score == 2.0
        assert not p.loan_near_maturity
        assert p.oldest_mortgage_years == 22.0

    def test_young_loan(self):
        p = score(parcel(mortgages=[{"document_date": "2021-06-01T00:00:00.000"}]))
        assert p.signal_badges == []

    def test_rescoring_is_stable(self):
        p = parcel(mortgages=[{"document_date": "2014-06-15T00:00:00.000"}])
        first = score(p).score
        assert score(p).score == first
        assert p.signal_badges == ["Loan Maturing (~10yr term, 10 yrs old)"]


class TestViolations:
    def violations(self, **counts):
        return [{"class": cls} for cls, n in counts.items() for _ in range(n)]

    def test_heavy_c_and_b(self):
        p = score(parcel(violations=self.violations(C=5, B=10)))
        assert p.signal_badges == ["Class C Violations (5)", "Class B Violations (10)"]
        assert p.score == 3.8

    def test_some_c_and_b(self):
        p = score(parcel(violations=self.violations(C=2, B=5)))
        assert p.signal_badges == ["Class C Violations (2)", "Class B Violations (5)"]
        assert p.score == 2.9

    def test_single_c(self):
        p = score(parcel(violations=self.violations(C=1)))
        assert p.signal_badges == ["Class C Violation"]
        assert p.score == 2.0

    def test_total_load(self):
        p = score(parcel(violations=self.violations(A=20)))
        assert p.signal_badges == ["Violation Load (20)"]
        assert p.violations_class_a == 20


def test_estate_deed():
    p = score(parcel(last_deed_type="EXECUTOR DEED"))
    assert p.signal_badges == ["Estate/Inherited Deed"]
    assert p.score == 3.0
    assert p.estate_deed


def test_fix_and_flip():
    p = score(parcel(last_sale_date="2023-01-01",
                     permits=[{"job_type": "A1", "filing_date": "2023-03-01"}]))
    assert p.signal_badges == ["Fix & Flip Pattern"]
    assert p.score == 3.5
    assert p.flip_pattern


class TestPortfolio:
    @pytest.mark.parametrize("size,badge,expected", [
        (10, "Portfolio Owner (10 lots)", 2.3),
        (5, "Portfolio Owner (5 lots)", 2.0),
        (3, "Portfolio Owner (3 lots)", 1.8),
    ])
    def test_tiers(self, size, badge, expected):
        p = score(parcel(portfolio_size=size))
        assert p.signal_badges == [badge]
        assert p.score == expected

    def test_below_smallest_tier(self):
        assert score(parcel(portfolio_size=2)).signal_badges == []

    def test_with_violations(self):
        p = score(parcel(portfolio_size=5, violations=[{"class": "A"}]))
        assert p.signal_badges == ["Portfolio Owner (5 lots)", "Portfolio Owner w/ Violations"]
        assert p.score == 2.5


def test_near_misses_add_nothing():
    p = score(parcel(
        last_sale_date="2014-07-01",
        pluto={"lotarea": "2500", "builtfar": "1.0", "residfar": "2.9", "unitsres": "100"},
        complaints=[{"complaint_type": "NOISE", "created_date": "2024-05-25"}] * 4,
        mortgages=[{"document_date": "2021-06-01"}],
        permits=[{"job_type": "A1", "filing_date": "2022-01-01"}],
        violations=[{"class": "B"}] * 4,
        portfolio_size=2,
    ))
    assert p.signal_badges == []
    assert p.score == 1.5
    assert p.tenure_months == 119


def test_thresholds_come_from_config():
    cfg = ScoringConfig(min_lot_area=1000, base_score=0.0)
    p = score(parcel(pluto={"lotarea": "1500", "builtfar": "0", "residfar": "2"}), cfg)
    assert p.signal_badges == ["Underbuilt FAR +2.0"]
    assert p.score == 0.5


def test_months_ago_clamps_day():
    assert months_ago(date(2024, 3, 31), 1) == date(2024, 2, 29)
    assert months_ago(date(2024, 6, 1), 12) == date(2023, 6, 1)
