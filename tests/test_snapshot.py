import json
from datetime import datetime, timezone

from leadgen.models import Parcel, RunResult, RunStats
from leadgen.snapshot import borough_slug, build_snapshot, load_snapshot, snapshot_payload, write_snapshot

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_snapshot(borough="manhattan"):
    result = RunResult(
        leads=[Parcel(bbl="1001230045", address="45 WEST 40 STREET", score=5.5,
                      signal_badges=["Underbuilt FAR +8.0 (8+)"])],
        stats=RunStats(likely_sellers=1, avg_score=5.5, displayed_leads=1, total_analyzed=1),
        progress={"base": "1 records found, 1 parcels"},
    )
    return build_snapshot(result, borough, "MN17", "Midtown-Midtown South", now=NOW)


def test_payload_shape():
    payload = snapshot_payload(make_snapshot())

    assert set(payload) == {"version", "lastUpdated", "borough", "areaCode", "areaName",
                            "leads", "stats", "progress"}
    assert payload["version"] == 1
    assert payload["lastUpdated"] == "2024-06-01T12:00:00Z"
    assert payload["stats"] == {"likelySellers": 1, "avgScore": 5.5, "loansMaturing": 0,
                                "displayedLeads": 1, "totalAnalyzed": 1}
    lead = payload["leads"][0]
    assert lead["bbl"] == "1001230045"
    assert lead["signalBadges"] == ["Underbuilt FAR +8.0 (8+)"]
    assert "loanNearMaturity" in lead


def test_write_and_load(tmp_path):
    snapshot = make_snapshot("staten island")
    path = write_snapshot(snapshot, tmp_path)

    assert path == tmp_path / "staten-island" / "MN17.json"
    with open(path) as f:
        assert json.load(f)["areaCode"] == "MN17"
    assert load_snapshot(path) == snapshot


def test_borough_slug():
    assert borough_slug("Staten  Island ") == "staten-island"
    assert borough_slug(None) == ""
