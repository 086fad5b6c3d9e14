import pytest
from fastapi.testclient import TestClient

from api.server import app, get_fetcher
from leadgen import config, store
from leadgen.models import RunStats, Snapshot

from conftest import FakeFetcher, pluto_row


@pytest.fixture
def fetcher():
    return FakeFetcher({config.PLUTO_ENDPOINT: [
        pluto_row(123, 45, lotarea="3000", builtfar="2.0", residfar="10.0"),
    ]})


@pytest.fixture
def client(tmp_path, monkeypatch, fetcher):
    monkeypatch.setattr(store, "DB_PATH", str(tmp_path / "leads.db"))
    monkeypatch.setenv("LEADGEN_PAGE_DELAY", "0")
    monkeypatch.setenv("LEADGEN_BATCH_DELAY", "0")
    app.dependency_overrides[get_fetcher] = lambda: fetcher
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_areas(client):
    resp = client.get("/api/areas", params={"borough": "manhattan"})
    assert resp.status_code == 200
    areas = resp.json()
    assert {"code": "MN12", "name": "Upper West Side", "borough": "1",
            "districts": ["107", "108"]} in areas


def test_areas_bad_borough(client):
    assert client.get("/api/areas", params={"borough": "atlantis"}).status_code == 400


def test_leads_runs_then_serves_cache(client, fetcher):
    resp = client.get("/api/leads", params={"borough": "manhattan", "code": "MN17"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["areaName"] == "Midtown-Midtown South"
    assert body["stats"]["displayedLeads"] == 1
    assert body["leads"][0]["signalBadges"] == ["Underbuilt FAR +8.0 (8+)"]
    calls = len(fetcher.calls)

    again = client.get("/api/leads", params={"borough": "manhattan", "code": "MN17"})
    assert again.json() == body
    assert len(fetcher.calls) == calls

    client.get("/api/leads", params={"borough": "manhattan", "code": "MN17", "refresh": "true"})
    assert len(fetcher.calls) > calls


@pytest.mark.parametrize("params", [
    {"borough": "atlantis", "code": "MN17"},
    {"borough": "manhattan"},
    {"borough": "brooklyn", "code": "MN17"},
])
def test_leads_invalid_input(client, fetcher, params):
    assert client.get("/api/leads", params=params).status_code == 400
    assert fetcher.calls == []


def test_snapshots_index(client):
    client.get("/api/leads", params={"borough": "manhattan", "code": "MN17"})
    rows = client.get("/api/snapshots", params={"borough": "manhattan"}).json()
    assert [r["area_code"] for r in rows] == ["MN17"]
    assert rows[0]["likely_sellers"] == 1
    assert client.get("/api/snapshots", params={"borough": "bronx"}).json() == []
    assert client.get("/api/snapshots", params={"borough": "nowhere"}).status_code == 400


def test_code_only_shared_area_keeps_single_area_rows(client, fetcher):
    tribeca = Snapshot(last_updated="2024-06-01T12:00:00Z", borough="manhattan", area_code="MN24",
                       area_name="TriBeCa-Civic Center", stats=RunStats(likely_sellers=7))
    with store.get_db() as conn:
        store.save_snapshot(conn, tribeca)

    body = client.get("/api/leads", params={"borough": "manhattan", "code": "MN24"}).json()
    assert body["areaName"] == "TriBeCa-Civic Center / SoHo-Little Italy"
    assert fetcher.calls
    client.get("/api/leads", params={"borough": "manhattan", "code": "MN24", "refresh": "true"})

    with store.get_db() as conn:
        assert store.get_snapshot(conn, "manhattan", "MN24", "TriBeCa-Civic Center") == tribeca
        assert len(store.list_snapshots(conn, "manhattan")) == 2

    cached = client.get("/api/leads", params={"borough": "manhattan", "area": "TriBeCa-Civic Center",
                                              "code": "MN24"}).json()
    assert cached["stats"]["likelySellers"] == 7
