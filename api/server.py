"""
Leads API — FastAPI front for the NYC parcel lead pipeline.

Routes:
  /api/areas?borough=...                      Selectable neighborhoods
  /api/leads?borough=&area=&code=&refresh=    Latest snapshot for an area (runs the pipeline if none)
  /api/snapshots?borough=...                  Stored snapshots with stats

Start: uvicorn api.server:app --reload --port 8000
"""

import logging

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from leadgen import store
from leadgen.areas import list_areas, resolve_area
from leadgen.errors import InvalidInput
from leadgen.normalize import borough_text_from_code
from leadgen.pipeline import run_snapshot
from leadgen.snapshot import snapshot_payload

from .models import AreaOut, SnapshotSummary

log = logging.getLogger(__name__)

app = FastAPI(title="Leads API", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_fetcher():
    """Dataset fetcher for on-demand runs; None opens a SocrataClient per run."""
    return None


# ── Areas ────────────────────────────────────────────────────────────────

@app.get("/api/areas", response_model=list[AreaOut])
def get_areas(borough: str = Query("manhattan")):
    if not borough_text_from_code(borough):
        raise HTTPException(status_code=400, detail=f"Invalid borough: {borough}")
    return [
        AreaOut(code=a.code, name=a.name, borough=a.borough, districts=list(a.districts))
        for a in list_areas(borough)
    ]


# ── Leads ────────────────────────────────────────────────────────────────

@app.get("/api/leads")
def get_leads(
    borough: str = Query(...),
    area: str | None = None,
    code: str | None = None,
    refresh: bool = False,
    fetcher=Depends(get_fetcher),
):
    try:
        resolved = resolve_area(borough, area, code)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    borough_name = borough_text_from_code(resolved.borough).lower()

    with store.get_db() as conn:
        if not refresh:
            cached = store.get_snapshot(conn, borough_name, resolved.code, resolved.name or None)
            if cached:
                return snapshot_payload(cached)

        log.info("running pipeline for %s %s %s", borough_name, resolved.code, resolved.name)
        snapshot = run_snapshot(borough, area, code, fetcher=fetcher)
        store.save_snapshot(conn, snapshot)
    return snapshot_payload(snapshot)


@app.get("/api/snapshots", response_model=list[SnapshotSummary])
def get_snapshots(borough: str | None = None):
    name = None
    if borough:
        name = borough_text_from_code(borough)
        if not name:
            raise HTTPException(status_code=400, detail=f"Invalid borough: {borough}")
        name = name.lower()
    with store.get_db() as conn:
        return store.list_snapshots(conn, name)
