"""
sqlite store for the latest snapshot per (borough, area).

Each row holds the full JSON payload plus the stats columns the API lists
without decoding payloads.
"""

import json
import os
import sqlite3
from contextlib import contextmanager

from .models import Snapshot
from .snapshot import snapshot_payload

DATA_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DB_PATH = os.environ.get("LEADGEN_DB_PATH", os.path.join(DATA_DIR, "leads_cache.db"))


def init_db(path: str | None = None) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path or DB_PATH), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=30000")
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS snapshots (
            borough         TEXT NOT NULL,
            area_code       TEXT NOT NULL,
            area_name       TEXT,
            last_updated    TEXT NOT NULL,
            version         INTEGER,
            likely_sellers  INTEGER,
            avg_score       REAL,
            loans_maturing  INTEGER,
            displayed_leads INTEGER,
            total_analyzed  INTEGER,
            payload         TEXT NOT NULL,   -- JSON snapshot
            PRIMARY KEY (borough, area_code, area_name)
        );

        CREATE INDEX IF NOT EXISTS idx_snapshots_updated ON snapshots(last_updated);
    """)
    conn.commit()
    return conn


@contextmanager
def get_db(path: str | None = None):
    conn = init_db(path)
    try:
        yield conn
    finally:
        conn.close()


def save_snapshot(conn: sqlite3.Connection, snapshot: Snapshot):
    stats = snapshot.stats
    conn.execute(
        "INSERT OR REPLACE INTO snapshots (borough, area_code, area_name, last_updated, version, "
        "likely_sellers, avg_score, loans_maturing, displayed_leads, total_analyzed, payload) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (snapshot.borough, snapshot.area_code, snapshot.area_name, snapshot.last_updated,
         snapshot.version, stats.likely_sellers, stats.avg_score, stats.loans_maturing,
         stats.displayed_leads, stats.total_analyzed, json.dumps(snapshot_payload(snapshot))),
    )
    conn.commit()


def get_snapshot(conn: sqlite3.Connection, borough: str, area_code: str,
                 area_name: str | None = None) -> Snapshot | None:
    q = "SELECT payload FROM snapshots WHERE borough = ? AND area_code = ?"
    params = [borough, area_code]
    if area_name:
        q += " AND area_name = ?"
        params.append(area_name)
    row = conn.execute(q + " ORDER BY last_updated DESC LIMIT 1", params).fetchone()
    if row is None:
        return None
    return Snapshot.model_validate(json.loads(row["payload"]))


def list_snapshots(conn: sqlite3.Connection, borough: str | None = None) -> list[dict]:
    q = """SELECT borough, area_code, area_name, last_updated, likely_sellers, avg_score,
                  loans_maturing, displayed_leads, total_analyzed
           FROM snapshots"""
    params = []
    if borough:
        q += " WHERE borough = ?"
        params.append(borough)
    rows = conn.execute(q + " ORDER BY borough, area_code", params).fetchall()
    return [dict(r) for r in rows]
