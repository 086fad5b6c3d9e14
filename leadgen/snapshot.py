"""
Snapshot payloads: the cached, publishable form of one run.

Files land in <out_dir>/<borough-slug>/<areaCode>.json.
"""

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from .models import RunResult, Snapshot

SNAPSHOT_VERSION = 1


def borough_slug(borough) -> str:
    return re.sub(r"\s+", "-", str(borough or "").strip().lower())


def build_snapshot(result: RunResult, borough: str, area_code: str, area_name: str,
                   now: datetime | None = None) -> Snapshot:
    now = now or datetime.now(timezone.utc)
    return Snapshot(
        version=SNAPSHOT_VERSION,
        last_updated=now.isoformat(timespec="seconds").replace("+00:00", "Z"),
        borough=borough,
        area_code=area_code,
        area_name=area_name,
        leads=result.leads,
        stats=result.stats,
        progress=result.progress,
    )


def snapshot_payload(snapshot: Snapshot) -> dict:
    return snapshot.model_dump(mode="json", by_alias=True)


def snapshot_path(out_dir: Path, borough: str, area_code: str) -> Path:
    return Path(out_dir) / borough_slug(borough) / f"{area_code or 'area'}.json"


def write_snapshot(snapshot: Snapshot, out_dir: Path) -> Path:
    path = snapshot_path(out_dir, snapshot.borough, snapshot.area_code)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(snapshot_payload(snapshot), f, indent=2)
    return path


def load_snapshot(path: Path) -> Snapshot:
    with open(path) as f:
        return Snapshot.model_validate(json.load(f))
