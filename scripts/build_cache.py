#!/usr/bin/env python3
"""
Build lead snapshots for every selectable area of a borough.

Writes one JSON file per area under <out>/<borough>/<areaCode>.json and
upserts each snapshot into the sqlite store the API reads from.

Usage:
    python3 scripts/build_cache.py                          # all Manhattan areas
    python3 scripts/build_cache.py --area MN17              # one area
    python3 scripts/build_cache.py --borough 1 --out cache  # custom output dir
    python3 scripts/build_cache.py --list                   # show areas and exit
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from leadgen import store
from leadgen.areas import list_areas
from leadgen.config import Settings
from leadgen.errors import InvalidInput
from leadgen.normalize import borough_text_from_code
from leadgen.pipeline import run_snapshot
from leadgen.snapshot import write_snapshot

BASE_DIR = Path(__file__).resolve().parent.parent
AREA_PAUSE = 0.25

log = logging.getLogger(__name__)


def build_area(borough, area, out_dir: Path, conn, settings: Settings):
    snapshot = run_snapshot(borough, area.name, area.code, settings=settings)
    path = write_snapshot(snapshot, out_dir)
    store.save_snapshot(conn, snapshot)
    stats = snapshot.stats
    print(f"  {area.code:6s} {area.name:45s} {stats.displayed_leads:>4} leads  "
          f"{stats.likely_sellers:>4} likely  avg {stats.avg_score:.1f}  -> {path.name}")
    return snapshot


def main(argv=None):
    parser = argparse.ArgumentParser(description="Build lead snapshots per area")
    parser.add_argument("--borough", default="manhattan", help="Borough name or code (default: manhattan)")
    parser.add_argument("--area", help="Only build this area code (e.g. MN17)")
    parser.add_argument("--out", default=str(BASE_DIR / "cache"), help="Output directory for JSON files")
    parser.add_argument("--db", default=None, help="sqlite store path (default: LEADGEN_DB_PATH or leads_cache.db)")
    parser.add_argument("--list", action="store_true", help="List areas and exit")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(message)s")

    borough_name = borough_text_from_code(args.borough)
    if not borough_name:
        log.error(f"Invalid borough: {args.borough}")
        return 2

    areas = list_areas(args.borough)
    if args.area:
        areas = [a for a in areas if a.code == args.area.upper()]
        if not areas:
            log.error(f"Unknown area code for {borough_name}: {args.area}")
            return 2

    if args.list:
        for a in areas:
            print(f"  {a.code:6s} {a.name:45s} CD {','.join(a.districts)}")
        return 0

    settings = Settings.from_env()
    out_dir = Path(args.out)

    print("=" * 70)
    print(f"  LEAD CACHE BUILD — {borough_name}")
    print("=" * 70)
    print(f"  Areas: {len(areas)} | Output: {out_dir}")
    print()

    t0 = time.time()
    built, failed = 0, []
    with store.get_db(args.db) as conn:
        for i, area in enumerate(areas):
            if i:
                time.sleep(AREA_PAUSE)
            try:
                build_area(args.borough, area, out_dir, conn, settings)
                built += 1
            except InvalidInput as e:
                log.error(f"{area.code}: {e}")
                failed.append(area.code)
            except Exception:
                log.exception(f"{area.code} ({area.name}) failed")
                failed.append(area.code)

    print()
    print(f"Built {built}/{len(areas)} areas in {time.time() - t0:.1f}s")
    if failed:
        print(f"Failed: {', '.join(failed)}")
    return 1 if failed and not built else 0


if __name__ == "__main__":
    sys.exit(main())
