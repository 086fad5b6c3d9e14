"""
Run orchestration: one forward pass over the stages

    base -> deeds -> permits -> complaints -> violations
         -> registrations -> mortgages -> score

Stages run one after another against the same ParcelRoster. A stage that
fails is recorded as "Error: ..." in the run progress and the next stage
runs without that dataset. Only an empty base roster ends a run early.
Once the borough/area validate, run() does not raise.
"""

import logging
from datetime import date

from .areas import Area, normalize_area_name, resolve_area
from .config import PLUTO_ENDPOINT, ScoringConfig, Settings
from .errors import StageFetchError
from .linker import (
    LinkReport,
    ParcelRoster,
    build_owner_portfolio,
    build_roster,
    link_complaints,
    link_deeds,
    link_mortgages,
    link_permits,
    link_registrations,
    link_violations,
)
from .models import (
    STAGE_ORDER,
    Parcel,
    RunProgress,
    RunResult,
    RunStats,
    Snapshot,
    Stage,
    StageState,
    StageStatus,
)
from .normalize import borough_text_from_code, pluto_borough_code, to_int
from .scoring import score_parcel
from .snapshot import build_snapshot
from .socrata import SocrataClient, as_fetcher, fetch_all_pages, soql_quote

log = logging.getLogger(__name__)


def filter_area_rows(rows: list[dict], area: Area) -> list[dict]:
    """Keep the PLUTO rows inside the area's community districts."""
    if area.districts:
        wanted = set(area.districts)
        return [r for r in rows if str(to_int(r.get("cd") or r.get("borocd"))) in wanted]
    if area.name and any(r.get("ntaname") for r in rows):
        name = normalize_area_name(area.name)
        return [r for r in rows if normalize_area_name(r.get("ntaname")) == name]
    log.warning("no district or NTA filter for %s %s; no rows kept", area.code, area.name)
    return []


def report_status(report: LinkReport) -> StageStatus:
    return StageStatus(
        state=StageState.DONE,
        records=report.fetched,
        matched=report.matched,
        failed_batches=report.failed_batches,
        total_batches=report.total_batches,
        message=report.message if not report.failed_batches else None,
    )


def compute_stats(analyzed: list[Parcel], displayed: list[Parcel], cfg: ScoringConfig) -> RunStats:
    avg = round(sum(p.score for p in displayed) / len(displayed), 1) if displayed else 0.0
    return RunStats(
        likely_sellers=sum(1 for p in analyzed if p.score >= cfg.likely_seller_score),
        avg_score=avg,
        loans_maturing=sum(1 for p in analyzed if p.loan_near_maturity),
        displayed_leads=len(displayed),
        total_analyzed=len(analyzed),
    )


class Pipeline:
    """State for one run. Owns the roster for the duration of the run."""

    def __init__(self, area: Area, fetcher, settings: Settings, scoring: ScoringConfig,
                 today: date, on_progress=None, should_stop=None):
        self.area = area
        self.fetcher = fetcher
        self.settings = settings
        self.scoring = scoring
        self.today = today
        self.should_stop = should_stop
        self.progress = RunProgress(on_progress)
        self.roster = ParcelRoster(area.borough)

    def result(self, leads=None, stats=None) -> RunResult:
        return RunResult(
            leads=leads or [],
            stats=stats or RunStats(),
            progress=self.progress.labels(),
            stage_statuses=self.progress.statuses(),
        )

    def skip_remaining(self, after: Stage, message: str):
        for stage in STAGE_ORDER[STAGE_ORDER.index(after) + 1:]:
            self.progress.update(stage, StageStatus(state=StageState.SKIPPED, message=message))

    # ── stages ──

    def fetch_base(self) -> bool:
        stage = Stage.BASE
        self.progress.start(stage)
        where = f"borough={soql_quote(pluto_borough_code(self.area.borough))}"
        result = fetch_all_pages(
            self.fetcher, PLUTO_ENDPOINT, where=where, page_size=self.settings.page_size,
            delay=self.settings.page_delay, should_stop=self.should_stop,
        )
        rows = filter_area_rows(result.records, self.area)
        self.roster = build_roster(rows, self.area.borough)
        log.info("base: %d PLUTO rows, %d in %s, %d parcels",
                 len(result), len(rows), self.area.name or self.area.code, len(self.roster))

        if not len(self.roster):
            if result.failures:
                status = StageStatus(state=StageState.ERROR, message=result.error)
            else:
                status = StageStatus(state=StageState.DONE, records=0,
                                     message=f"No base records for {self.area.name or self.area.code}")
            self.progress.update(stage, status)
            self.skip_remaining(stage, "skipped (no base records)")
            return False

        self.progress.update(stage, StageStatus(
            state=StageState.DONE,
            records=len(self.roster),
            failed_batches=len(result.failures),
            total_batches=result.batches,
            message=None if result.failures else f"{len(result)} records found, {len(self.roster)} parcels",
        ))
        return True

    def link(self, stage: Stage, fn, *args):
        if self.should_stop and self.should_stop():
            self.progress.update(stage, StageStatus(state=StageState.SKIPPED, message="cancelled"))
            return
        self.progress.start(stage)
        try:
            report = fn(self.roster, self.fetcher, self.settings, *args, should_stop=self.should_stop)
        except StageFetchError as e:
            log.warning("%s: %s", stage.value, e)
            self.progress.update(stage, StageStatus(state=StageState.ERROR, message=str(e)))
            return
        except Exception as e:
            log.exception("%s stage failed", stage.value)
            self.progress.update(stage, StageStatus(state=StageState.ERROR, message=str(e)))
            return
        log.info("%s: %d fetched, %d matched, %d dropped, %d/%d batches failed", stage.value,
                 report.fetched, report.matched, report.dropped, report.failed_batches, report.total_batches)
        self.progress.update(stage, report_status(report))

    def score(self) -> RunResult:
        stage = Stage.SCORE
        self.progress.start(stage)
        for parcel in self.roster:
            score_parcel(parcel, self.today, self.scoring)
        analyzed = [p for p in self.roster if p.address]
        analyzed.sort(key=lambda p: p.score, reverse=True)
        displayed = analyzed[:self.settings.max_leads]
        stats = compute_stats(analyzed, displayed, self.scoring)
        self.progress.update(stage, StageStatus(
            state=StageState.DONE,
            records=len(analyzed),
            message=f"Complete: {len(displayed)} leads shown of {len(analyzed)} analyzed "
                    f"({stats.loans_maturing} with maturing loans)",
        ))
        return self.result(displayed, stats)

    def execute(self) -> RunResult:
        if not self.fetch_base():
            return self.result()
        self.link(Stage.DEEDS, link_deeds)
        self.link(Stage.PERMITS, link_permits)
        self.link(Stage.COMPLAINTS, link_complaints, self.today)
        self.link(Stage.VIOLATIONS, link_violations)
        self.link(Stage.REGISTRATIONS, link_registrations)
        build_owner_portfolio(self.roster)
        self.link(Stage.MORTGAGES, link_mortgages)
        return self.score()


def run(borough, area_name=None, area_code=None, fetcher=None, on_progress=None,
        today: date | None = None, settings: Settings | None = None,
        scoring: ScoringConfig | None = None, should_stop=None) -> RunResult:
    """Build, link and score the parcels of one area.

    fetcher is anything with fetch(endpoint, params) -> rows (or a bare
    callable); by default a SocrataClient is opened for the run.
    on_progress(stage, status) is called on every stage transition.
    Raises InvalidInput for a bad borough/area and nothing else.
    """
    area = resolve_area(borough, area_name, area_code)
    settings = settings or Settings.from_env()
    own_client = fetcher is None
    if own_client:
        fetcher = SocrataClient(settings.app_token, settings.request_timeout)
    try:
        pipeline = Pipeline(area, as_fetcher(fetcher), settings, scoring or ScoringConfig(),
                            today or date.today(), on_progress, should_stop)
        return pipeline.execute()
    finally:
        if own_client:
            fetcher.close()


def run_snapshot(borough, area_name=None, area_code=None, **kwargs) -> Snapshot:
    area = resolve_area(borough, area_name, area_code)
    result = run(borough, area_name, area_code, **kwargs)
    return build_snapshot(result, borough_text_from_code(area.borough).lower(),
                          area.code, area.name)
