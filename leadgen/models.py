"""Pydantic models for parcels, run progress and snapshot payloads."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import BASE_SCORE


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Stages ───────────────────────────────────────────────────────────────

class Stage(str, Enum):
    BASE = "base"
    DEEDS = "deeds"
    PERMITS = "permits"
    COMPLAINTS = "complaints"
    VIOLATIONS = "violations"
    REGISTRATIONS = "registrations"
    MORTGAGES = "mortgages"
    SCORE = "score"


STAGE_ORDER = list(Stage)


class StageState(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    DONE = "done"
    ERROR = "error"
    SKIPPED = "skipped"


class StageStatus(WireModel):
    state: StageState = StageState.PENDING
    records: int = 0
    matched: int | None = None
    failed_batches: int = 0
    total_batches: int = 0
    message: str | None = None

    @property
    def label(self) -> str:
        if self.state == StageState.PENDING:
            return "pending…"
        if self.state == StageState.LOADING:
            return "loading…"
        if self.state == StageState.ERROR:
            return f"Error: {self.message or 'unknown error'}"
        if self.state == StageState.SKIPPED:
            return self.message or "skipped"
        if self.message:
            return self.message
        text = f"{self.records} records"
        if self.matched is not None:
            text += f" ({self.matched} matched)"
        if self.failed_batches:
            text += f", {self.failed_batches}/{self.total_batches} batches failed"
        return text


class RunProgress:
    """Per-stage status in stage order. Stages only move forward."""

    def __init__(self, on_change=None):
        self._statuses = {stage: StageStatus() for stage in STAGE_ORDER}
        self._on_change = on_change
        self._current = -1

    def __getitem__(self, stage: Stage) -> StageStatus:
        return self._statuses[stage]

    def update(self, stage: Stage, status: StageStatus):
        index = STAGE_ORDER.index(stage)
        if index < self._current:
            raise ValueError(f"progress for {stage.value} after {STAGE_ORDER[self._current].value}")
        self._current = index
        self._statuses[stage] = status
        if self._on_change:
            self._on_change(stage, status)

    def start(self, stage: Stage):
        self.update(stage, StageStatus(state=StageState.LOADING))

    def labels(self) -> dict[str, str]:
        return {stage.value: status.label for stage, status in self._statuses.items()}

    def statuses(self) -> dict[str, StageStatus]:
        return {stage.value: status for stage, status in self._statuses.items()}


# ── Parcels ──────────────────────────────────────────────────────────────

class Parcel(WireModel):
    bbl: str
    pluto: dict = Field(default_factory=dict)
    address: str | None = None
    ntaname: str | None = None
    owner_name: str | None = None

    last_sale_date: str | None = None
    last_deed_type: str | None = None
    document_id: str | None = None
    tenure_months: int | None = None

    score: float = BASE_SCORE
    signal_badges: list[str] = Field(default_factory=list)

    deeds: list[dict] = Field(default_factory=list)
    mortgages: list[dict] = Field(default_factory=list)
    permits: list[dict] = Field(default_factory=list)
    complaints: list[dict] = Field(default_factory=list)
    violations: list[dict] = Field(default_factory=list)
    registration: dict | None = None
    portfolio: list[str] = Field(default_factory=list)
    portfolio_size: int = 0

    # filled in by the scorer
    permits_last_12_months: int = 0
    renovation_permits: int = 0
    job_types: list[str] = Field(default_factory=list)
    complaints_last_30_days: int = 0
    complaints_per_unit_30_days: float = 0.0
    complaint_types: list[str] = Field(default_factory=list)
    violations_class_a: int = 0
    violations_class_b: int = 0
    violations_class_c: int = 0
    remaining_far: float | None = None
    loan_near_maturity: bool = False
    loan_maturity_term: int | None = None
    oldest_mortgage_years: float | None = None
    estate_deed: bool = False
    flip_pattern: bool = False

    @property
    def block(self) -> str:
        return self.bbl[1:6]


class RunStats(WireModel):
    likely_sellers: int = 0
    avg_score: float = 0.0
    loans_maturing: int = 0
    displayed_leads: int = 0
    total_analyzed: int = 0


class RunResult(BaseModel):
    leads: list[Parcel] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
    progress: dict[str, str] = Field(default_factory=dict)
    stage_statuses: dict[str, StageStatus] = Field(default_factory=dict)


class Snapshot(WireModel):
    version: int = 1
    last_updated: str
    borough: str
    area_code: str
    area_name: str
    leads: list[Parcel] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
    progress: dict[str, str] = Field(default_factory=dict)
