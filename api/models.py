"""Pydantic response models for the leads API."""

from pydantic import BaseModel


class AreaOut(BaseModel):
    code: str
    name: str
    borough: str
    districts: list[str]


class SnapshotSummary(BaseModel):
    borough: str
    area_code: str
    area_name: str | None
    last_updated: str
    likely_sellers: int | None
    avg_score: float | None
    loans_maturing: int | None
    displayed_leads: int | None
    total_analyzed: int | None
