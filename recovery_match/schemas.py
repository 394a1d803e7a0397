from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

MatchStatus = Literal["pending", "notified", "applied", "awarded", "funded", "rejected"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class OpportunityMatchOut(CamelModel):
    id: int
    opportunity_id: int
    survivor_id: int
    match_score: int
    match_criteria: dict
    status: str
    notes: str | None
    last_checked_at: datetime
    created_at: datetime
    updated_at: datetime
    applied_at: datetime | None
    applied_by_id: int | None
    awarded_at: datetime | None
    awarded_by_id: int | None
    award_amount: float | None
    funded_at: datetime | None
    funded_by_id: int | None
    rejected_at: datetime | None
    rejected_by_id: int | None
    capital_source_id: int | None
    opportunity_name: str | None = None
    survivor_name: str | None = None
    application_end_date: date | None = None


class MatchUpdateIn(CamelModel):
    status: MatchStatus | None = None
    notes: str | None = None
    award_amount: float | None = None


class AwardIn(CamelModel):
    # optional here so a missing amount reaches the workflow's own validation
    award_amount: float | None = None
    notes: str | None = None


class RejectIn(CamelModel):
    notes: str | None = None


class WorkflowOut(CamelModel):
    success: bool = True
    message: str
    match: OpportunityMatchOut


class ScanOut(CamelModel):
    success: bool
    message: str
    status: str
    new_match_count: int
    error: str | None = None
