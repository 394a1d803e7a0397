"""
Eligibility criteria: the tagged union stored on a funding opportunity and
the pure evaluator that checks one criterion against a survivor profile.

Stored shape (JSON list on FundingOpportunity.eligibility_criteria):

    [{"type": "zipCode", "ranges": [{"min": "70000", "max": "70199"}]},
     {"type": "income", "ranges": [{"min": 0, "max": 30000}]},
     {"type": "householdSize", "ranges": [{"min": 3, "max": 8}]},
     {"type": "disasterEvent", "events": ["ida-2021"]},
     {"type": "custom", "key": "veteran", "values": ["true"]}]
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from recovery_match.errors import UnknownCriterion
from recovery_match.match.profile import SurvivorProfile

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")


class Range(BaseModel):
    """Inclusive numeric range. A range with a missing or blank bound matches nothing."""

    model_config = ConfigDict(extra="ignore")

    min: float | None = None
    max: float | None = None

    @field_validator("min", "max", mode="before")
    @classmethod
    def _coerce_bound(cls, v: Any):
        # zip ranges come in as strings ("70112", "70112-1234", "")
        if v is None or isinstance(v, (int, float)):
            return v
        if isinstance(v, str):
            if not v.strip():
                return None
            m = _LEADING_NUMBER.match(v)
            if m:
                return float(m.group(1))
        raise ValueError(f"range bound must be a number, got {v!r}")

    def contains(self, value: float) -> bool:
        if self.min is None or self.max is None:
            return False
        return self.min <= value <= self.max


class ZipCodeCriterion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["zipCode"] = "zipCode"
    ranges: list[Range] = Field(default_factory=list)


class IncomeCriterion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["income"] = "income"
    ranges: list[Range] = Field(default_factory=list, validation_alias=AliasChoices("ranges", "incomeRanges"))


class HouseholdSizeCriterion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["householdSize"] = "householdSize"
    ranges: list[Range] = Field(default_factory=list, validation_alias=AliasChoices("ranges", "sizeRanges"))


class DisasterEventCriterion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["disasterEvent"] = "disasterEvent"
    events: list[str] = Field(default_factory=list)

    @field_validator("events")
    @classmethod
    def _strip_events(cls, v: list[str]) -> list[str]:
        return [e.strip() for e in v if e and e.strip()]


class CustomCriterion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["custom"] = "custom"
    key: str = Field(validation_alias=AliasChoices("key", "name"))
    values: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fold_single_value(cls, data: Any):
        # the opportunity form posts a single "value"
        if isinstance(data, dict) and "values" not in data and data.get("value") is not None:
            data = {**data, "values": [data["value"]]}
        return data


Criterion = Annotated[
    Union[ZipCodeCriterion, IncomeCriterion, HouseholdSizeCriterion, DisasterEventCriterion, CustomCriterion],
    Field(discriminator="type"),
]

_criteria_adapter = TypeAdapter(list[Criterion])


def parse_criteria(raw: Any) -> list:
    """Load stored criteria into typed variants. Unknown or malformed entries raise."""
    if raw is None or raw == {} or raw == []:
        return []
    if not isinstance(raw, list):
        raise UnknownCriterion(f"eligibility criteria must be a list, got {type(raw).__name__}")
    try:
        return _criteria_adapter.validate_python(raw)
    except ValidationError as e:
        raise UnknownCriterion(f"invalid eligibility criteria: {e.errors()[0].get('msg')}") from e


# ---------- Evaluation ----------

@dataclass
class CriterionResult:
    matched: bool
    detail: dict = field(default_factory=dict)


def _zip_number(zip_code: str) -> int | None:
    m = re.match(r"\s*(\d+)", zip_code)
    return int(m.group(1)) if m else None


def _eval_zip_code(c: ZipCodeCriterion, profile: SurvivorProfile) -> CriterionResult:
    if not profile.zip_code:
        return CriterionResult(False, {"matches": False, "reason": "No property or zip code found"})
    zip_num = _zip_number(profile.zip_code)
    matched = zip_num is not None and any(r.contains(zip_num) for r in c.ranges)
    return CriterionResult(matched, {"matches": matched, "value": profile.zip_code})


def _eval_income(c: IncomeCriterion, profile: SurvivorProfile) -> CriterionResult:
    matched = any(r.contains(profile.household_income) for r in c.ranges)
    return CriterionResult(matched, {"matches": matched, "value": profile.household_income})


def _eval_household_size(c: HouseholdSizeCriterion, profile: SurvivorProfile) -> CriterionResult:
    matched = any(r.contains(profile.household_size) for r in c.ranges)
    return CriterionResult(matched, {"matches": matched, "value": profile.household_size})


def _eval_disaster_event(c: DisasterEventCriterion, profile: SurvivorProfile) -> CriterionResult:
    matched = bool(set(c.events) & set(profile.disaster_events))
    events = [f"disaster:{e}" for e in profile.disaster_events]
    return CriterionResult(matched, {"matches": matched, "events": events})


def _eval_custom(c: CustomCriterion, profile: SurvivorProfile) -> CriterionResult:
    tags = set(profile.qualifying_tags)
    matched = any(f"{c.key}:{v}" in tags for v in c.values)
    return CriterionResult(matched, {"matches": matched, "key": c.key, "tags": list(profile.qualifying_tags)})


EVALUATORS: dict[type, Callable[[Any, SurvivorProfile], CriterionResult]] = {
    ZipCodeCriterion: _eval_zip_code,
    IncomeCriterion: _eval_income,
    HouseholdSizeCriterion: _eval_household_size,
    DisasterEventCriterion: _eval_disaster_event,
    CustomCriterion: _eval_custom,
}


def evaluate(criterion, profile: SurvivorProfile) -> CriterionResult:
    fn = EVALUATORS.get(type(criterion))
    if fn is None:
        raise UnknownCriterion(f"no evaluator for criterion {type(criterion).__name__}")
    return fn(criterion, profile)
