from dataclasses import dataclass, field
import math

from sqlalchemy.orm import Session

from recovery_match.models import FundingOpportunity, User
from recovery_match.match.criteria import evaluate, parse_criteria
from recovery_match.match.profile import SurvivorProfile, build_profile


@dataclass
class EligibilityResult:
    eligible: bool
    score: int
    detail: dict = field(default_factory=dict)


def _percent(matched: int, total: int) -> int:
    # round half up, so 1 of 8 criteria scores 13 rather than 12
    return int(math.floor(100 * matched / total + 0.5))


def score_profile(criteria: list, profile: SurvivorProfile) -> EligibilityResult:
    """Score already-parsed criteria against a profile. No I/O."""
    if not criteria:
        return EligibilityResult(eligible=False, score=0, detail={})

    matched = 0
    detail: dict = {}
    seen: dict[str, int] = {}
    for c in criteria:
        result = evaluate(c, profile)
        if result.matched:
            matched += 1
        seen[c.type] = seen.get(c.type, 0) + 1
        key = c.type if seen[c.type] == 1 else f"{c.type}_{seen[c.type]}"
        detail[key] = result.detail

    return EligibilityResult(eligible=matched > 0, score=_percent(matched, len(criteria)), detail=detail)


def score(session: Session, opportunity: FundingOpportunity, survivor: User) -> EligibilityResult:
    criteria = parse_criteria(opportunity.eligibility_criteria)
    if not criteria:
        return EligibilityResult(eligible=False, score=0, detail={})
    profile = build_profile(session, survivor.id)
    return score_profile(criteria, profile)
