"""
Match repository.

CRUD over opportunity matches, keyed by (opportunity_id, survivor_id), plus
the record-store lookups the engine needs. No workflow decisions here; the
caller owns the transaction (nothing in this module commits).
"""
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from recovery_match.errors import InvalidRequest, MatchNotFound
from recovery_match.models import FundingOpportunity, OpportunityMatch, User

_KEY_FIELDS = ("opportunity_id", "survivor_id")


def get_opportunity(session: Session, opportunity_id: int) -> FundingOpportunity | None:
    return session.get(FundingOpportunity, opportunity_id)


def get_survivor(session: Session, survivor_id: int) -> User | None:
    user = session.get(User, survivor_id)
    if user is None or user.user_type != "survivor":
        return None
    return user


def active_opportunities(session: Session) -> list[FundingOpportunity]:
    return list(session.scalars(
        select(FundingOpportunity).where(FundingOpportunity.status == "active").order_by(FundingOpportunity.id)
    ))


def survivors(session: Session) -> list[User]:
    return list(session.scalars(select(User).where(User.user_type == "survivor").order_by(User.id)))


def get_match(session: Session, opportunity_id: int, survivor_id: int) -> OpportunityMatch | None:
    return session.scalars(
        select(OpportunityMatch).where(
            OpportunityMatch.opportunity_id == opportunity_id,
            OpportunityMatch.survivor_id == survivor_id,
        )
    ).one_or_none()


def list_matches(
    session: Session,
    opportunity_id: int | None = None,
    survivor_id: int | None = None,
    organization_id: int | None = None,
) -> list[OpportunityMatch]:
    q = select(OpportunityMatch)
    if opportunity_id is not None:
        q = q.where(OpportunityMatch.opportunity_id == opportunity_id)
    if survivor_id is not None:
        q = q.where(OpportunityMatch.survivor_id == survivor_id)
    if organization_id is not None:
        q = q.join(FundingOpportunity, OpportunityMatch.opportunity_id == FundingOpportunity.id).where(
            FundingOpportunity.organization_id == organization_id
        )
    q = q.order_by(OpportunityMatch.match_score.desc(), OpportunityMatch.id)
    return list(session.scalars(q))


def create_match(session: Session, opportunity_id: int, survivor_id: int, **fields) -> OpportunityMatch:
    now = datetime.now()
    m = OpportunityMatch(
        opportunity_id=opportunity_id,
        survivor_id=survivor_id,
        created_at=now,
        updated_at=now,
        last_checked_at=now,
        **fields,
    )
    session.add(m)
    session.flush()
    return m


def update_match(session: Session, opportunity_id: int, survivor_id: int, **fields) -> OpportunityMatch:
    bad = [k for k in fields if k in _KEY_FIELDS or not hasattr(OpportunityMatch, k)]
    if bad:
        raise InvalidRequest(f"Cannot update match field(s): {', '.join(bad)}")
    m = get_match(session, opportunity_id, survivor_id)
    if m is None:
        raise MatchNotFound(opportunity_id, survivor_id)
    for k, v in fields.items():
        setattr(m, k, v)
    m.updated_at = datetime.now()
    session.add(m)
    session.flush()
    return m


def touch_match(session: Session, match: OpportunityMatch) -> None:
    """Stamp last_checked_at only."""
    match.last_checked_at = datetime.now()
    session.add(match)
