import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recovery_match.errors import UnknownCriterion
from recovery_match.match import repository as repo
from recovery_match.match.criteria import parse_criteria
from recovery_match.match.profile import build_profile
from recovery_match.match.scorer import score_profile
from recovery_match.models import FundingOpportunity, User

logger = logging.getLogger("matching")


def _match_opportunity(session: Session, opp: FundingOpportunity, criteria: list, people: list[User]) -> int:
    created = 0
    for survivor in people:
        existing = repo.get_match(session, opp.id, survivor.id)
        if existing is not None and existing.status != "pending":
            repo.touch_match(session, existing)
            continue

        result = score_profile(criteria, build_profile(session, survivor.id))

        if existing is not None:
            if existing.match_score != result.score or existing.match_criteria != result.detail:
                existing = repo.update_match(
                    session, opp.id, survivor.id, match_score=result.score, match_criteria=result.detail
                )
            repo.touch_match(session, existing)
            continue

        if result.eligible:
            repo.create_match(
                session,
                opp.id,
                survivor.id,
                match_score=result.score,
                match_criteria=result.detail,
                status="pending",
            )
            created += 1
    return created


def run_matching_engine(session: Session) -> int:
    """
    One scan of active opportunities x survivors.

    New eligible pairs get a `pending` match. Existing `pending` matches are
    rescored; matches further along the workflow only get last_checked_at
    stamped, never their status or audit fields.
    Commits once per opportunity. Returns the number of new matches.
    """
    opportunities = repo.active_opportunities(session)
    if not opportunities:
        logger.info("No active opportunities, nothing to match")
        return 0

    people = repo.survivors(session)
    if not people:
        logger.info("No survivors, nothing to match")
        return 0

    new_matches = 0
    for opp in opportunities:
        try:
            criteria = parse_criteria(opp.eligibility_criteria)
        except UnknownCriterion as e:
            logger.error(f"Skipping opportunity {opp.id} ({opp.name}): {e.message}")
            continue
        if not criteria:
            logger.debug(f"Opportunity {opp.id} has no eligibility criteria, skipping")
            continue

        # a match created by a direct application mid-scan collides on the
        # (opportunity, survivor) key; redo the opportunity once, it then
        # sees that row as existing
        for attempt in (1, 2):
            try:
                created = _match_opportunity(session, opp, criteria, people)
                session.commit()
                break
            except IntegrityError as e:
                session.rollback()
                if attempt == 2:
                    logger.error(f"Skipping opportunity {opp.id} ({opp.name}) after repeated conflicts: {e.orig}")
                    created = 0
                else:
                    logger.info(f"Opportunity {opp.id}: match created concurrently, rescanning")

        new_matches += created
        logger.info(f"Opportunity {opp.id} ({opp.name}): {created} new matches")

    return new_matches
