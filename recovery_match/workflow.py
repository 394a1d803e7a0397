"""
Grant-award workflow over opportunity matches.

    pending -> notified -> applied -> awarded -> funded
                 (any state before funded) -> rejected

Each transition checks its preconditions before touching anything, writes
the match (and, for award/fund/reject, the capital ledger) in a single
commit, then sends the survivor a best-effort notification. A failed
notification is logged and never undoes the transition.
"""
from __future__ import annotations

from datetime import datetime
import logging
import math

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recovery_match.errors import (
    InvalidRequest, InvalidTransition, MatchNotFound, OpportunityNotFound, SurvivorNotFound,
)
from recovery_match.match import repository as repo
from recovery_match.models import MATCH_STATUSES, CapitalSource, FundingOpportunity, OpportunityMatch, User
from recovery_match.notify import EmailNotifier, Notifier

logger = logging.getLogger("workflow")

DIRECT_APPLICATION_SCORE = 100


def grant_source_name(opportunity: FundingOpportunity) -> str:
    return f"{opportunity.name} Grant"


def _validate_amount(amount) -> float:
    if amount is None:
        raise InvalidRequest("Award amount is required")
    if isinstance(amount, bool):
        raise InvalidRequest("Award amount must be a number")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidRequest("Award amount must be a number") from None
    if not math.isfinite(value):
        raise InvalidRequest("Award amount must be a finite number")
    if value < 0:
        raise InvalidRequest("Award amount must be non-negative")
    return value


class AwardWorkflow:
    def __init__(self, session: Session, notifier: Notifier | None = None):
        self.session = session
        self.notifier = notifier if notifier is not None else EmailNotifier()

    # ---------- Lookups ----------

    def _load(self, opportunity_id: int, survivor_id: int) -> tuple[FundingOpportunity, User]:
        opp = repo.get_opportunity(self.session, opportunity_id)
        if opp is None:
            raise OpportunityNotFound(opportunity_id)
        survivor = repo.get_survivor(self.session, survivor_id)
        if survivor is None:
            raise SurvivorNotFound(survivor_id)
        return opp, survivor

    def _require_match(self, opportunity_id: int, survivor_id: int) -> OpportunityMatch:
        match = repo.get_match(self.session, opportunity_id, survivor_id)
        if match is None:
            raise MatchNotFound(opportunity_id, survivor_id)
        return match

    def _ledger_entry(self, match: OpportunityMatch, opp: FundingOpportunity) -> CapitalSource | None:
        if match.capital_source_id is not None:
            entry = self.session.get(CapitalSource, match.capital_source_id)
            if entry is not None:
                return entry
        # matches awarded before the ledger link existed
        return self.session.scalars(
            select(CapitalSource).where(
                CapitalSource.survivor_id == match.survivor_id,
                CapitalSource.type == "Grant",
                CapitalSource.name == grant_source_name(opp),
                CapitalSource.status == "projected",
            ).order_by(CapitalSource.id)
        ).first()

    def _notify(self, method: str, *args) -> bool:
        try:
            return bool(getattr(self.notifier, method)(*args))
        except Exception as e:
            logger.warning(f"{method} failed: {e!r}")
            return False

    # ---------- Transitions ----------

    def _mark_applied(self, match: OpportunityMatch, actor_id: int, now: datetime) -> OpportunityMatch:
        if match.status in ("awarded", "funded"):
            raise InvalidTransition("Cannot apply for a grant that has already been awarded", match.status)
        return repo.update_match(
            self.session, match.opportunity_id, match.survivor_id,
            status="applied", applied_at=now, applied_by_id=actor_id,
        )

    def apply(self, opportunity_id: int, survivor_id: int, actor_id: int) -> OpportunityMatch:
        opp, survivor = self._load(opportunity_id, survivor_id)
        match = repo.get_match(self.session, opportunity_id, survivor_id)
        now = datetime.now()

        try:
            if match is None:
                try:
                    # direct application, no scoring involved
                    match = repo.create_match(
                        self.session,
                        opportunity_id,
                        survivor_id,
                        match_score=DIRECT_APPLICATION_SCORE,
                        match_criteria={"direct_application": True},
                        status="applied",
                        applied_at=now,
                        applied_by_id=actor_id,
                    )
                except IntegrityError:
                    # a matching scan created the row after our lookup
                    self.session.rollback()
                    logger.info(f"Match for survivor {survivor_id}, opportunity {opportunity_id} appeared concurrently")
                    match = self._mark_applied(self._require_match(opportunity_id, survivor_id), actor_id, now)
            else:
                match = self._mark_applied(match, actor_id, now)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Survivor {survivor_id} applied for opportunity {opportunity_id} (by user {actor_id})")
        if survivor.email:
            self._notify(
                "send_grant_application_confirmation",
                survivor.email, opp.name, survivor.name, opp.organization_id,
            )
        return match

    def award(
        self, opportunity_id: int, survivor_id: int, actor_id: int, award_amount, notes: str | None = None
    ) -> OpportunityMatch:
        amount = _validate_amount(award_amount)
        opp, survivor = self._load(opportunity_id, survivor_id)
        match = self._require_match(opportunity_id, survivor_id)
        if match.status != "applied":
            raise InvalidTransition("Cannot award grant that hasn't been applied for", match.status)

        try:
            entry = CapitalSource(
                type="Grant",
                name=grant_source_name(opp),
                amount=amount,
                status="projected",  # until funds are released
                description=f"Individual assistance grant from {opp.name}",
                survivor_id=survivor_id,
                funding_category="individual_assistance",
            )
            self.session.add(entry)
            self.session.flush()

            match = repo.update_match(
                self.session, opportunity_id, survivor_id,
                status="awarded",
                awarded_at=datetime.now(),
                awarded_by_id=actor_id,
                award_amount=amount,
                notes=notes if notes is not None else match.notes,
                capital_source_id=entry.id,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Awarded {amount:.2f} to survivor {survivor_id} for opportunity {opportunity_id}")
        if survivor.email:
            self._notify(
                "send_grant_award_notification",
                survivor.email, opp.name, survivor.name, amount, opp.organization_id,
            )
        return match

    def fund(self, opportunity_id: int, survivor_id: int, actor_id: int) -> OpportunityMatch:
        opp, survivor = self._load(opportunity_id, survivor_id)
        match = self._require_match(opportunity_id, survivor_id)
        if match.status != "awarded":
            raise InvalidTransition("Cannot mark as funded a grant that hasn't been awarded", match.status)

        try:
            entry = self._ledger_entry(match, opp)
            if entry is not None:
                entry.status = "current"
                self.session.add(entry)
            else:
                logger.warning(
                    f"No projected ledger entry for survivor {survivor_id}, opportunity {opportunity_id}"
                )

            match = repo.update_match(
                self.session, opportunity_id, survivor_id,
                status="funded",
                funded_at=datetime.now(),
                funded_by_id=actor_id,
                capital_source_id=entry.id if entry is not None else match.capital_source_id,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Grant for survivor {survivor_id}, opportunity {opportunity_id} marked funded")
        if survivor.email:
            self._notify(
                "send_grant_funding_notification",
                survivor.email, opp.name, survivor.name, match.award_amount, opp.organization_id,
            )
        return match

    def reject(self, opportunity_id: int, survivor_id: int, actor_id: int, notes: str | None = None) -> OpportunityMatch:
        opp, _ = self._load(opportunity_id, survivor_id)
        match = self._require_match(opportunity_id, survivor_id)
        if match.status in ("funded", "rejected"):
            raise InvalidTransition(f"Cannot reject a grant that is already {match.status}", match.status)

        try:
            if match.status == "awarded":
                # the award never paid out, drop its projected ledger entry
                entry = self._ledger_entry(match, opp)
                if entry is not None and entry.status == "projected":
                    match.capital_source_id = None
                    self.session.flush()
                    self.session.delete(entry)

            match = repo.update_match(
                self.session, opportunity_id, survivor_id,
                status="rejected",
                rejected_at=datetime.now(),
                rejected_by_id=actor_id,
                notes=notes if notes is not None else match.notes,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Match for survivor {survivor_id}, opportunity {opportunity_id} rejected")
        return match

    def update_status(
        self,
        opportunity_id: int,
        survivor_id: int,
        status: str | None = None,
        notes: str | None = None,
        award_amount=None,
    ) -> OpportunityMatch:
        """Administrative overwrite of status/notes/award amount. No side effects."""
        fields: dict = {}
        if status is not None:
            if status not in MATCH_STATUSES:
                raise InvalidRequest(f"Invalid status {status!r}; expected one of {', '.join(MATCH_STATUSES)}")
            fields["status"] = status
        if notes is not None:
            fields["notes"] = notes
        if award_amount is not None:
            fields["award_amount"] = _validate_amount(award_amount)

        self._require_match(opportunity_id, survivor_id)
        if not fields:
            return repo.get_match(self.session, opportunity_id, survivor_id)

        try:
            match = repo.update_match(self.session, opportunity_id, survivor_id, **fields)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return match
