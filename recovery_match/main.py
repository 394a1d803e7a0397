# recovery_match/main.py
from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from recovery_match.db import get_db
from recovery_match.errors import InvalidTransition, MatchingError, MatchNotFound
from recovery_match.match import repository as repo
from recovery_match.notify import EmailNotifier, Notifier
from recovery_match.schemas import (
    AwardIn, MatchUpdateIn, OpportunityMatchOut, RejectIn, ScanOut, WorkflowOut,
)
from recovery_match.scheduler import get_matching_service, get_scheduler_status, start_scheduler, stop_scheduler
from recovery_match.scripts.init_db import main as init_db_main
from recovery_match.settings import settings
from recovery_match.workflow import AwardWorkflow

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("api")

app = FastAPI(title="Opportunity Matching Engine")


# ---------- Startup / Shutdown ----------

@app.on_event("startup")
def startup():
    init_db_main()
    if settings.SCHEDULER_ENABLED:
        # Periodic opportunity matching
        start_scheduler()

@app.on_event("shutdown")
def shutdown():
    stop_scheduler()


# ---------- Dependencies / Errors ----------

def get_notifier() -> Notifier:
    return EmailNotifier()


def current_user_id(x_user_id: int | None = Header(default=None)) -> int:
    """The auth layer in front of this service sets X-User-Id for the signed-in user."""
    if x_user_id is None:
        raise HTTPException(401, "Not authenticated")
    return x_user_id


def get_workflow(s: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)) -> AwardWorkflow:
    return AwardWorkflow(s, notifier)


@app.exception_handler(MatchingError)
def matching_error_handler(request: Request, exc: MatchingError):
    if isinstance(exc, InvalidTransition):
        logger.info(f"{request.url.path}: {exc.message} (status {exc.current_status})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _match_out(m) -> dict:
    return OpportunityMatchOut.model_validate(m).model_dump(by_alias=True, mode="json")


# ---------- Root / Health ----------

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/scheduler/status")
def scheduler_status():
    """Get the current scheduler status and upcoming jobs."""
    return get_scheduler_status()


# ---------- Matching ----------

@app.post("/matching/run")
def run_matching():
    result = get_matching_service().run()
    if result.status == "skipped":
        body = ScanOut(success=False, message="Matching process is already running",
                       status=result.status, new_match_count=0)
        return JSONResponse(status_code=409, content=body.model_dump(by_alias=True))
    if result.status == "failed":
        body = ScanOut(success=False, message="Failed to run matching engine",
                       status=result.status, new_match_count=0, error=result.error)
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))
    return ScanOut(
        success=True,
        message=f"Matching process completed successfully. Found {result.new_matches} new matches.",
        status=result.status,
        new_match_count=result.new_matches,
    ).model_dump(by_alias=True)


@app.get("/matches")
def list_all_matches(organization_id: int | None = None, s: Session = Depends(get_db)):
    return [_match_out(m) for m in repo.list_matches(s, organization_id=organization_id)]


@app.get("/opportunities/{opportunity_id}/matches")
def opportunity_matches(opportunity_id: int, s: Session = Depends(get_db)):
    return [_match_out(m) for m in repo.list_matches(s, opportunity_id=opportunity_id)]


@app.get("/survivors/{survivor_id}/matches")
def survivor_matches(survivor_id: int, s: Session = Depends(get_db)):
    return [_match_out(m) for m in repo.list_matches(s, survivor_id=survivor_id)]


@app.get("/opportunities/{opportunity_id}/survivors/{survivor_id}/match")
def get_one_match(opportunity_id: int, survivor_id: int, s: Session = Depends(get_db)):
    m = repo.get_match(s, opportunity_id, survivor_id)
    if m is None:
        raise MatchNotFound(opportunity_id, survivor_id)
    return _match_out(m)


@app.patch("/opportunities/{opportunity_id}/survivors/{survivor_id}/match")
def update_match_status(
    opportunity_id: int,
    survivor_id: int,
    body: MatchUpdateIn,
    wf: AwardWorkflow = Depends(get_workflow),
):
    m = wf.update_status(opportunity_id, survivor_id, status=body.status, notes=body.notes,
                         award_amount=body.award_amount)
    return _match_out(m)


# ---------- Grant workflow ----------

@app.post("/apply/{opportunity_id}/survivors/{survivor_id}")
def apply_for_grant(
    opportunity_id: int,
    survivor_id: int,
    user_id: int = Depends(current_user_id),
    wf: AwardWorkflow = Depends(get_workflow),
):
    m = wf.apply(opportunity_id, survivor_id, actor_id=user_id)
    return WorkflowOut(message="Grant application submitted successfully",
                       match=OpportunityMatchOut.model_validate(m)).model_dump(by_alias=True, mode="json")


@app.post("/award/{opportunity_id}/survivors/{survivor_id}")
def award_grant(
    opportunity_id: int,
    survivor_id: int,
    body: AwardIn,
    user_id: int = Depends(current_user_id),
    wf: AwardWorkflow = Depends(get_workflow),
):
    m = wf.award(opportunity_id, survivor_id, actor_id=user_id, award_amount=body.award_amount, notes=body.notes)
    return WorkflowOut(message="Grant awarded successfully",
                       match=OpportunityMatchOut.model_validate(m)).model_dump(by_alias=True, mode="json")


@app.post("/fund/{opportunity_id}/survivors/{survivor_id}")
def fund_grant(
    opportunity_id: int,
    survivor_id: int,
    user_id: int = Depends(current_user_id),
    wf: AwardWorkflow = Depends(get_workflow),
):
    m = wf.fund(opportunity_id, survivor_id, actor_id=user_id)
    return WorkflowOut(message="Grant marked as funded successfully",
                       match=OpportunityMatchOut.model_validate(m)).model_dump(by_alias=True, mode="json")


@app.post("/reject/{opportunity_id}/survivors/{survivor_id}")
def reject_match(
    opportunity_id: int,
    survivor_id: int,
    body: RejectIn | None = None,
    user_id: int = Depends(current_user_id),
    wf: AwardWorkflow = Depends(get_workflow),
):
    m = wf.reject(opportunity_id, survivor_id, actor_id=user_id, notes=body.notes if body else None)
    return WorkflowOut(message="Match rejected",
                       match=OpportunityMatchOut.model_validate(m)).model_dump(by_alias=True, mode="json")
