"""
Domain errors raised by the matching engine and the award workflow.

The HTTP layer maps these to status codes; batch code (the scheduler)
catches them at the run boundary.
"""


class MatchingError(Exception):
    """Base class for every error the engine raises on purpose."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


class InvalidRequest(MatchingError):
    """Malformed input, rejected before anything is written."""


class UnknownCriterion(InvalidRequest):
    """An eligibility criterion with an unknown type or a malformed shape."""


class NotFound(MatchingError):
    status_code = 404


class OpportunityNotFound(NotFound):
    def __init__(self, opportunity_id: int):
        super().__init__("Funding opportunity not found")
        self.opportunity_id = opportunity_id


class SurvivorNotFound(NotFound):
    def __init__(self, survivor_id: int):
        super().__init__("Survivor/client not found")
        self.survivor_id = survivor_id


class MatchNotFound(NotFound):
    def __init__(self, opportunity_id: int, survivor_id: int):
        super().__init__("Match not found")
        self.opportunity_id = opportunity_id
        self.survivor_id = survivor_id


class InvalidTransition(MatchingError):
    """The match is not in a status the requested transition starts from."""

    def __init__(self, message: str, current_status: str | None):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict:
        return {"message": self.message, "currentStatus": self.current_status}
