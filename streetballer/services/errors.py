"""
Domain errors raised by the services.

Each error has a stable machine-readable ``kind`` and a ``category`` the
request layer maps to an HTTP status. Messages are safe to show to clients.
"""
from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    ELIGIBILITY = "eligibility"
    AUXILIARY = "auxiliary"


class StreetBallerError(Exception):
    """Base class for domain errors."""

    kind = "error"
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


# ---------- Validation ----------


class ValidationError(StreetBallerError):
    """Malformed or out-of-range input, rejected before any write."""
    kind = "validation_error"
    category = ErrorCategory.VALIDATION


class InvalidScoreError(ValidationError):
    kind = "invalid_score"


# ---------- Not found ----------


class NotFoundError(StreetBallerError):
    kind = "not_found"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} with ID {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class MatchNotFoundError(NotFoundError):
    kind = "match_not_found"

    def __init__(self, match_id: str) -> None:
        super().__init__("Match", match_id)


class DisputeNotFoundError(NotFoundError):
    kind = "dispute_not_found"

    def __init__(self, dispute_id: str) -> None:
        super().__init__("Dispute", dispute_id)


class PlayerNotFoundError(NotFoundError):
    kind = "player_not_found"

    def __init__(self, player_id: str) -> None:
        super().__init__("Player", player_id)


class TeamNotFoundError(NotFoundError):
    kind = "team_not_found"

    def __init__(self, team_id: str) -> None:
        super().__init__("Team", team_id)


# ---------- State conflict ----------


class StateConflictError(StreetBallerError):
    """Entity is not in the right state for the requested transition."""
    kind = "state_conflict"
    category = ErrorCategory.STATE_CONFLICT


class InvalidMatchStateError(StateConflictError):
    kind = "invalid_match_state"


class NoPendingScoreError(StateConflictError):
    kind = "no_pending_score"


class DisputeAlreadyOpenError(StateConflictError):
    kind = "dispute_already_open"


class DisputeClosedError(StateConflictError):
    kind = "dispute_closed"


# ---------- Eligibility ----------


class EligibilityError(StreetBallerError):
    """Caller is not allowed to take part in this action."""
    kind = "not_eligible"
    category = ErrorCategory.ELIGIBILITY


class TeamNotInMatchError(EligibilityError):
    kind = "team_not_in_match"


class PlayerNotEligibleError(EligibilityError):
    kind = "player_not_eligible"


class DuplicateVoteError(EligibilityError):
    kind = "duplicate_vote"


# ---------- Auxiliary writes ----------


class LedgerPostingError(StreetBallerError):
    """Trust ledger postings failed after a dispute was already resolved."""
    kind = "ledger_posting_failed"
    category = ErrorCategory.AUXILIARY

    def __init__(self, dispute_id: str) -> None:
        super().__init__(
            f"Dispute {dispute_id} was resolved but trust points could not be posted"
        )
        self.dispute_id = dispute_id
