"""
Service layer: domain logic and state machines.
MatchService orchestrates scoring and approval; DisputeResolver settles rejected scores.
"""
from .errors import (
    ErrorCategory,
    StreetBallerError,
    ValidationError,
    InvalidScoreError,
    NotFoundError,
    MatchNotFoundError,
    DisputeNotFoundError,
    PlayerNotFoundError,
    TeamNotFoundError,
    StateConflictError,
    InvalidMatchStateError,
    NoPendingScoreError,
    DisputeAlreadyOpenError,
    DisputeClosedError,
    EligibilityError,
    TeamNotInMatchError,
    PlayerNotEligibleError,
    DuplicateVoteError,
    LedgerPostingError,
)
from .trust_ledger import LedgerEntry, TrustLedger
from .match_event_service import MatchEventLog, SubmittedEvent
from .completion_stats import CompletionStatsRecorder
from .dispute_service import DisputeResolver
from .match_service import MatchService

__all__ = [
    "ErrorCategory",
    "StreetBallerError",
    "ValidationError",
    "InvalidScoreError",
    "NotFoundError",
    "MatchNotFoundError",
    "DisputeNotFoundError",
    "PlayerNotFoundError",
    "TeamNotFoundError",
    "StateConflictError",
    "InvalidMatchStateError",
    "NoPendingScoreError",
    "DisputeAlreadyOpenError",
    "DisputeClosedError",
    "EligibilityError",
    "TeamNotInMatchError",
    "PlayerNotEligibleError",
    "DuplicateVoteError",
    "LedgerPostingError",
    "LedgerEntry",
    "TrustLedger",
    "MatchEventLog",
    "SubmittedEvent",
    "CompletionStatsRecorder",
    "DisputeResolver",
    "MatchService",
]
