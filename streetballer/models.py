"""
Data models for the StreetBaller backend.
Domain objects only. No persistence or API logic.

Match lifecycle: scheduled → in-progress → pending-confirmation → completed,
with pending-confirmation → disputed → (completed | pending-confirmation)
when a captain rejects a reported score.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


# ---------- Match status (state machine) ----------
class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    PENDING_CONFIRMATION = "pending-confirmation"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class MatchFormat(str, Enum):
    FIVE = "5v5"
    SEVEN = "7v7"
    ELEVEN = "11v11"


# ---------- Dispute status ----------
class DisputeStatus(str, Enum):
    """open → resolved. Resolved is terminal."""
    OPEN = "open"
    RESOLVED = "resolved"


class MatchEventType(str, Enum):
    GOAL = "goal"
    ASSIST = "assist"
    OWN_GOAL = "own_goal"
    YELLOW_CARD = "yellow_card"
    RED_CARD = "red_card"
    SUBSTITUTION = "substitution"
    PENALTY = "penalty"
    PENALTY_SAVED = "penalty_saved"


CARD_EVENTS = frozenset({MatchEventType.YELLOW_CARD.value, MatchEventType.RED_CARD.value})


class TransactionType(str, Enum):
    AWARD = "award"
    PENALTY = "penalty"
    ADJUSTMENT = "adjustment"


class TeamRole(str, Enum):
    CAPTAIN = "captain"
    PLAYER = "player"


# ---------- User ----------
@dataclass
class User:
    """An account. password_hash is never serialized."""
    id: str
    name: str
    created_at: datetime
    username: str | None = None
    password_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }
        if self.username is not None:
            d["username"] = self.username
        return d


# ---------- PlayerProfile ----------
@dataclass
class PlayerProfile:
    """
    Player-facing profile keyed by user id.
    trust_points is the denormalized ledger balance (never negative).
    """
    user_id: str
    display_name: str
    trust_points: int
    created_at: datetime
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    goals_scored: int = 0
    assists: int = 0
    own_goals: int = 0
    cards: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "trust_points": self.trust_points,
            "games_played": self.games_played,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "goals_scored": self.goals_scored,
            "assists": self.assists,
            "own_goals": self.own_goals,
            "cards": self.cards,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Team ----------
@dataclass
class Team:
    id: str
    name: str
    created_by: str
    created_at: datetime
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_by": self.created_by,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TeamMembership:
    team_id: str
    user_id: str
    role: str  # TeamRole value
    joined_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": self.joined_at.isoformat(),
        }


# ---------- Match ----------
@dataclass
class Match:
    """
    A scheduled game between two teams.
    Scores are only meaningful once status is pending-confirmation, completed or disputed.
    score_contested marks a score rejected by a dispute; it must be re-submitted.
    """
    id: str
    team1_id: str
    team2_id: str
    pitch_id: str
    match_date: datetime
    format: str  # MatchFormat value
    status: str  # MatchStatus value
    created_at: datetime
    team1_score: int | None = None
    team2_score: int | None = None
    team1_captain_approved: bool = False
    team2_captain_approved: bool = False
    score_contested: bool = False
    created_by: str | None = None
    completed_at: datetime | None = None

    def has_team(self, team_id: str) -> bool:
        return team_id in (self.team1_id, self.team2_id)

    def other_team(self, team_id: str) -> str:
        return self.team2_id if team_id == self.team1_id else self.team1_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "team1_id": self.team1_id,
            "team2_id": self.team2_id,
            "pitch_id": self.pitch_id,
            "match_date": self.match_date.isoformat(),
            "format": self.format,
            "status": self.status,
            "team1_score": self.team1_score,
            "team2_score": self.team2_score,
            "team1_captain_approved": self.team1_captain_approved,
            "team2_captain_approved": self.team2_captain_approved,
            "score_contested": self.score_contested,
            "created_by": self.created_by,
            "completed_at": _iso(self.completed_at),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class MatchParticipation:
    """Evidence that a player took part in a match, on one side."""
    match_id: str
    player_id: str
    team_id: str
    joined_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "player_id": self.player_id,
            "team_id": self.team_id,
            "joined_at": self.joined_at.isoformat(),
        }


# ---------- MatchEvent ----------
@dataclass
class MatchEvent:
    id: str
    match_id: str
    event_type: str  # MatchEventType value
    player_id: str
    team_id: str
    minute: int
    second: int
    description: str
    created_at: datetime
    related_player_id: str | None = None
    player_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "event_type": self.event_type,
            "player_id": self.player_id,
            "player_name": self.player_name,
            "team_id": self.team_id,
            "minute": self.minute,
            "second": self.second,
            "description": self.description,
            "related_player_id": self.related_player_id,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Dispute ----------
@dataclass
class Dispute:
    id: str
    match_id: str
    disputing_team_id: str
    defending_team_id: str
    status: str  # DisputeStatus value
    created_at: datetime
    reason: str | None = None
    resolution_team_id: str | None = None
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "disputing_team_id": self.disputing_team_id,
            "defending_team_id": self.defending_team_id,
            "reason": self.reason,
            "status": self.status,
            "resolution_team_id": self.resolution_team_id,
            "resolved_at": _iso(self.resolved_at),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DisputeVote:
    id: str
    dispute_id: str
    player_id: str
    vote_for_team_id: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dispute_id": self.dispute_id,
            "player_id": self.player_id,
            "vote_for_team_id": self.vote_for_team_id,
            "created_at": self.created_at.isoformat(),
        }


# ---------- TrustTransaction ----------
@dataclass
class TrustTransaction:
    """One immutable ledger line. balance is the clamped balance after this entry."""
    id: str
    player_id: str
    transaction_type: str  # TransactionType value
    points: int
    balance: int
    reason: str
    created_at: datetime
    match_id: str | None = None
    dispute_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "balance": self.balance,
            "reason": self.reason,
            "match_id": self.match_id,
            "dispute_id": self.dispute_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DecisionResult:
    """Outcome of a captain decision: the match, plus the dispute when the score was rejected."""
    match: Match
    disputed: bool = False
    dispute: Dispute | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"disputed": self.disputed, "match": self.match.to_dict()}
        if self.dispute is not None:
            d["dispute"] = self.dispute.to_dict()
        return d


@dataclass
class VoteTally:
    """Per-team vote counts for a dispute against its quorum."""
    dispute_id: str
    total_participants: int
    required_votes: int
    votes_cast: int
    votes_by_team: dict[str, int] = field(default_factory=dict)

    @property
    def quorum_reached(self) -> bool:
        return self.votes_cast >= self.required_votes

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "total_participants": self.total_participants,
            "required_votes": self.required_votes,
            "votes_cast": self.votes_cast,
            "votes_by_team": dict(self.votes_by_team),
            "quorum_reached": self.quorum_reached,
        }
