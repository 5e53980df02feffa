"""
Match-centric service: scheduling, participation, score submission and
captain approval.

Match lifecycle: scheduled → in-progress → pending-confirmation → completed.
A captain rejection moves pending-confirmation → disputed; the dispute
resolver takes it from there.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Iterable

from streetballer.models import DecisionResult, Match, MatchFormat, MatchParticipation, MatchStatus
from streetballer.persistence.db import transaction
from streetballer.persistence.repositories import (
    MatchRepository,
    PlayerProfileRepository,
    TeamRepository,
)
from streetballer.services.completion_stats import CompletionStatsRecorder
from streetballer.services.dispute_service import DisputeResolver
from streetballer.services.errors import (
    DisputeAlreadyOpenError,
    InvalidMatchStateError,
    InvalidScoreError,
    MatchNotFoundError,
    NoPendingScoreError,
    PlayerNotFoundError,
    StreetBallerError,
    TeamNotFoundError,
    TeamNotInMatchError,
    ValidationError,
)
from streetballer.services.match_event_service import MatchEventLog, SubmittedEvent, validate_submitted_event

logger = logging.getLogger(__name__)

# ---------- Valid transitions ----------

# Completion and disputes have their own guarded paths below and in DisputeResolver
_VALID_TRANSITIONS: dict[str, set[str]] = {
    MatchStatus.SCHEDULED.value: {MatchStatus.IN_PROGRESS.value, MatchStatus.PENDING_CONFIRMATION.value},
    MatchStatus.IN_PROGRESS.value: {MatchStatus.PENDING_CONFIRMATION.value},
    MatchStatus.PENDING_CONFIRMATION.value: set(),
    MatchStatus.DISPUTED.value: set(),
    MatchStatus.COMPLETED.value: set(),
}

# Statuses in which players may still be added to a match
_ROSTER_OPEN_STATUSES = frozenset({
    MatchStatus.SCHEDULED.value,
    MatchStatus.IN_PROGRESS.value,
    MatchStatus.PENDING_CONFIRMATION.value,
})


def _validate_score(name: str, value: object) -> int:
    # bool is an int subclass; a True/False score is a client bug
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScoreError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidScoreError(f"{name} must be non-negative, got {value}")
    return value


def _parse_match_date(value: datetime | str) -> datetime:
    """Parse and normalize to UTC. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        when = value
    else:
        try:
            when = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            raise ValidationError(f"match_date must be an ISO-8601 datetime, got {value!r}") from None
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


class MatchService:
    """
    Domain logic for matches: state transitions, score submission, captain approval.
    Persistence is delegated to repositories; disputes to DisputeResolver.
    """

    def __init__(
        self,
        match_repo: MatchRepository | None = None,
        team_repo: TeamRepository | None = None,
        profile_repo: PlayerProfileRepository | None = None,
        event_log: MatchEventLog | None = None,
        resolver: DisputeResolver | None = None,
        completion_stats: CompletionStatsRecorder | None = None,
    ) -> None:
        self._match_repo = match_repo or MatchRepository()
        self._team_repo = team_repo or TeamRepository()
        self._profile_repo = profile_repo or PlayerProfileRepository()
        self._event_log = event_log or MatchEventLog(
            match_repo=self._match_repo, profile_repo=self._profile_repo, team_repo=self._team_repo
        )
        self._completion_stats = completion_stats or CompletionStatsRecorder(
            match_repo=self._match_repo, profile_repo=self._profile_repo
        )
        self._resolver = resolver or DisputeResolver(
            match_repo=self._match_repo, completion_stats=self._completion_stats
        )

    # ---------- Scheduling ----------

    def create_match(
        self,
        conn: sqlite3.Connection,
        team1_id: str,
        team2_id: str,
        pitch_id: str,
        match_date: datetime | str,
        format: str,
        created_by: str | None = None,
    ) -> Match:
        if team1_id == team2_id:
            raise ValidationError("A match needs two different teams")
        try:
            format = MatchFormat(format).value
        except ValueError:
            allowed = ", ".join(f.value for f in MatchFormat)
            raise ValidationError(f"format must be one of {allowed}, got {format!r}") from None
        if not pitch_id:
            raise ValidationError("pitch_id is required")
        when = _parse_match_date(match_date)
        with transaction(conn):
            for tid in (team1_id, team2_id):
                if self._team_repo.get(conn, tid) is None:
                    raise TeamNotFoundError(tid)
            match = self._match_repo.create(
                conn,
                team1_id=team1_id,
                team2_id=team2_id,
                pitch_id=pitch_id,
                match_date=when,
                format=format,
                created_by=created_by,
            )
        logger.info("Match created: match=%s %s vs %s on %s", match.id, team1_id, team2_id, when.isoformat())
        return match

    def get_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    def list_team_matches(self, conn: sqlite3.Connection, team_id: str) -> list[Match]:
        if self._team_repo.get(conn, team_id) is None:
            raise TeamNotFoundError(team_id)
        return self._match_repo.list_by_team(conn, team_id)

    def list_upcoming(self, conn: sqlite3.Connection) -> list[Match]:
        return self._match_repo.list_upcoming(conn, datetime.now(timezone.utc).isoformat())

    def _transition(self, conn: sqlite3.Connection, match_id: str, new_status: str) -> Match:
        with transaction(conn):
            match = self.get_match(conn, match_id)
            allowed = _VALID_TRANSITIONS.get(match.status, set())
            if new_status not in allowed:
                raise InvalidMatchStateError(
                    f"Invalid transition: {match.status} -> {new_status}"
                )
            self._match_repo.update_status(conn, match_id, new_status, expected_status=match.status)
            match = self.get_match(conn, match_id)
        logger.info("Match %s status -> %s", match_id, new_status)
        return match

    def start_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        return self._transition(conn, match_id, MatchStatus.IN_PROGRESS.value)

    # ---------- Participation ----------

    def add_participant(
        self, conn: sqlite3.Connection, match_id: str, player_id: str, team_id: str
    ) -> MatchParticipation:
        """Record that player_id played for team_id. Re-adding a player moves them to team_id."""
        with transaction(conn):
            match = self.get_match(conn, match_id)
            if self._profile_repo.get(conn, player_id) is None:
                raise PlayerNotFoundError(player_id)
            if not match.has_team(team_id):
                raise TeamNotInMatchError(f"Team {team_id} is not playing in match {match_id}")
            if match.status not in _ROSTER_OPEN_STATUSES:
                raise InvalidMatchStateError(
                    f"Cannot change participants of match {match_id} in status {match.status}"
                )
            participation = self._match_repo.add_participant(conn, match_id, player_id, team_id)
        logger.info("Participant recorded: match=%s player=%s team=%s", match_id, player_id, team_id)
        return participation

    def list_participants(self, conn: sqlite3.Connection, match_id: str) -> list[MatchParticipation]:
        self.get_match(conn, match_id)
        return self._match_repo.list_participants(conn, match_id)

    # ---------- Score submission ----------

    def submit_score(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        team1_score: int,
        team2_score: int,
        events: Iterable[SubmittedEvent] = (),
    ) -> Match:
        """
        Record a reported score and move the match to pending-confirmation.
        Allowed from scheduled or in-progress, or to replace a score overturned by a dispute.
        Malformed events reject the whole submission. Writing a well-formed event
        is best-effort: one that fails on lookup or storage is logged and skipped.
        """
        _validate_score("team1_score", team1_score)
        _validate_score("team2_score", team2_score)
        events = list(events)
        for event in events:
            validate_submitted_event(event)
        with transaction(conn):
            match = self.get_match(conn, match_id)
            resubmission = match.status == MatchStatus.PENDING_CONFIRMATION.value and match.score_contested
            if not resubmission and MatchStatus.PENDING_CONFIRMATION.value not in _VALID_TRANSITIONS.get(
                match.status, set()
            ):
                raise InvalidMatchStateError(
                    f"Cannot submit a score for match {match_id} in status {match.status}"
                )
            recorded = 0
            for event in events:
                try:
                    self._event_log.record_submitted_event(conn, match_id, event)
                    recorded += 1
                except (StreetBallerError, sqlite3.Error) as e:
                    logger.warning("Skipping submitted event for match %s (%s): %s", match_id, event, e)
            self._match_repo.record_score(conn, match_id, team1_score, team2_score)
            match = self.get_match(conn, match_id)
        logger.info(
            "Score submitted: match=%s %d-%d events=%d/%d%s",
            match_id, team1_score, team2_score, recorded, len(events),
            " (re-submission)" if resubmission else "",
        )
        return match

    # ---------- Captain decision ----------

    def approve_or_dispute(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        team_id: str,
        approved: bool,
        reason: str | None = None,
    ) -> DecisionResult:
        """
        A captain of team_id approves or rejects the pending score.
        Both approvals complete the match; a rejection opens a dispute.
        """
        if not approved:
            return self._reject_score(conn, match_id, team_id, reason)

        with transaction(conn):
            match = self._check_decision(conn, match_id, team_id, approved=True)
            if match.status == MatchStatus.COMPLETED.value:
                return DecisionResult(match=match)
            slot = 1 if team_id == match.team1_id else 2
            if not self._match_repo.set_captain_approval(conn, match_id, slot):
                raise NoPendingScoreError(f"Match {match_id} has no score awaiting confirmation")
            completed = self._match_repo.complete_if_both_approved(
                conn, match_id, datetime.now(timezone.utc).isoformat()
            )
            if completed:
                self._completion_stats.record(conn, match_id)
            match = self.get_match(conn, match_id)
        if completed:
            logger.info("Match %s completed: both captains approved %s-%s",
                        match_id, match.team1_score, match.team2_score)
        else:
            logger.info("Score approved: match=%s team=%s", match_id, team_id)
        return DecisionResult(match=match)

    def _reject_score(
        self, conn: sqlite3.Connection, match_id: str, team_id: str, reason: str | None
    ) -> DecisionResult:
        self._check_decision(conn, match_id, team_id, approved=False)
        dispute = self._resolver.open_dispute(conn, match_id, team_id, reason=reason)
        return DecisionResult(match=self.get_match(conn, match_id), disputed=True, dispute=dispute)

    def _check_decision(self, conn: sqlite3.Connection, match_id: str, team_id: str, approved: bool) -> Match:
        match = self.get_match(conn, match_id)
        if not match.has_team(team_id):
            raise TeamNotInMatchError(f"Team {team_id} is not playing in match {match_id}")
        if approved and match.status == MatchStatus.COMPLETED.value:
            return match
        if not approved and match.status == MatchStatus.DISPUTED.value:
            raise DisputeAlreadyOpenError(f"Match {match_id} already has an open dispute")
        if match.status != MatchStatus.PENDING_CONFIRMATION.value:
            raise NoPendingScoreError(
                f"Match {match_id} has no score awaiting confirmation (status: {match.status})"
            )
        if match.score_contested:
            raise NoPendingScoreError(
                f"The score for match {match_id} was overturned by a dispute; submit a new score first"
            )
        return match

    # ---------- Disputes ----------

    @property
    def resolver(self) -> DisputeResolver:
        return self._resolver

    @property
    def event_log(self) -> MatchEventLog:
        return self._event_log
