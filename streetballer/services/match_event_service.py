"""
Match event log: goals, assists, cards and other in-match events.

Events are immutable once written. Recording an event also bumps the acting
player's lifetime counters; that write-through is best-effort and never
blocks the event itself.
"""
from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from dataclasses import dataclass
from typing import Any

from streetballer.constants import DEFAULT_EVENT_PAGE, DEFAULT_HISTORY_PAGE, MAX_EVENT_MINUTE, MAX_EVENT_SECOND
from streetballer.models import CARD_EVENTS, Match, MatchEvent, MatchEventType, MatchStatus
from streetballer.persistence.db import savepoint, transaction
from streetballer.persistence.repositories import (
    MatchEventRepository,
    MatchRepository,
    PlayerProfileRepository,
    TeamRepository,
    UserRepository,
)
from streetballer.services.errors import (
    InvalidMatchStateError,
    MatchNotFoundError,
    PlayerNotFoundError,
    TeamNotInMatchError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Match statuses in which new events may be written
EVENT_OPEN_STATUSES = frozenset({
    MatchStatus.SCHEDULED.value,
    MatchStatus.IN_PROGRESS.value,
    MatchStatus.PENDING_CONFIRMATION.value,
})

# Request-layer spellings accepted alongside the canonical values
EVENT_TYPE_ALIASES = {
    "ownGoal": MatchEventType.OWN_GOAL,
    "yellowCard": MatchEventType.YELLOW_CARD,
    "redCard": MatchEventType.RED_CARD,
    "penaltySaved": MatchEventType.PENALTY_SAVED,
}


def parse_event_type(value: str | MatchEventType) -> MatchEventType:
    if value in EVENT_TYPE_ALIASES:
        return EVENT_TYPE_ALIASES[value]
    try:
        return MatchEventType(value)
    except ValueError:
        raise ValidationError(f"Unknown event type: {value}") from None


def _check_event_time(minute: int, second: int) -> None:
    if not 0 <= minute <= MAX_EVENT_MINUTE:
        raise ValidationError(f"minute must be between 0 and {MAX_EVENT_MINUTE}, got {minute}")
    if not 0 <= second <= MAX_EVENT_SECOND:
        raise ValidationError(f"second must be between 0 and {MAX_EVENT_SECOND}, got {second}")


# Event types a captain may report on a score sheet
SCORE_SHEET_EVENT_TYPES = frozenset({
    MatchEventType.GOAL,
    MatchEventType.OWN_GOAL,
    MatchEventType.YELLOW_CARD,
    MatchEventType.RED_CARD,
})


@dataclass(frozen=True)
class SubmittedEvent:
    """One event reported alongside a score."""
    scorer_id: str
    minute: int
    team_id: str
    event_type: str = MatchEventType.GOAL.value
    assister_id: str | None = None
    second: int = 0


def validate_submitted_event(event: SubmittedEvent) -> MatchEventType:
    """Check type and timing of a score-sheet event without touching storage."""
    etype = parse_event_type(event.event_type)
    if etype not in SCORE_SHEET_EVENT_TYPES:
        raise ValidationError(f"Event type {etype.value} cannot be reported with a score")
    _check_event_time(event.minute, event.second)
    return etype


def _counter_deltas(event_type: MatchEventType) -> dict[str, int]:
    if event_type == MatchEventType.GOAL:
        return {"goals_scored": 1}
    if event_type == MatchEventType.ASSIST:
        return {"assists": 1}
    if event_type == MatchEventType.OWN_GOAL:
        return {"own_goals": 1}
    if event_type.value in CARD_EVENTS:
        return {"cards": 1}
    return {}


class MatchEventLog:
    """Writes match events and derives match and player statistics from them."""

    def __init__(
        self,
        event_repo: MatchEventRepository | None = None,
        match_repo: MatchRepository | None = None,
        profile_repo: PlayerProfileRepository | None = None,
        user_repo: UserRepository | None = None,
        team_repo: TeamRepository | None = None,
    ) -> None:
        self._event_repo = event_repo or MatchEventRepository()
        self._match_repo = match_repo or MatchRepository()
        self._profile_repo = profile_repo or PlayerProfileRepository()
        self._user_repo = user_repo or UserRepository()
        self._team_repo = team_repo or TeamRepository()

    def _get_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    def _resolve_team(self, conn: sqlite3.Connection, match: Match, player_id: str, team_id: str | None) -> str:
        if team_id is not None:
            if not match.has_team(team_id):
                raise TeamNotInMatchError(f"Team {team_id} is not playing in match {match.id}")
            return team_id
        participation = self._match_repo.get_participation(conn, match.id, player_id)
        if participation is not None:
            return participation.team_id
        for tid in (match.team1_id, match.team2_id):
            if self._team_repo.get_membership(conn, tid, player_id) is not None:
                return tid
        raise TeamNotInMatchError(f"Player {player_id} is not on either team of match {match.id}")

    def record_event(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        player_id: str,
        event_type: str | MatchEventType,
        minute: int,
        second: int = 0,
        team_id: str | None = None,
        related_player_id: str | None = None,
        description: str | None = None,
    ) -> MatchEvent:
        """
        Write one event for a match that is still open for events.
        Match, player and related player must exist; the team is taken from
        team_id or derived from the player's participation or roster.
        """
        etype = parse_event_type(event_type)
        _check_event_time(minute, second)
        with transaction(conn):
            match = self._get_match(conn, match_id)
            if match.status not in EVENT_OPEN_STATUSES:
                raise InvalidMatchStateError(
                    f"Cannot record events for match {match_id} in status {match.status}"
                )
            player = self._user_repo.get(conn, player_id)
            if player is None:
                raise PlayerNotFoundError(player_id)
            if related_player_id is not None and self._user_repo.get(conn, related_player_id) is None:
                raise PlayerNotFoundError(related_player_id)
            resolved_team = self._resolve_team(conn, match, player_id, team_id)
            event = self._event_repo.create(
                conn,
                match_id=match_id,
                event_type=etype.value,
                player_id=player_id,
                team_id=resolved_team,
                minute=minute,
                second=second,
                description=description or f"{etype.value} by {player.name}",
                related_player_id=related_player_id,
            )
            self._update_player_stats(conn, player_id, etype)
            if etype == MatchEventType.GOAL and related_player_id is not None:
                self._update_player_stats(conn, related_player_id, MatchEventType.ASSIST)
        logger.info(
            "Match event recorded: match=%s type=%s player=%s minute=%d",
            match_id, etype.value, player_id, minute,
        )
        return event

    def record_submitted_event(self, conn: sqlite3.Connection, match_id: str, event: SubmittedEvent) -> MatchEvent:
        return self.record_event(
            conn,
            match_id,
            event.scorer_id,
            event.event_type,
            event.minute,
            second=event.second,
            team_id=event.team_id,
            related_player_id=event.assister_id,
        )

    def _update_player_stats(self, conn: sqlite3.Connection, player_id: str, event_type: MatchEventType) -> None:
        deltas = _counter_deltas(event_type)
        if not deltas:
            return
        try:
            with savepoint(conn):
                if not self._profile_repo.increment_counters(conn, player_id, **deltas):
                    logger.debug("No player profile for %s; counters not updated", player_id)
        except (sqlite3.Error, ValueError) as e:
            logger.warning("Failed to update player stats for %s (%s): %s", player_id, event_type.value, e)

    # ---------- Read side ----------

    def get_match_events(
        self, conn: sqlite3.Connection, match_id: str, limit: int = DEFAULT_EVENT_PAGE, offset: int = 0
    ) -> dict[str, Any]:
        self._get_match(conn, match_id)
        events = self._event_repo.list_by_match(conn, match_id, limit=limit, offset=offset)
        return {
            "match_id": match_id,
            "events": [e.to_dict() for e in events],
            "total": self._event_repo.count_by_match(conn, match_id),
            "limit": limit,
            "offset": offset,
        }

    def get_player_match_events(self, conn: sqlite3.Connection, player_id: str, match_id: str) -> list[MatchEvent]:
        if self._user_repo.get(conn, player_id) is None:
            raise PlayerNotFoundError(player_id)
        self._get_match(conn, match_id)
        return self._event_repo.list_for_player_in_match(conn, player_id, match_id)

    def get_match_event_stats(self, conn: sqlite3.Connection, match_id: str) -> dict[str, Any]:
        """Totals by event type plus per-team goals, assists and cards."""
        match = self._get_match(conn, match_id)
        events = self._event_repo.list_by_match(conn, match_id)
        by_type = Counter(e.event_type for e in events)
        assisted_goals = sum(
            1 for e in events if e.event_type == MatchEventType.GOAL and e.related_player_id is not None
        )

        def team_breakdown(team_id: str) -> dict[str, Any]:
            team = self._team_repo.get(conn, team_id)
            team_events = [e for e in events if e.team_id == team_id]
            return {
                "team_id": team_id,
                "team_name": team.name if team else None,
                "goals": sum(1 for e in team_events if e.event_type == MatchEventType.GOAL),
                "assists": sum(
                    1 for e in team_events
                    if e.event_type == MatchEventType.ASSIST
                    or (e.event_type == MatchEventType.GOAL and e.related_player_id is not None)
                ),
                "cards": sum(1 for e in team_events if e.event_type in CARD_EVENTS),
            }

        return {
            "match_id": match_id,
            "total_events": len(events),
            "goal_count": by_type[MatchEventType.GOAL.value],
            "assist_count": by_type[MatchEventType.ASSIST.value] + assisted_goals,
            "own_goal_count": by_type[MatchEventType.OWN_GOAL.value],
            "yellow_cards": by_type[MatchEventType.YELLOW_CARD.value],
            "red_cards": by_type[MatchEventType.RED_CARD.value],
            "events_by_team": [team_breakdown(match.team1_id), team_breakdown(match.team2_id)],
        }

    def get_player_event_history(
        self, conn: sqlite3.Connection, player_id: str, limit: int = DEFAULT_HISTORY_PAGE, offset: int = 0
    ) -> dict[str, Any]:
        user = self._user_repo.get(conn, player_id)
        if user is None:
            raise PlayerNotFoundError(player_id)
        profile = self._profile_repo.get(conn, player_id)
        events = self._event_repo.list_by_player(conn, player_id, limit, offset)
        by_type = self._event_repo.count_types_for_player(conn, player_id)
        return {
            "player_id": player_id,
            "display_name": profile.display_name if profile else user.name,
            "events": [e.to_dict() for e in events],
            "total": self._event_repo.count_by_player(conn, player_id),
            "stats": {
                "total_goals": by_type.get(MatchEventType.GOAL.value, 0),
                "total_assists": by_type.get(MatchEventType.ASSIST.value, 0)
                + self._event_repo.count_assisted_goals(conn, player_id),
                "total_cards": sum(by_type.get(t, 0) for t in CARD_EVENTS),
            },
        }
