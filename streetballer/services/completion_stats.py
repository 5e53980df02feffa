"""
Lifetime win/loss/draw counters applied when a match reaches completed.
Best-effort: a failure is logged and never undoes the completion.
"""
from __future__ import annotations

import logging
import sqlite3

from streetballer.models import Match
from streetballer.persistence.db import savepoint
from streetballer.persistence.repositories import MatchRepository, PlayerProfileRepository

logger = logging.getLogger(__name__)


def result_for_team(match: Match, team_id: str) -> str:
    """'win', 'loss' or 'draw' for one side of a scored match."""
    own, other = (
        (match.team1_score, match.team2_score)
        if team_id == match.team1_id
        else (match.team2_score, match.team1_score)
    )
    if own is None or other is None:
        raise ValueError(f"Match {match.id} has no score")
    if own > other:
        return "win"
    if own < other:
        return "loss"
    return "draw"


_RESULT_COUNTER = {"win": "wins", "loss": "losses", "draw": "draws"}


class CompletionStatsRecorder:
    def __init__(
        self,
        match_repo: MatchRepository | None = None,
        profile_repo: PlayerProfileRepository | None = None,
    ) -> None:
        self._match_repo = match_repo or MatchRepository()
        self._profile_repo = profile_repo or PlayerProfileRepository()

    def record(self, conn: sqlite3.Connection, match_id: str) -> None:
        try:
            with savepoint(conn):
                match = self._match_repo.get(conn, match_id)
                if match is None:
                    return
                for p in self._match_repo.list_participants(conn, match_id):
                    if not match.has_team(p.team_id):
                        continue
                    counter = _RESULT_COUNTER[result_for_team(match, p.team_id)]
                    self._profile_repo.increment_counters(conn, p.player_id, games_played=1, **{counter: 1})
        except (sqlite3.Error, ValueError) as e:
            logger.warning("Failed to update completion stats for match %s: %s", match_id, e)
