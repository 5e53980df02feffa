"""
Shared fixtures: a temporary database per test and a small match builder.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from streetballer.models import Match, TeamRole
from streetballer.persistence.db import get_connection, init_db, set_db_path
from streetballer.persistence.repositories import PlayerProfileRepository, TeamRepository, UserRepository
from streetballer.services.match_service import MatchService

MATCH_DATE = (datetime.now(timezone.utc) + timedelta(days=7)).replace(microsecond=0)


@pytest.fixture
def db_conn(tmp_path):
    """Temporary DB with the full schema."""
    db_path = tmp_path / "streetballer_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def match_service():
    return MatchService()


def make_player(conn, name: str, trust_points: int = 0) -> str:
    user = UserRepository().create(conn, name)
    PlayerProfileRepository().create(conn, user.id, name, trust_points=trust_points)
    return user.id


@dataclass
class MatchSetup:
    match: Match
    team1_id: str
    team2_id: str
    team1_players: list[str] = field(default_factory=list)
    team2_players: list[str] = field(default_factory=list)

    @property
    def captain1(self) -> str:
        return self.team1_players[0]

    @property
    def captain2(self) -> str:
        return self.team2_players[0]


@pytest.fixture
def build_match(db_conn, match_service):
    """
    Factory: two teams of `per_team` players (first one is captain), a scheduled
    5v5 match between them and every player recorded as a participant.
    """

    def _build(per_team: int = 5, trust_points: int = 10, add_participants: bool = True) -> MatchSetup:
        team_repo = TeamRepository()
        rosters = []
        team_ids = []
        for side in ("A", "B"):
            players = [make_player(db_conn, f"{side}{i}", trust_points) for i in range(per_team)]
            team = team_repo.create(db_conn, f"Team {side}", created_by=players[0])
            team_repo.add_member(db_conn, team.id, players[0], TeamRole.CAPTAIN.value)
            for pid in players[1:]:
                team_repo.add_member(db_conn, team.id, pid)
            rosters.append(players)
            team_ids.append(team.id)
        match = match_service.create_match(db_conn, team_ids[0], team_ids[1], "pitch-1", MATCH_DATE, "5v5")
        if add_participants:
            for team_id, players in zip(team_ids, rosters):
                for pid in players:
                    match_service.add_participant(db_conn, match.id, pid, team_id)
        return MatchSetup(
            match=match,
            team1_id=team_ids[0],
            team2_id=team_ids[1],
            team1_players=rosters[0],
            team2_players=rosters[1],
        )

    return _build
