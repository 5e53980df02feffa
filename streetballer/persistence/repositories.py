"""
Repository interfaces for StreetBaller data.
No business logic; only read/write operations.

Writes never commit on their own: callers group them with
persistence.db.transaction(). Status changes that must not race are
conditional updates returning whether a row was affected.
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from streetballer.models import (
    Dispute,
    DisputeStatus,
    DisputeVote,
    Match,
    MatchEvent,
    MatchParticipation,
    MatchStatus,
    PlayerProfile,
    Team,
    TeamMembership,
    TeamRole,
    TrustTransaction,
    User,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_optional(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


# ---------- UserRepository ----------


class UserRepository:
    """CRUD for users. username and password_hash for auth."""

    def create_with_password(
        self, conn: sqlite3.Connection, username: str, password_hash: str, name: str | None = None
    ) -> User:
        uid = str(uuid.uuid4())
        now = _now_iso()
        display_name = name or username
        conn.execute(
            "INSERT INTO users (id, username, password_hash, name, created_at) VALUES (?, ?, ?, ?, ?)",
            (uid, username, password_hash, display_name, now),
        )
        return User(
            id=uid, name=display_name, created_at=_parse_datetime(now),
            username=username, password_hash=password_hash,
        )

    def create(self, conn: sqlite3.Connection, name: str, id: str | None = None) -> User:
        """Account without login credentials (seeding and tests)."""
        uid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO users (id, username, password_hash, name, created_at) VALUES (?, ?, ?, ?, ?)",
            (uid, uid, "", name, now),
        )
        return User(id=uid, name=name, created_at=_parse_datetime(now), username=uid, password_hash="")

    def get(self, conn: sqlite3.Connection, user_id: str) -> User | None:
        row = conn.execute(
            "SELECT id, name, created_at, username, password_hash FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return self._to_user(row)

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        row = conn.execute(
            "SELECT id, name, created_at, username, password_hash FROM users WHERE username = ?",
            (username,),
        ).fetchone()
        return self._to_user(row)

    @staticmethod
    def _to_user(row: sqlite3.Row | None) -> User | None:
        if row is None:
            return None
        return User(
            id=row["id"],
            name=row["name"],
            created_at=_parse_datetime(row["created_at"]),
            username=row["username"],
            password_hash=row["password_hash"],
        )


# ---------- PlayerProfileRepository ----------

_PROFILE_COLS = (
    "user_id, display_name, trust_points, games_played, wins, losses, draws, "
    "goals_scored, assists, own_goals, cards, created_at"
)

# Lifetime counters that may be incremented
_COUNTER_COLUMNS = frozenset({
    "games_played", "wins", "losses", "draws", "goals_scored", "assists", "own_goals", "cards",
})


def _row_to_profile(row: sqlite3.Row) -> PlayerProfile:
    return PlayerProfile(
        user_id=row["user_id"],
        display_name=row["display_name"],
        trust_points=row["trust_points"],
        games_played=row["games_played"],
        wins=row["wins"],
        losses=row["losses"],
        draws=row["draws"],
        goals_scored=row["goals_scored"],
        assists=row["assists"],
        own_goals=row["own_goals"],
        cards=row["cards"],
        created_at=_parse_datetime(row["created_at"]),
    )


class PlayerProfileRepository:
    """Player profiles: trust balance and lifetime counters."""

    def create(
        self, conn: sqlite3.Connection, user_id: str, display_name: str, trust_points: int = 0
    ) -> PlayerProfile:
        now = _now_iso()
        conn.execute(
            "INSERT INTO player_profiles (user_id, display_name, trust_points, created_at) VALUES (?, ?, ?, ?)",
            (user_id, display_name, trust_points, now),
        )
        return PlayerProfile(
            user_id=user_id, display_name=display_name, trust_points=trust_points,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, user_id: str) -> PlayerProfile | None:
        row = conn.execute(
            f"SELECT {_PROFILE_COLS} FROM player_profiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        return _row_to_profile(row) if row is not None else None

    def update_display_name(self, conn: sqlite3.Connection, user_id: str, display_name: str) -> None:
        conn.execute(
            "UPDATE player_profiles SET display_name = ? WHERE user_id = ?", (display_name, user_id)
        )

    def update_trust_points(self, conn: sqlite3.Connection, user_id: str, trust_points: int) -> None:
        conn.execute(
            "UPDATE player_profiles SET trust_points = ? WHERE user_id = ?", (trust_points, user_id)
        )

    def increment_counters(self, conn: sqlite3.Connection, user_id: str, **deltas: int) -> bool:
        """Add deltas to lifetime counters. Returns False if no profile row exists."""
        unknown = set(deltas) - _COUNTER_COLUMNS
        if unknown:
            raise ValueError(f"Unknown counters: {sorted(unknown)}")
        if not deltas:
            return True
        assignments = ", ".join(f"{col} = {col} + ?" for col in deltas)
        cur = conn.execute(
            f"UPDATE player_profiles SET {assignments} WHERE user_id = ?",
            (*deltas.values(), user_id),
        )
        return cur.rowcount == 1

    def list_by_trust(self, conn: sqlite3.Connection, limit: int, offset: int) -> list[PlayerProfile]:
        rows = conn.execute(
            f"SELECT {_PROFILE_COLS} FROM player_profiles "
            "ORDER BY trust_points DESC, created_at ASC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [_row_to_profile(r) for r in rows]

    def count(self, conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) FROM player_profiles").fetchone()[0]


# ---------- TeamRepository ----------


class TeamRepository:
    """Teams and their rosters."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        created_by: str,
        description: str | None = None,
        id: str | None = None,
    ) -> Team:
        tid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO teams (id, name, description, created_by, created_at) VALUES (?, ?, ?, ?, ?)",
            (tid, name, description, created_by, now),
        )
        return Team(id=tid, name=name, created_by=created_by, description=description,
                    created_at=_parse_datetime(now))

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(
            "SELECT id, name, description, created_by, created_at FROM teams WHERE id = ?",
            (team_id,),
        ).fetchone()
        if row is None:
            return None
        return Team(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_by=row["created_by"],
            created_at=_parse_datetime(row["created_at"]),
        )

    def add_member(
        self, conn: sqlite3.Connection, team_id: str, user_id: str, role: str = TeamRole.PLAYER
    ) -> TeamMembership:
        """Insert or update the member's role."""
        now = _now_iso()
        conn.execute(
            "INSERT INTO team_memberships (team_id, user_id, role, joined_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(team_id, user_id) DO UPDATE SET role = excluded.role",
            (team_id, user_id, TeamRole(role).value, now),
        )
        return self.get_membership(conn, team_id, user_id) or TeamMembership(
            team_id=team_id, user_id=user_id, role=TeamRole(role).value, joined_at=_parse_datetime(now)
        )

    def remove_member(self, conn: sqlite3.Connection, team_id: str, user_id: str) -> bool:
        cur = conn.execute(
            "DELETE FROM team_memberships WHERE team_id = ? AND user_id = ?", (team_id, user_id)
        )
        return cur.rowcount == 1

    def get_membership(self, conn: sqlite3.Connection, team_id: str, user_id: str) -> TeamMembership | None:
        row = conn.execute(
            "SELECT team_id, user_id, role, joined_at FROM team_memberships WHERE team_id = ? AND user_id = ?",
            (team_id, user_id),
        ).fetchone()
        if row is None:
            return None
        return TeamMembership(
            team_id=row["team_id"], user_id=row["user_id"], role=row["role"],
            joined_at=_parse_datetime(row["joined_at"]),
        )

    def list_members(self, conn: sqlite3.Connection, team_id: str) -> list[TeamMembership]:
        rows = conn.execute(
            "SELECT team_id, user_id, role, joined_at FROM team_memberships WHERE team_id = ? ORDER BY joined_at",
            (team_id,),
        ).fetchall()
        return [
            TeamMembership(
                team_id=r["team_id"], user_id=r["user_id"], role=r["role"],
                joined_at=_parse_datetime(r["joined_at"]),
            )
            for r in rows
        ]


# ---------- MatchRepository ----------

_MATCH_COLS = (
    "id, team1_id, team2_id, pitch_id, match_date, format, status, team1_score, team2_score, "
    "team1_captain_approved, team2_captain_approved, score_contested, created_by, completed_at, created_at"
)


def _row_to_match(row: sqlite3.Row) -> Match:
    return Match(
        id=row["id"],
        team1_id=row["team1_id"],
        team2_id=row["team2_id"],
        pitch_id=row["pitch_id"],
        match_date=_parse_datetime(row["match_date"]),
        format=row["format"],
        status=row["status"],
        team1_score=row["team1_score"],
        team2_score=row["team2_score"],
        team1_captain_approved=bool(row["team1_captain_approved"]),
        team2_captain_approved=bool(row["team2_captain_approved"]),
        score_contested=bool(row["score_contested"]),
        created_by=row["created_by"],
        completed_at=_parse_optional(row["completed_at"]),
        created_at=_parse_datetime(row["created_at"]),
    )


class MatchRepository:
    """Match records and participation. No business logic."""

    def create(
        self,
        conn: sqlite3.Connection,
        team1_id: str,
        team2_id: str,
        pitch_id: str,
        match_date: datetime,
        format: str,
        created_by: str | None = None,
        id: str | None = None,
    ) -> Match:
        mid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO matches (id, team1_id, team2_id, pitch_id, match_date, format, status, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (mid, team1_id, team2_id, pitch_id, match_date.isoformat(), format,
             MatchStatus.SCHEDULED.value, created_by, now),
        )
        return self.get(conn, mid) or Match(
            id=mid,
            team1_id=team1_id,
            team2_id=team2_id,
            pitch_id=pitch_id,
            match_date=match_date,
            format=format,
            status=MatchStatus.SCHEDULED.value,
            created_by=created_by,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute(f"SELECT {_MATCH_COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        return _row_to_match(row) if row is not None else None

    def list_by_team(self, conn: sqlite3.Connection, team_id: str) -> list[Match]:
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches WHERE team1_id = ? OR team2_id = ? ORDER BY match_date DESC",
            (team_id, team_id),
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def list_upcoming(self, conn: sqlite3.Connection, after_iso: str) -> list[Match]:
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches WHERE status = ? AND match_date >= ? ORDER BY match_date",
            (MatchStatus.SCHEDULED.value, after_iso),
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def update_status(
        self, conn: sqlite3.Connection, match_id: str, status: str, expected_status: str | None = None
    ) -> bool:
        """Set status; with expected_status only if the match is still in that status."""
        if expected_status is None:
            cur = conn.execute("UPDATE matches SET status = ? WHERE id = ?", (status, match_id))
        else:
            cur = conn.execute(
                "UPDATE matches SET status = ? WHERE id = ? AND status = ?",
                (status, match_id, expected_status),
            )
        return cur.rowcount == 1

    def record_score(self, conn: sqlite3.Connection, match_id: str, team1_score: int, team2_score: int) -> None:
        """Store a reported score and reopen captain approval."""
        conn.execute(
            "UPDATE matches SET team1_score = ?, team2_score = ?, status = ?, "
            "team1_captain_approved = 0, team2_captain_approved = 0, score_contested = 0 WHERE id = ?",
            (team1_score, team2_score, MatchStatus.PENDING_CONFIRMATION.value, match_id),
        )

    def set_captain_approval(self, conn: sqlite3.Connection, match_id: str, team_slot: int) -> bool:
        """Flag approval for team 1 or 2 while an uncontested score is pending."""
        if team_slot not in (1, 2):
            raise ValueError(f"team_slot must be 1 or 2, got {team_slot}")
        cur = conn.execute(
            f"UPDATE matches SET team{team_slot}_captain_approved = 1 "
            "WHERE id = ? AND status = ? AND score_contested = 0",
            (match_id, MatchStatus.PENDING_CONFIRMATION.value),
        )
        return cur.rowcount == 1

    def complete_if_both_approved(self, conn: sqlite3.Connection, match_id: str, completed_at_iso: str) -> bool:
        cur = conn.execute(
            "UPDATE matches SET status = ?, completed_at = ? "
            "WHERE id = ? AND status = ? AND team1_captain_approved = 1 AND team2_captain_approved = 1",
            (MatchStatus.COMPLETED.value, completed_at_iso, match_id, MatchStatus.PENDING_CONFIRMATION.value),
        )
        return cur.rowcount == 1

    def complete_from_dispute(self, conn: sqlite3.Connection, match_id: str, completed_at_iso: str) -> bool:
        """Reported score upheld: disputed → completed."""
        cur = conn.execute(
            "UPDATE matches SET status = ?, completed_at = ?, "
            "team1_captain_approved = 1, team2_captain_approved = 1 WHERE id = ? AND status = ?",
            (MatchStatus.COMPLETED.value, completed_at_iso, match_id, MatchStatus.DISPUTED.value),
        )
        return cur.rowcount == 1

    def reopen_for_resubmission(self, conn: sqlite3.Connection, match_id: str) -> bool:
        """Reported score overturned: disputed → pending-confirmation, score flagged contested."""
        cur = conn.execute(
            "UPDATE matches SET status = ?, score_contested = 1, "
            "team1_captain_approved = 0, team2_captain_approved = 0 WHERE id = ? AND status = ?",
            (MatchStatus.PENDING_CONFIRMATION.value, match_id, MatchStatus.DISPUTED.value),
        )
        return cur.rowcount == 1

    # ---------- Participation ----------

    def add_participant(
        self, conn: sqlite3.Connection, match_id: str, player_id: str, team_id: str
    ) -> MatchParticipation:
        now = _now_iso()
        conn.execute(
            "INSERT INTO match_participations (match_id, player_id, team_id, joined_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(match_id, player_id) DO UPDATE SET team_id = excluded.team_id",
            (match_id, player_id, team_id, now),
        )
        return self.get_participation(conn, match_id, player_id) or MatchParticipation(
            match_id=match_id, player_id=player_id, team_id=team_id, joined_at=_parse_datetime(now)
        )

    def get_participation(
        self, conn: sqlite3.Connection, match_id: str, player_id: str
    ) -> MatchParticipation | None:
        row = conn.execute(
            "SELECT match_id, player_id, team_id, joined_at FROM match_participations "
            "WHERE match_id = ? AND player_id = ?",
            (match_id, player_id),
        ).fetchone()
        if row is None:
            return None
        return MatchParticipation(
            match_id=row["match_id"], player_id=row["player_id"], team_id=row["team_id"],
            joined_at=_parse_datetime(row["joined_at"]),
        )

    def list_participants(self, conn: sqlite3.Connection, match_id: str) -> list[MatchParticipation]:
        rows = conn.execute(
            "SELECT match_id, player_id, team_id, joined_at FROM match_participations "
            "WHERE match_id = ? ORDER BY joined_at, player_id",
            (match_id,),
        ).fetchall()
        return [
            MatchParticipation(
                match_id=r["match_id"], player_id=r["player_id"], team_id=r["team_id"],
                joined_at=_parse_datetime(r["joined_at"]),
            )
            for r in rows
        ]

    def list_participant_ids(self, conn: sqlite3.Connection, match_id: str, team_id: str) -> list[str]:
        rows = conn.execute(
            "SELECT player_id FROM match_participations WHERE match_id = ? AND team_id = ? ORDER BY player_id",
            (match_id, team_id),
        ).fetchall()
        return [r["player_id"] for r in rows]

    def count_participants(self, conn: sqlite3.Connection, match_id: str) -> int:
        """Distinct players recorded on either side of the match."""
        row = conn.execute(
            "SELECT COUNT(DISTINCT p.player_id) FROM match_participations p "
            "JOIN matches m ON m.id = p.match_id "
            "WHERE p.match_id = ? AND p.team_id IN (m.team1_id, m.team2_id)",
            (match_id,),
        ).fetchone()
        return row[0]


# ---------- MatchEventRepository ----------

_EVENT_COLS = (
    "e.id, e.match_id, e.event_type, e.player_id, e.related_player_id, e.team_id, "
    "e.minute, e.second, e.description, e.created_at, p.display_name AS player_name"
)
_EVENT_FROM = "FROM match_events e LEFT JOIN player_profiles p ON p.user_id = e.player_id"


def _row_to_event(row: sqlite3.Row) -> MatchEvent:
    return MatchEvent(
        id=row["id"],
        match_id=row["match_id"],
        event_type=row["event_type"],
        player_id=row["player_id"],
        related_player_id=row["related_player_id"],
        team_id=row["team_id"],
        minute=row["minute"],
        second=row["second"],
        description=row["description"],
        created_at=_parse_datetime(row["created_at"]),
        player_name=row["player_name"],
    )


class MatchEventRepository:
    """Append-only match events."""

    def create(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        event_type: str,
        player_id: str,
        team_id: str,
        minute: int,
        second: int,
        description: str,
        related_player_id: str | None = None,
    ) -> MatchEvent:
        eid = str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO match_events (id, match_id, event_type, player_id, related_player_id, team_id, "
            "minute, second, description, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (eid, match_id, event_type, player_id, related_player_id, team_id, minute, second, description, now),
        )
        return self.get(conn, eid) or MatchEvent(
            id=eid,
            match_id=match_id,
            event_type=event_type,
            player_id=player_id,
            related_player_id=related_player_id,
            team_id=team_id,
            minute=minute,
            second=second,
            description=description,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, event_id: str) -> MatchEvent | None:
        row = conn.execute(f"SELECT {_EVENT_COLS} {_EVENT_FROM} WHERE e.id = ?", (event_id,)).fetchone()
        return _row_to_event(row) if row is not None else None

    def list_by_match(
        self, conn: sqlite3.Connection, match_id: str, limit: int | None = None, offset: int = 0
    ) -> list[MatchEvent]:
        sql = f"SELECT {_EVENT_COLS} {_EVENT_FROM} WHERE e.match_id = ? ORDER BY e.minute, e.second, e.created_at"
        args: tuple[Any, ...] = (match_id,)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            args += (limit, offset)
        return [_row_to_event(r) for r in conn.execute(sql, args).fetchall()]

    def count_by_match(self, conn: sqlite3.Connection, match_id: str) -> int:
        return conn.execute("SELECT COUNT(*) FROM match_events WHERE match_id = ?", (match_id,)).fetchone()[0]

    def list_for_player_in_match(self, conn: sqlite3.Connection, player_id: str, match_id: str) -> list[MatchEvent]:
        rows = conn.execute(
            f"SELECT {_EVENT_COLS} {_EVENT_FROM} "
            "WHERE e.match_id = ? AND (e.player_id = ? OR e.related_player_id = ?) "
            "ORDER BY e.minute, e.second, e.created_at",
            (match_id, player_id, player_id),
        ).fetchall()
        return [_row_to_event(r) for r in rows]

    def list_by_player(
        self, conn: sqlite3.Connection, player_id: str, limit: int, offset: int = 0
    ) -> list[MatchEvent]:
        rows = conn.execute(
            f"SELECT {_EVENT_COLS} {_EVENT_FROM} "
            "WHERE e.player_id = ? OR e.related_player_id = ? "
            "ORDER BY e.created_at DESC LIMIT ? OFFSET ?",
            (player_id, player_id, limit, offset),
        ).fetchall()
        return [_row_to_event(r) for r in rows]

    def count_by_player(self, conn: sqlite3.Connection, player_id: str) -> int:
        return conn.execute(
            "SELECT COUNT(*) FROM match_events WHERE player_id = ? OR related_player_id = ?",
            (player_id, player_id),
        ).fetchone()[0]

    def count_types_for_player(self, conn: sqlite3.Connection, player_id: str) -> dict[str, int]:
        """Event counts by type where the player is the acting player."""
        rows = conn.execute(
            "SELECT event_type, COUNT(*) AS n FROM match_events WHERE player_id = ? GROUP BY event_type",
            (player_id,),
        ).fetchall()
        return {r["event_type"]: r["n"] for r in rows}

    def count_assisted_goals(self, conn: sqlite3.Connection, player_id: str) -> int:
        return conn.execute(
            "SELECT COUNT(*) FROM match_events WHERE related_player_id = ? AND event_type = 'goal'",
            (player_id,),
        ).fetchone()[0]


# ---------- DisputeRepository ----------

_DISPUTE_COLS = (
    "id, match_id, disputing_team_id, defending_team_id, reason, status, "
    "resolution_team_id, resolved_at, created_at"
)


def _row_to_dispute(row: sqlite3.Row) -> Dispute:
    return Dispute(
        id=row["id"],
        match_id=row["match_id"],
        disputing_team_id=row["disputing_team_id"],
        defending_team_id=row["defending_team_id"],
        reason=row["reason"],
        status=row["status"],
        resolution_team_id=row["resolution_team_id"],
        resolved_at=_parse_optional(row["resolved_at"]),
        created_at=_parse_datetime(row["created_at"]),
    )


class DisputeRepository:
    """Dispute cases. Inserting a second open dispute for a match raises sqlite3.IntegrityError."""

    def create(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        disputing_team_id: str,
        defending_team_id: str,
        reason: str | None = None,
    ) -> Dispute:
        did = str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            f"INSERT INTO disputes ({_DISPUTE_COLS}) VALUES (?, ?, ?, ?, ?, ?, NULL, NULL, ?)",
            (did, match_id, disputing_team_id, defending_team_id, reason, DisputeStatus.OPEN.value, now),
        )
        return Dispute(
            id=did, match_id=match_id, disputing_team_id=disputing_team_id,
            defending_team_id=defending_team_id, reason=reason, status=DisputeStatus.OPEN.value,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, dispute_id: str) -> Dispute | None:
        row = conn.execute(f"SELECT {_DISPUTE_COLS} FROM disputes WHERE id = ?", (dispute_id,)).fetchone()
        return _row_to_dispute(row) if row is not None else None

    def get_open_for_match(self, conn: sqlite3.Connection, match_id: str) -> Dispute | None:
        row = conn.execute(
            f"SELECT {_DISPUTE_COLS} FROM disputes WHERE match_id = ? AND status = ?",
            (match_id, DisputeStatus.OPEN.value),
        ).fetchone()
        return _row_to_dispute(row) if row is not None else None

    def list_open(self, conn: sqlite3.Connection) -> list[Dispute]:
        rows = conn.execute(
            f"SELECT {_DISPUTE_COLS} FROM disputes WHERE status = ? ORDER BY created_at",
            (DisputeStatus.OPEN.value,),
        ).fetchall()
        return [_row_to_dispute(r) for r in rows]

    def list_by_match(self, conn: sqlite3.Connection, match_id: str) -> list[Dispute]:
        rows = conn.execute(
            f"SELECT {_DISPUTE_COLS} FROM disputes WHERE match_id = ? ORDER BY created_at",
            (match_id,),
        ).fetchall()
        return [_row_to_dispute(r) for r in rows]

    def resolve(
        self, conn: sqlite3.Connection, dispute_id: str, resolution_team_id: str, resolved_at_iso: str
    ) -> bool:
        """open → resolved. False if the dispute was no longer open."""
        cur = conn.execute(
            "UPDATE disputes SET status = ?, resolution_team_id = ?, resolved_at = ? WHERE id = ? AND status = ?",
            (DisputeStatus.RESOLVED.value, resolution_team_id, resolved_at_iso, dispute_id,
             DisputeStatus.OPEN.value),
        )
        return cur.rowcount == 1


# ---------- DisputeVoteRepository ----------


class DisputeVoteRepository:
    """Append-only votes. A repeat (dispute, player) raises sqlite3.IntegrityError."""

    def create(
        self, conn: sqlite3.Connection, dispute_id: str, player_id: str, vote_for_team_id: str
    ) -> DisputeVote:
        vid = str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO dispute_votes (id, dispute_id, player_id, vote_for_team_id, created_at) VALUES (?, ?, ?, ?, ?)",
            (vid, dispute_id, player_id, vote_for_team_id, now),
        )
        return DisputeVote(
            id=vid, dispute_id=dispute_id, player_id=player_id,
            vote_for_team_id=vote_for_team_id, created_at=_parse_datetime(now),
        )

    def list_by_dispute(self, conn: sqlite3.Connection, dispute_id: str) -> list[DisputeVote]:
        rows = conn.execute(
            "SELECT id, dispute_id, player_id, vote_for_team_id, created_at FROM dispute_votes "
            "WHERE dispute_id = ? ORDER BY created_at, id",
            (dispute_id,),
        ).fetchall()
        return [
            DisputeVote(
                id=r["id"], dispute_id=r["dispute_id"], player_id=r["player_id"],
                vote_for_team_id=r["vote_for_team_id"], created_at=_parse_datetime(r["created_at"]),
            )
            for r in rows
        ]

    def count_by_team(self, conn: sqlite3.Connection, dispute_id: str) -> dict[str, int]:
        rows = conn.execute(
            "SELECT vote_for_team_id, COUNT(*) AS n FROM dispute_votes WHERE dispute_id = ? GROUP BY vote_for_team_id",
            (dispute_id,),
        ).fetchall()
        return {r["vote_for_team_id"]: r["n"] for r in rows}


# ---------- TrustTransactionRepository ----------

_TXN_COLS = "id, player_id, transaction_type, points, balance, reason, match_id, dispute_id, created_at"


def _row_to_transaction(row: sqlite3.Row) -> TrustTransaction:
    return TrustTransaction(
        id=row["id"],
        player_id=row["player_id"],
        transaction_type=row["transaction_type"],
        points=row["points"],
        balance=row["balance"],
        reason=row["reason"],
        match_id=row["match_id"],
        dispute_id=row["dispute_id"],
        created_at=_parse_datetime(row["created_at"]),
    )


class TrustTransactionRepository:
    """Append-only trust ledger. There is no update or delete."""

    def create(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        transaction_type: str,
        points: int,
        balance: int,
        reason: str,
        match_id: str | None = None,
        dispute_id: str | None = None,
    ) -> TrustTransaction:
        tid = str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            f"INSERT INTO trust_transactions ({_TXN_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (tid, player_id, transaction_type, points, balance, reason, match_id, dispute_id, now),
        )
        return TrustTransaction(
            id=tid, player_id=player_id, transaction_type=transaction_type, points=points,
            balance=balance, reason=reason, match_id=match_id, dispute_id=dispute_id,
            created_at=_parse_datetime(now),
        )

    def list_by_player(
        self, conn: sqlite3.Connection, player_id: str, limit: int, offset: int = 0
    ) -> list[TrustTransaction]:
        """Newest first."""
        rows = conn.execute(
            f"SELECT {_TXN_COLS} FROM trust_transactions WHERE player_id = ? ORDER BY seq DESC LIMIT ? OFFSET ?",
            (player_id, limit, offset),
        ).fetchall()
        return [_row_to_transaction(r) for r in rows]

    def list_by_dispute(self, conn: sqlite3.Connection, dispute_id: str) -> list[TrustTransaction]:
        rows = conn.execute(
            f"SELECT {_TXN_COLS} FROM trust_transactions WHERE dispute_id = ? ORDER BY seq",
            (dispute_id,),
        ).fetchall()
        return [_row_to_transaction(r) for r in rows]

    def count_by_player(self, conn: sqlite3.Connection, player_id: str) -> int:
        return conn.execute(
            "SELECT COUNT(*) FROM trust_transactions WHERE player_id = ?", (player_id,)
        ).fetchone()[0]

    def totals_by_player(self, conn: sqlite3.Connection, player_id: str) -> dict[str, int]:
        row = conn.execute(
            "SELECT "
            "COALESCE(SUM(CASE WHEN points > 0 THEN points ELSE 0 END), 0) AS awarded, "
            "COALESCE(SUM(CASE WHEN points < 0 THEN points ELSE 0 END), 0) AS penalized, "
            "COALESCE(SUM(CASE WHEN points > 0 THEN 1 ELSE 0 END), 0) AS awards, "
            "COALESCE(SUM(CASE WHEN points < 0 THEN 1 ELSE 0 END), 0) AS penalties "
            "FROM trust_transactions WHERE player_id = ?",
            (player_id,),
        ).fetchone()
        return {
            "awarded": row["awarded"],
            "penalized": row["penalized"],
            "awards": row["awards"],
            "penalties": row["penalties"],
        }
