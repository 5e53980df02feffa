"""
SQLite schema for StreetBaller entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def users_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT,
        password_hash TEXT,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_users_username ON users(username);
    """


def player_profiles_schema() -> str:
    """trust_points is the denormalized, floor-clamped ledger balance."""
    return """
    CREATE TABLE IF NOT EXISTS player_profiles (
        user_id TEXT PRIMARY KEY,
        display_name TEXT NOT NULL,
        trust_points INTEGER NOT NULL DEFAULT 0 CHECK (trust_points >= 0),
        games_played INTEGER NOT NULL DEFAULT 0,
        wins INTEGER NOT NULL DEFAULT 0,
        losses INTEGER NOT NULL DEFAULT 0,
        draws INTEGER NOT NULL DEFAULT 0,
        goals_scored INTEGER NOT NULL DEFAULT 0,
        assists INTEGER NOT NULL DEFAULT 0,
        own_goals INTEGER NOT NULL DEFAULT 0,
        cards INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    CREATE INDEX IF NOT EXISTS ix_player_profiles_trust ON player_profiles(trust_points);
    """


def teams_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        created_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (created_by) REFERENCES users(id)
    );
    """


def team_memberships_schema() -> str:
    """role: captain | player."""
    return """
    CREATE TABLE IF NOT EXISTS team_memberships (
        team_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'player',
        joined_at TEXT NOT NULL,
        PRIMARY KEY (team_id, user_id),
        FOREIGN KEY (team_id) REFERENCES teams(id),
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    CREATE INDEX IF NOT EXISTS ix_team_memberships_user ON team_memberships(user_id);
    """


def matches_schema() -> str:
    """status: scheduled | in-progress | pending-confirmation | completed | disputed."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        team1_id TEXT NOT NULL,
        team2_id TEXT NOT NULL,
        pitch_id TEXT NOT NULL,
        match_date TEXT NOT NULL,
        format TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'scheduled',
        team1_score INTEGER CHECK (team1_score IS NULL OR team1_score >= 0),
        team2_score INTEGER CHECK (team2_score IS NULL OR team2_score >= 0),
        team1_captain_approved INTEGER NOT NULL DEFAULT 0,
        team2_captain_approved INTEGER NOT NULL DEFAULT 0,
        score_contested INTEGER NOT NULL DEFAULT 0,
        created_by TEXT,
        completed_at TEXT,
        created_at TEXT NOT NULL,
        CHECK (team1_id <> team2_id),
        FOREIGN KEY (team1_id) REFERENCES teams(id),
        FOREIGN KEY (team2_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_matches_team1 ON matches(team1_id);
    CREATE INDEX IF NOT EXISTS ix_matches_team2 ON matches(team2_id);
    CREATE INDEX IF NOT EXISTS ix_matches_status_date ON matches(status, match_date);
    """


def match_participations_schema() -> str:
    """One row per player per match. Gates dispute voting."""
    return """
    CREATE TABLE IF NOT EXISTS match_participations (
        match_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        team_id TEXT NOT NULL,
        joined_at TEXT NOT NULL,
        PRIMARY KEY (match_id, player_id),
        FOREIGN KEY (match_id) REFERENCES matches(id),
        FOREIGN KEY (player_id) REFERENCES player_profiles(user_id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_match_participations_player ON match_participations(player_id);
    """


def match_events_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS match_events (
        id TEXT PRIMARY KEY,
        match_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        player_id TEXT NOT NULL,
        related_player_id TEXT,
        team_id TEXT NOT NULL,
        minute INTEGER NOT NULL CHECK (minute BETWEEN 0 AND 120),
        second INTEGER NOT NULL DEFAULT 0 CHECK (second BETWEEN 0 AND 59),
        description TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (match_id) REFERENCES matches(id),
        FOREIGN KEY (player_id) REFERENCES users(id),
        FOREIGN KEY (related_player_id) REFERENCES users(id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_match_events_match ON match_events(match_id, minute, second);
    CREATE INDEX IF NOT EXISTS ix_match_events_player ON match_events(player_id);
    CREATE INDEX IF NOT EXISTS ix_match_events_related ON match_events(related_player_id);
    """


def disputes_schema() -> str:
    """status: open | resolved. At most one open dispute per match (partial unique index)."""
    return """
    CREATE TABLE IF NOT EXISTS disputes (
        id TEXT PRIMARY KEY,
        match_id TEXT NOT NULL,
        disputing_team_id TEXT NOT NULL,
        defending_team_id TEXT NOT NULL,
        reason TEXT,
        status TEXT NOT NULL DEFAULT 'open',
        resolution_team_id TEXT,
        resolved_at TEXT,
        created_at TEXT NOT NULL,
        CHECK (disputing_team_id <> defending_team_id),
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    CREATE INDEX IF NOT EXISTS ix_disputes_match ON disputes(match_id);
    CREATE INDEX IF NOT EXISTS ix_disputes_status ON disputes(status);
    CREATE UNIQUE INDEX IF NOT EXISTS ux_disputes_open_match ON disputes(match_id) WHERE status = 'open';
    """


def dispute_votes_schema() -> str:
    """Append-only. One vote per player per dispute."""
    return """
    CREATE TABLE IF NOT EXISTS dispute_votes (
        id TEXT PRIMARY KEY,
        dispute_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        vote_for_team_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (dispute_id, player_id),
        FOREIGN KEY (dispute_id) REFERENCES disputes(id),
        FOREIGN KEY (player_id) REFERENCES users(id)
    );
    """


def trust_transactions_schema() -> str:
    """Append-only ledger. seq gives a stable creation order."""
    return """
    CREATE TABLE IF NOT EXISTS trust_transactions (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        player_id TEXT NOT NULL,
        transaction_type TEXT NOT NULL,
        points INTEGER NOT NULL,
        balance INTEGER NOT NULL CHECK (balance >= 0),
        reason TEXT NOT NULL,
        match_id TEXT,
        dispute_id TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (player_id) REFERENCES player_profiles(user_id),
        FOREIGN KEY (match_id) REFERENCES matches(id),
        FOREIGN KEY (dispute_id) REFERENCES disputes(id)
    );
    CREATE INDEX IF NOT EXISTS ix_trust_transactions_player ON trust_transactions(player_id, seq);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution, parents before children."""
    return "\n".join([
        users_schema(),
        player_profiles_schema(),
        teams_schema(),
        team_memberships_schema(),
        matches_schema(),
        match_participations_schema(),
        match_events_schema(),
        disputes_schema(),
        dispute_votes_schema(),
        trust_transactions_schema(),
    ])
