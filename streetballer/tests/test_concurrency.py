"""
Concurrent writers on separate connections: approvals, dispute opening and voting.
Each call runs in its own thread with its own connection; a barrier releases them together.
"""
from __future__ import annotations

import threading

import pytest

from streetballer.models import DisputeStatus, MatchStatus
from streetballer.persistence.db import get_connection
from streetballer.persistence.repositories import (
    DisputeRepository,
    DisputeVoteRepository,
    PlayerProfileRepository,
    TrustTransactionRepository,
)
from streetballer.services.dispute_service import DisputeResolver
from streetballer.services.errors import DisputeAlreadyOpenError, DisputeClosedError, DuplicateVoteError
from streetballer.services.match_service import MatchService


def _race(*calls):
    """Run each call(conn) in its own thread at the same moment; return results or raised exceptions."""
    barrier = threading.Barrier(len(calls))
    outcomes: list = [None] * len(calls)

    def worker(i, call):
        conn = get_connection()
        try:
            barrier.wait(timeout=10)
            outcomes[i] = call(conn)
        except Exception as e:
            outcomes[i] = e
        finally:
            conn.close()

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert not any(t.is_alive() for t in threads)
    return outcomes


def _errors(outcomes):
    return [o for o in outcomes if isinstance(o, Exception)]


@pytest.fixture
def pending_match(db_conn, match_service, build_match):
    """2 players a side, team 1 reported 2-1."""
    setup = build_match(per_team=2)
    match_service.submit_score(db_conn, setup.match.id, 2, 1)
    return setup


def test_simultaneous_approvals_complete_once(db_conn, match_service, pending_match):
    setup = pending_match
    outcomes = _race(
        lambda conn: MatchService().approve_or_dispute(conn, setup.match.id, setup.team1_id, approved=True),
        lambda conn: MatchService().approve_or_dispute(conn, setup.match.id, setup.team2_id, approved=True),
    )
    assert _errors(outcomes) == []
    statuses = sorted(o.match.status for o in outcomes)
    assert statuses == [MatchStatus.COMPLETED.value, MatchStatus.PENDING_CONFIRMATION.value]

    match = match_service.get_match(db_conn, setup.match.id)
    assert match.status == MatchStatus.COMPLETED.value
    assert match.team1_captain_approved and match.team2_captain_approved
    profiles = PlayerProfileRepository()
    for pid in setup.team1_players + setup.team2_players:
        assert profiles.get(db_conn, pid).games_played == 1
    assert profiles.get(db_conn, setup.captain1).wins == 1


def test_simultaneous_rejections_open_one_dispute(db_conn, match_service, pending_match):
    setup = pending_match
    outcomes = _race(
        lambda conn: MatchService().approve_or_dispute(conn, setup.match.id, setup.team1_id, approved=False),
        lambda conn: MatchService().approve_or_dispute(conn, setup.match.id, setup.team2_id, approved=False),
    )
    errors = _errors(outcomes)
    assert len(errors) == 1
    assert isinstance(errors[0], DisputeAlreadyOpenError)
    [winner] = [o for o in outcomes if not isinstance(o, Exception)]
    assert winner.disputed

    disputes = DisputeRepository().list_by_match(db_conn, setup.match.id)
    assert [d.id for d in disputes] == [winner.dispute.id]
    assert match_service.get_match(db_conn, setup.match.id).status == MatchStatus.DISPUTED.value


@pytest.fixture
def open_dispute(db_conn, match_service, pending_match):
    """Team 2 rejected team 1's score; 4 participants, so 2 votes reach quorum."""
    result = match_service.approve_or_dispute(db_conn, pending_match.match.id, pending_match.team2_id, approved=False)
    return pending_match, result.dispute


def test_concurrent_quorum_votes_resolve_once(db_conn, open_dispute):
    setup, dispute = open_dispute
    a0, a1 = setup.team1_players
    b0 = setup.captain2
    DisputeResolver().cast_vote(db_conn, dispute.id, a0, setup.team1_id)

    outcomes = _race(
        lambda conn: DisputeResolver().cast_vote(conn, dispute.id, a1, setup.team1_id),
        lambda conn: DisputeResolver().cast_vote(conn, dispute.id, b0, setup.team1_id),
    )
    errors = _errors(outcomes)
    assert len(errors) == 1
    assert isinstance(errors[0], DisputeClosedError)

    resolved = DisputeRepository().get(db_conn, dispute.id)
    assert resolved.status == DisputeStatus.RESOLVED.value
    assert resolved.resolution_team_id == setup.team1_id
    assert len(DisputeVoteRepository().list_by_dispute(db_conn, dispute.id)) == 2
    # One set of postings: +5 for each defending player, -3 for each disputing player
    postings = TrustTransactionRepository().list_by_dispute(db_conn, dispute.id)
    assert sorted(t.points for t in postings) == [-3, -3, 5, 5]


def test_same_player_double_vote_stores_one(db_conn, open_dispute):
    setup, dispute = open_dispute
    voter = setup.captain1
    outcomes = _race(
        lambda conn: DisputeResolver().cast_vote(conn, dispute.id, voter, setup.team1_id),
        lambda conn: DisputeResolver().cast_vote(conn, dispute.id, voter, setup.team1_id),
    )
    errors = _errors(outcomes)
    assert len(errors) == 1
    assert isinstance(errors[0], DuplicateVoteError)

    votes = DisputeVoteRepository().list_by_dispute(db_conn, dispute.id)
    assert [v.player_id for v in votes] == [voter]
    assert DisputeRepository().get(db_conn, dispute.id).status == DisputeStatus.OPEN.value
