"""
Tests for the match service: scheduling, score submission, captain approval.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from streetballer.models import MatchFormat, MatchStatus
from streetballer.persistence.repositories import MatchEventRepository, PlayerProfileRepository, TeamRepository
from streetballer.services.dispute_service import DisputeResolver
from streetballer.services.errors import (
    DisputeAlreadyOpenError,
    InvalidMatchStateError,
    InvalidScoreError,
    MatchNotFoundError,
    NoPendingScoreError,
    PlayerNotFoundError,
    TeamNotFoundError,
    TeamNotInMatchError,
    ValidationError,
)
from streetballer.services.match_event_service import SubmittedEvent

from conftest import MATCH_DATE, make_player


# ---------- Scheduling ----------


def test_create_match_starts_scheduled(build_match):
    setup = build_match(add_participants=False)
    assert setup.match.status == MatchStatus.SCHEDULED.value
    assert setup.match.team1_score is None
    assert setup.match.format == "5v5"


def test_create_match_rejects_same_team(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    with pytest.raises(ValidationError):
        match_service.create_match(db_conn, setup.team1_id, setup.team1_id, "pitch-1", MATCH_DATE, "5v5")


def test_create_match_rejects_unknown_format_and_team(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    with pytest.raises(ValidationError):
        match_service.create_match(db_conn, setup.team1_id, setup.team2_id, "pitch-1", MATCH_DATE, "3v3")
    with pytest.raises(TeamNotFoundError):
        match_service.create_match(db_conn, setup.team1_id, "no-such-team", "pitch-1", MATCH_DATE, "7v7")
    with pytest.raises(ValidationError):
        match_service.create_match(db_conn, setup.team1_id, setup.team2_id, "pitch-1", "next tuesday", "7v7")


def test_get_unknown_match(db_conn, match_service):
    with pytest.raises(MatchNotFoundError):
        match_service.get_match(db_conn, "missing")


def test_start_match_only_from_scheduled(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    match = match_service.start_match(db_conn, setup.match.id)
    assert match.status == MatchStatus.IN_PROGRESS.value
    with pytest.raises(InvalidMatchStateError):
        match_service.start_match(db_conn, setup.match.id)


def test_list_team_matches_and_upcoming(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    assert [m.id for m in match_service.list_team_matches(db_conn, setup.team1_id)] == [setup.match.id]
    assert setup.match.id in [m.id for m in match_service.list_upcoming(db_conn)]
    match_service.start_match(db_conn, setup.match.id)
    assert setup.match.id not in [m.id for m in match_service.list_upcoming(db_conn)]


def test_create_match_accepts_format_enum(db_conn, match_service, build_match):
    setup = build_match(per_team=1, add_participants=False)
    match = match_service.create_match(
        db_conn, setup.team1_id, setup.team2_id, "pitch-2", MATCH_DATE, MatchFormat.ELEVEN
    )
    assert match.format == "11v11"


def test_match_date_offsets_normalized_for_upcoming(db_conn, match_service, build_match):
    setup = build_match(per_team=1, add_participants=False)
    now = datetime.now(timezone.utc).replace(microsecond=0)
    # Local clock reads earlier than UTC now, but the instant is an hour ahead
    soon_west = (now + timedelta(hours=1)).astimezone(timezone(timedelta(hours=-5)))
    # Local clock reads later than UTC now, but the instant has passed
    past_east = (now - timedelta(hours=1)).astimezone(timezone(timedelta(hours=5)))
    soon = match_service.create_match(
        db_conn, setup.team1_id, setup.team2_id, "pitch-2", soon_west.isoformat(), "5v5"
    )
    past = match_service.create_match(
        db_conn, setup.team1_id, setup.team2_id, "pitch-3", past_east.isoformat(), "5v5"
    )
    assert soon.match_date == now + timedelta(hours=1)
    assert soon.match_date.utcoffset() == timedelta(0)

    upcoming = [m.id for m in match_service.list_upcoming(db_conn)]
    assert upcoming == [soon.id, setup.match.id]
    assert past.id not in upcoming


# ---------- Participation ----------


def test_add_participant_requires_team_in_match(db_conn, match_service, build_match):
    setup = build_match(per_team=1, add_participants=False)
    outsider_team = TeamRepository().create(db_conn, "Other", created_by=setup.captain1)
    with pytest.raises(TeamNotInMatchError):
        match_service.add_participant(db_conn, setup.match.id, setup.captain1, outsider_team.id)
    with pytest.raises(PlayerNotFoundError):
        match_service.add_participant(db_conn, setup.match.id, "ghost", setup.team1_id)


def test_add_participant_is_upsert(db_conn, match_service, build_match):
    setup = build_match(per_team=2, add_participants=False)
    pid = setup.team1_players[1]
    match_service.add_participant(db_conn, setup.match.id, pid, setup.team1_id)
    match_service.add_participant(db_conn, setup.match.id, pid, setup.team2_id)
    participants = match_service.list_participants(db_conn, setup.match.id)
    assert len(participants) == 1
    assert participants[0].team_id == setup.team2_id


# ---------- Score submission ----------


def test_submit_score_moves_to_pending(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    match = match_service.submit_score(db_conn, setup.match.id, 3, 1)
    assert match.status == MatchStatus.PENDING_CONFIRMATION.value
    assert (match.team1_score, match.team2_score) == (3, 1)
    assert not match.team1_captain_approved
    assert not match.team2_captain_approved


@pytest.mark.parametrize("scores", [(-1, 2), (2, -1), (1.5, 0), ("3", 1), (True, 0)])
def test_invalid_score_rejected_and_status_unchanged(db_conn, match_service, build_match, scores):
    setup = build_match(per_team=1)
    with pytest.raises(InvalidScoreError):
        match_service.submit_score(db_conn, setup.match.id, *scores)
    match = match_service.get_match(db_conn, setup.match.id)
    assert match.status == MatchStatus.SCHEDULED.value
    assert match.team1_score is None


def test_submit_score_twice_rejected(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    match_service.submit_score(db_conn, setup.match.id, 1, 0)
    with pytest.raises(InvalidMatchStateError):
        match_service.submit_score(db_conn, setup.match.id, 2, 0)


def test_submit_score_records_events_best_effort(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    scorer, assister = setup.team1_players
    events = [
        SubmittedEvent(scorer_id=scorer, minute=12, team_id=setup.team1_id, assister_id=assister),
        # Unknown scorer: skipped, the score still goes through
        SubmittedEvent(scorer_id="ghost", minute=30, team_id=setup.team1_id),
        SubmittedEvent(scorer_id=setup.captain2, minute=55, team_id=setup.team2_id, event_type="yellowCard"),
    ]
    match = match_service.submit_score(db_conn, setup.match.id, 1, 0, events=events)
    assert match.status == MatchStatus.PENDING_CONFIRMATION.value

    stored = MatchEventRepository().list_by_match(db_conn, setup.match.id)
    assert [(e.event_type, e.player_id) for e in stored] == [("goal", scorer), ("yellow_card", setup.captain2)]
    profiles = PlayerProfileRepository()
    assert profiles.get(db_conn, scorer).goals_scored == 1
    assert profiles.get(db_conn, assister).assists == 1
    assert profiles.get(db_conn, setup.captain2).cards == 1


@pytest.mark.parametrize(
    "bad_event",
    [
        {"event_type": "bogus"},
        {"event_type": "substitution"},
        {"minute": 121},
        {"second": 60},
    ],
)
def test_malformed_event_rejects_whole_submission(db_conn, match_service, build_match, bad_event):
    setup = build_match(per_team=1)
    events = [
        SubmittedEvent(scorer_id=setup.captain1, minute=10, team_id=setup.team1_id),
        SubmittedEvent(**{"scorer_id": setup.captain1, "minute": 20, "team_id": setup.team1_id, **bad_event}),
    ]
    with pytest.raises(ValidationError):
        match_service.submit_score(db_conn, setup.match.id, 2, 0, events=events)
    match = match_service.get_match(db_conn, setup.match.id)
    assert match.status == MatchStatus.SCHEDULED.value
    assert match.team1_score is None
    assert MatchEventRepository().list_by_match(db_conn, setup.match.id) == []
    assert PlayerProfileRepository().get(db_conn, setup.captain1).goals_scored == 0


# ---------- Captain approval ----------


def test_both_approvals_complete_match(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    match_service.submit_score(db_conn, setup.match.id, 2, 1)

    first = match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    assert first.match.status == MatchStatus.PENDING_CONFIRMATION.value
    assert first.match.team1_captain_approved
    assert not first.disputed

    second = match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=True)
    assert second.match.status == MatchStatus.COMPLETED.value
    assert second.match.completed_at is not None


def test_repeat_approval_is_idempotent(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    match_service.submit_score(db_conn, setup.match.id, 2, 1)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    done = match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=True).match

    again = match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True).match
    assert again.status == MatchStatus.COMPLETED.value
    assert again.completed_at == done.completed_at
    # Completion stats were applied exactly once
    assert PlayerProfileRepository().get(db_conn, setup.captain1).games_played == 1


def test_completion_updates_win_loss_counters(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    match_service.submit_score(db_conn, setup.match.id, 4, 2)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=True)
    profiles = PlayerProfileRepository()
    for pid in setup.team1_players:
        p = profiles.get(db_conn, pid)
        assert (p.games_played, p.wins, p.losses) == (1, 1, 0)
    for pid in setup.team2_players:
        p = profiles.get(db_conn, pid)
        assert (p.games_played, p.wins, p.losses) == (1, 0, 1)


def test_draw_counted(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    match_service.submit_score(db_conn, setup.match.id, 1, 1)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=True)
    assert PlayerProfileRepository().get(db_conn, setup.captain1).draws == 1


def test_decision_requires_team_in_match(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    match_service.submit_score(db_conn, setup.match.id, 1, 0)
    with pytest.raises(TeamNotInMatchError):
        match_service.approve_or_dispute(db_conn, setup.match.id, "other-team", approved=True)


def test_decision_requires_pending_score(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    with pytest.raises(NoPendingScoreError):
        match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    with pytest.raises(NoPendingScoreError):
        match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=False)


def test_rejection_opens_dispute(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    match_service.submit_score(db_conn, setup.match.id, 3, 0)
    result = match_service.approve_or_dispute(
        db_conn, setup.match.id, setup.team2_id, approved=False, reason="Third goal was offside"
    )
    assert result.disputed
    assert result.match.status == MatchStatus.DISPUTED.value
    assert result.dispute.disputing_team_id == setup.team2_id
    assert result.dispute.defending_team_id == setup.team1_id
    assert result.dispute.reason == "Third goal was offside"

    with pytest.raises(DisputeAlreadyOpenError):
        match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=False)
    with pytest.raises(NoPendingScoreError):
        match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)


def test_resubmission_after_overturned_score(db_conn, match_service, build_match):
    setup = build_match(per_team=2)
    match_service.submit_score(db_conn, setup.match.id, 3, 0)
    dispute = match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=False).dispute

    # 4 participants: quorum is 2; both votes back the disputing team
    resolver = DisputeResolver()
    resolver.cast_vote(db_conn, dispute.id, setup.team2_players[0], setup.team2_id)
    resolver.cast_vote(db_conn, dispute.id, setup.team2_players[1], setup.team2_id)

    match = match_service.get_match(db_conn, setup.match.id)
    assert match.status == MatchStatus.PENDING_CONFIRMATION.value
    assert match.score_contested
    # Overturned score stays as reported until a new one is submitted
    assert (match.team1_score, match.team2_score) == (3, 0)
    with pytest.raises(NoPendingScoreError):
        match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    with pytest.raises(NoPendingScoreError):
        match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=False)

    match = match_service.submit_score(db_conn, setup.match.id, 2, 2)
    assert not match.score_contested
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    final = match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=True).match
    assert final.status == MatchStatus.COMPLETED.value
    assert (final.team1_score, final.team2_score) == (2, 2)


def test_participants_locked_after_completion(db_conn, match_service, build_match):
    setup = build_match(per_team=1)
    late = make_player(db_conn, "Late")
    match_service.submit_score(db_conn, setup.match.id, 0, 0)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team1_id, approved=True)
    match_service.approve_or_dispute(db_conn, setup.match.id, setup.team2_id, approved=True)
    with pytest.raises(InvalidMatchStateError):
        match_service.add_participant(db_conn, setup.match.id, late, setup.team1_id)
