"""
Dispute resolution: a captain's rejection opens a dispute, match
participants vote, and a quorum-gated majority settles it.

Dispute lifecycle: open → resolved (terminal).

Voting and resolution happen in one write transaction, so two votes that
arrive together cannot both resolve the dispute. Trust points are posted
after that transaction commits; if posting fails the dispute stays resolved
and the caller gets LedgerPostingError.
"""
from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from streetballer.constants import DISPUTE_WIN_POINTS, FALSE_DISPUTE_PENALTY
from streetballer.models import Dispute, DisputeStatus, DisputeVote, Match, MatchStatus, VoteTally
from streetballer.persistence.db import transaction
from streetballer.persistence.repositories import (
    DisputeRepository,
    DisputeVoteRepository,
    MatchRepository,
)
from streetballer.services.completion_stats import CompletionStatsRecorder
from streetballer.services.errors import (
    DisputeAlreadyOpenError,
    DisputeClosedError,
    DisputeNotFoundError,
    DuplicateVoteError,
    LedgerPostingError,
    MatchNotFoundError,
    NoPendingScoreError,
    PlayerNotEligibleError,
    StreetBallerError,
    TeamNotInMatchError,
)
from streetballer.services.trust_ledger import LedgerEntry, TrustLedger

logger = logging.getLogger(__name__)


def required_votes(total_participants: int) -> int:
    """Strict-majority quorum over everyone eligible, not just those who voted."""
    return math.ceil(total_participants / 2)


def pick_winner(votes_by_team: dict[str, int], disputing_team_id: str, defending_team_id: str) -> str:
    """Team with strictly more votes wins; a tie keeps the reported score (defending team)."""
    if votes_by_team.get(disputing_team_id, 0) > votes_by_team.get(defending_team_id, 0):
        return disputing_team_id
    return defending_team_id


@dataclass(frozen=True)
class Resolution:
    dispute_id: str
    match_id: str
    winning_team_id: str
    losing_team_id: str
    disputing_team_id: str

    @property
    def score_upheld(self) -> bool:
        return self.winning_team_id != self.disputing_team_id


class DisputeResolver:
    """Opens disputes, records votes and resolves disputes on quorum."""

    def __init__(
        self,
        ledger: TrustLedger | None = None,
        dispute_repo: DisputeRepository | None = None,
        vote_repo: DisputeVoteRepository | None = None,
        match_repo: MatchRepository | None = None,
        completion_stats: CompletionStatsRecorder | None = None,
    ) -> None:
        self._ledger = ledger or TrustLedger()
        self._dispute_repo = dispute_repo or DisputeRepository()
        self._vote_repo = vote_repo or DisputeVoteRepository()
        self._match_repo = match_repo or MatchRepository()
        self._completion_stats = completion_stats or CompletionStatsRecorder(match_repo=self._match_repo)

    # ---------- Opening ----------

    def open_dispute(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        disputing_team_id: str,
        reason: str | None = None,
    ) -> Dispute:
        """
        Create the dispute (defending team = the other side) and move the match to disputed.
        Only one open dispute per match; the partial unique index backs the check.
        """
        with transaction(conn):
            match = self._match_repo.get(conn, match_id)
            if match is None:
                raise MatchNotFoundError(match_id)
            if not match.has_team(disputing_team_id):
                raise TeamNotInMatchError(f"Team {disputing_team_id} is not playing in match {match_id}")
            if self._dispute_repo.get_open_for_match(conn, match_id) is not None:
                raise DisputeAlreadyOpenError(f"Match {match_id} already has an open dispute")
            if match.status != MatchStatus.PENDING_CONFIRMATION.value or match.score_contested:
                raise NoPendingScoreError(
                    f"Match {match_id} has no score awaiting confirmation (status: {match.status})"
                )
            try:
                dispute = self._dispute_repo.create(
                    conn,
                    match_id=match_id,
                    disputing_team_id=disputing_team_id,
                    defending_team_id=match.other_team(disputing_team_id),
                    reason=reason,
                )
            except sqlite3.IntegrityError:
                raise DisputeAlreadyOpenError(f"Match {match_id} already has an open dispute") from None
            self._match_repo.update_status(
                conn, match_id, MatchStatus.DISPUTED.value,
                expected_status=MatchStatus.PENDING_CONFIRMATION.value,
            )
        logger.info(
            "Dispute opened: dispute=%s match=%s disputing=%s defending=%s",
            dispute.id, match_id, dispute.disputing_team_id, dispute.defending_team_id,
        )
        return dispute

    # ---------- Voting ----------

    def cast_vote(
        self,
        conn: sqlite3.Connection,
        dispute_id: str,
        player_id: str,
        vote_for_team_id: str,
    ) -> DisputeVote:
        """
        Record one participant's vote, then resolve the dispute if quorum is reached.
        Raises LedgerPostingError if the dispute resolved but trust points could not be posted.
        """
        with transaction(conn):
            dispute = self._dispute_repo.get(conn, dispute_id)
            if dispute is None:
                raise DisputeNotFoundError(dispute_id)
            if dispute.status != DisputeStatus.OPEN.value:
                raise DisputeClosedError(f"Dispute {dispute_id} is already {dispute.status}")
            match = self._match_repo.get(conn, dispute.match_id)
            if match is None:
                raise MatchNotFoundError(dispute.match_id)
            if self._match_repo.get_participation(conn, match.id, player_id) is None:
                raise PlayerNotEligibleError(f"Player {player_id} did not participate in match {match.id}")
            if not match.has_team(vote_for_team_id):
                raise TeamNotInMatchError(f"Team {vote_for_team_id} is not playing in match {match.id}")
            try:
                vote = self._vote_repo.create(conn, dispute_id, player_id, vote_for_team_id)
            except sqlite3.IntegrityError:
                raise DuplicateVoteError(f"Player {player_id} has already voted on dispute {dispute_id}") from None
            logger.info("Dispute vote recorded: dispute=%s player=%s for=%s", dispute_id, player_id, vote_for_team_id)
            resolution = self._maybe_resolve(conn, dispute, match)

        if resolution is not None:
            self._post_trust_adjustments(conn, resolution)
        return vote

    def get_tally(self, conn: sqlite3.Connection, dispute_id: str) -> VoteTally:
        dispute = self._dispute_repo.get(conn, dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return self._tally(conn, dispute)

    def _tally(self, conn: sqlite3.Connection, dispute: Dispute) -> VoteTally:
        total = self._match_repo.count_participants(conn, dispute.match_id)
        by_team = self._vote_repo.count_by_team(conn, dispute.id)
        votes_by_team = {
            dispute.disputing_team_id: by_team.get(dispute.disputing_team_id, 0),
            dispute.defending_team_id: by_team.get(dispute.defending_team_id, 0),
        }
        return VoteTally(
            dispute_id=dispute.id,
            total_participants=total,
            required_votes=required_votes(total),
            votes_cast=sum(by_team.values()),
            votes_by_team=votes_by_team,
        )

    # ---------- Resolution ----------

    def _maybe_resolve(self, conn: sqlite3.Connection, dispute: Dispute, match: Match) -> Resolution | None:
        tally = self._tally(conn, dispute)
        if not tally.quorum_reached:
            logger.debug(
                "Dispute %s below quorum: %d/%d votes", dispute.id, tally.votes_cast, tally.required_votes
            )
            return None
        winner = pick_winner(tally.votes_by_team, dispute.disputing_team_id, dispute.defending_team_id)
        now = datetime.now(timezone.utc).isoformat()
        if not self._dispute_repo.resolve(conn, dispute.id, winner, now):
            # Another resolution already committed
            return None
        resolution = Resolution(
            dispute_id=dispute.id,
            match_id=match.id,
            winning_team_id=winner,
            losing_team_id=match.other_team(winner),
            disputing_team_id=dispute.disputing_team_id,
        )
        if resolution.score_upheld:
            self._match_repo.complete_from_dispute(conn, match.id, now)
            self._completion_stats.record(conn, match.id)
            logger.info("Dispute %s resolved: reported score upheld, match %s completed", dispute.id, match.id)
        else:
            self._match_repo.reopen_for_resubmission(conn, match.id)
            logger.info(
                "Dispute %s resolved: reported score overturned, match %s awaits a new score",
                dispute.id, match.id,
            )
        return resolution

    def _post_trust_adjustments(self, conn: sqlite3.Connection, resolution: Resolution) -> None:
        """+5 to every winning participant; -3 to the disputing side only if it lost."""
        entries = [
            LedgerEntry(
                player_id=pid,
                points=DISPUTE_WIN_POINTS,
                reason="Dispute resolution won",
                match_id=resolution.match_id,
                dispute_id=resolution.dispute_id,
            )
            for pid in self._match_repo.list_participant_ids(conn, resolution.match_id, resolution.winning_team_id)
        ]
        if resolution.losing_team_id == resolution.disputing_team_id:
            entries.extend(
                LedgerEntry(
                    player_id=pid,
                    points=FALSE_DISPUTE_PENALTY,
                    reason="False dispute claim",
                    match_id=resolution.match_id,
                    dispute_id=resolution.dispute_id,
                )
                for pid in self._match_repo.list_participant_ids(
                    conn, resolution.match_id, resolution.losing_team_id
                )
            )
        try:
            self._ledger.record_many(conn, entries)
        except (StreetBallerError, sqlite3.Error) as e:
            logger.exception("Trust postings failed for resolved dispute %s", resolution.dispute_id)
            raise LedgerPostingError(resolution.dispute_id) from e
        logger.info(
            "Trust points adjusted for dispute %s: winner=%s loser=%s entries=%d",
            resolution.dispute_id, resolution.winning_team_id, resolution.losing_team_id, len(entries),
        )

    # ---------- Read side ----------

    def get_dispute(self, conn: sqlite3.Connection, dispute_id: str) -> Dispute:
        dispute = self._dispute_repo.get(conn, dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    def get_dispute_details(self, conn: sqlite3.Connection, dispute_id: str) -> dict[str, Any]:
        dispute = self.get_dispute(conn, dispute_id)
        votes = self._vote_repo.list_by_dispute(conn, dispute_id)
        return {
            **dispute.to_dict(),
            "votes": [v.to_dict() for v in votes],
            "tally": self._tally(conn, dispute).to_dict(),
        }

    def list_open_disputes(self, conn: sqlite3.Connection) -> list[Dispute]:
        return self._dispute_repo.list_open(conn)

    def get_open_dispute_for_match(self, conn: sqlite3.Connection, match_id: str) -> Dispute | None:
        return self._dispute_repo.get_open_for_match(conn, match_id)

    def list_match_disputes(self, conn: sqlite3.Connection, match_id: str) -> list[Dispute]:
        return self._dispute_repo.list_by_match(conn, match_id)
