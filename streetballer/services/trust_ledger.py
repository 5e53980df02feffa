"""
Trust ledger: append-only point awards and penalties per player.

Every posting appends one immutable trust_transactions row and moves the
player's denormalized balance in the same transaction. The balance is
clamped at zero after each step; the stored points keep the sign given.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable

from streetballer.constants import DEFAULT_HISTORY_PAGE, TRUST_FLOOR
from streetballer.models import TransactionType, TrustTransaction
from streetballer.persistence.db import transaction
from streetballer.persistence.repositories import (
    PlayerProfileRepository,
    TrustTransactionRepository,
)
from streetballer.services.errors import PlayerNotFoundError

logger = logging.getLogger(__name__)


def transaction_type_for(points: int) -> TransactionType:
    if points > 0:
        return TransactionType.AWARD
    if points < 0:
        return TransactionType.PENALTY
    return TransactionType.ADJUSTMENT


def format_rate(numerator: int, denominator: int) -> str:
    """Percentage with two decimals, or N/A when there is nothing to divide by."""
    if denominator <= 0:
        return "N/A"
    return f"{numerator / denominator * 100:.2f}%"


@dataclass(frozen=True)
class LedgerEntry:
    """A posting waiting to be recorded."""
    player_id: str
    points: int
    reason: str
    match_id: str | None = None
    dispute_id: str | None = None


class TrustLedger:
    """Records trust transactions and serves ledger read projections."""

    def __init__(
        self,
        profile_repo: PlayerProfileRepository | None = None,
        transaction_repo: TrustTransactionRepository | None = None,
    ) -> None:
        self._profile_repo = profile_repo or PlayerProfileRepository()
        self._txn_repo = transaction_repo or TrustTransactionRepository()

    def record_transaction(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        points: int,
        reason: str,
        match_id: str | None = None,
        dispute_id: str | None = None,
    ) -> TrustTransaction:
        """
        Append one transaction and move the balance to max(0, balance + points).
        Joins the caller's transaction when one is open.
        """
        with transaction(conn):
            profile = self._profile_repo.get(conn, player_id)
            if profile is None:
                raise PlayerNotFoundError(player_id)
            new_balance = max(TRUST_FLOOR, profile.trust_points + points)
            txn = self._txn_repo.create(
                conn,
                player_id=player_id,
                transaction_type=transaction_type_for(points).value,
                points=points,
                balance=new_balance,
                reason=reason,
                match_id=match_id,
                dispute_id=dispute_id,
            )
            self._profile_repo.update_trust_points(conn, player_id, new_balance)
        logger.info(
            "Trust transaction recorded: player=%s points=%+d balance=%d reason=%s",
            player_id, points, new_balance, reason,
        )
        return txn

    def record_many(self, conn: sqlite3.Connection, entries: Iterable[LedgerEntry]) -> list[TrustTransaction]:
        """Post several entries all-or-nothing."""
        with transaction(conn):
            return [
                self.record_transaction(
                    conn, e.player_id, e.points, e.reason, match_id=e.match_id, dispute_id=e.dispute_id
                )
                for e in entries
            ]

    def award_points(
        self, conn: sqlite3.Connection, player_id: str, points: int, reason: str, match_id: str | None = None
    ) -> TrustTransaction:
        return self.record_transaction(conn, player_id, abs(points), reason, match_id=match_id)

    def apply_penalty(
        self, conn: sqlite3.Connection, player_id: str, points: int, reason: str, dispute_id: str | None = None
    ) -> TrustTransaction:
        return self.record_transaction(conn, player_id, -abs(points), reason, dispute_id=dispute_id)

    # ---------- Read side ----------

    def get_balance(self, conn: sqlite3.Connection, player_id: str) -> int:
        profile = self._profile_repo.get(conn, player_id)
        if profile is None:
            raise PlayerNotFoundError(player_id)
        return profile.trust_points

    def get_transaction_history(
        self, conn: sqlite3.Connection, player_id: str, limit: int = DEFAULT_HISTORY_PAGE, offset: int = 0
    ) -> dict[str, Any]:
        profile = self._profile_repo.get(conn, player_id)
        if profile is None:
            raise PlayerNotFoundError(player_id)
        transactions = self._txn_repo.list_by_player(conn, player_id, limit, offset)
        total = self._txn_repo.count_by_player(conn, player_id)
        return {
            "player_id": player_id,
            "display_name": profile.display_name,
            "current_balance": profile.trust_points,
            "total_transactions": total,
            "transactions": [t.to_dict() for t in transactions],
            "pagination": {
                "limit": limit,
                "offset": offset,
                "has_more": offset + len(transactions) < total,
            },
        }

    def get_trust_summary(self, conn: sqlite3.Connection, player_id: str) -> dict[str, Any]:
        profile = self._profile_repo.get(conn, player_id)
        if profile is None:
            raise PlayerNotFoundError(player_id)
        totals = self._txn_repo.totals_by_player(conn, player_id)
        return {
            "player_id": player_id,
            "display_name": profile.display_name,
            "current_balance": profile.trust_points,
            "total_awarded": totals["awarded"],
            "total_penalized": abs(totals["penalized"]),
            "award_count": totals["awards"],
            "penalty_count": totals["penalties"],
            "stats": {
                "games_played": profile.games_played,
                "wins": profile.wins,
                "losses": profile.losses,
                "draws": profile.draws,
                "goals_scored": profile.goals_scored,
                "assists": profile.assists,
            },
            "win_rate": format_rate(profile.wins, profile.games_played),
        }

    def get_trust_leaderboard(
        self, conn: sqlite3.Connection, limit: int = DEFAULT_HISTORY_PAGE, offset: int = 0
    ) -> dict[str, Any]:
        profiles = self._profile_repo.list_by_trust(conn, limit, offset)
        entries = [
            {
                "rank": offset + i + 1,
                "player_id": p.user_id,
                "display_name": p.display_name,
                "trust_score": p.trust_points,
                "games_played": p.games_played,
                "wins": p.wins,
                "reliability": format_rate(p.wins, p.games_played),
            }
            for i, p in enumerate(profiles)
        ]
        return {
            "data": entries,
            "total": self._profile_repo.count(conn),
            "limit": limit,
            "offset": offset,
        }
