"""
Persistence layer for StreetBaller data.
No business logic: read/write interfaces and transaction helpers only.
"""
from .db import get_connection, init_db, savepoint, set_db_path, transaction
from .repositories import (
    UserRepository,
    PlayerProfileRepository,
    TeamRepository,
    MatchRepository,
    MatchEventRepository,
    DisputeRepository,
    DisputeVoteRepository,
    TrustTransactionRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "savepoint",
    "set_db_path",
    "transaction",
    "UserRepository",
    "PlayerProfileRepository",
    "TeamRepository",
    "MatchRepository",
    "MatchEventRepository",
    "DisputeRepository",
    "DisputeVoteRepository",
    "TrustTransactionRepository",
]
