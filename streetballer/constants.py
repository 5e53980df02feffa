"""
Point values and limits shared by the services and the request layer.
"""
from __future__ import annotations

# Dispute outcome adjustments (trust ledger)
DISPUTE_WIN_POINTS = 5
FALSE_DISPUTE_PENALTY = -3

TRUST_FLOOR = 0

# Event timestamps
MAX_EVENT_MINUTE = 120
MAX_EVENT_SECOND = 59

# Pagination defaults
DEFAULT_EVENT_PAGE = 100
DEFAULT_HISTORY_PAGE = 50
MAX_PAGE_SIZE = 500
