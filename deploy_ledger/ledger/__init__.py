"""
The deploy ledger: what is deployed, and the history of how it got there.
"""

from .results import RowStream
from .search import EventSearch, build_search_query
from .store import LedgerStore

__all__ = [
    "EventSearch",
    "LedgerStore",
    "RowStream",
    "build_search_query",
]
