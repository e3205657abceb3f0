"""
Deploy Ledger

Records which schema changes are deployed to a database, and keeps the audit
trail of every deploy, revert and fail.
"""

import importlib.metadata

__version__ = importlib.metadata.version("deploy-ledger")

from .dialects import Dialect, get_dialect
from .errors import BackendError, InvalidArgument, LedgerError, RegistrationConflict
from .ledger import EventSearch, LedgerStore, RowStream
from .plan import Change, Dependency, Identity, Plan, Tag

__all__ = [
    "BackendError",
    "Change",
    "Dependency",
    "Dialect",
    "EventSearch",
    "Identity",
    "InvalidArgument",
    "LedgerError",
    "LedgerStore",
    "Plan",
    "RegistrationConflict",
    "RowStream",
    "Tag",
    "get_dialect",
]
