"""
Database package for the deploy ledger.
"""

from .base import Base, get_engine, get_session_local, init_database
from .models import (
    ChangeModel,
    DependencyModel,
    LedgerEventModel,
    ProjectModel,
    TagModel,
)

__all__ = [
    "Base",
    "ChangeModel",
    "DependencyModel",
    "LedgerEventModel",
    "ProjectModel",
    "TagModel",
    "get_engine",
    "get_session_local",
    "init_database",
]
