"""
Backend adapters for the deploy ledger.

Usage:
    dialect = dialect_for(session)
    store = LedgerStore(session, plan, operator, dialect=dialect)
"""

from typing import Dict, List, Type, Union

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from ..errors import InvalidArgument
from .base import Dialect
from .mysql import MySQLDialect
from .postgresql import PostgreSQLDialect
from .sqlite import SQLiteDialect

_REGISTRY: Dict[str, Type[Dialect]] = {}


def register_dialect(dialect_class: Type[Dialect]) -> Type[Dialect]:
    """Register an adapter under its ``name``. Usable as a class decorator."""
    _REGISTRY[dialect_class.name] = dialect_class
    return dialect_class


for _dialect_class in (SQLiteDialect, PostgreSQLDialect, MySQLDialect):
    register_dialect(_dialect_class)


def supported_dialects() -> List[str]:
    return sorted(_REGISTRY)


def get_dialect(name: str) -> Dialect:
    """Return an adapter instance for a SQLAlchemy dialect name."""
    try:
        return _REGISTRY[name]()
    except KeyError:
        raise InvalidArgument(
            f'Unsupported database dialect "{name}". '
            f"Supported: {', '.join(supported_dialects())}"
        ) from None


def dialect_for(bind: Union[Session, Engine]) -> Dialect:
    """Return the adapter matching a session's or engine's backend."""
    if isinstance(bind, Session):
        bind = bind.get_bind()
    return get_dialect(bind.dialect.name)


__all__ = [
    "Dialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "dialect_for",
    "get_dialect",
    "register_dialect",
    "supported_dialects",
]
