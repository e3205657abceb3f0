"""
Dialect adapter interface.

A dialect supplies the few backend-specific pieces the ledger needs: how to
render a timestamp column as parseable text inside a query, how to parse that
text back, how to bind a timestamp for storage, and which operator performs a
regular-expression match.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy.sql.elements import ColumnElement


class Dialect(ABC):
    """Abstract base class for backend adapters."""

    #: SQLAlchemy dialect name this adapter serves
    name: str = ""

    #: Whether timestamps keep their zone when stored
    stores_timezone: bool = False

    @property
    @abstractmethod
    def regex_operator(self) -> str:
        """Binary operator token for a regular-expression match."""
        pass

    @abstractmethod
    def timestamp_expression(self, column: ColumnElement) -> ColumnElement:
        """Render ``column`` as ``YYYY:MM:DD:HH:MM:SS[.ffffff]`` text in UTC."""
        pass

    def parse_timestamp(self, value: str) -> datetime:
        """Parse text produced by :meth:`timestamp_expression`.

        Returns a timezone-aware UTC datetime.
        """
        parts = str(value).strip().split(":")
        if len(parts) != 6:
            raise ValueError(f"Cannot parse ledger timestamp {value!r}")

        year, month, day, hour, minute = (int(part) for part in parts[:5])
        seconds, _, fraction = parts[5].partition(".")
        microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0

        return datetime(
            year,
            month,
            day,
            hour,
            minute,
            int(seconds),
            microsecond,
            tzinfo=timezone.utc,
        )

    def timestamp_param(self, value: datetime) -> datetime:
        """Normalize a timestamp before binding it for storage."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if not self.stores_timezone:
            value = value.replace(tzinfo=None)
        return value

    def regex_match(self, column: ColumnElement, pattern: str) -> ColumnElement:
        """Build a ``column <op> pattern`` predicate."""
        return column.op(self.regex_operator, is_comparison=True)(pattern)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"
