"""SQLite adapter."""

from sqlalchemy import func
from sqlalchemy.sql.elements import ColumnElement

from .base import Dialect


class SQLiteDialect(Dialect):
    """SQLite stores timestamps as naive UTC text.

    ``REGEXP`` relies on the ``regexp()`` function SQLAlchemy's pysqlite
    driver installs on every new connection.
    """

    name = "sqlite"
    stores_timezone = False

    @property
    def regex_operator(self) -> str:
        return "REGEXP"

    def timestamp_expression(self, column: ColumnElement) -> ColumnElement:
        # %f is SS.SSS, so the seconds field carries milliseconds
        return func.strftime("%Y:%m:%d:%H:%M:%f", column)
