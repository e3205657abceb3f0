"""PostgreSQL adapter."""

from sqlalchemy import func, literal_column
from sqlalchemy.sql.elements import ColumnElement

from .base import Dialect


class PostgreSQLDialect(Dialect):
    name = "postgresql"
    stores_timezone = True

    @property
    def regex_operator(self) -> str:
        return "~"

    def timestamp_expression(self, column: ColumnElement) -> ColumnElement:
        utc = func.timezone(literal_column("'UTC'"), column)
        return func.to_char(utc, "YYYY:MM:DD:HH24:MI:SS.US")
