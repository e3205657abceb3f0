"""MySQL adapter."""

from sqlalchemy import func
from sqlalchemy.sql.elements import ColumnElement

from .base import Dialect


class MySQLDialect(Dialect):
    """MySQL ``DATETIME`` has no zone; the ledger stores UTC."""

    name = "mysql"
    stores_timezone = False

    @property
    def regex_operator(self) -> str:
        return "REGEXP"

    def timestamp_expression(self, column: ColumnElement) -> ColumnElement:
        return func.date_format(column, "%Y:%m:%d:%H:%i:%S.%f")
