"""
Ledger error types.

Backend failures are not wrapped: anything the database driver raises reaches
the caller unchanged as a SQLAlchemy exception, exported here as
``BackendError`` for convenience.
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError as BackendError


class LedgerError(Exception):
    """Base class for errors raised by the ledger itself."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class RegistrationConflict(LedgerError):
    """Raised when a project cannot be registered with the requested URI."""

    code = "REGISTRATION_CONFLICT"

    def __init__(
        self,
        message: str,
        project: str,
        uri: Optional[str] = None,
        registered_uri: Optional[str] = None,
        registered_project: Optional[str] = None,
    ):
        self.project = project
        self.uri = uri
        self.registered_uri = registered_uri
        self.registered_project = registered_project
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "project": self.project,
            "uri": self.uri,
            "registered_uri": self.registered_uri,
            "registered_project": self.registered_project,
            "message": self.message,
        }


class InvalidArgument(LedgerError, ValueError):
    """Raised for bad search options or unknown dialect names."""

    code = "INVALID_ARGUMENT"


__all__ = [
    "BackendError",
    "InvalidArgument",
    "LedgerError",
    "RegistrationConflict",
]
