"""Lazy, forward-only row sequences over an open result cursor."""

from typing import Any, Callable, Dict, Iterator, Optional

from sqlalchemy.engine import Result

Row = Dict[str, Any]


class RowStream(Iterator[Row]):
    """Iterate a query result one decoded row at a time.

    Rows are fetched from the cursor on demand. The stream cannot be
    restarted; once exhausted or closed it stays empty. Close it (or use it
    as a context manager) before issuing another statement on backends that
    forbid interleaved statements on one connection.
    """

    def __init__(self, result: Result, decode: Optional[Callable[[Row], Row]] = None):
        self._result = result.mappings()
        self._decode = decode
        self._closed = False

    def __iter__(self) -> "RowStream":
        return self

    def __next__(self) -> Row:
        if self._closed:
            raise StopIteration
        mapping = self._result.fetchone()
        if mapping is None:
            self.close()
            raise StopIteration
        row = dict(mapping)
        if self._decode is not None:
            row = self._decode(row)
        return row

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the underlying cursor."""
        if not self._closed:
            self._closed = True
            self._result.close()

    def __enter__(self) -> "RowStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
