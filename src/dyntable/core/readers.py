"""
Row readers.

Every query path reads through a ``RowReader``: a forward-only source of
Records over one or more result sets.

- ``DbApiRowReader`` wraps one executed DB-API cursor.
- ``CursorChainReader`` walks a list of already-open driver cursors, one
  result set each (Oracle ref cursors, MySQL ``stored_results()``).
- ``DereferencingReader`` turns a PostgreSQL result containing refcursor
  columns into the rows of those cursors, fetching in batches.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Any

from dyntable.core.errors import CursorTransactionError
from dyntable.core.logging import get_logger
from dyntable.core.params import Record
from dyntable.core.protocols import DbApiConnection, DbApiCursor

logger = get_logger(__name__)

# SQLSTATE invalid_cursor_name: the portal is gone because its transaction ended
INVALID_CURSOR_NAME = "34000"

DEFAULT_FETCH_SIZE = 500


def column_names(description: Sequence[Sequence[Any]]) -> list[str]:
    return [column[0] for column in description]


def iter_records(cursor: DbApiCursor, fetch_size: int = DEFAULT_FETCH_SIZE) -> Iterator[Record]:
    """Yield the cursor's current result set as Records."""
    if cursor.description is None:
        return
    names = column_names(cursor.description)
    while True:
        batch = cursor.fetchmany(fetch_size)
        if not batch:
            return
        for row in batch:
            yield Record(zip(names, row))


class DbApiRowReader:
    """Reader over one executed DB-API cursor."""

    def __init__(
        self,
        cursor: DbApiCursor,
        *,
        multiple_result_sets: bool = False,
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ):
        self._cursor = cursor
        self._multiple_result_sets = multiple_result_sets
        self._fetch_size = fetch_size
        self._closed = False

    def rows(self) -> Iterator[Record]:
        return iter_records(self._cursor, self._fetch_size)

    def next_result(self) -> bool:
        if not self._multiple_result_sets:
            return False
        return bool(self._cursor.nextset())

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._cursor.close()


class CursorChainReader:
    """Reader whose result sets are separate driver cursors."""

    def __init__(self, cursors: Sequence[DbApiCursor], owner: DbApiCursor | None = None):
        self._cursors = list(cursors)
        self._owner = owner
        self._index = 0
        self._closed = False

    def rows(self) -> Iterator[Record]:
        if self._index >= len(self._cursors):
            return iter(())
        return iter_records(self._cursors[self._index])

    def next_result(self) -> bool:
        if self._index + 1 >= len(self._cursors):
            self._index = len(self._cursors)
            return False
        self._index += 1
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for cursor in self._cursors:
            cursor.close()
        if self._owner is not None:
            self._owner.close()


class DereferencingReader:
    """
    Walks the PostgreSQL cursors named in a result set.

    The wrapped cursor is drained on construction: every value in a column
    that ``is_cursor_column`` accepts is a cursor name. Each cursor then
    becomes one result set, read with ``FETCH <fetch_size> FROM "<name>"``
    until a short batch comes back. Finished cursors are closed in the same
    round trip as the next cursor's first FETCH.
    """

    def __init__(
        self,
        cursor: DbApiCursor,
        connection: DbApiConnection,
        is_cursor_column: Callable[[Sequence[Any]], bool],
        fetch_size: int = 10000,
    ):
        self._connection = connection
        self._fetch_size = fetch_size
        self._names: list[str] = []
        description = cursor.description or ()
        indexes = [i for i, column in enumerate(description) if is_cursor_column(column)]
        for row in cursor.fetchall():
            for i in indexes:
                if row[i] is not None:
                    self._names.append(str(row[i]).replace('"', '""'))
        cursor.close()

        self._index = 0
        self._current: str | None = None
        self._fetch_cursor: DbApiCursor | None = None
        self._batch: Sequence[Sequence[Any]] = ()
        logger.debug("cursor.dereference", cursors=len(self._names), fetch_size=fetch_size)
        self.next_result()

    @property
    def cursor_names(self) -> list[str]:
        return list(self._names)

    def _execute(self, sql: str) -> None:
        if self._fetch_cursor is not None:
            self._fetch_cursor.close()
        self._fetch_cursor = self._connection.cursor()
        try:
            self._fetch_cursor.execute(sql)
        except Exception as exc:
            if getattr(exc, "pgcode", None) == INVALID_CURSOR_NAME:
                raise CursorTransactionError(cause=exc) from exc
            raise

    def _fetch(self, close_sql: str = "") -> None:
        self._execute(f'{close_sql}FETCH {self._fetch_size} FROM "{self._current}";')
        self._batch = self._fetch_cursor.fetchall() if self._fetch_cursor.description else []

    def _close_sql(self) -> str:
        if self._current is None:
            return ""
        sql = f'CLOSE "{self._current}";'
        self._current = None
        return sql

    def rows(self) -> Iterator[Record]:
        if self._current is None or self._fetch_cursor is None:
            return
        names = column_names(self._fetch_cursor.description or ())
        while True:
            batch = self._batch
            self._batch = ()
            for row in batch:
                yield Record(zip(names, row))
            if len(batch) < self._fetch_size:
                return
            self._fetch()

    def next_result(self) -> bool:
        if self._index >= len(self._names):
            self.close()
            return False
        close_sql = self._close_sql()
        self._current = self._names[self._index]
        self._index += 1
        self._fetch(close_sql)
        return True

    def close(self) -> None:
        close_sql = self._close_sql()
        if close_sql:
            self._execute(close_sql)
        if self._fetch_cursor is not None:
            self._fetch_cursor.close()
            self._fetch_cursor = None


__all__ = [
    "column_names",
    "iter_records",
    "DbApiRowReader",
    "CursorChainReader",
    "DereferencingReader",
]
