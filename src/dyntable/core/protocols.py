"""
Structural protocols for the DB-API surface dyntable consumes.

dyntable never imports a driver outside its plugin. Everything else talks
to connections, cursors and row readers through these protocols, so any
PEP 249 driver (or a test double of the same shape) fits.

Architecture:
    ::

        protocols.py
        ├── DbApiConnection  — cursor(), commit(), rollback(), close()
        ├── DbApiCursor      — execute(), fetchone(), fetchmany(), description
        ├── DbApiDriver      — module-level connect() + paramstyle
        └── RowReader        — forward-only, multi-result-set row source

Tags:
    protocol, db-api, pep-249, connection, cursor, reader
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# DB-API 2.0 (PEP 249)
# ---------------------------------------------------------------------------


@runtime_checkable
class DbApiCursor(Protocol):
    """Minimal PEP 249 cursor."""

    description: Sequence[Sequence[Any]] | None
    rowcount: int

    def execute(self, operation: str, parameters: Any = ...) -> Any: ...

    def fetchone(self) -> Sequence[Any] | None: ...

    def fetchmany(self, size: int = ...) -> Sequence[Sequence[Any]]: ...

    def fetchall(self) -> Sequence[Sequence[Any]]: ...

    def close(self) -> None: ...


@runtime_checkable
class DbApiConnection(Protocol):
    """Minimal PEP 249 connection."""

    def cursor(self) -> DbApiCursor: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


class DbApiDriver(Protocol):
    """A driver module: ``sqlite3``, ``psycopg2``, ``pyodbc`` ..."""

    paramstyle: str

    def connect(self, *args: Any, **kwargs: Any) -> DbApiConnection: ...


# ---------------------------------------------------------------------------
# Row readers
# ---------------------------------------------------------------------------


@runtime_checkable
class RowReader(Protocol):
    """
    Forward-only reader over one or more result sets.

    ``rows()`` yields the current result set as Records; ``next_result()``
    advances to the following set and returns False when there is none.
    Nothing is restartable.
    """

    def rows(self) -> Iterator[dict[str, Any]]: ...

    def next_result(self) -> bool: ...

    def close(self) -> None: ...


__all__ = ["DbApiCursor", "DbApiConnection", "DbApiDriver", "RowReader"]
