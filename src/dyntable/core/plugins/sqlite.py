"""SQLite database plugin."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Any

from .base import DatabasePlugin

if TYPE_CHECKING:
    from dyntable.core.connection import ConnectionString


class SQLitePlugin(DatabasePlugin):
    """
    SQLite plugin over the built-in ``sqlite3`` module.

    No stored procedures, output parameters or cursors. Identity values
    come from ``last_insert_rowid()`` after the insert.
    """

    name = "sqlite"
    driver_module = "sqlite3"
    driver_package = "(standard library)"
    paramstyle = "named"
    parameter_prefix = ":"
    default_sequence_name = "last_insert_rowid()"
    sequence_value_before_insert = False
    column_name_field = "name"
    column_default_field = "dflt_value"
    table_with_schema_query = "SELECT * FROM pragma_table_info(:0, :1)"
    table_without_schema_query = "SELECT * FROM pragma_table_info(:0)"

    def connect_arguments(self, connection_string: ConnectionString) -> tuple[tuple[Any, ...], dict[str, Any]]:
        path = connection_string.require("Data Source", "DataSource", "Filename", "Database")
        kwargs: dict[str, Any] = {"uri": path.startswith("file:")}
        timeout = connection_string.get("Default Timeout", "Timeout")
        if timeout:
            kwargs["timeout"] = float(timeout)
        return (path,), kwargs

    def select_pattern(self, limit: int = 0, where: str = "", order_by: str = "") -> str:
        sql = self._select(where, order_by)
        return f"{sql} LIMIT {limit}" if limit > 0 else sql

    def paging_clause(self, core: str, page_start: int, page_size: int) -> str:
        return f"{core} LIMIT {page_size} OFFSET {page_start}"

    def identity_retrieval_statement(self, sequence: str) -> str:
        return f"SELECT {sequence}" if sequence else ""

    def parse_default(self, raw: Any) -> Any:
        if raw is None:
            return None
        text = str(raw).strip()
        while text.startswith("(") and text.endswith(")"):
            text = text[1:-1].strip()
        upper = text.upper()
        if upper == "CURRENT_TIMESTAMP":
            return dt.datetime.now()
        if upper == "CURRENT_DATE":
            return dt.date.today()
        if upper == "CURRENT_TIME":
            return dt.datetime.now().time()
        if len(text) >= 2 and text[0] == text[-1] == "'":
            return text[1:-1].replace("''", "'")
        return text


__all__ = ["SQLitePlugin"]
