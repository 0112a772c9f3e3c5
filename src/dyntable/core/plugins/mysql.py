"""MySQL database plugin."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Any

from dyntable.core.params import Command, Direction
from dyntable.core.protocols import DbApiConnection, DbApiCursor, RowReader
from dyntable.core.readers import CursorChainReader

from .base import DatabasePlugin

if TYPE_CHECKING:
    from dyntable.core.connection import ConnectionString

_CALLPROC_RESULT = "callproc"


class MySQLPlugin(DatabasePlugin):
    """
    MySQL plugin over ``mysql-connector-python``.

    Procedures go through ``cursor.callproc`` with positional arguments in
    binding order; OUT and INOUT values come back in the returned argument
    tuple. A RETURN parameter turns the call into ``SELECT name(args)``.
    """

    name = "mysql"
    driver_module = "mysql.connector"
    driver_package = "mysql-connector-python"
    paramstyle = "pyformat"
    parameter_prefix = "@"
    default_sequence_name = "LAST_INSERT_ID()"
    sequence_value_before_insert = False
    table_with_schema_query = (
        "SELECT * FROM information_schema.columns WHERE table_name = @0 AND table_schema = @1"
    )
    table_without_schema_query = (
        "SELECT * FROM information_schema.columns WHERE table_name = @0 AND table_schema = DATABASE()"
    )

    def connect_arguments(self, connection_string: ConnectionString) -> tuple[tuple[Any, ...], dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "host": connection_string.get("Server", "Host", "Data Source", default="localhost"),
            "database": connection_string.require("Database", "Initial Catalog"),
        }
        port = connection_string.get("Port")
        if port:
            kwargs["port"] = int(port)
        user = connection_string.get("Uid", "User Id", "User", "Username")
        if user is not None:
            kwargs["user"] = user
        password = connection_string.get("Pwd", "Password")
        if password is not None:
            kwargs["password"] = password
        return (), kwargs

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
        if str(raw).upper() in ("CURRENT_TIMESTAMP", "CURRENT_TIMESTAMP()", "NOW()"):
            return dt.datetime.now()
        return raw

    def ignores_output_types(self, parameter: Any) -> bool:
        return True

    # -- Execution ----------------------------------------------------------------

    @staticmethod
    def _return_parameter(command: Command) -> Any:
        for parameter in command.parameters:
            if parameter.direction == Direction.RETURN_VALUE:
                return parameter
        return None

    def call_procedure(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> None:
        if self._return_parameter(command) is not None:
            arguments = [p.value for p in command.parameters if p.direction != Direction.RETURN_VALUE]
            placeholders = ", ".join("%s" for _ in arguments)
            cursor.execute(f"SELECT {command.sql}({placeholders})", arguments)
            return
        command.bound[_CALLPROC_RESULT] = cursor.callproc(command.sql, [p.value for p in command.parameters])

    def collect_outputs(self, command: Command, cursor: DbApiCursor) -> None:
        if not command.output_parameters:
            return
        returned = self._return_parameter(command)
        if returned is not None:
            row = cursor.fetchone()
            returned.value = row[0] if row else None
            return
        result = command.bound.get(_CALLPROC_RESULT)
        if result is None:
            super().collect_outputs(command, cursor)
            return
        values = list(result.values()) if isinstance(result, dict) else list(result)
        for parameter, value in zip(command.parameters, values):
            if not parameter.is_input:
                parameter.value = value

    def execute_reader(self, command: Command, connection: DbApiConnection) -> RowReader:
        if command.is_procedure and self._return_parameter(command) is None:
            cursor = self.execute(command, connection)
            return CursorChainReader(list(cursor.stored_results()), owner=cursor)
        return super().execute_reader(command, connection)


__all__ = ["MySQLPlugin"]
