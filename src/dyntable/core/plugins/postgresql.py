"""PostgreSQL database plugin."""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from dyntable.core.params import Command, DbType, Direction, Parameter
from dyntable.core.protocols import DbApiConnection, DbApiCursor, RowReader
from dyntable.core.readers import DbApiRowReader, DereferencingReader

from .base import DatabasePlugin

if TYPE_CHECKING:
    from dyntable.core.connection import ConnectionString

# pg_type OID of refcursor
REFCURSOR_OID = 1790


class PostgreSQLPlugin(DatabasePlugin):
    """
    PostgreSQL plugin over ``psycopg2``.

    Procedures are functions, called as ``SELECT * FROM name(args)``;
    output values come back as columns of the first row. Functions that
    return refcursors are dereferenced transparently, which needs a
    transaction around the call, so cursor parameters are stripped from
    the command and replaced by one.
    """

    name = "postgresql"
    driver_module = "psycopg2"
    driver_package = "psycopg2-binary"
    paramstyle = "pyformat"
    parameter_prefix = ":"
    default_sequence_name = ""
    sequence_value_before_insert = True
    supports_batches = True
    column_name_field = "column_name"
    column_default_field = "column_default"
    table_with_schema_query = (
        "SELECT * FROM information_schema.columns WHERE table_name = :0 AND table_schema = :1"
    )
    table_without_schema_query = "SELECT * FROM information_schema.columns WHERE table_name = :0"

    def connect_arguments(self, connection_string: ConnectionString) -> tuple[tuple[Any, ...], dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "host": connection_string.get("Host", "Server", default="localhost"),
            "dbname": connection_string.require("Database", "Initial Catalog"),
        }
        port = connection_string.get("Port")
        if port:
            kwargs["port"] = int(port)
        user = connection_string.get("Username", "User Id", "User", "Uid")
        if user is not None:
            kwargs["user"] = user
        password = connection_string.get("Password", "Pwd")
        if password is not None:
            kwargs["password"] = password
        timeout = connection_string.get("Timeout")
        if timeout:
            kwargs["connect_timeout"] = int(timeout)
        return (), kwargs

    # -- SQL ----------------------------------------------------------------------

    def select_pattern(self, limit: int = 0, where: str = "", order_by: str = "") -> str:
        sql = self._select(where, order_by)
        return f"{sql} LIMIT {limit}" if limit > 0 else sql

    def paging_clause(self, core: str, page_start: int, page_size: int) -> str:
        return f"{core} LIMIT {page_size} OFFSET {page_start}"

    def identity_retrieval_statement(self, sequence: str) -> str:
        return f"SELECT nextval('{sequence}')" if sequence else ""

    def parse_default(self, raw: Any) -> Any:
        if raw is None:
            return None
        text = str(raw).replace("(", "").replace(")", "")
        if text == "current_date":
            return dt.date.today()
        if text == "current_time":
            return dt.datetime.now().time()
        return text

    # -- Parameters ---------------------------------------------------------------

    def set_value(self, parameter: Parameter, value: Any) -> None:
        if isinstance(value, uuid.UUID):
            parameter.value = str(value)
            parameter.size = 36
            return
        super().set_value(parameter, value)

    def set_direction(self, parameter: Parameter, direction: Direction) -> None:
        # psycopg2 has no return values; function results are plain columns
        if direction == Direction.RETURN_VALUE:
            direction = Direction.OUTPUT
        parameter.direction = direction

    def set_anonymous_parameter(self, parameter: Parameter) -> bool:
        parameter.name = ""
        return True

    def ignores_output_types(self, parameter: Parameter) -> bool:
        return True

    def set_cursor(self, parameter: Parameter, value: Any) -> bool:
        parameter.db_type = DbType.CURSOR
        parameter.value = value
        return True

    def requires_wrapping_transaction(self, command: Command) -> bool:
        cursors = [p for p in command.parameters if self.is_cursor(p)]
        for parameter in cursors:
            command.remove(parameter)
        return bool(cursors)

    # -- Execution ----------------------------------------------------------------

    def call_procedure(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> None:
        arguments = [self.bind_value(command, p) for p in command.parameters if p.direction != Direction.OUTPUT]
        placeholders = ", ".join("%s" for _ in arguments)
        sql = f"SELECT * FROM {command.sql}({placeholders})"
        if arguments:
            cursor.execute(sql, arguments)
        else:
            cursor.execute(sql)

    def collect_outputs(self, command: Command, cursor: DbApiCursor) -> None:
        outputs = command.output_parameters
        if not outputs or cursor.description is None:
            return
        row = cursor.fetchone()
        if row is None:
            return
        columns = [column[0].lower() for column in cursor.description]
        unmatched_columns = list(range(len(columns)))
        unmatched: list[Parameter] = []
        for parameter in outputs:
            name = (parameter.name or "").lower()
            if name in columns and columns.index(name) in unmatched_columns:
                index = columns.index(name)
                parameter.value = row[index]
                unmatched_columns.remove(index)
            else:
                unmatched.append(parameter)
        for parameter, index in zip(unmatched, unmatched_columns):
            parameter.value = row[index]

    @staticmethod
    def is_refcursor_column(column: Sequence[Any]) -> bool:
        return len(column) > 1 and column[1] == REFCURSOR_OID

    def execute_dereferencing_reader(self, command: Command, connection: DbApiConnection) -> RowReader:
        cursor = self.execute(command, connection)
        if any(self.is_refcursor_column(column) for column in cursor.description or ()):
            return DereferencingReader(
                cursor,
                connection,
                self.is_refcursor_column,
                fetch_size=self.settings.auto_dereference_fetch_size,
            )
        return DbApiRowReader(cursor)


__all__ = ["PostgreSQLPlugin", "REFCURSOR_OID"]
