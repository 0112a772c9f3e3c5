"""SQL Server database plugin."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any

from dyntable.core.params import Command, DbType, Direction, Parameter
from dyntable.core.protocols import DbApiCursor
from dyntable.core.readers import column_names

from .base import DatabasePlugin

if TYPE_CHECKING:
    from dyntable.core.connection import ConnectionString

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

# ADO.NET SqlClient keywords → ODBC keywords
_ODBC_KEYWORDS = {
    "data source": "Server",
    "address": "Server",
    "initial catalog": "Database",
    "user id": "UID",
    "password": "PWD",
    "connect timeout": "Timeout",
}

_SQL_TYPES: dict[DbType, str] = {
    DbType.BOOLEAN: "BIT",
    DbType.INTEGER: "INT",
    DbType.BIGINT: "BIGINT",
    DbType.FLOAT: "FLOAT",
    DbType.DECIMAL: "DECIMAL(38, 10)",
    DbType.DATETIME: "DATETIME2",
    DbType.DATE: "DATE",
    DbType.TIME: "TIME",
    DbType.BINARY: "VARBINARY(MAX)",
    DbType.GUID: "UNIQUEIDENTIFIER",
}


class SQLServerPlugin(DatabasePlugin):
    """
    SQL Server plugin over ``pyodbc``.

    ODBC has no output parameters, so commands that need them run inside
    a T-SQL batch that declares one variable per parameter, calls the
    statement or procedure and selects the output variables last::

        SET NOCOUNT ON;
        DECLARE @a INT = ?, @total INT, @ret INT;
        EXEC @ret = proc @a = @a, @total = @total OUTPUT;
        SELECT @total AS [total], @ret AS [ret];

    Declared variables need SQL types, so output types are mandatory.
    """

    name = "sqlserver"
    driver_module = "pyodbc"
    driver_package = "pyodbc"
    paramstyle = "qmark"
    parameter_prefix = "@"
    default_sequence_name = "SCOPE_IDENTITY()"
    sequence_value_before_insert = False
    supports_batches = True
    supports_multiple_result_sets = True
    table_with_schema_query = (
        "SELECT * FROM INFORMATION_SCHEMA.COLUMNS WHERE TABLE_NAME = @0 AND TABLE_SCHEMA = @1"
    )
    table_without_schema_query = "SELECT * FROM INFORMATION_SCHEMA.COLUMNS WHERE TABLE_NAME = @0"

    def connect_arguments(self, connection_string: ConnectionString) -> tuple[tuple[Any, ...], dict[str, Any]]:
        pairs: list[str] = []
        for key, value in connection_string.attributes:
            lowered = key.lower()
            if lowered == "integrated security":
                if value.lower() in ("true", "yes", "sspi"):
                    pairs.append("Trusted_Connection=yes")
                continue
            pairs.append(f"{_ODBC_KEYWORDS.get(lowered, key)}={value}")
        if connection_string.get("Driver") is None:
            pairs.insert(0, f"Driver={{{DEFAULT_ODBC_DRIVER}}}")
        return (";".join(pairs),), {}

    # -- SQL ----------------------------------------------------------------------

    def select_pattern(self, limit: int = 0, where: str = "", order_by: str = "") -> str:
        sql = self._select(where, order_by)
        if limit > 0:
            return f"SELECT TOP {limit} " + sql[len("SELECT "):]
        return sql

    def paging_count_core(self, core: str, columns: str, sql: str, where: str) -> str:
        # ORDER BY is not allowed in a derived table without TOP/OFFSET
        return self.select_pattern(0, where, "").format(columns, sql)

    def paging_clause(self, core: str, page_start: int, page_size: int) -> str:
        return f"{core} OFFSET {page_start} ROWS FETCH NEXT {page_size} ROWS ONLY"

    def identity_retrieval_statement(self, sequence: str) -> str:
        return f"SELECT {sequence}" if sequence else ""

    def parse_default(self, raw: Any) -> Any:
        if raw is None:
            return None
        text = str(raw).strip()
        while text.startswith("(") and text.endswith(")"):
            text = text[1:-1].strip()
        lowered = text.lower()
        if lowered == "getdate()":
            return dt.datetime.now()
        if lowered == "newid()":
            return uuid.uuid4()
        if text.startswith("N'") and text.endswith("'"):
            return text[2:-1]
        if len(text) >= 2 and text[0] == text[-1] == "'":
            return text[1:-1]
        return text

    # -- Execution ----------------------------------------------------------------

    @staticmethod
    def sql_type(parameter: Parameter) -> str:
        if parameter.db_type == DbType.STRING or parameter.db_type is None:
            size = parameter.size
            return f"NVARCHAR({size})" if size and 0 < size <= 4000 else "NVARCHAR(MAX)"
        return _SQL_TYPES.get(parameter.db_type, "SQL_VARIANT")

    def _batch(self, command: Command, read_outputs: bool) -> tuple[str, list[Any]]:
        declarations: list[str] = []
        arguments: list[Any] = []
        returned: Parameter | None = None
        for parameter in command.parameters:
            variable = self.prefix_parameter_name(parameter.name)
            if parameter.direction == Direction.RETURN_VALUE:
                returned = parameter
                declarations.append(f"{variable} INT")
            elif parameter.direction == Direction.OUTPUT:
                declarations.append(f"{variable} {self.sql_type(parameter)}")
            else:
                declarations.append(f"{variable} {self.sql_type(parameter)} = ?")
                arguments.append(self.bind_value(command, parameter))

        lines = ["SET NOCOUNT ON;"]
        if declarations:
            lines.append("DECLARE " + ", ".join(declarations) + ";")
        if command.is_procedure:
            call = "EXEC "
            if returned is not None:
                call += self.prefix_parameter_name(returned.name) + " = "
            call += command.sql
            passed = [
                f"{self.prefix_parameter_name(p.name)} = {self.prefix_parameter_name(p.name)}"
                + ("" if p.is_input else " OUTPUT")
                for p in command.parameters
                if p.direction != Direction.RETURN_VALUE
            ]
            if passed:
                call += " " + ", ".join(passed)
            lines.append(call + ";")
        else:
            lines.append(command.sql.rstrip().rstrip(";") + ";")
        outputs = command.output_parameters
        if read_outputs and outputs:
            selected = [
                f"{self.prefix_parameter_name(p.name)} AS [{p.name}]"
                for p in outputs
            ]
            lines.append("SELECT " + ", ".join(selected) + ";")
        return "\n".join(lines), arguments

    def prepare(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> tuple[str, Any]:
        if not command.output_parameters:
            return self.translate(command)
        return self._batch(command, read_outputs)

    def call_procedure(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> None:
        sql, arguments = self._batch(command, read_outputs)
        if arguments:
            cursor.execute(sql, arguments)
        else:
            cursor.execute(sql)

    def collect_outputs(self, command: Command, cursor: DbApiCursor) -> None:
        outputs = command.output_parameters
        if not outputs:
            return
        last_row = None
        description = None
        while True:
            if cursor.description is not None:
                rows = cursor.fetchall()
                if rows:
                    last_row, description = rows[-1], cursor.description
            if not cursor.nextset():
                break
        if last_row is None or description is None:
            return
        values = dict(zip(column_names(description), last_row))
        for parameter in outputs:
            key = self.deprefix_parameter_name(self.prefix_parameter_name(parameter.name))
            if key in values:
                parameter.value = values[key]


__all__ = ["SQLServerPlugin", "DEFAULT_ODBC_DRIVER"]
