"""Oracle database plugin."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from dyntable.core.params import Command, DbType, Direction, Parameter
from dyntable.core.protocols import DbApiConnection, DbApiCursor, RowReader
from dyntable.core.readers import CursorChainReader, DbApiRowReader

from .base import DatabasePlugin

if TYPE_CHECKING:
    from dyntable.core.connection import ConnectionString

_PYTHON_TYPES: dict[DbType, type] = {
    DbType.BOOLEAN: int,
    DbType.INTEGER: int,
    DbType.BIGINT: int,
    DbType.FLOAT: float,
    DbType.DECIMAL: Decimal,
    DbType.STRING: str,
    DbType.GUID: str,
    DbType.DATETIME: dt.datetime,
    DbType.DATE: dt.datetime,
    DbType.TIME: dt.datetime,
    DbType.BINARY: bytes,
}


class OraclePlugin(DatabasePlugin):
    """
    Oracle plugin over ``oracledb``.

    Binds by name. Every non-input parameter becomes a ``cursor.var`` of
    the parameter's declared type, so output types are mandatory. Ref
    cursors returned through output parameters are read as result sets,
    and an open cursor handle can be passed back in on the same
    connection.
    """

    name = "oracle"
    driver_module = "oracledb"
    driver_package = "oracledb"
    paramstyle = "named"
    parameter_prefix = ":"
    default_sequence_name = ""
    sequence_value_before_insert = True
    column_default_field = "DATA_DEFAULT"
    table_with_schema_query = "SELECT * FROM ALL_TAB_COLUMNS WHERE TABLE_NAME = :0 AND OWNER = :1"
    table_without_schema_query = "SELECT * FROM USER_TAB_COLUMNS WHERE TABLE_NAME = :0"

    def connect_arguments(self, connection_string: ConnectionString) -> tuple[tuple[Any, ...], dict[str, Any]]:
        kwargs: dict[str, Any] = {"dsn": connection_string.require("Data Source", "DSN")}
        user = connection_string.get("User Id", "User", "Uid", "Username")
        if user is not None:
            kwargs["user"] = user
        password = connection_string.get("Password", "Pwd")
        if password is not None:
            kwargs["password"] = password
        return (), kwargs

    # -- SQL ----------------------------------------------------------------------

    def select_pattern(self, limit: int = 0, where: str = "", order_by: str = "") -> str:
        sql = self._select(where, order_by)
        if limit > 0:
            return f"SELECT * FROM ({sql}) WHERE ROWNUM <= {limit}"
        return sql

    def paging_clause(self, core: str, page_start: int, page_size: int) -> str:
        return f"{core} OFFSET {page_start} ROWS FETCH NEXT {page_size} ROWS ONLY"

    def identity_retrieval_statement(self, sequence: str) -> str:
        return f"SELECT {sequence}.NEXTVAL FROM DUAL" if sequence else ""

    def parse_default(self, raw: Any) -> Any:
        if raw is None:
            return None
        text = str(raw).strip()
        if text.upper() == "SYSDATE":
            return dt.datetime.now()
        if len(text) >= 2 and text[0] == text[-1] == "'":
            return text[1:-1]
        return text

    # -- Parameters ---------------------------------------------------------------

    def set_value(self, parameter: Parameter, value: Any) -> None:
        if isinstance(value, uuid.UUID):
            parameter.value = str(value)
            parameter.size = 36
            return
        if isinstance(value, bool):
            parameter.value = int(value)
            parameter.db_type = DbType.BOOLEAN
            return
        super().set_value(parameter, value)

    def set_cursor(self, parameter: Parameter, value: Any) -> bool:
        parameter.db_type = DbType.CURSOR
        parameter.value = value
        return True

    # -- Execution ----------------------------------------------------------------

    def _variable(self, cursor: DbApiCursor, parameter: Parameter) -> Any:
        if parameter.db_type == DbType.CURSOR:
            return cursor.var(self.driver.DB_TYPE_CURSOR)
        python_type = _PYTHON_TYPES.get(parameter.db_type, str)
        if python_type is str and parameter.size and parameter.size > 0:
            variable = cursor.var(str, parameter.size)
        else:
            variable = cursor.var(python_type)
        if parameter.direction == Direction.INPUT_OUTPUT and parameter.value is not None:
            variable.setvalue(0, parameter.value)
        return variable

    def _create_variables(self, command: Command, cursor: DbApiCursor) -> None:
        command.bound.clear()
        for parameter in command.parameters:
            new_cursor = parameter.db_type == DbType.CURSOR and parameter.value is None
            if not parameter.is_input or new_cursor:
                command.bound[parameter.name] = self._variable(cursor, parameter)

    def bind_value(self, command: Command, parameter: Parameter) -> Any:
        if parameter.name in command.bound:
            return command.bound[parameter.name]
        return parameter.value

    def prepare(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> tuple[str, Any]:
        self._create_variables(command, cursor)
        return self.translate(command)

    def call_procedure(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> None:
        self._create_variables(command, cursor)
        returned = next((p for p in command.parameters if p.direction == Direction.RETURN_VALUE), None)
        keyword = {
            p.name: self.bind_value(command, p)
            for p in command.parameters
            if p.direction != Direction.RETURN_VALUE
        }
        if returned is None:
            cursor.callproc(command.sql, keyword_parameters=keyword)
            return
        if returned.db_type == DbType.CURSOR:
            return_type: Any = self.driver.DB_TYPE_CURSOR
        else:
            return_type = _PYTHON_TYPES.get(returned.db_type, str)
        command.bound.pop(returned.name, None)
        returned.value = cursor.callfunc(command.sql, return_type, keyword_parameters=keyword)

    def collect_outputs(self, command: Command, cursor: DbApiCursor) -> None:
        for parameter in command.parameters:
            variable = command.bound.get(parameter.name)
            if variable is not None:
                parameter.value = variable.getvalue()

    def execute_reader(self, command: Command, connection: DbApiConnection) -> RowReader:
        cursor = self.execute(command, connection)
        self.collect_outputs(command, cursor)
        ref_cursors = [
            p.value for p in command.output_parameters if self.is_cursor(p) and p.value is not None
        ]
        if ref_cursors:
            return CursorChainReader(ref_cursors, owner=cursor)
        return DbApiRowReader(cursor)


__all__ = ["OraclePlugin"]
