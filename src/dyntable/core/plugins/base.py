"""Database plugin base class.

Manifesto:
    Every dialect difference lives behind one interface, so the model,
    binder and SQL builder never branch on a database name. A plugin
    owns its driver module, its SQL templates, its parameter rules and
    its way of executing a ``Command``.

Features:
    - SQL templates: select / insert / update / delete / count / paging
    - Parameter rules: prefixing, direction quirks, value coercion,
      anonymous parameters, cursors, output-type inference
    - Identity retrieval before or after the insert
    - Schema introspection queries and default-value parsing
    - Execution: paramstyle translation, non-query / scalar / reader

Tags:
    dyntable, database, abstract-base, plugin, dialect
"""

from __future__ import annotations

import importlib
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from dyntable.core.errors import CapabilityError, ConfigError, ShapeError
from dyntable.core.logging import get_logger
from dyntable.core.params import Command, DbType, Direction, Parameter
from dyntable.core.protocols import DbApiConnection, DbApiCursor, DbApiDriver, RowReader
from dyntable.core.readers import DbApiRowReader
from dyntable.core.settings import DyntableSettings, get_settings
from dyntable.core.sql import PagingQueries, escape_format, readify_order_by, readify_where

if TYPE_CHECKING:
    from dyntable.core.connection import ConnectionString

logger = get_logger(__name__)

# Quoted string literals are never scanned for placeholders
_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")

_AGGREGATES = {"sum": "SUM", "max": "MAX", "min": "MIN", "avg": "AVG"}

# Strings up to this length get a fixed size hint so plans are reused
MAX_FIXED_STRING_SIZE = 4000


class Transaction:
    """
    One DB-API transaction on one connection.

    DB-API connections are always inside an implicit transaction, so this
    only decides the outcome: ``commit()``, or a rollback on ``close()``
    when nothing was committed.
    """

    def __init__(self, connection: DbApiConnection, provider: str):
        self.connection = connection
        self.provider = provider
        self.committed = False
        self._closed = False

    def commit(self) -> None:
        self.connection.commit()
        self.committed = True
        logger.debug("transaction.commit", provider=self.provider)

    def rollback(self) -> None:
        self.connection.rollback()
        logger.debug("transaction.rollback", provider=self.provider)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self.committed:
            self.rollback()

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class DatabasePlugin(ABC):
    """
    Abstract base class for dialect plugins.

    Class attributes describe the driver; methods implement the dialect.
    A plugin holds a back-reference to its owning model (may be None).
    """

    name: ClassVar[str] = ""
    driver_module: ClassVar[str] = ""
    driver_package: ClassVar[str] = ""
    paramstyle: ClassVar[str] = "qmark"
    parameter_prefix: ClassVar[str] = "@"
    default_sequence_name: ClassVar[str] = ""
    sequence_value_before_insert: ClassVar[bool] = False
    supports_batches: ClassVar[bool] = False
    supports_multiple_result_sets: ClassVar[bool] = False
    # schema row fields, matched case-insensitively
    column_name_field: ClassVar[str] = "COLUMN_NAME"
    column_default_field: ClassVar[str] = "COLUMN_DEFAULT"
    table_with_schema_query: ClassVar[str] = ""
    table_without_schema_query: ClassVar[str] = ""

    def __init__(self, model: Any = None, settings: DyntableSettings | None = None):
        self.model = model
        self.settings = settings or get_settings()
        self._driver: DbApiDriver | None = None
        self._token_re = re.compile(rf"(?<![{re.escape(self.parameter_prefix)}\w]){re.escape(self.parameter_prefix)}\w+")

    # -- Driver -----------------------------------------------------------------

    @property
    def driver(self) -> DbApiDriver:
        """The DB-API driver module, imported on first use."""
        if self._driver is None:
            try:
                self._driver = importlib.import_module(self.driver_module)  # type: ignore[assignment]
            except ImportError:
                raise ConfigError(
                    f"{self.driver_module} is required for {self.name}. Install with: pip install {self.driver_package}"
                ) from None
        return self._driver

    @abstractmethod
    def connect_arguments(self, connection_string: ConnectionString) -> tuple[tuple[Any, ...], dict[str, Any]]:
        """Map a parsed connection string onto ``driver.connect(*args, **kwargs)``."""
        ...

    def open_connection(self, connection_string: ConnectionString) -> DbApiConnection:
        args, kwargs = self.connect_arguments(connection_string)
        connection = self.driver.connect(*args, **kwargs)
        logger.debug("connection.open", provider=self.name)
        return connection

    def begin_transaction(self, connection: DbApiConnection) -> Transaction:
        return Transaction(connection, self.name)

    # -- SQL templates ----------------------------------------------------------

    @abstractmethod
    def select_pattern(self, limit: int = 0, where: str = "", order_by: str = "") -> str:
        """Template with ``{0}`` (projection) and ``{1}`` (source); fragments are already readied."""
        ...

    def insert_pattern(self) -> str:
        return "INSERT INTO {0} ({1}) VALUES ({2})"

    def update_pattern(self) -> str:
        return "UPDATE {0} SET {1}"

    def delete_pattern(self) -> str:
        return "DELETE FROM {0}"

    def count_pattern(self) -> str:
        return "SELECT COUNT(*) FROM {0}"

    def _select(self, where: str, order_by: str) -> str:
        return "SELECT {0} FROM {1}" + escape_format(where) + escape_format(order_by)

    # -- Paging -----------------------------------------------------------------

    def build_paging_query_pair(
        self,
        sql: str,
        primary_key_field: str,
        where: str = "",
        order_by: str = "",
        columns: str = "*",
        page_size: int = 20,
        current_page: int = 1,
    ) -> PagingQueries:
        order_by_fragment = readify_order_by(order_by) or f" ORDER BY {primary_key_field}"
        where_fragment = readify_where(where)
        core = self.select_pattern(0, where_fragment, order_by_fragment).format(columns, sql)
        count_core = self.paging_count_core(core, columns, sql, where_fragment)
        page_start = (current_page - 1) * page_size
        return PagingQueries(
            count_query=f"SELECT COUNT(*) FROM ({count_core}) q",
            main_query=self.paging_clause(core, page_start, page_size),
        )

    def paging_count_core(self, core: str, columns: str, sql: str, where: str) -> str:
        """Query counted by the paging COUNT; the ordered core by default."""
        return core

    @abstractmethod
    def paging_clause(self, core: str, page_start: int, page_size: int) -> str:
        ...

    # -- Parameter naming -------------------------------------------------------

    def prefix_parameter_name(self, raw_name: str) -> str:
        return self.parameter_prefix + raw_name

    def deprefix_parameter_name(self, name: str) -> str:
        if name.startswith(self.parameter_prefix):
            return name[len(self.parameter_prefix):]
        return name

    # -- Identity ---------------------------------------------------------------

    @abstractmethod
    def identity_retrieval_statement(self, sequence: str) -> str:
        ...

    # -- Parameter values -------------------------------------------------------

    def set_value(self, parameter: Parameter, value: Any) -> None:
        parameter.value = value
        if isinstance(value, str):
            parameter.size = MAX_FIXED_STRING_SIZE if len(value) <= MAX_FIXED_STRING_SIZE else -1

    def get_value(self, parameter: Parameter) -> Any:
        return parameter.value

    def set_direction(self, parameter: Parameter, direction: Direction) -> None:
        parameter.direction = direction

    def set_anonymous_parameter(self, parameter: Parameter) -> bool:
        return False

    def ignores_output_types(self, parameter: Parameter) -> bool:
        return False

    def set_cursor(self, parameter: Parameter, value: Any) -> bool:
        return False

    def is_cursor(self, parameter: Parameter) -> bool:
        return parameter.db_type == DbType.CURSOR

    def requires_wrapping_transaction(self, command: Command) -> bool:
        return False

    def aggregate_function(self, name: str) -> str | None:
        return _AGGREGATES.get(name.lower())

    # -- Schema -----------------------------------------------------------------

    @staticmethod
    def _field(row: Mapping[str, Any], name: str) -> Any:
        if name in row:
            return row[name]
        lowered = name.lower()
        for key, value in row.items():
            if key.lower() == lowered:
                return value
        return None

    def column_name(self, schema_row: Mapping[str, Any]) -> str:
        return self._field(schema_row, self.column_name_field)

    def default_value(self, schema_row: Mapping[str, Any]) -> Any:
        return self.parse_default(self._field(schema_row, self.column_default_field))

    def parse_default(self, raw: Any) -> Any:
        return raw

    def post_process_schema_query(self, rows: list[Any]) -> list[Any]:
        return rows

    # -- Execution --------------------------------------------------------------

    def bind_name(self, name: str) -> str:
        """Driver-side name for a named paramstyle."""
        return name if name.isidentifier() else f"p{name}"

    def bind_value(self, command: Command, parameter: Parameter) -> Any:
        return parameter.value

    def translate(self, command: Command) -> tuple[str, Sequence[Any] | dict[str, Any] | None]:
        """Rewrite dialect placeholders into the driver's paramstyle."""
        if not command.parameters:
            return command.sql, None
        anonymous = [p for p in command.parameters if p.is_anonymous]
        if anonymous:
            if len(anonymous) != len(command.parameters):
                raise ShapeError("Anonymous and named parameters cannot be mixed in one command")
            return command.sql, [self.bind_value(command, p) for p in anonymous]

        named = {self.prefix_parameter_name(p.name): p for p in command.parameters}
        positional: list[Any] = []
        mapping: dict[str, Any] = {}

        def substitute(match: re.Match[str]) -> str:
            parameter = named.get(match.group(0))
            if parameter is None:
                return match.group(0)
            value = self.bind_value(command, parameter)
            if self.paramstyle == "qmark":
                positional.append(value)
                return "?"
            key = self.bind_name(parameter.name)
            mapping[key] = value
            if self.paramstyle == "pyformat":
                return f"%({key})s"
            return f":{key}"

        pieces: list[str] = []
        position = 0
        for literal in _LITERAL_RE.finditer(command.sql):
            pieces.append(self._token_re.sub(substitute, self._escape(command.sql[position:literal.start()])))
            pieces.append(self._escape(literal.group(0)))
            position = literal.end()
        pieces.append(self._token_re.sub(substitute, self._escape(command.sql[position:])))

        if self.paramstyle == "qmark":
            return ("".join(pieces), positional) if positional else (command.sql, None)
        return ("".join(pieces), mapping) if mapping else (command.sql, None)

    def _escape(self, text: str) -> str:
        return text.replace("%", "%%") if self.paramstyle == "pyformat" else text

    def prepare(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> tuple[str, Any]:
        """SQL and driver arguments for a non-procedure command."""
        return self.translate(command)

    def call_procedure(self, command: Command, cursor: DbApiCursor, read_outputs: bool) -> None:
        raise CapabilityError(
            f"Stored procedures are not supported by the {self.name} provider",
            provider=self.name,
            operation="call_procedure",
        )

    def execute(self, command: Command, connection: DbApiConnection, *, read_outputs: bool = False) -> DbApiCursor:
        """Run ``command`` on a new driver cursor and return that cursor."""
        cursor = connection.cursor()
        try:
            if command.is_procedure:
                logger.debug("procedure.call", provider=self.name, procedure=command.sql, params=len(command))
                self.call_procedure(command, cursor, read_outputs)
            else:
                sql, args = self.prepare(command, cursor, read_outputs)
                logger.debug("command.execute", provider=self.name, sql=sql, params=len(command))
                if args is None:
                    cursor.execute(sql)
                else:
                    cursor.execute(sql, args)
        except BaseException:
            cursor.close()
            raise
        return cursor

    def collect_outputs(self, command: Command, cursor: DbApiCursor) -> None:
        """Copy output values from the driver back onto ``command``'s parameters."""
        if command.output_parameters:
            raise CapabilityError(
                f"Output parameters are not supported by the {self.name} provider",
                provider=self.name,
                operation="collect_outputs",
                parameter=command.output_parameters[0].name,
            )

    def execute_non_query(self, command: Command, connection: DbApiConnection) -> int:
        cursor = self.execute(command, connection, read_outputs=True)
        try:
            affected = cursor.rowcount
            self.collect_outputs(command, cursor)
        finally:
            cursor.close()
        return affected if affected and affected > 0 else 0

    def execute_reader(self, command: Command, connection: DbApiConnection) -> RowReader:
        cursor = self.execute(command, connection)
        return DbApiRowReader(cursor, multiple_result_sets=self.supports_multiple_result_sets)

    def execute_dereferencing_reader(self, command: Command, connection: DbApiConnection) -> RowReader:
        return self.execute_reader(command, connection)

    def execute_scalar(self, command: Command, connection: DbApiConnection) -> Any:
        """First column of the first row of the first result set that has rows."""
        reader = self.execute_dereferencing_reader(command, connection)
        try:
            while True:
                for record in reader.rows():
                    return next(iter(record.values()), None)
                if not reader.next_result():
                    return None
        finally:
            reader.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


__all__ = ["DatabasePlugin", "Transaction", "MAX_FIXED_STRING_SIZE"]
