"""
DynamicModel: one table, any of five databases.

Manifesto:
    A model is bound to a table by name, not by a class per entity. Rows
    go in as mappings or plain objects and come out as ``Record`` dicts.
    The model owns the connection/transaction lifecycle of each call and
    leaves every dialect decision to its plugin.

Call lifecycle::

    open connection          (skipped: caller connection or transaction_scope)
      → build command        (eager, so shape errors surface before I/O)
      → wrapping transaction (reads only, when the plugin asks for one)
      → execute              (scalar / non-query / dereferencing reader)
      → stream results       (lazy, single pass)
      → commit               (owned transactions only)
      → close                (reader, transaction, connection; always)

Usage:
    >>> products = DynamicModel("Data Source=shop.db;ProviderName=sqlite", "Products")
    >>> products.insert({"Name": "Widget"})["ID"]
    1
    >>> [row.Name for row in products.all(where="Name = :0", args=["Widget"])]
    ['Widget']
    >>> products.find_by_name(name="Widget").ID
    1

Tags:
    dyntable, model, orm, crud, paging, transaction
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping, MutableMapping, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Any

from dyntable.core.binder import add_named_params, add_params, object_fields, results_as_record
from dyntable.core.connection import ConnectionString, resolve_connection_string
from dyntable.core.errors import ShapeError, ValidationError
from dyntable.core.finder import dispatch, is_finder_name, parse_finder
from dyntable.core.logging import get_logger
from dyntable.core.params import Command, Direction, Record
from dyntable.core.plugins.base import DatabasePlugin, Transaction
from dyntable.core.plugins.registry import get_plugin
from dyntable.core.protocols import DbApiConnection
from dyntable.core.settings import DyntableSettings, get_settings
from dyntable.core.sql import SqlBuilder

logger = get_logger(__name__)

_UNSET: Any = object()


@dataclass
class PagedResult:
    total_records: int
    total_pages: int
    items: Iterator[Record]


@dataclass
class _AmbientTransaction:
    key: tuple[str | None, str]
    connection: DbApiConnection
    transaction: Transaction


_ambient: ContextVar[_AmbientTransaction | None] = ContextVar("dyntable_ambient_transaction", default=None)


def _lookup(row: Mapping[str, Any], name: str) -> Any:
    if name in row:
        return row[name]
    lowered = name.lower()
    for key, value in row.items():
        if key.lower() == lowered:
            return value
    return None


class DynamicModel:
    """
    Data access for one table or view.

    Args:
        connection_string: ``key=value;...`` string, or a name from
            ``settings.connection_strings``. Empty uses
            ``settings.connection_string``.
        table_name: Optionally ``schema.table``. Defaults to the class name.
        primary_key_field: Defaults to ``"ID"``.
        descriptor_field: Text column used by :meth:`key_values`.
        primary_key_field_sequence: ``None`` uses the plugin's default
            identity/sequence, ``""`` means the key is not generated.
        settings: Overrides the cached process settings.
        plugin: A ready plugin; otherwise chosen from the provider name.
    """

    def __init__(
        self,
        connection_string: str = "",
        table_name: str = "",
        primary_key_field: str = "",
        descriptor_field: str = "",
        primary_key_field_sequence: str | None = None,
        *,
        settings: DyntableSettings | None = None,
        plugin: DatabasePlugin | None = None,
    ):
        self.settings = settings or get_settings()
        self.connection_string: ConnectionString = resolve_connection_string(
            connection_string, self.settings, require_provider=plugin is None
        )
        if plugin is None:
            plugin = get_plugin(self.connection_string.provider_name or "", model=self, settings=self.settings)
        else:
            plugin.model = self
        self.plugin = plugin
        self.builder = SqlBuilder(plugin)

        self.table_name = table_name.strip() if table_name and table_name.strip() else type(self).__name__
        self.schema_name = ""
        self.table_name_without_schema = self.table_name
        fragments = self.table_name.split(".")
        if len(fragments) > 1:
            self.schema_name = fragments[-2]
            self.table_name_without_schema = fragments[-1]

        self.primary_key_field = primary_key_field.strip() if primary_key_field and primary_key_field.strip() else "ID"
        if primary_key_field_sequence is None:
            primary_key_field_sequence = (
                self.settings.default_sequence
                if self.settings.default_sequence is not None
                else plugin.default_sequence_name
            )
        self.primary_key_field_sequence = primary_key_field_sequence
        self.descriptor_field = descriptor_field
        self.errors: list[str] = []
        self._schema: list[Record] | None = None

    @classmethod
    def open(cls, connection_string: str = "") -> DynamicModel:
        """A model bound to no particular table, for ad-hoc queries."""
        return cls(connection_string)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(table={self.table_name!r}, provider={self.plugin.name!r})"

    # -- Dynamic finders ---------------------------------------------------------

    def dynamic(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Run a finder by name, e.g. ``dynamic("find_by_email", email=...)``."""
        request = parse_finder(name, args, kwargs, self.plugin, self.primary_key_field)
        logger.debug("finder.dispatch", table=self.table_name, finder=name, kind=request.kind.value)
        return dispatch(self, request)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or not is_finder_name(name):
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")
        return partial(self.dynamic, name)

    # -- Connections and transactions -------------------------------------------

    def open_connection(self) -> DbApiConnection:
        return self.plugin.open_connection(self.connection_string)

    @property
    def _scope_key(self) -> tuple[str | None, str]:
        return self.connection_string.provider_name, str(self.connection_string)

    def _ambient_connection(self) -> DbApiConnection | None:
        current = _ambient.get()
        if current is not None and current.key == self._scope_key:
            return current.connection
        return None

    @contextmanager
    def transaction_scope(self) -> Iterator[DbApiConnection]:
        """
        Share one connection and transaction with every call made inside.

        Commits on normal exit, rolls back on error. Nested scopes on the
        same connection string join the outer one.
        """
        joined = self._ambient_connection()
        if joined is not None:
            yield joined
            return
        connection = self.open_connection()
        transaction = self.plugin.begin_transaction(connection)
        token = _ambient.set(_AmbientTransaction(self._scope_key, connection, transaction))
        try:
            yield connection
            transaction.commit()
        finally:
            _ambient.reset(token)
            try:
                transaction.close()
            finally:
                connection.close()

    @contextmanager
    def _use_connection(self, connection: DbApiConnection | None = None) -> Iterator[tuple[DbApiConnection, bool]]:
        """Yield ``(connection, owned)``; owned connections are closed on exit."""
        if connection is not None:
            yield connection, False
            return
        ambient = self._ambient_connection()
        if ambient is not None:
            yield ambient, False
            return
        owned = self.open_connection()
        try:
            yield owned, True
        finally:
            owned.close()

    @contextmanager
    def _unit_of_work(self, connection: DbApiConnection | None = None) -> Iterator[DbApiConnection]:
        """A connection whose work is committed here only if this call opened it."""
        with self._use_connection(connection) as (conn, owned):
            if not owned:
                yield conn
                return
            with self.plugin.begin_transaction(conn) as transaction:
                yield conn
                transaction.commit()

    # -- Command factories -------------------------------------------------------

    def create_command(self, sql: str, *args: Any, connection: DbApiConnection | None = None) -> Command:
        command = Command(sql, self.plugin, connection=connection)
        add_params(command, *args)
        return command

    def create_command_with_params(
        self,
        sql: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        is_procedure: bool = False,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> Command:
        command = Command(sql, self.plugin, connection=connection, is_procedure=is_procedure)
        add_params(command, *args)
        add_named_params(command, in_params, Direction.INPUT)
        add_named_params(command, out_params, Direction.OUTPUT)
        add_named_params(command, io_params, Direction.INPUT_OUTPUT)
        add_named_params(command, return_params, Direction.RETURN_VALUE)
        return command

    def create_insert_command(self, row: Any) -> Command:
        return self.builder.insert(self.table_name, self._as_record(row))

    def create_update_command(self, row: Any, key: Any) -> Command:
        return self.builder.update_by_key(self.table_name, self.primary_key_field, self._as_record(row), key)

    def create_update_where_command(self, row: Any, where: str = "", *args: Any) -> Command:
        return self.builder.update(self.table_name, self.primary_key_field, self._as_record(row), where, args)

    def create_delete_command(self, where: str = "", key: Any = None, *args: Any) -> Command:
        return self.builder.delete(self.table_name, self.primary_key_field, where, key, args)

    # -- Reads -------------------------------------------------------------------

    def _read(self, command: Command, connection: DbApiConnection | None, multiple: bool) -> Iterator[Any]:
        plugin = self.plugin
        with self._use_connection(connection or command.connection) as (conn, owned):
            wrap = plugin.requires_wrapping_transaction(command)
            transaction = plugin.begin_transaction(conn) if owned and wrap else None
            try:
                reader = plugin.execute_dereferencing_reader(command, conn)
                try:
                    if multiple:
                        while True:
                            yield reader.rows()
                            if not reader.next_result():
                                break
                    else:
                        yield from reader.rows()
                finally:
                    reader.close()
                if transaction is not None:
                    transaction.commit()
            finally:
                if transaction is not None:
                    transaction.close()

    def query(self, sql: str, *args: Any, connection: DbApiConnection | None = None) -> Iterator[Record]:
        """Lazily stream the rows of ``sql``."""
        return self._read(self.create_command(sql, *args), connection, multiple=False)

    def query_multiple(
        self, sql: str, *args: Any, connection: DbApiConnection | None = None
    ) -> Iterator[Iterator[Record]]:
        """Lazily stream each result set of ``sql`` as its own row iterator."""
        return self._read(self.create_command(sql, *args), connection, multiple=True)

    def query_with_params(
        self,
        sql: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        is_procedure: bool = False,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> Iterator[Record]:
        command = self.create_command_with_params(
            sql, in_params, out_params, io_params, return_params, is_procedure, connection, args
        )
        return self._read(command, connection, multiple=False)

    def query_multiple_with_params(
        self,
        sql: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        is_procedure: bool = False,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> Iterator[Iterator[Record]]:
        command = self.create_command_with_params(
            sql, in_params, out_params, io_params, return_params, is_procedure, connection, args
        )
        return self._read(command, connection, multiple=True)

    def query_from_procedure(
        self,
        sp_name: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        connection: DbApiConnection | None = None,
    ) -> Iterator[Record]:
        return self.query_with_params(sp_name, in_params, out_params, io_params, return_params, True, connection)

    def query_multiple_from_procedure(
        self,
        sp_name: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        connection: DbApiConnection | None = None,
    ) -> Iterator[Iterator[Record]]:
        return self.query_multiple_with_params(
            sp_name, in_params, out_params, io_params, return_params, True, connection
        )

    def all(
        self,
        where: str = "",
        order_by: str = "",
        limit: int = 0,
        columns: str = "*",
        args: Sequence[Any] = (),
    ) -> Iterator[Record]:
        return self.all_with_params(where, order_by, limit, columns, args=args)

    def all_with_params(
        self,
        where: str = "",
        order_by: str = "",
        limit: int = 0,
        columns: str = "*",
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> Iterator[Record]:
        sql = self.builder.select(columns, self.table_name, where, order_by, limit)
        return self.query_with_params(sql, in_params, out_params, io_params, return_params, False, connection, args)

    def single(
        self, where: str = "", args: Sequence[Any] = (), *, key: Any = _UNSET, columns: str = "*"
    ) -> Record | None:
        """One row by WHERE clause, or by primary key when ``key=`` is given."""
        if key is not _UNSET:
            where = f"{self.primary_key_field} = {self.plugin.prefix_parameter_name('0')}"
            args = [key]
        return next(iter(self.all(where, limit=1, columns=columns, args=args)), None)

    def paged(
        self,
        where: str = "",
        order_by: str = "",
        columns: str = "*",
        page_size: int = 20,
        current_page: int = 1,
        args: Sequence[Any] = (),
        *,
        sql: str = "",
        primary_key: str = "",
    ) -> PagedResult:
        """
        One page of rows plus totals.

        ``sql`` pages over an arbitrary table expression instead of this
        model's table; ``primary_key`` is the default ordering column.
        The count and the page are two separate round trips.
        """
        queries = self.builder.paging(
            sql or self.table_name,
            primary_key or self.primary_key_field,
            where,
            order_by,
            columns,
            page_size,
            current_page,
        )
        total_records = int(self.scalar(queries.count_query, *args) or 0)
        return PagedResult(
            total_records=total_records,
            total_pages=math.ceil(total_records / page_size),
            items=self.query(queries.main_query, *args),
        )

    def count(self, table_name: str = "", where: str = "", args: Sequence[Any] = ()) -> int:
        return self.count_with_params(table_name, where, args=args)

    def count_with_params(
        self,
        table_name: str = "",
        where: str = "",
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> int:
        sql = self.builder.count(table_name or self.table_name, where)
        value = self.scalar_with_params(sql, in_params, out_params, io_params, return_params, False, connection, args)
        return int(value or 0)

    def scalar(self, sql: str, *args: Any, connection: DbApiConnection | None = None) -> Any:
        return self.scalar_with_params(sql, connection=connection, args=args)

    def scalar_with_params(
        self,
        sql: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        is_procedure: bool = False,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> Any:
        command = self.create_command_with_params(
            sql, in_params, out_params, io_params, return_params, is_procedure, connection, args
        )
        with self._unit_of_work(connection) as conn:
            return self.plugin.execute_scalar(command, conn)

    def key_values(self, order_by: str = "") -> dict[str, Any]:
        """``{str(primary key): descriptor}`` for lookup lists."""
        if not self.descriptor_field:
            raise ShapeError(
                "There's no descriptor_field set - do this in your constructor to describe the text value you want to see"
            ).with_context(table=self.table_name, operation="key_values")
        rows = self.all(order_by=order_by, columns=f"{self.primary_key_field}, {self.descriptor_field}")
        return {str(_lookup(row, self.primary_key_field)): _lookup(row, self.descriptor_field) for row in rows}

    # -- Schema ------------------------------------------------------------------

    @property
    def schema(self) -> list[Record]:
        """Column descriptors from the dialect's information schema; cached."""
        if self._schema is None:
            plugin = self.plugin
            if self.schema_name:
                rows = self.query(plugin.table_with_schema_query, self.table_name_without_schema, self.schema_name)
            else:
                rows = self.query(plugin.table_without_schema_query, self.table_name)
            self._schema = plugin.post_process_schema_query(list(rows))
            logger.debug("schema.loaded", table=self.table_name, columns=len(self._schema))
        return self._schema

    def _get_column(self, column_name: str) -> Record | None:
        lowered = column_name.lower()
        for column in self.schema:
            if str(self.plugin.column_name(column)).lower() == lowered:
                return column
        return None

    def default_value(self, column_name: str) -> Any:
        column = self._get_column(column_name)
        if column is None:
            return None
        return self.plugin.default_value(column)

    @property
    def prototype(self) -> Record:
        """A new row holding every column's schema default."""
        result = Record()
        for column in self.schema:
            result[self.plugin.column_name(column)] = self.plugin.default_value(column)
        return result

    def create_from(self, values: Mapping[str, Any]) -> Record:
        """A row holding only the entries of ``values`` that name a column."""
        return Record((name, value) for name, value in values.items() if self._get_column(str(name)) is not None)

    # -- Writes ------------------------------------------------------------------

    def execute(
        self,
        sql_or_commands: str | Command | Iterable[Command],
        *args: Any,
        connection: DbApiConnection | None = None,
    ) -> int:
        """
        Run one statement, one command or a batch of commands.

        A batch runs in order inside one transaction. Returns the total
        affected row count.
        """
        if isinstance(sql_or_commands, str):
            commands = [self.create_command(sql_or_commands, *args)]
        elif isinstance(sql_or_commands, Command):
            commands = [sql_or_commands]
        else:
            commands = list(sql_or_commands)
        if connection is None and len(commands) == 1:
            connection = commands[0].connection
        with self._unit_of_work(connection) as conn:
            return sum(self.plugin.execute_non_query(command, conn) for command in commands)

    def execute_with_params(
        self,
        sql: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        is_procedure: bool = False,
        connection: DbApiConnection | None = None,
        args: Sequence[Any] = (),
    ) -> Record:
        """Run ``sql`` and return every output, input-output and return value by name."""
        command = self.create_command_with_params(
            sql, in_params, out_params, io_params, return_params, is_procedure, connection, args
        )
        with self._unit_of_work(connection) as conn:
            self.plugin.execute_non_query(command, conn)
        return results_as_record(command)

    def execute_as_procedure(
        self,
        sp_name: str,
        in_params: Any = None,
        out_params: Any = None,
        io_params: Any = None,
        return_params: Any = None,
        connection: DbApiConnection | None = None,
    ) -> Record:
        return self.execute_with_params(sp_name, in_params, out_params, io_params, return_params, True, connection)

    def insert(self, row: Any) -> Record | None:
        """
        Insert one row and return it with its generated primary key.

        Returns ``None`` when :meth:`before_save` vetoes the insert.
        """
        record = self._as_record(row)
        if not self.is_valid(record):
            raise ValidationError("Can't insert: ", self.errors).with_context(table=self.table_name)
        if not self.before_save(record):
            return None
        with self._unit_of_work() as conn:
            self._perform_insert(conn, record)
        self._write_back_key(row, record)
        self.inserted(record)
        return record

    def update(self, row: Any, key: Any = _UNSET, *, where: str = "1=1", args: Sequence[Any] = ()) -> int:
        """Update by primary key (``key``) or every row matching ``where``."""
        if key is _UNSET and not where.strip():
            return 0
        record = self._as_record(row)
        if not self.is_valid(record):
            raise ValidationError("Can't Update: ", self.errors).with_context(table=self.table_name)
        if not self.before_save(record):
            return 0
        if key is _UNSET:
            command = self.create_update_where_command(record, where, *args)
        else:
            command = self.create_update_command(record, key)
        result = self.execute(command)
        self.updated(record)
        return result

    def delete(self, key: Any = None, where: str = "", args: Sequence[Any] = ()) -> int:
        """Delete by primary key (fetching the row for the hooks) or by ``where``."""
        if key is None:
            return self.execute(self.create_delete_command(where, None, *args))
        deleted = self.single(key=key)
        if not self.before_delete(deleted):
            return 0
        result = self.execute(self.create_delete_command(where, key))
        self.deleted(deleted)
        return result

    def save(self, *rows: Any) -> int:
        """Update rows carrying a primary key value, insert the rest; one transaction."""
        self._validate_all(rows)
        return self._perform_save(False, rows)

    def save_as_new(self, *rows: Any) -> int:
        """Insert every row; one transaction."""
        self._validate_all(rows)
        return self._perform_save(True, rows)

    def _validate_all(self, rows: Sequence[Any]) -> None:
        if any(not self.is_valid(self._as_record(row)) for row in rows):
            raise ValidationError("Can't save this item: ", self.errors).with_context(table=self.table_name)

    def _perform_save(self, all_inserts: bool, rows: Sequence[Any]) -> int:
        result = 0
        with self._unit_of_work() as conn:
            for row in rows:
                record = self._as_record(row)
                if not self.before_save(record):
                    continue
                if not all_inserts and self.has_primary_key(row):
                    command = self.create_update_command(record, self.get_primary_key(row))
                    result += self.plugin.execute_non_query(command, conn)
                    self.updated(record)
                else:
                    self._perform_insert(conn, record)
                    self._write_back_key(row, record)
                    self.inserted(record)
                    result += 1
        logger.debug("model.save", table=self.table_name, rows=len(rows), affected=result)
        return result

    def _perform_insert(self, connection: DbApiConnection, record: Record) -> None:
        plugin = self.plugin
        sequence = self.primary_key_field_sequence
        pk = self.primary_key_field
        if pk in record and record[pk] is None:
            del record[pk]

        if plugin.sequence_value_before_insert and sequence:
            next_value = Command(plugin.identity_retrieval_statement(sequence), plugin)
            record[pk] = int(plugin.execute_scalar(next_value, connection))

        command = self.create_insert_command(record)
        if plugin.sequence_value_before_insert or not sequence:
            plugin.execute_non_query(command, connection)
        elif plugin.supports_batches:
            command.sql += ";" + plugin.identity_retrieval_statement(sequence)
            record[pk] = int(plugin.execute_scalar(command, connection))
        else:
            plugin.execute_non_query(command, connection)
            identity = Command(plugin.identity_retrieval_statement(sequence), plugin)
            record[pk] = int(plugin.execute_scalar(identity, connection))
        logger.debug("model.insert", table=self.table_name, key=record.get(pk))

    def _write_back_key(self, row: Any, record: Record) -> None:
        pk = self.primary_key_field
        if row is not record and isinstance(row, MutableMapping) and pk in record:
            row[pk] = record[pk]

    # -- Row helpers ---------------------------------------------------------------

    @staticmethod
    def _as_record(row: Any) -> Record:
        if isinstance(row, Record):
            return row
        if isinstance(row, Mapping):
            return Record(row)
        return Record((name, value) for name, value, _ in object_fields(row))

    def has_primary_key(self, row: Any) -> bool:
        return self.get_primary_key(row) is not None

    def get_primary_key(self, row: Any) -> Any:
        return self._as_record(row).get(self.primary_key_field)

    def default_to(self, key: str, value: Any, item: MutableMapping[str, Any]) -> None:
        """Set ``item[key] = value`` unless ``item`` already has ``key``."""
        if key not in item:
            item[key] = value

    # -- Validation and lifecycle hooks -------------------------------------------

    def is_valid(self, item: Any) -> bool:
        self.errors.clear()
        self.validate(item)
        return not self.errors

    def validate(self, item: Any) -> None:
        """Override to call the ``validates_*`` helpers for ``item``."""

    def validates_presence_of(self, value: Any, message: str = "Required") -> None:
        if value is None or str(value) == "":
            self.errors.append(message)

    def validates_numericality_of(self, value: Any, message: str = "Should be a number") -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            self.errors.append(message)

    def before_save(self, item: Record) -> bool:
        return True

    def before_delete(self, item: Record | None) -> bool:
        return True

    def inserted(self, item: Record) -> None:
        pass

    def updated(self, item: Record) -> None:
        pass

    def deleted(self, item: Record | None) -> None:
        pass


__all__ = ["DynamicModel", "PagedResult"]
