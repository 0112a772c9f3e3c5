"""
SQL builder.

Assembles SELECT / COUNT / INSERT / UPDATE / DELETE / paging statements
from the active plugin's templates plus caller-supplied fragments. WHERE
and ORDER BY fragments may be given with or without their keyword;
``readify_where`` / ``readify_order_by`` normalize them and are
idempotent.

Templates use ``str.format`` positional slots: ``{0}`` is the projection
(or target table), ``{1}`` the source (or field list), ``{2}`` the value
list. Caller fragments embedded into a template are brace-escaped first.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, NamedTuple

from dyntable.core.binder import add_param, add_params
from dyntable.core.errors import ShapeError
from dyntable.core.params import Command

if TYPE_CHECKING:
    from dyntable.core.plugins.base import DatabasePlugin

_WHERE_RE = re.compile(r"^WHERE\b", re.IGNORECASE)
_ORDER_BY_RE = re.compile(r"^ORDER\s+BY\b", re.IGNORECASE)


def _readify(clause: str | None, keyword: str, pattern: re.Pattern[str]) -> str:
    if clause is None:
        return ""
    text = clause.strip()
    if not text:
        return ""
    if pattern.match(text):
        return " " + text
    return f" {keyword} {text}"


def readify_where(where: str | None) -> str:
    """``"a = 1"`` → ``" WHERE a = 1"``; blank → ``""``."""
    return _readify(where, "WHERE", _WHERE_RE)


def readify_order_by(order_by: str | None) -> str:
    """``"a DESC"`` → ``" ORDER BY a DESC"``; blank → ``""``."""
    return _readify(order_by, "ORDER BY", _ORDER_BY_RE)


def escape_format(fragment: str) -> str:
    """Make a caller fragment safe to embed in a ``str.format`` template."""
    return fragment.replace("{", "{{").replace("}", "}}")


class PagingQueries(NamedTuple):
    count_query: str
    main_query: str


class SqlBuilder:
    """Statement and command factory for one plugin."""

    def __init__(self, plugin: DatabasePlugin):
        self.plugin = plugin

    # -- Reads ----------------------------------------------------------------

    def select(self, columns: str, source: str, where: str = "", order_by: str = "", limit: int = 0) -> str:
        pattern = self.plugin.select_pattern(limit, readify_where(where), readify_order_by(order_by))
        return pattern.format(columns, source)

    def count(self, source: str, where: str = "") -> str:
        return self.plugin.count_pattern().format(source) + readify_where(where)

    def aggregate(self, function: str, columns: str, source: str, where: str = "") -> str:
        return f"SELECT {function}({columns}) FROM {source}{readify_where(where)}"

    def paging(
        self,
        source: str,
        primary_key_field: str,
        where: str = "",
        order_by: str = "",
        columns: str = "*",
        page_size: int = 20,
        current_page: int = 1,
    ) -> PagingQueries:
        if page_size <= 0:
            raise ShapeError(f"page_size must be positive, got {page_size}")
        if current_page < 1:
            raise ShapeError(f"current_page is 1-based, got {current_page}")
        return self.plugin.build_paging_query_pair(
            source, primary_key_field, where, order_by, columns, page_size, current_page
        )

    # -- Writes ---------------------------------------------------------------

    def insert(self, table: str, row: Mapping[str, Any], connection: Any = None) -> Command:
        plugin = self.plugin
        command = Command("", plugin, connection=connection)
        names: list[str] = []
        placeholders: list[str] = []
        for field, value in row.items():
            parameter = add_param(command, value)
            names.append(field)
            placeholders.append(plugin.prefix_parameter_name(parameter.name))
        if not names:
            raise ShapeError("Can't parse this object to the database - there are no properties set").with_context(
                table=table, operation="insert"
            )
        command.sql = plugin.insert_pattern().format(table, ", ".join(names), ", ".join(placeholders))
        return command

    def update(
        self,
        table: str,
        primary_key_field: str,
        row: Mapping[str, Any],
        where: str = "",
        args: Sequence[Any] = (),
        connection: Any = None,
    ) -> Command:
        plugin = self.plugin
        command = Command("", plugin, connection=connection)
        # WHERE arguments take names 0..n-1, SET values continue from n
        add_params(command, *args)
        assignments: list[str] = []
        pk = primary_key_field.lower()
        for field, value in row.items():
            if field.lower() == pk:
                continue
            if value is None:
                assignments.append(f"{field} = NULL")
            else:
                parameter = add_param(command, value)
                assignments.append(f"{field} = {plugin.prefix_parameter_name(parameter.name)}")
        if not assignments:
            raise ShapeError("No parsable object was sent in - could not define any name/value pairs").with_context(
                table=table, operation="update"
            )
        command.sql = plugin.update_pattern().format(table, ", ".join(assignments)) + readify_where(where)
        return command

    def update_by_key(
        self, table: str, primary_key_field: str, row: Mapping[str, Any], key: Any, connection: Any = None
    ) -> Command:
        where = f"{primary_key_field} = {self.plugin.prefix_parameter_name('0')}"
        return self.update(table, primary_key_field, row, where, [key], connection)

    def delete(
        self,
        table: str,
        primary_key_field: str,
        where: str = "",
        key: Any = None,
        args: Sequence[Any] = (),
        connection: Any = None,
    ) -> Command:
        plugin = self.plugin
        sql = plugin.delete_pattern().format(table)
        if key is not None:
            sql += f" WHERE {primary_key_field} = {plugin.prefix_parameter_name('0')}"
            args = [key]
        else:
            sql += readify_where(where)
        command = Command(sql, plugin, connection=connection)
        add_params(command, *args)
        return command


__all__ = [
    "readify_where",
    "readify_order_by",
    "escape_format",
    "PagingQueries",
    "SqlBuilder",
]
