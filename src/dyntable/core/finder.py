"""
Dynamic finders.

``model.find_by_email(email="a@b.c")`` style calls are parsed into a
``FinderRequest`` and routed through a dispatch table to one of four
query shapes:

- ``count`` → row count
- ``sum`` / ``max`` / ``min`` / ``avg`` → scalar aggregate over ``columns``
- names starting with ``first`` / ``last`` / ``get`` / ``find`` /
  ``single`` → one row (``last*`` reverses the primary-key order)
- names starting with ``all`` → all matching rows

Attribute access on a model only resolves names with one of these
prefixes; ``model.dynamic(name, ...)`` accepts any name and treats an
unrecognised one as ``all``.

Only keyword arguments are accepted. The keys ``where``, ``orderby`` /
``order_by``, ``columns`` and ``args`` shape the query; every other key
is an equality predicate bound as a named parameter.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from dyntable.core.errors import ShapeError
from dyntable.core.sql import readify_where

if TYPE_CHECKING:
    from dyntable.core.model import DynamicModel
    from dyntable.core.plugins.base import DatabasePlugin

_ONE_PREFIXES = ("first", "last", "get", "find", "single")
_AGGREGATES = ("sum", "max", "min", "avg")
_FINDER_PREFIXES = _ONE_PREFIXES + _AGGREGATES + ("count", "all")


class FinderKind(str, Enum):
    ONE = "one"
    MANY = "many"
    COUNT = "count"
    AGGREGATE = "aggregate"


@dataclass
class FinderRequest:
    """A parsed dynamic finder call."""

    name: str
    kind: FinderKind
    where: str = ""
    order_by: str = ""
    columns: str = " * "
    args: list[Any] = field(default_factory=list)
    predicates: dict[str, Any] = field(default_factory=dict)
    aggregate: str | None = None


def parse_finder(
    name: str,
    args: Sequence[Any],
    kwargs: Mapping[str, Any],
    plugin: DatabasePlugin,
    primary_key_field: str,
) -> FinderRequest:
    if args:
        raise ShapeError(
            "Please use named arguments for this type of query - the column name, orderby, columns, args, etc"
        ).with_context(operation=name)

    order_by = f" ORDER BY {primary_key_field}"
    columns = " * "
    user_args: list[Any] = []
    where_predicates: list[str] = []
    predicates: dict[str, Any] = {}

    for key, value in kwargs.items():
        lowered = key.lower()
        if lowered in ("orderby", "order_by"):
            order_by = f" ORDER BY {value}"
        elif lowered == "columns":
            columns = str(value)
        elif lowered == "where":
            readied = readify_where(str(value))
            if readied:
                where_predicates.append("( " + readied[len(" WHERE "):] + " )")
        elif lowered == "args":
            user_args = list(value) if isinstance(value, (list, tuple)) else [value]
        else:
            where_predicates.append(f"{key} = {plugin.prefix_parameter_name(key)}")
            predicates[key] = value

    where = " WHERE " + " AND ".join(where_predicates) if where_predicates else ""

    operation = name.lower()
    aggregate = None
    if operation == "count":
        kind = FinderKind.COUNT
    elif operation in _AGGREGATES:
        kind = FinderKind.AGGREGATE
        aggregate = plugin.aggregate_function(operation)
    elif operation.startswith(_ONE_PREFIXES):
        kind = FinderKind.ONE
        if operation.startswith("last"):
            order_by += " DESC "
    else:
        kind = FinderKind.MANY

    return FinderRequest(
        name=name,
        kind=kind,
        where=where,
        order_by=order_by,
        columns=columns,
        args=user_args,
        predicates=predicates,
        aggregate=aggregate,
    )


def is_finder_name(name: str) -> bool:
    """True for names the dynamic finder understands (``find_by_x``, ``Count``, ``all_named`` ...)."""
    return name.lower().startswith(_FINDER_PREFIXES)


def _find_one(model: DynamicModel, request: FinderRequest) -> Any:
    rows = model.all_with_params(
        request.where, request.order_by, 1, request.columns, in_params=request.predicates, args=request.args
    )
    return next(iter(rows), None)


def _find_many(model: DynamicModel, request: FinderRequest) -> Any:
    return model.all_with_params(
        request.where, request.order_by, 0, request.columns, in_params=request.predicates, args=request.args
    )


def _count(model: DynamicModel, request: FinderRequest) -> Any:
    return model.count_with_params(model.table_name, request.where, in_params=request.predicates, args=request.args)


def _aggregate(model: DynamicModel, request: FinderRequest) -> Any:
    if not request.aggregate:
        return None
    sql = model.builder.aggregate(request.aggregate, request.columns, model.table_name, request.where)
    return model.scalar_with_params(sql, in_params=request.predicates, args=request.args)


FINDERS: dict[FinderKind, Callable[[DynamicModel, FinderRequest], Any]] = {
    FinderKind.ONE: _find_one,
    FinderKind.MANY: _find_many,
    FinderKind.COUNT: _count,
    FinderKind.AGGREGATE: _aggregate,
}


def dispatch(model: DynamicModel, request: FinderRequest) -> Any:
    return FINDERS[request.kind](model, request)


__all__ = ["FinderKind", "FinderRequest", "parse_finder", "is_finder_name", "dispatch", "FINDERS"]
