"""
Driver-neutral command model.

A ``Command`` is SQL text plus an ordered list of ``Parameter`` objects.
Parameters behave like ADO.NET parameters: assigning a value infers a
``DbType`` and size unless those were assigned explicitly, and assigning
``None`` resets whatever was inferred. Plugins translate the finished
command into a driver call at execution time.

``Record`` is the row type every read returns: a ``dict`` whose keys are
the projected column names, also readable as attributes.
"""

from __future__ import annotations

import datetime as dt
import types
import uuid
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin

from dyntable.core.errors import ShapeError

if TYPE_CHECKING:
    from dyntable.core.plugins.base import DatabasePlugin


class Direction(str, Enum):
    """Parameter direction (ADO-style)."""

    INPUT = "input"
    OUTPUT = "output"
    INPUT_OUTPUT = "input_output"
    RETURN_VALUE = "return_value"


class DbType(str, Enum):
    """Driver-neutral parameter type."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    BIGINT = "bigint"
    FLOAT = "float"
    DECIMAL = "decimal"
    STRING = "string"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    BINARY = "binary"
    GUID = "guid"
    CURSOR = "cursor"
    OBJECT = "object"


_INT32_MAX = 2**31 - 1


def infer_db_type(value: Any) -> DbType | None:
    """Map a Python value onto the DbType a driver would infer for it."""
    if value is None:
        return None
    # bool before int, datetime before date
    if isinstance(value, bool):
        return DbType.BOOLEAN
    if isinstance(value, int):
        return DbType.INTEGER if -_INT32_MAX - 1 <= value <= _INT32_MAX else DbType.BIGINT
    if isinstance(value, float):
        return DbType.FLOAT
    if isinstance(value, Decimal):
        return DbType.DECIMAL
    if isinstance(value, str):
        return DbType.STRING
    if isinstance(value, dt.datetime):
        return DbType.DATETIME
    if isinstance(value, dt.date):
        return DbType.DATE
    if isinstance(value, dt.time):
        return DbType.TIME
    if isinstance(value, (bytes, bytearray, memoryview)):
        return DbType.BINARY
    if isinstance(value, uuid.UUID):
        return DbType.GUID
    return DbType.OBJECT


def _infer_size(value: Any) -> int | None:
    if isinstance(value, str):
        return len(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return len(value)
    return None


class Parameter:
    """
    One bound command parameter.

    ``name`` is stored without any dialect prefix. ``""`` marks an
    anonymous (positional) parameter. Explicit ``db_type``/``size``
    assignments survive later value changes, including ``None``.
    """

    def __init__(self, name: str | None = None, value: Any = None, direction: Direction = Direction.INPUT):
        self.name = name
        self.direction = direction
        self._db_type: DbType | None = None
        self._db_type_explicit = False
        self._size: int | None = None
        self._size_explicit = False
        self._value: Any = None
        if value is not None:
            self.value = value

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        self._value = value
        if not self._db_type_explicit:
            self._db_type = infer_db_type(value)
        if not self._size_explicit:
            self._size = _infer_size(value)

    @property
    def db_type(self) -> DbType | None:
        return self._db_type

    @db_type.setter
    def db_type(self, db_type: DbType | None) -> None:
        self._db_type = db_type
        self._db_type_explicit = db_type is not None

    @property
    def size(self) -> int | None:
        return self._size

    @size.setter
    def size(self, size: int | None) -> None:
        self._size = size
        self._size_explicit = size is not None

    @property
    def is_input(self) -> bool:
        return self.direction == Direction.INPUT

    @property
    def is_anonymous(self) -> bool:
        return self.name == ""

    def __repr__(self) -> str:
        return (
            f"Parameter(name={self.name!r}, value={self._value!r}, direction={self.direction.value}, "
            f"db_type={self._db_type.value if self._db_type else None}, size={self._size})"
        )


class Cursor:
    """
    Cursor placeholder.

    ``Cursor()`` asks for a new output cursor; ``Cursor(handle)`` passes a
    cursor obtained from an earlier call back in by reference. Chaining
    only works when both calls share one caller-opened connection.
    """

    def __init__(self, value: Any = None):
        self.value = value

    def __repr__(self) -> str:
        return f"Cursor({self.value!r})"


class Command:
    """SQL text plus ordered parameters, bound to one plugin."""

    def __init__(
        self,
        sql: str,
        plugin: DatabasePlugin,
        *,
        connection: Any = None,
        is_procedure: bool = False,
    ):
        self.sql = sql
        self.plugin = plugin
        self.connection = connection
        self.is_procedure = is_procedure
        self.parameters: list[Parameter] = []
        # driver objects created while binding (e.g. oracledb variables)
        self.bound: dict[str, Any] = {}

    def add(self, parameter: Parameter) -> Parameter:
        self.parameters.append(parameter)
        return parameter

    def remove(self, parameter: Parameter) -> None:
        self.parameters.remove(parameter)

    def get(self, name: str) -> Parameter | None:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    @property
    def output_parameters(self) -> list[Parameter]:
        return [p for p in self.parameters if not p.is_input]

    def __len__(self) -> int:
        return len(self.parameters)

    def __repr__(self) -> str:
        return f"Command({self.sql!r}, parameters={len(self.parameters)}, is_procedure={self.is_procedure})"


class Record(dict):
    """A row: column name → value, with attribute access."""

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None


# -- Type materialization -----------------------------------------------------

_ZERO_VALUES: dict[type, Any] = {
    bool: False,
    int: 0,
    float: 0.0,
    Decimal: Decimal(0),
    str: "",
    bytes: b"",
    bytearray: bytearray(),
    dt.datetime: dt.datetime.min,
    dt.date: dt.date.min,
    dt.time: dt.time(),
    uuid.UUID: uuid.UUID(int=0),
}


def unwrap_optional(type_: Any) -> Any:
    """``Optional[int]`` / ``int | None`` → ``int``; anything else unchanged."""
    origin = get_origin(type_)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(type_) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return type_


def create_instance(type_: Any) -> Any:
    """Materialize the zero/empty value of ``type_``."""
    type_ = unwrap_optional(type_)
    try:
        return _ZERO_VALUES[type_]
    except (KeyError, TypeError):
        raise ShapeError(f"Cannot create a default instance of type {type_!r}") from None


__all__ = [
    "Direction",
    "DbType",
    "Parameter",
    "Cursor",
    "Command",
    "Record",
    "infer_db_type",
    "unwrap_optional",
    "create_instance",
]
