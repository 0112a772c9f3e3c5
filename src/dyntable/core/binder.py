"""
Parameter binder.

Turns caller values into ``Parameter`` objects on a ``Command``, letting
the command's plugin apply every dialect rule (naming, direction quirks,
type coercion, cursor support). Bags of parameters may be given as

- a list or tuple: anonymous positional parameters, input only
- a mapping: one named parameter per key
- any other object: one named parameter per field (dataclass, pydantic
  model, namedtuple or plain ``vars()``), typed by the field annotation
"""

from __future__ import annotations

import dataclasses
import typing
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import BaseModel

from dyntable.core.errors import CapabilityError, ShapeError
from dyntable.core.params import Command, Cursor, Direction, Parameter, Record, create_instance


def add_param(
    command: Command,
    value: Any,
    name: str | None = None,
    direction: Direction = Direction.INPUT,
    type_: Any = None,
) -> Parameter:
    """Bind one value. ``name=None`` auto-names by position, ``""`` is anonymous."""
    plugin = command.plugin
    parameter = Parameter()
    if name == "":
        if not plugin.set_anonymous_parameter(parameter):
            raise CapabilityError(
                f"Anonymous parameters are not supported by the {plugin.name} provider",
                provider=plugin.name,
                operation="add_param",
                parameter="",
            )
    else:
        parameter.name = name if name is not None else str(len(command.parameters))
    plugin.set_direction(parameter, direction)

    if value is None:
        if type_ is not None:
            plugin.set_value(parameter, create_instance(type_))
            # lock what the value assignment inferred before nulling it
            db_type, size = parameter.db_type, parameter.size
            parameter.value = None
            parameter.db_type = db_type
            parameter.size = size
        elif direction != Direction.INPUT and not plugin.ignores_output_types(parameter):
            raise CapabilityError(
                f'Parameter "{parameter.name}" - the {plugin.name} provider requires a non-null value '
                f"or a declared type for output, input-output and return parameters",
                provider=plugin.name,
                operation="add_param",
                parameter=parameter.name,
            )
        else:
            parameter.value = None
    elif isinstance(value, Cursor):
        if not plugin.set_cursor(parameter, value.value):
            raise CapabilityError(
                f"Cursor parameters are not supported by the {plugin.name} provider",
                provider=plugin.name,
                operation="add_param",
                parameter=parameter.name,
            )
    else:
        plugin.set_value(parameter, value)

    return command.add(parameter)


def add_params(command: Command, *args: Any) -> None:
    """Bind positional values, auto-named ``"0"``, ``"1"`` ..."""
    for value in args:
        add_param(command, value)


def add_named_params(command: Command, bag: Any, direction: Direction = Direction.INPUT) -> None:
    """Bind every entry of a parameter bag with one direction."""
    if bag is None:
        return
    # namedtuples are structured objects, not positional lists
    if isinstance(bag, (list, tuple)) and not hasattr(bag, "_fields"):
        if direction != Direction.INPUT:
            raise ShapeError("Positional value lists are supported for input parameters only")
        for value in bag:
            add_param(command, value, name="")
        return
    if isinstance(bag, Mapping):
        for name, value in bag.items():
            add_param(command, value, name=str(name), direction=direction)
        return
    for name, value, type_ in object_fields(bag):
        add_param(command, value, name=name, direction=direction, type_=type_)


def results_as_record(command: Command) -> Record:
    """Values of every non-input parameter, keyed by deprefixed name."""
    plugin = command.plugin
    result = Record()
    for parameter in command.parameters:
        if not parameter.is_input:
            name = plugin.deprefix_parameter_name(plugin.prefix_parameter_name(parameter.name or ""))
            result[name] = plugin.get_value(parameter)
    return result


def object_fields(obj: Any) -> Iterator[tuple[str, Any, Any]]:
    """Yield ``(name, value, declared_type)`` for each field of a structured object."""
    if isinstance(obj, BaseModel):
        for name, info in type(obj).model_fields.items():
            yield name, getattr(obj, name), info.annotation
        return

    hints = _type_hints(type(obj))
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        for f in dataclasses.fields(obj):
            yield f.name, getattr(obj, f.name), hints.get(f.name)
        return
    if isinstance(obj, tuple) and hasattr(obj, "_asdict"):
        for name, value in obj._asdict().items():
            yield name, value, hints.get(name)
        return
    try:
        attributes = vars(obj)
    except TypeError:
        raise ShapeError(f"Cannot read named fields from {type(obj).__name__}") from None
    for name, value in attributes.items():
        if not name.startswith("_"):
            yield name, value, hints.get(name)


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        # unresolvable forward references: fall back to the raw annotations
        return dict(getattr(cls, "__annotations__", {}))


__all__ = ["add_param", "add_params", "add_named_params", "results_as_record", "object_fields"]
