"""
Connection strings and provider resolution.

Connection strings use the ``key=value;key=value`` form. The
``ProviderName`` pseudo-attribute (any case) selects the plugin and is
removed before the string reaches a driver::

    >>> cs = ConnectionString.parse("Data Source=app.db;ProviderName=sqlite")
    >>> cs.provider_name, str(cs)
    ('sqlite', 'Data Source=app.db')

Values may be wrapped in ``{...}`` or double quotes to carry ``;``.
``resolve_connection_string`` applies the settings fallbacks: a name
found in ``settings.connection_strings`` is replaced by its value, an
empty string falls back to ``settings.connection_string`` and a missing
ProviderName falls back to ``settings.provider_name``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from dyntable.core.errors import ConfigError, ConnectionStringError, MissingConfigError

if TYPE_CHECKING:
    from dyntable.core.settings import DyntableSettings

PROVIDER_NAME_KEY = "providername"


def _split_pairs(text: str) -> list[str]:
    """Split on ``;`` outside ``{...}`` and ``"..."``."""
    pairs: list[str] = []
    current: list[str] = []
    closing: str | None = None
    for char in text:
        if closing is not None:
            current.append(char)
            if char == closing:
                closing = None
        elif char == ";":
            pairs.append("".join(current))
            current = []
        else:
            if char == "{":
                closing = "}"
            elif char == '"':
                closing = '"'
            current.append(char)
    if closing is not None:
        raise ConnectionStringError(text, f"Unterminated quoted value in connection string: {text!r}")
    pairs.append("".join(current))
    return pairs


@dataclass(frozen=True)
class ConnectionString:
    """Parsed connection string; ``attributes`` keep their original order and spelling."""

    attributes: tuple[tuple[str, str], ...] = ()
    provider_name: str | None = None

    @classmethod
    def parse(cls, text: str) -> ConnectionString:
        attributes: list[tuple[str, str]] = []
        provider_name: str | None = None
        for pair in _split_pairs(text):
            if not pair.strip():
                continue
            key, sep, value = pair.partition("=")
            key = key.strip()
            if not sep or not key:
                raise ConnectionStringError(text)
            value = value.strip()
            if key.lower() == PROVIDER_NAME_KEY:
                provider_name = value
            else:
                attributes.append((key, value))
        return cls(tuple(attributes), provider_name)

    def get(self, *keys: str, default: str | None = None) -> str | None:
        """First value whose key matches any of ``keys`` (case-insensitive), unquoted."""
        wanted = [k.lower() for k in keys]
        for name in wanted:
            for key, value in self.attributes:
                if key.lower() == name:
                    return _unquote(value)
        return default

    def require(self, *keys: str) -> str:
        value = self.get(*keys)
        if value is None or value == "":
            raise MissingConfigError(keys[0], f"Connection string is missing required attribute {keys[0]!r}")
        return value

    def keys(self) -> list[str]:
        return [key for key, _ in self.attributes]

    def __str__(self) -> str:
        return ";".join(f"{key}={value}" for key, value in self.attributes)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    if len(value) >= 2 and value[0] == "{" and value[-1] == "}":
        return value[1:-1]
    return value


def resolve_connection_string(
    connection_string_or_name: str, settings: DyntableSettings, *, require_provider: bool = True
) -> ConnectionString:
    """Turn a connection string (or a configured name) into a ConnectionString with a provider."""
    text = connection_string_or_name or settings.connection_string
    if text in settings.connection_strings:
        text = settings.connection_strings[text]
    if not text:
        raise MissingConfigError(
            "connection_string", "No connection string given and DYNTABLE_CONNECTION_STRING is not set"
        )
    connection_string = ConnectionString.parse(text)
    if not connection_string.provider_name:
        if not settings.provider_name:
            if not require_provider:
                return connection_string
            raise ConfigError("Cannot find ProviderName=... in connection string")
        connection_string = replace(connection_string, provider_name=settings.provider_name)
    return connection_string


__all__ = ["ConnectionString", "resolve_connection_string"]
