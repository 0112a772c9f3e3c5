"""Plugin registry and provider resolution.

Manifesto:
    The model never names a plugin class. A provider name, taken from the
    connection string or settings, is looked up in a closed table of
    aliases and the registry creates the matching plugin.

Features:
    - ``PluginRegistry`` with the five default plugins pre-registered
    - ``register()`` for replacing a plugin (e.g. a driver variant)
    - ``resolve_provider()``: any alias → ``ProviderType``
    - ``get_plugin()`` factory: provider name → plugin instance

Tags:
    dyntable, database, registry, factory, provider
"""

from __future__ import annotations

from typing import Any

from dyntable.core.errors import UnknownProviderError

from .base import DatabasePlugin
from .mysql import MySQLPlugin
from .oracle import OraclePlugin
from .postgresql import PostgreSQLPlugin
from .sqlite import SQLitePlugin
from .sqlserver import SQLServerPlugin
from .types import PROVIDER_ALIASES, ProviderType


def resolve_provider(provider_name: str | ProviderType) -> ProviderType:
    """Map a provider name or alias (any case) to its ``ProviderType``."""
    if isinstance(provider_name, ProviderType):
        return provider_name
    key = provider_name.strip().lower()
    try:
        return PROVIDER_ALIASES[key]
    except KeyError:
        raise UnknownProviderError(provider_name) from None


class PluginRegistry:
    """
    Registry of plugin classes by provider type.

    Pre-registered plugins:
    - ``sqlserver`` — :class:`SQLServerPlugin`
    - ``postgresql`` — :class:`PostgreSQLPlugin`
    - ``mysql`` — :class:`MySQLPlugin`
    - ``oracle`` — :class:`OraclePlugin`
    - ``sqlite`` — :class:`SQLitePlugin`
    """

    def __init__(self):
        self._plugins: dict[ProviderType, type[DatabasePlugin]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._plugins[ProviderType.SQLSERVER] = SQLServerPlugin
        self._plugins[ProviderType.POSTGRESQL] = PostgreSQLPlugin
        self._plugins[ProviderType.MYSQL] = MySQLPlugin
        self._plugins[ProviderType.ORACLE] = OraclePlugin
        self._plugins[ProviderType.SQLITE] = SQLitePlugin

    def register(self, provider: str | ProviderType, plugin_class: type[DatabasePlugin]) -> None:
        """Register (or replace) the plugin for a provider."""
        self._plugins[resolve_provider(provider)] = plugin_class

    def plugin_class(self, provider: str | ProviderType) -> type[DatabasePlugin]:
        return self._plugins[resolve_provider(provider)]

    def create(self, provider: str | ProviderType, **kwargs: Any) -> DatabasePlugin:
        """Create a plugin for a provider name or alias."""
        return self.plugin_class(provider)(**kwargs)

    def list_plugins(self) -> list[str]:
        """List registered provider types."""
        return sorted(provider.value for provider in self._plugins)


# Global registry
plugin_registry = PluginRegistry()


def get_plugin(provider: str | ProviderType, **kwargs: Any) -> DatabasePlugin:
    """
    Get a plugin by provider name.

    Usage:
        plugin = get_plugin("System.Data.SqlClient")
        plugin = get_plugin("sqlite", model=model)
    """
    return plugin_registry.create(provider, **kwargs)


__all__ = [
    "PluginRegistry",
    "plugin_registry",
    "resolve_provider",
    "get_plugin",
]
