"""Dialect plugins: one per supported database."""

from .base import DatabasePlugin, Transaction
from .mysql import MySQLPlugin
from .oracle import OraclePlugin
from .postgresql import PostgreSQLPlugin
from .registry import PluginRegistry, get_plugin, plugin_registry, resolve_provider
from .sqlite import SQLitePlugin
from .sqlserver import SQLServerPlugin
from .types import PROVIDER_ALIASES, ProviderType

__all__ = [
    "DatabasePlugin",
    "Transaction",
    "SQLServerPlugin",
    "PostgreSQLPlugin",
    "MySQLPlugin",
    "OraclePlugin",
    "SQLitePlugin",
    "PluginRegistry",
    "plugin_registry",
    "get_plugin",
    "resolve_provider",
    "ProviderType",
    "PROVIDER_ALIASES",
]
