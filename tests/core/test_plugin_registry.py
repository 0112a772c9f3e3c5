"""Tests for ``dyntable.core.plugins.registry`` — provider aliases and plugin creation."""

from __future__ import annotations

import pytest

from dyntable.core.errors import UnknownProviderError
from dyntable.core.plugins import (
    MySQLPlugin,
    OraclePlugin,
    PostgreSQLPlugin,
    ProviderType,
    SQLitePlugin,
    SQLServerPlugin,
)
from dyntable.core.plugins.registry import PluginRegistry, get_plugin, plugin_registry, resolve_provider
from dyntable.core.settings import DyntableSettings


class TestResolveProvider:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("System.Data.SqlClient", ProviderType.SQLSERVER),
            ("mssql", ProviderType.SQLSERVER),
            ("Npgsql", ProviderType.POSTGRESQL),
            (" postgres ", ProviderType.POSTGRESQL),
            ("Devart.Data.MySql", ProviderType.MYSQL),
            ("MySql.Data.MySqlClient", ProviderType.MYSQL),
            ("Oracle.ManagedDataAccess.Client", ProviderType.ORACLE),
            ("oracledb", ProviderType.ORACLE),
            ("Microsoft.Data.Sqlite", ProviderType.SQLITE),
            ("SQLITE3", ProviderType.SQLITE),
        ],
    )
    def test_aliases(self, name, expected):
        assert resolve_provider(name) == expected

    def test_provider_type_passthrough(self):
        assert resolve_provider(ProviderType.ORACLE) is ProviderType.ORACLE

    def test_unknown(self):
        with pytest.raises(UnknownProviderError, match="Unknown database provider: db2") as info:
            resolve_provider("db2")
        assert info.value.provider_name == "db2"


class TestPluginRegistry:
    def test_defaults(self):
        registry = PluginRegistry()
        assert registry.list_plugins() == ["mysql", "oracle", "postgresql", "sqlite", "sqlserver"]
        assert registry.plugin_class("pyodbc") is SQLServerPlugin
        assert registry.plugin_class(ProviderType.MYSQL) is MySQLPlugin

    def test_register_replaces(self):
        class TracingSQLitePlugin(SQLitePlugin):
            pass

        registry = PluginRegistry()
        registry.register("sqlite", TracingSQLitePlugin)
        assert isinstance(registry.create("System.Data.SQLite"), TracingSQLitePlugin)
        assert plugin_registry.plugin_class("sqlite") is SQLitePlugin

    def test_create_passes_arguments(self):
        settings = DyntableSettings(auto_dereference_fetch_size=50)
        owner = object()
        plugin = get_plugin("Npgsql", model=owner, settings=settings)
        assert isinstance(plugin, PostgreSQLPlugin)
        assert plugin.model is owner
        assert plugin.settings is settings

    def test_each_provider_creates_its_plugin(self):
        expected = {
            ProviderType.SQLSERVER: SQLServerPlugin,
            ProviderType.POSTGRESQL: PostgreSQLPlugin,
            ProviderType.MYSQL: MySQLPlugin,
            ProviderType.ORACLE: OraclePlugin,
            ProviderType.SQLITE: SQLitePlugin,
        }
        for provider, plugin_class in expected.items():
            plugin = get_plugin(provider)
            assert type(plugin) is plugin_class
            assert plugin.name == provider.value
