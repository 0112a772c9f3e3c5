"""Tests for ``dyntable.core.connection`` — connection strings and provider resolution."""

from __future__ import annotations

import pytest

from dyntable.core.connection import ConnectionString, resolve_connection_string
from dyntable.core.errors import ConfigError, ConnectionStringError, MissingConfigError
from dyntable.core.settings import DyntableSettings


class TestParse:
    def test_provider_removed(self):
        cs = ConnectionString.parse("Data Source=app.db;ProviderName=sqlite")
        assert cs.provider_name == "sqlite"
        assert str(cs) == "Data Source=app.db"
        assert cs.keys() == ["Data Source"]

    def test_provider_key_any_case(self):
        assert ConnectionString.parse("PROVIDERNAME=Npgsql;Host=x").provider_name == "Npgsql"

    def test_no_provider(self):
        assert ConnectionString.parse("Host=x").provider_name is None

    def test_whitespace_and_empty_segments(self):
        cs = ConnectionString.parse(" Host = db ;; Port=5432; ")
        assert cs.attributes == (("Host", "db"), ("Port", "5432"))

    def test_braced_value_keeps_semicolons(self):
        cs = ConnectionString.parse("Driver={ODBC Driver 18; beta};Server=s")
        assert cs.get("driver") == "ODBC Driver 18; beta"
        assert str(cs) == "Driver={ODBC Driver 18; beta};Server=s"

    def test_quoted_value(self):
        assert ConnectionString.parse('Password="a;b=c"').get("Password") == "a;b=c"

    def test_value_may_contain_equals(self):
        assert ConnectionString.parse("Options=-c search_path=app").get("Options") == "-c search_path=app"

    def test_unterminated_quote(self):
        with pytest.raises(ConnectionStringError, match="Unterminated"):
            ConnectionString.parse("Password={abc")

    @pytest.mark.parametrize("text", ["justtext", "=value"])
    def test_malformed_pair(self, text):
        with pytest.raises(ConnectionStringError):
            ConnectionString.parse(text)


class TestLookup:
    def test_get_first_matching_alias(self):
        cs = ConnectionString.parse("Uid=bob;User Id=alice")
        assert cs.get("User Id", "Uid") == "alice"
        assert cs.get("Missing", default="x") == "x"

    def test_require(self):
        cs = ConnectionString.parse("Database=;Host=h")
        assert cs.require("Host") == "h"
        with pytest.raises(MissingConfigError, match="Database") as info:
            cs.require("Database", "Initial Catalog")
        assert info.value.key == "Database"


class TestResolve:
    def test_embedded_provider(self):
        cs = resolve_connection_string("Data Source=x;ProviderName=sqlite", DyntableSettings())
        assert cs.provider_name == "sqlite"

    def test_named(self):
        settings = DyntableSettings(connection_strings={"main": "Data Source=x;ProviderName=sqlite"})
        cs = resolve_connection_string("main", settings)
        assert str(cs) == "Data Source=x"

    def test_empty_uses_default(self):
        settings = DyntableSettings(connection_string="Data Source=y;ProviderName=sqlite")
        assert resolve_connection_string("", settings).get("Data Source") == "y"

    def test_default_can_be_a_name(self):
        settings = DyntableSettings(
            connection_string="main",
            connection_strings={"main": "Data Source=z;ProviderName=sqlite"},
        )
        assert resolve_connection_string("", settings).get("Data Source") == "z"

    def test_nothing_configured(self):
        with pytest.raises(MissingConfigError, match="No connection string"):
            resolve_connection_string("", DyntableSettings())

    def test_provider_from_settings(self):
        cs = resolve_connection_string("Host=h", DyntableSettings(provider_name="postgres"))
        assert cs.provider_name == "postgres"

    def test_embedded_provider_wins(self):
        cs = resolve_connection_string("Host=h;ProviderName=mysql", DyntableSettings(provider_name="postgres"))
        assert cs.provider_name == "mysql"

    def test_missing_provider(self):
        with pytest.raises(ConfigError, match="ProviderName"):
            resolve_connection_string("Host=h", DyntableSettings())

    def test_missing_provider_allowed(self):
        cs = resolve_connection_string("Host=h", DyntableSettings(), require_provider=False)
        assert cs.provider_name is None
