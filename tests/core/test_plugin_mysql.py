"""Tests for ``dyntable.core.plugins.mysql`` — MySQL plugin against fake connector objects."""

from __future__ import annotations

import datetime as dt
from unittest.mock import MagicMock

import pytest

from dyntable.core.binder import add_param, add_params
from dyntable.core.connection import ConnectionString
from dyntable.core.errors import CapabilityError, MissingConfigError
from dyntable.core.model import DynamicModel
from dyntable.core.params import Command, Cursor, Direction
from dyntable.core.plugins import MySQLPlugin
from dyntable.core.readers import CursorChainReader


@pytest.fixture
def plugin():
    return MySQLPlugin()


def procedure(plugin, name="get_totals"):
    return Command(name, plugin, is_procedure=True)


def stored_result(name, *rows):
    cursor = MagicMock()
    cursor.description = [(name, None)]
    cursor.fetchmany.side_effect = [list(rows), []]
    return cursor


class TestConnectArguments:
    def test_mapping(self, plugin):
        cs = ConnectionString.parse("Server=db;Port=3307;Database=shop;Uid=u;Pwd=p")
        assert plugin.connect_arguments(cs) == (
            (),
            {"host": "db", "database": "shop", "port": 3307, "user": "u", "password": "p"},
        )

    def test_database_required(self, plugin):
        with pytest.raises(MissingConfigError):
            plugin.connect_arguments(ConnectionString.parse("Server=db"))


class TestDialect:
    def test_limit_and_paging(self, plugin):
        assert plugin.select_pattern(3).format("*", "film") == "SELECT * FROM film LIMIT 3"
        assert plugin.paging_clause("SELECT * FROM film ORDER BY id", 40, 20) == (
            "SELECT * FROM film ORDER BY id LIMIT 20 OFFSET 40"
        )

    def test_identity(self, plugin):
        assert plugin.identity_retrieval_statement("LAST_INSERT_ID()") == "SELECT LAST_INSERT_ID()"

    def test_parse_default(self, plugin):
        assert isinstance(plugin.parse_default("CURRENT_TIMESTAMP"), dt.datetime)
        assert plugin.parse_default("draft") == "draft"

    def test_untyped_outputs_allowed(self, plugin):
        parameter = add_param(procedure(plugin), None, "total", Direction.OUTPUT)
        assert parameter.value is None

    def test_cursors_unsupported(self, plugin):
        with pytest.raises(CapabilityError, match="Cursor parameters"):
            add_param(procedure(plugin), Cursor(), "rc", Direction.OUTPUT)

    def test_translate_keeps_system_variables(self, plugin):
        command = Command("SELECT @@version, title FROM film WHERE title LIKE '%a%' AND film_id = @0", plugin)
        add_params(command, 1)
        assert plugin.translate(command) == (
            "SELECT @@version, title FROM film WHERE title LIKE '%%a%%' AND film_id = %(p0)s",
            {"p0": 1},
        )


class TestCallProcedure:
    def test_callproc_outputs(self, plugin):
        command = procedure(plugin)
        add_param(command, 1, "a")
        total = add_param(command, None, "total", Direction.OUTPUT)
        running = add_param(command, 5, "running", Direction.INPUT_OUTPUT)
        connection = MagicMock()
        cursor = connection.cursor.return_value
        cursor.rowcount = 0
        cursor.callproc.return_value = (1, 12, 6)

        assert plugin.execute_non_query(command, connection) == 0

        cursor.callproc.assert_called_once_with("get_totals", [1, None, 5])
        assert total.value == 12
        assert running.value == 6

    def test_return_value_uses_select(self, plugin):
        command = procedure(plugin, "film_count")
        add_param(command, 3, "rating")
        returned = add_param(command, None, "ret", Direction.RETURN_VALUE)
        connection = MagicMock()
        cursor = connection.cursor.return_value
        cursor.rowcount = 1
        cursor.fetchone.return_value = (42,)

        plugin.execute_non_query(command, connection)

        cursor.execute.assert_called_once_with("SELECT film_count(%s)", [3])
        cursor.callproc.assert_not_called()
        assert returned.value == 42

    def test_text_outputs_unsupported(self, plugin):
        command = Command("SELECT 1", plugin)
        add_param(command, 0, "total", Direction.OUTPUT)
        connection = MagicMock()
        connection.cursor.return_value.rowcount = 0
        with pytest.raises(CapabilityError, match="Output parameters"):
            plugin.execute_non_query(command, connection)


class TestStoredResults:
    def test_procedure_reader_walks_stored_results(self, plugin):
        connection = MagicMock()
        cursor = connection.cursor.return_value
        first, second = stored_result("a", (1,), (2,)), stored_result("b", (3,))
        cursor.stored_results.return_value = iter([first, second])

        reader = plugin.execute_reader(procedure(plugin), connection)

        assert isinstance(reader, CursorChainReader)
        assert [row.a for row in reader.rows()] == [1, 2]
        assert reader.next_result() is True
        assert [row.b for row in reader.rows()] == [3]
        reader.close()
        cursor.close.assert_called_once()


class TestModelOnFakeDriver:
    def test_insert_reads_last_insert_id(self):
        model = DynamicModel("Server=db;Database=shop;ProviderName=MySql.Data.MySqlClient", "film", "film_id")
        driver = MagicMock()
        model.plugin._driver = driver
        cursor = driver.connect.return_value.cursor.return_value
        cursor.rowcount = 1
        cursor.description = [("LAST_INSERT_ID()", None)]
        cursor.fetchmany.return_value = [(1001,)]

        row = model.insert({"title": "ACE GOLDFINGER"})

        assert row["film_id"] == 1001
        assert [c.args for c in cursor.execute.call_args_list] == [
            ("INSERT INTO film (title) VALUES (%(p0)s)", {"p0": "ACE GOLDFINGER"}),
            ("SELECT LAST_INSERT_ID()",),
        ]
        driver.connect.return_value.commit.assert_called_once()
