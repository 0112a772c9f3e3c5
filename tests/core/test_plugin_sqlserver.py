"""Tests for ``dyntable.core.plugins.sqlserver`` — SQL Server plugin against fake pyodbc objects."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from dyntable.core.binder import add_param, add_params
from dyntable.core.connection import ConnectionString
from dyntable.core.model import DynamicModel
from dyntable.core.params import Command, Direction, Parameter
from dyntable.core.plugins import SQLServerPlugin
from dyntable.core.plugins.sqlserver import DEFAULT_ODBC_DRIVER


class FakeCursor:
    """Cursor over a fixed list of ``(description, rows)`` result sets."""

    def __init__(self, *result_sets):
        self._sets = list(result_sets)
        self._index = 0

    @property
    def description(self):
        if self._index >= len(self._sets):
            return None
        return self._sets[self._index][0]

    def fetchall(self):
        return self._sets[self._index][1]

    def nextset(self):
        self._index += 1
        return True if self._index < len(self._sets) else None


@pytest.fixture
def plugin():
    return SQLServerPlugin()


class TestConnectArguments:
    def test_ado_keywords_become_odbc(self, plugin):
        cs = ConnectionString.parse("Data Source=srv;Initial Catalog=shop;User Id=u;Password=p;Encrypt=no")
        assert plugin.connect_arguments(cs) == (
            (f"Driver={{{DEFAULT_ODBC_DRIVER}}};Server=srv;Database=shop;UID=u;PWD=p;Encrypt=no",),
            {},
        )

    def test_integrated_security(self, plugin):
        (odbc,), _ = plugin.connect_arguments(ConnectionString.parse("Server=srv;Integrated Security=SSPI"))
        assert odbc.endswith("Server=srv;Trusted_Connection=yes")

    def test_explicit_driver_kept(self, plugin):
        (odbc,), _ = plugin.connect_arguments(ConnectionString.parse("Driver={FreeTDS};Server=srv"))
        assert odbc == "Driver={FreeTDS};Server=srv"


class TestDialect:
    def test_identity(self, plugin):
        assert plugin.identity_retrieval_statement("SCOPE_IDENTITY()") == "SELECT SCOPE_IDENTITY()"
        assert plugin.supports_batches is True

    @pytest.mark.parametrize("raw, expected", [("((0))", "0"), ("(N'abc')", "abc"), ("('x')", "x"), (None, None)])
    def test_parse_default(self, plugin, raw, expected):
        assert plugin.parse_default(raw) == expected

    def test_parse_default_functions(self, plugin):
        assert isinstance(plugin.parse_default("(getdate())"), dt.datetime)
        assert isinstance(plugin.parse_default("(newid())"), uuid.UUID)

    def test_sql_types(self, plugin):
        assert plugin.sql_type(Parameter("a", "abc")) == "NVARCHAR(3)"
        command = Command("SELECT 1", plugin)
        assert plugin.sql_type(add_param(command, "abc")) == "NVARCHAR(4000)"
        assert plugin.sql_type(add_param(command, "x" * 5000)) == "NVARCHAR(MAX)"
        assert plugin.sql_type(Parameter("n", 5)) == "INT"
        assert plugin.sql_type(Parameter("d", Decimal("1.5"))) == "DECIMAL(38, 10)"
        assert plugin.sql_type(Parameter("o", object())) == "SQL_VARIANT"


class TestBatch:
    def test_procedure_with_outputs(self, plugin):
        command = Command("dbo.GetTotals", plugin, is_procedure=True)
        add_param(command, 5, "a")
        add_param(command, None, "total", Direction.OUTPUT, type_=int)
        add_param(command, None, "ret", Direction.RETURN_VALUE, type_=int)
        cursor = MagicMock()
        plugin.call_procedure(command, cursor, read_outputs=True)
        cursor.execute.assert_called_once_with(
            "SET NOCOUNT ON;\n"
            "DECLARE @a INT = ?, @total INT, @ret INT;\n"
            "EXEC @ret = dbo.GetTotals @a = @a, @total = @total OUTPUT;\n"
            "SELECT @total AS [total], @ret AS [ret];",
            [5],
        )

    def test_procedure_without_parameters(self, plugin):
        cursor = MagicMock()
        plugin.call_procedure(Command("dbo.Purge", plugin, is_procedure=True), cursor, read_outputs=False)
        cursor.execute.assert_called_once_with("SET NOCOUNT ON;\nEXEC dbo.Purge;")

    def test_input_output(self, plugin):
        command = Command("dbo.Bump", plugin, is_procedure=True)
        add_param(command, "x", "name", Direction.INPUT_OUTPUT)
        sql, arguments = plugin._batch(command, read_outputs=True)
        assert "DECLARE @name NVARCHAR(4000) = ?;" in sql
        assert "EXEC dbo.Bump @name = @name OUTPUT;" in sql
        assert sql.endswith("SELECT @name AS [name];")
        assert arguments == ["x"]

    def test_text_command_with_output(self, plugin):
        command = Command("SELECT @count = COUNT(*) FROM Products;", plugin)
        add_param(command, None, "count", Direction.OUTPUT, type_=int)
        assert plugin.prepare(command, MagicMock(), read_outputs=True) == (
            "SET NOCOUNT ON;\nDECLARE @count INT;\nSELECT @count = COUNT(*) FROM Products;\nSELECT @count AS [count];",
            [],
        )

    def test_outputs_not_selected_for_reads(self, plugin):
        command = Command("SELECT @count = 1", plugin)
        add_param(command, None, "count", Direction.OUTPUT, type_=int)
        sql, _ = plugin.prepare(command, MagicMock(), read_outputs=False)
        assert "AS [count]" not in sql

    def test_inputs_only_use_qmark(self, plugin):
        command = Command("SELECT * FROM T WHERE a = @0", plugin)
        add_params(command, 1)
        assert plugin.prepare(command, MagicMock(), read_outputs=False) == ("SELECT * FROM T WHERE a = ?", [1])


class TestCollectOutputs:
    def test_reads_last_row_of_last_result_set(self, plugin):
        command = Command("proc", plugin, is_procedure=True)
        total = add_param(command, None, "total", Direction.OUTPUT, type_=int)
        ret = add_param(command, None, "ret", Direction.RETURN_VALUE, type_=int)
        cursor = FakeCursor(
            ([("id", int)], [(1,), (2,)]),
            (None, []),
            ([("total", int), ("ret", int)], [(12, 0)]),
        )
        plugin.collect_outputs(command, cursor)
        assert total.value == 12
        assert ret.value == 0

    def test_no_rows_leaves_values(self, plugin):
        command = Command("proc", plugin, is_procedure=True)
        total = add_param(command, None, "total", Direction.OUTPUT, type_=int)
        plugin.collect_outputs(command, FakeCursor((None, [])))
        assert total.value is None


class TestModelOnFakeDriver:
    @pytest.fixture
    def driver(self):
        return MagicMock()

    @pytest.fixture
    def model(self, driver):
        model = DynamicModel("Server=srv;Database=shop;ProviderName=System.Data.SqlClient", "Products")
        model.plugin._driver = driver
        return model

    def test_insert_batches_identity(self, model, driver):
        connection = driver.connect.return_value
        cursor = connection.cursor.return_value
        cursor.description = [("", None)]
        cursor.fetchmany.return_value = [(Decimal("42"),)]

        row = model.insert({"Name": "x"})

        assert row["ID"] == 42
        cursor.execute.assert_called_once_with("INSERT INTO Products (Name) VALUES (?);SELECT SCOPE_IDENTITY()", ["x"])
        connection.commit.assert_called_once()
        connection.close.assert_called_once()

    def test_execute_with_params(self, model, driver):
        connection = driver.connect.return_value
        connection.cursor.return_value = FakeCursor(([("total", int)], [(99,)]))
        cursor = connection.cursor.return_value
        cursor.rowcount = -1
        cursor.execute = MagicMock()
        cursor.close = MagicMock()

        outputs = model.execute_as_procedure("dbo.CountProducts", in_params={"max": 5}, out_params={"total": 0})

        assert outputs == {"total": 99}
        sql, arguments = cursor.execute.call_args.args
        assert sql.startswith("SET NOCOUNT ON;\nDECLARE @max INT = ?, @total INT;")
        assert arguments == [5]

    def test_top_and_paging(self, model):
        assert model.builder.select("*", model.table_name, limit=1) == "SELECT TOP 1 * FROM Products"
        page = model.builder.paging(model.table_name, "ID", page_size=10, current_page=3)
        assert page.main_query.endswith("OFFSET 20 ROWS FETCH NEXT 10 ROWS ONLY")
