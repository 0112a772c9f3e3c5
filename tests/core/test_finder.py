"""Tests for ``dyntable.core.finder`` — dynamic finder parsing and dispatch."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from dyntable.core.errors import ShapeError
from dyntable.core.finder import FINDERS, FinderKind, FinderRequest, dispatch, is_finder_name, parse_finder
from dyntable.core.plugins import SQLitePlugin, SQLServerPlugin


@pytest.fixture
def plugin():
    return SQLitePlugin()


def parse(plugin, name, **kwargs):
    return parse_finder(name, (), kwargs, plugin, "ID")


class TestParseFinder:
    def test_find_by_column(self, plugin):
        request = parse(plugin, "find_by_email", email="a@b.c")
        assert request.kind == FinderKind.ONE
        assert request.where == " WHERE email = :email"
        assert request.order_by == " ORDER BY ID"
        assert request.columns == " * "
        assert request.predicates == {"email": "a@b.c"}

    def test_prefix_follows_dialect(self):
        request = parse_finder("get", (), {"Name": "x"}, SQLServerPlugin(), "ID")
        assert request.where == " WHERE Name = @Name"

    def test_last_reverses_order(self, plugin):
        assert parse(plugin, "Last").order_by == " ORDER BY ID DESC "

    def test_explicit_order_by(self, plugin):
        assert parse(plugin, "last", orderby="Name").order_by == " ORDER BY Name DESC "
        assert parse(plugin, "all", order_by="Name").order_by == " ORDER BY Name"

    @pytest.mark.parametrize(
        "name, kind",
        [
            ("count", FinderKind.COUNT),
            ("COUNT", FinderKind.COUNT),
            ("Sum", FinderKind.AGGREGATE),
            ("avg", FinderKind.AGGREGATE),
            ("First", FinderKind.ONE),
            ("single_item", FinderKind.ONE),
            ("getByName", FinderKind.ONE),
            ("everything", FinderKind.MANY),
            ("counter", FinderKind.MANY),
        ],
    )
    def test_kind(self, plugin, name, kind):
        assert parse(plugin, name).kind == kind

    def test_aggregate_function(self, plugin):
        assert parse(plugin, "Max", columns="Price").aggregate == "MAX"

    def test_where_combined_with_predicates(self, plugin):
        request = parse(plugin, "all", where="Price > :0", args=[5], Name="x")
        assert request.where == " WHERE ( Price > :0 ) AND Name = :Name"
        assert request.args == [5]

    def test_where_keyword_accepted(self, plugin):
        assert parse(plugin, "all", where="WHERE a = 1").where == " WHERE ( a = 1 )"

    def test_blank_where_ignored(self, plugin):
        assert parse(plugin, "all", where=" ").where == ""

    def test_scalar_args(self, plugin):
        assert parse(plugin, "all", args=3).args == [3]

    def test_columns(self, plugin):
        assert parse(plugin, "all", columns="ID, Name").columns == "ID, Name"

    def test_positional_rejected(self, plugin):
        with pytest.raises(ShapeError, match="Please use named arguments"):
            parse_finder("find", ("x",), {}, plugin, "ID")


class TestIsFinderName:
    @pytest.mark.parametrize(
        "name",
        ["find_by_email", "FindByName", "First", "last", "get", "single_cheap", "Count", "Sum", "avg", "all_named"],
    )
    def test_finder_names(self, name):
        assert is_finder_name(name) is True

    @pytest.mark.parametrize("name", ["insret", "save_all", "by_name", "tables"])
    def test_other_names(self, name):
        assert is_finder_name(name) is False


class TestDispatch:
    def test_table_covers_every_kind(self):
        assert set(FINDERS) == set(FinderKind)

    def test_one(self):
        model = MagicMock()
        model.all_with_params.return_value = iter([{"ID": 1}, {"ID": 2}])
        request = FinderRequest("first", FinderKind.ONE, order_by=" ORDER BY ID", predicates={"a": 1})
        assert dispatch(model, request) == {"ID": 1}
        model.all_with_params.assert_called_once_with(
            "", " ORDER BY ID", 1, " * ", in_params={"a": 1}, args=[]
        )

    def test_one_without_rows(self):
        model = MagicMock()
        model.all_with_params.return_value = iter([])
        assert dispatch(model, FinderRequest("first", FinderKind.ONE)) is None

    def test_many(self):
        model = MagicMock()
        request = FinderRequest("all", FinderKind.MANY, where=" WHERE a = :a", predicates={"a": 1})
        assert dispatch(model, request) is model.all_with_params.return_value
        model.all_with_params.assert_called_once_with(
            " WHERE a = :a", "", 0, " * ", in_params={"a": 1}, args=[]
        )

    def test_count(self):
        model = MagicMock()
        model.table_name = "Products"
        model.count_with_params.return_value = 4
        assert dispatch(model, FinderRequest("count", FinderKind.COUNT, args=[1])) == 4
        model.count_with_params.assert_called_once_with("Products", "", in_params={}, args=[1])

    def test_aggregate(self):
        model = MagicMock()
        model.table_name = "Products"
        model.builder.aggregate.return_value = "SELECT SUM(Price) FROM Products"
        request = FinderRequest("sum", FinderKind.AGGREGATE, columns="Price", aggregate="SUM")
        dispatch(model, request)
        model.builder.aggregate.assert_called_once_with("SUM", "Price", "Products", "")
        model.scalar_with_params.assert_called_once_with("SELECT SUM(Price) FROM Products", in_params={}, args=[])

    def test_aggregate_unsupported(self):
        model = MagicMock()
        assert dispatch(model, FinderRequest("sum", FinderKind.AGGREGATE)) is None
        model.scalar_with_params.assert_not_called()
