"""dyntable core -- dynamic table access over DB-API 2.0 drivers.

Architecture::

    Layer 1 -- Types & Errors
        errors.py          Structured error hierarchy (DyntableError ...)
        protocols.py       DB-API cursor/connection protocols, RowReader
        params.py          Direction, DbType, Parameter, Cursor, Command, Record

    Layer 2 -- Configuration & Logging
        settings.py        DyntableSettings (DYNTABLE_* environment)
        logging.py         structlog configuration
        connection.py      Connection-string parsing and resolution

    Layer 3 -- Binding & SQL
        binder.py          Parameter binding rules, parameter bags
        sql.py             Clause readying, statement assembly, paging
        readers.py         Row readers incl. PostgreSQL cursor dereferencing

    Layer 4 -- Dialects
        plugins/           One plugin per database + provider registry

    Layer 5 -- Model
        finder.py          Dynamic finder parsing and dispatch
        model.py           DynamicModel, PagedResult
"""

from dyntable.core.binder import add_named_params, add_param, add_params, results_as_record
from dyntable.core.connection import ConnectionString, resolve_connection_string
from dyntable.core.errors import (
    CapabilityError,
    ConfigError,
    ConnectionStringError,
    CursorTransactionError,
    DatabaseError,
    DyntableError,
    ErrorCategory,
    ErrorContext,
    MissingConfigError,
    ShapeError,
    UnknownProviderError,
    ValidationError,
    categorize_error,
)
from dyntable.core.finder import FinderKind, FinderRequest, is_finder_name, parse_finder
from dyntable.core.logging import configure_logging, get_logger
from dyntable.core.model import DynamicModel, PagedResult
from dyntable.core.params import Command, Cursor, DbType, Direction, Parameter, Record
from dyntable.core.plugins import DatabasePlugin, Transaction, get_plugin, plugin_registry
from dyntable.core.settings import DyntableSettings, clear_settings_cache, get_settings
from dyntable.core.sql import PagingQueries, SqlBuilder, readify_order_by, readify_where

__all__ = [
    # Model
    "DynamicModel",
    "PagedResult",
    "FinderKind",
    "FinderRequest",
    "parse_finder",
    "is_finder_name",
    # Parameters
    "Command",
    "Cursor",
    "DbType",
    "Direction",
    "Parameter",
    "Record",
    "add_param",
    "add_params",
    "add_named_params",
    "results_as_record",
    # SQL
    "SqlBuilder",
    "PagingQueries",
    "readify_where",
    "readify_order_by",
    # Plugins
    "DatabasePlugin",
    "Transaction",
    "get_plugin",
    "plugin_registry",
    # Configuration
    "ConnectionString",
    "resolve_connection_string",
    "DyntableSettings",
    "get_settings",
    "clear_settings_cache",
    "configure_logging",
    "get_logger",
    # Errors
    "DyntableError",
    "ErrorCategory",
    "ErrorContext",
    "ConfigError",
    "MissingConfigError",
    "UnknownProviderError",
    "ConnectionStringError",
    "CapabilityError",
    "ValidationError",
    "ShapeError",
    "DatabaseError",
    "CursorTransactionError",
    "categorize_error",
]
