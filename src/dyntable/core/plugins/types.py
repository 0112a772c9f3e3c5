"""Provider types and the provider-name lookup table."""

from __future__ import annotations

from enum import Enum


class ProviderType(str, Enum):
    """Supported database providers."""

    SQLSERVER = "sqlserver"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    ORACLE = "oracle"
    SQLITE = "sqlite"


# Lower-cased provider names (ADO.NET invariant names and Python driver names)
PROVIDER_ALIASES: dict[str, ProviderType] = {
    # SQL Server
    "system.data.sqlclient": ProviderType.SQLSERVER,
    "microsoft.data.sqlclient": ProviderType.SQLSERVER,
    "sqlserver": ProviderType.SQLSERVER,
    "mssql": ProviderType.SQLSERVER,
    "pyodbc": ProviderType.SQLSERVER,
    # PostgreSQL
    "npgsql": ProviderType.POSTGRESQL,
    "postgresql": ProviderType.POSTGRESQL,
    "postgres": ProviderType.POSTGRESQL,
    "psycopg2": ProviderType.POSTGRESQL,
    # MySQL
    "mysql.data.mysqlclient": ProviderType.MYSQL,
    "devart.data.mysql": ProviderType.MYSQL,
    "mysql": ProviderType.MYSQL,
    "mariadb": ProviderType.MYSQL,
    "mysql.connector": ProviderType.MYSQL,
    # Oracle
    "oracle.manageddataaccess.client": ProviderType.ORACLE,
    "oracle.dataaccess.client": ProviderType.ORACLE,
    "oracle": ProviderType.ORACLE,
    "oracledb": ProviderType.ORACLE,
    # SQLite
    "system.data.sqlite": ProviderType.SQLITE,
    "microsoft.data.sqlite": ProviderType.SQLITE,
    "sqlite": ProviderType.SQLITE,
    "sqlite3": ProviderType.SQLITE,
}


__all__ = ["ProviderType", "PROVIDER_ALIASES"]
