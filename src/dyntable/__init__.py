"""
dyntable - a dynamic micro-ORM for SQL Server, PostgreSQL, MySQL, Oracle and SQLite.

    >>> from dyntable import DynamicModel
    >>> orders = DynamicModel("Data Source=shop.db;ProviderName=sqlite", "Orders")
"""

__version__ = "0.1.0"

from dyntable.core import *  # noqa: F401,F403
from dyntable.core import __all__  # noqa: F401
