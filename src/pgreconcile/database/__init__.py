"""
Database integration package for pgreconcile.

This package provides:
- Async PostgreSQL connection pooling
- Live catalog introspection (columns, indexes, foreign keys)
"""

from .connection import ConnectionConfig, ConnectionPool
from .introspection import SchemaIntrospector, ColumnInfo, TableInfo

__all__ = [
    "ConnectionConfig",
    "ConnectionPool",
    "SchemaIntrospector",
    "ColumnInfo",
    "TableInfo",
]
