"""
pgreconcile: declarative PostgreSQL table schema reconciliation.

pgreconcile compares declared table schemas (columns, types, defaults,
indexes and foreign keys) with a live PostgreSQL database and issues the
minimal DDL needed to bring the database in line.
"""

__version__ = "0.1.0"

from .config import ReconcileConfig
from .exceptions import ReconcileError, ConfigurationError, DatabaseError, DescriptorError
from .schema import ModelRegistry, SchemaReconciler, SyncOptions, TableDescriptor

__all__ = [
    "__version__",
    "ReconcileConfig",
    "ReconcileError",
    "ConfigurationError",
    "DatabaseError",
    "DescriptorError",
    "ModelRegistry",
    "SchemaReconciler",
    "SyncOptions",
    "TableDescriptor",
]
