"""
Schema management package for pgreconcile.

This package provides:
- Declared table descriptors and the model registry
- Column type parsing and comparison
- DDL generation with safe identifier and literal quoting
- Schema reconciliation against the live catalog
"""

from .descriptor import ColumnDefinition, ForeignKeyRef, TableDescriptor
from .registry import ModelRegistry, RegistryEntry
from .operations import SchemaChange, SchemaOperations, ChangeType, OperationMode
from .reconciler import (
    ReconciliationContext,
    ReconciliationResult,
    ReconciliationStatus,
    SchemaReconciler,
    SyncOptions,
)

__all__ = [
    "ColumnDefinition",
    "ForeignKeyRef",
    "TableDescriptor",
    "ModelRegistry",
    "RegistryEntry",
    "SchemaChange",
    "SchemaOperations",
    "ChangeType",
    "OperationMode",
    "ReconciliationContext",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SchemaReconciler",
    "SyncOptions",
]
