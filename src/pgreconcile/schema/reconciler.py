"""
Schema reconciliation core logic for pgreconcile.

Compares each declared table with its live structure and issues the DDL
needed to bring the database in line: table creation, column additions,
renames, type and default changes, index creation and cleanup, and
foreign-key constraints. Referenced tables are reconciled first, through a
dependency resolver shared by the whole invocation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..database.connection import ConnectionPool
from ..database.introspection import SchemaIntrospector, TableInfo
from ..exceptions import ConfigurationError, ReferenceResolutionError
from .ddl import DDLGenerator, default_matches, foreign_key_name, index_name
from .dependencies import DependencyResolver
from .descriptor import ColumnDefinition, TableDescriptor
from .operations import OperationMode, SchemaChange, SchemaOperations
from .registry import ModelRegistry
from .types import is_string_data_type


logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"


class SyncOptions(BaseModel):
    """Options for one reconciliation invocation."""

    force: bool = Field(False, description="Allow destructive column rebuilds")
    drop_not_exist_col: bool = Field(
        False, description="Drop live columns missing from the declaration"
    )
    debug: bool = Field(False, description="Echo every statement before execution")
    dry_run: bool = Field(False, description="Record statements without executing them")
    target_schema: Optional[str] = Field(
        None, alias="schema", description="Override the namespace of every table"
    )
    model: Optional[str] = Field(None, description="Reconcile only this model")
    strict_references: bool = Field(
        False, description="Treat unregistered reference targets as errors"
    )

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ReconciliationStatus(str, Enum):
    """Status of reconciliation operations."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ReconciliationResult:
    """Result of reconciling a single table."""

    status: ReconciliationStatus
    model: str
    schema: str
    table: str
    changes_applied: List[SchemaChange] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    created: bool = False

    @property
    def full_table_name(self) -> str:
        return f"{self.schema}.{self.table}"

    @property
    def statements(self) -> List[str]:
        """SQL of every statement issued, in order."""
        return [c.sql for c in self.changes_applied]

    @property
    def successful_changes(self) -> int:
        """Count of successfully applied changes."""
        return sum(1 for c in self.changes_applied if c.executed)

    @property
    def failed_changes(self) -> int:
        """Count of failed changes, not counting best-effort ones."""
        return sum(1 for c in self.changes_applied if c.error and not c.best_effort)


@dataclass
class ReconciliationContext:
    """State shared by every table reconciled in one top-level call."""

    options: SyncOptions
    resolver: Optional[DependencyResolver] = None
    default_schema: str = DEFAULT_SCHEMA
    results: Dict[str, ReconciliationResult] = field(default_factory=dict)

    @property
    def force(self) -> bool:
        return self.options.force

    @property
    def drop_unlisted(self) -> bool:
        return self.options.force or self.options.drop_not_exist_col

    def schema_for(self, descriptor: TableDescriptor) -> str:
        return self.options.target_schema or descriptor.schema or self.default_schema


class SchemaReconciler:
    """
    Core schema reconciliation engine for pgreconcile.

    Statements are issued strictly one at a time. Errors the server raises
    for a single column, index or constraint are recorded on the table's
    result and reconciliation continues; catalog and connection failures
    propagate to the caller.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        registry: Optional[ModelRegistry] = None,
        default_schema: str = DEFAULT_SCHEMA,
    ):
        self.pool = pool
        self.registry = registry if registry is not None else ModelRegistry()
        self.default_schema = default_schema

        self.introspector = SchemaIntrospector(pool)
        self.operations = SchemaOperations(pool)

    def new_context(self, options: Optional[SyncOptions] = None) -> ReconciliationContext:
        """Create the context for one top-level invocation."""
        options = options or SyncOptions()

        self.operations.debug = options.debug
        self.operations.operation_mode = (
            OperationMode.DRY_RUN if options.dry_run else OperationMode.APPLY
        )

        context = ReconciliationContext(options=options, default_schema=self.default_schema)
        context.resolver = DependencyResolver(
            lambda descriptor: self._reconcile_table(descriptor, context)
        )
        return context

    async def sync(self, options: Optional[SyncOptions] = None) -> Dict[str, ReconciliationResult]:
        """
        Reconcile every registered model, or only ``options.model``.

        All tables share one visited-set, so a table referenced by several
        others is reconciled once. Results are keyed by model name.
        """
        context = self.new_context(options)

        if context.options.model:
            entry = self.registry.get(context.options.model)
            if entry is None:
                raise ConfigurationError(f"Model '{context.options.model}' is not registered")
            entries = [entry]
        else:
            entries = list(self.registry)

        for entry in entries:
            await context.resolver.visit(entry.descriptor)

        return context.results

    async def sync_table(
        self,
        descriptor: TableDescriptor,
        context: Optional[ReconciliationContext] = None,
    ) -> ReconciliationResult:
        """Reconcile one table, and the tables it references."""
        context = context or self.new_context()
        await context.resolver.visit(descriptor)
        return context.results[descriptor.model_name]

    async def _reconcile_table(
        self, descriptor: TableDescriptor, context: ReconciliationContext
    ) -> ReconciliationResult:
        start_time = asyncio.get_running_loop().time()

        schema = context.schema_for(descriptor)
        table = descriptor.table_name

        result = ReconciliationResult(
            status=ReconciliationStatus.SKIPPED,
            model=descriptor.model_name,
            schema=schema,
            table=table,
        )
        context.results[descriptor.model_name] = result

        try:
            logger.info(f"Starting reconciliation for {schema}.{table}")

            generator = DDLGenerator(schema, table)
            namespace_oid = await self.introspector.get_namespace_oid(schema)
            table_info = await self.introspector.get_table_info(schema, table)

            changed: Set[str] = set()
            if table_info is None:
                change = await self._apply(generator.create_table(descriptor), result)
                if change.has_error:
                    result.status = ReconciliationStatus.FAILED
                    return result
                result.created = True
                live_indexes: Set[str] = set()
            else:
                changed = await self._sync_columns(
                    descriptor, table_info, generator, context, result
                )
                live_indexes = set(table_info.indexes)

            keep = await self._sync_indexes(descriptor, live_indexes, generator, result)
            if table_info is not None:
                await self._remove_stale_indexes(live_indexes, keep, generator, result)

            await self._sync_foreign_keys(
                descriptor, namespace_oid, changed, generator, context, result
            )

            if result.errors:
                result.status = ReconciliationStatus.PARTIAL
            else:
                result.status = ReconciliationStatus.SUCCESS

        finally:
            result.execution_time_ms = (
                asyncio.get_running_loop().time() - start_time
            ) * 1000

        logger.info(
            f"Reconciliation completed for {schema}.{table}: "
            f"{result.status.value}, {len(result.changes_applied)} statements "
            f"({result.execution_time_ms:.1f}ms)"
        )

        return result

    async def _apply(self, change: SchemaChange, result: ReconciliationResult) -> SchemaChange:
        await self.operations.execute(change)
        result.changes_applied.append(change)
        if change.has_error and not change.best_effort:
            result.errors.append(f"{change.description}: {change.error}")
        return change

    async def _sync_columns(
        self,
        descriptor: TableDescriptor,
        table_info: TableInfo,
        generator: DDLGenerator,
        context: ReconciliationContext,
        result: ReconciliationResult,
    ) -> Set[str]:
        """Bring live columns in line; return names of columns whose type changed."""
        live = dict(table_info.columns)
        renamed: Set[str] = set()
        changed: Set[str] = set()

        for name, col in descriptor.columns.items():
            if col.ignore:
                continue

            if col.drop:
                if name in live:
                    await self._apply(generator.drop_column(name, if_exists=True), result)
                continue

            if col.old_name and name not in live and col.old_name in live:
                change = await self._apply(
                    generator.rename_column(col.old_name, name), result
                )
                if change.has_error:
                    continue
                live[name] = live[col.old_name]
                renamed.add(col.old_name)

            current = live.get(name)
            if current is None:
                await self._apply(generator.add_column(col), result)
                continue

            if col.type_lock or not col.type.is_known:
                continue

            if not col.type.matches(current):
                if is_string_data_type(current.data_type) and not col.type.is_string:
                    if await self._rebuild_column(col, current.data_type, generator, context, result):
                        changed.add(name)
                    continue

                change = await self._apply(generator.alter_column_type(col), result)
                if change.has_error:
                    continue
                changed.add(name)

            if col.has_default and not default_matches(
                current.default_value, col.default, col.type.is_json
            ):
                change = await self._apply(
                    generator.set_default(name, col.default, col.type.is_json), result
                )
                if change.has_error:
                    continue

            if col.not_null and current.is_nullable:
                await self._apply(generator.set_not_null(name), result)

        if context.drop_unlisted:
            for name, info in live.items():
                if name in descriptor.columns or name in renamed or info.is_generated:
                    continue
                await self._apply(generator.drop_column(name), result)

        return changed

    async def _rebuild_column(
        self,
        col: ColumnDefinition,
        live_type: str,
        generator: DDLGenerator,
        context: ReconciliationContext,
        result: ReconciliationResult,
    ) -> bool:
        """Replace a string column with a non-string one, which only force allows."""
        if not (col.force or context.force):
            message = (
                f"Column {col.name}: no automatic conversion from {live_type} "
                f"to {col.type.raw}; set force to drop and re-add it"
            )
            logger.error(f"{generator.table}: {message}")
            result.errors.append(message)
            return False

        logger.warning(
            f"Rebuilding {generator.table}.{col.name} as {col.type.raw}; existing values are discarded"
        )
        drop = await self._apply(generator.drop_column(col.name), result)
        if drop.has_error:
            return False
        add = await self._apply(generator.add_column(col), result)
        return not add.has_error

    async def _sync_indexes(
        self,
        descriptor: TableDescriptor,
        live_indexes: Set[str],
        generator: DDLGenerator,
        result: ReconciliationResult,
    ) -> Set[str]:
        """Create missing declared indexes; return the names that should exist."""
        keep: Set[str] = set()
        removed = set(descriptor.remove_indexes)

        specs = [(cols, False) for cols in descriptor.indexes]
        specs += [(cols, True) for cols in descriptor.uniques]

        for columns, unique in specs:
            if not columns or columns in removed:
                continue

            missing = [
                c for c in columns
                if not descriptor.has_column(c) or descriptor.columns[c].drop
            ]
            if missing:
                message = (
                    f"Index on ({', '.join(columns)}) references undeclared "
                    f"column(s): {', '.join(missing)}"
                )
                logger.error(f"{generator.table}: {message}")
                result.errors.append(message)
                continue

            if unique and columns == descriptor.primary_key:
                logger.debug(
                    f"{generator.table}: unique ({', '.join(columns)}) is the primary key"
                )
                continue

            name = index_name(descriptor.table_name, columns)
            keep.add(name)
            if name in live_indexes:
                continue

            change = await self._apply(generator.create_index(columns, unique), result)
            if not change.has_error:
                live_indexes.add(name)

        return keep

    async def _remove_stale_indexes(
        self,
        live_indexes: Set[str],
        keep: Set[str],
        generator: DDLGenerator,
        result: ReconciliationResult,
    ) -> None:
        for name in sorted(live_indexes - keep):
            await self._apply(generator.drop_index(name), result)

    async def _sync_foreign_keys(
        self,
        descriptor: TableDescriptor,
        namespace_oid: Optional[int],
        changed: Set[str],
        generator: DDLGenerator,
        context: ReconciliationContext,
        result: ReconciliationResult,
    ) -> None:
        planned: List[Tuple[str, ColumnDefinition, str, str]] = []

        for col in descriptor.references:
            target = await self._resolve_target(descriptor, col, context, result)
            if target is None:
                continue
            target_schema, target_table = target
            planned.append(
                (foreign_key_name(descriptor.table_name, col.name), col, target_schema, target_table)
            )

        if not planned:
            return

        existing = await self.introspector.get_foreign_key_names(
            namespace_oid, [name for name, _, _, _ in planned]
        )

        for name, col, target_schema, target_table in planned:
            if name in existing and col.name in changed:
                drop = await self._apply(generator.drop_constraint(name), result)
                if drop.has_error:
                    continue
                existing.discard(name)

            if name not in existing:
                await self._apply(
                    generator.add_foreign_key(col.name, target_schema, target_table, col.ref),
                    result,
                )

    async def _resolve_target(
        self,
        descriptor: TableDescriptor,
        col: ColumnDefinition,
        context: ReconciliationContext,
        result: ReconciliationResult,
    ) -> Optional[Tuple[str, str]]:
        """Find the (schema, table) a reference points at, reconciling it first."""
        ref = col.ref

        if isinstance(ref.target, TableDescriptor):
            target = ref.target
        else:
            entry = self.registry.resolve(ref.target)
            target = entry.descriptor if entry else None

        if target is None:
            if context.options.strict_references:
                error = ReferenceResolutionError(descriptor.table_name, col.name, ref.target)
                logger.error(str(error))
                result.errors.append(str(error))
                return None

            guess = ref.target.lower()
            logger.warning(
                f"Reference target '{ref.target}' of {descriptor.table_name}.{col.name} "
                f"is not registered; assuming table '{guess}'"
            )
            return context.schema_for(descriptor), guess

        if target.model_name != descriptor.model_name:
            await context.resolver.require(descriptor, target)

        return context.schema_for(target), target.table_name

    @staticmethod
    def get_reconciliation_summary(results: Dict[str, ReconciliationResult]) -> Dict[str, Any]:
        """Get summary of reconciliation results."""
        total = len(results)
        successful = sum(1 for r in results.values() if r.status == ReconciliationStatus.SUCCESS)
        failed = sum(1 for r in results.values() if r.status == ReconciliationStatus.FAILED)
        partial = sum(1 for r in results.values() if r.status == ReconciliationStatus.PARTIAL)

        return {
            "total_tables": total,
            "successful": successful,
            "failed": failed,
            "partial": partial,
            "created": sum(1 for r in results.values() if r.created),
            "total_changes": sum(len(r.changes_applied) for r in results.values()),
            "successful_changes": sum(r.successful_changes for r in results.values()),
            "failed_tables": [
                key for key, result in results.items()
                if result.status == ReconciliationStatus.FAILED
            ],
        }
