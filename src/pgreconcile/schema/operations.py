"""
Schema statement execution for pgreconcile.

Every DDL statement the reconciler decides on is wrapped in a
``SchemaChange`` and run through ``SchemaOperations``, which executes
statements strictly one at a time, echoes them in debug mode, records
them without executing in dry-run mode, and captures database errors on
the change instead of aborting the whole reconciliation.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import asyncpg

from ..database.connection import ConnectionPool


logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Types of schema changes."""

    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    DROP_COLUMN = "drop_column"
    RENAME_COLUMN = "rename_column"
    ALTER_COLUMN_TYPE = "alter_column_type"
    SET_DEFAULT = "set_default"
    SET_NOT_NULL = "set_not_null"
    CREATE_INDEX = "create_index"
    DROP_INDEX = "drop_index"
    ADD_CONSTRAINT = "add_constraint"
    DROP_CONSTRAINT = "drop_constraint"


class OperationMode(str, Enum):
    """Schema operation modes."""

    APPLY = "apply"
    DRY_RUN = "dry_run"        # Generate SQL but don't execute


@dataclass
class SchemaChange:
    """Represents a schema change operation."""

    change_type: ChangeType
    schema: str
    table: str
    description: str
    sql: str
    target_object: Optional[str] = None  # Column name, index name, etc.

    # Safety metadata
    is_destructive: bool = False
    best_effort: bool = False  # failure is the desired end state anyway

    # Execution results
    executed: bool = False
    execution_time_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def full_table_name(self) -> str:
        """Get fully qualified table name."""
        return f"{self.schema}.{self.table}"

    @property
    def has_error(self) -> bool:
        """Check if this change has an error."""
        return self.error is not None

    @property
    def change_id(self) -> str:
        """Get identifier for this change."""
        target = self.target_object or "table"
        return f"{self.change_type.value}_{self.schema}_{self.table}_{target}"


class SchemaOperations:
    """Sequential DDL executor."""

    def __init__(
        self,
        pool: ConnectionPool,
        operation_mode: OperationMode = OperationMode.APPLY,
        debug: bool = False,
    ):
        self.pool = pool
        self.operation_mode = operation_mode
        self.debug = debug

    async def execute(self, change: SchemaChange) -> SchemaChange:
        """
        Execute a single schema change.

        Errors raised by the server for the statement are recorded on the
        change and logged; connection-level failures propagate.
        """
        if self.debug:
            logger.info(f"SQL: {change.sql}")
        else:
            logger.debug(f"SQL: {change.sql}")

        if self.operation_mode == OperationMode.DRY_RUN:
            change.executed = False
            logger.info(f"DRY RUN: Would execute {change.change_id}")
            return change

        start_time = time.time()

        try:
            await self.pool.execute(change.sql)
            change.executed = True
            logger.info(f"Executed {change.description} on {change.full_table_name}")

        except asyncpg.PostgresError as e:
            change.executed = False
            change.error = str(e)
            if change.best_effort:
                logger.debug(f"Ignored failure of {change.change_id}: {e}")
            else:
                logger.error(f"Failed to execute {change.change_id}: {e}")

        finally:
            change.execution_time_ms = (time.time() - start_time) * 1000

        return change

    @property
    def is_dry_run(self) -> bool:
        return self.operation_mode == OperationMode.DRY_RUN