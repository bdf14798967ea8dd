"""
Database catalog introspection for pgreconcile.

Reads the live structure of a table (columns, indexes, foreign-key
constraints) from information_schema and pg_catalog. Nothing here is cached:
every reconciliation pass reads the catalog fresh.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .connection import ConnectionPool
from ..exceptions import CatalogError


logger = logging.getLogger(__name__)


@dataclass
class ColumnInfo:
    """Information about a live database column."""

    name: str
    data_type: str
    is_nullable: bool
    default_value: Optional[str] = None
    max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    udt_name: Optional[str] = None
    is_generated: bool = False

    def __str__(self) -> str:
        result = f"{self.name} {self.data_type}"
        if self.max_length:
            result += f"({self.max_length})"
        elif self.numeric_precision and self.data_type == "numeric":
            result += f"({self.numeric_precision},{self.numeric_scale or 0})"
        if not self.is_nullable:
            result += " NOT NULL"
        if self.default_value:
            result += f" DEFAULT {self.default_value}"
        return result


@dataclass
class TableInfo:
    """Information about a live database table."""

    schema: str
    name: str
    columns: Dict[str, ColumnInfo]
    indexes: List[str] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        """Get the fully qualified table name."""
        return f"{self.schema}.{self.name}"

    def has_column(self, column_name: str) -> bool:
        """Check if table has a specific column."""
        return column_name in self.columns

    def get_column(self, column_name: str) -> Optional[ColumnInfo]:
        """Get column information by name."""
        return self.columns.get(column_name)

    def has_index(self, index_name: str) -> bool:
        return index_name in self.indexes


class SchemaIntrospector:
    """Database catalog introspection utilities."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    async def get_table_info(self, schema: str, table: str) -> Optional[TableInfo]:
        """Get the live structure of a table, or None if it does not exist."""
        if not await self.table_exists(schema, table):
            return None

        columns = await self.get_columns(schema, table)
        indexes = await self.get_index_names(schema, table)

        return TableInfo(
            schema=schema,
            name=table,
            columns=columns,
            indexes=indexes,
        )

    async def get_namespace_oid(self, schema: str) -> Optional[int]:
        """Resolve a schema name to its pg_namespace OID."""
        query = "SELECT oid FROM pg_namespace WHERE nspname = $1"

        try:
            return await self.pool.fetchval(query, schema)
        except Exception as e:
            logger.error(f"Error resolving namespace {schema}: {e}")
            raise CatalogError(f"Failed to resolve namespace '{schema}'", cause=e) from e

    async def table_exists(self, schema: str, table: str) -> bool:
        """Check if a table exists in the active database."""
        query = """
            SELECT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_catalog = $1 AND table_schema = $2 AND table_name = $3
            )
        """

        try:
            result = await self.pool.fetchval(query, self.pool.database, schema, table)
            return bool(result)
        except Exception as e:
            logger.error(f"Error checking table existence for {schema}.{table}: {e}")
            raise CatalogError(f"Failed to check table existence: {schema}.{table}", cause=e) from e

    async def get_columns(self, schema: str, table: str) -> Dict[str, ColumnInfo]:
        """Get all columns for a table, keyed by column name."""
        query = """
            SELECT
                c.column_name,
                c.data_type,
                c.udt_name,
                c.is_nullable,
                c.column_default,
                c.character_maximum_length,
                c.numeric_precision,
                c.numeric_scale,
                c.is_generated
            FROM information_schema.columns c
            WHERE c.table_catalog = $1 AND c.table_schema = $2 AND c.table_name = $3
            ORDER BY c.ordinal_position
        """

        try:
            rows = await self.pool.fetch(query, self.pool.database, schema, table)
        except Exception as e:
            logger.error(f"Error getting columns for {schema}.{table}: {e}")
            raise CatalogError(f"Failed to get columns: {schema}.{table}", cause=e) from e

        columns = {}
        for row in rows:
            col_info = ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                udt_name=row["udt_name"],
                is_nullable=row["is_nullable"] == "YES",
                default_value=row["column_default"],
                max_length=row["character_maximum_length"],
                numeric_precision=row["numeric_precision"],
                numeric_scale=row["numeric_scale"],
                is_generated=row["is_generated"] == "ALWAYS",
            )
            columns[col_info.name] = col_info

        return columns

    async def get_index_names(self, schema: str, table: str) -> List[str]:
        """
        Get names of the table's indexes, excluding the primary key index
        and indexes owned by a constraint.
        """
        query = """
            SELECT ic.relname AS index_name
            FROM pg_index ix
            JOIN pg_class ic ON ic.oid = ix.indexrelid
            JOIN pg_class tc ON tc.oid = ix.indrelid
            JOIN pg_namespace n ON n.oid = tc.relnamespace
            WHERE n.nspname = $1
            AND tc.relname = $2
            AND NOT ix.indisprimary
            AND NOT EXISTS (
                SELECT 1 FROM pg_constraint con WHERE con.conindid = ix.indexrelid
            )
            ORDER BY ic.relname
        """

        try:
            rows = await self.pool.fetch(query, schema, table)
            return [row["index_name"] for row in rows]
        except Exception as e:
            logger.error(f"Error getting indexes for {schema}.{table}: {e}")
            raise CatalogError(f"Failed to get indexes: {schema}.{table}", cause=e) from e

    async def get_foreign_key_names(
        self, namespace_oid: Optional[int], names: Iterable[str]
    ) -> Set[str]:
        """Return which of the given foreign-key constraint names exist in a namespace."""
        names = list(names)
        if namespace_oid is None or not names:
            return set()

        query = """
            SELECT conname
            FROM pg_constraint
            WHERE connamespace = $1
            AND contype = 'f'
            AND conname = ANY($2::text[])
        """

        try:
            rows = await self.pool.fetch(query, namespace_oid, names)
            return {row["conname"] for row in rows}
        except Exception as e:
            logger.error(f"Error getting foreign keys in namespace {namespace_oid}: {e}")
            raise CatalogError("Failed to get foreign key constraints", cause=e) from e
