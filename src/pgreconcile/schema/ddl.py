"""
DDL statement generation for pgreconcile.

Renders quoted, syntactically complete DDL for one table. Identifiers are
always double-quoted. Literal values are embedded with dollar quoting under
a random tag generated per value, so a default containing quote characters
(or a previously used tag) can never terminate the literal early.
"""

import json
import re
import secrets
import string
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from .descriptor import UNSET, ColumnDefinition, ForeignKeyRef, TableDescriptor
from .operations import ChangeType, SchemaChange


# PostgreSQL truncates identifiers to NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_BYTES = 63

TAG_LENGTH = 12
_TAG_FIRST = string.ascii_lowercase
_TAG_REST = string.ascii_lowercase + string.digits


def quote_ident(name: str) -> str:
    """Quote an identifier, doubling any embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def qualified_name(schema: str, name: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def truncate_identifier(name: str) -> str:
    """Truncate a generated name the way the server stores it."""
    encoded = name.encode("utf-8")
    if len(encoded) <= MAX_IDENTIFIER_BYTES:
        return name
    return encoded[:MAX_IDENTIFIER_BYTES].decode("utf-8", "ignore")


def index_name(table: str, columns: Sequence[str]) -> str:
    """Deterministic index name: <table>_<col1>_..._<colN>_idx."""
    return truncate_identifier(f"{table}_{'_'.join(columns)}_idx")


def foreign_key_name(table: str, column: str) -> str:
    """Deterministic foreign-key constraint name: <table>_<column>_fkey."""
    return truncate_identifier(f"{table}_{column}_fkey")


def random_tag(length: int = TAG_LENGTH) -> str:
    """Random dollar-quote tag; starts with a letter so it never reads as $1."""
    return secrets.choice(_TAG_FIRST) + "".join(
        secrets.choice(_TAG_REST) for _ in range(length - 1)
    )


def dollar_quote(value: str) -> str:
    """Embed a string literal under a fresh dollar-quote tag."""
    tag = random_tag()
    while f"${tag}$" in value or value.endswith(f"${tag}"):
        tag = random_tag()
    return f"${tag}${value}${tag}$"


def literal_text(value: Any, as_json: bool = False) -> str:
    """Text form of a default value as the server will store it."""
    if as_json and not isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "{" + ",".join(literal_text(v) for v in value) + "}"
    return str(value)


def render_default(value: Any, as_json: bool = False) -> str:
    if value is None:
        return "null"
    return dollar_quote(literal_text(value, as_json))


_QUOTED_DEFAULT_RE = re.compile(r"^'((?:[^']|'')*)'(?:::.+)?$", re.DOTALL)
_NUMERIC_DEFAULT_RE = re.compile(r"^\(?(-?\d+(?:\.\d+)?)\)?(?:::.+)?$")


def live_default_text(expression: Optional[str]) -> Optional[str]:
    """
    Reduce a catalog column_default expression to the literal it stores.

    Handles quoted literals with a trailing cast, bare numbers and booleans.
    NULL gives None; any other expression is returned unchanged.
    """
    if expression is None:
        return None

    text = expression.strip()

    match = _QUOTED_DEFAULT_RE.match(text)
    if match:
        return match.group(1).replace("''", "'")

    match = _NUMERIC_DEFAULT_RE.match(text)
    if match:
        return match.group(1)

    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered
    if lowered == "null" or lowered.startswith("null::"):
        return None

    return text


def default_matches(expression: Optional[str], declared: Any, as_json: bool = False) -> bool:
    """
    Check whether a live default already equals a declared one.

    JSON defaults compare as parsed documents and numeric defaults as
    decimals, since the server normalizes both (``1.5`` is stored as ``1.50``
    in a ``numeric(10,2)`` column).
    """
    live = live_default_text(expression)
    if declared is None:
        return live is None
    if live is None:
        return False

    if as_json:
        try:
            wanted = json.loads(declared) if isinstance(declared, str) else declared
            return json.loads(live) == wanted
        except ValueError:
            pass

    if isinstance(declared, (int, float, Decimal)) and not isinstance(declared, bool):
        try:
            return Decimal(live) == Decimal(str(declared))
        except InvalidOperation:
            return False

    return live == literal_text(declared, as_json)


class DDLGenerator:
    """Builds ``SchemaChange`` objects for statements against one table."""

    def __init__(self, schema: str, table: str):
        self.schema = schema
        self.table = table
        self.table_ref = qualified_name(schema, table)

    def _change(self, change_type: ChangeType, description: str, sql: str, **kwargs) -> SchemaChange:
        return SchemaChange(
            change_type=change_type,
            schema=self.schema,
            table=self.table,
            description=description,
            sql=sql,
            **kwargs,
        )

    def column_clause(self, col: ColumnDefinition, primary: bool = False) -> str:
        """Column definition used by CREATE TABLE and ADD COLUMN."""
        line = f"{quote_ident(col.name)} {col.type.raw}"

        if primary:
            return line + " primary key"

        if col.not_null:
            line += " not null"

        default = col.effective_default()
        if default is not UNSET:
            line += f" default {render_default(default, col.type.is_json)}"

        return line

    def create_table(self, descriptor: TableDescriptor) -> SchemaChange:
        single_pk = descriptor.primary_key[0] if len(descriptor.primary_key) == 1 else None

        clauses = [
            self.column_clause(col, primary=(col.name == single_pk))
            for col in descriptor.columns.values()
            if not col.drop and not col.ignore
        ]

        if descriptor.is_composite_pk:
            pk_cols = ", ".join(quote_ident(c) for c in descriptor.primary_key)
            clauses.append(f"primary key ({pk_cols})")

        sql = f"CREATE TABLE IF NOT EXISTS {self.table_ref} ({', '.join(clauses)})"
        return self._change(ChangeType.CREATE_TABLE, f"Create table {self.table}", sql)

    def add_column(self, col: ColumnDefinition) -> SchemaChange:
        sql = f"ALTER TABLE {self.table_ref} ADD COLUMN {self.column_clause(col)}"
        return self._change(
            ChangeType.ADD_COLUMN, f"Add column {col.name}", sql, target_object=col.name
        )

    def drop_column(self, name: str, if_exists: bool = False) -> SchemaChange:
        if_exists_sql = "IF EXISTS " if if_exists else ""
        sql = f"ALTER TABLE {self.table_ref} DROP COLUMN {if_exists_sql}{quote_ident(name)}"
        return self._change(
            ChangeType.DROP_COLUMN,
            f"Drop column {name}",
            sql,
            target_object=name,
            is_destructive=True,
            best_effort=if_exists,
        )

    def rename_column(self, old_name: str, new_name: str) -> SchemaChange:
        sql = (
            f"ALTER TABLE {self.table_ref} "
            f"RENAME COLUMN {quote_ident(old_name)} TO {quote_ident(new_name)}"
        )
        return self._change(
            ChangeType.RENAME_COLUMN,
            f"Rename column {old_name} to {new_name}",
            sql,
            target_object=new_name,
        )

    def alter_column_type(self, col: ColumnDefinition) -> SchemaChange:
        sql = (
            f"ALTER TABLE {self.table_ref} "
            f"ALTER COLUMN {quote_ident(col.name)} TYPE {col.type.raw}"
        )
        return self._change(
            ChangeType.ALTER_COLUMN_TYPE,
            f"Change type of {col.name} to {col.type.raw}",
            sql,
            target_object=col.name,
        )

    def set_default(self, name: str, value: Any, as_json: bool = False) -> SchemaChange:
        sql = (
            f"ALTER TABLE {self.table_ref} "
            f"ALTER COLUMN {quote_ident(name)} SET DEFAULT {render_default(value, as_json)}"
        )
        return self._change(
            ChangeType.SET_DEFAULT, f"Set default of {name}", sql, target_object=name
        )

    def set_not_null(self, name: str) -> SchemaChange:
        sql = f"ALTER TABLE {self.table_ref} ALTER COLUMN {quote_ident(name)} SET NOT NULL"
        return self._change(
            ChangeType.SET_NOT_NULL, f"Set {name} not null", sql, target_object=name
        )

    def create_index(self, columns: Sequence[str], unique: bool = False) -> SchemaChange:
        name = index_name(self.table, columns)
        unique_sql = "UNIQUE " if unique else ""
        column_list = ", ".join(quote_ident(c) for c in columns)
        sql = f"CREATE {unique_sql}INDEX {quote_ident(name)} ON {self.table_ref} ({column_list})"
        return self._change(
            ChangeType.CREATE_INDEX,
            f"Create {unique_sql.lower()}index {name}",
            sql,
            target_object=name,
        )

    def drop_index(self, name: str) -> SchemaChange:
        sql = f"DROP INDEX IF EXISTS {qualified_name(self.schema, name)}"
        return self._change(
            ChangeType.DROP_INDEX,
            f"Drop index {name}",
            sql,
            target_object=name,
            is_destructive=True,
        )

    def add_foreign_key(
        self, column: str, target_schema: str, target_table: str, ref: ForeignKeyRef
    ) -> SchemaChange:
        name = foreign_key_name(self.table, column)
        sql = (
            f"ALTER TABLE {self.table_ref} ADD CONSTRAINT {quote_ident(name)} "
            f"FOREIGN KEY ({quote_ident(column)}) "
            f"REFERENCES {qualified_name(target_schema, target_table)} ({quote_ident(ref.column)}) "
            f"ON UPDATE {ref.on_update} ON DELETE {ref.on_delete}"
        )
        return self._change(
            ChangeType.ADD_CONSTRAINT,
            f"Add foreign key {name}",
            sql,
            target_object=name,
        )

    def drop_constraint(self, name: str) -> SchemaChange:
        sql = f"ALTER TABLE {self.table_ref} DROP CONSTRAINT {quote_ident(name)}"
        return self._change(
            ChangeType.DROP_CONSTRAINT,
            f"Drop constraint {name}",
            sql,
            target_object=name,
            is_destructive=True,
        )
