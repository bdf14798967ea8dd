"""
Declared table schema for pgreconcile.

A raw declaration (usually a dict loaded from YAML) is normalized into a
``TableDescriptor``: column names are validated, types parsed, foreign-key
references and validators built, and the primary key strategy derived.
Any violation raises ``DescriptorError`` and rejects the whole declaration
before a single statement reaches the database.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .types import ParsedType, parse_type
from ..exceptions import DescriptorError, ValidationError


COLUMN_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")

# SQL reserved words plus PostgreSQL system column names
FORBIDDEN_COLUMNS = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
    "asymmetric", "both", "case", "cast", "check", "collate", "column",
    "constraint", "create", "current_catalog", "current_date", "current_role",
    "current_time", "current_timestamp", "current_user", "default",
    "deferrable", "desc", "distinct", "do", "else", "end", "except", "false",
    "fetch", "for", "foreign", "from", "grant", "group", "having", "in",
    "initially", "intersect", "into", "lateral", "leading", "limit",
    "localtime", "localtimestamp", "not", "null", "offset", "on", "only",
    "or", "order", "placing", "primary", "references", "returning", "select",
    "session_user", "some", "symmetric", "table", "then", "to", "trailing",
    "true", "union", "unique", "user", "using", "variadic", "when", "where",
    "window", "with",
    "oid", "tableoid", "xmin", "xmax", "cmin", "cmax", "ctid",
})

REFERENTIAL_ACTIONS = frozenset({
    "CASCADE", "RESTRICT", "NO ACTION", "SET NULL", "SET DEFAULT",
})

DEFAULT_PK_LENGTH = 16


class _Unset:
    """Marker for a column that declares no default."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


class TimestampRole(str, Enum):
    """When a column is stamped with the current time."""

    NONE = "none"
    INSERT = "insert"
    UPDATE = "update"  # on insert and on update


class PrimaryKeyStrategy(str, Enum):
    """How primary key values are produced."""

    RANDOM_STRING = "random_string"
    NUMERIC_ID = "numeric_id"
    DATABASE_SERIAL = "database_serial"
    NONE = "none"


@dataclass
class ForeignKeyRef:
    """Reference from a column to a column of another declared table."""

    target: Union[str, "TableDescriptor"]
    column: str
    on_update: str = "CASCADE"
    on_delete: str = "CASCADE"

    @property
    def target_name(self) -> str:
        """Model name of the target, whether given by name or inline."""
        if isinstance(self.target, TableDescriptor):
            return self.target.model_name
        return self.target


@dataclass
class ColumnDefinition:
    """A single declared column."""

    name: str
    type: ParsedType
    not_null: bool = True
    default: Any = UNSET
    timestamp: TimestampRole = TimestampRole.NONE
    validator: Optional[Callable[[Any], bool]] = None
    ref: Optional[ForeignKeyRef] = None
    drop: bool = False
    ignore: bool = False
    type_lock: bool = False
    force: bool = False
    old_name: Optional[str] = None
    auto_increment: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not UNSET

    def effective_default(self) -> Any:
        """Declared default, else the type's inferred default, else UNSET."""
        if self.has_default:
            return self.default
        inferred = self.type.inferred_default()
        return UNSET if inferred is None else inferred


@dataclass
class TableDescriptor:
    """Normalized declaration of a table's intended structure."""

    table_name: str
    model_name: str
    columns: Dict[str, ColumnDefinition]
    primary_key: Tuple[str, ...] = ("id",)
    indexes: List[Tuple[str, ...]] = field(default_factory=list)
    uniques: List[Tuple[str, ...]] = field(default_factory=list)
    remove_indexes: List[Tuple[str, ...]] = field(default_factory=list)
    schema: Optional[str] = None
    pk_strategy: PrimaryKeyStrategy = PrimaryKeyStrategy.NONE
    pk_length: int = DEFAULT_PK_LENGTH
    insert_timestamps: List[Tuple[str, str]] = field(default_factory=list)
    update_timestamps: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def is_composite_pk(self) -> bool:
        return len(self.primary_key) > 1

    @property
    def defaults(self) -> Dict[str, Any]:
        """Explicitly declared column defaults."""
        return {
            name: col.default for name, col in self.columns.items() if col.has_default
        }

    @property
    def validators(self) -> Dict[str, Callable[[Any], bool]]:
        return {
            name: col.validator for name, col in self.columns.items() if col.validator
        }

    @property
    def references(self) -> List[ColumnDefinition]:
        """Columns carrying a foreign-key reference."""
        return [
            col for col in self.columns.values()
            if col.ref is not None and not col.drop and not col.ignore
        ]

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def validate_field(self, key: str, value: Any) -> bool:
        """
        Check a value against the column's validation rule.

        Raises ValidationError when the value is missing or rejected.
        """
        check = self.validators.get(key)
        if check is None:
            return True

        if value is None:
            raise ValidationError(f"Field '{key}' is required", {"table": self.table_name})

        if not check(value):
            raise ValidationError(
                f"Validation failed for field '{key}' with value: {value!r}",
                {"table": self.table_name},
            )

        return True

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TableDescriptor":
        """Build a descriptor from a raw declaration."""
        table_name = raw.get("table_name")
        model_name = raw.get("model_name")

        if not table_name and not model_name:
            raise DescriptorError("Declaration needs a table_name or a model_name")

        table_name = table_name or model_name.lower()
        model_name = model_name or table_name

        raw_columns = raw.get("columns", raw.get("column")) or {}
        if not isinstance(raw_columns, Mapping):
            raise DescriptorError("columns must be a mapping", table_name)

        columns: Dict[str, ColumnDefinition] = {}
        for name, spec in raw_columns.items():
            columns[name] = _build_column(table_name, name, spec or {})

        if "primary_key" in raw:
            primary_key = _column_tuple(raw["primary_key"])
        elif "id" in columns:
            primary_key = ("id",)
        else:
            # no declared id column: the table is created without a primary key
            primary_key = ()

        for pk in primary_key:
            if pk not in columns:
                raise DescriptorError(
                    f"Primary key column '{pk}' is not declared", table_name, pk
                )

        descriptor = cls(
            table_name=table_name,
            model_name=model_name,
            columns=columns,
            primary_key=primary_key,
            indexes=[_column_tuple(spec) for spec in raw.get("index") or []],
            uniques=[_column_tuple(spec) for spec in raw.get("unique") or []],
            remove_indexes=[_column_tuple(spec) for spec in raw.get("remove_index") or []],
            schema=raw.get("schema"),
        )

        descriptor.pk_strategy, descriptor.pk_length = _pk_strategy(
            descriptor, raw.get("auto_id"), raw.get("pk_len")
        )
        descriptor.insert_timestamps, descriptor.update_timestamps = _timestamps(columns)

        return descriptor


def _column_tuple(spec: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """Normalize "a,b" or ["a", "b"] into ("a", "b")."""
    if not spec:
        return ()
    if isinstance(spec, str):
        parts = spec.split(",")
    else:
        parts = list(spec)
    return tuple(p.strip() for p in parts if p and p.strip())


def _build_column(table_name: str, name: str, spec: Mapping[str, Any]) -> ColumnDefinition:
    if name.strip().lower() in FORBIDDEN_COLUMNS:
        raise DescriptorError(
            f"Column name '{name}' in table '{table_name}' is forbidden", table_name, name
        )

    if not COLUMN_NAME_RE.match(name):
        raise DescriptorError(
            f"Column name '{name}' is invalid. Only lowercase letters, digits and "
            f"underscore are allowed, and it must start with a letter",
            table_name,
            name,
        )

    type_str = spec.get("type")
    if not isinstance(type_str, str) or not type_str.strip():
        raise DescriptorError(f"Column '{name}' has no type", table_name, name)

    old_name = spec.get("old_name")
    if isinstance(old_name, str):
        old_name = old_name.strip() or None

    return ColumnDefinition(
        name=name,
        type=parse_type(type_str),
        not_null=spec.get("not_null", True) is not False,
        default=spec["default"] if "default" in spec else UNSET,
        timestamp=_timestamp_role(table_name, name, spec.get("timestamp")),
        validator=_build_validator(table_name, name, spec.get("validate")),
        ref=_build_ref(table_name, name, spec),
        drop=bool(spec.get("drop", False)),
        ignore=bool(spec.get("ignore", False)),
        type_lock=bool(spec.get("type_lock", False)),
        force=bool(spec.get("force", False)),
        old_name=old_name,
        auto_increment=bool(spec.get("auto_increment", False)),
    )


def _timestamp_role(table_name: str, name: str, value: Any) -> TimestampRole:
    if value is None or value is False:
        return TimestampRole.NONE
    if value is True or value == "insert":
        return TimestampRole.INSERT
    if value == "update":
        return TimestampRole.UPDATE
    raise DescriptorError(f"Unknown timestamp role {value!r}", table_name, name)


def _build_validator(table_name: str, name: str, rule: Any) -> Optional[Callable[[Any], bool]]:
    if rule is None:
        return None

    if isinstance(rule, re.Pattern):
        return lambda v: rule.search(str(v)) is not None

    if isinstance(rule, str):
        try:
            pattern = re.compile(rule)
        except re.error as e:
            raise DescriptorError(f"Invalid validation pattern: {e}", table_name, name) from e
        return lambda v: pattern.search(str(v)) is not None

    if isinstance(rule, (list, tuple, set, frozenset)):
        allowed = list(rule)
        return lambda v: v in allowed

    if callable(rule):
        return rule

    raise DescriptorError(
        f"Unsupported validation rule of type {type(rule).__name__}", table_name, name
    )


def _referential_action(table_name: str, name: str, value: Optional[str]) -> str:
    if value is None:
        return "CASCADE"
    action = " ".join(str(value).upper().split())
    if action not in REFERENTIAL_ACTIONS:
        raise DescriptorError(f"Invalid referential action '{value}'", table_name, name)
    return action


def _build_ref(table_name: str, name: str, spec: Mapping[str, Any]) -> Optional[ForeignKeyRef]:
    ref = spec.get("ref")
    if ref is None:
        return None

    on_update = spec.get("on_update")
    on_delete = spec.get("on_delete")

    if isinstance(ref, TableDescriptor):
        target, column = ref, name
    elif isinstance(ref, Mapping):
        target = ref.get("target") or ref.get("model")
        column = ref.get("column", name)
        on_update = ref.get("on_update", on_update)
        on_delete = ref.get("on_delete", on_delete)
        if isinstance(target, Mapping):
            target = TableDescriptor.from_dict(target)
    elif isinstance(ref, str) and ":" in ref:
        target, column = ref.rsplit(":", 1)
    elif isinstance(ref, str):
        target, column = ref, name
    else:
        raise DescriptorError(f"Unsupported reference {ref!r}", table_name, name)

    if not target or not column:
        raise DescriptorError(f"Incomplete reference {ref!r}", table_name, name)

    return ForeignKeyRef(
        target=target,
        column=column,
        on_update=_referential_action(table_name, name, on_update),
        on_delete=_referential_action(table_name, name, on_delete),
    )


def _pk_strategy(
    descriptor: TableDescriptor, auto_id: Optional[bool], pk_len: Optional[int]
) -> Tuple[PrimaryKeyStrategy, int]:
    length = DEFAULT_PK_LENGTH

    if auto_id is False or len(descriptor.primary_key) != 1:
        return PrimaryKeyStrategy.NONE, length

    col = descriptor.columns[descriptor.primary_key[0]]
    type_str = col.type.raw.lower()

    if col.auto_increment or "serial" in type_str:
        return PrimaryKeyStrategy.DATABASE_SERIAL, length

    if col.type.name == "bigint":
        return PrimaryKeyStrategy.NUMERIC_ID, length

    if "char" in type_str or "text" in type_str:
        if col.type.length:
            length = col.type.length
        if isinstance(pk_len, int) and length < pk_len:
            length = pk_len
        return PrimaryKeyStrategy.RANDOM_STRING, length

    if auto_id is True:
        return PrimaryKeyStrategy.RANDOM_STRING, length

    return PrimaryKeyStrategy.NONE, length


def _timestamps(
    columns: Mapping[str, ColumnDefinition]
) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    insert_ts = []
    update_ts = []

    for name, col in columns.items():
        if col.timestamp == TimestampRole.NONE:
            continue

        t = col.type.raw.lower()
        kind = "bigint"
        if "int" in t and "big" not in t:
            kind = "int"
        elif "timestamp" in t or "date" in t:
            kind = "timestamp"

        insert_ts.append((name, kind))
        if col.timestamp == TimestampRole.UPDATE:
            update_ts.append((name, kind))

    return insert_ts, update_ts
