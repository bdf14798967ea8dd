"""
Column type parsing and comparison for pgreconcile.

Declared types are free-form strings such as ``varchar(100)``,
``numeric(10,2)`` or ``text[]``. They are parsed once into a ``ParsedType``
that carries the recognized base type and its parameters as structured
fields, so comparisons against live catalog metadata never re-parse strings.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..database.introspection import ColumnInfo


class BaseType(str, Enum):
    """Recognized base types, valued by their information_schema data_type."""

    VARCHAR = "character varying"
    CHAR = "character"
    TEXT = "text"
    NUMERIC = "numeric"
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    REAL = "real"
    DOUBLE = "double precision"
    BOOLEAN = "boolean"
    BYTEA = "bytea"
    JSON = "json"
    JSONB = "jsonb"
    UUID = "uuid"
    DATE = "date"
    TIME = "time without time zone"
    TIMETZ = "time with time zone"
    TIMESTAMP = "timestamp without time zone"
    TIMESTAMPTZ = "timestamp with time zone"
    UNKNOWN = "unknown"


class TypeFamily(str, Enum):
    """Default-inference families."""

    NUMERIC = "numeric"
    STRING = "string"
    OTHER = "other"


# Declared spelling -> base type
TYPE_ALIASES = {
    "varchar": BaseType.VARCHAR,
    "character varying": BaseType.VARCHAR,
    "char": BaseType.CHAR,
    "character": BaseType.CHAR,
    "text": BaseType.TEXT,
    "decimal": BaseType.NUMERIC,
    "numeric": BaseType.NUMERIC,
    "smallint": BaseType.SMALLINT,
    "int2": BaseType.SMALLINT,
    "integer": BaseType.INTEGER,
    "int": BaseType.INTEGER,
    "int4": BaseType.INTEGER,
    "bigint": BaseType.BIGINT,
    "int8": BaseType.BIGINT,
    "real": BaseType.REAL,
    "float4": BaseType.REAL,
    "double precision": BaseType.DOUBLE,
    "float8": BaseType.DOUBLE,
    "boolean": BaseType.BOOLEAN,
    "bool": BaseType.BOOLEAN,
    "bytea": BaseType.BYTEA,
    "json": BaseType.JSON,
    "jsonb": BaseType.JSONB,
    "uuid": BaseType.UUID,
    "date": BaseType.DATE,
    "time": BaseType.TIME,
    "time without time zone": BaseType.TIME,
    "timetz": BaseType.TIMETZ,
    "time with time zone": BaseType.TIMETZ,
    "timestamp": BaseType.TIMESTAMP,
    "timestamp without time zone": BaseType.TIMESTAMP,
    "timestamptz": BaseType.TIMESTAMPTZ,
    "timestamp with time zone": BaseType.TIMESTAMPTZ,
}

# pg_type names, used to compare array element types via udt_name
UDT_NAMES = {
    BaseType.VARCHAR: "varchar",
    BaseType.CHAR: "bpchar",
    BaseType.TEXT: "text",
    BaseType.NUMERIC: "numeric",
    BaseType.SMALLINT: "int2",
    BaseType.INTEGER: "int4",
    BaseType.BIGINT: "int8",
    BaseType.REAL: "float4",
    BaseType.DOUBLE: "float8",
    BaseType.BOOLEAN: "bool",
    BaseType.BYTEA: "bytea",
    BaseType.JSON: "json",
    BaseType.JSONB: "jsonb",
    BaseType.UUID: "uuid",
    BaseType.DATE: "date",
    BaseType.TIME: "time",
    BaseType.TIMETZ: "timetz",
    BaseType.TIMESTAMP: "timestamp",
    BaseType.TIMESTAMPTZ: "timestamptz",
}

NUMERIC_TYPES = frozenset({
    BaseType.SMALLINT, BaseType.INTEGER, BaseType.BIGINT, BaseType.NUMERIC,
    BaseType.REAL, BaseType.DOUBLE,
})
STRING_TYPES = frozenset({BaseType.CHAR, BaseType.VARCHAR, BaseType.TEXT})
BRACKETED_TYPES = frozenset({BaseType.VARCHAR, BaseType.CHAR, BaseType.NUMERIC})

_BRACKET_RE = re.compile(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)")
_PARAMS_RE = re.compile(r"\([^)]*\)|\[[^\]]*\]")


@dataclass(frozen=True)
class ParsedType:
    """A declared column type, parsed into structured fields."""

    raw: str
    name: str
    base: BaseType
    is_array: bool = False
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None

    @property
    def is_known(self) -> bool:
        return self.base != BaseType.UNKNOWN

    @property
    def family(self) -> TypeFamily:
        if self.base in NUMERIC_TYPES:
            return TypeFamily.NUMERIC
        if self.base in STRING_TYPES:
            return TypeFamily.STRING
        return TypeFamily.OTHER

    @property
    def is_string(self) -> bool:
        return self.family == TypeFamily.STRING and not self.is_array

    @property
    def is_json(self) -> bool:
        return self.base in (BaseType.JSON, BaseType.JSONB) and not self.is_array

    def inferred_default(self) -> Optional[Any]:
        """Default applied when a column declares none, or None for no default."""
        if self.is_array:
            return "{}"
        if self.family == TypeFamily.NUMERIC:
            return 0
        if self.family == TypeFamily.STRING:
            return ""
        return None

    def matches(self, live: "ColumnInfo") -> bool:
        """Check whether a live column already has this type."""
        if self.is_array:
            udt = UDT_NAMES.get(self.base)
            return live.data_type == "ARRAY" and live.udt_name == f"_{udt}"

        if self.base not in BRACKETED_TYPES:
            return live.data_type == self.base.value

        if self.base in (BaseType.VARCHAR, BaseType.CHAR):
            return live.data_type == self.base.value and live.max_length == self.length

        # numeric
        if live.data_type != BaseType.NUMERIC.value:
            return False
        if not live.numeric_precision:
            return self.precision is None
        return (live.numeric_precision, live.numeric_scale or 0) == (
            self.precision, self.scale or 0
        )

    def __str__(self) -> str:
        return self.raw


def parse_type(type_str: str) -> ParsedType:
    """
    Parse a declared type string.

    Unrecognized names produce a pass-through ``ParsedType`` whose base is
    ``BaseType.UNKNOWN``; the raw string is still used verbatim in DDL.
    """
    raw = type_str.strip()
    lowered = raw.lower()

    is_array = lowered.endswith("]")
    # "timestamp(3) with time zone" names the same type as "timestamp with time zone"
    name = " ".join(_PARAMS_RE.sub(" ", lowered).split())

    base = TYPE_ALIASES.get(name, BaseType.UNKNOWN)
    length = precision = scale = None

    match = _BRACKET_RE.search(lowered)
    if match and base in BRACKETED_TYPES:
        first = int(match.group(1))
        second = int(match.group(2)) if match.group(2) is not None else None
        if base == BaseType.NUMERIC:
            precision, scale = first, second if second is not None else 0
        else:
            length = first
    elif base == BaseType.CHAR:
        # bare "char" is stored as character(1)
        length = 1

    return ParsedType(
        raw=raw,
        name=name,
        base=base,
        is_array=is_array,
        length=length,
        precision=precision,
        scale=scale,
    )


def is_string_data_type(data_type: str) -> bool:
    """Check whether a live information_schema data_type is a string type."""
    return data_type == "text" or data_type.startswith("character")
