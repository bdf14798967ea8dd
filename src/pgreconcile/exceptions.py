"""
Exception classes for pgreconcile.
"""

from typing import Any, Dict, Optional


class ReconcileError(Exception):
    """Base exception for all pgreconcile errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(ReconcileError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(ReconcileError):
    """Raised when a field value fails its declared validation rule."""

    pass


class DatabaseError(ReconcileError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when there's an error establishing or maintaining database connections."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class CatalogError(DatabaseError):
    """Raised when a system catalog query fails."""

    pass


class SchemaError(DatabaseError):
    """Raised when there's an error with database schema operations."""

    pass


class DescriptorError(SchemaError):
    """Raised when a table declaration cannot be normalized."""

    def __init__(
        self,
        message: str,
        table_name: Optional[str] = None,
        column_name: Optional[str] = None,
    ) -> None:
        details = {}
        if table_name:
            details["table"] = table_name
        if column_name:
            details["column"] = column_name

        super().__init__(message, details)
        self.table_name = table_name
        self.column_name = column_name


class ReferenceResolutionError(SchemaError):
    """Raised when a foreign-key target cannot be resolved to a declared table."""

    def __init__(self, table_name: str, column_name: str, target: str) -> None:
        super().__init__(
            f"Cannot resolve reference '{target}' of column "
            f"'{column_name}' in table '{table_name}'"
        )
        self.table_name = table_name
        self.column_name = column_name
        self.target = target


class RegistrationError(ReconcileError):
    """Raised when there's an error with model registration."""

    pass
