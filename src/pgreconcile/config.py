"""
Configuration system for pgreconcile using Pydantic.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, ConfigDict, model_validator
from pydantic_settings import BaseSettings

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError, ReconcileError
from .schema.registry import ModelRegistry
from .schema.reconciler import SyncOptions


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Apply a logging configuration to the root logger."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(
            RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, config.level),
        format=config.format,
        handlers=handlers,
        force=True,
    )


class ReconcileConfig(BaseSettings):
    """Main pgreconcile configuration."""

    database_url: Optional[str] = Field(None, description="PostgreSQL connection URL")
    connection: Optional[ConnectionConfig] = Field(
        None, description="Connection details, used when no URL is given"
    )
    default_schema: str = Field("public", description="Namespace for tables that declare none")

    sync: SyncOptions = Field(default_factory=SyncOptions, description="Reconciliation options")
    tables: List[Dict[str, Any]] = Field(
        default_factory=list, description="Raw table declarations"
    )

    # System configuration
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="PGRECONCILE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    @model_validator(mode="after")
    def check_connection(self) -> "ReconcileConfig":
        if self.database_url and self.connection:
            raise ValueError("Give either database_url or connection, not both")
        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ReconcileConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_connection_config(self) -> ConnectionConfig:
        """Get the connection configuration, from the URL if one is set."""
        if self.database_url:
            return ConnectionConfig.from_url(self.database_url)
        if self.connection is None:
            raise ConfigurationError(
                "No database configured; set database_url or connection"
            )
        return self.connection

    def build_registry(self) -> ModelRegistry:
        """
        Register every table declaration.

        The first illegal declaration aborts the build, before anything
        touches the database.
        """
        registry = ModelRegistry()
        for index, declaration in enumerate(self.tables):
            try:
                registry.register(declaration)
            except ReconcileError as e:
                name = declaration.get("model_name") or declaration.get("table_name") or f"#{index}"
                raise ConfigurationError(
                    f"Invalid table declaration {name}", {"position": index}, cause=e
                ) from e
        return registry

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True, by_alias=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
