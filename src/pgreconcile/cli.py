"""
Command-line interface for pgreconcile.
"""

import asyncio
import re
import sys
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ReconcileConfig, configure_logging
from .database.connection import ConnectionPool
from .exceptions import ConfigurationError, ReconcileError
from .schema.registry import ModelRegistry
from .schema.reconciler import (
    ReconciliationResult,
    ReconciliationStatus,
    SchemaReconciler,
    SyncOptions,
)


console = Console()

MODEL_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")

STATUS_STYLES = {
    ReconciliationStatus.SUCCESS: "green",
    ReconciliationStatus.PARTIAL: "yellow",
    ReconciliationStatus.FAILED: "red",
    ReconciliationStatus.SKIPPED: "dim",
}


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ReconcileError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}", soft_wrap=True)
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {escape(str(e))}", soft_wrap=True)
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """pgreconcile: declarative PostgreSQL table schema reconciliation."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.option("--force", is_flag=True, help="Allow destructive column rebuilds")
@click.option(
    "--drop-unlisted",
    is_flag=True,
    help="Drop live columns that are not declared",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without making changes",
)
@click.option("--schema", help="Reconcile every table into this schema")
@click.option("--model", help="Reconcile only this model (and what it references)")
@click.option("--debug", "echo_sql", is_flag=True, help="Echo every statement")
@click.pass_context
@handle_errors
def sync(
    ctx,
    config: str,
    force: bool,
    drop_unlisted: bool,
    dry_run: bool,
    schema: Optional[str],
    model: Optional[str],
    echo_sql: bool,
):
    """Reconcile the database with the declared tables."""
    rc_config = ReconcileConfig.from_yaml(config)
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    configure_logging(rc_config.logging, debug=debug)

    options = _merge_options(
        rc_config.sync,
        force=force,
        drop_not_exist_col=drop_unlisted,
        dry_run=dry_run,
        debug=echo_sql or debug,
        target_schema=schema,
        model=model,
    )

    registry = rc_config.build_registry()
    if not len(registry):
        console.print("[yellow]No tables declared[/yellow]")
        return

    console.print(f"[blue]Reconciling {len(registry)} declared table(s)...[/blue]")
    if options.dry_run:
        console.print("[yellow]Dry run mode - no changes will be made[/yellow]")

    results = asyncio.run(
        _run_sync(rc_config, registry, options)
    )

    summary = SchemaReconciler.get_reconciliation_summary(results)
    _display_results(results, summary, show_sql=options.dry_run)

    if summary["failed"]:
        sys.exit(1)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {escape(config)}", soft_wrap=True)

    try:
        rc_config = ReconcileConfig.from_yaml(config)
        registry = rc_config.build_registry()
        rc_config.get_connection_config()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {escape(str(e))}", soft_wrap=True)
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")

    _display_config_summary(registry)


@main.command()
@click.argument("names", nargs=-1, required=True)
@click.option(
    "--dir",
    "directory",
    type=click.Path(file_okay=False),
    default="./model",
    show_default=True,
    help="Directory to write declaration templates into",
)
@handle_errors
def new_model(names: Tuple[str, ...], directory: str):
    """Write YAML table declaration templates."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)

    invalid = 0
    for raw in names:
        stem = re.sub(r"\.ya?ml$", "", raw)
        if not MODEL_NAME_RE.match(stem):
            console.print(
                f"[red]✗[/red] Name '{raw}' is invalid: it must start with a letter "
                f"and contain only letters, digits, '_' and '-'",
                soft_wrap=True,
            )
            invalid += 1
            continue

        table_name, model_name = model_names(stem)
        path = target_dir / f"{table_name}.yaml"
        if path.exists():
            console.print(
                f"[yellow]Skipped:[/yellow] {escape(str(path))} already exists", soft_wrap=True
            )
            continue

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(model_template(table_name, model_name), f, sort_keys=False)

        console.print(
            f"[green]✓[/green] Created {escape(str(path))} ({model_name})", soft_wrap=True
        )

    if invalid:
        sys.exit(1)


def model_names(name: str) -> Tuple[str, str]:
    """Derive (table_name, model_name) from a name such as ``user-log``."""
    table_name = name.lower().replace("-", "_")
    model_name = "".join(part[:1].upper() + part[1:] for part in name.split("-") if part)
    return table_name, model_name


def model_template(table_name: str, model_name: str) -> Dict:
    return {
        "table_name": table_name,
        "model_name": model_name,
        "primary_key": "id",
        "columns": {
            "id": {"type": "varchar(16)"},
            "name": {"type": "varchar(30)", "default": ""},
        },
        "index": [],
        "unique": [],
    }


def _merge_options(base: SyncOptions, **overrides) -> SyncOptions:
    """Command-line flags switch options on; they never switch configured ones off."""
    update = {k: v for k, v in overrides.items() if v}
    return base.model_copy(update=update)


async def _run_sync(
    rc_config: ReconcileConfig,
    registry: ModelRegistry,
    options: SyncOptions,
) -> Dict[str, ReconciliationResult]:
    async with ConnectionPool(rc_config.get_connection_config()) as pool:
        reconciler = SchemaReconciler(
            pool, registry, default_schema=rc_config.default_schema
        )
        return await reconciler.sync(options)


def _display_results(
    results: Dict[str, ReconciliationResult],
    summary: Dict[str, Any],
    show_sql: bool = False,
):
    """Display a summary of reconciliation results."""
    table = Table(title="Reconciliation Results")
    table.add_column("Model", style="cyan")
    table.add_column("Table", style="magenta")
    table.add_column("Status")
    table.add_column("Statements", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Time", justify="right")

    for name, result in results.items():
        style = STATUS_STYLES.get(result.status, "white")
        status = result.status.value + (" (created)" if result.created else "")
        table.add_row(
            name,
            result.full_table_name,
            f"[{style}]{status}[/{style}]",
            str(len(result.changes_applied)),
            str(len(result.errors)),
            f"{result.execution_time_ms:.1f}ms",
        )

    console.print(table)
    console.print(
        f"{summary['total_tables']} table(s): {summary['successful']} successful, "
        f"{summary['partial']} partial, {summary['failed']} failed, "
        f"{summary['created']} created; "
        f"{summary['successful_changes']}/{summary['total_changes']} statements applied"
    )

    for name, result in results.items():
        if show_sql and result.changes_applied:
            console.print(f"\n[bold]{name}[/bold]")
            for sql in result.statements:
                console.print(f"  {sql}", markup=False, highlight=False, soft_wrap=True)
        for error in result.errors:
            console.print(f"[red]{name}:[/red] {escape(error)}", soft_wrap=True)


def _display_config_summary(registry: ModelRegistry):
    """Display a summary of the declared tables."""
    console.print("\n[blue]Configuration Summary[/blue]")

    table = Table(title="Declared Tables")
    table.add_column("Model", style="cyan")
    table.add_column("Table", style="magenta")
    table.add_column("Columns", style="green")
    table.add_column("Primary Key", style="yellow")
    table.add_column("Indexes", justify="right")
    table.add_column("References", justify="right")

    for entry in registry:
        descriptor = entry.descriptor
        table.add_row(
            descriptor.model_name,
            descriptor.table_name,
            str(len(descriptor.columns)),
            ", ".join(descriptor.primary_key) or "-",
            str(len(descriptor.indexes) + len(descriptor.uniques)),
            str(len(descriptor.references)),
        )

    console.print(table)


if __name__ == "__main__":
    main()
