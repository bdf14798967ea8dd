"""
Unit tests for the pgreconcile CLI interface.
"""

from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from pgreconcile.cli import main, model_names
from pgreconcile.schema.operations import ChangeType, SchemaChange
from pgreconcile.schema.reconciler import (
    ReconciliationResult,
    ReconciliationStatus,
    SchemaReconciler,
)


@pytest.fixture
def runner():
    """Click test runner."""
    return CliRunner()


def make_result(status=ReconciliationStatus.SUCCESS, errors=None) -> ReconciliationResult:
    return ReconciliationResult(
        status=status,
        model="Person",
        schema="public",
        table="person",
        changes_applied=[
            SchemaChange(
                ChangeType.ADD_COLUMN, "public", "person", "Add column age",
                'ALTER TABLE "public"."person" ADD COLUMN "age" integer',
                executed=True,
            )
        ],
        errors=errors or [],
        execution_time_ms=1.5,
    )


@pytest.fixture
def mock_reconciler():
    with patch("pgreconcile.cli.ConnectionPool") as pool_cls, \
         patch("pgreconcile.cli.SchemaReconciler") as reconciler_cls, \
         patch("pgreconcile.cli.configure_logging"):
        reconciler = reconciler_cls.return_value
        reconciler_cls.get_reconciliation_summary.side_effect = (
            SchemaReconciler.get_reconciliation_summary
        )
        reconciler.sync = AsyncMock(return_value={"Person": make_result()})
        reconciler.pool_cls = pool_cls
        reconciler.cls = reconciler_cls
        yield reconciler


class TestCLIMain:
    """Test main CLI functionality."""

    def test_cli_help(self, runner):
        """Test CLI help output."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "declarative PostgreSQL table schema reconciliation" in result.output
        for command in ("sync", "validate-config", "new-model"):
            assert command in result.output

    def test_cli_version(self, runner):
        """Test the version option."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestSyncCommand:
    """Test the sync command."""

    def test_sync(self, runner, temp_config_file, mock_reconciler):
        """Test a successful sync run."""
        result = runner.invoke(main, ["sync", "--config", temp_config_file])

        assert result.exit_code == 0, result.output
        assert "Person" in result.output
        assert "success" in result.output
        assert "1 table(s): 1 successful, 0 partial, 0 failed" in result.output
        assert "1/1 statements applied" in result.output

        options = mock_reconciler.sync.await_args.args[0]
        assert options.force is False
        assert options.dry_run is False

        registry = mock_reconciler.cls.call_args.args[1]
        assert "Person" in registry

    def test_sync_flags(self, runner, temp_config_file, mock_reconciler):
        """Test that command-line flags reach the sync options."""
        result = runner.invoke(main, [
            "sync", "--config", temp_config_file,
            "--force", "--drop-unlisted", "--dry-run",
            "--schema", "app", "--model", "Person", "--debug",
        ])

        assert result.exit_code == 0, result.output
        options = mock_reconciler.sync.await_args.args[0]
        assert options.force is True
        assert options.drop_not_exist_col is True
        assert options.dry_run is True
        assert options.debug is True
        assert options.target_schema == "app"
        assert options.model == "Person"
        assert "Dry run mode" in result.output
        assert 'ADD COLUMN "age" integer' in result.output

    def test_sync_failure_exit_code(self, runner, temp_config_file, mock_reconciler):
        """Test the exit code when a table fails."""
        mock_reconciler.sync.return_value = {
            "Person": make_result(ReconciliationStatus.FAILED, ["Create table person: denied"])
        }

        result = runner.invoke(main, ["sync", "--config", temp_config_file])

        assert result.exit_code == 1
        assert "denied" in result.output

    def test_sync_invalid_declaration(self, runner, tmp_path, sample_config_data, mock_reconciler):
        """Test that an invalid declaration aborts before any connection."""
        sample_config_data["tables"][0]["columns"]["Bad"] = {"type": "text"}
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump(sample_config_data))

        result = runner.invoke(main, ["sync", "--config", str(path)])

        assert result.exit_code == 1
        assert "Invalid table declaration" in result.output
        mock_reconciler.sync.assert_not_called()


class TestValidateConfig:
    """Test the validate-config command."""

    def test_valid(self, runner, temp_config_file):
        """Test a valid configuration."""
        result = runner.invoke(main, ["validate-config", "--config", temp_config_file])

        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output
        assert "person" in result.output

    def test_invalid(self, runner, tmp_path):
        """Test a configuration with an invalid table."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({
            "database_url": "postgresql://u@h/db",
            "tables": [{"columns": {"id": {"type": "text"}}}],
        }))

        result = runner.invoke(main, ["validate-config", "--config", str(path)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_missing_connection(self, runner, tmp_path, person_declaration):
        """Test a configuration without a database."""
        path = tmp_path / "noconn.yaml"
        path.write_text(yaml.safe_dump({"tables": [person_declaration]}))

        result = runner.invoke(main, ["validate-config", "--config", str(path)])

        assert result.exit_code == 1
        assert "No database configured" in result.output


class TestNewModel:
    """Test the new-model command."""

    def test_model_names(self):
        """Test table and model name derivation."""
        assert model_names("user-log") == ("user_log", "UserLog")
        assert model_names("order_info") == ("order_info", "Order_info")
        assert model_names("Product") == ("product", "Product")

    def test_writes_templates(self, runner, tmp_path):
        """Test that templates are written per name."""
        result = runner.invoke(main, ["new-model", "--dir", str(tmp_path), "user-log", "Product.yaml"])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load((tmp_path / "user_log.yaml").read_text())
        assert data["table_name"] == "user_log"
        assert data["model_name"] == "UserLog"
        assert data["primary_key"] == "id"
        assert (tmp_path / "product.yaml").exists()

    def test_skips_existing(self, runner, tmp_path):
        """Test that existing files are kept."""
        existing = tmp_path / "product.yaml"
        existing.write_text("keep: me\n")

        result = runner.invoke(main, ["new-model", "--dir", str(tmp_path), "product"])

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert existing.read_text() == "keep: me\n"

    def test_long_paths_are_not_wrapped(self, runner, tmp_path):
        """Test that skip messages stay on one line for deep directories."""
        deep = tmp_path.joinpath(*["nested_directory_level"] * 6)
        deep.mkdir(parents=True)
        (deep / "product.yaml").write_text("keep: me\n")

        result = runner.invoke(main, ["new-model", "--dir", str(deep), "product"])

        assert result.exit_code == 0
        assert f"{deep / 'product.yaml'} already exists" in result.output

    def test_invalid_name(self, runner, tmp_path):
        """Test that invalid names are reported and others still written."""
        result = runner.invoke(main, ["new-model", "--dir", str(tmp_path), "9lives", "ok-name"])

        assert result.exit_code == 1
        assert "invalid" in result.output
        assert (tmp_path / "ok_name.yaml").exists()
        assert not (tmp_path / "9lives.yaml").exists()

    def test_template_is_a_valid_declaration(self, runner, tmp_path):
        """Test that a written template loads as a declaration."""
        from pgreconcile.schema.descriptor import TableDescriptor

        runner.invoke(main, ["new-model", "--dir", str(tmp_path), "user-log"])
        data = yaml.safe_load((tmp_path / "user_log.yaml").read_text())

        descriptor = TableDescriptor.from_dict(data)
        assert descriptor.model_name == "UserLog"
