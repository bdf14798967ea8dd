"""
Tests for pgreconcile.exceptions module.
"""

from pgreconcile.exceptions import (
    CatalogError,
    DatabaseError,
    DescriptorError,
    ReconcileError,
    ReferenceResolutionError,
    SchemaError,
)


class TestReconcileError:
    """Test the base error formatting."""

    def test_message_only(self):
        """Test a message without details."""
        assert str(ReconcileError("boom")) == "boom"

    def test_details_and_cause(self):
        """Test formatting of details and cause."""
        error = ReconcileError("boom", {"table": "person"}, cause=ValueError("bad"))
        assert str(error) == "boom [table=person] (caused by: bad)"


class TestHierarchy:
    """Test error subclasses."""

    def test_catalog_error_is_database_error(self):
        """Test the database error branch."""
        assert issubclass(CatalogError, DatabaseError)
        assert issubclass(DatabaseError, ReconcileError)

    def test_descriptor_error_details(self):
        """Test descriptor error details."""
        error = DescriptorError("Column name 'Bad' is invalid", "person", "Bad")
        assert isinstance(error, SchemaError)
        assert error.details == {"table": "person", "column": "Bad"}

    def test_reference_resolution_error(self):
        """Test reference resolution error fields."""
        error = ReferenceResolutionError("orders", "person_id", "Person")
        assert error.target == "Person"
        assert "'Person'" in str(error)
