"""
Test suite for pgreconcile.

Unit tests run against a mocked connection pool and an in-memory catalog.
"""
