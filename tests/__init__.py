"""
Test suite for dbre.

This package contains unit tests for all dbre components:
- Identity and structural model
- Live schema introspection and the database facade
- Persisted document storage and parsing
- Document reconciliation
- Configuration and command-line interface
"""
