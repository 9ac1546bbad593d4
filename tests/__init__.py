"""Test suite for scholex.

Test organization:
- tests/unit/: Unit tests for individual components and the CLI
- tests/conftest.py: Shared sample texts, pages, feeds and fixtures
"""
