"""Unit tests for core domain logic.

These tests exercise the harness without external dependencies.
Executors are replaced with in-memory fakes from tests/fakes/.
"""
