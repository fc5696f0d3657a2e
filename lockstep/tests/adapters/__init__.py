"""Integration tests for adapter implementations.

These tests run the executor adapters against real SQLite databases to
validate commit, rollback and locking behavior under scripted
interleavings.
"""
