"""Test suite for the lockstep interleaving harness.

Organized into three categories:

1. core/: Unit tests for the handoff lock, witness and script builder
   - No database, fast execution
   - Uses in-memory fakes for the executor port

2. adapters/: Integration tests for executor adapters
   - Runs real SQLite transactions against temporary databases

3. fakes/: Port implementations for testing
   - In-memory TransactionExecutorPort used by core unit tests
"""
