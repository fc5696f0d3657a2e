"""Executor adapters implementing TransactionExecutorPort.

- direct: steps run with no enclosing transaction
- sqlite: steps run inside one SQLite transaction per party
- expected: wraps another executor for a party that must fail
"""
