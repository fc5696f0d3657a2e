"""External adapters for the lockstep harness.

This package holds everything that touches the outside world and wires it
to the core port interfaces.

Adapter Organization:

- executor/: Transactional executors for party step lists (direct, SQLite)
- cli/: Built-in demonstration scenarios exposed on the command line
"""
