"""Command-line interface adapters.

Provides the demonstration scenarios run by the ``lockstep`` command:
- list: Describe the available scenarios
- run: Execute one scenario and report what the database did
"""
