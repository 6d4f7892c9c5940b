"""Marketledger CLI — Typer-based command-line interface.

Provides the ``marketledger`` command with subcommands for inspecting
listings, proceeds and the event log, and for running a demo sale.

All output uses Rich for formatted terminal display.
"""
