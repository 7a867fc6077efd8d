"""beepack CLI: Typer-based command-line interface.

Provides the ``beepack`` command with subcommands for building programs,
inspecting stored programs, and listing the local OCI store.

All output uses Rich for formatted terminal display.
"""
