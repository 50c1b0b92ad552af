"""Notaryforge CLI: Typer-based command-line interface.

Provides the ``notaryforge`` command with subcommands for running a release
and listing the code-signing identities installed in the keychain.

All output uses Rich for formatted terminal display.
"""
