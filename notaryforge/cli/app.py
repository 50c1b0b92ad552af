"""Main Typer application — imports and registers all CLI commands.

Entry point: ``notaryforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from notaryforge.cli.commands.identities import identities_cmd
from notaryforge.cli.commands.release import release_cmd
from notaryforge.cli.commands.resign import resign_cmd

app = typer.Typer(
    name="notaryforge",
    help="Notaryforge: bundle, sign, notarize, staple and package macOS apps.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="release", help="Run the full release pipeline.")(release_cmd)
app.command(name="resign", help="Re-sign and re-notarize an existing .app.")(resign_cmd)
app.command(name="identities", help="List installed code-signing identities.")(identities_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
