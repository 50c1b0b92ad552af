"""``notaryforge identities`` — list code-signing identities in the keychain."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notaryforge.config import ReleaseSettings
from notaryforge.core.identity import DISTRIBUTION_CLASS, IdentityResolver
from notaryforge.core.toolchain import SubprocessToolRunner

console = Console()


def identities_cmd(
    identity: str = typer.Option(
        None, "--identity", help="Show which identity this override would select."
    ),
) -> None:
    """List installed identities and mark the one a release would sign with."""
    settings = ReleaseSettings()
    resolver = IdentityResolver(
        SubprocessToolRunner(), override=identity or settings.identity
    )
    installed = resolver.installed()
    if not installed:
        console.print("[yellow]No code-signing identities installed.[/yellow]")
        console.print(
            f"[dim]Releases will be unsigned until a '{DISTRIBUTION_CLASS}' "
            "certificate is added to the keychain.[/dim]"
        )
        return

    chosen = resolver.resolve()

    table = Table(title="Code-signing identities")
    table.add_column("", width=1)
    table.add_column("Name", style="cyan")
    table.add_column("SHA-1", style="dim")
    table.add_column("Distribution", justify="center")

    for item in installed:
        marker = "[bold green]*[/bold green]" if chosen is not None and item == chosen else ""
        usable = (
            "[green]Yes[/green]"
            if item.name.startswith(DISTRIBUTION_CLASS)
            else "[dim]No[/dim]"
        )
        table.add_row(marker, escape(item.name), item.sha1, usable)

    console.print(table)
    if chosen is None:
        console.print("[yellow]No identity would be selected; releases will be unsigned.[/yellow]")
    else:
        console.print(f"Releases will sign with: [bold]{escape(chosen.name)}[/bold]")
