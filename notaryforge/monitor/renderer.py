"""Rich terminal renderer for release reports.

Color scheme
------------
- green   : notarized-offline-capable
- cyan    : notarized-online-only
- yellow  : signed-only
- red     : unsigned
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from notaryforge.core.errors import PipelineAborted
from notaryforge.models.reports import ReleaseReport, TrustLevel
from notaryforge.models.stages import PipelineState

# ---------------------------------------------------------------------------
# Trust level / state -> Rich style mapping
# ---------------------------------------------------------------------------

_TRUST_STYLES: dict[TrustLevel, str] = {
    TrustLevel.NOTARIZED_OFFLINE_CAPABLE: "bold green",
    TrustLevel.NOTARIZED_ONLINE_ONLY: "bold cyan",
    TrustLevel.SIGNED_ONLY: "bold yellow",
    TrustLevel.UNSIGNED: "bold red",
}

_STATE_STYLES: dict[PipelineState, str] = {
    PipelineState.BUILT: "dim",
    PipelineState.ASSEMBLED: "white",
    PipelineState.UNSIGNED: "yellow",
    PipelineState.SIGNED: "green",
    PipelineState.VERIFIED: "green",
    PipelineState.NOT_NOTARIZED: "yellow",
    PipelineState.SUBMITTED: "cyan",
    PipelineState.ACCEPTED: "green",
    PipelineState.REJECTED: "bold red",
    PipelineState.STAPLED: "green",
    PipelineState.STAPLE_FAILED: "yellow",
    PipelineState.PACKAGED: "bold green",
    PipelineState.ABORTED: "bold red",
}


class ReportRenderer:
    """Renders ``ReleaseReport`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console to print to. A new one is created if omitted.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Renderables
    # ------------------------------------------------------------------

    def render_report(self, report: ReleaseReport) -> Panel:
        """Build the summary panel for a packaged release."""
        style = _TRUST_STYLES[report.trust_level]

        summary = Table.grid(padding=(0, 2))
        summary.add_column(style="bold")
        summary.add_column()
        summary.add_row("Trust level", Text(report.trust_level.value, style=style))
        summary.add_row("Next", Text(report.next_action))
        summary.add_row("Bundle", Text(str(report.bundle_path)))
        summary.add_row("Archive", Text(str(report.archive_path)))
        summary.add_row("SHA-256", report.archive_sha256)
        summary.add_row("Layout", report.layout_digest)
        if report.architectures:
            arches = " ".join(report.architectures)
            if report.universal:
                arches += " (universal)"
            summary.add_row("Architectures", arches)
        if report.identity:
            summary.add_row("Identity", Text(report.identity))
        if report.signature is not None and report.signature.team_identifier:
            summary.add_row("Team", report.signature.team_identifier)
        if report.submission_id:
            summary.add_row("Submission", report.submission_id)
        if report.state.conditions:
            summary.add_row(
                "Conditions",
                Text(", ".join(c.value for c in report.state.conditions), style="yellow"),
            )

        return Panel(
            Group(summary, Text(""), self._build_transition_table(report)),
            title=f"[bold]{report.app_name} {report.version}[/bold]",
            subtitle=f"Run {report.run_id}",
            border_style=style.replace("bold ", ""),
            padding=(1, 2),
        )

    def _build_transition_table(self, report: ReleaseReport) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("From", min_width=12)
        table.add_column("To", min_width=12)
        table.add_column("Note")
        table.add_column("At", style="dim", width=10)

        for i, entry in enumerate(report.transitions):
            to_style = _STATE_STYLES.get(entry.to_state, "")
            table.add_row(
                str(i),
                entry.from_state.value,
                f"[{to_style}]{entry.to_state.value}[/{to_style}]",
                Text(entry.note) if entry.note else "[dim]-[/dim]",
                entry.timestamp_utc.strftime("%H:%M:%S"),
            )
        return table

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_report(self, report: ReleaseReport) -> None:
        self.console.print(self.render_report(report))

    def print_abort(self, error: PipelineAborted) -> None:
        """Print a fatal error with the tool diagnostic it carries."""
        body = Text()
        body.append(f"Release aborted at stage '{error.stage}'\n", style="bold red")
        body.append(str(error.cause))
        self.console.print(
            Panel(body, title="[bold red]Release failed[/bold red]", border_style="red")
        )
