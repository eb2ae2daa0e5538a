#!/usr/bin/env python
"""
Output formatting with Rich console.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Sequence

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from oversight.governance.models import Capability, Proposal, TrustHistoryEntry
from oversight.governance.summary import FleetSummary, capability_label, trust_level


# Custom theme for the oversight CLI
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
})

STATUS_STYLES = {
    "pending": "yellow",
    "auto_approved": "cyan",
    "approved": "green",
    "rejected": "red",
    "implemented": "blue",
    "reverted": "magenta",
}


def _short(record_id: str) -> str:
    return record_id[:8]


class ConsoleOutput:
    """Console output with Rich formatting."""

    def __init__(self, json_mode: bool = False):
        self.console = Console(theme=custom_theme)
        self.json_mode = json_mode

    def print(self, text: str = "", **kwargs):
        """Print text to console."""
        self.console.print(text, **kwargs)

    def print_json(self, data: Any):
        """Print data as JSON."""
        self.console.print_json(json.dumps(data, default=str))

    def print_error(self, text: str):
        """Print error text."""
        self.console.print(f"[red]Error:[/red] {text}")

    def print_success(self, text: str):
        """Print success text."""
        self.console.print(f"[green]Success:[/green] {text}")

    def print_warning(self, text: str):
        """Print warning text."""
        self.console.print(f"[yellow]Warning:[/yellow] {text}")

    def print_dim(self, text: str):
        """Print dimmed text."""
        self.console.print(f"[dim]{text}[/dim]")

    def emit(self, data: Any, render) -> None:
        """Print data as JSON in json mode, otherwise call render()."""
        if self.json_mode:
            self.print_json(data)
        else:
            render()

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def capabilities_table(self, capabilities: Sequence[Capability], title: str = "Capabilities"):
        table = Table(title=title)
        table.add_column("ID", style="dim")
        table.add_column("Agent")
        table.add_column("Capability")
        table.add_column("Trust", justify="right")
        table.add_column("Level")
        table.add_column("Threshold", justify="right")
        table.add_column("Review")
        table.add_column("Proposals", justify="right")
        table.add_column("Approved", justify="right")
        table.add_column("Rejected", justify="right")
        table.add_column("Auto", justify="right")

        for c in capabilities:
            table.add_row(
                _short(c.id),
                c.agent_name,
                capability_label(c.capability_kind),
                f"{c.trust_score * 100:.0f}%",
                trust_level(c.trust_score).label,
                f"{c.auto_approve_threshold * 100:.0f}%",
                "required" if c.requires_review else "auto",
                str(c.total_proposals),
                str(c.approved_count),
                str(c.rejected_count),
                str(c.auto_approved_count),
            )
        self.console.print(table)

    def proposals_table(self, proposals: Iterable[Proposal]):
        table = Table(title="Proposals")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Auto")
        table.add_column("Reviewer")
        table.add_column("Impact", justify="right")
        table.add_column("Created")

        for p in proposals:
            style = STATUS_STYLES.get(p.status.value, "")
            table.add_row(
                _short(p.id),
                p.title,
                f"[{style}]{p.status.value}[/{style}]" if style else p.status.value,
                "yes" if p.auto_applied else "",
                p.reviewed_by or "",
                f"{p.success_score:.2f}" if p.success_measured else "",
                p.created_at[:19],
            )
        self.console.print(table)

    def history_table(self, entries: List[TrustHistoryEntry], title: str = "Trust History"):
        table = Table(title=title)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Capability", style="dim")
        table.add_column("Reason")
        table.add_column("Change", justify="right")
        table.add_column("Score", justify="right")
        table.add_column("By")
        table.add_column("At")

        for e in entries:
            color = "green" if e.delta > 0 else "red" if e.delta < 0 else "dim"
            table.add_row(
                str(e.seq),
                _short(e.capability_id),
                e.change_reason,
                f"[{color}]{e.delta * 100:+.1f}%[/{color}]",
                f"{e.previous_score * 100:.0f}% -> {e.new_score * 100:.0f}%",
                e.changed_by or "",
                e.created_at[:19],
            )
        self.console.print(table)

    def summary_table(self, summary: FleetSummary):
        table = Table(title="Agents")
        table.add_column("Agent")
        table.add_column("Capabilities", justify="right")
        table.add_column("Avg Trust", justify="right")
        table.add_column("Level")
        table.add_column("Proposals", justify="right")
        table.add_column("Approved", justify="right")

        for a in summary.agents:
            table.add_row(
                a.agent_name,
                str(a.capabilities),
                f"{a.mean_trust * 100:.0f}%",
                a.level.label,
                str(a.total_proposals),
                str(a.total_approved),
            )
        self.console.print(table)
        self.console.print(
            f"Fleet trust [bold]{summary.mean_trust * 100:.0f}%[/bold]  "
            f"pending [yellow]{summary.pending}[/yellow]  "
            f"auto-approved [cyan]{summary.auto_approved}[/cyan]  "
            f"implemented [blue]{summary.implemented}[/blue]"
        )
