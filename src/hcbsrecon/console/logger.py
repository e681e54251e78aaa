"""Rich console for the reconciliation CLI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from hcbsrecon.console.display import (
    print_aging_report,
    print_db_stats,
    print_denial_analysis,
    print_match_result,
    print_reconciliation_result,
    print_remittance_result,
    print_undo_result,
    print_work_list,
)


if TYPE_CHECKING:
    from hcbsrecon.core.errors import ReconError
    from hcbsrecon.core.models import (
        AgingReport,
        DenialAnalysis,
        MatchResult,
        ReconciliationResult,
        RemittanceProcessingResult,
        UndoResult,
        WorkListItem,
    )


class ReconConsole:
    """Rich console interface for command output and logging."""

    def __init__(self, verbose: bool = False) -> None:
        self.console = Console()
        self.verbose = verbose

    def setup_logging(self, level: str = "INFO") -> None:
        logging.basicConfig(
            level=level if self.verbose else "WARNING",
            format="%(message)s",
            handlers=[
                RichHandler(
                    console=self.console, rich_tracebacks=True, show_time=False, show_path=False
                )
            ],
            force=True,
        )

    def print_header(self, command: str, db_path: str) -> None:
        header = Text()
        header.append("hcbsrecon", style="bold blue")
        header.append(" - HCBS Payment Reconciliation\n\n", style="dim")
        header.append("Command: ", style="bold")
        header.append(f"{command}\n", style="green")
        header.append("Database: ", style="bold")
        header.append(str(db_path), style="dim")
        self.console.print(Panel(header, border_style="blue"))

    def print_match_result(self, result: MatchResult) -> None:
        print_match_result(self.console, result)

    def print_reconciliation_result(self, result: ReconciliationResult) -> None:
        print_reconciliation_result(self.console, result)

    def print_undo_result(self, result: UndoResult) -> None:
        print_undo_result(self.console, result)

    def print_remittance_result(self, result: RemittanceProcessingResult) -> None:
        print_remittance_result(self.console, result)

    def print_aging_report(self, report: AgingReport) -> None:
        print_aging_report(self.console, report)

    def print_work_list(self, items: list[WorkListItem]) -> None:
        print_work_list(self.console, items)

    def print_denial_analysis(self, analysis: DenialAnalysis) -> None:
        print_denial_analysis(self.console, analysis)

    def print_db_stats(self, stats: dict[str, Any]) -> None:
        print_db_stats(self.console, stats)

    def print_success(self, message: str) -> None:
        self.console.print()
        self.console.print(
            Panel(f"[green]✓ {message}[/green]", title="[green]Complete[/green]", border_style="green")
        )

    def print_error(self, error: str) -> None:
        self.console.print()
        self.console.print(
            Panel(f"[red]{error}[/red]", title="[red]Error[/red]", border_style="red")
        )

    def print_recon_error(self, error: ReconError) -> None:
        lines = [f"[red]{error.message}[/red]", f"[dim]code: {error.code}[/dim]"]
        for field_error in getattr(error, "errors", []):
            lines.append(f"  • {field_error.field}: {field_error.message}")
        self.console.print()
        self.console.print(
            Panel(
                "\n".join(lines),
                title=f"[red]{error.kind.value.replace('_', ' ').title()} Error[/red]",
                border_style="red",
            )
        )
