"""Display components for console output."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.tree import Tree


if TYPE_CHECKING:
    from rich.console import Console

    from hcbsrecon.core.models import (
        AgingReport,
        DenialAnalysis,
        MatchResult,
        ReconciliationResult,
        RemittanceProcessingResult,
        UndoResult,
        WorkListItem,
    )

STATUS_COLORS = {
    "reconciled": "green",
    "partial": "yellow",
    "unreconciled": "dim",
    "exception": "red",
}

PRIORITY_COLORS = {"high": "red", "medium": "yellow", "low": "green"}


def _status(value: str) -> str:
    color = STATUS_COLORS.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def print_match_result(console: Console, result: MatchResult) -> None:
    """Print ranked match proposals."""
    if not result.matches:
        console.print(f"  [yellow]⚠[/yellow] No matching claims for payment {result.payment_id}")
        return
    table = Table(title=f"Suggested Matches ({result.payment_amount})", border_style="blue")
    table.add_column("Claim", style="bold")
    table.add_column("Amount", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Reason", style="dim")
    for match in result.matches:
        color = "green" if match.score >= 0.9 else "yellow"
        table.add_row(
            match.claim_number, str(match.amount), f"[{color}]{match.score:.2f}[/{color}]", match.reason
        )
    table.add_row("Unmatched", str(result.unmatched_amount), "", "")
    console.print(table)


def print_reconciliation_result(console: Console, result: ReconciliationResult) -> None:
    """Print applied claim payments and claim status changes."""
    table = Table(title=f"Payment {result.payment.id}", border_style="blue")
    table.add_column("Claim", style="bold")
    table.add_column("Paid", justify="right")
    table.add_column("Adjustments", justify="right")
    for cp in result.claim_payments:
        table.add_row(cp.claim_id, str(cp.paid_amount), str(len(cp.adjustments)))
    console.print(table)
    console.print(
        f"  Applied {result.matched_amount} of {result.total_amount}, "
        f"unapplied {result.unmatched_amount} → {_status(result.reconciliation_status.value)}"
    )
    for change in result.claim_status_changes:
        console.print(
            f"  [dim]{change.claim_id}:[/dim] {change.previous_status.value} → "
            f"[cyan]{change.new_status.value}[/cyan]"
        )


def print_undo_result(console: Console, result: UndoResult) -> None:
    console.print(
        f"  [green]✓[/green] Removed {result.removed_claim_payments} claim payments from "
        f"{result.payment.id} → {_status(result.payment.reconciliation_status.value)}"
    )
    for change in result.claim_status_changes:
        console.print(f"  [dim]{change.claim_id}:[/dim] {change.previous_status.value} → pending")


def print_remittance_result(console: Console, result: RemittanceProcessingResult) -> None:
    """Print remittance import summary."""
    tree = Tree(
        f"[bold]Remittance {result.remittance_info.remittance_number or result.remittance_info.id}[/bold]"
    )
    tree.add(f"Payment: {result.payment.id} ({result.payment.payment_amount})")
    tree.add(f"Lines matched: {result.claims_matched}/{result.details_processed}")
    tree.add(f"Matched amount: {result.matched_amount}")
    tree.add(f"Status: {_status(result.payment.reconciliation_status.value)}")
    if result.unmatched_claim_numbers:
        branch = tree.add("[yellow]Unmatched claim numbers[/yellow]")
        for number in result.unmatched_claim_numbers[:5]:
            branch.add(f"[dim]{number}[/dim]")
        if len(result.unmatched_claim_numbers) > 5:
            branch.add(f"[dim]... and {len(result.unmatched_claim_numbers) - 5} more[/dim]")
    console.print(tree)


def print_aging_report(console: Console, report: AgingReport) -> None:
    """Print AR aging buckets and per-payer totals."""
    table = Table(title=f"AR Aging as of {report.as_of_date}", border_style="blue")
    table.add_column("Bucket", style="bold")
    table.add_column("Claims", justify="right")
    table.add_column("Amount", justify="right")
    for bucket in report.buckets:
        table.add_row(bucket.label, str(bucket.claim_count), str(bucket.amount))
    table.add_row("[bold]Total[/bold]", str(report.total_claims), f"[bold]{report.total_outstanding}[/bold]")
    console.print(table)
    if report.by_payer:
        payers = Table(title="By Payer", border_style="dim")
        payers.add_column("Payer")
        payers.add_column("Claims", justify="right")
        payers.add_column("Outstanding", justify="right")
        for group in report.by_payer:
            payers.add_row(group.group_name, str(group.claim_count), str(group.total_outstanding))
        console.print(payers)


def print_work_list(console: Console, items: list[WorkListItem]) -> None:
    """Print collections work list."""
    if not items:
        console.print("  [green]✓[/green] Nothing to follow up")
        return
    table = Table(title="Collections Work List", border_style="blue")
    table.add_column("Priority", width=8)
    table.add_column("Claim", style="bold")
    table.add_column("Payer")
    table.add_column("Balance", justify="right")
    table.add_column("Age", justify="right")
    table.add_column("Action", style="dim")
    for item in items:
        color = PRIORITY_COLORS[item.priority.value]
        table.add_row(
            f"[{color}]{item.priority.value}[/{color}]", item.claim_number, item.payer_name,
            str(item.balance), f"{item.age_days}d", item.follow_up_action,
        )
    console.print(table)


def print_denial_analysis(console: Console, analysis: DenialAnalysis) -> None:
    """Print denial rate and top reasons."""
    console.print(
        f"  Denied {analysis.denied_claims} of {analysis.total_claims} claims "
        f"([bold]{analysis.denial_rate:.1%}[/bold]), {analysis.total_denied_amount} total"
    )
    if analysis.by_reason:
        table = Table(title="Denial Reasons", border_style="dim")
        table.add_column("Code", style="bold")
        table.add_column("Count", justify="right")
        table.add_column("Amount", justify="right")
        table.add_column("Description", style="dim")
        for reason in analysis.by_reason:
            table.add_row(reason.adjustment_code, str(reason.count), str(reason.amount), reason.description)
        console.print(table)


def print_db_stats(console: Console, stats: dict[str, Any]) -> None:
    """Print database statistics."""
    table = Table(title="Database Statistics", border_style="blue")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for key in ("payers", "claims", "payments", "claim_payments", "adjustments"):
        table.add_row(key.replace("_", " ").title(), str(stats[key]))
    for status, count in stats.get("by_status", {}).items():
        table.add_row(f"  {_status(status)}", str(count))
    console.print(table)
