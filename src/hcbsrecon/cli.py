"""Command-line interface for hcbsrecon."""

from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from hcbsrecon.config.settings import Settings
from hcbsrecon.console.logger import ReconConsole
from hcbsrecon.core.errors import ReconError
from hcbsrecon.core.models import AdjustmentFilters, ClaimAllocation, ReconcileRequest, RemittanceImport
from hcbsrecon.orchestrator.workflow import PaymentWorkflow
from hcbsrecon.storage.database import Database
from hcbsrecon.storage.sample import load_sample_data, sample_remittance
from hcbsrecon.tools.parser import dump_remittance


console = ReconConsole()


def _workflow(db_path: str | None) -> PaymentWorkflow:
    settings = Settings()
    if db_path:
        settings.database.path = db_path
    console.setup_logging(settings.log_level)
    return PaymentWorkflow(settings)


def parse_allocation(value: str) -> ClaimAllocation:
    """Parse ``CLAIM_ID:AMOUNT``."""
    claim_id, sep, amount = value.rpartition(":")
    if not sep or not claim_id:
        raise argparse.ArgumentTypeError(f"Expected CLAIM_ID:AMOUNT, got {value!r}")
    try:
        return ClaimAllocation(claim_id=claim_id, amount=Decimal(amount))
    except (InvalidOperation, ValueError) as e:
        raise argparse.ArgumentTypeError(f"Invalid amount in {value!r}") from e


async def init_db(db_path: str, load_sample: bool = False, remittance_out: str | None = None) -> None:
    """Create the schema and optionally seed sample data."""
    database = Database(db_path)
    console.console.print(f"[green]✓[/green] Database initialized at {db_path}")
    if load_sample:
        if load_sample_data(database):
            console.console.print("[green]✓[/green] Sample payers, claims and payments loaded")
        else:
            console.console.print("[yellow]Database already has data; sample not loaded[/yellow]")
    if remittance_out:
        Path(remittance_out).write_text(dump_remittance(sample_remittance()), encoding="utf-8")
        console.console.print(f"[green]✓[/green] Sample remittance written to {remittance_out}")
    console.print_db_stats(database.get_stats())


async def import_remittance(
    db_path: str | None, file_path: str, payer_id: str, file_type: str, user_id: str | None
) -> None:
    workflow = _workflow(db_path)
    result = await workflow.process_remittance(RemittanceImport(
        payer_id=payer_id,
        file_content=Path(file_path).read_bytes(),
        file_type=file_type,
        file_name=Path(file_path).name,
        user_id=user_id,
    ))
    console.print_remittance_result(result)


async def suggest_matches(db_path: str | None, payment_id: str) -> None:
    workflow = _workflow(db_path)
    console.print_match_result(await workflow.get_suggested_matches(payment_id))


async def reconcile(
    db_path: str | None,
    payment_id: str,
    allocations: list[ClaimAllocation],
    notes: str | None,
    user_id: str | None,
) -> None:
    workflow = _workflow(db_path)
    result = await workflow.reconcile_payment(
        payment_id, ReconcileRequest(claim_payments=allocations, notes=notes), user_id
    )
    console.print_reconciliation_result(result)


async def auto_reconcile(
    db_path: str | None, payment_id: str, threshold: float | None, user_id: str | None
) -> None:
    workflow = _workflow(db_path)
    result = await workflow.auto_reconcile_payment(payment_id, threshold, user_id)
    console.print_reconciliation_result(result)


async def undo(db_path: str | None, payment_id: str, user_id: str | None) -> None:
    workflow = _workflow(db_path)
    console.print_undo_result(await workflow.undo_reconciliation(payment_id, user_id))


async def show_aging(db_path: str | None, payer_id: str | None, program_id: str | None) -> None:
    workflow = _workflow(db_path)
    console.print_aging_report(await workflow.get_aging_report(payer_id=payer_id, program_id=program_id))


async def show_work_list(db_path: str | None, min_age: int | None) -> None:
    workflow = _workflow(db_path)
    console.print_work_list(await workflow.generate_collection_work_list(min_age))


async def show_denials(db_path: str | None, payer_id: str | None) -> None:
    workflow = _workflow(db_path)
    console.print_denial_analysis(
        await workflow.get_denial_analysis(AdjustmentFilters(payer_id=payer_id))
    )


async def show_stats(db_path: str | None) -> None:
    workflow = _workflow(db_path)
    console.print_db_stats(workflow.database.get_stats())


def main() -> None:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        prog="hcbsrecon", description="Payment reconciliation for HCBS billing"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show log output")
    parser.add_argument("--db", help="Database path (default: HCBS_DB_PATH or hcbs.db)")
    parser.add_argument("--user", help="User id recorded on changes")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_cmd = subparsers.add_parser("init-db", help="Create the database schema")
    init_cmd.add_argument("--sample", action="store_true", help="Load sample data")
    init_cmd.add_argument("--remittance-out", help="Write a sample remittance JSON file here")

    imp = subparsers.add_parser("import", help="Import a remittance file")
    imp.add_argument("file_path", help="Path to the remittance file")
    imp.add_argument("--payer", required=True, help="Payer id")
    imp.add_argument("--type", default="custom", help="File type (default: custom JSON)")

    match_cmd = subparsers.add_parser("match", help="Suggest claims for a payment")
    match_cmd.add_argument("payment_id")

    rec = subparsers.add_parser("reconcile", help="Apply a payment to claims")
    rec.add_argument("payment_id")
    rec.add_argument(
        "--claim", "-c", dest="claims", action="append", type=parse_allocation, required=True,
        help="CLAIM_ID:AMOUNT (repeatable)",
    )
    rec.add_argument("--notes", help="Reconciliation notes")

    auto = subparsers.add_parser("auto", help="Auto-reconcile a payment from suggested matches")
    auto.add_argument("payment_id")
    auto.add_argument("--threshold", type=float, help="Minimum match score (0-1)")

    undo_cmd = subparsers.add_parser("undo", help="Undo a payment's reconciliation")
    undo_cmd.add_argument("payment_id")

    aging = subparsers.add_parser("aging", help="Show the AR aging report")
    aging.add_argument("--payer", help="Payer id")
    aging.add_argument("--program", help="Program id")

    work = subparsers.add_parser("worklist", help="Show the collections work list")
    work.add_argument("--min-age", type=int, help="Minimum claim age in days")

    denials = subparsers.add_parser("denials", help="Show denial analysis")
    denials.add_argument("--payer", help="Payer id")

    subparsers.add_parser("stats", help="Show database statistics")

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)
    console.verbose = args.verbose

    try:
        if args.command == "init-db":
            asyncio.run(init_db(args.db or Settings().database.path, args.sample, args.remittance_out))
        elif args.command == "import":
            if not Path(args.file_path).exists():
                console.print_error(f"Remittance file not found: {args.file_path}")
                sys.exit(1)
            asyncio.run(import_remittance(args.db, args.file_path, args.payer, args.type, args.user))
        elif args.command == "match":
            asyncio.run(suggest_matches(args.db, args.payment_id))
        elif args.command == "reconcile":
            asyncio.run(reconcile(args.db, args.payment_id, args.claims, args.notes, args.user))
        elif args.command == "auto":
            asyncio.run(auto_reconcile(args.db, args.payment_id, args.threshold, args.user))
        elif args.command == "undo":
            asyncio.run(undo(args.db, args.payment_id, args.user))
        elif args.command == "aging":
            asyncio.run(show_aging(args.db, args.payer, args.program))
        elif args.command == "worklist":
            asyncio.run(show_work_list(args.db, args.min_age))
        elif args.command == "denials":
            asyncio.run(show_denials(args.db, args.payer))
        elif args.command == "stats":
            asyncio.run(show_stats(args.db))
    except KeyboardInterrupt:
        console.console.print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(130)
    except ReconError as e:
        console.print_recon_error(e)
        sys.exit(1)
    except Exception as e:
        console.print_error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
