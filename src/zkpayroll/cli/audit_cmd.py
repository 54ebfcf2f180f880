"""Audit CLI commands.

Lists public payment records, issues auditor view keys and renders
scope-restricted audit reports.
"""

import json
from datetime import datetime
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from zkpayroll.audit.aggregator import AuditAggregator, DetailedReport
from zkpayroll.audit.view_keys import (
    AggregateOnlyScope,
    EmployeeListScope,
    FullCompanyScope,
    Scope,
    TimeRangeScope,
    ViewKey,
    ViewKeyManager,
)
from zkpayroll.config.loader import ConfigError, load_config
from zkpayroll.errors import InvalidScopeError, PayrollError
from zkpayroll.ledger.records import PaymentRecordStore

console = Console()

SCOPE_NAMES = ("full", "aggregate", "range", "employees")


def _format_timestamp(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def _format_amount(amount: int) -> str:
    return f"{amount:,}"


def build_scope(
    scope: str,
    start: int | None = None,
    end: int | None = None,
    employees: list[str] | None = None,
) -> Scope:
    """Translate command line scope options into a scope model.

    Raises:
        InvalidScopeError: If the scope name is unknown or its options are missing.
    """
    if scope == "full":
        return FullCompanyScope()
    if scope == "aggregate":
        return AggregateOnlyScope()
    if scope == "range":
        if start is None or end is None:
            raise InvalidScopeError("A range scope needs --start and --end")
        return TimeRangeScope(start=start, end=end)
    if scope == "employees":
        return EmployeeListScope(employees=frozenset(employees or ()))
    raise InvalidScopeError(f"Unknown scope '{scope}' (choose from {', '.join(SCOPE_NAMES)})")


def list_records(
    company: str,
    db_path: str = "~/.zkpayroll/records.db",
    employee: str | None = None,
    period_start: int | None = None,
    period_end: int | None = None,
    output_format: str = "table",
) -> None:
    """List payment records of a company."""
    store = PaymentRecordStore(db_path=db_path)
    try:
        records = store.query(
            company, employee=employee, period_start=period_start, period_end=period_end
        )
    finally:
        store.close()

    if not records:
        console.print("[yellow]No payment records found[/yellow]")
        return

    if output_format == "json":
        console.print_json(data=[json.loads(r.model_dump_json()) for r in records])
        return

    table = Table(title=f"Payment Records ({len(records)} records)")
    table.add_column("Period", style="cyan")
    table.add_column("Employee", style="green")
    table.add_column("Amount", justify="right")
    table.add_column("Nullifier", style="magenta")
    table.add_column("Accepted", style="dim")
    for record in records:
        table.add_row(
            str(record.period),
            record.employee,
            _format_amount(record.amount),
            record.nullifier.hex()[:16] + "…",
            _format_timestamp(record.timestamp),
        )
    console.print(table)


def issue_view_key(
    company: str,
    auditor: str,
    granted_by: str,
    scope: str = "aggregate",
    days: int = 30,
    start: int | None = None,
    end: int | None = None,
    employees: list[str] | None = None,
    output: str | None = None,
    config_path: str | None = None,
) -> None:
    """Issue a view key and print it or write it to *output*."""
    try:
        config = load_config(config_path)
        manager = ViewKeyManager(max_duration_days=config.audit.max_view_key_days)
        key = manager.issue(
            company,
            granted_by,
            auditor,
            build_scope(scope, start=start, end=end, employees=employees),
            days,
        )
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1) from None
    except PayrollError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    document = key.model_dump_json(indent=2)
    if output:
        path = Path(output)
        path.write_text(document)
        path.chmod(0o600)
        console.print(f"[green]✓ View key {key.id[:8]} written to {output}[/green]")
        console.print(f"  Expires: {_format_timestamp(key.expires_at)} UTC")
    else:
        console.print_json(document)


def _print_report(report) -> None:
    summary = Table(title=f"Audit Report: {report.company}", show_header=False)
    summary.add_column("Field", style="cyan")
    summary.add_column("Value", style="white")
    summary.add_row("Periods", f"{report.period_start} - {report.period_end}")
    summary.add_row("Payments", str(report.payment_count))
    summary.add_row("Employees", str(report.employee_count))
    summary.add_row("Total paid", _format_amount(report.total_paid))
    verified = "[green]yes[/green]" if report.verified else "[red]no[/red]"
    summary.add_row("Verified", verified)
    console.print(summary)

    if isinstance(report, DetailedReport) and report.entries:
        entries = Table(title="Payments")
        entries.add_column("Period", style="cyan")
        entries.add_column("Employee", style="green")
        entries.add_column("Amount", justify="right")
        entries.add_column("Proof hash", style="magenta")
        for entry in report.entries:
            entries.add_row(
                str(entry.period),
                entry.employee,
                _format_amount(entry.amount),
                entry.proof_hash.hex()[:16] + "…",
            )
        console.print(entries)


def generate_report(
    key_path: str,
    period_start: int,
    period_end: int,
    db_path: str = "~/.zkpayroll/records.db",
    output_format: str = "table",
) -> None:
    """Render the report a view key permits over the local record database."""
    try:
        key = ViewKey.model_validate_json(Path(key_path).read_text())
    except OSError as e:
        console.print(f"[red]Cannot read view key: {e}[/red]")
        raise typer.Exit(1) from None
    except ValidationError as e:
        console.print(f"[red]Invalid view key file: {e}[/red]")
        raise typer.Exit(1) from None

    store = PaymentRecordStore(db_path=db_path)
    try:
        records = store.query(key.company, period_start=period_start, period_end=period_end)
        report = AuditAggregator().generate_report(key, records, period_start, period_end)
    except PayrollError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        store.close()

    if output_format == "json":
        console.print_json(report.model_dump_json())
    else:
        _print_report(report)
