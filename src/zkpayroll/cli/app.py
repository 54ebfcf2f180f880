"""Main CLI application using Typer."""

import sys

import typer
from rich.console import Console

from zkpayroll import __version__

# Create Typer app
app = typer.Typer(
    name="zkpayroll",
    help="zkpayroll - Privacy-preserving payroll with zero-knowledge payment proofs",
    no_args_is_help=True,
)

console = Console()


@app.command()
def version():
    """Show zkpayroll version."""
    console.print(f"zkpayroll version {__version__}")


@app.command()
def commit(
    salary: int = typer.Option(..., "--salary", "-s", help="Salary amount in base units"),
    blinding: str = typer.Option(
        None,
        "--blinding",
        "-b",
        help="32-byte blinding factor as hex (default: fresh random)",
    ),
):
    """Compute a salary commitment."""
    from zkpayroll.cli.crypto_cmd import commit_command

    commit_command(salary=salary, blinding=blinding)


@app.command("verify-commitment")
def verify_commitment(
    commitment: str = typer.Argument(..., help="Commitment as hex"),
    salary: int = typer.Option(..., "--salary", "-s", help="Claimed salary"),
    blinding: str = typer.Option(..., "--blinding", "-b", help="Blinding factor as hex"),
):
    """Check that a commitment opens to a salary and blinding factor."""
    from zkpayroll.cli.crypto_cmd import verify_commitment_command

    verify_commitment_command(commitment=commitment, salary=salary, blinding=blinding)


@app.command()
def nullifier(
    commitment: str = typer.Option(..., "--commitment", "-c", help="Commitment as hex"),
    period: int = typer.Option(..., "--period", "-p", help="Billing period (YYYYMM)"),
    blinding: str = typer.Option(..., "--blinding", "-b", help="Blinding factor as hex"),
):
    """Derive the nullifier of a commitment for a billing period."""
    from zkpayroll.cli.crypto_cmd import nullifier_command

    nullifier_command(commitment=commitment, period=period, blinding=blinding)


@app.command("export-vk")
def export_vk(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.zkpayroll/zkpayroll.yaml)",
    ),
    output: str = typer.Option(None, "--output", "-o", help="Write the key to this file"),
):
    """Export the payment circuit's verification key."""
    from zkpayroll.cli.crypto_cmd import export_vk_command

    export_vk_command(config_path=config_path, output=output)


# Audit commands
audit_app = typer.Typer(help="Payment records, auditor view keys and audit reports")
app.add_typer(audit_app, name="audit")


@audit_app.command("records")
def audit_records(
    company: str = typer.Option(..., "--company", help="Company id"),
    db_path: str = typer.Option(
        "~/.zkpayroll/records.db",
        "--db",
        "-d",
        help="Path to payment record database",
    ),
    employee: str = typer.Option(None, "--employee", "-e", help="Filter by employee"),
    period_start: int = typer.Option(None, "--from", help="First period (YYYYMM)"),
    period_end: int = typer.Option(None, "--to", help="Last period (YYYYMM)"),
    output_format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, json)",
    ),
):
    """List payment records."""
    from zkpayroll.cli.audit_cmd import list_records

    list_records(
        company=company,
        db_path=db_path,
        employee=employee,
        period_start=period_start,
        period_end=period_end,
        output_format=output_format,
    )


@audit_app.command("view-key")
def audit_view_key(
    company: str = typer.Option(..., "--company", help="Company id"),
    auditor: str = typer.Option(..., "--auditor", "-a", help="Auditor identity"),
    granted_by: str = typer.Option(..., "--granted-by", "-g", help="Issuing admin identity"),
    scope: str = typer.Option(
        "aggregate",
        "--scope",
        "-s",
        help="Scope (full, aggregate, range, employees)",
    ),
    days: int = typer.Option(30, "--days", help="Validity in days"),
    start: int = typer.Option(None, "--start", help="First period of a range scope"),
    end: int = typer.Option(None, "--end", help="Last period of a range scope"),
    employees: list[str] = typer.Option(
        None,
        "--employee",
        "-e",
        help="Employee of an employees scope (repeatable)",
    ),
    output: str = typer.Option(None, "--output", "-o", help="Write the key to this file"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Issue an auditor view key."""
    from zkpayroll.cli.audit_cmd import issue_view_key

    issue_view_key(
        company=company,
        auditor=auditor,
        granted_by=granted_by,
        scope=scope,
        days=days,
        start=start,
        end=end,
        employees=employees,
        output=output,
        config_path=config_path,
    )


@audit_app.command("report")
def audit_report(
    key_path: str = typer.Option(..., "--key", "-k", help="View key JSON file"),
    period_start: int = typer.Option(..., "--from", help="First period (YYYYMM)"),
    period_end: int = typer.Option(..., "--to", help="Last period (YYYYMM)"),
    db_path: str = typer.Option(
        "~/.zkpayroll/records.db",
        "--db",
        "-d",
        help="Path to payment record database",
    ),
    output_format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, json)",
    ),
):
    """Generate an audit report under a view key."""
    from zkpayroll.cli.audit_cmd import generate_report

    generate_report(
        key_path=key_path,
        period_start=period_start,
        period_end=period_end,
        db_path=db_path,
        output_format=output_format,
    )


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
