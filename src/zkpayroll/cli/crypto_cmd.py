"""Commitment, nullifier and verification key commands."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from zkpayroll.config.loader import ConfigError, load_config
from zkpayroll.crypto.commitment import CommitmentEngine
from zkpayroll.crypto.nullifier import NullifierEngine
from zkpayroll.errors import EncodingError, PayrollError

console = Console()


def _parse_hex(value: str, label: str) -> bytes:
    """Decode a hex argument, with or without a ``0x`` prefix."""
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise EncodingError(f"{label} is not valid hex") from None


def commit_command(salary: int, blinding: str | None = None) -> None:
    """Compute a commitment, generating a blinding factor when none is given."""
    try:
        factor = (
            CommitmentEngine.generate_blinding_factor()
            if blinding is None
            else _parse_hex(blinding, "Blinding factor")
        )
        commitment = CommitmentEngine.commit(salary, factor)
    except PayrollError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    table = Table(title="Salary Commitment", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Commitment", "0x" + commitment.hex())
    table.add_row("Blinding factor", "0x" + factor.hex())
    console.print(table)
    if blinding is None:
        console.print("[yellow]Store the blinding factor securely; it cannot be recovered[/yellow]")


def verify_commitment_command(commitment: str, salary: int, blinding: str) -> None:
    """Exit 0 when the commitment opens, 1 otherwise."""
    try:
        opened = CommitmentEngine.verify(
            _parse_hex(commitment, "Commitment"),
            salary,
            _parse_hex(blinding, "Blinding factor"),
        )
    except PayrollError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    if not opened:
        console.print("[red]✗ Commitment does not match[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Commitment matches[/green]")


def nullifier_command(commitment: str, period: int, blinding: str) -> None:
    try:
        value = NullifierEngine.derive_nullifier(
            _parse_hex(commitment, "Commitment"),
            period,
            _parse_hex(blinding, "Blinding factor"),
        )
    except PayrollError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    console.print("0x" + value.hex())


def export_vk_command(config_path: str | None = None, output: str | None = None) -> None:
    """Print or write the verification key of the configured circuit."""
    from zkpayroll.proofs.circuit import create_circuit

    try:
        config = load_config(config_path)
        circuit = create_circuit(config.circuit)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1) from None
    except PayrollError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    document = circuit.verification_key().model_dump_json(indent=2)
    if output:
        Path(output).write_text(document)
        console.print(f"[green]✓ Verification key ({circuit.name}) written to {output}[/green]")
    else:
        console.print_json(document)
