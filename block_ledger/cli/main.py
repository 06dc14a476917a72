"""
BlockLedger - Command Line Interface
======================================
CLI for ledger administration and queries.

Commands:
- init-db: Create the schema
- height / balance / utxos: Queries
- submit: Submit a JSON block
- rollback: Revert to a height
- block-id: Compute a block id
- to-units: Convert a coin amount to base units
- verify: Check balances against the UTXO set
- serve: Run the REST API
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

# Internal imports
from block_ledger.domain.models import Block
from block_ledger.domain.crypto_core import compute_block_id
from block_ledger.services.ledger_service import LedgerService
from block_ledger.errors import LedgerException
from block_ledger.config import LedgerSettings, validate_config
from block_ledger.constants import LEDGER_NAME, SOFTWARE_VERSION, to_base_units
from block_ledger.logging_setup import setup_logging


# ============================================================================
# CLI APP
# ============================================================================

app = typer.Typer(
    name="blockledger",
    help="BlockLedger - UTXO ledger CLI",
    add_completion=False
)

console = Console()


# ============================================================================
# GLOBAL STATE
# ============================================================================

class CLIState:
    """Global CLI state"""
    database_url: Optional[str] = None
    verbose: bool = False


state = CLIState()


def _load_config() -> LedgerSettings:
    overrides = {}
    if state.database_url:
        overrides["database_url"] = state.database_url
    config = LedgerSettings(**overrides)

    setup_logging(
        log_level=config.log_level,
        log_to_file=config.log_to_file,
        log_dir=config.log_dir,
        log_format=config.log_format,
        log_rotation_mb=config.log_rotation_mb,
        log_retention_days=config.log_retention_days,
        enable_console=state.verbose,
    )
    return config


def _open_service() -> LedgerService:
    try:
        return LedgerService.create(_load_config())
    except LedgerException as e:
        _fail(e)


def _fail(error: Exception) -> None:
    if isinstance(error, LedgerException):
        console.print(f"[red]Error ({error.code}): {escape(error.message)}[/red]")
    else:
        console.print(f"[red]Error: {escape(str(error))}[/red]")
    raise typer.Exit(1)


# ============================================================================
# DATABASE COMMANDS
# ============================================================================

@app.command("init-db")
def init_db():
    """Create ledger tables"""
    config = _load_config()

    valid, errors = validate_config(config)
    if not valid:
        for message in errors:
            console.print(f"[red]{message}[/red]")
        raise typer.Exit(1)

    try:
        service = LedgerService.create(config)
    except LedgerException as e:
        _fail(e)

    try:
        tables = service.db.table_names()
        console.print(Panel.fit(
            f"[green]Database initialized[/green]\n\n"
            f"Tables: [cyan]{', '.join(tables)}[/cyan]\n"
            f"Height: [cyan]{service.get_current_height()}[/cyan]\n"
            f"Rollback window: [cyan]{config.rollback_window}[/cyan]",
            title=LEDGER_NAME,
            border_style="green"
        ))
    finally:
        service.close()


# ============================================================================
# QUERY COMMANDS
# ============================================================================

@app.command("height")
def height():
    """Show current height"""
    service = _open_service()
    try:
        console.print(f"Height: [cyan]{service.get_current_height()}[/cyan]")
    except LedgerException as e:
        _fail(e)
    finally:
        service.close()


@app.command("balance")
def balance(address: str = typer.Argument(..., help="Address")):
    """Show address balance"""
    service = _open_service()
    try:
        console.print(f"{address}: [green]{service.get_balance(address)}[/green]")
    except LedgerException as e:
        _fail(e)
    finally:
        service.close()


@app.command("utxos")
def utxos(address: str = typer.Argument(..., help="Address")):
    """List unspent outputs of an address"""
    service = _open_service()
    try:
        outputs = service.get_unspent_outputs(address)
    except LedgerException as e:
        service.close()
        _fail(e)
    service.close()

    if not outputs:
        console.print(f"[yellow]No unspent outputs for {address}[/yellow]")
        return

    table = Table(title=f"Unspent outputs: {address}")
    table.add_column("Tx", style="cyan")
    table.add_column("Index", justify="right")
    table.add_column("Value", justify="right", style="green")

    for key, output in outputs:
        table.add_row(key.tx_id, str(key.index), str(output.value))

    console.print(table)
    console.print(f"Total: [green]{sum(output.value for _, output in outputs)}[/green]")


@app.command("block-id")
def block_id(
    block_height: int = typer.Argument(..., help="Block height"),
    tx_ids: Optional[List[str]] = typer.Argument(None, help="Transaction ids in block order"),
):
    """Compute the id of a block"""
    console.print(compute_block_id(block_height, tx_ids or []))


@app.command("to-units")
def to_units(coins: str = typer.Argument(..., help="Coin amount, e.g. 0.5")):
    """Convert a coin amount to integer base units"""
    try:
        console.print(to_base_units(coins))
    except ValueError as e:
        _fail(e)


@app.command("verify")
def verify():
    """Check running balances against the UTXO set"""
    service = _open_service()
    try:
        mismatches = service.verify_balances()
    except LedgerException as e:
        service.close()
        _fail(e)
    service.close()

    if not mismatches:
        console.print("[green]Balances consistent with unspent outputs[/green]")
        return

    table = Table(title="Balance mismatches")
    table.add_column("Address", style="cyan")
    table.add_column("Running", justify="right")
    table.add_column("Recomputed", justify="right")
    for address, (running, recomputed) in mismatches.items():
        table.add_row(address, str(running), str(recomputed))

    console.print(table)
    raise typer.Exit(1)


# ============================================================================
# MUTATION COMMANDS
# ============================================================================

@app.command("submit")
def submit(block_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Block JSON file")):
    """Submit a block from a JSON file"""
    try:
        data = json.loads(block_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        _fail(e)

    service = _open_service()
    try:
        applied = service.submit_block(Block.from_dict(data))
    except LedgerException as e:
        _fail(e)
    finally:
        service.close()

    console.print(f"[green]Block added successfully[/green] (height {applied})")


@app.command("rollback")
def rollback(target_height: int = typer.Argument(..., help="Target height")):
    """Roll the ledger back to a height"""
    service = _open_service()
    try:
        new_height = service.rollback(target_height)
    except LedgerException as e:
        _fail(e)
    finally:
        service.close()

    console.print(f"[green]Rollback completed successfully[/green] (height {new_height})")


# ============================================================================
# SERVER
# ============================================================================

@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Run the REST API"""
    import uvicorn
    from block_ledger.api.rest_api import create_app

    config = _load_config()
    bind_host = host or config.api_host
    bind_port = port or config.api_port

    console.print(f"[green]Starting {LEDGER_NAME} API on {bind_host}:{bind_port}[/green]")
    uvicorn.run(create_app(settings=config), host=bind_host, port=bind_port, log_level=config.log_level.lower())


# ============================================================================
# MAIN CALLBACK
# ============================================================================

@app.callback()
def main(
    database_url: Optional[str] = typer.Option(
        None,
        "--database-url",
        "-d",
        help="SQLAlchemy database URL (overrides BLOCKLEDGER_DATABASE_URL)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to console"),
):
    """
    BlockLedger - UTXO ledger CLI

    Submit blocks, query balances and roll back recent history.
    """
    state.database_url = database_url
    state.verbose = verbose


@app.command("version")
def version():
    """Show version"""
    console.print(f"{LEDGER_NAME} {SOFTWARE_VERSION}")


if __name__ == "__main__":
    app()


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "app",
]
