"""crmsync CLI - table setup, historical backfill and record inspection."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import settings
from .schemas.sync import EntityType, Source

app = typer.Typer(
    name="crmsync",
    help="Bidirectional sync engine for client and system-of-record data",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("init-db")
def init_db():
    """Create the sync tables in the configured database."""
    from .database import create_tables

    asyncio.run(create_tables())
    console.print(f"[green]Tables created[/green] in {settings.database_url}")


@app.command("backfill")
def backfill_cmd(
    path: Path = typer.Argument(..., exists=True, readable=True, help="JSON file with a list of records"),
    entity_type: EntityType = typer.Option(..., "--entity-type", "-t", help="Entity type of the records"),
    source: Source = typer.Option(Source.CLIENT, "--source", "-s", help="Which side the records came from"),
):
    """Replay exported records through the engine as creates."""
    from .database import async_session_factory
    from .sync.backfill import backfill
    from .sync.engine import SyncEngine

    records = json.loads(path.read_text())
    if not isinstance(records, list):
        console.print("[red]Expected a JSON list of records[/red]")
        raise typer.Exit(1)

    engine = SyncEngine(async_session_factory)
    report = asyncio.run(backfill(engine, entity_type, records, source=source))

    console.print(
        f"[green]{report.success} applied[/green], "
        f"[yellow]{report.skipped} skipped[/yellow], "
        f"[red]{len(report.errors)} errors[/red]"
    )
    for error in report.errors[:20]:
        console.print(f"  [red]-[/red] {error}")
    if report.errors:
        raise typer.Exit(1)


@app.command("record")
def record_cmd(
    idempotency_key: str = typer.Argument(..., help="Idempotency key of the change"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the sync record for an idempotency key."""
    from .database import async_session_factory
    from .services import record_svc

    async def _load():
        async with async_session_factory() as db:
            record = await record_svc.get_record(db, idempotency_key)
            return record_svc.record_to_dict(record) if record else None

    data = asyncio.run(_load())
    if data is None:
        console.print(f"[red]No sync record for {idempotency_key!r}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(json.dumps(data))
        return

    table = Table(title=f"Sync record {idempotency_key}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, dict):
            value = json.dumps(value, sort_keys=True)
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@app.command("audit")
def audit_cmd(
    owner_id: str = typer.Option(None, "--owner", "-o", help="Filter by owner"),
    action: str = typer.Option(None, "--action", "-a", help="Filter by action"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max entries to show"),
):
    """List recent audit entries."""
    from .database import async_session_factory
    from .sync.audit import list_entries

    async def _load():
        async with async_session_factory() as db:
            return await list_entries(db, owner_id=owner_id, action=action, limit=limit)

    entries = asyncio.run(_load())
    table = Table(title="Audit trail")
    table.add_column("When", style="dim")
    table.add_column("Owner")
    table.add_column("Action", style="cyan")
    table.add_column("Entity")
    table.add_column("Actor")
    for entry in entries:
        table.add_row(
            entry.created_at.isoformat() if entry.created_at else "",
            entry.owner_id,
            entry.action,
            f"{entry.entity_type}:{entry.entity_id or '-'}",
            entry.actor,
        )
    console.print(table)


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
):
    """Run the sync ingress API."""
    try:
        import uvicorn
    except ImportError:
        console.print("[red]Missing dependencies. Install with: pip install -e '.[serve]'[/red]")
        raise typer.Exit(1)

    console.print(f"[bold cyan]Starting sync API at http://{host}:{port}[/bold cyan]")
    uvicorn.run("crmsync.app:app", host=host, port=port)


if __name__ == "__main__":
    app()
