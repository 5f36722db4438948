"""CLI commands for ehr-guard."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ehr_guard.config import get_settings

app = typer.Typer(
    name="ehr-guard",
    help="Row-level access control and audit for clinical records",
    add_completion=False,
)
console = Console()


@app.command()
def init_db():
    """Create all tables (development databases only)."""
    from ehr_guard.core.database import dispose_engine, init_db as create_tables

    async def _run():
        try:
            await create_tables()
        finally:
            await dispose_engine()

    asyncio.run(_run())
    console.print("[green]Database tables created[/green]")


@app.command()
def sweep_locks(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Lock notes signed more than this many days ago"),
):
    """Lock every signed clinical note past its lock date, once."""
    from ehr_guard.core.database import dispose_engine, get_session_factory
    from ehr_guard.triggers.sweeper import NoteLockSweeper

    settings = get_settings()
    lock_days = days if days is not None else settings.note_lock_days

    async def _run() -> int:
        try:
            return await NoteLockSweeper(get_session_factory(), lock_days=lock_days).run_once()
        finally:
            await dispose_engine()

    locked = asyncio.run(_run())
    console.print(f"Locked [bold]{locked}[/bold] clinical note(s) signed more than {lock_days} days ago")


@app.command()
def issue_token(
    auth_ref: str = typer.Argument(..., help="Stable identity reference (token subject)"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Role claim to embed (informational only)"),
    minutes: Optional[int] = typer.Option(None, "--minutes", "-m", help="Token lifetime in minutes"),
):
    """Issue a signed identity token for local development and testing."""
    from ehr_guard.core.auth import create_access_token

    token = create_access_token(auth_ref, role=role, expires_minutes=minutes)
    console.print(token, soft_wrap=True)


@app.command()
def explain(
    resource: Optional[str] = typer.Option(None, "--resource", "-r", help="Only show clauses for this resource"),
):
    """Print the row-level policy table."""
    from ehr_guard.access.policy import ResourceType, describe_policies

    if resource is not None:
        try:
            ResourceType(resource)
        except ValueError:
            valid = ", ".join(r.value for r in ResourceType)
            console.print(f"[red]Unknown resource: {resource}. Use one of: {valid}[/red]")
            raise typer.Exit(1)

    table = Table(title="Access policy")
    table.add_column("Resource")
    table.add_column("Operation")
    table.add_column("Role")
    table.add_column("Condition")

    for clause in describe_policies(resource):
        table.add_row(clause.resource.value, clause.operation.value, clause.role.value, clause.description)

    console.print(table)
    console.print("[dim]Anything not listed is denied.[/dim]")


@app.command()
def decisions():
    """Summarize recent access decisions from the decision log."""
    from ehr_guard.observability import get_observability_logger

    stats = get_observability_logger().get_stats()
    if not stats["total"]:
        console.print("[yellow]No access decisions logged yet.[/yellow]")
        return

    console.print(f"Decisions: {stats['total']}  denied: {stats['denied']} ({stats['deny_rate']:.0%})")

    table = Table(title="Decisions by resource")
    table.add_column("Resource")
    table.add_column("Count", justify="right")
    for resource, count in sorted(stats["by_resource"].items()):
        table.add_row(resource, str(count))
    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting ehr-guard API server on {host}:{port}")
    uvicorn.run(
        "ehr_guard.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )
