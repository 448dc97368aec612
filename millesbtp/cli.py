"""MillesBTP CLI.

Commands:
- init: Initialize database schema
- recalculate: Reconcile cached worksite financials with the cost ledger
- refresh-alerts: Re-evaluate time-based alert flags
- timeline: Show a worksite's event timeline
- dashboard: Show profitability counts, totals and alerts
- web serve: Run the JSON API
"""

from __future__ import annotations

import asyncio
from uuid import UUID

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from millesbtp.config import get_config
from millesbtp.core.logging import configure_logging
from millesbtp.db.connection import close_db, get_session_factory, init_db
from millesbtp.db.retry import run_unit_of_work
from millesbtp.errors import MillesBTPError
from millesbtp.reporting import load_dashboard, refresh_alerts
from millesbtp.worksites import WorksiteService

app = typer.Typer(
    name="millesbtp",
    help="MillesBTP - Worksite cost tracking and profitability alerts",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()

STATUS_STYLES = {
    "profitable": "green",
    "watch": "yellow",
    "at_risk": "red",
}


def _run(coro) -> None:
    """Run a coroutine, turning core errors into a clean exit code."""
    configure_logging()

    async def _main():
        try:
            return await coro
        finally:
            await close_db()

    try:
        asyncio.run(_main())
    except MillesBTPError as exc:
        console.print(f"[bold red]✗[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def recalculate(
    owner: str = typer.Option(..., "--owner", help="Actor whose worksites to reconcile"),
    worksite: UUID | None = typer.Option(None, "--worksite", help="Only this worksite"),
):
    """Reconcile cached financials with the cost ledger (safe to re-run)."""

    async def _recalculate():
        service = WorksiteService(get_session_factory(), owner)
        if worksite is not None:
            results = [await service.recalculate(worksite)]
        else:
            results = await service.recalculate_all()

        table = Table(title="Recalculation")
        table.add_column("Worksite", style="cyan")
        table.add_column("Status")
        table.add_column("Margin %", justify="right")
        table.add_column("Changed")
        for result in results:
            status = result.worksite.profitability_status
            table.add_row(
                result.worksite.name,
                f"[{STATUS_STYLES.get(status, 'white')}]{status}[/]",
                str(result.worksite.margin_percentage),
                ", ".join(sorted(result.changed)) or "-",
            )
        console.print(table)

        updated = sum(1 for result in results if result.wrote)
        console.print(f"[green]✓[/green] {len(results)} worksite(s) checked, {updated} updated")

    _run(_recalculate())


@app.command(name="refresh-alerts")
def refresh_alerts_cmd(
    owner: str = typer.Option(..., "--owner", help="Actor whose worksites to refresh"),
):
    """Re-evaluate amendment and schedule alerts, which go stale between writes."""

    async def _refresh():
        updated = await run_unit_of_work(
            get_session_factory(), lambda session: refresh_alerts(session, owner)
        )
        console.print(f"[green]✓[/green] {updated} worksite(s) updated")

    _run(_refresh())


@app.command()
def timeline(
    worksite: UUID = typer.Argument(..., help="Worksite ID"),
    owner: str = typer.Option(..., "--owner", help="Actor owning the worksite"),
):
    """Show a worksite's event timeline, most recent first."""

    async def _timeline():
        entries = await WorksiteService(get_session_factory(), owner).timeline(worksite)

        table = Table(title=f"Timeline {worksite}")
        table.add_column("Date", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Title")
        table.add_column("Description")
        for entry in entries:
            table.add_row(
                entry.event_date.strftime("%Y-%m-%d %H:%M"),
                entry.event_type,
                entry.title,
                entry.description or "",
            )
        console.print(table)

    _run(_timeline())


@app.command()
def dashboard(
    owner: str = typer.Option(..., "--owner", help="Actor whose dashboard to show"),
    status: str | None = typer.Option(None, "--status", help="profitable, watch or at_risk"),
    search: str | None = typer.Option(
        None, "--search", help="Filter by name, code, address or client"
    ),
):
    """Show profitability counts, totals and required actions."""

    async def _dashboard():
        summary = await load_dashboard(
            get_session_factory(), owner, status_filter=status, search=search
        )

        console.print(
            f"[bold]{summary.total}[/bold] worksite(s): "
            f"[green]{summary.profitable} profitable[/green], "
            f"[yellow]{summary.watch} watch[/yellow], "
            f"[red]{summary.at_risk} at risk[/red]"
        )
        console.print(
            f"Budget {summary.total_budget:,.2f} {summary.currency} | "
            f"Committed {summary.total_committed:,.2f} {summary.currency} | "
            f"Margin {summary.total_margin:,.2f} {summary.currency}"
        )

        if summary.alerts:
            console.print(f"\n[bold red]Actions required ({len(summary.alerts)})[/bold red]")
            for alert in summary.alerts:
                client = f" ({alert.client_name})" if alert.client_name else ""
                console.print(
                    f"  • {escape(alert.alert_type.upper())} "
                    f"{escape(alert.worksite_name)}{escape(client)}: {escape(alert.message)}"
                )

        table = Table(title="Worksites")
        table.add_column("Name", style="cyan")
        table.add_column("Client")
        table.add_column("Budget", justify="right")
        table.add_column("Committed", justify="right")
        table.add_column("Margin %", justify="right")
        table.add_column("Status")
        for row in summary.worksites:
            ws = row.worksite
            style = STATUS_STYLES.get(ws.profitability_status, "white")
            table.add_row(
                ws.name,
                row.client_name or "",
                f"{ws.budget_initial:,.2f}",
                f"{ws.costs_committed:,.2f}",
                f"{ws.margin_percentage}",
                f"[{style}]{ws.profitability_status}[/]",
            )
        console.print(table)

    _run(_dashboard())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI JSON API."""
    import uvicorn

    typer.echo(f"Starting MillesBTP API on http://{host}:{port}")
    uvicorn.run(
        "millesbtp.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
    )


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
