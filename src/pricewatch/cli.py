"""Click-based CLI for pricewatch.

Thin wrapper around library modules. Every command delegates to the service,
the repository or the price source.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from decimal import Decimal

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=_LOG_FORMAT,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from pricewatch.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise SystemExit(2)
    return ctx.obj["config"]


async def _create_service(config):
    from pricewatch.service import PortfolioService

    return await PortfolioService.create(config)


def _money(value: Decimal | None) -> str:
    return "N/A" if value is None else f"{value:,.2f}"


def _percent(value: Decimal | None) -> str:
    return "N/A" if value is None else f"{value:+.2f}%"


def _when(value: datetime | None) -> str:
    return "never" if value is None else value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="PRICEWATCH_CONFIG",
    default=None,
    help="Path to pricewatch.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="pricewatch")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """pricewatch: keep market prices of an item collection fresh."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the refresh scheduler and the snapshot coordinator until stopped."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service(config)
        try:
            await service.run()
        finally:
            await service.close()

    console.print(
        f"Refreshing prices from [bold]{config.price_source.base_url}[/bold] "
        f"(store: {config.storage.sqlite_path}). Press Ctrl+C to stop."
    )
    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Run one refresh cycle now, regardless of the interval."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service(config)
        try:
            scheduler = await service.build()
            report = await scheduler.run_cycle()
            await scheduler.drain()
            return report
        finally:
            await service.close()

    report = _run_async(_run())
    if report is None:
        console.print("[red]Refresh cycle aborted. See the log for details.[/red]")
        raise SystemExit(1)

    table = Table(title="Refresh Cycle")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Status", str(report.status))
    table.add_row("Lists visited", str(report.lists_visited))
    table.add_row("Lists skipped", str(report.lists_skipped))
    table.add_section()
    table.add_row("Items attempted", str(report.items_attempted))
    table.add_row("Items updated", str(report.items_updated))
    table.add_row("Items failed", str(report.items_failed))
    table.add_row("Items skipped", str(report.items_skipped))
    table.add_row("Throttle events", str(report.throttle_events))
    if report.store_failures:
        table.add_row("Store failures", f"[red]{report.store_failures}[/red]")
    console.print(table)


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def snapshot(ctx: click.Context) -> None:
    """Capture today's snapshot if it is due."""
    config = _load_config(ctx)

    async def _run():
        service = await _create_service(config)
        try:
            await service.build()
            return await service.coordinator.tick()
        finally:
            await service.close()

    record = _run_async(_run())
    if record is None:
        console.print("No snapshot taken (already captured today, or not yet due).")
        return
    console.print(
        f"Captured [bold]{record.scope}[/bold] snapshot for {record.date_key}: "
        f"{_money(record.value)}"
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show refresh status and portfolio totals."""
    config = _load_config(ctx)

    async def _run():
        from pricewatch.portfolio import summarize
        from pricewatch.storage import PortfolioRepository, create_store

        store = await create_store(config.storage)
        try:
            repository = PortfolioRepository(store, defaults=config.defaults)
            report = await repository.load_status()
            settings = await repository.load_settings()
            catalog = await repository.load_catalog()
            snapshots = await repository.load_snapshots()
            today = datetime.now(config.snapshot.tzinfo).date()
            return report, settings, summarize(catalog, snapshots, today)
        finally:
            await store.close()

    report, settings, summary = _run_async(_run())

    table = Table(title="pricewatch Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Refresh status", str(report.status))
    table.add_row("Phase", str(report.phase))
    table.add_row("Last update", _when(report.last_cycle_completed_at))
    table.add_row("Cycles completed", str(report.cycles_completed))
    table.add_row("Refresh interval", f"{settings.refresh_interval_minutes} min")
    table.add_row("Snapshot time", settings.snapshot_time_of_day)
    if report.last_sync_ok is None:
        sync_state = "not attempted"
    else:
        sync_state = "ok" if report.last_sync_ok else "[red]failed[/red]"
        if report.last_sync_error:
            sync_state += f": {report.last_sync_error}"
    table.add_row("Last sync", f"{sync_state} ({_when(report.last_sync_at)})")
    table.add_section()
    table.add_row("Items", str(summary.item_count))
    table.add_row("Total value", _money(summary.total))
    if summary.baseline is not None:
        table.add_row(f"Baseline ({summary.baseline.date_key})", _money(summary.baseline.value))
        table.add_row("Change", f"{_money(summary.change)} ({_percent(summary.change_percent)})")

    console.print(table)

    if summary.lists:
        lists = Table(title="Lists")
        lists.add_column("List", style="bold")
        lists.add_column("Group")
        lists.add_column("Items", justify="right")
        lists.add_column("Priced", justify="right")
        lists.add_column("Value", justify="right")
        for entry in summary.lists:
            lists.add_row(
                entry.name,
                entry.group or "",
                str(entry.item_count),
                str(entry.priced_count),
                _money(entry.total),
            )
        console.print(lists)


# ---------------------------------------------------------------------------
# lookup
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name")
@click.pass_context
def lookup(ctx: click.Context, name: str) -> None:
    """Query the price source once for NAME."""
    config = _load_config(ctx)

    async def _run():
        from pricewatch.prices import SteamMarketPriceSource

        async with SteamMarketPriceSource(config.price_source) as source:
            return await source.lookup(name)

    from pricewatch.core import PriceSourceError

    try:
        quote = _run_async(_run())
    except PriceSourceError as e:
        console.print(f"[red]Lookup failed:[/red] {e}")
        raise SystemExit(1)

    table = Table(title=quote.name)
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Lowest price", _money(quote.lowest_price))
    table.add_row("Median price", _money(quote.median_price))
    table.add_row("Volume", "N/A" if quote.volume is None else str(quote.volume))
    table.add_row("Currency", str(quote.currency))
    console.print(table)


# ---------------------------------------------------------------------------
# restore
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip confirmation.")
@click.pass_context
def restore(ctx: click.Context, yes: bool) -> None:
    """Replace the local state with the remote mirror."""
    config = _load_config(ctx)
    if not config.sync.enabled:
        console.print("[red]Sync is not enabled. Set sync.enabled and sync.endpoint.[/red]")
        raise SystemExit(1)

    from pricewatch.core import SyncError
    from pricewatch.storage import PortfolioRepository, create_store
    from pricewatch.sync import HttpSyncRemote, SyncPublisher

    async def _fetch():
        store = await create_store(config.storage)
        remote = HttpSyncRemote(config.sync)
        try:
            repository = PortfolioRepository(store, defaults=config.defaults)
            publisher = SyncPublisher(remote, await repository.installation_id())
            return await publisher.fetch()
        finally:
            await remote.close()
            await store.close()

    try:
        state = _run_async(_fetch())
    except SyncError as e:
        console.print(f"[red]Could not fetch remote state:[/red] {e}")
        raise SystemExit(1)

    if state is None:
        console.print("[yellow]The remote holds no state for this installation.[/yellow]")
        raise SystemExit(1)

    list_count = sum(1 for _ in state.catalog.iter_lists())
    console.print(
        f"Remote state from {_when(state.exported_at)}: "
        f"{list_count} lists, {state.catalog.item_count()} items, "
        f"{len(state.snapshots)} snapshots."
    )
    if not yes:
        click.confirm("Overwrite the local state?", abort=True)

    async def _restore():
        store = await create_store(config.storage)
        try:
            await PortfolioRepository(store, defaults=config.defaults).restore_state(state)
        finally:
            await store.close()

    _run_async(_restore())
    console.print("[green]Local state restored.[/green]")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the status API server."""
    import uvicorn

    config = _load_config(ctx)
    if ctx.obj.get("config_path"):
        # the app factory reloads config in the server process
        os.environ["PRICEWATCH_CONFIG"] = ctx.obj["config_path"]
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting pricewatch API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "pricewatch.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
