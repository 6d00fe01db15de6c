"""
Command-line interface for tabloid.

Provides commands to run the sync engine, poll once, manage sources,
initialize the database, and run diagnostic checks.

Usage:
    tabloid run             # Run the scheduler, print events as JSON lines
    tabloid poll-once       # One feed cycle and one price cycle
    tabloid init-db         # Create tables and seed defaults
    tabloid sources list    # Show configured sources
    tabloid health          # Check service health
"""

import asyncio
import json
import signal
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import click

from tabloid.config.settings import get_settings
from tabloid.observability.logging import setup_logging
from tabloid.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Tabloid - background sync of social feeds and crypto prices."""
    setup_logging(level="DEBUG" if debug else None)


@asynccontextmanager
async def _open_store():
    """Connect to the database and yield a RecordStore; always closes the pool."""
    from tabloid.storage.database import Database
    from tabloid.storage.store import RecordStore

    db = Database()
    await db.connect()
    try:
        yield RecordStore(db)
    finally:
        await db.close()


def _build_clients(mock: bool):
    """Create (feed_client, price_client) for real upstreams or mocks."""
    if mock:
        from tabloid.ingestion.mock_client import MockFeedClient, MockPriceClient

        return MockFeedClient(), MockPriceClient()

    from tabloid.ingestion.price_client import CoinGeckoPriceClient
    from tabloid.ingestion.twitter_client import TwitterFeedClient

    return TwitterFeedClient(), CoinGeckoPriceClient()


def _echo_event(event) -> None:
    click.echo(json.dumps(event.to_dict(), default=str))


def _echo_sources(sources) -> None:
    if not sources:
        click.echo("No sources configured.")
        return
    for s in sources:
        handle = f"@{s.handle}" if s.handle else "-"
        cursor = s.cursor or "-"
        click.echo(f"  [{s.slot}] {s.name:<20} {handle:<18} id={s.id} cursor={cursor}")


@main.command()
@click.option("--mock", is_flag=True, help="Use mock clients")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def run(mock: bool, metrics: bool, metrics_port: int | None) -> None:
    """Run the sync engine until interrupted."""
    from tabloid.services.events import EventChannel
    from tabloid.services.network import NetworkMonitor
    from tabloid.services.scheduler import PollScheduler
    from tabloid.sources.service import SourcesService

    async def run_engine():
        if metrics:
            get_metrics().start_server(port=metrics_port)

        feed_client, price_client = _build_clients(mock)
        channel = EventChannel()
        network = NetworkMonitor()
        stop_event = asyncio.Event()

        async with _open_store() as store:
            await store.create_tables()
            await SourcesService(store, network=network).ensure_seeded()
            await store.writer.start()

            scheduler = PollScheduler(
                store, feed_client, price_client, channel, network=network,
            )

            async def print_events(queue: asyncio.Queue) -> None:
                while True:
                    _echo_event(await queue.get())

            queue = channel.subscribe()
            printer = asyncio.create_task(print_events(queue), name="event_printer")

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, stop_event.set)

            try:
                await scheduler.start()
                await stop_event.wait()
            finally:
                await scheduler.stop()
                printer.cancel()
                await asyncio.gather(printer, return_exceptions=True)
                channel.close()
                await store.writer.stop()
                await feed_client.aclose()
                await price_client.aclose()

    asyncio.run(run_engine())


@main.command("poll-once")
@click.option("--mock", is_flag=True, help="Use mock clients")
def poll_once(mock: bool) -> None:
    """Run one feed cycle and one price cycle, then exit."""
    from tabloid.services.events import EventChannel
    from tabloid.services.scheduler import FEED_POLL, PRICE_POLL, PollScheduler

    async def run_once():
        feed_client, price_client = _build_clients(mock)
        channel = EventChannel()

        async with _open_store() as store:
            try:
                async with channel.subscription() as queue:
                    scheduler = PollScheduler(store, feed_client, price_client, channel)
                    await scheduler.run_job(FEED_POLL)
                    await scheduler.run_job(PRICE_POLL)

                    while not queue.empty():
                        _echo_event(queue.get_nowait())
            finally:
                await feed_client.aclose()
                await price_client.aclose()

    asyncio.run(run_once())


@main.command("init-db")
@click.option("--seed/--no-seed", default=True, help="Seed default sources and tickers")
def init_db(seed: bool) -> None:
    """Initialize the database schema."""
    from tabloid.sources.service import SourcesService

    async def run_init():
        async with _open_store() as store:
            await store.create_tables()
            click.echo("Database initialized successfully")

            if seed:
                sources, tickers = await SourcesService(store).ensure_seeded()
                click.echo(f"Seeded {sources} sources and {tickers} tickers")

    asyncio.run(run_init())


@main.group()
def sources() -> None:
    """Source registry commands."""


@sources.command("list")
def sources_list() -> None:
    """List sources in slot order."""

    async def run_list():
        async with _open_store() as store:
            _echo_sources(await store.list_sources())

    asyncio.run(run_list())


@sources.command("add")
@click.option("--name", required=True, help="Display name")
@click.option("--account-id", required=True, help="Upstream (Twitter) user id")
@click.option("--slot", required=True, type=int, help="Display slot")
@click.option("--handle", default=None, help="Account handle")
@click.option("--logo-url", default=None, help="Logo URL")
def sources_add(
    name: str, account_id: str, slot: int, handle: str | None, logo_url: str | None
) -> None:
    """Add a feed source.

    Example:
        tabloid sources add --name Coinbase --account-id 3437070832 --slot 6
    """
    from tabloid.sources.service import SourcesService

    async def run_add():
        async with _open_store() as store:
            result = await SourcesService(store).add_source(
                {
                    "name": name,
                    "upstream_account_id": account_id,
                    "slot": slot,
                    "handle": handle,
                    "logo_url": logo_url,
                }
            )
        if result.success:
            click.echo(click.style(f"Added source {account_id}", fg="green"))
            _echo_sources(result.sources)
        else:
            click.echo(click.style(f"Failed to add source: {result.error}", fg="red"))
            sys.exit(1)

    asyncio.run(run_add())


@sources.command("remove")
@click.argument("source_id")
def sources_remove(source_id: str) -> None:
    """Remove a source and all of its records."""
    from tabloid.sources.service import SourcesService

    async def run_remove():
        async with _open_store() as store:
            result = await SourcesService(store).remove_source(source_id)
        if result.success:
            click.echo(click.style(f"Removed source {source_id}", fg="green"))
            _echo_sources(result.sources)
        else:
            click.echo(click.style(f"Failed to remove source: {result.error}", fg="red"))
            sys.exit(1)

    asyncio.run(run_remove())


@main.command()
def tickers() -> None:
    """List tracked price tickers."""

    async def run_tickers():
        async with _open_store() as store:
            configs = await store.list_ticker_configs()

        if not configs:
            click.echo("No tickers configured.")
            return
        for t in configs:
            click.echo(f"  {t.display_order}. {t.display_name:<12} {t.symbol:<6} ({t.id})")

    asyncio.run(run_tickers())


@main.command()
@click.option("--hours", default=None, type=float, help="Hours of records to keep")
@click.option("--dry-run", is_flag=True, help="Show count without deleting")
def cleanup(hours: float | None, dry_run: bool) -> None:
    """Remove records older than the retention window.

    Example:
        tabloid cleanup                        # Use RETENTION_HOURS
        tabloid cleanup --hours 6 --dry-run    # Preview without deleting
    """
    hours = hours or get_settings().retention_hours

    async def run_cleanup():
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

        async with _open_store() as store:
            if dry_run:
                count = await store.count_older_than(cutoff)
                click.echo(f"\nDry run - would delete {count} records older than {hours:g} hours")
                click.echo(f"Cutoff: {cutoff.isoformat()}")
                click.echo("\nRun without --dry-run to actually delete.")
            else:
                deleted = await store.delete_older_than(cutoff)
                get_metrics().record_cleanup(deleted)
                click.echo(f"\nDeleted {deleted} records older than {hours:g} hours")
                click.echo(f"Cutoff: {cutoff.isoformat()}")

    asyncio.run(run_cleanup())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            async with _open_store() as store:
                results["postgres"] = await store.health_check()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        from tabloid.services.network import NetworkMonitor
        results["network"] = await NetworkMonitor().check()

        settings = get_settings()
        results["twitter_configured"] = settings.twitter_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name == "postgres" and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
