"""
Command-line interface for remote Bloom filters.
"""
import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Tuple

import click
import structlog
from rich.console import Console
from rich.table import Table

from remote_bloom.bloom_filter import RedisBloomFilterClient
from remote_bloom.config import ClientConfig, HASH_ALGORITHMS
from remote_bloom.errors import BloomFilterError, ConfigurationError
from remote_bloom.metrics import MetricsCollector


console = Console()


def configure_logging(log_level: str):
    """Route structlog output to stderr, filtered at ``log_level``."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _run(config: ClientConfig, action: Callable[[RedisBloomFilterClient], Awaitable[None]]):
    """Connect, run an action against the client and always close it."""
    clients = []

    async def runner():
        client = await RedisBloomFilterClient.from_config(config)
        clients.append(client)
        async with client:
            await action(client)

    try:
        asyncio.run(runner())
    except BloomFilterError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    options = click.get_current_context().find_root().params
    metrics = clients[0].metrics
    if options.get("stats"):
        _display_stats(metrics)
    if options.get("metrics_file"):
        with open(options["metrics_file"], "w") as f:
            f.write(metrics.export_prometheus())


def _display_stats(metrics: MetricsCollector):
    """Print the metrics recorded while running a command."""
    table = Table(title="Client Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    for name, counter in metrics.counters.items():
        table.add_row(name, f"{counter.get():g}")

    latency = metrics.histogram("store.pipeline.latency.seconds")
    summary = latency.get_summary()
    if summary:
        table.add_row("pipeline latency p50", f"{latency.get_percentile(0.5) * 1000:.2f} ms")
        table.add_row("pipeline latency p99", f"{latency.get_percentile(0.99) * 1000:.2f} ms")
        table.add_row("pipeline latency max", f"{summary.max * 1000:.2f} ms")

    console.print(table)


@click.group()
@click.option("--config", "-c", type=click.Path(), help="Path to configuration file")
@click.option("--url", "-u", help="Redis URL (rediss:// for TLS)")
@click.option("--size", "-m", type=int, help="Filter size in bits")
@click.option("--hashes", "-k", type=int, help="Bit positions per item")
@click.option("--algorithm", "-a", type=click.Choice(sorted(HASH_ALGORITHMS)), help="Hash algorithm")
@click.option("--insecure", is_flag=True, help="Skip TLS certificate verification")
@click.option("--log-level", "-l", help="Log level")
@click.option("--stats", is_flag=True, help="Print client metrics after the command")
@click.option("--metrics-file", type=click.Path(), help="Write Prometheus metrics to this file")
@click.pass_context
def main(ctx, config, url, size, hashes, algorithm, insecure, log_level, stats, metrics_file):
    """Bloom filters stored in Redis bitmaps."""

    # File, then environment, then flags
    try:
        if config and Path(config).exists():
            client_config = ClientConfig.from_file(config)
        else:
            client_config = ClientConfig.from_env()
    except ConfigurationError as e:
        raise click.BadParameter(str(e), param_hint="--config" if config else None)

    if url:
        client_config.url = url
    if size is not None:
        client_config.bit_array_size = size
    if hashes is not None:
        client_config.hash_count = hashes
    if algorithm:
        client_config.hash_algorithm = algorithm
    if insecure:
        client_config.check_server_identity = False
    if log_level:
        client_config.log_level = log_level

    try:
        client_config.validate()
    except BloomFilterError as e:
        raise click.BadParameter(str(e))

    configure_logging(client_config.log_level)
    ctx.obj = client_config


@main.command()
@click.argument("name")
@click.argument("items", nargs=-1, required=True)
@click.pass_obj
def add(config: ClientConfig, name: str, items: Tuple[str, ...]):
    """Add ITEMS to the filter NAME."""

    async def action(client: RedisBloomFilterClient):
        await client.get(name).add(*items)

    _run(config, action)
    console.print(f"[green]Added {len(items)} item(s) to {name}[/green]")


@main.command()
@click.argument("name")
@click.argument("items", nargs=-1, required=True)
@click.pass_obj
def check(config: ClientConfig, name: str, items: Tuple[str, ...]):
    """Check which ITEMS might be in the filter NAME."""
    matches = set()

    async def action(client: RedisBloomFilterClient):
        matches.update(await client.get(name).extract_contained_items(*items))

    _run(config, action)

    table = Table(title=f"Filter {name}")
    table.add_column("Item", style="cyan")
    table.add_column("Membership")
    for item in dict.fromkeys(items):
        if item in matches:
            table.add_row(item, "[green]possibly present[/green]")
        else:
            table.add_row(item, "[red]absent[/red]")
    console.print(table)


@main.command()
@click.argument("name")
@click.pass_obj
def clear(config: ClientConfig, name: str):
    """Clear the filter NAME."""

    async def action(client: RedisBloomFilterClient):
        await client.clear(name)

    _run(config, action)
    console.print(f"[green]Cleared {name}[/green]")


@main.command()
@click.option("--yes", is_flag=True, help="Confirm deleting every key in the store")
@click.pass_obj
def flush(config: ClientConfig, yes: bool):
    """Delete EVERY key in the store, not only Bloom filters."""
    if not yes:
        console.print("[yellow]Refusing to flush without --yes[/yellow]")
        sys.exit(1)

    async def action(client: RedisBloomFilterClient):
        await client.clear_all()

    _run(config, action)
    console.print("[green]Store flushed[/green]")


@main.command()
@click.argument("output", type=click.Path())
@click.pass_obj
def generate_config(config: ClientConfig, output: str):
    """Write the effective configuration to OUTPUT."""
    config.to_file(output)
    console.print(f"[green]Configuration saved to {output}[/green]")


@main.command()
def version():
    """Display version information."""
    from . import __version__
    console.print(f"[cyan]remote-bloom v{__version__}[/cyan]")


if __name__ == "__main__":
    main()
