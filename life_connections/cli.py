"""CLI for Life Connections.

Commands for:
- Database initialization
- Loading daily records
- Running an analysis for a user
- Listing, dismissing and expiring stored connections
"""

from __future__ import annotations

import asyncio
import json
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from life_connections.engine.models import AnalysisResult, Connection

console = Console()


# ============================================================================
# Rich Formatting Helpers
# ============================================================================


def format_strength(strength: str) -> str:
    """Format connection strength with color."""
    colors = {
        "strong": "green bold",
        "moderate": "yellow",
        "weak": "white",
    }
    color = colors.get(strength.lower(), "white")
    return f"[{color}]{strength}[/{color}]"


def format_direction_arrow(direction: str) -> str:
    """Format connection direction as arrow."""
    arrows = {
        "positive": "[green]↑[/green]",
        "negative": "[red]↓[/red]",
    }
    return arrows.get(direction.lower(), "?")


def connections_table(connections: list[Connection], title: str) -> Table:
    """Build a table of connections."""
    table = Table(title=title)
    table.add_column("Connection", max_width=40)
    table.add_column("Category", style="cyan")
    table.add_column("r", justify="right")
    table.add_column("Strength")
    table.add_column("q", justify="right", style="magenta")
    table.add_column("n", justify="right")
    table.add_column("Confounders")

    for c in connections:
        label = c.title or f"{c.domain_a.display_name} ↔ {c.domain_b.display_name}"
        adjusted = c.metrics.adjusted_p_value
        table.add_row(
            f"{format_direction_arrow(c.direction.value)} {label}",
            c.category,
            f"{c.metrics.coefficient:+.2f}",
            format_strength(c.strength.value),
            f"{adjusted:.3f}" if adjusted is not None else "-",
            str(c.metrics.sample_size),
            "[green]holds[/green]" if c.survives_confounder_control else "[yellow]check[/yellow]",
        )
    return table


def _load_options(config_path: Path, **overrides: Any):
    from life_connections.config import get_analysis_options, load_analysis_config

    config = load_analysis_config(config_path) if config_path.exists() else {}
    return get_analysis_options(config, **overrides)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/analysis.yaml",
    help="Path to analysis configuration file",
)
@click.pass_context
def main(ctx: click.Context, config: Path) -> None:
    """Life Connections - discover how the parts of your life relate."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


@main.command()
def init() -> None:
    """Initialize database schema."""
    from life_connections.config import Settings
    from life_connections.database import Database, init_schema

    async def _init() -> None:
        settings = Settings()
        db = Database(settings.database_url)
        await db.connect()
        try:
            await init_schema(db)
            console.print("[green]Database schema initialized successfully.[/green]")
        finally:
            await db.close()

    asyncio.run(_init())


@main.command()
@click.argument("user_id")
@click.argument("records_file", type=click.Path(exists=True, path_type=Path))
def load(user_id: str, records_file: Path) -> None:
    """Load daily records for USER_ID from a JSON file.

    The file holds a list of objects with domain, metric, date and value.
    """
    from life_connections.config import Settings
    from life_connections.database import Database
    from life_connections.engine.series_builder import DailyRecord
    from life_connections.errors import SeriesBuildError
    from life_connections.repositories import DailyRecordRepository

    with open(records_file) as f:
        records = [DailyRecord(**item) for item in json.load(f)]

    async def _load() -> int:
        settings = Settings()
        db = Database(settings.database_url)
        await db.connect()
        try:
            return await DailyRecordRepository(db).add_records(user_id, records)
        finally:
            await db.close()

    try:
        count = asyncio.run(_load())
    except SeriesBuildError as e:
        console.print(f"[red]Records rejected:[/red] {e}")
        raise SystemExit(1)
    console.print(f"[green]Loaded {count} records for {user_id}.[/green]")


@main.command()
@click.argument("user_id")
@click.option("--lookback-days", "-l", type=int, default=None, help="Days of history to analyze")
@click.option("--time-lag/--no-time-lag", default=None, help="Search for lagged relationships")
@click.option("--max-lag", type=int, default=None, help="Largest lag in days to test")
@click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Last day of the window")
@click.option("--no-narrative", is_flag=True, help="Skip narrative generation")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def analyze(
    ctx: click.Context,
    user_id: str,
    lookback_days: int | None,
    time_lag: bool | None,
    max_lag: int | None,
    as_of: Any,
    no_narrative: bool,
    as_json: bool,
) -> None:
    """Analyze USER_ID's data and replace their stored connections.

    Examples:

        lconn analyze alice                 # Default 40-day window

        lconn analyze alice --time-lag      # Also test 1-3 day lags
    """
    from life_connections.cache import Cache
    from life_connections.config import Settings
    from life_connections.database import Database
    from life_connections.engine.pipeline import LifeConnectionsAnalyzer, result_to_dict
    from life_connections.narrative import NarrativeGenerator
    from life_connections.repositories import ConnectionRepository, DailyRecordRepository
    from redis.exceptions import RedisError

    options = _load_options(
        ctx.obj["config_path"],
        lookback_days=lookback_days,
        include_time_lag=time_lag,
        max_time_lag_days=max_lag,
    )
    window_end: date | None = as_of.date() if as_of else None

    async def _analyze() -> AnalysisResult:
        settings = Settings()
        db = Database(settings.database_url)
        await db.connect()
        cache = None
        narrative = None
        try:
            if not no_narrative and settings.anthropic_api_key:
                cache = Cache(settings.redis_url)
                try:
                    await cache.connect()
                except (RedisError, OSError) as e:
                    console.print(f"[yellow]Redis unavailable, narratives uncached: {e}[/yellow]")
                    cache = None
                narrative = NarrativeGenerator(
                    api_key=settings.anthropic_api_key,
                    model=settings.narrative_model,
                    cache=cache,
                    cache_ttl=settings.narrative_cache_ttl_seconds,
                )

            analyzer = LifeConnectionsAnalyzer.from_settings(
                settings,
                DailyRecordRepository(db),
                ConnectionRepository(db),
                narrative,
            )
            return await analyzer.analyze(user_id, options, as_of=window_end)
        finally:
            if cache:
                await cache.close()
            await db.close()

    result = asyncio.run(_analyze())

    if as_json:
        click.echo(json.dumps(result_to_dict(result), indent=2))
    elif not result.success:
        console.print(f"[red]Analysis failed:[/red] {result.error}")
    else:
        console.print(
            f"[bold]Analyzed {result.pairs_analyzed} pairs[/bold], "
            f"{result.significant_pairs} significant, "
            f"{len(result.connections)} connections saved."
        )
        if result.connections:
            console.print(connections_table(result.connections, f"Connections for {user_id}"))

    if not result.success:
        raise SystemExit(1)


@main.command()
@click.argument("user_id")
@click.option("--limit", "-n", default=20, help="Maximum connections to show")
@click.option("--all", "include_dismissed", is_flag=True, help="Include dismissed connections")
def connections(user_id: str, limit: int, include_dismissed: bool) -> None:
    """List stored connections for USER_ID."""
    from life_connections.config import Settings
    from life_connections.database import Database
    from life_connections.repositories import ConnectionRepository

    async def _list() -> list[Connection]:
        settings = Settings()
        db = Database(settings.database_url)
        await db.connect()
        try:
            repo = ConnectionRepository(db)
            return await repo.get_for_user(user_id, include_dismissed=include_dismissed, limit=limit)
        finally:
            await db.close()

    found = asyncio.run(_list())
    if not found:
        console.print(f"[yellow]No connections stored for {user_id}.[/yellow]")
        return

    console.print(connections_table(found, f"Connections for {user_id}"))
    for c in found:
        if c.with_without:
            ww = c.with_without
            console.print(
                f"  [dim]{c.domain_a.display_name} / {c.domain_b.display_name}:[/dim] "
                f"{ww.with_activity.mean:.2f} with vs {ww.without_activity.mean:.2f} without"
            )


@main.command()
@click.argument("connection_id")
def dismiss(connection_id: str) -> None:
    """Hide a stored connection."""
    from life_connections.config import Settings
    from life_connections.database import Database
    from life_connections.repositories import ConnectionRepository

    async def _dismiss() -> bool:
        settings = Settings()
        db = Database(settings.database_url)
        await db.connect()
        try:
            return await ConnectionRepository(db).dismiss(connection_id)
        finally:
            await db.close()

    if asyncio.run(_dismiss()):
        console.print(f"[green]Dismissed {connection_id}.[/green]")
    else:
        console.print(f"[red]No connection {connection_id}.[/red]")


@main.command()
def cleanup() -> None:
    """Delete connections past their expiry date."""
    from life_connections.config import Settings
    from life_connections.database import Database
    from life_connections.repositories import ConnectionRepository

    async def _cleanup() -> int:
        settings = Settings()
        db = Database(settings.database_url)
        await db.connect()
        try:
            return await ConnectionRepository(db).delete_expired()
        finally:
            await db.close()

    count = asyncio.run(_cleanup())
    console.print(f"[green]Deleted {count} expired connections.[/green]")


@main.command()
@click.option("--format", "-f", type=click.Choice(["text", "json"]), default="text")
def version(format: str) -> None:
    """Show Life Connections version and system information."""
    import platform
    import sys
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        lc_version = pkg_version("life-connections")
    except PackageNotFoundError:
        lc_version = "development"

    info = {
        "version": lc_version,
        "python": sys.version.split()[0],
        "platform": platform.system(),
    }

    if format == "json":
        click.echo(json.dumps(info, indent=2))
    else:
        console.print(f"[bold]Life Connections[/bold] v{info['version']}")
        console.print(f"  Python: {info['python']}")
        console.print(f"  Platform: {info['platform']}")


if __name__ == "__main__":
    main()
