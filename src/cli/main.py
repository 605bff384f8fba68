"""CLI commands for the trendsearch engine."""

import json
import logging
import sys
from pathlib import Path

import click
import structlog

from src.api.auth import issue_api_key
from src.config import ConfigValidationError, EngineConfig, load_engine_config
from src.observability.logging import configure_logging
from src.search import SearchEngine, SortKey, SourceType, parse_filters
from src.search.errors import RecomputeInProgressError, SearchEngineError
from src.settings import get_settings
from src.store import SearchStore
from src.trending import TrendingCalculator


logger = structlog.get_logger()

COMPONENT_CLI = "cli"


def _db_path(db_path: Path | None) -> Path:
    return db_path or get_settings().db_path


def _load_config(config_path: Path | None) -> EngineConfig:
    """Load the engine configuration, exiting with hints when invalid."""
    try:
        return load_engine_config(config_path or get_settings().config_path)
    except ConfigValidationError as e:
        click.echo("Configuration validation failed:", err=True)
        for formatted in e.formatted():
            click.echo(f"  - {formatted}", err=True)
        sys.exit(1)


db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the SQLite database (default: TRENDSEARCH_DB_PATH).",
)
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to the engine YAML configuration.",
)


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Unified search and trending ranking engine CLI."""


@cli.command("init-db")
@db_option
def init_db(db_path: Path | None) -> None:
    """Create the database and apply pending migrations."""
    configure_logging(json_format=False)
    path = _db_path(db_path)
    with SearchStore(path) as store:
        click.echo(f"Database ready: {path} (schema version {store.get_schema_version()})")


@cli.command("db-stats")
@db_option
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
def db_stats(db_path: Path | None, json_output: bool) -> None:
    """Display row counts and schema version."""
    configure_logging(json_format=False)
    with SearchStore(_db_path(db_path)) as store:
        stats = store.get_stats()
        schema_version = store.get_schema_version()

    if json_output:
        click.echo(json.dumps({"schema_version": schema_version, "tables": stats}, indent=2))
        return
    click.echo("Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Schema Version: {schema_version}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(stats.items()):
        click.echo(f"  {table}: {count}")


@cli.command("validate-config")
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to the engine YAML configuration.",
)
def validate_config(config_path: Path) -> None:
    """Validate an engine configuration file."""
    configure_logging(json_format=False)
    config = _load_config(config_path)
    click.echo("Configuration is valid!")
    click.echo(f"  Max limit: {config.search.max_limit}")
    click.echo(f"  Retriever timeout: {config.search.retriever_timeout_seconds}s")
    click.echo(f"  Default tier: {config.quota.default_tier}")


@cli.command("issue-key")
@db_option
@click.option("--caller", "caller_id", required=True, help="Caller identity.")
@click.option(
    "--tier",
    "tier_name",
    default=None,
    help="Subscribe the caller to this tier (free, pro, enterprise).",
)
@click.option("--label", default=None, help="Free-form key label.")
def issue_key(
    db_path: Path | None, caller_id: str, tier_name: str | None, label: str | None
) -> None:
    """Issue an API key for a caller and print it once."""
    configure_logging(json_format=False)
    with SearchStore(_db_path(db_path)) as store:
        if tier_name is not None:
            try:
                store.create_subscription(caller_id, tier_name)
            except KeyError:
                click.echo(f"Error: Unknown tier '{tier_name}'", err=True)
                sys.exit(1)
        key = issue_api_key(store, caller_id, label)

    logger.info(
        "api_key_issued", component=COMPONENT_CLI, caller_id=caller_id, tier=tier_name
    )
    click.echo(key)


@cli.command("recompute-trending")
@db_option
@config_option
def recompute_trending(db_path: Path | None, config_path: Path | None) -> None:
    """Recompute cached trending scores."""
    configure_logging(json_format=False)
    config = _load_config(config_path)
    with SearchStore(_db_path(db_path)) as store:
        try:
            result = TrendingCalculator(store, config.trending).recompute()
        except RecomputeInProgressError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)

    click.echo(
        f"Scored {result.trends_scored} trends and {result.repos_scored} repos "
        f"({result.failed} failed)"
    )
    for failure in result.failures:
        click.echo(
            f"  {failure.item_type.value} {failure.item_id}: {failure.error}", err=True
        )


@cli.command()
@db_option
@config_option
@click.argument("query", required=False, default="")
@click.option(
    "--source",
    "sources",
    multiple=True,
    type=click.Choice([s.value for s in SourceType]),
    help="Restrict to a source (repeatable).",
)
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice([k.value for k in SortKey]),
    default=SortKey.RELEVANCE.value,
    show_default=True,
)
@click.option("--limit", type=int, default=10, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
def search(  # noqa: PLR0913
    db_path: Path | None,
    config_path: Path | None,
    query: str,
    sources: tuple[str, ...],
    sort_by: str,
    limit: int,
    offset: int,
    json_output: bool,
) -> None:
    """Run a unified search from the command line."""
    configure_logging(level=logging.WARNING, json_format=False)
    config = _load_config(config_path)
    with SearchStore(_db_path(db_path)) as store:
        try:
            filters = parse_filters(
                {
                    "query": query,
                    "sources": list(sources),
                    "sortBy": sort_by,
                    "limit": limit,
                    "offset": offset,
                }
            )
            response = SearchEngine(store, config).search(filters)
        except SearchEngineError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)

    if json_output:
        click.echo(json.dumps(response.to_wire(), indent=2))
        return
    click.echo(f"{response.total} results (search {response.search_id})")
    for result in response.results:
        click.echo(f"  [{result.item_type.value}] {result.title}")
    for error in response.source_errors:
        click.echo(f"  ! {error.source.value}: {error.error_type}", err=True)


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.option(
    "--json-logs/--no-json-logs",
    default=None,
    help="Use JSON format for logs (default: TRENDSEARCH_LOG_JSON).",
)
def serve(host: str, port: int, json_logs: bool | None) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from src.api import create_app

    settings = get_settings()
    configure_logging(
        level=settings.log_level_value,
        json_format=settings.log_json if json_logs is None else json_logs,
    )
    app = create_app(settings, _load_config(settings.config_path))
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    cli()
