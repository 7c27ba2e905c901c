"""Command Line Interface for the PlainDoctor build pipeline."""

import sys
from typing import Optional
import click
import structlog
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from .. import __version__
from ..core.config import Config, load_config
from ..core.exceptions import PlainDoctorError
from ..core.pipeline import BuildPipeline
from ..export.seed_loader import replay_seed_files


def _configure_logging(level: int) -> None:
    structlog.configure(
        processors=[
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# Setup structured logging
_configure_logging(20)  # INFO level

logger = structlog.get_logger()
console = Console()


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """PlainDoctor - NPPES provider registry build pipeline."""

    if verbose:
        _configure_logging(10)  # DEBUG level

    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)

    if ctx.invoked_subcommand != 'version':
        console.print(Panel.fit(
            "[bold blue]PlainDoctor[/bold blue]\n"
            "NPPES provider registry build pipeline\n"
            f"Version {__version__}",
            style="cyan"
        ))


@cli.command()
def version():
    """Show version information."""
    console.print(f"PlainDoctor ETL version {__version__}")


def _run_stage(description: str, action):
    """Run a pipeline action under a spinner; fatal errors exit non-zero."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        task = progress.add_task(description, total=None)
        try:
            result = action()
        except PlainDoctorError as e:
            progress.update(task, description=f"Failed: {e}")
            console.print(f"[bold red]Error:[/bold red] {e}")
            sys.exit(1)
        progress.update(task, description="Done!")
    return result


@cli.command()
@click.option('--raw-dir', help='Directory holding the extract and taxonomy files')
@click.option('--extract', help='Explicit NPPES extract path')
@click.option('--taxonomy', help='NUCC taxonomy file path')
@click.option('--db', help='Output database path')
@click.pass_context
def build(ctx, raw_dir: Optional[str], extract: Optional[str], taxonomy: Optional[str], db: Optional[str]):
    """Build the provider store from the extract and taxonomy files."""
    config = _with_overrides(ctx.obj['config'], raw_dir=raw_dir, extract_file=extract,
                             taxonomy_file=taxonomy, db_path=db)
    pipeline = BuildPipeline(config)

    console.print(f"[bold green]Building store[/bold green] -> {config.paths.db_path}")
    result = _run_stage("Building store...", pipeline.run_build)
    _display_build_results(result)


@cli.command('export-seed')
@click.option('--db', help='Database path')
@click.option('--output', '-o', help='Seed output directory')
@click.option('--chunk-size', type=int, help='Rows per seed file')
@click.pass_context
def export_seed(ctx, db: Optional[str], output: Optional[str], chunk_size: Optional[int]):
    """Export the store as chunked SQL seed files."""
    config = _with_overrides(ctx.obj['config'], db_path=db, seed_dir=output)
    if chunk_size:
        config.export.chunk_size = chunk_size
        config.export.provider_chunk_size = chunk_size
    pipeline = BuildPipeline(config)

    console.print(f"[bold blue]Exporting seed files to:[/bold blue] {config.paths.seed_dir}")
    result = _run_stage("Exporting seed files...", pipeline.run_export)
    _display_export_results(result)


@cli.command('export-precomputed')
@click.option('--db', help='Database path')
@click.option('--output', '-o', help='JSON output path')
@click.pass_context
def export_precomputed(ctx, db: Optional[str], output: Optional[str]):
    """Write the precomputed JSON summary."""
    config = _with_overrides(ctx.obj['config'], db_path=db, precomputed_path=output)
    pipeline = BuildPipeline(config)

    result = _run_stage("Writing precomputed summary...", pipeline.run_precompute)
    console.print(f"[bold green]Wrote[/bold green] {result['output_path']} ({result['size_kb']} KB)")
    console.print(f"States: {result['states']}  Specialties: {result['specialties']}")


@cli.command()
@click.pass_context
def run(ctx):
    """Build the store, then export seed files and the precomputed summary."""
    pipeline = BuildPipeline(ctx.obj['config'])
    result = _run_stage("Running full pipeline...", pipeline.run_all)
    _display_build_results(result)
    _display_export_results(result["stages"]["seed_export"])


@cli.command('load-seed')
@click.option('--seed-dir', help='Directory of seed files')
@click.option('--db', required=True, help='Target database path (should be empty)')
@click.pass_context
def load_seed(ctx, seed_dir: Optional[str], db: str):
    """Replay seed files, in filename order, into a database."""
    config = ctx.obj['config']
    source = seed_dir or config.paths.seed_dir
    result = _run_stage("Replaying seed files...", lambda: replay_seed_files(source, db))
    console.print(f"[bold green]Replayed {result['files_replayed']} files into[/bold green] {db}")


@cli.command()
@click.pass_context
def status(ctx):
    """Show row counts of the current store."""
    pipeline = BuildPipeline(ctx.obj['config'])
    try:
        status_info = pipeline.get_status()
    except PlainDoctorError as e:
        console.print(f"[bold red]Error getting status:[/bold red] {e}")
        sys.exit(1)
    _display_status(status_info)


@cli.command()
@click.option('--output', '-o', default='plaindoctor.yaml', help='Output configuration file path')
def init_config(output: str):
    """Initialize a new configuration file."""
    config = Config()
    config.to_yaml(output)
    console.print(f"[bold green]Configuration file created:[/bold green] {output}")
    console.print("Edit the configuration file and run the pipeline with: plaindoctor-etl -c plaindoctor.yaml run")


def _with_overrides(config: Config, **paths) -> Config:
    """Copy of ``config`` with any non-empty path options applied."""
    updates = {key: value for key, value in paths.items() if value}
    if not updates:
        return config
    return config.model_copy(update={"paths": config.paths.model_copy(update=updates)})


def _display_build_results(result: dict):
    """Display build stage results."""
    console.print("\n[bold green]Build Results:[/bold green]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Stage")
    table.add_column("Details")

    stages = result.get("stages", {})
    ingestion = stages.get("ingestion", {})
    if ingestion:
        table.add_row(
            "Ingestion",
            f"Inserted: {ingestion['stored']:,}  Skipped: {ingestion['skipped']:,}  "
            f"Duplicates: {ingestion['duplicates_ignored']:,}",
        )
        for reason, count in sorted(ingestion.get("skip_reasons", {}).items()):
            table.add_row(f"  skipped: {reason}", f"{count:,}")
    for name, count in stages.get("aggregation", {}).items():
        table.add_row(f"Table: {name}", f"{count:,} rows")
    if "indexes" in stages:
        table.add_row("Indices", f"{stages['indexes']['indexes_created']} created")
    for key, value in stages.get("stats", {}).items():
        table.add_row(f"Stat: {key}", f"{value:,}")

    console.print(table)
    if "db_size_mb" in result:
        console.print(f"Database: {result['db_path']} ({result['db_size_mb']} MB)")


def _display_export_results(result: dict):
    """Display seed export results."""
    console.print(f"\n[bold green]Seed Export Results:[/bold green]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Table")
    table.add_column("Rows")
    table.add_column("Files")

    for table_name, table_result in result.get("tables", {}).items():
        table.add_row(table_name, f"{table_result['rows']:,}", str(table_result['files']))

    console.print(table)
    console.print(f"Total: {result.get('total_files', 0)} seed files in {result.get('output_directory')}")


def _display_status(status_info: dict):
    """Display store status information."""
    console.print("\n[bold blue]Store Status:[/bold blue]")

    if not status_info.get("exists"):
        console.print(f"[yellow]No store at {status_info.get('db_path')}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Table")
    table.add_column("Rows")

    for table_name, count in status_info.get("tables", {}).items():
        table.add_row(table_name, f"{count:,}")

    console.print(table)


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
