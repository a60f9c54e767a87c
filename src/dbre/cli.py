"""
Command-line interface for dbre.
"""

import asyncio
import logging
import sys
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import DbreConfig, LoggingConfig
from .database.connection import ConnectionConfig, ConnectionPool
from .database.facade import DatabaseFacade
from .database.introspection import LiveSchemaReader, resolve_dialect
from .document.reader import PersistedModelReader
from .document.store import DocumentStore
from .exceptions import ConfigurationError, DbreError
from .schema.operations import ElementKind
from .schema.reconciler import DocumentReconciler


console = Console()
logger = logging.getLogger(__name__)


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DbreError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


def setup_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Configure the root logger from the logging settings."""
    level = logging.DEBUG if debug else getattr(logging, config.level)
    handlers = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(
            RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    logging.basicConfig(level=level, format=config.format, handlers=handlers, force=True)


def _load_config(ctx: click.Context, path: str) -> DbreConfig:
    dbre_config = DbreConfig.from_yaml(path)
    debug = bool(ctx.obj and ctx.obj.get("debug")) or dbre_config.debug
    setup_logging(dbre_config.logging, debug)
    return dbre_config


def _store_for(dbre_config: DbreConfig) -> DocumentStore:
    return DocumentStore(dbre_config.document.path, dbre_config.document.template)


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """dbre: reverse engineer a database schema into a persisted XML document."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="dbre-config.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new dbre configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    _create_default_config().to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Edit the configuration file with your database details")
    console.print(f"2. Run: dbre validate-config -c {output}")
    console.print(f"3. Run: dbre reconcile -c {output}")


@main.command()
@config_option
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        dbre_config = DbreConfig.from_yaml(config)
        dbre_config.validate_config()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")
    _display_config_summary(dbre_config)


@main.command()
@config_option
@click.option("--table", "-t", help="Only describe this table (LIKE pattern)")
@click.pass_context
@handle_errors
def introspect(ctx, config: str, table: Optional[str]):
    """Describe the live database schema."""
    dbre_config = _load_config(ctx, config)
    database = dbre_config.require_database()
    settings = dbre_config.introspection

    async def run_introspection() -> str:
        async with ConnectionPool(database.to_connection_config()) as pool:
            dialect = await resolve_dialect(pool, database.dialect)
            reader = LiveSchemaReader(
                pool,
                dialect.case_folding,
                include_tables=settings.include_tables,
                exclude_tables=settings.exclude_tables,
            )
            facade = DatabaseFacade(pool, dialect, introspection=reader)
            return await facade.describe(settings.to_filter(table))

    console.print(asyncio.run(run_introspection()), markup=False, highlight=False)


@main.command()
@config_option
@click.option("--package", "-p", help="Package that overrides the document package")
@click.option("--dry-run", is_flag=True, help="Plan the changes without writing the document")
@click.pass_context
@handle_errors
def reconcile(ctx, config: str, package: Optional[str], dry_run: bool):
    """Synchronize the persisted document with the live schema."""
    dbre_config = _load_config(ctx, config)
    database = dbre_config.require_database()
    settings = dbre_config.introspection
    document = dbre_config.document
    reconciler = DocumentReconciler(_store_for(dbre_config))

    async def run_reconcile():
        async with ConnectionPool(database.to_connection_config()) as pool:
            dialect = await resolve_dialect(pool, database.dialect)
            reader = LiveSchemaReader(
                pool,
                dialect.case_folding,
                include_tables=settings.include_tables,
                exclude_tables=settings.exclude_tables,
            )
            return await reconciler.reconcile_file(
                reader,
                settings.to_filter(),
                package_override=package or document.package,
                project_default_package=document.default_package,
                dry_run=dry_run,
            )

    result = asyncio.run(run_reconcile())

    summary_table = Table(title="Reconciliation Plan")
    summary_table.add_column("Element", style="cyan")
    for change_type in ("create", "update", "delete"):
        summary_table.add_column(change_type.title(), style="magenta", justify="right")
    for kind in ElementKind:
        changes = result.plan.for_kind(kind)
        summary_table.add_row(
            kind.value,
            *(str(sum(1 for c in changes if c.change_type.value == t)) for t in ("create", "update", "delete")),
        )
    console.print(summary_table)
    plan = result.plan
    if plan.package_changed and plan.previous_package:
        console.print(f"Package: {plan.previous_package} -> [green]{result.package}[/green]")
    else:
        console.print(f"Package: [green]{result.package}[/green]")
    if not plan.has_structural_changes:
        console.print("No elements added or removed")

    if dry_run:
        console.print("[yellow]Dry run: document not written[/yellow]")
    else:
        console.print(f"[green]✓[/green] Document written: {document.path}")


@main.command()
@config_option
@click.pass_context
@handle_errors
def tables(ctx, config: str):
    """List the tables recorded in the persisted document."""
    dbre_config = _load_config(ctx, config)
    store = _store_for(dbre_config)

    package, persisted = PersistedModelReader(str(store.path)).parse(store.load_existing())

    table_list = Table(title=f"Tables in {store.path} (package {package or '-'})")
    table_list.add_column("Name", style="cyan")
    table_list.add_column("Type", style="magenta")
    table_list.add_column("Columns", style="green", justify="right")
    table_list.add_column("Primary Key", style="yellow")
    table_list.add_column("Foreign Keys", style="green", justify="right")
    table_list.add_column("Indexes", style="green", justify="right")

    for table in persisted.values():
        table_list.add_row(
            table.name,
            table.table_type.value,
            str(len(table.columns)),
            ", ".join(pk.column_name for pk in table.primary_keys),
            str(len(table.foreign_keys)),
            str(len({index.name for index in table.indexes})),
        )

    console.print(table_list)


@main.command()
@config_option
@click.pass_context
@handle_errors
def sequences(ctx, config: str):
    """List sequences of the live database."""
    dbre_config = _load_config(ctx, config)
    database = dbre_config.require_database()

    async def run_sequences():
        async with ConnectionPool(database.to_connection_config()) as pool:
            dialect = await resolve_dialect(pool, database.dialect)
            return dialect, await DatabaseFacade(pool, dialect).get_sequences()

    dialect, names = asyncio.run(run_sequences())
    if not dialect.supports_sequences:
        console.print(f"[yellow]{dialect.name} does not support sequences[/yellow]")
        return
    if not names:
        console.print("No sequences found")
        return
    for name in sorted(names):
        console.print(name)


@main.command()
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Configuration file path"
)
@click.option("--url", help="postgresql:// URL used instead of the configured database")
@click.pass_context
@handle_errors
def test_connection(ctx, config: Optional[str], url: Optional[str]):
    """Test the database connection."""
    console.print("[blue]Testing connection...[/blue]")

    if url:
        setup_logging(LoggingConfig(), bool(ctx.obj and ctx.obj.get("debug")))
        connection_config = ConnectionConfig.from_url(url).model_copy(update={"read_only": True})
        dialect_name = None
    elif config:
        database = _load_config(ctx, config).require_database()
        connection_config = database.to_connection_config()
        dialect_name = database.dialect
    else:
        raise ConfigurationError("Pass --config or --url")

    async def run_connection_test():
        async with ConnectionPool(connection_config) as pool:
            version = await pool.fetchval("SELECT version()")
            dialect = await resolve_dialect(pool, dialect_name)
            return version, dialect, pool.get_stats()

    version, dialect, stats = asyncio.run(run_connection_test())
    console.print(f"  ✅ [green]Connected successfully[/green] to {connection_config.display_name}")
    console.print(f"     Server: {version.split(',')[0]}")
    console.print(f"     Dialect: {dialect.name} (identifiers {dialect.case_folding.value})")
    console.print(f"     Pool: {stats['size']} open, {stats['free']} idle")


def _create_default_config() -> DbreConfig:
    """Create a default configuration with examples."""
    from .config import DatabaseConnection, DocumentConfig, IntrospectionConfig

    return DbreConfig(
        database=DatabaseConnection(
            host="${POSTGRES_HOST}",
            port=5432,
            database="${POSTGRES_DB}",
            user="${POSTGRES_USER}",
            password="${POSTGRES_PASSWORD}",
        ),
        introspection=IntrospectionConfig(schema_pattern="public"),
        document=DocumentConfig(path="dbre.xml", default_package="com.example.domain"),
    )


def _display_config_summary(config: DbreConfig):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")

    db_table = Table(title="Database")
    db_table.add_column("Host", style="cyan")
    db_table.add_column("Database", style="magenta")
    db_table.add_column("User", style="green")
    db_table.add_column("Dialect", style="yellow")
    database = config.database
    db_table.add_row(
        f"{database.host}:{database.port}",
        database.database,
        database.user,
        database.dialect or "auto",
    )
    console.print(db_table)

    settings = config.introspection
    intro_table = Table(title="Introspection")
    intro_table.add_column("Setting", style="cyan")
    intro_table.add_column("Value", style="magenta")
    intro_table.add_row("Catalog", settings.catalog_pattern or "*")
    intro_table.add_row("Schema", settings.schema_pattern or "*")
    intro_table.add_row("Table", settings.table_pattern or "*")
    intro_table.add_row("Views", "yes" if settings.include_views else "no")
    intro_table.add_row("Include", ", ".join(settings.include_tables) or "all")
    intro_table.add_row("Exclude", ", ".join(settings.exclude_tables) or "none")
    console.print(intro_table)

    document = config.document
    doc_table = Table(title="Document")
    doc_table.add_column("Path", style="cyan")
    doc_table.add_column("Package", style="magenta")
    doc_table.add_column("Default Package", style="green")
    doc_table.add_row(document.path, document.package or "-", document.default_package or "-")
    console.print(doc_table)


if __name__ == "__main__":
    main()
