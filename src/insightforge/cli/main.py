"""CLI for insightforge."""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from insightforge.config import Settings
from insightforge.engine import InsightsEngine
from insightforge.errors import InsightsError
from insightforge.models.application import LongTableApplication
from insightforge.models.query import EventsQuery, InsightQuery, InsightType, Series
from insightforge.registry import describe_url

app = typer.Typer(
    name="insight",
    help="insightforge - Insights Query Engine CLI",
    no_args_is_help=True,
)
console = Console()

# what a failed command can reasonably run into; anything else is a bug
CLI_ERRORS = (InsightsError, ValueError, OSError, yaml.YAMLError)


def get_engine(db_path: str | None = None, apps_file: Path | None = None) -> InsightsEngine:
    overrides: dict[str, Any] = {}
    if db_path:
        overrides["internal_database_path"] = db_path
    if apps_file:
        # pointing at an applications file means we want the warehouse
        overrides["warehouse_applications_file"] = apps_file
        overrides["warehouse_enabled"] = True
    return InsightsEngine(Settings(**overrides))


def _load_document(path: Path) -> dict[str, Any]:
    """Read a query file. json is valid yaml, so one loader covers both."""
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    return data


DbOption = Annotated[str | None, typer.Option("--db", help="Internal DuckDB database path")]
AppsOption = Annotated[
    Path | None, typer.Option("--apps", "-a", help="Warehouse applications file (yaml/json)")
]


@app.command()
def query(
    query_file: Annotated[Path, typer.Argument(help="Insight query file (json or yaml)")],
    db_path: DbOption = None,
    apps_file: AppsOption = None,
    show_sql: Annotated[bool, typer.Option("--sql", "-s", help="Show generated SQL")] = False,
    output: Annotated[str, typer.Option("--output", "-o", help="Output format: table, json")] = "table",
) -> None:
    """Run an insight query and print its series."""
    try:
        insight = InsightQuery.model_validate(_load_document(query_file))
        with get_engine(db_path, apps_file) as engine:
            if show_sql:
                console.print(Syntax(engine.show_sql(insight), "sql", theme="monokai"))
                console.print()
            series = engine.query(insight)
    except CLI_ERRORS as e:
        console.print(f"[red]Query error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    _output_series(series, output)


def _output_series(series: list[Series], output_format: str) -> None:
    if output_format == "json":
        console.print(json.dumps([s.model_dump() for s in series], indent=2))
        return

    if not series:
        console.print("[yellow]No series returned[/yellow]")
        return

    table = Table(title=f"Insight ({len(series)} series)")
    table.add_column("Date", style="cyan")
    for s in series:
        table.add_column(s.name, justify="right")

    # every series shares the same date axis
    for i, point in enumerate(series[0].data):
        table.add_row(point.date, *(str(s.data[i].value) for s in series))

    console.print(table)


@app.command("show-sql")
def show_sql(
    query_file: Annotated[Path, typer.Argument(help="Insight query file (json or yaml)")],
    db_path: DbOption = None,
    apps_file: AppsOption = None,
) -> None:
    """Show generated SQL without executing."""
    try:
        insight = InsightQuery.model_validate(_load_document(query_file))
        with get_engine(db_path, apps_file) as engine:
            sql = engine.show_sql(insight)
    except CLI_ERRORS as e:
        console.print(f"[red]Error generating SQL: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    syntax = Syntax(sql, "sql", theme="monokai", line_numbers=True)
    console.print(syntax)


@app.command()
def events(
    query_file: Annotated[Path, typer.Argument(help="Events query file (json or yaml)")],
    db_path: DbOption = None,
    apps_file: AppsOption = None,
    cursor: Annotated[str | None, typer.Option("--cursor", "-c", help="Cursor from the previous page")] = None,
    limit: Annotated[int | None, typer.Option("--limit", "-l", help="Page size")] = None,
    output: Annotated[str, typer.Option("--output", "-o", help="Output format: table, json")] = "table",
) -> None:
    """List raw events one page at a time."""
    try:
        document = _load_document(query_file)
        # command line wins over the file
        if cursor is not None:
            document["cursor"] = cursor
        if limit is not None:
            document["limit"] = limit
        events_query = EventsQuery.model_validate(document)
        with get_engine(db_path, apps_file) as engine:
            page = engine.query_events(events_query)
    except CLI_ERRORS as e:
        console.print(f"[red]Query error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if output == "json":
        console.print(json.dumps(page.model_dump(), indent=2, default=str))
        return

    if page.items:
        table = Table(title=f"Events ({len(page.items)} rows)")
        columns = list(page.items[0].keys())
        for col in columns:
            table.add_column(col)
        for item in page.items:
            table.add_row(*(str(item.get(c, "")) for c in columns))
        console.print(table)
    else:
        console.print("[yellow]No events in range[/yellow]")

    if page.next_cursor is not None:
        console.print(f"Next cursor: {page.next_cursor}")


@app.command()
def apps(apps_file: AppsOption = None) -> None:
    """List configured warehouse applications."""
    try:
        with get_engine(apps_file=apps_file) as engine:
            applications = engine.registry.applications()
            default_url = engine.settings.warehouse_url
    except CLI_ERRORS as e:
        console.print(f"[red]Error loading applications: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not applications:
        console.print("[yellow]No warehouse applications configured[/yellow]")
        return

    table = Table(title="Warehouse Applications")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Table(s)")
    table.add_column("Database", style="yellow")

    for application in applications:
        if isinstance(application, LongTableApplication):
            tables = (
                f"{application.event_table.name}, {application.event_parameters_table.name}"
            )
        else:
            tables = application.table_name
        url = application.database_url or default_url
        table.add_row(application.name, application.type, tables, describe_url(url) if url else "-")

    console.print(table)


@app.command("event-names")
def event_names(
    insight_id: Annotated[str, typer.Argument(help="Website id or application name")],
    insight_type: Annotated[
        InsightType, typer.Option("--type", "-t", help="Insight type")
    ] = InsightType.INTERNAL,
    db_path: DbOption = None,
    apps_file: AppsOption = None,
) -> None:
    """List event names seen over the last 30 days."""
    try:
        with get_engine(db_path, apps_file) as engine:
            names = engine.list_event_names(insight_id, insight_type)
    except CLI_ERRORS as e:
        console.print(f"[red]Error listing events: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not names:
        console.print("[yellow]No events found[/yellow]")
        return

    table = Table(title="Event Names")
    table.add_column("Name", style="cyan")
    table.add_column("Count", justify="right")
    for row in names:
        count = row["count"]
        table.add_row(str(row["name"]), "-" if count is None else str(count))

    console.print(table)


@app.command("validate-config")
def validate_config(apps_file: AppsOption = None) -> None:
    """Validate the warehouse application config."""
    try:
        with get_engine(apps_file=apps_file) as engine:
            applications = engine.registry.applications()
    except CLI_ERRORS as e:
        console.print("[red]Validation failed:[/red]")
        console.print(f"  - {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[green]Validated {len(applications)} warehouse applications successfully![/green]")


if __name__ == "__main__":
    app()
