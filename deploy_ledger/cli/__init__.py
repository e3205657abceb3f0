"""
Command Line Interface for the deploy ledger.

Read-mostly: inspect what is deployed and search the event history. Deploys
and reverts are recorded by the engine that runs them, through LedgerStore.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..db.base import get_engine, get_session_local, init_database
from ..errors import LedgerError
from ..ledger import LedgerStore
from ..log import configure_logging
from ..plan import Identity, Plan

app = typer.Typer(help="Deploy Ledger - record and inspect schema change deployments")
console = Console()


class _State:
    database_url: Optional[str] = None
    project: Optional[str] = None


state = _State()


@app.callback()
def main(
    database_url: Optional[str] = typer.Option(
        None, "--db", help="Target database URL (defaults to LEDGER_DATABASE_URL)"
    ),
    project: Optional[str] = typer.Option(
        None, "--project", "-p", help="Project name (defaults to LEDGER_PROJECT)"
    ),
):
    """Configure logging and remember global options."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    state.database_url = database_url
    state.project = project or settings.project


@contextmanager
def open_store(require_project: bool = True) -> Iterator[LedgerStore]:
    settings = get_settings()
    if require_project and not state.project:
        console.print("❌ No project given; use --project or set LEDGER_PROJECT")
        raise typer.Exit(code=2)

    session = get_session_local(bind=get_engine(state.database_url))()
    try:
        store = LedgerStore(
            session,
            Plan(project=state.project or "-", uri=settings.project_uri),
            Identity(name=settings.user_name, email=settings.user_email),
        )
        yield store
    except LedgerError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)
    finally:
        session.close()


def _fmt(value) -> str:
    return value.isoformat() if value is not None else ""


@app.command()
def init():
    """Create the ledger tables in the target database."""
    init_database(get_engine(state.database_url))
    console.print("✅ Ledger schema initialized")


@app.command()
def register():
    """Register the project (and LEDGER_PROJECT_URI) in the ledger."""
    with open_store() as store:
        store.register_project()
        console.print(f"✅ Project {store.plan.project} registered")


@app.command()
def projects():
    """List registered projects."""
    with open_store(require_project=False) as store:
        for name in store.registered_projects():
            console.print(name)


@app.command()
def status():
    """Show the most recently deployed change."""
    with open_store() as store:
        current = store.current_state()
        if current is None:
            console.print(f"No changes deployed for {store.plan.project}")
            raise typer.Exit(code=1)

        tags = ", ".join(current["tags"]) or "-"
        body = (
            f"[cyan]Change:[/cyan]   {current['change_id']}\n"
            f"[cyan]Name:[/cyan]     {current['change']}\n"
            f"[cyan]Tags:[/cyan]     {tags}\n"
            f"[cyan]Deployed:[/cyan] {_fmt(current['committed_at'])}\n"
            f"[cyan]By:[/cyan]       {current['committer_name']} <{current['committer_email']}>"
        )
        console.print(Panel.fit(body, title=f"Project {current['project']}", style="bold"))


@app.command()
def changes():
    """List deployed changes, newest first."""
    with open_store() as store:
        table = Table(title="Deployed changes", show_header=True, header_style="bold magenta")
        table.add_column("Change", style="cyan")
        table.add_column("ID")
        table.add_column("Deployed")
        table.add_column("Committer")
        with store.current_changes() as rows:
            for row in rows:
                table.add_row(
                    row["change"],
                    row["change_id"],
                    _fmt(row["committed_at"]),
                    row["committer_name"],
                )
        console.print(table)


@app.command()
def tags():
    """List tags on deployed changes, newest first."""
    with open_store() as store:
        table = Table(title="Tags", show_header=True, header_style="bold magenta")
        table.add_column("Tag", style="cyan")
        table.add_column("ID")
        table.add_column("Applied")
        table.add_column("Committer")
        with store.current_tags() as rows:
            for row in rows:
                table.add_row(
                    row["tag"],
                    row["tag_id"],
                    _fmt(row["committed_at"]),
                    row["committer_name"],
                )
        console.print(table)


@app.command()
def log(
    event: Optional[List[str]] = typer.Option(None, "--event", "-e", help="deploy, revert or fail"),
    change: Optional[str] = typer.Option(None, help="Regex on change name"),
    project: Optional[str] = typer.Option(None, "--match-project", help="Regex on project name"),
    committer: Optional[str] = typer.Option(None, help="Regex on committer name"),
    planner: Optional[str] = typer.Option(None, help="Regex on planner name"),
    limit: Optional[int] = typer.Option(None, help="Maximum number of events"),
    offset: Optional[int] = typer.Option(None, help="Number of events to skip"),
    reverse: bool = typer.Option(False, help="Oldest first"),
):
    """Search the event history."""
    emoji = {"deploy": "🟢", "revert": "🟡", "fail": "🔴"}
    with open_store(require_project=False) as store:
        with store.search_events(
            event=event or None,
            change=change,
            project=project,
            committer=committer,
            planner=planner,
            limit=limit,
            offset=offset,
            direction="ASC" if reverse else "DESC",
        ) as rows:
            for row in rows:
                console.print(
                    f"{emoji.get(row['event'], '❓')} {row['event']:<6} "
                    f"{row['project']}:{row['change']} "
                    f"[dim]{row['change_id']}[/dim] "
                    f"{_fmt(row['committed_at'])} {row['committer_name']}"
                )


if __name__ == "__main__":
    app()
