"""Command-line entry points for running and maintaining the MyRSSPress backend."""

import os
from typing import List, Optional

import typer
from rich import print as rprint
from rich.table import Table

from . import feed_usage
from .cleanup import cleanup_old_newspapers
from .logging_config import configure_logging
from .reliable_feeds import SEED_CATEGORIES, seed_feeds, seed_taxonomy

app = typer.Typer(help="Run and maintain the MyRSSPress API.")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Overrides LOG_LEVEL (e.g. DEBUG, INFO)."
    ),
    log_format: Optional[str] = typer.Option(
        None, "--log-format", help="Overrides LOG_FORMAT: 'text' or 'json'."
    ),
):
    configure_logging(level=log_level, log_format=log_format)


@app.command("serve")
def serve(
    host: str = typer.Option(os.getenv("HOST", "0.0.0.0"), help="Bind address."),
    port: int = typer.Option(int(os.getenv("PORT", "3001")), help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes."),
):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("myrsspress.server:app", host=host, port=port, reload=reload)


@app.command("cleanup")
def cleanup():
    """Delete per-date newspapers older than the retention window."""
    try:
        deleted = cleanup_old_newspapers()
    except Exception as exc:
        rprint(f"[red]Cleanup failed: {exc}[/red]")
        raise typer.Exit(code=1)
    rprint(f"[green]Deleted {deleted} old newspapers[/green]")


@app.command("seed-categories")
def seed_categories(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Preview the taxonomy without writing."
    ),
):
    """Load the curated category and feed taxonomy into the table."""
    if dry_run:
        table = Table(title="Seed categories")
        table.add_column("Locale")
        table.add_column("Category")
        table.add_column("Keywords")
        table.add_column("Feeds", justify="right")
        feeds = seed_feeds()
        for category in SEED_CATEGORIES:
            count = sum(1 for f in feeds if f.category_id == category.category_id)
            table.add_row(
                category.locale,
                f"{category.category_id} ({category.display_name})",
                ", ".join(category.keywords),
                str(count),
            )
        rprint(table)

    report = seed_taxonomy(dry_run=dry_run)
    verb = "Would create" if dry_run else "Created"
    rprint(
        f"[green]{verb} {len(report.created_categories)} categories "
        f"({len(report.skipped_categories)} skipped) and {report.created_feeds} feeds "
        f"({report.skipped_feeds} skipped)[/green]"
    )
    for failure in report.failures:
        rprint(f"[red]Failed: {failure}[/red]")
    if report.failures:
        raise typer.Exit(code=1)


@app.command("promote-feeds")
def promote_feeds(
    category_id: str = typer.Argument(..., help="Category to promote feeds into."),
    urls: List[str] = typer.Argument(..., help="Feed URLs with recorded usage."),
):
    """Promote qualifying feeds from usage statistics into a category."""
    promoted = feed_usage.promote_feeds_if_qualified(urls, category_id)
    rprint(f"[cyan]Promoted {promoted}/{len(urls)} feeds into {category_id}[/cyan]")


if __name__ == "__main__":
    app()
