"""
Command-line interface for feed_hub.

Uses Typer for the commands and Rich for output. Loads a .env file for API
keys and a YAML config for everything else. ``run-due`` is meant to be
invoked by cron once per plan tier.
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
import typer
from rich.console import Console

from .billing import StaticBillingDirectory
from .config import AppConfig, load_config
from .core.errors import FeedHubError
from .core.types import Plan
from .llm.tracing import flush
from .runner import App, build_app, render_pass_report

app = typer.Typer(add_completion=False)
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", exists=True, help="YAML config file.")
BillingOption = typer.Option(
    None, "--billing", exists=True, help="YAML file mapping subscriber ids to payment records."
)
DbOption = typer.Option(None, "--db", help="Override the SQLite database path.")


def _load(config: Path | None, billing: Path | None, db: Path | None, log_level: str | None = None) -> App:
    load_dotenv()
    cfg: AppConfig = load_config(str(config) if config else None)
    if db is not None:
        cfg.storage.backend = "sqlite"
        cfg.storage.path = str(db)
    if log_level:
        cfg.logging.level = log_level
    directory = StaticBillingDirectory.from_yaml(billing) if billing else None
    return build_app(cfg, billing=directory)


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {exc}")
    flush()
    raise typer.Exit(code=1)


@app.command()
def add(
    url: str = typer.Argument(..., help="Feed or website URL."),
    subscriber: str | None = typer.Option(None, "--subscriber", "-s", help="Subscribe this user or team:<id>."),
    category: str | None = typer.Option(None, "--category"),
    config: Path | None = ConfigOption,
    billing: Path | None = BillingOption,
    db: Path | None = DbOption,
):
    """Add a feed (fetching it once) and optionally subscribe to it."""
    hub = _load(config, billing, db)
    try:
        if subscriber:
            subscription = hub.service.subscribe(url, subscriber, category=category)
            feed = hub.repository.get_feed(subscription.feed_id)
        else:
            feed = hub.service.get_or_create_feed(url)
    except FeedHubError as exc:
        _fail(exc)
        return
    console.print(f"Feed {feed.id}: {feed.title or feed.url}")
    flush()


@app.command()
def refresh(
    feed_id: int = typer.Argument(...),
    config: Path | None = ConfigOption,
    billing: Path | None = BillingOption,
    db: Path | None = DbOption,
):
    """Refresh one feed now."""
    hub = _load(config, billing, db)
    try:
        result = hub.service.refresh_feed(feed_id)
    except FeedHubError as exc:
        _fail(exc)
        return
    console.print(f"Feed {feed_id}: {result.articles_added} new articles")
    flush()


@app.command()
def due(
    plan: Plan = typer.Option(Plan.FREE, "--plan", "-p", case_sensitive=False),
    config: Path | None = ConfigOption,
    billing: Path | None = BillingOption,
    db: Path | None = DbOption,
):
    """List feeds due for refresh under a plan tier."""
    hub = _load(config, billing, db)
    feed_ids = hub.scheduler.feeds_due(plan)
    if not feed_ids:
        console.print("No feeds due.")
        return
    for feed_id in feed_ids:
        feed = hub.repository.get_feed(feed_id)
        console.print(f"{feed_id}\t{feed.url if feed else ''}")


@app.command("run-due")
def run_due(
    plan: Plan = typer.Option(Plan.FREE, "--plan", "-p", case_sensitive=False),
    config: Path | None = ConfigOption,
    billing: Path | None = BillingOption,
    db: Path | None = DbOption,
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
):
    """Refresh every feed due under a plan tier."""
    hub = _load(config, billing, db, log_level)
    report = hub.scheduler.run_pass(plan)
    render_pass_report(report, console)
    # Flush Langfuse traces before exit
    flush()


@app.command()
def credits(
    subscriber: str = typer.Argument(..., help="User id or team:<id>."),
    config: Path | None = ConfigOption,
    billing: Path | None = BillingOption,
    db: Path | None = DbOption,
):
    """Show the subscriber's current credit cycle."""
    hub = _load(config, billing, db)
    status = hub.service.get_credit_status(subscriber)
    console.print(
        f"[bold]{subscriber}[/bold] plan={status.plan.value} used={status.used}/{status.limit} "
        f"remaining={status.remaining} cycle_end={status.cycle_end.isoformat()}"
    )


@app.command()
def summarize(
    article_id: int = typer.Argument(...),
    subscriber: str = typer.Option(..., "--subscriber", "-s"),
    config: Path | None = ConfigOption,
    billing: Path | None = BillingOption,
    db: Path | None = DbOption,
):
    """Summarize an article, charging one AI credit."""
    hub = _load(config, billing, db)
    try:
        result = hub.service.summarize_article(article_id, subscriber)
    except FeedHubError as exc:
        _fail(exc)
        return
    console.print(result.text)
    if result.warning:
        console.print(f"[yellow]{result.warning}[/yellow]")
    console.print(f"Credits used this cycle: {result.credits_used}")
    flush()


if __name__ == "__main__":
    app()
