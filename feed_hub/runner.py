"""
Application wiring.

Builds the repository, fetcher, pipeline, scheduler, credit ledger and
enrichment gateway from an AppConfig, and renders pass summaries for the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx
from rich.console import Console
from rich.table import Table

from .billing import BillingDirectory, StaticBillingDirectory
from .cache import build_cache
from .config import AppConfig
from .core.dedup import Deduplicator
from .core.types import PassReport
from .credits import CreditLedger
from .fetch.fetcher import FeedFetcher
from .llm.gateway import EnrichmentGateway
from .llm.providers.factory import create_provider
from .llm.tracing import setup_langfuse
from .logging_utils import get_logger, log_event, setup_llm_logger, setup_logging
from .pipeline import IngestionPipeline
from .scheduler import RefreshScheduler
from .service import FeedService
from .storage import Repository, build_repository


@dataclass
class App:
    """Wired application components sharing one repository."""

    cfg: AppConfig
    repository: Repository
    billing: BillingDirectory
    pipeline: IngestionPipeline
    scheduler: RefreshScheduler
    ledger: CreditLedger
    service: FeedService


def build_app(
    cfg: AppConfig,
    repository: Repository | None = None,
    billing: BillingDirectory | None = None,
    client: httpx.Client | None = None,
    llm_client: httpx.Client | None = None,
    configure_logging: bool = True,
) -> App:
    """Build every component from ``cfg``.

    Args:
        cfg: Application configuration
        repository: Overrides the configured storage backend
        billing: Payment record lookup; defaults to an empty directory
            (everyone on the free plan)
        client: Shared HTTP client for feed fetching and scraping
        llm_client: HTTP client for the enrichment provider
        configure_logging: Whether to install the console/file handlers

    Returns:
        The wired App. ``app.service.gateway`` is None when no enrichment
        provider could be configured (for example, a missing API key).
    """
    if configure_logging:
        setup_logging(cfg.logging)
    setup_langfuse(cfg.langfuse)
    logger = get_logger("runner")

    repository = repository or build_repository(cfg.storage)
    billing = billing or StaticBillingDirectory()

    fetcher = FeedFetcher(cfg.fetch, cfg.scrape, client=client)
    pipeline = IngestionPipeline(
        repository,
        fetcher,
        deduplicator=Deduplicator(repository),
        cache=build_cache(cfg.cache),
    )
    scheduler = RefreshScheduler(repository, pipeline, cfg.schedule, billing=billing)
    ledger = CreditLedger(repository, billing, cfg.credits)
    gateway = _build_gateway(cfg, llm_client, logger)
    service = FeedService(repository, pipeline, ledger, gateway)

    return App(
        cfg=cfg,
        repository=repository,
        billing=billing,
        pipeline=pipeline,
        scheduler=scheduler,
        ledger=ledger,
        service=service,
    )


def _build_gateway(
    cfg: AppConfig, llm_client: httpx.Client | None, logger: logging.Logger
) -> EnrichmentGateway | None:
    llm_logger = setup_llm_logger(cfg.logging)
    try:
        provider = create_provider(cfg.provider, cfg.logging, llm_logger, client=llm_client)
    except ValueError as exc:
        log_event(
            logger,
            "Enrichment disabled",
            level=logging.WARNING,
            event="enrichment_disabled",
            provider=cfg.provider.name,
            error=str(exc),
        )
        return None
    return EnrichmentGateway(provider)


def render_pass_report(report: PassReport, console: Console) -> None:
    """Display refresh pass statistics, one row per failed feed."""
    console.print(
        "[bold]Refresh pass[/bold]: "
        f"plan={report.plan.value}, due={report.due}, succeeded={report.succeeded}, "
        f"failed={report.failed}, added={report.articles_added}"
    )
    if not report.errors:
        return
    table = Table("Feed", "Error")
    for feed_id, error in sorted(report.errors.items()):
        table.add_row(str(feed_id), error)
    console.print(table)
