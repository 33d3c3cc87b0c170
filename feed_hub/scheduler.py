"""
Plan-based refresh selection and refresh passes.

Selection is pure: ``feeds_due`` only reads the repository. ``run_pass``
refreshes every selected feed on a bounded thread pool; each feed succeeds
or fails on its own and a failure is reported, never raised. The periodic
trigger (cron, timer, queue consumer) lives outside this package and calls
``run_pass`` per plan tier on a fixed interval.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from contextvars import copy_context
from datetime import datetime, timedelta
import logging
from typing import Callable

from .billing import BillingDirectory
from .config import ScheduleConfig
from .core.errors import FeedHubError
from .core.types import PassReport, Plan, RefreshResult, Subscription, utcnow
from .llm.tracing import set_span_output, start_span
from .logging_utils import get_logger, log_event
from .pipeline import IngestionPipeline
from .storage.base import Repository


logger = get_logger("scheduler")


class RefreshScheduler:
    """Select due feeds per plan tier and refresh them.

    Args:
        repository: Persistence boundary used for selection
        pipeline: Pipeline invoked for every due feed
        cfg: Cadence and worker pool settings
        billing: When given, a pass for a tier only selects feeds that have
            at least one subscriber on that tier; without it every
            subscribed feed is eligible under every tier
        clock: Callable returning the current UTC time
    """

    def __init__(
        self,
        repository: Repository,
        pipeline: IngestionPipeline,
        cfg: ScheduleConfig | None = None,
        billing: BillingDirectory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.pipeline = pipeline
        self.cfg = cfg or ScheduleConfig()
        self.billing = billing
        self.clock = clock

    def interval_for(self, plan: Plan) -> timedelta:
        """Return the minimum age before a feed on ``plan`` is due again."""
        if plan.is_paid:
            return timedelta(minutes=self.cfg.paid_interval_minutes)
        return timedelta(minutes=self.cfg.free_interval_minutes)

    def feeds_due(self, plan: Plan, now: datetime | None = None) -> list[int]:
        """Return ids of feeds due for refresh under ``plan``.

        A feed is due when it has at least one subscription and was never
        fetched or last fetched before ``now - interval_for(plan)``.
        """
        cutoff = (now or self.clock()) - self.interval_for(plan)
        return self.repository.find_due_feeds(cutoff, self._plan_filter(plan))

    def run_pass(self, plan: Plan, now: datetime | None = None) -> PassReport:
        """Refresh every feed due under ``plan`` and report the outcome.

        Failed refreshes are not retried within the pass; they stay due and
        are picked up again by the next pass.
        """
        due = self.feeds_due(plan, now=now)
        report = PassReport(plan=plan, due=len(due))
        if not due:
            return report

        with start_span(
            "feed_hub.refresh_pass",
            kind="chain",
            input_value={"plan": plan.value, "due": len(due)},
        ) as span:
            workers = max(1, min(self.cfg.max_workers, len(due)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_map = {}
                for feed_id in due:
                    # Copy current context (including tracing ids) into worker thread.
                    ctx = copy_context()
                    future = executor.submit(ctx.run, self._refresh_one, feed_id)
                    future_map[future] = feed_id

                for future in as_completed(future_map):
                    result = future.result()
                    if result.ok:
                        report.succeeded += 1
                        report.articles_added += result.articles_added
                    else:
                        report.failed += 1
                        report.errors[result.feed_id] = result.error or "unknown error"
            set_span_output(
                span,
                {"succeeded": report.succeeded, "failed": report.failed, "added": report.articles_added},
            )

        log_event(
            logger,
            "Refresh pass complete",
            event="pass_complete",
            plan=plan.value,
            due=report.due,
            succeeded=report.succeeded,
            failed=report.failed,
            added=report.articles_added,
        )
        return report

    def _refresh_one(self, feed_id: int) -> RefreshResult:
        try:
            return self.pipeline.refresh(feed_id)
        except FeedHubError as exc:
            return RefreshResult(feed_id=feed_id, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            # One broken feed must not take down the pass.
            log_event(
                logger,
                "Unexpected refresh error",
                level=logging.ERROR,
                event="refresh_crashed",
                feed_id=feed_id,
                error=f"{type(exc).__name__}: {exc}",
            )
            return RefreshResult(feed_id=feed_id, error=f"{type(exc).__name__}: {exc}")

    def _plan_filter(self, plan: Plan) -> Callable[[Subscription], bool] | None:
        billing = self.billing
        if billing is None:
            return None

        def matches(subscription: Subscription) -> bool:
            return billing.plan_for(subscription.subscriber_id) is plan

        return matches
